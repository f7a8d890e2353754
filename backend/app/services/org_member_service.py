"""Removing a user from an organization.

Membership rows are owned by Supabase; the ``remove_user_from_org`` RPC
performs the removal and its own authorization. Afterwards every session of
the removed user is revoked so stale tokens stop working immediately.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.permissions import can_manage_org_members
from app.services.activity_service import ActivityService

logger = logging.getLogger(__name__)


class OrgMemberRemovalError(Exception):
    """Removal refused; ``status_code`` is the HTTP status to report."""

    def __init__(self, message: str, status_code: int = 400):
        self.status_code = status_code
        super().__init__(message)


def _supabase_client():
    from app.deps import supabase

    return supabase


async def remove_org_member(
    db: AsyncSession,
    caller: Dict[str, Any],
    user_id: str,
    client: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Remove ``user_id`` from the caller's organization.

    Returns:
        ``{"success": True, "signed_out": bool, "message": ...}``

    Raises:
        OrgMemberRemovalError: 403 for non-admins or an RPC refusal, 400 for
            removing yourself, 503 when Supabase is not configured.
    """
    if not can_manage_org_members(caller.get("role")):
        raise OrgMemberRemovalError("Only owners and admins can remove members", 403)
    if str(user_id) == str(caller["id"]):
        raise OrgMemberRemovalError("You cannot remove yourself from the organization", 400)

    client = client or _supabase_client()
    if client is None:
        raise OrgMemberRemovalError("Authentication service not configured", 503)

    try:
        await asyncio.to_thread(
            lambda: client.rpc(
                "remove_user_from_org",
                {"_user_id": str(user_id), "_org_id": caller["org_id"]},
            ).execute()
        )
    except Exception as e:
        message = getattr(e, "message", None) or str(e)
        logger.error("remove_user_from_org failed for %s: %s", user_id, message)
        raise OrgMemberRemovalError(message, 403) from e

    signed_out = True
    try:
        await asyncio.to_thread(client.auth.admin.sign_out, str(user_id), "global")
    except Exception as e:
        # membership is already gone; a lingering session expires on its own
        signed_out = False
        logger.warning("Sign out after removal failed for %s: %s", user_id, e)

    from app.deps import invalidate_cached_profile

    invalidate_cached_profile(str(user_id))
    await ActivityService.log_activity(
        db,
        caller["org_id"],
        caller["id"],
        "member_removed",
        "Removed a member from the organization",
        entity_type="user",
        entity_id=user_id,
        details={"signed_out": signed_out},
    )
    logger.info("User %s removed from org %s by %s", user_id, caller["org_id"], caller["id"])
    return {
        "success": True,
        "signed_out": signed_out,
        "message": "User removed from organization",
    }
