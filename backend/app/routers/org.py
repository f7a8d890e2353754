"""Organization router: the org itself, members, invites and roles."""

import logging
import os
import secrets
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import (
    get_current_user,
    get_db,
    get_org_context,
    invalidate_cached_profile,
    require_min_org_role,
)
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.organization import OrgInvite, Organization, Profile, UserRole
from app.models.org_models import MemberRoleUpdate, OrgCreate, OrgInviteCreate, OrgUpdate
from app.permissions import ORG_ROLE_ADMIN, ORG_ROLE_OWNER, map_database_role
from app.security import log_security_event, rate_limit_sensitive
from app.services.activity_service import ActivityService
from app.services.email_service import EMAIL_ERROR_STATUS, EMAIL_ERRORS, EmailService
from app.services.org_member_service import OrgMemberRemovalError, remove_org_member

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/org", tags=["org"])

INVITE_TTL_DAYS = 7
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")


def _invite_email_body(org_name: str, inviter: dict, token: str) -> str:
    inviter_name = " ".join(
        p for p in (inviter.get("first_name"), inviter.get("last_name")) if p
    ) or inviter.get("email") or "A teammate"
    return (
        f"{inviter_name} invited you to join {org_name} on Accord.\n\n"
        f"Accept the invitation: {FRONTEND_URL}/invite/{token}\n\n"
        f"This invitation expires in {INVITE_TTL_DAYS} days."
    )


ORG_FIELDS = {"name", "slug", "logo_url"}


async def _ensure_slug_available(db: AsyncSession, slug: str, org_id=None) -> None:
    query = select(Organization.id).where(Organization.slug == slug)
    if org_id is not None:
        query = query.where(Organization.id != org_id)
    result = await db.execute(query)
    if result.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail=f"Slug '{slug}' is already taken")


async def _load_active_org(db: AsyncSession, org_id) -> Organization:
    organization = await db.get(Organization, to_uuid(org_id))
    if organization is None or organization.archived_at is not None:
        raise HTTPException(status_code=404, detail="Organization not found")
    return organization


# ---------------------------------------------------------------------------
# GET/POST/PATCH /org, POST /org/archive
# ---------------------------------------------------------------------------


@router.get("")
async def get_org(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    return row_to_dict(await _load_active_org(db, user["org_id"]))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_org(
    body: OrgCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Create an organization and make the caller its owner."""
    if user.get("org_id"):
        raise HTTPException(status_code=409, detail="Leave your current organization first")
    await _ensure_slug_available(db, body.slug)

    profile = await db.get(Profile, to_uuid(user["id"]))
    if profile is None:
        raise HTTPException(status_code=404, detail="User profile not found")

    organization = Organization(
        id=uuid.uuid4(), name=body.name, slug=body.slug, logo_url=body.logo_url
    )
    db.add(organization)
    await db.flush()
    profile.org_id = organization.id
    db.add(UserRole(org_id=organization.id, user_id=profile.id, role=ORG_ROLE_OWNER))
    await db.flush()
    await db.refresh(organization)

    invalidate_cached_profile(user["id"])
    await ActivityService.log_activity(
        db, organization.id, user["id"], "org_created", f"Created organization: {organization.name}",
        entity_type="organization", entity_id=organization.id,
    )
    logger.info("Organization %s created by %s", organization.id, user["id"])
    return row_to_dict(organization)


@router.patch("")
async def update_org(
    body: OrgUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Rename the org or change its slug or logo. Admins and the owner only."""
    require_min_org_role(user, ORG_ROLE_ADMIN)
    organization = await _load_active_org(db, user["org_id"])

    # name and slug are required columns; an explicit null only clears the logo
    changes = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if value is not None or key == "logo_url"
    }
    if changes.get("slug") and changes["slug"] != organization.slug:
        await _ensure_slug_available(db, changes["slug"], organization.id)

    changed = apply_updates(organization, changes, ORG_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(organization)
        invalidate_cached_profile(user["id"])
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "org_updated", f"Updated organization: {organization.name}",
            entity_type="organization", entity_id=organization.id, details={"fields": changed},
        )
    return row_to_dict(organization)


@router.post("/archive")
@rate_limit_sensitive()
async def archive_org(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Archive the org. Owner only.

    Every member is detached from the org, their roles and all pending
    invites are deleted. Content rows stay in place under the archived org.
    """
    if user.get("role") != ORG_ROLE_OWNER:
        log_security_event("org_archive_denied", request, {"user_id": user["id"]})
        raise HTTPException(status_code=403, detail="Only the organization owner can archive it")

    organization = await _load_active_org(db, user["org_id"])
    org_id = organization.id
    member_result = await db.execute(select(Profile.id).where(Profile.org_id == org_id))
    member_ids = [str(member_id) for member_id in member_result.scalars().all()]

    # logged first so the entry is written while the owner still belongs to the org
    await ActivityService.log_activity(
        db, org_id, user["id"], "org_archived", f"Archived organization: {organization.name}",
        entity_type="organization", entity_id=org_id, details={"members_removed": len(member_ids)},
    )
    organization.archived_at = datetime.now(timezone.utc)
    await db.execute(update(Profile).where(Profile.org_id == org_id).values(org_id=None))
    await db.execute(delete(UserRole).where(UserRole.org_id == org_id))
    await db.execute(delete(OrgInvite).where(OrgInvite.org_id == org_id))
    await db.flush()

    for member_id in member_ids:
        invalidate_cached_profile(member_id)
    log_security_event(
        "org_archived", request, {"user_id": user["id"], "org_id": str(org_id)}
    )
    return {"success": True, "org_id": str(org_id), "members_removed": len(member_ids)}


# ---------------------------------------------------------------------------
# GET /org/members
# ---------------------------------------------------------------------------


@router.get("/members")
async def list_members(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    result = await db.execute(
        select(Profile, UserRole.role)
        .outerjoin(
            UserRole,
            (UserRole.user_id == Profile.id) & (UserRole.org_id == Profile.org_id),
        )
        .where(Profile.org_id == to_uuid(user["org_id"]))
        .order_by(Profile.first_name, Profile.email)
    )
    members = []
    for profile, role in result.all():
        data = row_to_dict(profile)
        data["role"] = map_database_role(role)
        members.append(data)
    return members


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------


@router.get("/invites")
async def list_invites(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Pending, unexpired invites."""
    require_min_org_role(user, ORG_ROLE_ADMIN)
    result = await db.execute(
        select(OrgInvite)
        .where(
            OrgInvite.org_id == to_uuid(user["org_id"]),
            OrgInvite.accepted_at.is_(None),
            OrgInvite.expires_at > datetime.now(timezone.utc),
        )
        .order_by(OrgInvite.created_at.desc())
    )
    return [row_to_dict(i, skip_cols={"token"}) for i in result.scalars().all()]


@router.post("/invites", status_code=status.HTTP_201_CREATED)
@rate_limit_sensitive()
async def create_invite(
    request: Request,
    body: OrgInviteCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Invite an email address to the org.

    With ``send_email`` the invite link is mailed through the email service;
    a failed send is reported in ``email_error`` and the invite is kept.
    """
    require_min_org_role(user, ORG_ROLE_ADMIN)
    if body.role == ORG_ROLE_OWNER and user.get("role") != ORG_ROLE_OWNER:
        raise HTTPException(status_code=403, detail="Only the owner can invite owners")

    org_id = to_uuid(user["org_id"])
    existing_member = await db.execute(
        select(Profile.id).where(
            Profile.org_id == org_id, func.lower(Profile.email) == body.email
        )
    )
    if existing_member.scalar_one_or_none() is not None:
        raise HTTPException(status_code=409, detail="User is already a member")

    invite = OrgInvite(
        org_id=org_id,
        email=body.email,
        role=body.role,
        token=secrets.token_urlsafe(32),
        expires_at=datetime.now(timezone.utc) + timedelta(days=INVITE_TTL_DAYS),
        invited_by=to_uuid(user["id"]),
    )
    db.add(invite)
    await db.flush()
    await db.refresh(invite)

    email_result = None
    email_error = None
    if body.send_email:
        organization = await db.get(Organization, org_id)
        org_name = organization.name if organization else "your organization"
        try:
            email_result = await EmailService.send_email(
                db,
                user,
                body.email,
                f"You're invited to join {org_name} on Accord",
                _invite_email_body(org_name, user, invite.token),
                is_invite_email=True,
            )
        except EMAIL_ERRORS as e:
            email_error = {"status": EMAIL_ERROR_STATUS[type(e)], "detail": str(e)}
            logger.warning("Invite email to %s failed: %s", body.email, e)

    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "member_added", f"Invited {body.email} as {body.role}",
        entity_type="invite", entity_id=invite.id,
    )
    data = row_to_dict(invite)
    data["email_sent"] = email_result is not None
    data["email_error"] = email_error
    return data


@router.delete("/invites/{invite_id}")
async def revoke_invite(
    invite_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_min_org_role(user, ORG_ROLE_ADMIN)
    invite = await get_org_row(db, OrgInvite, invite_id, user["org_id"], "Invite")
    await db.delete(invite)
    await db.flush()
    return {"success": True}


@router.post("/invites/{token}/accept")
async def accept_invite(
    token: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Join the inviting org. The invite must be addressed to the caller's email."""
    result = await db.execute(select(OrgInvite).where(OrgInvite.token == token))
    invite = result.scalar_one_or_none()
    if invite is None or invite.accepted_at is not None:
        raise HTTPException(status_code=404, detail="Invite not found")
    if invite.expires_at <= datetime.now(timezone.utc):
        raise HTTPException(status_code=410, detail="Invite has expired")
    if (user.get("email") or "").lower() != invite.email.lower():
        log_security_event("invite_email_mismatch", request, {"user_id": user["id"]})
        raise HTTPException(status_code=403, detail="Invite was sent to a different email")
    if user.get("org_id") and str(user["org_id"]) != str(invite.org_id):
        raise HTTPException(status_code=409, detail="Leave your current organization first")

    profile = await db.get(Profile, to_uuid(user["id"]))
    if profile is None:
        raise HTTPException(status_code=404, detail="User profile not found")
    profile.org_id = invite.org_id

    role_result = await db.execute(
        select(UserRole).where(UserRole.user_id == profile.id, UserRole.org_id == invite.org_id)
    )
    user_role = role_result.scalar_one_or_none()
    if user_role is None:
        db.add(UserRole(org_id=invite.org_id, user_id=profile.id, role=invite.role))
    else:
        user_role.role = invite.role
    invite.accepted_at = datetime.now(timezone.utc)
    await db.flush()

    invalidate_cached_profile(user["id"])
    await ActivityService.log_activity(
        db, invite.org_id, user["id"], "member_added", f"{invite.email} joined as {invite.role}",
        entity_type="user", entity_id=profile.id,
    )
    return {"success": True, "org_id": str(invite.org_id), "role": invite.role}


# ---------------------------------------------------------------------------
# DELETE /org/members/{user_id}, PATCH /org/members/{user_id}/role
# ---------------------------------------------------------------------------


@router.delete("/members/{user_id}")
@rate_limit_sensitive()
async def remove_member(
    user_id: uuid.UUID,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Remove a member and revoke all of their sessions."""
    try:
        return await remove_org_member(db, user, str(user_id))
    except OrgMemberRemovalError as e:
        if e.status_code == 403:
            log_security_event(
                "member_removal_denied", request, {"user_id": user["id"], "target": str(user_id)}
            )
        raise HTTPException(status_code=e.status_code, detail=str(e)) from e


@router.patch("/members/{user_id}/role")
async def change_member_role(
    user_id: uuid.UUID,
    body: MemberRoleUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Change a member's org role.

    Admins can change anyone except the owner; only the owner can hand out
    the owner role.
    """
    require_min_org_role(user, ORG_ROLE_ADMIN)
    if str(user_id) == str(user["id"]):
        raise HTTPException(status_code=400, detail="You cannot change your own role")

    org_id = to_uuid(user["org_id"])
    result = await db.execute(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.org_id == org_id)
    )
    user_role = result.scalar_one_or_none()
    if user_role is None:
        raise HTTPException(status_code=404, detail="Member not found")
    if user_role.role == ORG_ROLE_OWNER:
        raise HTTPException(status_code=403, detail="The owner's role cannot be changed")
    if body.role == ORG_ROLE_OWNER and user.get("role") != ORG_ROLE_OWNER:
        raise HTTPException(status_code=403, detail="Only the owner can promote to owner")

    previous = user_role.role
    user_role.role = body.role
    await db.flush()
    invalidate_cached_profile(str(user_id))
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "member_role_changed",
        f"Changed role from {previous} to {body.role}",
        entity_type="user", entity_id=user_id, details={"from": previous, "to": body.role},
    )
    return {"success": True, "user_id": str(user_id), "role": body.role}
