"""Shared dependencies for all Accord API routers.

Centralises the Supabase client singleton, the authentication and tenancy
dependencies, the HTTPBearer scheme, the rate-limiter reference and small
helpers so that every router module can ``from app.deps import …`` without
pulling in ``main``.
"""

import asyncio
import logging
import os
import time
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from postgrest.exceptions import APIError
from supabase import Client, create_client

from app.database import get_db  # noqa: F401  (re-exported for routers)
from app.permissions import ORG_ROLE_RANK, has_min_org_role, map_database_role
from app.security import get_rate_limiter, log_security_event

load_dotenv()

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Supabase client (singleton)
# ---------------------------------------------------------------------------
_supabase_url = os.getenv("SUPABASE_URL")
_supabase_service_key = os.getenv("SUPABASE_SERVICE_KEY")

supabase: Optional[Client] = None
if _supabase_url and _supabase_service_key:
    supabase = create_client(_supabase_url, _supabase_service_key)
else:
    logger.warning("SUPABASE_URL / SUPABASE_SERVICE_KEY not set; authentication is disabled")

# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------
limiter = get_rate_limiter()

# ---------------------------------------------------------------------------
# HTTPBearer security scheme
# ---------------------------------------------------------------------------
security = HTTPBearer()

MIN_TOKEN_LENGTH = 20


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception and return a message safe to show API consumers."""
    logger.error("Error during %s", operation, exc_info=e)
    return f"{operation} failed. Please try again or contact support."


def _api_error_message(exc: Exception) -> str:
    if isinstance(exc, APIError):
        return exc.message or str(exc)
    return str(exc)


# ---------------------------------------------------------------------------
# User profile cache (avoids two Supabase round-trips on every request)
# ---------------------------------------------------------------------------
_user_profile_cache: Dict[str, tuple] = {}
_CACHE_TTL = 300
_CACHE_MAX_ENTRIES = 1000


def _get_cached_profile(user_id: str) -> Optional[dict]:
    entry = _user_profile_cache.get(user_id)
    if entry:
        if time.time() - entry[1] < _CACHE_TTL:
            return entry[0]
        del _user_profile_cache[user_id]
    return None


def _set_cached_profile(user_id: str, profile: dict) -> None:
    if len(_user_profile_cache) >= _CACHE_MAX_ENTRIES:
        oldest_key = min(_user_profile_cache, key=lambda k: _user_profile_cache[k][1])
        del _user_profile_cache[oldest_key]
    _user_profile_cache[user_id] = (profile, time.time())


def invalidate_cached_profile(user_id: str) -> None:
    """Drop a cached profile after its org membership or role changed."""
    _user_profile_cache.pop(str(user_id), None)


def _load_profile(user_id: str, fallback_email: Optional[str]) -> Optional[Dict[str, Any]]:
    profile_response = (
        supabase.table("profiles")
        .select("id, email, first_name, last_name, org_id")
        .eq("id", user_id)
        .execute()
    )
    if not profile_response.data:
        return None
    profile = profile_response.data[0]

    role = None
    if profile.get("org_id"):
        role_response = (
            supabase.table("user_roles")
            .select("role")
            .eq("user_id", user_id)
            .eq("org_id", profile["org_id"])
            .execute()
        )
        if role_response.data:
            role = role_response.data[0].get("role")

    return {
        "id": str(profile["id"]),
        "email": profile.get("email") or fallback_email,
        "first_name": profile.get("first_name"),
        "last_name": profile.get("last_name"),
        "org_id": str(profile["org_id"]) if profile.get("org_id") else None,
        "role": map_database_role(role),
    }


# ---------------------------------------------------------------------------
# Authentication dependency
# ---------------------------------------------------------------------------


async def get_current_user(
    request: Request, credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Dict[str, Any]:
    """
    Resolve the bearer token to the caller's profile.

    The token is validated by Supabase Auth (signature, expiry, revocation);
    the profile and org role come from the ``profiles`` and ``user_roles``
    tables. Failures return a generic 401 so callers cannot enumerate
    accounts.
    """
    if supabase is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service not configured",
        )
    try:
        token = credentials.credentials
        if not token or len(token) < MIN_TOKEN_LENGTH:
            log_security_event("auth_invalid_token_format", request)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
            )

        response = await asyncio.to_thread(supabase.auth.get_user, token)
        if not response or not response.user:
            log_security_event("auth_invalid_session", request)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication credentials",
            )

        user_id = str(response.user.id)
        cached = _get_cached_profile(user_id)
        if cached is not None:
            return cached

        profile = await asyncio.to_thread(_load_profile, user_id, response.user.email)
        if profile is None:
            logger.warning("Profile not found for authenticated user_id: %s", user_id)
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User profile not found",
            )
        _set_cached_profile(user_id, profile)
        return profile

    except HTTPException:
        raise
    except Exception as e:
        log_security_event(
            "auth_error",
            request,
            {"error_type": type(e).__name__, "error_msg": str(e)[:100]},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
        ) from e


# ---------------------------------------------------------------------------
# Tenancy
# ---------------------------------------------------------------------------


async def get_org_context(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """The caller's profile, guaranteed to belong to an organization."""
    if not user.get("org_id"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of an organization",
        )
    return user


def require_min_org_role(user: Dict[str, Any], minimum: str) -> None:
    """Raise 403 unless the caller's org role ranks at least ``minimum``."""
    if minimum not in ORG_ROLE_RANK:
        raise ValueError(f"Unknown org role: {minimum}")
    if not has_min_org_role(user.get("role"), minimum):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires {minimum} role or higher",
        )
