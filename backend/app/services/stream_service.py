"""Stream (chat, video and activity feed) user tokens.

The frontend talks to Stream directly; the backend only signs a user token
with the app secret so the secret never reaches the browser.
"""

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from jose import jwt

load_dotenv()

logger = logging.getLogger(__name__)

STREAM_API_KEY = os.getenv("STREAM_API_KEY", "")
STREAM_TOKEN_TTL_HOURS = int(os.getenv("STREAM_TOKEN_TTL_HOURS", "24"))
STREAM_ALGORITHM = "HS256"
STREAM_TOKEN_TYPES = ("chat", "video", "feed")


class StreamNotConfiguredError(RuntimeError):
    """Raised when STREAM_API_SECRET is missing."""


def _stream_secret() -> str:
    secret = os.getenv("STREAM_API_SECRET")
    if not secret:
        raise StreamNotConfiguredError("Stream API not configured")
    return secret


def display_name(user: Dict[str, Any]) -> str:
    first, last = user.get("first_name"), user.get("last_name")
    if first and last:
        return f"{first} {last}"
    email = user.get("email") or ""
    return email.split("@")[0] or "User"


def create_stream_token(user_id: str, now: Optional[datetime] = None) -> str:
    """Sign ``{user_id, iat, exp}`` with the Stream app secret."""
    secret = _stream_secret()
    now = now or datetime.now(timezone.utc)
    payload = {
        "user_id": str(user_id),
        "iat": now,
        "exp": now + timedelta(hours=STREAM_TOKEN_TTL_HOURS),
    }
    return jwt.encode(payload, secret, algorithm=STREAM_ALGORITHM)


def issue_stream_credentials(user: Dict[str, Any], token_type: str = "chat") -> Dict[str, Any]:
    token = create_stream_token(user["id"])
    logger.info("Generated %s token for user %s", token_type, user["id"])
    return {
        "token": token,
        "api_key": STREAM_API_KEY,
        "user_id": str(user["id"]),
        "user_name": display_name(user),
        "type": token_type,
    }
