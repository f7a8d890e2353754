"""Product feedback and bug reports forwarded to Canny."""

import logging
import os
from typing import Any, Dict

import httpx
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

CANNY_API_URL = "https://canny.io/api/v1/posts/create"
CANNY_API_KEY = os.getenv("CANNY_API_KEY")

BOARD_IDS = {
    "feedback": "553c3ef8b8cdcd1501ba1234",
    "bug": "553c3ef8b8cdcd1501ba1238",
}

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 5000


class FeedbackValidationError(ValueError):
    """Bad title, description or type (400)."""


class FeedbackConfigError(RuntimeError):
    """CANNY_API_KEY is missing (500)."""


class FeedbackProviderError(Exception):
    """Canny rejected the post or could not be reached (502)."""


def author_name(profile: Dict[str, Any]) -> str:
    full_name = " ".join(
        part for part in (profile.get("first_name"), profile.get("last_name")) if part
    ).strip()
    return full_name or profile.get("email") or "Anonymous"


def validate_feedback(title: str, description: str, feedback_type: str) -> None:
    if feedback_type not in BOARD_IDS:
        raise FeedbackValidationError("Type must be 'feedback' or 'bug'")
    if not title or not title.strip():
        raise FeedbackValidationError("Title is required")
    if len(title) > MAX_TITLE_LENGTH:
        raise FeedbackValidationError("Title must be 100 characters or less")
    if not description or not description.strip():
        raise FeedbackValidationError("Description is required")
    if len(description) > MAX_DESCRIPTION_LENGTH:
        raise FeedbackValidationError("Description must be 5000 characters or less")


class FeedbackService:
    @staticmethod
    async def submit(
        profile: Dict[str, Any], title: str, description: str, feedback_type: str = "feedback"
    ) -> Dict[str, Any]:
        """
        Create a Canny post on the board for ``feedback_type``.

        Returns:
            ``{"success": True, "post_id": ...}``

        Raises:
            FeedbackConfigError, FeedbackValidationError, FeedbackProviderError
        """
        api_key = os.getenv("CANNY_API_KEY", CANNY_API_KEY)
        if not api_key:
            logger.error("CANNY_API_KEY not configured")
            raise FeedbackConfigError("Feedback service not configured")

        validate_feedback(title, description, feedback_type)

        form = {
            "apiKey": api_key,
            "boardID": BOARD_IDS[feedback_type],
            "authorEmail": profile.get("email") or "",
            "authorName": author_name(profile),
            "title": title.strip(),
            "details": description.strip(),
        }
        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(CANNY_API_URL, data=form)
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Canny request failed: %s", e)
            raise FeedbackProviderError("Failed to submit") from e

        if response.status_code >= 400 or (isinstance(result, dict) and result.get("error")):
            logger.error("Canny API error %s: %s", response.status_code, result)
            raise FeedbackProviderError("Failed to submit")

        logger.info("Submitted %s to Canny for user %s", feedback_type, profile.get("id"))
        return {"success": True, "post_id": result.get("id")}
