"""Outbound email via the Resend API.

Every message is validated, checked against the sender's org (recipients
must be known contacts or members unless the message is an org invite),
rate limited per sender from ``email_logs`` and rendered into the Accord
HTML template before it is posted to Resend.
"""

import hashlib
import html
import logging
import os
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
from dotenv import load_dotenv
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.helpers.db_utils import to_uuid
from app.models.db.activity import EmailLog
from app.models.db.contact import Contact
from app.models.db.organization import OrgInvite, Profile
from app.services.activity_service import ActivityService

load_dotenv()

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
DEFAULT_FROM = "Accord <do_not_reply@beinaccord.com>"
EMAIL_FROM = os.getenv("EMAIL_FROM", DEFAULT_FROM)

HOURLY_EMAIL_LIMIT = 20
DAILY_EMAIL_LIMIT = 100
MAX_DUPLICATE_SUBJECT_PER_HOUR = 10
MAX_URLS_IN_BODY = 5
MAX_EMAIL_LENGTH = 254
MAX_SUBJECT_LENGTH = 255
MAX_BODY_LENGTH = 50_000

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_URL_RE = re.compile(r"https?://[^\s<>\"']+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class EmailValidationError(ValueError):
    """The request is malformed (400)."""


class EmailRecipientNotAllowed(PermissionError):
    """The recipient is outside the sender's organization (403)."""


class EmailRateLimitError(Exception):
    """The sender exceeded a sending limit (429)."""


class EmailProviderError(Exception):
    """Resend rejected the message or could not be reached (502)."""


class EmailConfigError(RuntimeError):
    """RESEND_API_KEY is missing (500)."""


EMAIL_ERROR_STATUS = {
    EmailValidationError: 400,
    EmailRecipientNotAllowed: 403,
    EmailRateLimitError: 429,
    EmailConfigError: 500,
    EmailProviderError: 502,
}
EMAIL_ERRORS = tuple(EMAIL_ERROR_STATUS)


# ---------------------------------------------------------------------------
# Validation and rendering
# ---------------------------------------------------------------------------


def is_valid_email(email: str) -> bool:
    return bool(email) and len(email) <= MAX_EMAIL_LENGTH and bool(_EMAIL_RE.match(email))


def extract_urls(text: str) -> List[str]:
    return _URL_RE.findall(text or "")


def validate_email_request(to: str, subject: str, body: str) -> None:
    if not to or not subject or not body:
        raise EmailValidationError("Missing required fields: to, subject, body")
    if not is_valid_email(to):
        raise EmailValidationError("Invalid email address format")
    if len(subject) > MAX_SUBJECT_LENGTH:
        raise EmailValidationError("Subject must be less than 255 characters")
    if len(body) > MAX_BODY_LENGTH:
        raise EmailValidationError("Message body is too long (max 50,000 characters)")
    if len(extract_urls(body)) > MAX_URLS_IN_BODY:
        raise EmailValidationError(f"Too many links in message (max {MAX_URLS_IN_BODY})")


def content_hash(subject: str, body: str) -> str:
    return hashlib.sha256((subject + body).encode("utf-8")).hexdigest()


def render_email_html(body: str) -> str:
    """Escape ``body`` and wrap it in the Accord template."""
    escaped = html.escape(body, quote=True).replace("\n", "<br>")
    return (
        '<div style="font-family: -apple-system, BlinkMacSystemFont, \'Segoe UI\', Roboto, '
        "'Helvetica Neue', Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;\">"
        '<div style="white-space: pre-wrap; line-height: 1.6; color: #333;">'
        f"{escaped}"
        "</div>"
        '<hr style="border: none; border-top: 1px solid #eee; margin: 30px 0;" />'
        '<p style="color: #888; font-size: 12px;">Sent via Accord</p>'
        "</div>"
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class EmailService:
    """Validate, authorize, rate limit and send one email."""

    @staticmethod
    async def check_recipient_allowed(
        db: AsyncSession, org_id: Any, recipient: str, is_invite_email: bool
    ) -> None:
        if is_invite_email:
            return
        org_uuid = to_uuid(org_id)
        address = recipient.lower()

        contact = await db.execute(
            select(Contact.id)
            .where(Contact.org_id == org_uuid, func.lower(Contact.email) == address)
            .limit(1)
        )
        member = await db.execute(
            select(Profile.id)
            .where(Profile.org_id == org_uuid, func.lower(Profile.email) == address)
            .limit(1)
        )
        if contact.scalar_one_or_none() is None and member.scalar_one_or_none() is None:
            raise EmailRecipientNotAllowed(
                "You can only send emails to contacts or members in your organization"
            )

        pending = await db.execute(
            select(OrgInvite.id)
            .where(
                OrgInvite.org_id == org_uuid,
                func.lower(OrgInvite.email) == address,
                OrgInvite.accepted_at.is_(None),
            )
            .limit(1)
        )
        if pending.scalar_one_or_none() is not None:
            raise EmailRecipientNotAllowed(
                "Cannot send emails to this recipient until they have accepted their organization invite"
            )

    @staticmethod
    async def _count_sent(db: AsyncSession, sender_id, since: datetime, subject: Optional[str] = None) -> int:
        query = select(func.count(EmailLog.id)).where(
            EmailLog.sender_id == to_uuid(sender_id),
            EmailLog.created_at >= since,
        )
        if subject is not None:
            query = query.where(EmailLog.subject == subject)
        result = await db.execute(query)
        return int(result.scalar() or 0)

    @staticmethod
    async def check_rate_limits(db: AsyncSession, sender_id, subject: str, now: Optional[datetime] = None) -> None:
        now = now or datetime.now(timezone.utc)
        hour_ago = now - timedelta(hours=1)
        day_ago = now - timedelta(days=1)

        if await EmailService._count_sent(db, sender_id, hour_ago) >= HOURLY_EMAIL_LIMIT:
            raise EmailRateLimitError(
                f"You've reached your hourly email limit ({HOURLY_EMAIL_LIMIT}). Please try again later."
            )
        if await EmailService._count_sent(db, sender_id, day_ago) >= DAILY_EMAIL_LIMIT:
            raise EmailRateLimitError(
                f"You've reached your daily email limit ({DAILY_EMAIL_LIMIT}). Please try again tomorrow."
            )
        if await EmailService._count_sent(db, sender_id, hour_ago, subject) >= MAX_DUPLICATE_SUBJECT_PER_HOUR:
            raise EmailRateLimitError(
                "You've sent too many emails with similar content. Please wait before sending again."
            )

    @staticmethod
    async def post_to_resend(to: str, subject: str, body: str, sender: Optional[str] = None) -> Dict[str, Any]:
        api_key = os.getenv("RESEND_API_KEY", RESEND_API_KEY)
        if not api_key:
            raise EmailConfigError("Email service not configured")

        payload = {
            "from": sender or os.getenv("EMAIL_FROM", EMAIL_FROM),
            "to": [to],
            "subject": subject,
            "html": render_email_html(body),
        }
        try:
            async with httpx.AsyncClient(timeout=15.0) as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                )
        except httpx.HTTPError as e:
            logger.error("Resend request failed: %s", e)
            raise EmailProviderError("Failed to send email. Please try again.") from e

        if response.status_code >= 400:
            logger.error("Resend API error %s: %s", response.status_code, response.text[:500])
            raise EmailProviderError("Failed to send email. Please try again.")
        return response.json()

    @staticmethod
    async def send_email(
        db: AsyncSession,
        sender: Dict[str, Any],
        to: str,
        subject: str,
        body: str,
        is_invite_email: bool = False,
    ) -> Dict[str, Any]:
        """
        Send ``body`` to ``to`` on behalf of ``sender`` (the caller profile).

        Raises:
            EmailValidationError, EmailRecipientNotAllowed, EmailRateLimitError,
            EmailConfigError, EmailProviderError
        """
        to = (to or "").strip()
        validate_email_request(to, subject, body)
        await EmailService.check_recipient_allowed(db, sender["org_id"], to, is_invite_email)
        await EmailService.check_rate_limits(db, sender["id"], subject)

        digest = content_hash(subject, body)
        logger.info("Sending email from user %s content_hash=%s", sender["id"], digest[:8])
        data = await EmailService.post_to_resend(to, subject, body)

        db.add(
            EmailLog(
                org_id=to_uuid(sender["org_id"]),
                sender_id=to_uuid(sender["id"]),
                recipient=to.lower(),
                subject=subject,
                content_hash=digest,
                is_invite=is_invite_email,
                provider_id=data.get("id"),
            )
        )
        await db.flush()
        await ActivityService.log_activity(
            db,
            sender["org_id"],
            sender["id"],
            "email_sent",
            f"Sent email: {subject}",
            entity_type="email",
            details={"recipient": to.lower(), "is_invite": is_invite_email},
        )
        return {"success": True, "id": data.get("id")}
