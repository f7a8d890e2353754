"""Notification models for the Accord API.

Request models for notification settings and for the email, feedback,
report and status-update endpoints that deliver content to people.
"""

from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, validator

from app.services.notification_service import EMAIL_DIGEST_OPTIONS
from app.services.stream_service import STREAM_TOKEN_TYPES
from app.status_update import FORMATS, SCOPES


class PreferenceUpdate(BaseModel):
    enabled: Optional[bool] = None
    email_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None


class ReminderUpdate(BaseModel):
    enabled: Optional[bool] = None
    timing: Optional[str] = None


class NotificationSettingsUpdate(BaseModel):
    """Partial settings; ids and times are checked by ``merge_settings``."""

    preferences: Optional[Dict[str, PreferenceUpdate]] = None
    reminders: Optional[Dict[str, ReminderUpdate]] = None
    email_digest: Optional[str] = None
    quiet_hours_enabled: Optional[bool] = None
    quiet_hours_start: Optional[str] = None
    quiet_hours_end: Optional[str] = None
    weekend_notifications: Optional[bool] = None

    @validator("email_digest")
    def validate_digest(cls, v):
        if v is not None and v not in EMAIL_DIGEST_OPTIONS:
            raise ValueError(
                f"Invalid email_digest. Must be one of: {', '.join(EMAIL_DIGEST_OPTIONS)}"
            )
        return v


class SendEmailRequest(BaseModel):
    to: str = Field(..., description="Recipient address")
    subject: str
    body: str
    is_invite_email: bool = False


class FeedbackRequest(BaseModel):
    title: str
    description: str
    type: str = Field("feedback", description="feedback or bug")


class StreamTokenRequest(BaseModel):
    type: str = "chat"

    @validator("type")
    def validate_type(cls, v):
        if v not in STREAM_TOKEN_TYPES:
            raise ValueError(f"Invalid type. Must be one of: {', '.join(STREAM_TOKEN_TYPES)}")
        return v


class ReportUploadRequest(BaseModel):
    filename: str = Field(..., max_length=255)
    content: str = Field(..., description="Base64 encoded PDF")


class StatusUpdateRequest(BaseModel):
    scope: str = "project"
    scope_id: UUID
    format: str = "weekly"
    next_focus: Optional[str] = Field(None, max_length=5000)
    send_to: Optional[str] = None

    @validator("scope")
    def validate_scope(cls, v):
        if v not in SCOPES:
            raise ValueError(f"Invalid scope. Must be one of: {', '.join(SCOPES)}")
        return v

    @validator("format")
    def validate_format(cls, v):
        if v not in FORMATS:
            raise ValueError(f"Invalid format. Must be one of: {', '.join(FORMATS)}")
        return v
