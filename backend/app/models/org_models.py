"""Pydantic request schemas for contacts, team members and org membership."""

import re
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.permissions import LEVELS, ORG_ROLES, PROJECT_ROLES, roles_for_level

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is None or value == "":
        return None
    value = value.strip()
    if len(value) > 254 or not _EMAIL_RE.match(value):
        raise ValueError("Invalid email address format")
    return value


# ---------------------------------------------------------------------------
# Contacts
# ---------------------------------------------------------------------------


class ContactCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=200)
    role: Optional[str] = Field(None, max_length=200)
    expertise: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=5000)
    avatar_url: Optional[str] = None

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)


class ContactUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    email: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=50)
    company: Optional[str] = Field(None, max_length=200)
    role: Optional[str] = Field(None, max_length=200)
    expertise: Optional[List[str]] = None
    notes: Optional[str] = Field(None, max_length=5000)
    avatar_url: Optional[str] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        return _check_email(v)


# ---------------------------------------------------------------------------
# Team members
# ---------------------------------------------------------------------------


class TeamMemberCreate(BaseModel):
    contact_id: UUID
    user_id: Optional[UUID] = None
    capacity: float = Field(40, ge=0, description="Hours per week")
    availability: bool = True
    preferred_roles: Optional[List[str]] = None
    workload: Optional[int] = Field(None, ge=0)


class TeamMemberUpdate(BaseModel):
    user_id: Optional[UUID] = None
    capacity: Optional[float] = Field(None, ge=0)
    availability: Optional[bool] = None
    preferred_roles: Optional[List[str]] = None
    workload: Optional[int] = Field(None, ge=0)


class ProjectMemberCreate(BaseModel):
    member_id: UUID
    role: str = "contributor"

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in PROJECT_ROLES:
            raise ValueError(f"Invalid project role. Must be one of: {', '.join(PROJECT_ROLES)}")
        return v


class ProjectMemberUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in PROJECT_ROLES:
            raise ValueError(f"Invalid project role. Must be one of: {', '.join(PROJECT_ROLES)}")
        return v


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

_SLUG_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")


def slugify(name: str) -> str:
    """Lowercase, hyphen-separated slug built from an org name."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")[:48]


def _check_slug(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    if not _SLUG_RE.match(value) or len(value) > 48:
        raise ValueError("Slug may only contain lowercase letters, digits and hyphens")
    return value


class OrgCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    slug: Optional[str] = None
    logo_url: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @model_validator(mode="after")
    def default_slug(self):
        if not self.slug:
            self.slug = slugify(self.name)
        if not self.slug:
            raise ValueError("Organization name must contain letters or digits")
        return self


class OrgUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    slug: Optional[str] = None
    logo_url: Optional[str] = Field(None, max_length=2000)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("Organization name is required")
        return v

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v):
        return _check_slug(v)

    @field_validator("logo_url")
    @classmethod
    def blank_logo(cls, v):
        if v is None:
            return None
        return v.strip() or None


# ---------------------------------------------------------------------------
# Org membership
# ---------------------------------------------------------------------------


class OrgInviteCreate(BaseModel):
    email: str
    role: str = "member"
    send_email: bool = True

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        checked = _check_email(v)
        if not checked:
            raise ValueError("Email is required")
        return checked.lower()

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ORG_ROLES:
            raise ValueError(f"Invalid role. Must be one of: {', '.join(ORG_ROLES)}")
        return v


class MemberRoleUpdate(BaseModel):
    role: str

    @field_validator("role")
    @classmethod
    def validate_role(cls, v):
        if v not in ORG_ROLES:
            raise ValueError(f"Invalid role. Must be one of: {', '.join(ORG_ROLES)}")
        return v


class PermissionOverrideUpsert(BaseModel):
    level: str = "org"
    role: str
    permission: str = Field(..., min_length=1, max_length=100)
    granted: bool

    @model_validator(mode="after")
    def validate_level_role(self):
        if self.level not in LEVELS:
            raise ValueError(f"Invalid level. Must be one of: {', '.join(LEVELS)}")
        if self.role not in roles_for_level(self.level):
            raise ValueError(f"Invalid role for level {self.level}: {self.role}")
        return self


class WatchItemCreate(BaseModel):
    item_id: UUID
    item_type: str = Field(..., min_length=1, max_length=50)
    item_name: Optional[str] = Field(None, max_length=500)
