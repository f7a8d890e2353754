"""ORM models for the CRM contact book and the resource pool built on it."""

import uuid
from typing import Optional

from sqlalchemy import Boolean, Float, ForeignKey, Integer, Text
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.db.base import Base, OrgScopedMixin, TimestampMixin, uuid_pk

__all__ = ["Contact", "TeamMember"]


class Contact(Base, OrgScopedMixin, TimestampMixin):
    __tablename__ = "contacts"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expertise: Mapped[Optional[list[str]]] = mapped_column(ARRAY(Text), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class TeamMember(Base, OrgScopedMixin, TimestampMixin):
    """A contact that can be assigned work. ``capacity`` is hours per week."""

    __tablename__ = "team_members"

    id: Mapped[uuid.UUID] = uuid_pk()
    contact_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("contacts.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), nullable=True
    )
    capacity: Mapped[float] = mapped_column(
        Float, nullable=False, server_default="40"
    )
    availability: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default="true"
    )
    preferred_roles: Mapped[Optional[list[str]]] = mapped_column(
        ARRAY(Text), nullable=True
    )
    workload: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
