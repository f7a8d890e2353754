"""Contacts and team members router.

Contacts are the org's address book; a team member is a contact that can be
assigned work, with a weekly capacity used by the allocation views.
"""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.deps import get_db, get_org_context, _safe_error
from app.helpers.db_utils import apply_updates, get_org_row, row_to_dict, to_uuid
from app.models.db.contact import Contact, TeamMember
from app.models.org_models import (
    ContactCreate,
    ContactUpdate,
    TeamMemberCreate,
    TeamMemberUpdate,
)
from app.services.access_control import require_write_access
from app.services.activity_service import ActivityService
from app.services.allocation_service import member_to_dict

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["contacts"])

CONTACT_FIELDS = {"name", "email", "phone", "company", "role", "expertise", "notes", "avatar_url"}
MEMBER_FIELDS = {"user_id", "capacity", "availability", "preferred_roles", "workload"}


# ---------------------------------------------------------------------------
# GET /contacts
# ---------------------------------------------------------------------------


@router.get("/contacts")
async def list_contacts(
    search: str = Query(None, max_length=200),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List the org's contacts, optionally filtered by name, email or company."""
    query = select(Contact).where(Contact.org_id == to_uuid(user["org_id"]))
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                Contact.name.ilike(pattern),
                Contact.email.ilike(pattern),
                Contact.company.ilike(pattern),
            )
        )
    try:
        result = await db.execute(query.order_by(Contact.name))
        return [row_to_dict(c) for c in result.scalars().all()]
    except Exception as e:
        logger.error("Failed to list contacts: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("listing contacts", e),
        ) from e


@router.get("/contacts/{contact_id}")
async def get_contact(
    contact_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    contact = await get_org_row(db, Contact, contact_id, user["org_id"], "Contact")
    return row_to_dict(contact)


# ---------------------------------------------------------------------------
# POST /contacts, PATCH /contacts/{id}, DELETE /contacts/{id}
# ---------------------------------------------------------------------------


@router.post("/contacts", status_code=status.HTTP_201_CREATED)
async def create_contact(
    body: ContactCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    contact = Contact(org_id=to_uuid(user["org_id"]), **body.model_dump())
    db.add(contact)
    await db.flush()
    await db.refresh(contact)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "contact_created", f"Added contact: {contact.name}",
        entity_type="contact", entity_id=contact.id,
    )
    return row_to_dict(contact)


@router.patch("/contacts/{contact_id}")
async def update_contact(
    contact_id: uuid.UUID,
    body: ContactUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    contact = await get_org_row(db, Contact, contact_id, user["org_id"], "Contact")
    changed = apply_updates(contact, body.model_dump(exclude_unset=True), CONTACT_FIELDS)
    if changed:
        await db.flush()
        await db.refresh(contact)
        await ActivityService.log_activity(
            db, user["org_id"], user["id"], "contact_updated", f"Updated contact: {contact.name}",
            entity_type="contact", entity_id=contact.id, details={"fields": changed},
        )
    return row_to_dict(contact)


@router.delete("/contacts/{contact_id}")
async def delete_contact(
    contact_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Delete a contact; its team member row goes with it."""
    require_write_access(user)
    contact = await get_org_row(db, Contact, contact_id, user["org_id"], "Contact")
    name = contact.name
    await db.delete(contact)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "contact_deleted", f"Deleted contact: {name}",
        entity_type="contact", entity_id=contact_id,
    )
    return {"success": True}


# ---------------------------------------------------------------------------
# Team members
# ---------------------------------------------------------------------------


@router.get("/team-members")
async def list_team_members(
    available_only: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """List team members joined with their contact's name and email."""
    query = (
        select(TeamMember, Contact)
        .join(Contact, Contact.id == TeamMember.contact_id)
        .where(TeamMember.org_id == to_uuid(user["org_id"]))
    )
    if available_only:
        query = query.where(TeamMember.availability.is_(True))
    result = await db.execute(query.order_by(Contact.name))
    return [member_to_dict(member, contact) for member, contact in result.all()]


@router.post("/team-members", status_code=status.HTTP_201_CREATED)
async def create_team_member(
    body: TeamMemberCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    contact = await get_org_row(db, Contact, body.contact_id, user["org_id"], "Contact")
    existing = await db.execute(
        select(TeamMember.id).where(TeamMember.contact_id == contact.id)
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Contact is already a team member",
        )

    member = TeamMember(org_id=to_uuid(user["org_id"]), **body.model_dump())
    db.add(member)
    await db.flush()
    await db.refresh(member)
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "member_added", f"Added team member: {contact.name}",
        entity_type="team_member", entity_id=member.id,
    )
    return member_to_dict(member, contact)


@router.patch("/team-members/{member_id}")
async def update_team_member(
    member_id: uuid.UUID,
    body: TeamMemberUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    require_write_access(user)
    member = await get_org_row(db, TeamMember, member_id, user["org_id"], "Team member")
    apply_updates(member, body.model_dump(exclude_unset=True), MEMBER_FIELDS)
    await db.flush()
    await db.refresh(member)
    contact = await db.get(Contact, member.contact_id)
    return member_to_dict(member, contact)


@router.delete("/team-members/{member_id}")
async def delete_team_member(
    member_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_org_context),
):
    """Remove a team member; the contact is kept and their tasks become unassigned."""
    require_write_access(user)
    member = await get_org_row(db, TeamMember, member_id, user["org_id"], "Team member")
    await db.delete(member)
    await db.flush()
    await ActivityService.log_activity(
        db, user["org_id"], user["id"], "member_removed", "Removed team member",
        entity_type="team_member", entity_id=member_id,
    )
    return {"success": True}
