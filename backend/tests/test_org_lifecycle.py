"""
Unit Tests for the Organization Lifecycle

Tests:
- OrgCreate / OrgUpdate slug handling
- POST /org: owner role, profile link, slug conflicts
- PATCH /org: admin gate, slug conflicts, activity entry
- POST /org/archive: owner gate, members detached

Usage:
    cd backend && pytest tests/test_org_lifecycle.py -v
"""

import asyncio
import sys
import os
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.models.db.organization import Organization, UserRole
from app.models.org_models import OrgCreate, OrgUpdate, slugify
from app.routers import org
from app.security import limiter


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_user(role="owner", org_id=None):
    return {
        "id": str(uuid.uuid4()),
        "org_id": org_id,
        "email": "ana@example.com",
        "role": role,
    }


def make_result(value=None, values=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalars.return_value.all.return_value = values or []
    return result


def make_mock_db(results=(), get=None):
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.execute = AsyncMock(side_effect=list(results))
    db.get = AsyncMock(return_value=get)
    return db


def make_org(**overrides):
    values = {
        "id": uuid.uuid4(),
        "name": "Acme",
        "slug": "acme",
        "logo_url": None,
        "archived_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def run(coro):
    with patch.object(org.ActivityService, "log_activity", AsyncMock()) as log_activity, patch.object(
        org, "invalidate_cached_profile"
    ) as invalidate, patch.object(org, "row_to_dict", side_effect=lambda obj: vars(obj).copy()):
        result = asyncio.run(coro)
    return result, log_activity, invalidate


# ============================================================================
# SCHEMAS
# ============================================================================

class TestOrgSchemas:
    def test_slug_defaults_from_name(self):
        assert OrgCreate(name="  Acme Robotics, Inc. ").slug == "acme-robotics-inc"

    def test_explicit_slug_lowercased(self):
        assert OrgCreate(name="Acme", slug="ACME-HQ").slug == "acme-hq"

    def test_bad_slug(self):
        with pytest.raises(ValidationError):
            OrgCreate(name="Acme", slug="acme hq")

    def test_name_without_letters(self):
        with pytest.raises(ValidationError):
            OrgCreate(name="!!!")

    def test_slugify(self):
        assert slugify("R&D -- Lab") == "r-d-lab"

    def test_blank_logo_clears(self):
        assert OrgUpdate(logo_url="  ").logo_url is None


# ============================================================================
# CREATE
# ============================================================================

class TestCreateOrg:
    def test_caller_becomes_owner(self):
        user = make_user()
        profile = SimpleNamespace(id=uuid.UUID(user["id"]), org_id=None)
        db = make_mock_db(results=[make_result(None)], get=profile)

        result, log_activity, invalidate = run(
            org.create_org(OrgCreate(name="Acme Robotics"), db=db, user=user)
        )

        organization, role = [c.args[0] for c in db.add.call_args_list]
        assert isinstance(organization, Organization)
        assert organization.slug == "acme-robotics"
        assert profile.org_id == organization.id
        assert isinstance(role, UserRole)
        assert (role.role, role.user_id, role.org_id) == ("owner", profile.id, organization.id)
        assert result["name"] == "Acme Robotics"
        invalidate.assert_called_once_with(user["id"])
        assert log_activity.await_args.args[3] == "org_created"

    def test_already_in_an_org(self):
        db = make_mock_db()
        with pytest.raises(HTTPException) as exc_info:
            run(org.create_org(OrgCreate(name="Acme"), db=db, user=make_user(org_id=str(uuid.uuid4()))))
        assert exc_info.value.status_code == 409
        db.add.assert_not_called()

    def test_slug_taken(self):
        db = make_mock_db(results=[make_result(uuid.uuid4())])
        with pytest.raises(HTTPException) as exc_info:
            run(org.create_org(OrgCreate(name="Acme"), db=db, user=make_user()))
        assert exc_info.value.status_code == 409
        db.add.assert_not_called()


# ============================================================================
# UPDATE
# ============================================================================

class TestUpdateOrg:
    def test_admin_renames(self):
        organization = make_org()
        user = make_user("admin", org_id=str(organization.id))
        db = make_mock_db(get=organization)

        result, log_activity, _ = run(
            org.update_org(OrgUpdate(name="Acme Labs", logo_url="https://x.org/l.png"), db=db, user=user)
        )

        assert result["name"] == "Acme Labs"
        assert organization.slug == "acme"
        assert log_activity.await_args.args[3] == "org_updated"
        assert set(log_activity.await_args.kwargs["details"]["fields"]) == {"name", "logo_url"}

    def test_null_name_ignored(self):
        organization = make_org()
        db = make_mock_db(get=organization)

        _, log_activity, _ = run(
            org.update_org(OrgUpdate(name=None), db=db, user=make_user("admin", str(organization.id)))
        )

        assert organization.name == "Acme"
        log_activity.assert_not_awaited()

    def test_members_cannot_update(self):
        with pytest.raises(HTTPException) as exc_info:
            run(org.update_org(OrgUpdate(name="X"), db=make_mock_db(), user=make_user("member", str(uuid.uuid4()))))
        assert exc_info.value.status_code == 403

    def test_duplicate_slug(self):
        organization = make_org()
        db = make_mock_db(results=[make_result(uuid.uuid4())], get=organization)
        with pytest.raises(HTTPException) as exc_info:
            run(org.update_org(OrgUpdate(slug="taken"), db=db, user=make_user("owner", str(organization.id))))
        assert exc_info.value.status_code == 409
        assert organization.slug == "acme"

    def test_archived_org_not_found(self):
        organization = make_org(archived_at="2026-01-01")
        with pytest.raises(HTTPException) as exc_info:
            run(org.update_org(OrgUpdate(name="X"), db=make_mock_db(get=organization), user=make_user("owner", str(organization.id))))
        assert exc_info.value.status_code == 404


# ============================================================================
# ARCHIVE
# ============================================================================

class TestArchiveOrg:
    def _archive(self, user, db):
        with patch.object(limiter, "enabled", False), patch.object(org, "log_security_event") as security:
            result, log_activity, invalidate = run(org.archive_org(request=MagicMock(), db=db, user=user))
        return result, log_activity, invalidate, security

    def test_owner_archives(self):
        organization = make_org()
        member_ids = [uuid.uuid4(), uuid.uuid4()]
        db = make_mock_db(
            results=[make_result(values=member_ids), MagicMock(), MagicMock(), MagicMock()],
            get=organization,
        )

        result, log_activity, invalidate, _ = self._archive(make_user("owner", str(organization.id)), db)

        assert organization.archived_at is not None
        assert result["members_removed"] == 2
        # profile detach, role delete, invite delete
        assert db.execute.await_count == 4
        assert {c.args[0] for c in invalidate.call_args_list} == {str(m) for m in member_ids}
        assert log_activity.await_args.args[3] == "org_archived"

    def test_admin_cannot_archive(self):
        organization = make_org()
        db = make_mock_db(get=organization)
        with pytest.raises(HTTPException) as exc_info:
            self._archive(make_user("admin", str(organization.id)), db)
        assert exc_info.value.status_code == 403
        assert organization.archived_at is None
        db.execute.assert_not_awaited()
