"""
Unit Tests for Change Request Workflow

Tests:
- status transitions
- resolve_approval_status rules
- add_approval against a mocked session
- realize_risk with a generated blocker task

Usage:
    cd backend && pytest tests/test_change_requests.py -v
"""

import asyncio
import sys
import os
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.services import masterbook_service
from app.services.masterbook_service import (
    MasterbookService,
    can_transition,
    resolve_approval_status,
)

ORG_ID = str(uuid.uuid4())


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_change_request(status="pending_approval", approver_ids=None, approvals=None):
    return SimpleNamespace(
        id=uuid.uuid4(),
        org_id=uuid.UUID(ORG_ID),
        status=status,
        approver_ids=approver_ids or [],
        approvals=approvals or [],
    )


def make_mock_db():
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    return db


def approve(cr, approver_id, approved=True):
    with patch.object(masterbook_service, "get_org_row", AsyncMock(return_value=cr)):
        return asyncio.run(
            MasterbookService.add_approval(make_mock_db(), ORG_ID, cr.id, approver_id, approved)
        )


# ============================================================================
# TRANSITIONS AND RESOLUTION
# ============================================================================

class TestTransitions:
    @pytest.mark.parametrize(
        "current,target,allowed",
        [
            ("draft", "pending_approval", True),
            ("draft", "approved", False),
            ("pending_approval", "rejected", True),
            ("pending_approval", "draft", True),
            ("approved", "implemented", True),
            ("rejected", "draft", True),
            ("implemented", "draft", False),
        ],
    )
    def test_can_transition(self, current, target, allowed):
        assert can_transition(current, target) is allowed


class TestResolveApprovalStatus:
    def test_any_rejection_rejects(self):
        approvals = [
            {"approver_id": "a", "approved": True},
            {"approver_id": "b", "approved": False},
        ]
        assert resolve_approval_status(["a", "b", "c"], approvals) == "rejected"

    def test_waits_for_every_listed_approver(self):
        approvals = [{"approver_id": "a", "approved": True}]
        assert resolve_approval_status(["a", "b"], approvals) is None
        approvals.append({"approver_id": "b", "approved": True})
        assert resolve_approval_status(["a", "b"], approvals) == "approved"

    def test_no_listed_approvers(self):
        assert resolve_approval_status([], []) is None
        assert resolve_approval_status([], [{"approver_id": "x", "approved": True}]) == "approved"


# ============================================================================
# ADD APPROVAL
# ============================================================================

class TestAddApproval:
    def test_partial_approval_stays_pending(self):
        cr = make_change_request(approver_ids=["a", "b"])
        result = approve(cr, "a")
        assert result.status == "pending_approval"
        assert [a["approver_id"] for a in result.approvals] == ["a"]

    def test_last_approval_resolves(self):
        cr = make_change_request(
            approver_ids=["a", "b"], approvals=[{"approver_id": "a", "approved": True}]
        )
        assert approve(cr, "b").status == "approved"

    def test_revote_replaces_previous_entry(self):
        cr = make_change_request(
            approver_ids=["a", "b"], approvals=[{"approver_id": "a", "approved": True}]
        )
        result = approve(cr, "a", approved=False)
        assert result.status == "rejected"
        assert len(result.approvals) == 1

    def test_not_pending(self):
        with pytest.raises(HTTPException) as exc_info:
            approve(make_change_request(status="draft"), "a")
        assert exc_info.value.status_code == 409

    def test_unlisted_approver(self):
        with pytest.raises(HTTPException) as exc_info:
            approve(make_change_request(approver_ids=["a"]), "z")
        assert exc_info.value.status_code == 403


# ============================================================================
# REALIZE RISK
# ============================================================================

class TestRealizeRisk:
    def _risk(self, status="active"):
        return SimpleNamespace(
            id=uuid.uuid4(),
            org_id=uuid.UUID(ORG_ID),
            project_id=uuid.uuid4(),
            title="Vendor delay",
            description="Supplier may slip",
            mitigation_plan=None,
            status=status,
            realized_at=None,
            blocker_task_id=None,
        )

    def test_already_realized(self):
        with patch.object(masterbook_service, "get_org_row", AsyncMock(return_value=self._risk("realized"))):
            with pytest.raises(HTTPException) as exc_info:
                asyncio.run(
                    MasterbookService.realize_risk(make_mock_db(), {"org_id": ORG_ID}, uuid.uuid4())
                )
        assert exc_info.value.status_code == 409

    def test_creates_blocker_task(self):
        risk = self._risk()
        db = make_mock_db()
        with patch.object(masterbook_service, "get_org_row", AsyncMock(return_value=risk)), patch.object(
            masterbook_service, "row_to_dict", side_effect=lambda obj: {"title": obj.title}
        ):
            result = asyncio.run(
                MasterbookService.realize_risk(db, {"org_id": ORG_ID}, risk.id, create_blocker=True)
            )

        task = db.add.call_args.args[0]
        assert task.status == "blocked"
        assert task.priority == "high"
        assert task.description == "Supplier may slip"
        assert risk.status == "realized"
        assert risk.realized_at is not None
        assert result["blocker_task"] == {"title": "Risk realized: Vendor delay"}
