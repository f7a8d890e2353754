"""
Unit Tests for Task, Dependency and Activity Services

Tests:
- DependencyService.create_dependency: self-edge, duplicate edge, cycle report
- TaskService.create_task: defaults, Kanban position, workflow validation
- TaskService.decline_task: permission gate, reassignment, no candidates
- ActivityService.list_activity: viewer scoping and limit clamp
- POST /watched-items: watching twice returns the existing row

Usage:
    cd backend && pytest tests/test_task_services.py -v
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

from app.services import dependency_service, task_service
from app.services.activity_service import MAX_ACTIVITY_LIMIT, ActivityService
from app.services.dependency_service import DependencyService
from app.services.task_service import TaskService

ORG_ID = str(uuid.uuid4())


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_user(role="member"):
    return {"id": str(uuid.uuid4()), "org_id": ORG_ID, "role": role}


def make_result(value=None, values=None, scalar=None):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    result.scalar.return_value = scalar
    result.scalars.return_value.all.return_value = values or []
    return result


def make_mock_db(results=()):
    db = MagicMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.execute = AsyncMock(side_effect=list(results))
    return db


def make_project(**overrides):
    values = {"id": uuid.uuid4(), "custom_task_statuses": None, "custom_task_priorities": None}
    values.update(overrides)
    return SimpleNamespace(**values)


# ============================================================================
# DEPENDENCIES
# ============================================================================

class TestCreateDependency:
    def test_self_edge(self):
        task_id = uuid.uuid4()
        db = make_mock_db()
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(DependencyService.create_dependency(db, ORG_ID, task_id, task_id))
        assert exc_info.value.status_code == 400
        db.execute.assert_not_awaited()

    def test_unknown_type(self):
        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(
                DependencyService.create_dependency(
                    make_mock_db(), ORG_ID, uuid.uuid4(), uuid.uuid4(), dependency_type="waits_for"
                )
            )
        assert exc_info.value.status_code == 400

    def test_duplicate_edge(self):
        db = make_mock_db(results=[make_result(uuid.uuid4())])
        with patch.object(dependency_service, "get_org_row", AsyncMock()):
            with pytest.raises(HTTPException) as exc_info:
                asyncio.run(DependencyService.create_dependency(db, ORG_ID, uuid.uuid4(), uuid.uuid4()))
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail == "Dependency already exists"
        db.add.assert_not_called()

    def test_cycle_rejected_with_suggestion(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        existing = [{"predecessor_id": str(b), "successor_id": str(a), "type": "blocks"}]
        db = make_mock_db(results=[make_result(None)])

        with patch.object(dependency_service, "get_org_row", AsyncMock()), patch.object(
            DependencyService, "load_edges", AsyncMock(return_value=existing)
        ), patch.object(DependencyService, "_org_task_ids", AsyncMock(return_value=[str(a), str(b)])):
            with pytest.raises(HTTPException) as exc_info:
                asyncio.run(DependencyService.create_dependency(db, ORG_ID, a, b))

        detail = exc_info.value.detail
        assert exc_info.value.status_code == 409
        assert set(detail["cycle_task_ids"]) == {str(a), str(b)}
        assert {"predecessor_id": str(b), "successor_id": str(a)} in [
            s["remove_edge"] for s in detail["suggested_alternatives"]
        ]
        db.add.assert_not_called()

    def test_acyclic_edge_created(self):
        a, b = uuid.uuid4(), uuid.uuid4()
        db = make_mock_db(results=[make_result(None)])

        with patch.object(dependency_service, "get_org_row", AsyncMock()), patch.object(
            DependencyService, "load_edges", AsyncMock(return_value=[])
        ), patch.object(DependencyService, "_org_task_ids", AsyncMock(return_value=[str(a), str(b)])):
            edge = asyncio.run(DependencyService.create_dependency(db, ORG_ID, a, b))

        assert (edge.predecessor_id, edge.successor_id, edge.type) == (a, b, "blocks")
        db.add.assert_called_once_with(edge)


# ============================================================================
# TASK CREATION
# ============================================================================

class TestCreateTask:
    def _create(self, data, last_position=4):
        project = make_project()
        db = make_mock_db(results=[make_result(scalar=last_position)])
        with patch.object(task_service, "get_org_row", AsyncMock(return_value=project)), patch.object(
            task_service.ActivityService, "log_activity", AsyncMock()
        ) as log_activity:
            task = asyncio.run(TaskService.create_task(db, make_user(), {"project_id": project.id, **data}))
        return task, project, log_activity

    def test_defaults(self):
        task, project, log_activity = self._create({"title": "Draft plan"})

        assert (task.status, task.priority) == ("todo", "medium")
        assert (task.weight, task.estimated_hours, task.actual_cost) == (1, 1, 0)
        assert task.project_id == project.id
        assert task.completed_at is None
        assert log_activity.await_args.args[3] == "task_created"

    def test_appended_after_last_card(self):
        task, _, _ = self._create({"title": "Draft plan"}, last_position=4)
        assert task.position == 5

    def test_first_card_in_empty_project(self):
        task, _, _ = self._create({"title": "Draft plan"}, last_position=-1)
        assert task.position == 0

    def test_created_done_is_stamped(self):
        task, _, _ = self._create({"title": "Draft plan", "status": "done"})
        assert task.completed_at is not None

    @pytest.mark.parametrize("field,value", [("status", "someday"), ("priority", "whenever")])
    def test_invalid_workflow_value(self, field, value):
        with pytest.raises(HTTPException) as exc_info:
            self._create({"title": "Draft plan", field: value})
        assert exc_info.value.status_code == 400


# ============================================================================
# DECLINE
# ============================================================================

class TestDeclineTask:
    def _decline(self, user, task, project_role, member_id, members):
        db = make_mock_db()
        with patch.object(task_service, "get_org_row", AsyncMock(return_value=task)), patch.object(
            task_service, "get_project_role", AsyncMock(return_value=(project_role, member_id))
        ), patch.object(task_service, "load_overrides", AsyncMock(return_value={})), patch.object(
            TaskService, "_candidate_members", AsyncMock(return_value=members)
        ), patch.object(TaskService, "_notify_assignee", AsyncMock()) as notify, patch.object(
            task_service.ActivityService, "log_activity", AsyncMock()
        ) as log_activity, patch.object(
            task_service, "row_to_dict", side_effect=lambda obj: vars(obj).copy()
        ):
            result = asyncio.run(TaskService.decline_task(db, user, task.id, reason="On leave"))
        return result, notify, log_activity

    def test_assignee_hands_off(self):
        me, other = uuid.uuid4(), uuid.uuid4()
        task = SimpleNamespace(id=uuid.uuid4(), project_id=uuid.uuid4(), assignee_id=me, title="Build")
        members = [{"id": str(me), "workload": 0}, {"id": str(other), "workload": 20}]

        result, notify, log_activity = self._decline(make_user(), task, "contributor", me, members)

        assert result["success"] is True
        assert task.assignee_id == other
        assert log_activity.await_args.args[3] == "task_reassigned"
        assert log_activity.await_args.kwargs["details"]["reason"] == "On leave"
        notify.assert_awaited_once()

    def test_viewer_cannot_decline(self):
        assignee = uuid.uuid4()
        task = SimpleNamespace(id=uuid.uuid4(), project_id=uuid.uuid4(), assignee_id=assignee, title="Build")
        with pytest.raises(HTTPException) as exc_info:
            self._decline(make_user("viewer"), task, "viewer", None, [])
        assert exc_info.value.status_code == 403
        assert task.assignee_id == assignee

    def test_no_one_available(self):
        me = uuid.uuid4()
        task = SimpleNamespace(id=uuid.uuid4(), project_id=uuid.uuid4(), assignee_id=me, title="Build")
        members = [{"id": str(me)}, {"id": str(uuid.uuid4()), "availability": False}]

        result, notify, _ = self._decline(make_user(), task, "contributor", me, members)

        assert result["success"] is False
        assert task.assignee_id == me
        notify.assert_not_awaited()

    def test_unassigned_task(self):
        task = SimpleNamespace(id=uuid.uuid4(), project_id=uuid.uuid4(), assignee_id=None, title="Build")
        with pytest.raises(HTTPException) as exc_info:
            self._decline(make_user(), task, "contributor", None, [])
        assert exc_info.value.status_code == 400


# ============================================================================
# ACTIVITY AND WATCHED ITEMS
# ============================================================================

class TestListActivity:
    def _statement(self, caller, **kwargs):
        db = make_mock_db(results=[make_result(values=[])])
        asyncio.run(ActivityService.list_activity(db, ORG_ID, caller, **kwargs))
        return db.execute.await_args.args[0]

    def test_viewer_sees_own_entries(self):
        statement = self._statement(make_user("viewer"), user_id=uuid.uuid4())
        assert "activity_logs.user_id" in str(statement.whereclause)

    def test_member_sees_everyone(self):
        statement = self._statement(make_user("member"))
        assert "activity_logs.user_id" not in str(statement.whereclause)

    def test_limit_clamped(self):
        assert self._statement(make_user(), limit=5000)._limit == MAX_ACTIVITY_LIMIT
        assert self._statement(make_user(), limit=0)._limit == 1


class TestWatchItem:
    def test_watching_twice_returns_existing(self):
        from app.models.org_models import WatchItemCreate
        from app.routers import activity

        existing = SimpleNamespace(id=uuid.uuid4(), item_type="task")
        db = make_mock_db(results=[make_result(existing)])
        body = WatchItemCreate(item_id=uuid.uuid4(), item_type="task")

        with patch.object(activity, "row_to_dict", side_effect=lambda obj: vars(obj).copy()):
            result = asyncio.run(activity.watch_item(body, db=db, user=make_user()))

        assert result["id"] == existing.id
        db.add.assert_not_called()

    def test_first_watch_adds_row(self):
        from app.models.org_models import WatchItemCreate
        from app.routers import activity

        db = make_mock_db(results=[make_result(None)])
        body = WatchItemCreate(item_id=uuid.uuid4(), item_type="project", item_name="Apollo")

        with patch.object(activity, "row_to_dict", side_effect=lambda obj: {"item_id": obj.item_id}):
            result = asyncio.run(activity.watch_item(body, db=db, user=make_user()))

        assert result["item_id"] == body.item_id
        db.add.assert_called_once()
