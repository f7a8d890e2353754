"""
Unit Tests for Portfolio Summary and Stream Tokens

Tests:
- budget status thresholds and variance percentages
- normalized velocity
- portfolio roll-up: overdue work, milestones, health flag
- GET /portfolios/{id}/summary against a mocked session
- Stream token signing and POST /stream/token

Usage:
    cd backend && pytest tests/test_portfolio_summary.py -v
"""

import asyncio
import sys
import os
import uuid
from datetime import date, datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException
from jose import jwt

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.portfolio_summary import (
    HEALTH_AT_RISK,
    HEALTH_OFF_TRACK,
    HEALTH_ON_TRACK,
    budget_status,
    budget_variance,
    summarize_portfolio,
    task_velocity,
)

TODAY = date(2026, 3, 11)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_program(budget=None, status="active", **overrides):
    program = {"id": str(uuid.uuid4()), "name": "Platform", "budget": budget, "status": status}
    program.update(overrides)
    return program


def make_project(program_id=None, allocated=None, actual=None, **overrides):
    project = {
        "id": str(uuid.uuid4()),
        "name": "Apollo",
        "program_id": program_id,
        "allocated_budget": allocated,
        "actual_cost": actual,
        "status": "active",
        "progress": 0,
        "end_date": None,
    }
    project.update(overrides)
    return project


def make_task(status="todo", **overrides):
    task = {"id": str(uuid.uuid4()), "status": status, "due_date": None, "milestone_id": None}
    task.update(overrides)
    return task


# ============================================================================
# BUDGET AND VELOCITY
# ============================================================================

class TestBudget:
    @pytest.mark.parametrize(
        "budget,actual,expected",
        [(1000, 1200, "over"), (1000, 950, "at-risk"), (1000, 900, "at-risk"), (1000, 899, "under"), (1000, 0, "under")],
    )
    def test_status(self, budget, actual, expected):
        assert budget_status(budget, actual) == expected

    def test_variance(self):
        entry = budget_variance(1000, 1250)
        assert entry["variance"] == -250
        assert entry["variance_percent"] == 25
        assert entry["status"] == "over"

    def test_variance_without_budget(self):
        entry = budget_variance(None, 300)
        assert (entry["budget"], entry["variance_percent"]) == (0, 0)


class TestVelocity:
    def test_completion_rate_rounds_half_up(self):
        tasks = [make_task("done"), make_task("todo"), make_task("todo"), make_task("cancelled"),
                 make_task("todo"), make_task("todo"), make_task("todo"), make_task("todo")]
        # 1 of 8 = 12.5%
        assert task_velocity(tasks) == {"total_tasks": 8, "completed_tasks": 1, "completion_rate": 13}

    def test_completed_status_counts_as_done(self):
        assert task_velocity([make_task("completed"), make_task("todo")])["completion_rate"] == 50

    def test_no_tasks(self):
        assert task_velocity([])["completion_rate"] == 0


# ============================================================================
# ROLL-UP
# ============================================================================

class TestSummarizePortfolio:
    def test_on_track(self):
        program = make_program(budget=10000)
        project = make_project(program["id"], allocated=5000, actual=1000, progress=40)
        other = make_project(program["id"], progress=61)
        summary = summarize_portfolio([program], [project, other], [make_task("done")], today=TODAY)

        assert summary["health"] == HEALTH_ON_TRACK
        assert summary["avg_progress"] == 51
        assert summary["budget"]["total_actual"] == 1000
        assert summary["budget"]["utilization"] == 10
        # projects without an allocation or spend are left out of the variance list
        assert [p["id"] for p in summary["budget"]["projects"]] == [project["id"]]

    def test_overdue_task_is_at_risk(self):
        tasks = [make_task("todo", due_date="2026-03-01"), make_task("done", due_date="2026-03-01")]
        summary = summarize_portfolio([], [], tasks, today=TODAY)
        assert summary["overdue_tasks"] == 1
        assert summary["health"] == HEALTH_AT_RISK

    def test_over_budget_is_off_track(self):
        program = make_program(budget=1000)
        project = make_project(program["id"], allocated=800, actual=1100)
        summary = summarize_portfolio([program], [project], [], today=TODAY)
        assert summary["budget"]["programs_over_budget"] == 1
        assert summary["budget"]["projects_over_budget"] == 1
        assert summary["health"] == HEALTH_OFF_TRACK

    def test_overdue_project_is_off_track(self):
        late = make_project(end_date="2026-02-01")
        finished = make_project(end_date="2026-02-01", status="completed")
        summary = summarize_portfolio([], [late, finished], [], today=TODAY)
        assert summary["overdue_projects"] == 1
        assert summary["health"] == HEALTH_OFF_TRACK

    def test_milestones(self):
        met = {"id": "m1", "due_date": "2026-02-01", "completed": False}
        empty = {"id": "m2", "due_date": "2026-02-01", "completed": False}
        flagged = {"id": "m3", "due_date": "2026-04-01", "completed": True}
        tasks = [make_task("done", milestone_id="m1")]
        summary = summarize_portfolio([], [], tasks, [met, empty, flagged], today=TODAY)
        assert summary["completed_milestones"] == 2
        assert summary["overdue_milestones"] == 1


# ============================================================================
# SUMMARY ENDPOINT
# ============================================================================

def make_result(values):
    result = MagicMock()
    result.scalars.return_value.all.return_value = values
    return result


class TestPortfolioSummaryRouter:
    def test_rolls_up_rows(self):
        from app.routers import portfolios

        portfolio = SimpleNamespace(id=uuid.uuid4(), name="Growth")
        program = SimpleNamespace(id=uuid.uuid4(), name="Platform", budget=1000, status="active")
        project = SimpleNamespace(
            id=uuid.uuid4(), name="Apollo", program_id=program.id, allocated_budget=500,
            actual_cost=200, status="active", progress=50, end_date=None,
        )
        task = SimpleNamespace(id=uuid.uuid4(), status="done", due_date=None, milestone_id=None)
        db = MagicMock()
        db.execute = AsyncMock(
            side_effect=[make_result([program]), make_result([project]), make_result([task]), make_result([])]
        )

        with patch.object(portfolios, "get_org_row", AsyncMock(return_value=portfolio)), patch.object(
            portfolios, "row_to_dict", side_effect=lambda obj: vars(obj).copy()
        ):
            summary = asyncio.run(
                portfolios.get_portfolio_summary(portfolio.id, db=db, user={"org_id": str(uuid.uuid4())})
            )

        assert summary["name"] == "Growth"
        assert summary["velocity"]["completion_rate"] == 100
        assert summary["budget"]["total_actual"] == 200
        assert summary["health"] == "on_track"
        assert db.execute.await_count == 4

    def test_empty_portfolio(self):
        from app.routers import portfolios

        portfolio = SimpleNamespace(id=uuid.uuid4(), name="Empty")
        db = MagicMock()
        db.execute = AsyncMock(side_effect=[make_result([])])
        with patch.object(portfolios, "get_org_row", AsyncMock(return_value=portfolio)):
            summary = asyncio.run(
                portfolios.get_portfolio_summary(portfolio.id, db=db, user={"org_id": str(uuid.uuid4())})
            )
        assert summary["total_programs"] == 0
        assert summary["velocity"]["total_tasks"] == 0
        assert db.execute.await_count == 1


# ============================================================================
# STREAM TOKENS
# ============================================================================

class TestStreamToken:
    def test_signed_claims(self, monkeypatch):
        from app.services.stream_service import create_stream_token

        monkeypatch.setenv("STREAM_API_SECRET", "stream-secret")
        now = datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
        token = create_stream_token("user-1", now=now)
        claims = jwt.decode(token, "stream-secret", algorithms=["HS256"], options={"verify_exp": False})
        assert claims["user_id"] == "user-1"
        assert claims["exp"] - claims["iat"] == 24 * 3600

    def test_display_name(self):
        from app.services.stream_service import display_name

        assert display_name({"first_name": "Ana", "last_name": "Lee"}) == "Ana Lee"
        assert display_name({"first_name": "Ana", "email": "ana.lee@example.com"}) == "ana.lee"
        assert display_name({}) == "User"

    def test_endpoint_returns_credentials(self, monkeypatch):
        from app.models.notification import StreamTokenRequest
        from app.routers import stream
        from app.security import limiter

        monkeypatch.setenv("STREAM_API_SECRET", "stream-secret")
        user = {"id": "user-1", "email": "ana@example.com", "first_name": None, "last_name": None}
        with patch.object(limiter, "enabled", False):
            result = asyncio.run(
                stream.create_stream_token(MagicMock(), body=StreamTokenRequest(type="video"), user=user)
            )
        assert result["type"] == "video"
        assert result["user_name"] == "ana"
        assert jwt.decode(result["token"], "stream-secret", algorithms=["HS256"])["user_id"] == "user-1"

    def test_missing_secret(self, monkeypatch):
        from app.routers import stream
        from app.security import limiter

        monkeypatch.delenv("STREAM_API_SECRET", raising=False)
        with patch.object(limiter, "enabled", False):
            with pytest.raises(HTTPException) as exc_info:
                asyncio.run(stream.create_stream_token(MagicMock(), body=None, user={"id": "user-1"}))
        assert exc_info.value.status_code == 500

    def test_unknown_type(self):
        from pydantic import ValidationError

        from app.models.notification import StreamTokenRequest

        with pytest.raises(ValidationError):
            StreamTokenRequest(type="voice")
