"""
Unit Tests for the Masterbook Views

Tests:
- build_resource_conflicts: over-allocation detection and project scoping
- build_week_ahead: items due this week, ordering, cap and suggested focus

Usage:
    cd backend && pytest tests/test_masterbook_views.py -v
"""

import sys
import os
from datetime import date
from typing import Any, Dict

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.resource_conflicts import SUGGESTED_ACTIONS, build_resource_conflicts
from app.week_ahead import EMPTY_MESSAGE, MAX_ITEMS, build_week_ahead, get_week_window

# Wednesday; the week runs Mon 2026-03-09 .. Sun 2026-03-15
TODAY = date(2026, 3, 11)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_member(
    member_id: str,
    allocation: int,
    capacity: int = None,
    project_ids=None,
) -> Dict[str, Any]:
    """Factory function to create allocation rows as the allocation view returns them."""
    return {
        "id": member_id,
        "name": f"Member {member_id}",
        "allocation_percentage": allocation,
        "capacity_percent": capacity,
        "project_ids": project_ids or [],
    }


def make_task(task_id: str, due_date: str, status: str = "todo") -> Dict[str, Any]:
    return {
        "id": task_id,
        "title": f"Task {task_id}",
        "due_date": due_date,
        "status": status,
        "project_id": "p-1",
    }


# ============================================================================
# RESOURCE CONFLICTS
# ============================================================================

class TestResourceConflicts:
    def test_only_over_allocated_members(self):
        members = [
            make_member("a", 120, project_ids=["p-1"]),
            make_member("b", 100, project_ids=["p-1"]),
            make_member("c", 80),
        ]
        conflicts = build_resource_conflicts(members)
        assert len(conflicts) == 1
        assert conflicts[0]["member_id"] == "a"
        assert conflicts[0]["capacity"] == 100
        assert conflicts[0]["over_allocation_by"] == 20
        assert conflicts[0]["suggested_actions"] == list(SUGGESTED_ACTIONS)

    def test_custom_capacity(self):
        conflicts = build_resource_conflicts([make_member("a", 90, capacity=80)])
        assert conflicts[0]["over_allocation_by"] == 10

    def test_worst_first(self):
        members = [make_member("a", 110), make_member("b", 150), make_member("c", 130)]
        assert [c["member_id"] for c in build_resource_conflicts(members)] == ["b", "c", "a"]

    def test_project_filter(self):
        members = [
            make_member("a", 150, project_ids=["p-1", "p-2"]),
            make_member("b", 150, project_ids=["p-3"]),
        ]
        conflicts = build_resource_conflicts(members, project_ids=["p-2"])
        assert len(conflicts) == 1
        assert conflicts[0]["project_ids"] == ["p-2"]


# ============================================================================
# WEEK AHEAD
# ============================================================================

class TestWeekAhead:
    def test_window(self):
        assert get_week_window(TODAY) == (date(2026, 3, 9), date(2026, 3, 15))

    def test_collects_items_in_week(self):
        tasks = [
            make_task("t-1", "2026-03-13"),
            make_task("t-2", "2026-03-16"),
            make_task("t-3", "2026-03-10", status="done"),
            make_task("t-4", "2026-03-09"),
        ]
        milestones = [{"id": "m-1", "title": "Beta", "due_date": "2026-03-12", "project_id": "p-1"}]
        risks = [
            {"id": "r-1", "title": "Vendor", "status": "active", "due_date": "2026-03-15"},
            {"id": "r-2", "title": "Closed", "status": "closed", "due_date": "2026-03-14"},
        ]
        result = build_week_ahead(tasks, milestones, risks, today=TODAY)

        assert [i["id"] for i in result["items"]] == ["t-4", "m-1", "t-1", "r-1"]
        assert result["items"][-1]["type"] == "risk_review"
        assert result["items"][-1]["risk_id"] == "r-1"
        assert result["message"] is None

    def test_cancelled_task_not_listed(self):
        tasks = [make_task("t-1", "2026-03-12", status="cancelled"), make_task("t-2", "2026-03-12")]
        result = build_week_ahead(tasks, [], [], today=TODAY)
        assert [i["id"] for i in result["items"]] == ["t-2"]

    def test_critical_items_lead_focus(self):
        tasks = [make_task(f"t-{i}", "2026-03-1%d" % i) for i in range(0, 5)]
        result = build_week_ahead(tasks, [], [], critical_task_ids={"t-4"}, today=TODAY)
        assert [i["id"] for i in result["suggested_focus"]] == ["t-4"]

    def test_focus_falls_back_to_first_items(self):
        tasks = [make_task(f"t-{i}", "2026-03-1%d" % i) for i in range(0, 5)]
        result = build_week_ahead(tasks, [], [], today=TODAY)
        assert [i["id"] for i in result["suggested_focus"]] == ["t-0", "t-1", "t-2"]

    def test_blocked_flag(self):
        tasks = [make_task("t-1", "2026-03-10"), make_task("t-2", "2026-03-12")]
        edges = [{"predecessor_id": "t-1", "successor_id": "t-2", "type": "blocks"}]
        result = build_week_ahead(tasks, [], [], edges=edges, today=TODAY)
        flags = {i["id"]: i["is_blocked"] for i in result["items"]}
        assert flags == {"t-1": False, "t-2": True}

    def test_capped(self):
        tasks = [make_task(f"t-{i}", "2026-03-12") for i in range(20)]
        assert len(build_week_ahead(tasks, [], [], today=TODAY)["items"]) == MAX_ITEMS

    def test_empty_week(self):
        result = build_week_ahead([], [], [], today=TODAY)
        assert result["items"] == []
        assert result["message"] == EMPTY_MESSAGE
