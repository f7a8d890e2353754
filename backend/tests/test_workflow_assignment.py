"""
Unit Tests for Workflow Options and Assignment Decline

Tests:
- default and custom status/priority lists
- status validation, including the reserved statuses
- custom option validation
- find_next_assignee / handle_assignment_decline / get_reassignment_options

Usage:
    cd backend && pytest tests/test_workflow_assignment.py -v
"""

import sys
import os
from typing import Any, Dict, List

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.assignment import (
    NO_ASSIGNEE_REASON,
    find_next_assignee,
    get_reassignment_options,
    handle_assignment_decline,
)
from app.workflow import (
    DEFAULT_TASK_STATUSES,
    get_priority_meta,
    get_project_workflow,
    get_status_meta,
    is_task_closed,
    is_task_done,
    is_valid_project_status,
    is_valid_task_priority,
    is_valid_task_status,
    validate_options,
)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_member(
    member_id: str,
    workload: int = None,
    availability: bool = True,
    role: str = None,
    preferred_roles: List[str] = None,
) -> Dict[str, Any]:
    """Factory function to create test team member data."""
    return {
        "id": member_id,
        "name": f"Member {member_id}",
        "workload": workload,
        "availability": availability,
        "role": role,
        "preferred_roles": preferred_roles or [],
    }


CUSTOM_STATUSES = [
    {"id": "backlog", "label": "Backlog", "color": "muted"},
    {"id": "shipped", "label": "Shipped", "color": "success"},
]


# ============================================================================
# WORKFLOW OPTIONS
# ============================================================================

class TestWorkflowOptions:
    def test_defaults_when_no_custom_lists(self):
        workflow = get_project_workflow(None)
        assert workflow["task_statuses"] == DEFAULT_TASK_STATUSES
        assert [p["id"] for p in workflow["task_priorities"]] == ["low", "medium", "high"]
        assert [s["id"] for s in workflow["statuses"]][0] == "planning"

    def test_custom_list_replaces_defaults(self):
        workflow = get_project_workflow({"custom_task_statuses": CUSTOM_STATUSES})
        assert [s["id"] for s in workflow["task_statuses"]] == ["backlog", "shipped"]

    def test_empty_custom_list_uses_defaults(self):
        workflow = get_project_workflow({"custom_task_statuses": []})
        assert workflow["task_statuses"] == DEFAULT_TASK_STATUSES

    def test_status_meta(self):
        assert get_status_meta("in-progress") == {
            "id": "in-progress",
            "label": "In Progress",
            "color": "info",
        }
        assert get_status_meta("mystery") == {"id": "mystery", "label": "mystery", "color": "muted"}
        assert get_priority_meta("high")["color"] == "destructive"


class TestStatusValidation:
    def test_default_statuses(self):
        assert is_valid_task_status("todo") is True
        assert is_valid_task_status("backlog") is False

    def test_custom_statuses(self):
        assert is_valid_task_status("backlog", CUSTOM_STATUSES) is True
        assert is_valid_task_status("todo", CUSTOM_STATUSES) is False

    def test_reserved_statuses_always_valid(self):
        assert is_valid_task_status("blocked", CUSTOM_STATUSES) is True
        assert is_valid_task_status("cancelled") is True

    def test_priorities_and_project_statuses(self):
        assert is_valid_task_priority("medium") is True
        assert is_valid_task_priority("urgent") is False
        assert is_valid_project_status("on-hold") is True
        assert is_valid_project_status("archived") is False

    def test_done_and_closed(self):
        assert is_task_done("done") and is_task_done("completed")
        assert not is_task_done("cancelled")
        assert is_task_closed("cancelled")
        assert not is_task_closed("review")


class TestValidateOptions:
    def test_valid(self):
        assert validate_options(CUSTOM_STATUSES) == []

    def test_problems_reported(self):
        errors = validate_options(
            [
                {"id": "a", "color": "muted"},
                {"id": "a", "color": "muted"},
                {"id": " ", "color": "info"},
                {"id": "b", "color": "neon"},
            ]
        )
        assert "Duplicate option id: a" in errors
        assert "Option 2 is missing an id" in errors
        assert "Invalid color for b: neon" in errors
        assert len(errors) == 3


# ============================================================================
# ASSIGNMENT DECLINE
# ============================================================================

class TestFindNextAssignee:
    def test_lowest_workload_wins(self):
        members = [make_member("a", 80), make_member("b", 20), make_member("c", 40)]
        assert find_next_assignee(members, [])["id"] == "b"

    def test_missing_workload_counts_as_fifty(self):
        members = [make_member("a", 60), make_member("b", None)]
        assert find_next_assignee(members, [])["id"] == "b"

    def test_unavailable_and_excluded_skipped(self):
        members = [
            make_member("a", 10, availability=False),
            make_member("b", 20),
            make_member("c", 30),
        ]
        assert find_next_assignee(members, ["b"])["id"] == "c"

    def test_preferred_role_beats_workload(self):
        members = [
            make_member("a", 10),
            make_member("b", 90, preferred_roles=["designer"]),
            make_member("c", 70, role="designer"),
        ]
        assert find_next_assignee(members, [], preferred_role="designer")["id"] == "c"

    def test_ties_keep_input_order(self):
        members = [make_member("a", 30), make_member("b", 30)]
        assert find_next_assignee(members, [])["id"] == "a"

    def test_no_candidates(self):
        assert find_next_assignee([make_member("a")], ["a"]) is None


class TestHandleDecline:
    def test_decliner_and_previous_decliners_excluded(self):
        members = [make_member("a", 0), make_member("b", 10), make_member("c", 50)]
        result = handle_assignment_decline("a", members, previous_decliners=["b"])
        assert result["success"] is True
        assert result["assigned_to"]["id"] == "c"

    def test_nobody_left(self):
        result = handle_assignment_decline("a", [make_member("a")])
        assert result == {"success": False, "assigned_to": None, "reason": NO_ASSIGNEE_REASON}


class TestReassignmentOptions:
    def test_sorted_and_limited(self):
        members = [make_member(str(i), workload=100 - i * 10) for i in range(8)]
        options = get_reassignment_options(members, ["7"], limit=3)
        assert [m["id"] for m in options] == ["6", "5", "4"]
