"""
Unit Tests for Status Update Generation

Tests each of the six sections and the markdown rendering.

Usage:
    cd backend && pytest tests/test_status_update.py -v
"""

import sys
import os
from datetime import date

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.status_update import DEFAULT_NEXT_FOCUS, build_status_update, to_markdown

TODAY = date(2026, 3, 11)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

@pytest.fixture
def rows():
    tasks = [
        {"id": "t-1", "title": "Design", "status": "done"},
        {"id": "t-2", "title": "Build", "status": "in-progress"},
        {"id": "t-3", "title": "Test", "status": "todo"},
        {"id": "t-4", "title": "Vendor contract", "status": "blocked"},
    ]
    milestones = [
        {"id": "m-1", "title": "Beta", "due_date": "2026-04-01", "completed": False},
        {"id": "m-2", "title": "Kickoff", "due_date": "2026-03-01", "completed": False},
        {"id": "m-3", "title": "Alpha", "due_date": "2026-03-20", "completed": False},
        {"id": "m-4", "title": "Done early", "due_date": "2026-03-25", "completed": True},
    ]
    risks = [
        {"id": "r-1", "title": "Vendor delay", "severity": "high", "status": "active"},
        {"id": "r-2", "title": "Old", "severity": "low", "status": "closed"},
    ]
    change_requests = [
        {"id": "c-1", "title": "Add SSO", "type": "scope", "status": "pending_approval"},
        {"id": "c-2", "title": "Drop export", "type": "scope", "status": "approved"},
    ]
    edges = [{"predecessor_id": "t-2", "successor_id": "t-3", "type": "blocks"}]
    return tasks, milestones, risks, change_requests, edges


def _sections(update):
    return {s["id"]: s for s in update["sections"]}


# ============================================================================
# SECTIONS
# ============================================================================

class TestBuildStatusUpdate:
    def test_section_order(self, rows):
        update = build_status_update(*rows, today=TODAY)
        assert [s["id"] for s in update["sections"]] == [
            "progress",
            "milestones",
            "risks",
            "blockers",
            "scope_changes",
            "next_focus",
        ]
        assert update["generated_on"] == "2026-03-11"
        assert update["format"] == "weekly"

    def test_progress(self, rows):
        progress = _sections(build_status_update(*rows, today=TODAY))["progress"]
        assert progress["content"].startswith("Tasks: 1/4 completed (25%).")
        assert "• in-progress: 1" in progress["content"]
        assert len(progress["generated_from"]) == 4

    def test_upcoming_milestones_sorted_and_filtered(self, rows):
        milestones = _sections(build_status_update(*rows, today=TODAY))["milestones"]
        assert milestones["generated_from"] == ["m-3", "m-1"]
        assert milestones["content"].splitlines()[0] == "• Alpha – Mar 20, 2026"

    def test_only_active_risks(self, rows):
        risks = _sections(build_status_update(*rows, today=TODAY))["risks"]
        assert risks["content"] == "• Vendor delay (high) – active"

    def test_blockers_include_dependencies_and_blocked_status(self, rows):
        blockers = _sections(build_status_update(*rows, today=TODAY))["blockers"]
        assert blockers["generated_from"] == ["t-3", "t-4"]

    def test_cross_project_predecessor_is_a_blocker(self):
        tasks = [{"id": "t-2", "title": "Build", "status": "todo"}]
        edges = [{"predecessor_id": "x-9", "successor_id": "t-2", "type": "blocks"}]
        blockers = _sections(build_status_update(tasks, [], [], [], edges, today=TODAY))["blockers"]
        assert blockers["content"] == "• Build"
        assert blockers["generated_from"] == ["t-2"]

    def test_only_pending_scope_changes(self, rows):
        scope = _sections(build_status_update(*rows, today=TODAY))["scope_changes"]
        assert scope["content"] == "• Add SSO – scope"

    def test_next_focus(self, rows):
        tasks, milestones, risks, crs, edges = rows
        default = build_status_update(tasks, milestones, risks, crs, edges, "   ", today=TODAY)
        assert _sections(default)["next_focus"]["content"] == DEFAULT_NEXT_FOCUS
        custom = build_status_update(tasks, milestones, risks, crs, edges, "Ship beta", today=TODAY)
        assert _sections(custom)["next_focus"]["content"] == "Ship beta"

    def test_empty_scope_keeps_every_section(self):
        sections = _sections(build_status_update([], [], [], [], today=TODAY))
        assert sections["progress"]["content"] == "Tasks: 0/0 completed (0%)."
        assert sections["milestones"]["content"] == "No upcoming milestones."
        assert sections["risks"]["content"] == "No active risks."
        assert sections["blockers"]["content"] == "No blockers."
        assert sections["scope_changes"]["content"] == "No pending scope changes."

    def test_unknown_format(self):
        with pytest.raises(ValueError):
            build_status_update([], [], [], [], format_type="daily", today=TODAY)


# ============================================================================
# MARKDOWN
# ============================================================================

class TestMarkdown:
    def test_heading_and_sections(self, rows):
        update = build_status_update(*rows, format_type="executive", today=TODAY)
        markdown = to_markdown(update)
        lines = markdown.splitlines()
        assert lines[0] == "# Status Update – March 11, 2026"
        assert lines[2] == "_(Executive summary)_"
        assert "## Upcoming milestones" in markdown
        assert "## Next focus" in markdown
