"""
Unit Tests for Task Dependency Graph Analysis

Tests:
- compute_critical_path: forward/backward pass, slack, critical chain
- detect_circular_dependencies / would_create_cycle
- get_downstream_impact: reachable tasks, depth and milestones
- get_blocked_task_ids: unfinished blocking predecessors

Usage:
    cd backend && pytest tests/test_critical_path.py -v
"""

import sys
import os
from typing import Any, Dict

import pytest

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.critical_path import (
    DependencyCycleError,
    compute_critical_path,
    detect_circular_dependencies,
    get_blocked_task_ids,
    get_critical_path_task_ids,
    get_downstream_impact,
    would_create_cycle,
)


# ============================================================================
# FIXTURES AND TEST DATA FACTORIES
# ============================================================================

def make_task(
    task_id: str,
    hours: float = 1,
    status: str = "todo",
    milestone_id: str = None,
    project_id: str = "p-1",
) -> Dict[str, Any]:
    """Factory function to create test task data."""
    return {
        "id": task_id,
        "title": f"Task {task_id}",
        "estimated_hours": hours,
        "status": status,
        "milestone_id": milestone_id,
        "project_id": project_id,
    }


def edge(pred: str, succ: str, type_: str = "blocks") -> Dict[str, Any]:
    return {"predecessor_id": pred, "successor_id": succ, "type": type_}


@pytest.fixture
def diamond():
    """A(4h) -> B(2h) -> D(3h) and A -> C(1h) -> D."""
    tasks = [make_task("A", 4), make_task("B", 2), make_task("C", 1), make_task("D", 3)]
    edges = [edge("A", "B"), edge("A", "C"), edge("B", "D"), edge("C", "D")]
    return tasks, edges


# ============================================================================
# CRITICAL PATH
# ============================================================================

class TestCriticalPath:
    def test_diamond_schedule(self, diamond):
        tasks, edges = diamond
        result = compute_critical_path(tasks, edges)
        nodes = {n["task_id"]: n for n in result["nodes"]}

        assert result["project_duration"] == 9.0
        assert nodes["B"]["earliest_start"] == 4.0
        assert nodes["D"]["earliest_start"] == 6.0
        assert nodes["C"]["slack"] == 1.0
        assert nodes["C"]["is_critical"] is False
        assert result["critical_path"] == ["A", "B", "D"]

    def test_independent_tasks(self):
        result = compute_critical_path([make_task("A", 5), make_task("B", 2)], [])
        nodes = {n["task_id"]: n for n in result["nodes"]}
        assert result["project_duration"] == 5.0
        assert nodes["A"]["is_critical"] is True
        assert nodes["B"]["slack"] == 3.0

    def test_minimum_duration_is_one_hour(self):
        result = compute_critical_path([make_task("A", 0.25)], [])
        assert result["nodes"][0]["duration_hours"] == 1.0

    def test_relates_to_edges_do_not_constrain(self):
        tasks = [make_task("A", 2), make_task("B", 2)]
        result = compute_critical_path(tasks, [edge("A", "B", "relates_to")])
        assert result["project_duration"] == 2.0

    def test_edges_outside_task_set_ignored(self):
        result = compute_critical_path([make_task("A", 2)], [edge("X", "A")])
        assert result["critical_path"] == ["A"]

    def test_cycle_raises(self):
        tasks = [make_task("A"), make_task("B")]
        with pytest.raises(DependencyCycleError) as exc_info:
            compute_critical_path(tasks, [edge("A", "B"), edge("B", "A")])
        assert set(exc_info.value.cycle) == {"A", "B"}

    def test_task_ids_helper_swallows_cycle(self):
        tasks = [make_task("A"), make_task("B")]
        assert get_critical_path_task_ids(tasks, [edge("A", "B"), edge("B", "A")]) == set()

    def test_task_ids_helper(self, diamond):
        tasks, edges = diamond
        assert get_critical_path_task_ids(tasks, edges) == {"A", "B", "D"}


# ============================================================================
# CYCLE DETECTION
# ============================================================================

class TestCycleDetection:
    def test_acyclic(self, diamond):
        _, edges = diamond
        result = detect_circular_dependencies(["A", "B", "C", "D"], edges)
        assert result == {"has_cycle": False, "cycle_task_ids": [], "suggested_alternatives": []}

    def test_three_node_cycle(self):
        edges = [edge("A", "B"), edge("B", "C"), edge("C", "A")]
        result = detect_circular_dependencies(["A", "B", "C"], edges)
        assert result["has_cycle"] is True
        assert result["cycle_task_ids"] == ["A", "B", "C"]
        removals = [s["remove_edge"] for s in result["suggested_alternatives"]]
        assert {"predecessor_id": "C", "successor_id": "A"} in removals
        assert len(removals) == 3

    def test_relates_to_edges_count(self):
        edges = [edge("A", "B"), edge("B", "A", "relates_to")]
        assert detect_circular_dependencies(["A", "B"], edges)["has_cycle"] is True

    def test_would_create_cycle(self):
        edges = [edge("A", "B"), edge("B", "C")]
        assert would_create_cycle(["A", "B", "C"], edges, "C", "A") is True
        assert would_create_cycle(["A", "B", "C"], edges, "A", "C") is False


# ============================================================================
# DOWNSTREAM IMPACT
# ============================================================================

class TestDownstreamImpact:
    def test_chain_with_milestone(self):
        tasks = [
            make_task("A"),
            make_task("B"),
            make_task("C", milestone_id="m-1"),
            make_task("D"),
        ]
        edges = [edge("A", "B"), edge("B", "C"), edge("A", "D", "relates_to")]
        impact = get_downstream_impact("A", tasks, edges)

        depths = {t["task_id"]: t["depth"] for t in impact["affected_tasks"]}
        assert depths == {"B": 1, "C": 2}
        assert impact["affected_milestone_ids"] == ["m-1"]
        assert impact["total_affected"] == 2

    def test_leaf_has_no_impact(self, diamond):
        tasks, edges = diamond
        impact = get_downstream_impact("D", tasks, edges)
        assert impact["affected_tasks"] == []
        assert impact["total_affected"] == 0

    def test_shared_successor_counted_once(self, diamond):
        tasks, edges = diamond
        impact = get_downstream_impact("A", tasks, edges)
        ids = [t["task_id"] for t in impact["affected_tasks"]]
        assert sorted(ids) == ["B", "C", "D"]


# ============================================================================
# BLOCKED TASKS
# ============================================================================

class TestBlockedTasks:
    def test_unfinished_predecessor_blocks(self):
        tasks = [make_task("A"), make_task("B")]
        assert get_blocked_task_ids(tasks, [edge("A", "B")]) == {"B"}

    def test_done_predecessor_does_not_block(self):
        tasks = [make_task("A", status="done"), make_task("B")]
        assert get_blocked_task_ids(tasks, [edge("A", "B")]) == set()

    def test_finished_successor_not_reported(self):
        tasks = [make_task("A"), make_task("B", status="done")]
        assert get_blocked_task_ids(tasks, [edge("A", "B")]) == set()

    def test_relates_to_does_not_block(self):
        tasks = [make_task("A"), make_task("B")]
        assert get_blocked_task_ids(tasks, [edge("A", "B", "relates_to")]) == set()

    def test_predecessor_outside_task_list_blocks(self):
        # e.g. an unfinished task in another project
        assert get_blocked_task_ids([make_task("B")], [edge("X", "B")]) == {"B"}
