"""
Task Dependency Graph Analysis

Critical path (CPM forward/backward pass), cycle detection and downstream
impact over task dependency edges.

Edges are dicts with ``predecessor_id``, ``successor_id`` and ``type``
(``blocks`` or ``relates_to``). Only ``blocks`` edges constrain scheduling;
cycle detection looks at every edge so that a loop of any kind is reported
before it is saved. Edges touching tasks outside the supplied set are
ignored.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from app.workflow import is_task_done

logger = logging.getLogger(__name__)

DEPENDENCY_TYPES = ("blocks", "relates_to")


class DependencyCycleError(ValueError):
    """Raised when the ``blocks`` graph contains a cycle."""

    def __init__(self, cycle: List[str]):
        self.cycle = cycle
        super().__init__("Circular dependency: " + " → ".join(cycle))


# ============================================================================
# GRAPH HELPERS
# ============================================================================


def _key(value: Any) -> str:
    return str(value)


def build_successor_map(
    edges: Iterable[Dict[str, Any]], blocks_only: bool = False
) -> Dict[str, List[str]]:
    successors: Dict[str, List[str]] = {}
    for edge in edges:
        if blocks_only and edge.get("type", "blocks") != "blocks":
            continue
        pred, succ = _key(edge["predecessor_id"]), _key(edge["successor_id"])
        targets = successors.setdefault(pred, [])
        if succ not in targets:
            targets.append(succ)
    return successors


def build_predecessor_map(
    edges: Iterable[Dict[str, Any]], blocks_only: bool = False
) -> Dict[str, List[str]]:
    predecessors: Dict[str, List[str]] = {}
    for edge in edges:
        if blocks_only and edge.get("type", "blocks") != "blocks":
            continue
        pred, succ = _key(edge["predecessor_id"]), _key(edge["successor_id"])
        sources = predecessors.setdefault(succ, [])
        if pred not in sources:
            sources.append(pred)
    return predecessors


def _find_cycle(task_ids: List[str], successors: Dict[str, List[str]]) -> List[str]:
    """Return the nodes of one cycle in traversal order, or [] if acyclic."""
    known = set(task_ids)
    visited: Set[str] = set()
    on_stack: Set[str] = set()
    parent: Dict[str, str] = {}

    for root in task_ids:
        if root in visited:
            continue
        # Iterative DFS: (node, iterator over successors)
        visited.add(root)
        on_stack.add(root)
        stack = [(root, iter(successors.get(root, [])))]
        while stack:
            node, children = stack[-1]
            advanced = False
            for child in children:
                if child not in known:
                    continue
                if child not in visited:
                    parent[child] = node
                    visited.add(child)
                    on_stack.add(child)
                    stack.append((child, iter(successors.get(child, []))))
                    advanced = True
                    break
                if child in on_stack:
                    cycle = [node]
                    current = node
                    while current != child:
                        current = parent[current]
                        cycle.append(current)
                    cycle.reverse()
                    return cycle
            if not advanced:
                on_stack.discard(node)
                stack.pop()
    return []


# ============================================================================
# CYCLE DETECTION
# ============================================================================


def detect_circular_dependencies(
    task_ids: Iterable[Any], edges: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Look for a dependency loop over all edge types.

    Returns:
        ``has_cycle``, ``cycle_task_ids`` (in dependency order) and
        ``suggested_alternatives``: one ``remove_edge`` suggestion per existing
        edge on the cycle.
    """
    ids = [_key(t) for t in task_ids]
    cycle = _find_cycle(ids, build_successor_map(edges))
    if not cycle:
        return {"has_cycle": False, "cycle_task_ids": [], "suggested_alternatives": []}

    existing = {(_key(e["predecessor_id"]), _key(e["successor_id"])) for e in edges}
    path = " → ".join(cycle)
    suggestions = []
    for index, pred in enumerate(cycle):
        succ = cycle[(index + 1) % len(cycle)]
        if (pred, succ) in existing:
            suggestions.append(
                {
                    "remove_edge": {"predecessor_id": pred, "successor_id": succ},
                    "reason": f"Removing this dependency breaks the cycle: {path}",
                }
            )
    return {
        "has_cycle": True,
        "cycle_task_ids": cycle,
        "suggested_alternatives": suggestions,
    }


def would_create_cycle(
    task_ids: Iterable[Any],
    edges: List[Dict[str, Any]],
    predecessor_id: Any,
    successor_id: Any,
) -> bool:
    candidate = {
        "predecessor_id": predecessor_id,
        "successor_id": successor_id,
        "type": "blocks",
    }
    ids = {_key(t) for t in task_ids} | {_key(predecessor_id), _key(successor_id)}
    return detect_circular_dependencies(ids, list(edges) + [candidate])["has_cycle"]


# ============================================================================
# CRITICAL PATH
# ============================================================================


def _duration(task: Dict[str, Any]) -> float:
    return max(1.0, float(task.get("estimated_hours") or 1))


def compute_critical_path(
    tasks: List[Dict[str, Any]], edges: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """
    Forward/backward pass over ``blocks`` edges, durations in estimated hours.

    Returns:
        ``nodes`` (per task: earliest/latest start/finish, slack, is_critical),
        ``critical_path`` (critical task ids in schedule order) and
        ``project_duration``.

    Raises:
        DependencyCycleError: the blocking graph is not a DAG.
    """
    task_map = {_key(t["id"]): t for t in tasks}
    ids = list(task_map)
    blocking = [
        e
        for e in edges
        if e.get("type", "blocks") == "blocks"
        and _key(e["predecessor_id"]) in task_map
        and _key(e["successor_id"]) in task_map
    ]
    successors = build_successor_map(blocking)
    predecessors = build_predecessor_map(blocking)

    # Kahn's algorithm for a topological order
    in_degree = {task_id: len(predecessors.get(task_id, [])) for task_id in ids}
    ready = [task_id for task_id in ids if in_degree[task_id] == 0]
    order: List[str] = []
    while ready:
        node = ready.pop(0)
        order.append(node)
        for succ in successors.get(node, []):
            in_degree[succ] -= 1
            if in_degree[succ] == 0:
                ready.append(succ)

    if len(order) != len(ids):
        remaining = [task_id for task_id in ids if task_id not in set(order)]
        raise DependencyCycleError(_find_cycle(remaining, successors) or remaining)

    durations = {task_id: _duration(task_map[task_id]) for task_id in ids}
    earliest_start: Dict[str, float] = {}
    earliest_finish: Dict[str, float] = {}
    for node in order:
        start = max((earliest_finish[p] for p in predecessors.get(node, [])), default=0.0)
        earliest_start[node] = start
        earliest_finish[node] = start + durations[node]

    project_duration = max(earliest_finish.values(), default=0.0)

    latest_start: Dict[str, float] = {}
    latest_finish: Dict[str, float] = {}
    for node in reversed(order):
        finish = min(
            (latest_start[s] for s in successors.get(node, [])), default=project_duration
        )
        latest_finish[node] = finish
        latest_start[node] = finish - durations[node]

    nodes = []
    for node in order:
        task = task_map[node]
        slack = latest_start[node] - earliest_start[node]
        nodes.append(
            {
                "task_id": node,
                "task_title": task.get("title"),
                "project_id": _key(task["project_id"]) if task.get("project_id") else None,
                "duration_hours": durations[node],
                "earliest_start": earliest_start[node],
                "earliest_finish": earliest_finish[node],
                "latest_start": latest_start[node],
                "latest_finish": latest_finish[node],
                "slack": slack,
                "is_critical": slack <= 0,
            }
        )

    critical_path = [
        n["task_id"]
        for n in sorted(nodes, key=lambda n: (n["earliest_start"], n["earliest_finish"]))
        if n["is_critical"]
    ]
    return {
        "nodes": nodes,
        "critical_path": critical_path,
        "project_duration": project_duration,
    }


def get_critical_path_task_ids(
    tasks: List[Dict[str, Any]], edges: List[Dict[str, Any]]
) -> Set[str]:
    """Critical task ids; an empty set when the graph has a cycle."""
    try:
        result = compute_critical_path(tasks, edges)
    except DependencyCycleError as exc:
        logger.warning("Skipping critical path: %s", exc)
        return set()
    return {n["task_id"] for n in result["nodes"] if n["is_critical"]}


# ============================================================================
# DOWNSTREAM IMPACT
# ============================================================================


def get_downstream_impact(
    task_id: Any,
    tasks: List[Dict[str, Any]],
    edges: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Every task reachable from ``task_id`` via ``blocks`` edges.

    Each affected task records its depth (direct successors are depth 1,
    first visit wins) and the milestone it rolls up to, if any.
    """
    task_map = {_key(t["id"]): t for t in tasks}
    successors = build_successor_map(edges, blocks_only=True)
    affected: List[Dict[str, Any]] = []
    milestone_ids: List[str] = []
    visited: Set[str] = set()

    root = _key(task_id)
    stack = [(succ, 1) for succ in reversed(successors.get(root, []))]
    while stack:
        node, depth = stack.pop()
        if node in visited or node == root:
            continue
        visited.add(node)
        task = task_map.get(node)
        if task is not None:
            milestone = task.get("milestone_id")
            milestones = [_key(milestone)] if milestone else []
            for m in milestones:
                if m not in milestone_ids:
                    milestone_ids.append(m)
            affected.append(
                {
                    "task_id": node,
                    "task_title": task.get("title"),
                    "project_id": _key(task["project_id"]) if task.get("project_id") else None,
                    "depth": depth,
                    "affected_milestone_ids": milestones,
                }
            )
        for succ in reversed(successors.get(node, [])):
            stack.append((succ, depth + 1))

    return {
        "task_id": root,
        "affected_tasks": affected,
        "affected_milestone_ids": milestone_ids,
        "total_affected": len(affected),
    }


def get_blocked_task_ids(
    tasks: List[Dict[str, Any]],
    edges: List[Dict[str, Any]],
    is_finished: Optional[Callable[[Dict[str, Any]], bool]] = None,
) -> Set[str]:
    """Unfinished tasks with at least one unfinished ``blocks`` predecessor.

    A predecessor missing from ``tasks`` (another project, or filtered out by
    the caller) counts as unfinished.
    """
    finished = is_finished or (lambda task: is_task_done(task.get("status")))
    task_map = {_key(t["id"]): t for t in tasks}
    predecessors = build_predecessor_map(edges, blocks_only=True)
    blocked: Set[str] = set()
    for task_id, task in task_map.items():
        if finished(task):
            continue
        for pred in predecessors.get(task_id, []):
            pred_task = task_map.get(pred)
            if pred_task is None or not finished(pred_task):
                blocked.add(task_id)
                break
    return blocked
