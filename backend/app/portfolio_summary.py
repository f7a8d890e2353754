"""
Portfolio Summary

Rolls a portfolio's programs, projects, tasks and milestones up into the
numbers shown on the portfolio page:

- counts (active programs and projects, overdue work, milestones met)
- velocity, normalized as the share of tasks completed across projects
- budget variance per program (budget vs. its projects' actual cost) and per
  project (allocated budget vs. actual cost)
- an overall health flag

Inputs are plain dicts (``row_to_dict`` output); the caller scopes them to
the portfolio.
"""

from collections import defaultdict
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from app.allocation import round_half_up
from app.helpers.date_utils import parse_date
from app.workflow import is_task_done

AT_RISK_SPEND_RATIO = 0.9

HEALTH_ON_TRACK = "on_track"
HEALTH_AT_RISK = "at_risk"
HEALTH_OFF_TRACK = "off_track"


def _amount(value: Any) -> float:
    return float(value) if value is not None else 0.0


def _percent(part: float, whole: float) -> int:
    return int(round_half_up(part / whole * 100)) if whole > 0 else 0


def budget_status(budget: float, actual: float) -> str:
    """``over`` past the budget, ``at-risk`` from 90% of it, else ``under``."""
    if actual > budget:
        return "over"
    if actual >= budget * AT_RISK_SPEND_RATIO:
        return "at-risk"
    return "under"


def budget_variance(budget: Any, actual: Any) -> Dict[str, Any]:
    """Variance is ``budget - actual``; the percentage is overspend relative to budget."""
    budget, actual = _amount(budget), _amount(actual)
    return {
        "budget": budget,
        "actual": actual,
        "variance": budget - actual,
        "variance_percent": _percent(actual - budget, budget),
        "status": budget_status(budget, actual),
    }


def task_velocity(tasks: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    tasks = list(tasks)
    completed = sum(1 for t in tasks if is_task_done(t.get("status")))
    return {
        "total_tasks": len(tasks),
        "completed_tasks": completed,
        "completion_rate": _percent(completed, len(tasks)),
    }


def _is_past(value: Any, today: date) -> bool:
    parsed = parse_date(value)
    return parsed is not None and parsed < today


def _milestone_met(milestone: Dict[str, Any], tasks: List[Dict[str, Any]]) -> bool:
    if milestone.get("completed"):
        return True
    return bool(tasks) and all(is_task_done(t.get("status")) for t in tasks)


def summarize_portfolio(
    programs: List[Dict[str, Any]],
    projects: List[Dict[str, Any]],
    tasks: List[Dict[str, Any]],
    milestones: Optional[List[Dict[str, Any]]] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    today = today or date.today()
    milestones = milestones or []

    tasks_by_milestone = defaultdict(list)
    for task in tasks:
        if task.get("milestone_id"):
            tasks_by_milestone[str(task["milestone_id"])].append(task)

    overdue_tasks = sum(
        1 for t in tasks if _is_past(t.get("due_date"), today) and not is_task_done(t.get("status"))
    )
    overdue_projects = sum(
        1 for p in projects if _is_past(p.get("end_date"), today) and p.get("status") != "completed"
    )
    milestones_met = 0
    overdue_milestones = 0
    for milestone in milestones:
        met = _milestone_met(milestone, tasks_by_milestone.get(str(milestone.get("id")), []))
        milestones_met += met
        if not met and _is_past(milestone.get("due_date"), today):
            overdue_milestones += 1

    # program actual cost is what its projects have spent
    actual_by_program = defaultdict(float)
    for project in projects:
        if project.get("program_id"):
            actual_by_program[str(project["program_id"])] += _amount(project.get("actual_cost"))

    program_budgets = []
    for program in programs:
        entry = budget_variance(program.get("budget"), actual_by_program.get(str(program.get("id")), 0))
        if entry["budget"] > 0 or entry["actual"] > 0:
            program_budgets.append({"id": str(program.get("id")), "name": program.get("name"), **entry})

    project_budgets = []
    for project in projects:
        entry = budget_variance(project.get("allocated_budget"), project.get("actual_cost"))
        if entry["budget"] > 0 or entry["actual"] > 0:
            project_budgets.append({"id": str(project.get("id")), "name": project.get("name"), **entry})

    total_budget = sum(_amount(p.get("budget")) for p in programs)
    total_program_actual = sum(e["actual"] for e in program_budgets)
    programs_over = sum(1 for e in program_budgets if e["budget"] > 0 and e["status"] == "over")
    projects_over = sum(1 for e in project_budgets if e["budget"] > 0 and e["status"] == "over")
    any_budget_at_risk = any(
        e["budget"] > 0 and e["status"] == "at-risk" for e in program_budgets + project_budgets
    )

    if programs_over or projects_over or overdue_projects:
        health = HEALTH_OFF_TRACK
    elif overdue_tasks or overdue_milestones or any_budget_at_risk:
        health = HEALTH_AT_RISK
    else:
        health = HEALTH_ON_TRACK

    avg_progress = (
        int(round_half_up(sum(p.get("progress") or 0 for p in projects) / len(projects)))
        if projects
        else 0
    )

    return {
        "total_programs": len(programs),
        "active_programs": sum(1 for p in programs if p.get("status") == "active"),
        "total_projects": len(projects),
        "active_projects": sum(1 for p in projects if p.get("status") == "active"),
        "avg_progress": avg_progress,
        "velocity": task_velocity(tasks),
        "overdue_tasks": overdue_tasks,
        "overdue_projects": overdue_projects,
        "total_milestones": len(milestones),
        "completed_milestones": milestones_met,
        "overdue_milestones": overdue_milestones,
        "budget": {
            "total_budget": total_budget,
            "total_actual": total_program_actual,
            "project_allocated": sum(_amount(p.get("allocated_budget")) for p in projects),
            "project_actual": sum(_amount(p.get("actual_cost")) for p in projects),
            "utilization": _percent(total_program_actual, total_budget),
            "programs_over_budget": programs_over,
            "projects_over_budget": projects_over,
            "programs": program_budgets,
            "projects": project_budgets,
        },
        "health": health,
    }
