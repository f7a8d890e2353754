"""Pydantic request schemas for the portfolio → program → project hierarchy,
tasks, dependencies, milestones and schedule blocks."""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from app.critical_path import DEPENDENCY_TYPES
from app.workflow import validate_options

SCHEDULE_SOURCE_TYPES = ("manual", "task", "milestone")


class WorkflowOption(BaseModel):
    id: str
    label: Optional[str] = None
    color: str = "muted"


def _check_options(options):
    if options is None:
        return None
    errors = validate_options([o.model_dump() for o in options])
    if errors:
        raise ValueError("; ".join(errors))
    return options


# ---------------------------------------------------------------------------
# Portfolios and programs
# ---------------------------------------------------------------------------


class PortfolioCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    owner_id: Optional[UUID] = None
    status: str = "active"


class PortfolioUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    owner_id: Optional[UUID] = None
    status: Optional[str] = None


class ProgramCreate(BaseModel):
    portfolio_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    owner_id: Optional[UUID] = None
    status: str = "planning"
    budget: Optional[Decimal] = Field(None, ge=0)
    allocated_budget: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    custom_statuses: Optional[List[WorkflowOption]] = None

    @field_validator("custom_statuses")
    @classmethod
    def validate_statuses(cls, v):
        return _check_options(v)


class ProgramUpdate(BaseModel):
    portfolio_id: Optional[UUID] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    owner_id: Optional[UUID] = None
    status: Optional[str] = None
    budget: Optional[Decimal] = Field(None, ge=0)
    allocated_budget: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    custom_statuses: Optional[List[WorkflowOption]] = None

    @field_validator("custom_statuses")
    @classmethod
    def validate_statuses(cls, v):
        return _check_options(v)


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    program_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: str = "planning"
    progress: int = Field(0, ge=0, le=100)
    budget: Optional[Decimal] = Field(None, ge=0)
    allocated_budget: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    custom_statuses: Optional[List[WorkflowOption]] = None
    custom_task_statuses: Optional[List[WorkflowOption]] = None
    custom_task_priorities: Optional[List[WorkflowOption]] = None

    @field_validator("custom_statuses", "custom_task_statuses", "custom_task_priorities")
    @classmethod
    def validate_workflow(cls, v):
        return _check_options(v)


class ProjectUpdate(BaseModel):
    program_id: Optional[UUID] = None
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=5000)
    status: Optional[str] = None
    progress: Optional[int] = Field(None, ge=0, le=100)
    budget: Optional[Decimal] = Field(None, ge=0)
    allocated_budget: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    custom_statuses: Optional[List[WorkflowOption]] = None
    custom_task_statuses: Optional[List[WorkflowOption]] = None
    custom_task_priorities: Optional[List[WorkflowOption]] = None

    @field_validator("custom_statuses", "custom_task_statuses", "custom_task_priorities")
    @classmethod
    def validate_workflow(cls, v):
        return _check_options(v)


class ProjectReschedule(BaseModel):
    """Either ``offset_days`` or the drag parameters (``mouse_x`` etc.)."""

    offset_days: Optional[int] = None
    mouse_x: Optional[float] = None
    original_start_px: Optional[float] = None
    day_width_px: Optional[float] = Field(None, gt=0)
    grab_offset_px: float = 30

    @model_validator(mode="after")
    def require_offset_or_drag(self):
        drag = (self.mouse_x, self.original_start_px, self.day_width_px)
        if self.offset_days is None and any(v is None for v in drag):
            raise ValueError("Provide offset_days or mouse_x, original_start_px and day_width_px")
        return self


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    project_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[UUID] = None
    milestone_id: Optional[UUID] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[str] = None
    priority: Optional[str] = None
    assignee_id: Optional[UUID] = None
    milestone_id: Optional[UUID] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    actual_hours: Optional[float] = Field(None, ge=0)
    weight: Optional[float] = Field(None, ge=0)
    cost: Optional[Decimal] = Field(None, ge=0)
    actual_cost: Optional[Decimal] = Field(None, ge=0)


class TaskReorder(BaseModel):
    task_ids: List[UUID] = Field(..., min_length=1)
    status: Optional[str] = None


class TaskDecline(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)
    preferred_role: Optional[str] = None


class SubtaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    completed: bool = False
    position: Optional[int] = Field(None, ge=0)
    assignee_id: Optional[UUID] = None


class SubtaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    completed: Optional[bool] = None
    position: Optional[int] = Field(None, ge=0)
    assignee_id: Optional[UUID] = None


class DependencyCreate(BaseModel):
    predecessor_id: UUID
    successor_id: UUID
    type: str = "blocks"

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in DEPENDENCY_TYPES:
            raise ValueError(f"Invalid dependency type. Must be one of: {', '.join(DEPENDENCY_TYPES)}")
        return v


class CycleCheckRequest(BaseModel):
    predecessor_id: UUID
    successor_id: UUID


# ---------------------------------------------------------------------------
# Milestones and schedule blocks
# ---------------------------------------------------------------------------


class MilestoneCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    due_date: date
    project_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    completed: bool = False

    @model_validator(mode="after")
    def require_parent(self):
        if not self.project_id and not self.program_id:
            raise ValueError("A milestone needs a project_id or a program_id")
        return self


class MilestoneUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=5000)
    due_date: Optional[date] = None
    completed: Optional[bool] = None


class ScheduleBlockCreate(BaseModel):
    assignee_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    start_utc: datetime
    end_utc: datetime
    source_type: str = "manual"
    source_id: Optional[UUID] = None

    @field_validator("source_type")
    @classmethod
    def validate_source_type(cls, v):
        if v not in SCHEDULE_SOURCE_TYPES:
            raise ValueError(f"Invalid source_type. Must be one of: {', '.join(SCHEDULE_SOURCE_TYPES)}")
        return v

    @model_validator(mode="after")
    def check_range(self):
        if self.end_utc <= self.start_utc:
            raise ValueError("end_utc must be after start_utc")
        return self


class ScheduleBlockUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    start_utc: Optional[datetime] = None
    end_utc: Optional[datetime] = None
