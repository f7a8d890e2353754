"""Pydantic request schemas for the masterbook (risks, change requests,
decisions, weekly prompts, insights) and allocation weights."""

from datetime import date
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.services.masterbook_service import (
    CHANGE_ITEM_TYPES,
    CHANGE_REQUEST_STATUSES,
    CHANGE_REQUEST_TYPES,
    DECISION_TYPES,
    INSIGHT_IDS,
    RISK_SEVERITIES,
    RISK_STATUSES,
)


def _one_of(value, allowed, label):
    if value is not None and value not in allowed:
        raise ValueError(f"Invalid {label}. Must be one of: {', '.join(allowed)}")
    return value


# ---------------------------------------------------------------------------
# Risks
# ---------------------------------------------------------------------------


class RiskCreate(BaseModel):
    project_id: UUID
    program_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=10000)
    status: str = "identified"
    severity: str = "medium"
    owner_id: Optional[UUID] = None
    due_date: Optional[date] = None
    mitigation_plan: Optional[str] = Field(None, max_length=10000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _one_of(v, RISK_STATUSES, "risk status")

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v):
        return _one_of(v, RISK_SEVERITIES, "severity")


class RiskUpdate(BaseModel):
    project_id: Optional[UUID] = None
    program_id: Optional[UUID] = None
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    status: Optional[str] = None
    severity: Optional[str] = None
    owner_id: Optional[UUID] = None
    due_date: Optional[date] = None
    mitigation_plan: Optional[str] = Field(None, max_length=10000)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _one_of(v, RISK_STATUSES, "risk status")

    @field_validator("severity")
    @classmethod
    def validate_severity(cls, v):
        return _one_of(v, RISK_SEVERITIES, "severity")


class RiskRealize(BaseModel):
    blocker_task_id: Optional[UUID] = None
    create_blocker: bool = False


# ---------------------------------------------------------------------------
# Change requests
# ---------------------------------------------------------------------------


class ChangeRequestItem(BaseModel):
    type: str
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    existing_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _one_of(v, CHANGE_ITEM_TYPES, "item type")


class ImpactSummary(BaseModel):
    schedule_impact_days: Optional[int] = None
    affected_milestone_ids: List[str] = []
    affected_task_ids: List[str] = []
    dependency_impact: Optional[str] = None


class ChangeRequestCreate(BaseModel):
    project_id: UUID
    program_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=10000)
    type: str
    status: str = "draft"
    items: List[ChangeRequestItem] = []
    impact_summary: Optional[ImpactSummary] = None
    approver_ids: List[UUID] = []

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _one_of(v, CHANGE_REQUEST_TYPES, "change request type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _one_of(v, CHANGE_REQUEST_STATUSES, "status")


class ChangeRequestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = Field(None, max_length=10000)
    type: Optional[str] = None
    status: Optional[str] = None
    items: Optional[List[ChangeRequestItem]] = None
    impact_summary: Optional[ImpactSummary] = None
    approver_ids: Optional[List[UUID]] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _one_of(v, CHANGE_REQUEST_TYPES, "change request type")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        return _one_of(v, CHANGE_REQUEST_STATUSES, "status")


class ApprovalCreate(BaseModel):
    approved: bool
    comment: Optional[str] = Field(None, max_length=5000)


# ---------------------------------------------------------------------------
# Decisions, prompts, insights
# ---------------------------------------------------------------------------


class DecisionCreate(BaseModel):
    portfolio_id: UUID
    type: str
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=10000)
    outcome: str = Field("", max_length=10000)
    project_ids: List[UUID] = []
    program_ids: List[UUID] = []
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        return _one_of(v, DECISION_TYPES, "decision type")


class WeeklyPromptCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field("", max_length=5000)
    action_label: Optional[str] = Field(None, max_length=100)
    action_href: Optional[str] = Field(None, max_length=1000)


class InsightDismiss(BaseModel):
    insight_id: str

    @field_validator("insight_id")
    @classmethod
    def validate_insight(cls, v):
        return _one_of(v, INSIGHT_IDS, "insight id")


class AllocationWeightsUpdate(BaseModel):
    priority: Optional[Dict[str, float]] = None
    urgency: Optional[Dict[str, float]] = None
    status: Optional[Dict[str, float]] = None
