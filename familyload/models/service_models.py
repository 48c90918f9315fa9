"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting store
dictionaries into typed objects with validation.
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from familyload.domain.template import TaskTemplate


class ApplicabilityDecision(BaseModel):
    """Outcome of the template applicability filter for one (child, template) pair."""

    should_generate: bool
    reason: str | None = None
    deadline: date | None = None


class MilestoneDecision(BaseModel):
    """Outcome of milestone deadline resolution for a one-time template."""

    should_generate: bool
    deadline: date | None = None
    reason: str | None = None


class GenerationConfig(BaseModel):
    """Options for a generation run."""

    look_ahead_days: int | None = Field(default=None, ge=0, description="Defaults to the configured look-ahead")
    include_one_time: bool = True
    include_recurring: bool = True
    reference_date: date | None = Field(default=None, description="Defaults to today")


class GenerationDetail(BaseModel):
    """Per-pair entry in a generation run report."""

    template_id: str
    child_id: str
    success: bool
    deadline: date | None = None
    error: str | None = None


class GenerationResult(BaseModel):
    """Report of a generation run for one household."""

    household_id: str
    generated: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[GenerationDetail] = Field(default_factory=list)


class GenerationSummary(BaseModel):
    """Aggregate report of a generation run across households."""

    households_processed: int = 0
    total_generated: int = 0
    total_skipped: int = 0
    total_errors: int = 0
    failed_households: list[str] = Field(default_factory=list)


class UpcomingTask(BaseModel):
    """Preview of a template deadline for a child."""

    template: TaskTemplate
    deadline: date
    days_until: int
    status: Literal["upcoming", "due_soon", "overdue"]
    schedule_description: str


class MemberLoad(BaseModel):
    """Weighted load held by one member over the period."""

    member_id: str
    total_load: int
    tasks_count: int
    percentage: float


class AlertLevel(StrEnum):
    """Household balance alert level."""

    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"


class HouseholdBalance(BaseModel):
    """Load distribution of a household over a period."""

    household_id: str
    period_days: int
    members: list[MemberLoad]
    total_load: int
    is_balanced: bool
    alert_level: AlertLevel


class RebalanceSuggestion(BaseModel):
    """Suggested reassignment of a pending task."""

    task_id: str
    task_title: str
    weight: int
    current_assignee: str
    suggested_assignee: str
    reason: str


class DeadlineSummary(BaseModel):
    """Pending task counts by deadline horizon."""

    overdue: int
    today: int
    this_week: int
    this_month: int


class ExclusionErrorCode(StrEnum):
    """Validation failures returned by exclusion creation."""

    INVALID_RANGE = "ERR_INVALID_EXCLUSION_RANGE"
    OVERLAP = "ERR_EXCLUSION_OVERLAP"


class ExclusionResult(BaseModel):
    """Result of creating an exclusion window."""

    success: bool
    id: str | None = None
    error_code: ExclusionErrorCode | None = None
    error: str | None = None


class AssignmentReason(StrEnum):
    """Why an assignee was chosen."""

    ALREADY_ASSIGNED = "already_assigned"
    ONLY_MEMBER = "only_member"
    EXCLUDED = "excluded"
    ROTATION = "rotation"
    LEAST_LOADED = "least_loaded"


class AssignmentDecision(BaseModel):
    """Assignee chosen for a task. ``assigned_to`` is None only when every member is excluded."""

    assigned_to: str | None
    reason: AssignmentReason


class BatchAssignmentResult(BaseModel):
    """Report of a batch assignment over a household's unassigned tasks."""

    household_id: str
    assigned_count: int = 0
    errors: list[str] = Field(default_factory=list)
    decisions: dict[str, AssignmentDecision] = Field(default_factory=dict)


class JobRun(BaseModel):
    """Execution record of a scheduled job."""

    job_name: str
    started_at: datetime
    finished_at: datetime | None = None
    success: bool | None = None
    attempts: int = 0
    error: str | None = None
