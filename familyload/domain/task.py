"""Task domain models and enums."""

from datetime import date, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    """Task lifecycle status. Tasks are never deleted, only transitioned."""

    PENDING = "pending"
    DONE = "done"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


class TaskSource(StrEnum):
    """Where a task came from."""

    MANUAL = "manual"
    AUTO = "auto"
    TEMPLATE = "template"


class TaskPriority(StrEnum):
    """Task priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID")
    household_id: str = Field(..., description="Owning household ID")
    title: str = Field(..., description="Task title")
    description: str | None = Field(default=None, description="Task description")
    child_id: str | None = Field(default=None, description="Child the task concerns")
    category_id: str | None = Field(default=None, description="Category code")
    template_id: str | None = Field(default=None, description="Template the task was created from")
    assigned_to: str | None = Field(default=None, description="Assigned member user ID")
    created_by: str | None = Field(default=None, description="User who created the task")
    deadline: date | None = Field(default=None, description="Due date")
    completed_at: datetime | None = Field(default=None, description="Completion instant")
    weight: int = Field(default=3, ge=1, le=5, description="Load points (1-5)")
    priority: TaskPriority = Field(default=TaskPriority.NORMAL, description="Priority")
    status: TaskStatus = Field(default=TaskStatus.PENDING, description="Lifecycle status")
    source: TaskSource = Field(default=TaskSource.MANUAL, description="Origin of the task")
    created: datetime | None = Field(default=None, description="Creation timestamp")
