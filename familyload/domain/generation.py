"""Generation ledger domain models."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field


class GenerationStatus(StrEnum):
    """State of a generated task record."""

    PENDING = "pending"
    CREATED = "created"
    SKIPPED = "skipped"


class GeneratedTaskRecord(BaseModel):
    """Idempotency ledger entry: one per generation key per household."""

    id: str = Field(..., description="Unique record ID")
    template_id: str = Field(..., description="Source template ID")
    child_id: str = Field(..., description="Child the record was generated for")
    household_id: str = Field(..., description="Owning household ID")
    task_id: str | None = Field(default=None, description="Task created from this record")
    deadline: date = Field(..., description="Deadline at day granularity")
    generation_key: str = Field(..., description="Deterministic key of (template_id, deadline)")
    status: GenerationStatus = Field(default=GenerationStatus.PENDING, description="Record status")
    acknowledged: bool = Field(default=False, description="Whether a member acted on the record")


def generation_key(template_id: str, deadline: date) -> str:
    """Build the deterministic generation key for a template instance.

    The key depends only on the template and the deadline day, so re-running a
    generation for the same day can never produce a second record.
    """
    return f"{template_id}:{deadline.isoformat()}"
