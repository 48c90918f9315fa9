"""Schedule rule domain models.

A template's schedule rule is either a named macro (``yearly``, ``monthly``,
``weekly``, ``daily``) or a five-field cron-style expression. Only the
day-of-month and month fields drive deadlines; minute, hour and day-of-week
are carried for notification timing.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class ScheduleMacro(StrEnum):
    """Named recurrence boundaries."""

    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"


class MacroRule(BaseModel):
    """Recurrence expressed as a named macro."""

    model_config = ConfigDict(frozen=True)

    macro: ScheduleMacro


class FieldRule(BaseModel):
    """Recurrence expressed as cron-style fields, ``*`` meaning any."""

    model_config = ConfigDict(frozen=True)

    minute: str = Field(default="*")
    hour: str = Field(default="*")
    day_of_month: str = Field(default="*")
    month: str = Field(default="*")
    day_of_week: str = Field(default="*")


ScheduleRule = MacroRule | FieldRule
