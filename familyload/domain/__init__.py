"""Domain models and DTOs."""

from familyload.domain.child import AgeGroup, Child, ChildAge
from familyload.domain.generation import GeneratedTaskRecord, GenerationStatus, generation_key
from familyload.domain.member import HouseholdMember, MemberExclusion, MemberRole
from familyload.domain.schedule import FieldRule, MacroRule, ScheduleMacro, ScheduleRule
from familyload.domain.task import Task, TaskPriority, TaskSource, TaskStatus
from familyload.domain.template import TaskTemplate, TemplateCategory


__all__ = [
    "AgeGroup",
    "Child",
    "ChildAge",
    "FieldRule",
    "GeneratedTaskRecord",
    "GenerationStatus",
    "HouseholdMember",
    "MacroRule",
    "MemberExclusion",
    "MemberRole",
    "ScheduleMacro",
    "ScheduleRule",
    "Task",
    "TaskPriority",
    "TaskSource",
    "TaskStatus",
    "TaskTemplate",
    "TemplateCategory",
    "generation_key",
]
