"""Task template (catalogue) domain models."""

from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


VACCINE_SUBCATEGORIES = frozenset({"vaccine", "vaccin"})


class TemplateCategory(StrEnum):
    """Closed set of catalogue categories."""

    SCHOOL = "school"
    HEALTH = "health"
    ADMIN = "admin"
    ACTIVITIES = "activities"
    DAILY = "daily"
    SOCIAL = "social"
    LOGISTICS = "logistics"


class TaskTemplate(BaseModel):
    """Catalogue entry that generates task instances for children of a given age."""

    id: str = Field(..., description="Unique template ID")
    country: str = Field(default="FR", description="ISO 3166-1 alpha-2 country the template applies to")
    age_min: int = Field(..., ge=0, description="Minimum child age in years (inclusive)")
    age_max: int = Field(..., ge=0, description="Maximum child age in years (inclusive)")
    category: TemplateCategory = Field(..., description="Catalogue category")
    subcategory: str | None = Field(default=None, description="Optional subcategory (e.g. 'vaccine')")
    title: str = Field(..., description="Template title")
    description: str | None = Field(default=None, description="Template description")
    schedule_rule: str | None = Field(default=None, description="Recurrence rule; absent means one-time")
    weight: int = Field(default=3, ge=1, le=5, description="Load points (1-5)")
    days_before_deadline: int = Field(default=7, ge=0, description="Reminder lead time in days")
    is_active: bool = Field(default=True, description="Globally active")

    @model_validator(mode="after")
    def validate_age_bounds(self) -> "TaskTemplate":
        """Ensure the age range is not inverted."""
        if self.age_min > self.age_max:
            raise ValueError(f"age_min ({self.age_min}) cannot exceed age_max ({self.age_max})")
        return self

    @property
    def is_recurring(self) -> bool:
        """True when the template repeats on a schedule."""
        return bool(self.schedule_rule and self.schedule_rule.strip())

    @property
    def is_point_milestone(self) -> bool:
        """True for one-time templates anchored to a single age."""
        return not self.is_recurring and self.age_min == self.age_max

    @property
    def is_vaccine(self) -> bool:
        """True for health templates in a vaccine subcategory."""
        return (
            self.category == TemplateCategory.HEALTH
            and (self.subcategory or "").lower() in VACCINE_SUBCATEGORIES
        )
