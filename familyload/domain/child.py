"""Child domain models and age groups."""

from datetime import date
from enum import StrEnum

from pydantic import BaseModel, Field


class AgeGroup(StrEnum):
    """School-stage age groups used to organise the template catalogue."""

    INFANT = "0-3"
    PRESCHOOL = "3-6"
    PRIMARY = "6-11"
    MIDDLE_SCHOOL = "11-15"
    HIGH_SCHOOL = "15-18"


class Child(BaseModel):
    """Child data transfer object. Age is always derived from the birthdate."""

    id: str = Field(..., description="Unique child ID")
    household_id: str = Field(..., description="Owning household ID")
    first_name: str = Field(default="", description="First name used in generated task titles")
    birthdate: date = Field(..., description="Date of birth")
    is_active: bool = Field(default=True, description="Inactive children are ignored by generation")


class ChildAge(BaseModel):
    """Age of a child on a reference day."""

    birthdate: date
    years: int = Field(..., ge=0)
    months: int = Field(..., ge=0, description="Whole months elapsed since birth")
    age_group: AgeGroup
