"""Household member and exclusion domain models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class MemberRole(StrEnum):
    """Role of an adult in the household."""

    PARENT = "parent"
    CO_PARENT = "co_parent"
    GUARDIAN = "guardian"


class HouseholdMember(BaseModel):
    """Adult member who can hold tasks."""

    id: str = Field(..., description="Membership record ID")
    household_id: str = Field(..., description="Owning household ID")
    user_id: str = Field(..., description="User ID tasks are assigned to")
    display_name: str = Field(default="", description="Display name")
    role: MemberRole = Field(default=MemberRole.PARENT, description="Role in the household")
    is_active: bool = Field(default=True, description="Inactive members never receive tasks")


class MemberExclusion(BaseModel):
    """Time window during which a member receives no new assignments."""

    id: str = Field(..., description="Exclusion record ID")
    member_id: str = Field(..., description="Excluded user ID")
    household_id: str = Field(..., description="Owning household ID")
    exclude_from: datetime = Field(..., description="Start of the window (inclusive)")
    exclude_until: datetime = Field(..., description="End of the window (inclusive)")
    reason: str = Field(default="", description="Free-text reason (travel, illness, ...)")

    def covers(self, at: datetime) -> bool:
        """Return True if the window contains the instant."""
        return self.exclude_from <= at <= self.exclude_until
