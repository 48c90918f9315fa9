"""Age window classification for children."""

from datetime import date, datetime

from familyload.core.schedule_evaluator import to_day
from familyload.domain.child import AgeGroup, ChildAge


# Upper bounds (exclusive) of each group; anything older is HIGH_SCHOOL
_AGE_GROUP_BOUNDS: tuple[tuple[int, AgeGroup], ...] = (
    (3, AgeGroup.INFANT),
    (6, AgeGroup.PRESCHOOL),
    (11, AgeGroup.PRIMARY),
    (15, AgeGroup.MIDDLE_SCHOOL),
)


def calculate_age(birthdate: date, reference: date | datetime | None = None) -> int:
    """Age in whole years, decremented when the birthday has not come yet this year.

    Never negative.
    """
    today = to_day(reference)
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return max(0, years)


def calculate_age_in_months(birthdate: date, reference: date | datetime | None = None) -> int:
    """Whole months elapsed since birth (floor), never negative."""
    today = to_day(reference)
    months = (today.year - birthdate.year) * 12 + (today.month - birthdate.month)
    if today.day < birthdate.day:
        months -= 1
    return max(0, months)


def get_age_group(age: int) -> AgeGroup:
    """Map an age in years to its group; 15 and over (including 18) is ``15-18``."""
    for upper_bound, group in _AGE_GROUP_BOUNDS:
        if age < upper_bound:
            return group
    return AgeGroup.HIGH_SCHOOL


def classify_age(birthdate: date, reference: date | datetime | None = None) -> ChildAge:
    """Derive years, months and age group for a child on the reference day."""
    years = calculate_age(birthdate, reference)
    return ChildAge(
        birthdate=birthdate,
        years=years,
        months=calculate_age_in_months(birthdate, reference),
        age_group=get_age_group(years),
    )
