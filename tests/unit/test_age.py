"""Tests for age classification."""

from datetime import date

import pytest

from familyload.core.age import calculate_age, calculate_age_in_months, classify_age, get_age_group
from familyload.domain.child import AgeGroup


REFERENCE = date(2026, 3, 16)


@pytest.mark.unit
class TestCalculateAge:
    """Tests for calculate_age and calculate_age_in_months."""

    def test_exact_birthday(self):
        assert calculate_age(date(2023, 3, 16), REFERENCE) == 3

    def test_day_before_birthday(self):
        assert calculate_age(date(2023, 3, 17), REFERENCE) == 2

    def test_leap_day_birthday(self):
        assert calculate_age(date(2024, 2, 29), date(2025, 2, 28)) == 0
        assert calculate_age(date(2024, 2, 29), date(2025, 3, 1)) == 1

    def test_future_birthdate_is_zero(self):
        assert calculate_age(date(2027, 1, 1), REFERENCE) == 0
        assert calculate_age_in_months(date(2027, 1, 1), REFERENCE) == 0

    def test_whole_months(self):
        assert calculate_age_in_months(date(2026, 1, 16), REFERENCE) == 2

    def test_partial_month_is_floored(self):
        assert calculate_age_in_months(date(2026, 1, 17), REFERENCE) == 1

    def test_months_across_years(self):
        assert calculate_age_in_months(date(2024, 12, 1), REFERENCE) == 15


@pytest.mark.unit
class TestAgeGroups:
    """Tests for age group boundaries."""

    @pytest.mark.parametrize(
        ("age", "group"),
        [
            (0, AgeGroup.INFANT),
            (2, AgeGroup.INFANT),
            (3, AgeGroup.PRESCHOOL),
            (6, AgeGroup.PRIMARY),
            (10, AgeGroup.PRIMARY),
            (11, AgeGroup.MIDDLE_SCHOOL),
            (15, AgeGroup.HIGH_SCHOOL),
            (18, AgeGroup.HIGH_SCHOOL),
        ],
    )
    def test_boundaries(self, age, group):
        assert get_age_group(age) == group

    def test_third_birthday_is_preschool(self):
        child_age = classify_age(date(2023, 3, 16), REFERENCE)
        assert child_age.years == 3
        assert child_age.months == 36
        assert child_age.age_group == "3-6"

    def test_day_before_third_birthday_is_infant(self):
        assert classify_age(date(2023, 3, 17), REFERENCE).age_group == "0-3"
