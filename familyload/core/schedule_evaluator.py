"""Schedule rule parsing and next-occurrence evaluation for templates."""

import logging
from datetime import date, datetime, timedelta
from typing import assert_never

from croniter import croniter
from dateutil.relativedelta import relativedelta

from familyload.domain.schedule import FieldRule, MacroRule, ScheduleMacro, ScheduleRule


logger = logging.getLogger(__name__)

CRON_FIELD_COUNT = 5
MAX_DAY_OF_MONTH = 31
MAX_MONTH = 12
SUNDAY = 6  # date.weekday()


class InvalidScheduleRuleError(ValueError):
    """Raised by the strict parser when a schedule rule cannot be used."""


def to_day(reference: date | datetime | None = None) -> date:
    """Truncate a reference instant to its calendar day (defaults to today)."""
    if reference is None:
        return date.today()
    if isinstance(reference, datetime):
        return reference.date()
    return reference


def parse_schedule_rule(raw: str | None) -> ScheduleRule | None:
    """Parse a stored rule string into a ScheduleRule.

    Accepts macros with or without a leading ``@`` and five-field cron expressions.

    Returns:
        The parsed rule, or None when the rule is absent or has the wrong shape
    """
    if raw is None or not raw.strip():
        return None

    text = raw.strip()
    macro_name = text.removeprefix("@").lower()
    if macro_name in {macro.value for macro in ScheduleMacro}:
        return MacroRule(macro=ScheduleMacro(macro_name))

    parts = text.split()
    if len(parts) != CRON_FIELD_COUNT:
        return None

    minute, hour, day_of_month, month, day_of_week = parts
    return FieldRule(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month=month,
        day_of_week=day_of_week,
    )


def parse_schedule_rule_strict(raw: str) -> ScheduleRule:
    """Parse and fully validate a rule before it is stored on a template.

    Raises:
        InvalidScheduleRuleError: If the rule is malformed or its deadline fields are unusable
    """
    rule = parse_schedule_rule(raw)
    if rule is None:
        msg = f"Invalid schedule rule: {raw!r}. Use yearly, monthly, weekly, daily or a 5-field cron expression"
        raise InvalidScheduleRuleError(msg)

    if isinstance(rule, FieldRule):
        if not croniter.is_valid(raw.strip()):
            msg = f"Invalid schedule rule: {raw!r} is not a valid cron expression"
            raise InvalidScheduleRuleError(msg)
        if _parse_day(rule.day_of_month) is None or _parse_month(rule.month) is False:
            msg = f"Invalid schedule rule: {raw!r} needs a single day-of-month and month (or *)"
            raise InvalidScheduleRuleError(msg)

    return rule


def _parse_day(value: str) -> int | None:
    if value == "*":
        return 1
    if not (value.isascii() and value.isdecimal()):
        return None
    day = int(value)
    if not 1 <= day <= MAX_DAY_OF_MONTH:
        return None
    return day


def _parse_month(value: str) -> int | None | bool:
    """Return the month number, None for ``*``, or False when malformed."""
    if value == "*":
        return None
    if not (value.isascii() and value.isdecimal()):
        return False
    month = int(value)
    if not 1 <= month <= MAX_MONTH:
        return False
    return month


def _next_macro_boundary(macro: ScheduleMacro, today: date) -> date:
    match macro:
        case ScheduleMacro.YEARLY:
            return date(today.year + 1, 1, 1)
        case ScheduleMacro.MONTHLY:
            return today.replace(day=1) + relativedelta(months=1)
        case ScheduleMacro.WEEKLY:
            # "Next" Sunday: on a Sunday this still advances a full week
            return today + timedelta(days=(SUNDAY - today.weekday()) % 7 or 7)
        case ScheduleMacro.DAILY:
            return today + timedelta(days=1)
        case _:
            assert_never(macro)


def _next_field_occurrence(rule: FieldRule, today: date) -> date | None:
    day = _parse_day(rule.day_of_month)
    month = _parse_month(rule.month)
    if day is None or month is False:
        return None

    anchor = today.replace(day=1)
    if month is None:
        # Every month on this day; relativedelta clamps days past the month end
        candidate = anchor + relativedelta(day=day)
        if candidate <= today:
            candidate = anchor + relativedelta(months=1, day=day)
        return candidate

    candidate = anchor + relativedelta(month=month, day=day)
    if candidate <= today:
        candidate = anchor + relativedelta(years=1, month=month, day=day)
    return candidate


def next_occurrence(
    rule: ScheduleRule | str | None,
    reference: date | datetime | None = None,
) -> date | None:
    """Compute the next deadline of a schedule rule strictly after the reference day.

    Macros resolve to the next boundary (next Jan 1, 1st of next month, next
    Sunday, tomorrow). Field rules use only day-of-month and month: ``day=*``
    means the 1st, ``month=*`` repeats monthly, a concrete month repeats yearly.

    Args:
        rule: Parsed rule, raw rule string, or None
        reference: Reference instant, truncated to its day (defaults to today)

    Returns:
        Next occurrence date, or None when the rule is absent or malformed.
        None always means "do not generate".
    """
    parsed = parse_schedule_rule(rule) if isinstance(rule, str) or rule is None else rule
    if parsed is None:
        if rule:
            logger.warning("Unparseable schedule rule", extra={"rule": str(rule)})
        return None

    today = to_day(reference)

    if isinstance(parsed, MacroRule):
        return _next_macro_boundary(parsed.macro, today)

    occurrence = _next_field_occurrence(parsed, today)
    if occurrence is None:
        logger.warning(
            "Schedule rule has unusable day/month fields",
            extra={"day_of_month": parsed.day_of_month, "month": parsed.month},
        )
    return occurrence


def _ordinal(number: int) -> str:
    if number in (1, 21, 31):
        return f"{number}st"
    if number in (2, 22):
        return f"{number}nd"
    if number in (3, 23):
        return f"{number}rd"
    return f"{number}th"


def describe_schedule_rule(rule: ScheduleRule | str | None) -> str:
    """Convert a schedule rule to human-readable text for previews.

    Returns:
        Description such as "every Sunday", "monthly on the 15th" or "every year on 09-01"
    """
    parsed = parse_schedule_rule(rule) if isinstance(rule, str) or rule is None else rule
    if parsed is None:
        return "one-time"

    if isinstance(parsed, MacroRule):
        descriptions = {
            ScheduleMacro.YEARLY: "every year on January 1st",
            ScheduleMacro.MONTHLY: "monthly on the 1st",
            ScheduleMacro.WEEKLY: "every Sunday",
            ScheduleMacro.DAILY: "daily",
        }
        return descriptions[parsed.macro]

    day = _parse_day(parsed.day_of_month)
    month = _parse_month(parsed.month)
    if day is None or month is False:
        return f"scheduled ({parsed.minute} {parsed.hour} {parsed.day_of_month} {parsed.month} {parsed.day_of_week})"
    if month is None:
        return f"monthly on the {_ordinal(day)}"
    return f"every year on {month:02d}-{day:02d}"
