"""Template catalogue service: applicability filter, milestone deadlines and household settings."""

import logging
import re
from datetime import date, datetime
from typing import Any

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError

from familyload.core import db_client
from familyload.core.config import Constants
from familyload.core.logging import span
from familyload.core.schedule_evaluator import next_occurrence, parse_schedule_rule_strict, to_day
from familyload.domain.child import ChildAge
from familyload.domain.generation import generation_key
from familyload.domain.template import TaskTemplate, TemplateCategory
from familyload.models.service_models import ApplicabilityDecision, MilestoneDecision


logger = logging.getLogger(__name__)

_MONTHS_IN_TITLE = re.compile(r"(\d{1,2})\s*(?:months?|mois)\b", re.IGNORECASE)

# Vaccine appointments announced at 16 or 18 months are scheduled at 17
_VACCINE_MONTH_ALIASES = {16: 17, 18: 17}


def guess_vaccine_months(title: str) -> int | None:
    """Infer the vaccine target month from a template title ("Vaccine at 2 months", "Vaccins 11 mois").

    Returns:
        One of the known vaccine months, or None when the title names none
    """
    for match in _MONTHS_IN_TITLE.finditer(title):
        months = int(match.group(1))
        months = _VACCINE_MONTH_ALIASES.get(months, months)
        if months in Constants.VACCINE_MONTHS:
            return months
    return None


def _days_until(deadline: date, today: date) -> int:
    return (deadline - today).days


def resolve_milestone(
    template: TaskTemplate,
    child_age: ChildAge,
    reference: date | datetime | None = None,
) -> MilestoneDecision:
    """Resolve the deadline of a one-time template for a child.

    Point milestones (``age_min == age_max``) are anchored on the birthdate:
    up to two years old the target is a month offset (vaccine months when the
    title names one, ``age * 12`` otherwise) and the milestone is eligible while
    the deadline is between 30 days ago and the template's lead time plus 30 days
    ahead. Older targets are a year offset with a fixed window of 30 days behind
    to 60 days ahead. Range milestones are eligible while the child's age is in
    range, with a soft deadline 30 days from the reference day.

    Returns:
        Decision whose deadline is None whenever the milestone must not be generated
    """
    if template.is_recurring:
        return MilestoneDecision(should_generate=False, reason="Template has a schedule rule")

    today = to_day(reference)

    if not template.is_point_milestone:
        if template.age_min <= child_age.years <= template.age_max:
            deadline = today + relativedelta(days=Constants.FLEXIBLE_MILESTONE_OFFSET_DAYS)
            return MilestoneDecision(should_generate=True, deadline=deadline)
        return MilestoneDecision(should_generate=False, reason="Age out of range")

    target_age = template.age_min
    if target_age <= Constants.MILESTONE_MONTH_CUTOFF_AGE:
        months_target = target_age * 12
        if template.is_vaccine:
            months_target = guess_vaccine_months(template.title) or months_target

        deadline = child_age.birthdate + relativedelta(months=months_target)
        days_until = _days_until(deadline, today)
        if days_until < -Constants.MILESTONE_GRACE_DAYS:
            return MilestoneDecision(should_generate=False, reason="Deadline passed more than 30 days ago")
        if days_until > template.days_before_deadline + Constants.MILESTONE_LEAD_PADDING_DAYS:
            return MilestoneDecision(should_generate=False, reason="Too far in future")
        return MilestoneDecision(should_generate=True, deadline=deadline)

    deadline = child_age.birthdate + relativedelta(years=target_age)
    days_until = _days_until(deadline, today)
    if not -Constants.MILESTONE_GRACE_DAYS <= days_until <= Constants.MILESTONE_YEAR_WINDOW_DAYS:
        return MilestoneDecision(should_generate=False, reason="Outside generation window")
    return MilestoneDecision(should_generate=True, deadline=deadline)


def template_deadline(
    template: TaskTemplate,
    child_age: ChildAge,
    reference: date | datetime | None = None,
) -> date | None:
    """Next deadline of a template for a child: schedule rule when recurring, milestone otherwise."""
    if template.is_recurring:
        deadline = next_occurrence(template.schedule_rule, reference)
        if deadline is None:
            logger.warning(
                "Template schedule rule yields no deadline",
                extra={"template_id": template.id, "schedule_rule": template.schedule_rule},
            )
        return deadline

    decision = resolve_milestone(template, child_age, reference)
    return decision.deadline if decision.should_generate else None


def should_generate(
    template: TaskTemplate,
    child_age: ChildAge,
    existing_keys: set[str] | frozenset[str],
    reference: date | datetime | None = None,
) -> ApplicabilityDecision:
    """Decide whether a template is eligible for a child on the reference day.

    Side-effect free: only reads the key set loaded at the start of a run.

    Args:
        template: Catalogue template
        child_age: Age of the child on the reference day
        existing_keys: Generation keys already present for the household
        reference: Reference day (defaults to today)

    Returns:
        Decision carrying the resolved deadline on acceptance, or the rejection reason
    """
    if child_age.years < template.age_min or child_age.years > template.age_max:
        return ApplicabilityDecision(should_generate=False, reason="Age out of range")

    if not template.is_active:
        return ApplicabilityDecision(should_generate=False, reason="Template inactive")

    if template.is_recurring:
        deadline = template_deadline(template, child_age, reference)
        if deadline is None:
            return ApplicabilityDecision(should_generate=False, reason="No deadline for schedule rule")
    else:
        milestone = resolve_milestone(template, child_age, reference)
        if not milestone.should_generate or milestone.deadline is None:
            return ApplicabilityDecision(should_generate=False, reason=milestone.reason or "No milestone deadline")
        deadline = milestone.deadline

    if generation_key(template.id, deadline) in existing_keys:
        return ApplicabilityDecision(should_generate=False, reason="Already generated", deadline=deadline)

    return ApplicabilityDecision(should_generate=True, deadline=deadline)


def _to_template(record: dict[str, Any]) -> TaskTemplate | None:
    try:
        return TaskTemplate(**record)
    except ValidationError as e:
        logger.error("Invalid template record skipped", extra={"template_id": record.get("id"), "error": str(e)})
        return None


async def get_disabled_template_ids(*, household_id: str) -> set[str]:
    """IDs of templates a household has switched off."""
    settings_records = await db_client.list_all_records(
        collection="household_template_settings",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}" && is_enabled = false',
    )
    return {record["template_id"] for record in settings_records}


async def list_household_templates(*, household_id: str, country: str | None = None) -> list[TaskTemplate]:
    """List active catalogue templates that the household has not disabled.

    Args:
        household_id: Household ID
        country: Restrict to templates of this country when given

    Returns:
        Templates ordered by age and id
    """
    with span("template_service.list_household_templates"):
        filters = ["is_active = true"]
        if country:
            filters.append(f'country = "{db_client.sanitize_param(country)}"')

        records = await db_client.list_all_records(
            collection="task_templates",
            filter_query=" && ".join(filters),
            sort="age_min",
        )
        disabled = await get_disabled_template_ids(household_id=household_id)

        templates = [
            template
            for record in records
            if record["id"] not in disabled and (template := _to_template(record)) is not None
        ]
        logger.debug(
            "Listed household templates",
            extra={"household_id": household_id, "count": len(templates), "disabled": len(disabled)},
        )
        return templates


async def set_template_enabled(*, household_id: str, template_id: str, enabled: bool) -> dict[str, Any]:
    """Enable or disable a template for one household without touching the catalogue entry.

    Raises:
        db_client.RecordNotFoundError: If the template does not exist
    """
    with span("template_service.set_template_enabled"):
        await db_client.get_record(collection="task_templates", record_id=template_id)

        existing = await db_client.get_first_record(
            collection="household_template_settings",
            filter_query=(
                f'household_id = "{db_client.sanitize_param(household_id)}" '
                f'&& template_id = "{db_client.sanitize_param(template_id)}"'
            ),
        )
        if existing:
            record = await db_client.update_record(
                collection="household_template_settings",
                record_id=existing["id"],
                data={"is_enabled": enabled},
            )
        else:
            record = await db_client.create_record(
                collection="household_template_settings",
                data={"household_id": household_id, "template_id": template_id, "is_enabled": enabled},
            )

        logger.info(
            "Template %s for household",
            "enabled" if enabled else "disabled",
            extra={"household_id": household_id, "template_id": template_id},
        )
        return record


async def create_template(
    *,
    title: str,
    category: TemplateCategory,
    age_min: int,
    age_max: int,
    weight: int = 3,
    schedule_rule: str | None = None,
    subcategory: str | None = None,
    description: str | None = None,
    days_before_deadline: int = 7,
    country: str = "FR",
) -> TaskTemplate:
    """Add a template to the catalogue.

    Raises:
        ValueError: If weight or age bounds are invalid
        InvalidScheduleRuleError: If the schedule rule cannot be evaluated
        db_client.DatabaseError: If the insert fails
    """
    with span("template_service.create_template"):
        if not 1 <= weight <= 5:
            msg = f"Template weight must be between 1 and 5, got {weight}"
            raise ValueError(msg)
        if age_min < 0 or age_min > age_max:
            msg = f"Invalid age range {age_min}-{age_max}"
            raise ValueError(msg)

        rule = schedule_rule.strip() if schedule_rule and schedule_rule.strip() else None
        if rule is not None:
            parse_schedule_rule_strict(rule)

        record = await db_client.create_record(
            collection="task_templates",
            data={
                "country": country,
                "age_min": age_min,
                "age_max": age_max,
                "category": category,
                "subcategory": subcategory,
                "title": title,
                "description": description,
                "schedule_rule": rule,
                "weight": weight,
                "days_before_deadline": days_before_deadline,
                "is_active": True,
            },
        )
        logger.info("Created template", extra={"template_id": record["id"], "title": title})
        return TaskTemplate(**record)
