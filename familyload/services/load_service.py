"""Load balance service: weighted load per member, balance alerts and reporting summaries.

Key Concepts:
- Load: sum of task weights (1-5 points) held by a member over a rolling period.
  Done tasks count when completed within the trailing period; pending tasks
  count when their deadline lies within the period on either side of today.
- Balance: a household is balanced while no member holds more than the
  warning share of the total load.
- Reporting results are cached in a caller-owned cache when one is passed.
"""

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ValidationError

from familyload.core import db_client
from familyload.core.cache_client import InMemoryCache
from familyload.core.config import settings
from familyload.core.logging import span
from familyload.core.schedule_evaluator import to_day
from familyload.domain.member import HouseholdMember
from familyload.domain.task import Task, TaskStatus
from familyload.models.service_models import (
    AlertLevel,
    DeadlineSummary,
    HouseholdBalance,
    MemberLoad,
    RebalanceSuggestion,
)


logger = logging.getLogger(__name__)

_BALANCE_CACHE_PREFIX = "familyload:balance"
_DEADLINES_CACHE_PREFIX = "familyload:deadlines"


def counts_toward_load(task: Task, *, today: date, period_days: int) -> bool:
    """Return True if the task's weight belongs to its assignee's load for the period ending today."""
    period = timedelta(days=period_days)
    if task.status == TaskStatus.DONE:
        return task.completed_at is not None and today - period <= task.completed_at.date() <= today
    if task.status == TaskStatus.PENDING:
        return task.deadline is not None and today - period <= task.deadline <= today + period
    return False


def compute_member_loads(
    tasks: list[Task],
    member_ids: list[str],
    *,
    today: date,
    period_days: int,
) -> list[MemberLoad]:
    """Aggregate weighted load per member. Members without tasks get a zero entry.

    Tasks held by anyone outside ``member_ids`` are ignored.
    """
    loads = dict.fromkeys(member_ids, 0)
    counts = dict.fromkeys(member_ids, 0)
    for task in tasks:
        if task.assigned_to not in loads or not counts_toward_load(task, today=today, period_days=period_days):
            continue
        loads[task.assigned_to] += task.weight
        counts[task.assigned_to] += 1

    total = sum(loads.values())
    return [
        MemberLoad(
            member_id=member_id,
            total_load=loads[member_id],
            tasks_count=counts[member_id],
            percentage=round(loads[member_id] / total * 100, 1) if total else 0.0,
        )
        for member_id in member_ids
    ]


def _largest_share(loads: list[MemberLoad]) -> float:
    """Unrounded share of the most loaded member; ``percentage`` is rounded for display only."""
    total = sum(load.total_load for load in loads)
    if not total:
        return 0.0
    return max(load.total_load for load in loads) * 100 / total


def classify_balance(
    loads: list[MemberLoad],
    *,
    warning_threshold: float | None = None,
    critical_threshold: float | None = None,
) -> tuple[bool, AlertLevel]:
    """Classify a load distribution.

    Returns:
        ``(is_balanced, alert_level)``: critical above the critical share, warning
        above the warning share, balanced while the largest share is at most the warning share
    """
    warning = settings.balance_warning_threshold if warning_threshold is None else warning_threshold
    critical = settings.balance_critical_threshold if critical_threshold is None else critical_threshold

    max_percentage = _largest_share(loads)
    if max_percentage > critical:
        alert_level = AlertLevel.CRITICAL
    elif max_percentage > warning:
        alert_level = AlertLevel.WARNING
    else:
        alert_level = AlertLevel.NONE
    return max_percentage <= warning, alert_level


async def get_active_members(*, household_id: str) -> list[HouseholdMember]:
    """Active members of a household in membership order."""
    records = await db_client.list_all_records(
        collection="household_members",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}" && is_active = true',
    )
    members = []
    for record in records:
        try:
            members.append(HouseholdMember(**record))
        except ValidationError as e:
            logger.error("Invalid member record skipped", extra={"member_id": record.get("id"), "error": str(e)})
    return members


async def get_active_household_ids() -> list[str]:
    """IDs of households with at least one active member, in id order."""
    members = await db_client.list_all_records(collection="household_members", filter_query="is_active = true")
    active = {member["household_id"] for member in members}
    households = await db_client.list_all_records(collection="households")
    return [household["id"] for household in households if household["id"] in active]


async def get_household_tasks(*, household_id: str, statuses: tuple[TaskStatus, ...]) -> list[Task]:
    """Tasks of a household in the given statuses, newest first."""
    status_filter = " || ".join(f'status = "{status}"' for status in statuses)
    records = await db_client.list_all_records(
        collection="tasks",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}" && ({status_filter})',
        sort="-created",
    )
    tasks = []
    for record in records:
        try:
            tasks.append(Task(**record))
        except ValidationError as e:
            logger.error("Invalid task record skipped", extra={"task_id": record.get("id"), "error": str(e)})
    return tasks


async def load_by_member(
    *,
    household_id: str,
    period_days: int | None = None,
    reference: date | datetime | None = None,
    member_ids: list[str] | None = None,
) -> list[MemberLoad]:
    """Weighted load of each active member (or of ``member_ids``) over the rolling period."""
    period = settings.load_period_days if period_days is None else period_days
    with span("load_service.load_by_member"):
        if member_ids is None:
            member_ids = [member.user_id for member in await get_active_members(household_id=household_id)]
        tasks = await get_household_tasks(
            household_id=household_id,
            statuses=(TaskStatus.DONE, TaskStatus.PENDING),
        )
        return compute_member_loads(tasks, member_ids, today=to_day(reference), period_days=period)


async def _read_cached(cache: InMemoryCache | None, key: str, model: type[BaseModel]) -> Any:
    if cache is None:
        return None
    cached_value = await cache.get(key)
    if not cached_value:
        return None
    try:
        return model(**json.loads(cached_value))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.warning("Failed to deserialize cached value for %s: %s", key, e)
        return None


async def household_balance(
    *,
    household_id: str,
    period_days: int | None = None,
    reference: date | datetime | None = None,
    warning_threshold: float | None = None,
    critical_threshold: float | None = None,
    cache: InMemoryCache | None = None,
) -> HouseholdBalance:
    """Load distribution of a household with its balance state.

    Args:
        household_id: Household ID
        period_days: Rolling period, defaults to the configured load period
        reference: Reference day (defaults to today)
        warning_threshold: Overrides the configured warning share
        critical_threshold: Overrides the configured critical share
        cache: Optional cache for the reporting result

    Returns:
        HouseholdBalance with one entry per active member
    """
    period = settings.load_period_days if period_days is None else period_days
    today = to_day(reference)
    cache_key = f"{_BALANCE_CACHE_PREFIX}:{household_id}:{period}:{today.isoformat()}"
    if warning_threshold is None and critical_threshold is None:
        cached = await _read_cached(cache, cache_key, HouseholdBalance)
        if cached is not None:
            logger.debug("Returning cached balance", extra={"household_id": household_id})
            return cached
    else:
        cache = None

    with span("load_service.household_balance"):
        loads = await load_by_member(household_id=household_id, period_days=period, reference=today)
        is_balanced, alert_level = classify_balance(
            loads,
            warning_threshold=warning_threshold,
            critical_threshold=critical_threshold,
        )
        balance = HouseholdBalance(
            household_id=household_id,
            period_days=period,
            members=loads,
            total_load=sum(load.total_load for load in loads),
            is_balanced=is_balanced,
            alert_level=alert_level,
        )

        if alert_level != AlertLevel.NONE:
            logger.info(
                "Household load imbalance",
                extra={"household_id": household_id, "alert_level": alert_level},
            )

        if cache is not None:
            await cache.set(cache_key, balance.model_dump_json(), settings.summary_cache_ttl_seconds)
        return balance


async def invalidate_household_cache(cache: InMemoryCache | None, household_id: str) -> None:
    """Drop cached reporting results of a household after its tasks change."""
    if cache is None:
        return
    removed = 0
    for prefix in (_BALANCE_CACHE_PREFIX, _DEADLINES_CACHE_PREFIX):
        removed += await cache.invalidate(f"{prefix}:{household_id}:*")
    logger.debug("Invalidated %d cache entries for household %s", removed, household_id)


async def get_rebalance_suggestions(
    *,
    household_id: str,
    limit: int = 5,
    reference: date | datetime | None = None,
) -> list[RebalanceSuggestion]:
    """Suggest moving pending tasks from the most loaded member to the least loaded one.

    Only produced while the most loaded member holds more than the warning share.
    Candidates are pending tasks not yet due, heaviest first, then earliest deadline.
    """
    today = to_day(reference)
    with span("load_service.get_rebalance_suggestions"):
        loads = await load_by_member(household_id=household_id, reference=today)
        if len(loads) < 2:
            return []

        ranked = sorted(loads, key=lambda load: load.total_load, reverse=True)
        overloaded, underloaded = ranked[0], ranked[-1]
        if _largest_share(loads) <= settings.balance_warning_threshold:
            return []

        tasks = await get_household_tasks(household_id=household_id, statuses=(TaskStatus.PENDING,))
        candidates = [
            task
            for task in tasks
            if task.assigned_to == overloaded.member_id and task.deadline is not None and task.deadline >= today
        ]
        candidates.sort(key=lambda task: (-task.weight, task.deadline))

        return [
            RebalanceSuggestion(
                task_id=task.id,
                task_title=task.title,
                weight=task.weight,
                current_assignee=overloaded.member_id,
                suggested_assignee=underloaded.member_id,
                reason=f"Member holds {overloaded.percentage:.0f}% of the household load",
            )
            for task in candidates[:limit]
        ]


async def get_deadline_summary(
    *,
    household_id: str,
    reference: date | datetime | None = None,
    cache: InMemoryCache | None = None,
) -> DeadlineSummary:
    """Count pending tasks that are overdue, due today, due within 7 days and within 30 days."""
    today = to_day(reference)
    cache_key = f"{_DEADLINES_CACHE_PREFIX}:{household_id}:{today.isoformat()}"
    cached = await _read_cached(cache, cache_key, DeadlineSummary)
    if cached is not None:
        return cached

    with span("load_service.get_deadline_summary"):
        tasks = await get_household_tasks(household_id=household_id, statuses=(TaskStatus.PENDING,))
        deadlines = [task.deadline for task in tasks if task.deadline is not None]

        summary = DeadlineSummary(
            overdue=sum(1 for deadline in deadlines if deadline < today),
            today=sum(1 for deadline in deadlines if deadline == today),
            this_week=sum(1 for deadline in deadlines if today <= deadline < today + timedelta(days=7)),
            this_month=sum(1 for deadline in deadlines if today <= deadline < today + timedelta(days=30)),
        )

        if cache is not None:
            await cache.set(cache_key, summary.model_dump_json(), settings.summary_cache_ttl_seconds)
        return summary
