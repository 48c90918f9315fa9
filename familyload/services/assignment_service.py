"""Assignment engine: decides which member holds a task.

Decision sequence for one task:
1. Keep an existing assignee.
2. A household with a single member always assigns to that member, even while excluded.
3. Drop excluded members; nobody left means the task stays unassigned.
4. A single remaining member takes the task.
5. Near-tied loads rotate: the member after the last assignee, wrapping around.
6. Otherwise the least loaded member takes the task.

The decision itself (``choose_assignee``) is pure. Store access happens in the
async wrappers, and the batch operation carries the running load state forward
from one decision to the next instead of re-reading the store.
"""

import logging
from datetime import UTC, date, datetime

from familyload.core import db_client
from familyload.core.config import settings
from familyload.core.logging import log_with_household_context, span
from familyload.domain.member import HouseholdMember
from familyload.domain.task import Task, TaskStatus
from familyload.models.service_models import AssignmentDecision, AssignmentReason, BatchAssignmentResult
from familyload.services import exclusion_service, load_service


logger = logging.getLogger(__name__)


def rotate_if_equal(candidates: list[str], last_assigned: str | None) -> str | None:
    """Pick the member after the last assignee, wrapping around.

    Falls back to the first candidate when the last assignee is unknown or no longer a candidate.
    """
    if not candidates:
        return None
    if last_assigned not in candidates:
        return candidates[0]
    return candidates[(candidates.index(last_assigned) + 1) % len(candidates)]


def choose_assignee(
    task: Task,
    member_ids: list[str],
    *,
    excluded: set[str],
    loads: dict[str, int],
    last_assigned: str | None,
    tie_threshold: int | None = None,
) -> AssignmentDecision:
    """Decide the assignee of a task from an explicit state.

    Args:
        task: Task to assign
        member_ids: Active members in membership order
        excluded: Members excluded at the decision instant
        loads: Current period load per member
        last_assigned: Assignee of the household's most recently created assigned task
        tie_threshold: Load difference at or under which rotation applies (defaults to settings)

    Returns:
        AssignmentDecision; ``assigned_to`` is None only when no member can take the task
    """
    if task.assigned_to:
        return AssignmentDecision(assigned_to=task.assigned_to, reason=AssignmentReason.ALREADY_ASSIGNED)

    if len(member_ids) == 1:
        return AssignmentDecision(assigned_to=member_ids[0], reason=AssignmentReason.ONLY_MEMBER)

    candidates = [member_id for member_id in member_ids if member_id not in excluded]
    if not candidates:
        return AssignmentDecision(assigned_to=None, reason=AssignmentReason.EXCLUDED)
    if len(candidates) == 1:
        return AssignmentDecision(assigned_to=candidates[0], reason=AssignmentReason.ONLY_MEMBER)

    threshold = settings.rotation_tie_threshold if tie_threshold is None else tie_threshold
    candidate_loads = [loads.get(member_id, 0) for member_id in candidates]
    if max(candidate_loads) - min(candidate_loads) <= threshold:
        rotated = rotate_if_equal(candidates, last_assigned)
        if rotated is not None:
            return AssignmentDecision(assigned_to=rotated, reason=AssignmentReason.ROTATION)

    least_loaded = min(candidates, key=lambda member_id: loads.get(member_id, 0))
    return AssignmentDecision(assigned_to=least_loaded, reason=AssignmentReason.LEAST_LOADED)


async def get_last_assigned_member(*, household_id: str) -> str | None:
    """Assignee of the household's most recently created task that has one."""
    record = await db_client.get_first_record(
        collection="tasks",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}" && assigned_to != ""',
        sort="-created",
    )
    return record["assigned_to"] if record else None


async def _load_state(
    *,
    household_id: str,
    member_ids: list[str],
    at: datetime,
    period_days: int | None,
) -> tuple[set[str], dict[str, int], str | None]:
    excluded = await exclusion_service.get_excluded_member_ids(household_id=household_id, at=at)
    member_loads = await load_service.load_by_member(
        household_id=household_id,
        period_days=period_days,
        reference=at,
        member_ids=member_ids,
    )
    loads = {load.member_id: load.total_load for load in member_loads}
    last_assigned = await get_last_assigned_member(household_id=household_id)
    return excluded, loads, last_assigned


async def determine_assignment(
    *,
    task: Task,
    members: list[HouseholdMember],
    at: datetime | None = None,
    period_days: int | None = None,
    tie_threshold: int | None = None,
) -> AssignmentDecision:
    """Decide who should hold a task, reading exclusions and loads from the store.

    Args:
        task: Task to assign
        members: Household members; inactive ones are ignored
        at: Decision instant for exclusions and the load period (defaults to now)
        period_days: Load period, defaults to the configured period
        tie_threshold: Near-tie threshold, defaults to the configured threshold

    Returns:
        AssignmentDecision with the chosen member and the reason
    """
    with span("assignment_service.determine_assignment"):
        if task.assigned_to:
            return AssignmentDecision(assigned_to=task.assigned_to, reason=AssignmentReason.ALREADY_ASSIGNED)

        member_ids = [member.user_id for member in members if member.is_active]
        if not member_ids:
            return AssignmentDecision(assigned_to=None, reason=AssignmentReason.EXCLUDED)

        instant = at or datetime.now(UTC)
        excluded, loads, last_assigned = await _load_state(
            household_id=task.household_id,
            member_ids=member_ids,
            at=instant,
            period_days=period_days,
        )
        return choose_assignee(
            task,
            member_ids,
            excluded=excluded,
            loads=loads,
            last_assigned=last_assigned,
            tie_threshold=tie_threshold,
        )


async def assign_task_on_create(*, task_id: str, at: datetime | None = None) -> AssignmentDecision:
    """Assign a freshly created task when it has no assignee yet.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist
    """
    with span("assignment_service.assign_task_on_create"):
        task = Task(**await db_client.get_record(collection="tasks", record_id=task_id))
        members = await load_service.get_active_members(household_id=task.household_id)
        decision = await determine_assignment(task=task, members=members, at=at)

        if decision.reason == AssignmentReason.ALREADY_ASSIGNED:
            return decision
        if decision.assigned_to is None:
            log_with_household_context(
                logger,
                "warning",
                "Task needs manual assignment, every member is excluded",
                household_id=task.household_id,
                task_id=task_id,
            )
            return decision

        await db_client.update_record(collection="tasks", record_id=task_id, data={"assigned_to": decision.assigned_to})
        logger.info(
            "Assigned task",
            extra={"task_id": task_id, "assigned_to": decision.assigned_to, "reason": decision.reason},
        )
        return decision


async def auto_assign_unassigned_tasks(
    *,
    household_id: str,
    at: datetime | None = None,
    period_days: int | None = None,
    tie_threshold: int | None = None,
) -> BatchAssignmentResult:
    """Assign every pending unassigned task of a household, oldest first.

    Each assignment is persisted before the next decision, and the load and
    last-assignee state is updated in memory so decision N+1 sees decision N.
    Must not run concurrently for the same household.
    """
    with span("assignment_service.auto_assign_unassigned_tasks"):
        result = BatchAssignmentResult(household_id=household_id)
        members = await load_service.get_active_members(household_id=household_id)
        member_ids = [member.user_id for member in members]
        if not member_ids:
            logger.info("No active members, nothing to assign", extra={"household_id": household_id})
            return result

        instant = at or datetime.now(UTC)
        today: date = instant.date()
        period = settings.load_period_days if period_days is None else period_days
        excluded, loads, last_assigned = await _load_state(
            household_id=household_id,
            member_ids=member_ids,
            at=instant,
            period_days=period,
        )

        pending = await load_service.get_household_tasks(household_id=household_id, statuses=(TaskStatus.PENDING,))
        # Newest first from the store; walk in creation order
        unassigned = [task for task in reversed(pending) if not task.assigned_to]

        for task in unassigned:
            decision = choose_assignee(
                task,
                member_ids,
                excluded=excluded,
                loads=loads,
                last_assigned=last_assigned,
                tie_threshold=tie_threshold,
            )
            result.decisions[task.id] = decision
            if decision.assigned_to is None:
                continue

            try:
                await db_client.update_record(
                    collection="tasks",
                    record_id=task.id,
                    data={"assigned_to": decision.assigned_to},
                )
            except Exception as e:
                logger.exception("Failed to assign task", extra={"task_id": task.id, "household_id": household_id})
                result.errors.append(f"{task.id}: {e}")
                continue

            assigned = task.model_copy(update={"assigned_to": decision.assigned_to})
            if load_service.counts_toward_load(assigned, today=today, period_days=period):
                loads[decision.assigned_to] = loads.get(decision.assigned_to, 0) + assigned.weight
            last_assigned = decision.assigned_to
            result.assigned_count += 1

        unassignable = sum(1 for decision in result.decisions.values() if decision.assigned_to is None)
        log_with_household_context(
            logger,
            "info",
            "Batch assignment finished",
            household_id=household_id,
            assigned=result.assigned_count,
            unassignable=unassignable,
            errors=len(result.errors),
        )
        return result


async def auto_assign_all_households(*, at: datetime | None = None) -> list[BatchAssignmentResult]:
    """Run batch assignment for every active household; a failing household does not stop the others."""
    with span("assignment_service.auto_assign_all_households"):
        results = []
        for household_id in await load_service.get_active_household_ids():
            try:
                results.append(await auto_assign_unassigned_tasks(household_id=household_id, at=at))
            except Exception:
                logger.exception("Batch assignment failed for household", extra={"household_id": household_id})
                results.append(BatchAssignmentResult(household_id=household_id, errors=["household run failed"]))
        return results
