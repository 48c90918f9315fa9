"""Generation orchestrator: materialises template instances for a household's children.

Each run loads the household's active children, its enabled templates and the
generation keys already recorded, then walks every (child, template) pair.
A pair is generated at most once per generation key; the key set is read once
per run and updated in memory as records are inserted. Runs for the same
household are serialised, and a uniqueness conflict on insert counts as a skip.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from typing import Any

from pydantic import ValidationError

from familyload.core import db_client
from familyload.core.age import classify_age
from familyload.core.config import Constants, settings
from familyload.core.logging import log_with_household_context, span
from familyload.core.schedule_evaluator import describe_schedule_rule, to_day
from familyload.domain.child import Child, ChildAge
from familyload.domain.generation import GeneratedTaskRecord, GenerationStatus, generation_key
from familyload.domain.task import Task, TaskPriority, TaskSource, TaskStatus
from familyload.domain.template import TaskTemplate
from familyload.models.service_models import (
    GenerationConfig,
    GenerationDetail,
    GenerationResult,
    GenerationSummary,
    UpcomingTask,
)
from familyload.services import assignment_service, load_service, template_service


logger = logging.getLogger(__name__)

_household_locks: dict[str, asyncio.Lock] = {}
_household_lock_users: dict[str, int] = {}


@asynccontextmanager
async def _household_lock(household_id: str) -> AsyncIterator[None]:
    """Serialise runs per household; the entry is dropped once nobody holds or awaits it."""
    lock = _household_locks.setdefault(household_id, asyncio.Lock())
    _household_lock_users[household_id] = _household_lock_users.get(household_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _household_lock_users[household_id] -= 1
        if not _household_lock_users[household_id]:
            del _household_lock_users[household_id]
            del _household_locks[household_id]


async def _load_active_children(household_id: str) -> list[Child]:
    records = await db_client.list_all_records(
        collection="children",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}" && is_active = true',
    )
    children = []
    for record in records:
        try:
            children.append(Child(**record))
        except ValidationError as e:
            logger.error("Invalid child record skipped", extra={"child_id": record.get("id"), "error": str(e)})
    return children


def _is_selected(template: TaskTemplate, config: GenerationConfig) -> bool:
    if template.is_recurring:
        return config.include_recurring
    return config.include_one_time


async def _generate_pair(
    *,
    household_id: str,
    child: Child,
    child_age: ChildAge,
    template: TaskTemplate,
    today: date,
    look_ahead_days: int,
    existing_keys: set[str],
    generated_pairs: set[tuple[str, str]],
) -> date | None:
    """Generate one (child, template) pair.

    Returns:
        Deadline of the inserted record, or None when the pair was skipped
    """
    if not template.is_recurring and (template.id, child.id) in generated_pairs:
        return None

    decision = template_service.should_generate(template, child_age, existing_keys, today)
    if not decision.should_generate or decision.deadline is None:
        return None

    deadline = decision.deadline
    if template.is_recurring:
        days_until = (deadline - today).days
        if not -Constants.RECURRING_GRACE_DAYS <= days_until <= look_ahead_days:
            return None

    key = generation_key(template.id, deadline)
    if key in existing_keys:
        return None

    try:
        await db_client.create_record(
            collection="generated_tasks",
            data={
                "template_id": template.id,
                "child_id": child.id,
                "household_id": household_id,
                "deadline": deadline,
                "generation_key": key,
                "status": GenerationStatus.PENDING,
                "acknowledged": False,
            },
        )
    except db_client.DuplicateRecordError:
        # Another writer inserted the same key first
        existing_keys.add(key)
        return None

    existing_keys.add(key)
    generated_pairs.add((template.id, child.id))
    return deadline


async def generate_for_household(
    *,
    household_id: str,
    config: GenerationConfig | None = None,
) -> GenerationResult:
    """Generate pending task records for every eligible (child, template) pair of a household.

    Re-running for the same household and reference day generates nothing new.
    A failing pair is recorded in the result and the run continues.

    Args:
        household_id: Household ID
        config: Run options (look-ahead, template kinds, reference day)

    Returns:
        Counts of generated, skipped and failed pairs with per-pair details

    Raises:
        db_client.DatabaseError: If the household's children, templates or keys cannot be loaded
    """
    cfg = config or GenerationConfig()
    today = to_day(cfg.reference_date)
    look_ahead_days = (
        cfg.look_ahead_days if cfg.look_ahead_days is not None else settings.generation_look_ahead_days
    )

    with span("generation_service.generate_for_household"):
        async with _household_lock(household_id):
            children = await _load_active_children(household_id)
            templates = [
                template
                for template in await template_service.list_household_templates(household_id=household_id)
                if _is_selected(template, cfg)
            ]

            existing = await db_client.list_all_records(
                collection="generated_tasks",
                filter_query=f'household_id = "{db_client.sanitize_param(household_id)}"',
            )
            existing_keys = {record["generation_key"] for record in existing}
            generated_pairs = {(record["template_id"], record["child_id"]) for record in existing}

            result = GenerationResult(household_id=household_id)
            for child in children:
                child_age = classify_age(child.birthdate, today)
                for template in templates:
                    try:
                        deadline = await _generate_pair(
                            household_id=household_id,
                            child=child,
                            child_age=child_age,
                            template=template,
                            today=today,
                            look_ahead_days=look_ahead_days,
                            existing_keys=existing_keys,
                            generated_pairs=generated_pairs,
                        )
                    except Exception as e:
                        logger.exception(
                            "Failed to generate task",
                            extra={"household_id": household_id, "template_id": template.id, "child_id": child.id},
                        )
                        result.errors += 1
                        result.details.append(
                            GenerationDetail(template_id=template.id, child_id=child.id, success=False, error=str(e))
                        )
                        continue

                    if deadline is None:
                        result.skipped += 1
                        continue

                    result.generated += 1
                    result.details.append(
                        GenerationDetail(template_id=template.id, child_id=child.id, success=True, deadline=deadline)
                    )

        log_with_household_context(
            logger,
            "info",
            "Generation run finished",
            household_id=household_id,
            generated=result.generated,
            skipped=result.skipped,
            errors=result.errors,
        )
        return result


async def generate_for_all_households(*, config: GenerationConfig | None = None) -> GenerationSummary:
    """Run generation for every active household.

    A household whose run fails is logged and listed in the summary; the others still run.
    """
    with span("generation_service.generate_for_all_households"):
        summary = GenerationSummary()
        for household_id in await load_service.get_active_household_ids():
            try:
                result = await generate_for_household(household_id=household_id, config=config)
            except Exception:
                logger.exception("Generation failed for household", extra={"household_id": household_id})
                summary.failed_households.append(household_id)
                continue

            summary.households_processed += 1
            summary.total_generated += result.generated
            summary.total_skipped += result.skipped
            summary.total_errors += result.errors

        logger.info(
            "Generation finished for all households",
            extra={
                "households": summary.households_processed,
                "generated": summary.total_generated,
                "failed": len(summary.failed_households),
            },
        )
        return summary


async def _acknowledge(*, record_id: str, user_id: str, data: dict[str, Any]) -> dict[str, Any]:
    return await db_client.update_record(
        collection="generated_tasks",
        record_id=record_id,
        data={
            **data,
            "acknowledged": True,
            "acknowledged_at": datetime.now(UTC),
            "acknowledged_by": user_id,
        },
    )


async def _find_materialised_task(record: GeneratedTaskRecord) -> dict[str, Any] | None:
    """Task left behind by an earlier attempt on the same record, if any."""
    return await db_client.get_first_record(
        collection="tasks",
        filter_query=(
            f'household_id = "{db_client.sanitize_param(record.household_id)}" '
            f'&& template_id = "{db_client.sanitize_param(record.template_id)}" '
            f'&& child_id = "{db_client.sanitize_param(record.child_id)}" '
            f'&& deadline = "{record.deadline.isoformat()}" '
            f'&& source = "{TaskSource.TEMPLATE}"'
        ),
        sort="created",
    )


async def create_task_from_generated(*, record_id: str, created_by: str) -> Task:
    """Turn a pending generated record into a task and assign it.

    The assignee is decided before the single task insert, and the record is
    acknowledged last. A retry after a failed acknowledgement reuses the task
    already created for the record instead of inserting another one.

    Args:
        record_id: Generated task record ID
        created_by: User acknowledging the record

    Returns:
        The created task, with its assignee when one could be chosen

    Raises:
        db_client.RecordNotFoundError: If the record, its template or its child is missing
        ValueError: If the record was already created or skipped
    """
    with span("generation_service.create_task_from_generated"):
        record = GeneratedTaskRecord(**await db_client.get_record(collection="generated_tasks", record_id=record_id))
        if record.status != GenerationStatus.PENDING:
            msg = f"Generated task {record_id} is already {record.status}"
            raise ValueError(msg)

        task_record = await _find_materialised_task(record)
        if task_record is not None:
            logger.info(
                "Reusing task from an earlier attempt",
                extra={"record_id": record_id, "task_id": task_record["id"]},
            )
        else:
            template = TaskTemplate(
                **await db_client.get_record(collection="task_templates", record_id=record.template_id)
            )
            child = Child(**await db_client.get_record(collection="children", record_id=record.child_id))
            data = {
                "household_id": record.household_id,
                "title": f"{template.title} - {child.first_name}",
                "description": template.description,
                "child_id": child.id,
                "category_id": template.category,
                "template_id": template.id,
                "created_by": created_by,
                "deadline": record.deadline,
                "weight": template.weight,
                "priority": TaskPriority.NORMAL,
                "status": TaskStatus.PENDING,
                "source": TaskSource.TEMPLATE,
            }

            # Unsaved draft; the decision only reads household, weight and deadline
            members = await load_service.get_active_members(household_id=record.household_id)
            decision = await assignment_service.determine_assignment(task=Task(id="", **data), members=members)
            if decision.assigned_to is None:
                log_with_household_context(
                    logger,
                    "warning",
                    "Task needs manual assignment, every member is excluded",
                    household_id=record.household_id,
                    record_id=record_id,
                )
            task_record = await db_client.create_record(
                collection="tasks",
                data={**data, "assigned_to": decision.assigned_to},
            )

        await _acknowledge(
            record_id=record_id,
            user_id=created_by,
            data={"status": GenerationStatus.CREATED, "task_id": task_record["id"]},
        )

        task = Task(**task_record)
        log_with_household_context(
            logger,
            "info",
            "Created task from generated record",
            household_id=record.household_id,
            record_id=record_id,
            task_id=task.id,
            assigned_to=task.assigned_to,
        )
        return task


async def skip_generated_task(*, record_id: str, acknowledged_by: str) -> GeneratedTaskRecord:
    """Mark a generated record as skipped; its generation key stays reserved.

    Raises:
        db_client.RecordNotFoundError: If the record does not exist
    """
    with span("generation_service.skip_generated_task"):
        updated = await _acknowledge(
            record_id=record_id,
            user_id=acknowledged_by,
            data={"status": GenerationStatus.SKIPPED},
        )
        logger.info("Skipped generated task", extra={"record_id": record_id, "user_id": acknowledged_by})
        return GeneratedTaskRecord(**updated)


def preview_upcoming_for_child(
    *,
    child: Child,
    templates: list[TaskTemplate],
    days: int = 30,
    reference: date | datetime | None = None,
) -> list[UpcomingTask]:
    """List the next deadlines a child's templates would produce, without writing anything.

    Returns:
        Previews within ``days`` of the reference day, soonest first
    """
    today = to_day(reference)
    child_age = classify_age(child.birthdate, today)

    previews = []
    for template in templates:
        if not template.is_active or not template.age_min <= child_age.years <= template.age_max:
            continue

        deadline = template_service.template_deadline(template, child_age, today)
        if deadline is None:
            continue

        days_until = (deadline - today).days
        if days_until > days:
            continue

        if days_until < 0:
            status = "overdue"
        elif days_until <= Constants.PREVIEW_DUE_SOON_DAYS:
            status = "due_soon"
        else:
            status = "upcoming"

        previews.append(
            UpcomingTask(
                template=template,
                deadline=deadline,
                days_until=days_until,
                status=status,
                schedule_description=describe_schedule_rule(template.schedule_rule),
            )
        )

    previews.sort(key=lambda preview: preview.days_until)
    return previews
