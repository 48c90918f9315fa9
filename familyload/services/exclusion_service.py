"""Exclusion service: time-bounded windows during which a member receives no new tasks."""

import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from familyload.core import db_client
from familyload.core.logging import span
from familyload.domain.member import MemberExclusion
from familyload.models.service_models import ExclusionErrorCode, ExclusionResult


logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """Naive instants are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def windows_overlap(
    existing_from: datetime,
    existing_until: datetime,
    new_from: datetime,
    new_until: datetime,
) -> bool:
    """Inclusive overlap test: windows touching at a single instant overlap."""
    return not (existing_until < new_from or existing_from > new_until)


async def list_member_exclusions(*, member_id: str, household_id: str) -> list[MemberExclusion]:
    """All exclusion windows of a member in a household, earliest first."""
    records = await db_client.list_all_records(
        collection="member_exclusions",
        filter_query=(
            f'household_id = "{db_client.sanitize_param(household_id)}" '
            f'&& member_id = "{db_client.sanitize_param(member_id)}"'
        ),
        sort="exclude_from",
    )
    return _to_exclusions(records)


def _to_exclusions(records: list[dict]) -> list[MemberExclusion]:
    exclusions = []
    for record in records:
        try:
            exclusion = MemberExclusion(**record)
        except ValidationError as e:
            logger.error("Invalid exclusion record skipped", extra={"exclusion_id": record.get("id"), "error": str(e)})
            continue
        exclusions.append(
            exclusion.model_copy(
                update={
                    "exclude_from": _as_utc(exclusion.exclude_from),
                    "exclude_until": _as_utc(exclusion.exclude_until),
                }
            )
        )
    exclusions.sort(key=lambda exclusion: exclusion.exclude_from)
    return exclusions


async def is_excluded(*, member_id: str, household_id: str, at: datetime | None = None) -> bool:
    """Return True if any of the member's windows contains the instant (defaults to now)."""
    instant = _as_utc(at) if at else datetime.now(UTC)
    exclusions = await list_member_exclusions(member_id=member_id, household_id=household_id)
    return any(exclusion.covers(instant) for exclusion in exclusions)


async def get_excluded_member_ids(*, household_id: str, at: datetime | None = None) -> set[str]:
    """Members of a household excluded at the instant, from a single store read."""
    instant = _as_utc(at) if at else datetime.now(UTC)
    records = await db_client.list_all_records(
        collection="member_exclusions",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}"',
    )
    return {exclusion.member_id for exclusion in _to_exclusions(records) if exclusion.covers(instant)}


async def create_exclusion(
    *,
    member_id: str,
    household_id: str,
    exclude_from: datetime,
    exclude_until: datetime,
    reason: str = "",
) -> ExclusionResult:
    """Create an exclusion window for a member.

    Validation failures are returned, not raised: an empty or inverted range
    yields ``ERR_INVALID_EXCLUSION_RANGE``, and a window intersecting one of the
    member's existing windows yields ``ERR_EXCLUSION_OVERLAP``. Retrying the
    same creation is therefore rejected as an overlap.

    Raises:
        db_client.DatabaseError: If the store fails
    """
    with span("exclusion_service.create_exclusion"):
        start = _as_utc(exclude_from)
        end = _as_utc(exclude_until)
        if end <= start:
            return ExclusionResult(
                success=False,
                error_code=ExclusionErrorCode.INVALID_RANGE,
                error="The end of the exclusion must be after its start",
            )

        existing = await list_member_exclusions(member_id=member_id, household_id=household_id)
        for exclusion in existing:
            if windows_overlap(exclusion.exclude_from, exclusion.exclude_until, start, end):
                logger.info(
                    "Exclusion overlaps an existing window",
                    extra={"member_id": member_id, "household_id": household_id, "existing_id": exclusion.id},
                )
                return ExclusionResult(
                    success=False,
                    error_code=ExclusionErrorCode.OVERLAP,
                    error="An exclusion already exists for this period",
                )

        record = await db_client.create_record(
            collection="member_exclusions",
            data={
                "member_id": member_id,
                "household_id": household_id,
                "exclude_from": start,
                "exclude_until": end,
                "reason": reason,
            },
        )
        logger.info(
            "Created exclusion",
            extra={"member_id": member_id, "household_id": household_id, "exclusion_id": record["id"]},
        )
        return ExclusionResult(success=True, id=record["id"])


async def delete_exclusion(*, exclusion_id: str, household_id: str) -> bool:
    """Delete an exclusion owned by the household.

    Returns:
        True if deleted, False when no exclusion with that id belongs to the household
    """
    with span("exclusion_service.delete_exclusion"):
        try:
            record = await db_client.get_record(collection="member_exclusions", record_id=exclusion_id)
        except db_client.RecordNotFoundError:
            return False
        if record["household_id"] != household_id:
            logger.warning(
                "Refused to delete exclusion of another household",
                extra={"exclusion_id": exclusion_id, "household_id": household_id},
            )
            return False

        await db_client.delete_record(collection="member_exclusions", record_id=exclusion_id)
        logger.info("Deleted exclusion", extra={"exclusion_id": exclusion_id, "household_id": household_id})
        return True


async def get_active_exclusions(*, household_id: str, at: datetime | None = None) -> list[MemberExclusion]:
    """Exclusion windows of a household that have not ended at the instant, ordered by start."""
    instant = _as_utc(at) if at else datetime.now(UTC)
    records = await db_client.list_all_records(
        collection="member_exclusions",
        filter_query=f'household_id = "{db_client.sanitize_param(household_id)}"',
    )
    return [exclusion for exclusion in _to_exclusions(records) if exclusion.exclude_until >= instant]
