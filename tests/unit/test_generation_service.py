"""Tests for the generation orchestrator."""

import asyncio
from datetime import date

import pytest

from familyload.core import db_client
from familyload.domain.child import Child
from familyload.domain.generation import GenerationStatus
from familyload.domain.task import TaskSource
from familyload.domain.template import TaskTemplate, TemplateCategory
from familyload.models.service_models import GenerationConfig
from familyload.services import generation_service, template_service


MONDAY = date(2026, 3, 16)
NEXT_MONDAY = date(2026, 3, 23)


def make_template(**overrides) -> TaskTemplate:
    data = {"id": "t1", "age_min": 0, "age_max": 18, "category": TemplateCategory.DAILY, "title": "Check school bag"}
    data.update(overrides)
    return TaskTemplate(**data)


async def add_child(db, household_id: str, first_name: str, birthdate: date, *, is_active: bool = True) -> str:
    record = await db.create_record(
        collection="children",
        data={"household_id": household_id, "first_name": first_name, "birthdate": birthdate, "is_active": is_active},
    )
    return record["id"]


async def add_vaccine_template() -> str:
    template = await template_service.create_template(
        title="Vaccine at 2 months",
        category=TemplateCategory.HEALTH,
        subcategory="vaccine",
        age_min=0,
        age_max=0,
        weight=4,
    )
    return template.id


async def add_weekly_template() -> str:
    template = await template_service.create_template(
        title="Prepare school bag",
        category=TemplateCategory.SCHOOL,
        age_min=3,
        age_max=11,
        schedule_rule="weekly",
        weight=2,
    )
    return template.id


@pytest.fixture
async def family(patched_db, household):
    """Household with an infant, a seven-year-old and two templates."""
    infant_id = await add_child(patched_db, household, "Lina", date(2026, 1, 16))
    schooler_id = await add_child(patched_db, household, "Tom", date(2019, 1, 10))
    vaccine_id = await add_vaccine_template()
    weekly_id = await add_weekly_template()
    return {
        "household_id": household,
        "infant_id": infant_id,
        "schooler_id": schooler_id,
        "vaccine_id": vaccine_id,
        "weekly_id": weekly_id,
    }


@pytest.mark.unit
class TestGenerateForHousehold:
    """Tests for generate_for_household."""

    async def test_generates_eligible_pairs(self, patched_db, family):
        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )

        assert result.generated == 2
        assert result.skipped == 2
        assert result.errors == 0

        records = await patched_db.list_all_records("generated_tasks", sort="deadline")
        assert [(r["template_id"], r["child_id"], r["deadline"]) for r in records] == [
            (family["vaccine_id"], family["infant_id"], "2026-03-16"),
            (family["weekly_id"], family["schooler_id"], "2026-03-22"),
        ]
        assert records[1]["generation_key"] == f"{family['weekly_id']}:2026-03-22"
        assert all(r["status"] == GenerationStatus.PENDING for r in records)

    async def test_rerun_is_idempotent(self, patched_db, family):
        config = GenerationConfig(reference_date=MONDAY)
        await generation_service.generate_for_household(household_id=family["household_id"], config=config)

        result = await generation_service.generate_for_household(household_id=family["household_id"], config=config)

        assert result.generated == 0
        assert result.skipped == 4
        assert len(await patched_db.list_all_records("generated_tasks")) == 2

    async def test_next_week_only_regenerates_recurring(self, patched_db, family):
        await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )

        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=NEXT_MONDAY)
        )

        assert result.generated == 1
        assert result.details[0].template_id == family["weekly_id"]
        assert result.details[0].deadline == date(2026, 3, 29)

    async def test_ranged_milestone_generated_once_per_child(self, patched_db, household):
        await add_child(patched_db, household, "Tom", date(2019, 1, 10))
        await template_service.create_template(
            title="Learn to swim", category=TemplateCategory.ACTIVITIES, age_min=6, age_max=10
        )

        first = await generation_service.generate_for_household(
            household_id=household, config=GenerationConfig(reference_date=MONDAY)
        )
        second = await generation_service.generate_for_household(
            household_id=household, config=GenerationConfig(reference_date=date(2026, 3, 17))
        )

        assert first.generated == 1
        assert first.details[0].deadline == date(2026, 4, 15)
        assert second.generated == 0

    async def test_disabled_template_is_not_generated(self, patched_db, family):
        await template_service.set_template_enabled(
            household_id=family["household_id"], template_id=family["weekly_id"], enabled=False
        )

        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )

        assert result.generated == 1
        assert result.details[0].template_id == family["vaccine_id"]

    async def test_inactive_child_is_ignored(self, patched_db, household):
        await add_child(patched_db, household, "Tom", date(2019, 1, 10), is_active=False)
        await add_weekly_template()

        result = await generation_service.generate_for_household(
            household_id=household, config=GenerationConfig(reference_date=MONDAY)
        )

        assert result.generated == 0
        assert result.skipped == 0

    async def test_look_ahead_limits_recurring_deadlines(self, patched_db, family):
        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY, look_ahead_days=3)
        )

        assert result.generated == 1
        assert result.details[0].template_id == family["vaccine_id"]

    async def test_template_kind_selection(self, patched_db, family):
        result = await generation_service.generate_for_household(
            household_id=family["household_id"],
            config=GenerationConfig(reference_date=MONDAY, include_one_time=False),
        )

        assert result.generated == 1
        assert result.details[0].template_id == family["weekly_id"]

    async def test_failing_pair_does_not_stop_the_run(self, patched_db, family, monkeypatch):
        original = template_service.should_generate

        def flaky(template, child_age, existing_keys, reference=None):
            if template.id == family["vaccine_id"]:
                raise RuntimeError("boom")
            return original(template, child_age, existing_keys, reference)

        monkeypatch.setattr(template_service, "should_generate", flaky)

        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )

        assert result.errors == 2
        assert result.generated == 1
        failures = [detail for detail in result.details if not detail.success]
        assert {detail.error for detail in failures} == {"boom"}

    async def test_duplicate_insert_counts_as_skip(self, patched_db, family, monkeypatch):
        async def conflicting_create(collection, data):
            raise db_client.DuplicateRecordError(f"Duplicate record in {collection}")

        monkeypatch.setattr("familyload.core.db_client.create_record", conflicting_create)

        result = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )

        assert result.generated == 0
        assert result.errors == 0
        assert result.skipped == 4

    async def test_store_failure_propagates(self, patched_db, family):
        patched_db.fail_on["children"] = db_client.DatabaseError("database is locked")

        with pytest.raises(db_client.DatabaseError):
            await generation_service.generate_for_household(
                household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
            )

        assert generation_service._household_locks == {}

    async def test_concurrent_runs_do_not_duplicate(self, patched_db, family):
        config = GenerationConfig(reference_date=MONDAY)

        results = await asyncio.gather(
            generation_service.generate_for_household(household_id=family["household_id"], config=config),
            generation_service.generate_for_household(household_id=family["household_id"], config=config),
        )

        assert sum(result.generated for result in results) == 2
        assert len(await patched_db.list_all_records("generated_tasks")) == 2
        assert generation_service._household_locks == {}


@pytest.mark.unit
class TestGenerateForAllHouseholds:
    """Tests for generate_for_all_households."""

    async def test_runs_every_active_household(self, patched_db, family):
        other = await patched_db.create_record(collection="households", data={"name": "Durand"})
        await patched_db.create_record(
            collection="household_members",
            data={"household_id": other["id"], "user_id": "u9", "is_active": True},
        )
        await add_child(patched_db, other["id"], "Zoe", date(2018, 5, 5))

        summary = await generation_service.generate_for_all_households(config=GenerationConfig(reference_date=MONDAY))

        assert summary.households_processed == 2
        assert summary.total_generated == 3
        assert summary.failed_households == []

    async def test_household_without_active_members_is_skipped(self, patched_db, family):
        other = await patched_db.create_record(collection="households", data={"name": "Empty"})
        await add_child(patched_db, other["id"], "Zoe", date(2018, 5, 5))

        summary = await generation_service.generate_for_all_households(config=GenerationConfig(reference_date=MONDAY))

        assert summary.households_processed == 1

    async def test_failed_household_is_reported(self, patched_db, family, monkeypatch):
        other = await patched_db.create_record(collection="households", data={"name": "Durand"})
        await patched_db.create_record(
            collection="household_members",
            data={"household_id": other["id"], "user_id": "u9", "is_active": True},
        )
        original = generation_service._load_active_children

        async def failing_children(household_id):
            if household_id == other["id"]:
                raise db_client.DatabaseError("database is locked")
            return await original(household_id)

        monkeypatch.setattr(generation_service, "_load_active_children", failing_children)

        summary = await generation_service.generate_for_all_households(config=GenerationConfig(reference_date=MONDAY))

        assert summary.households_processed == 1
        assert summary.total_generated == 2
        assert summary.failed_households == [other["id"]]


@pytest.mark.unit
class TestGeneratedRecordLifecycle:
    """Tests for turning generated records into tasks."""

    async def _first_record(self, db, family) -> dict:
        await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )
        return await db.get_first_record(
            "generated_tasks", f'template_id = "{family["vaccine_id"]}"'
        )

    async def test_create_task_assigns_and_marks_created(self, patched_db, family):
        record = await self._first_record(patched_db, family)

        task = await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")

        assert task.title == "Vaccine at 2 months - Lina"
        assert task.weight == 4
        assert task.category_id == "health"
        assert task.source == TaskSource.TEMPLATE
        assert task.deadline == date(2026, 3, 16)
        assert task.assigned_to == "u1"

        updated = await patched_db.get_record("generated_tasks", record["id"])
        assert updated["status"] == GenerationStatus.CREATED
        assert updated["task_id"] == task.id
        assert updated["acknowledged"] is True
        assert updated["acknowledged_by"] == "u1"

    async def test_create_task_twice_is_rejected(self, patched_db, family):
        record = await self._first_record(patched_db, family)
        await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")

        with pytest.raises(ValueError, match="already created"):
            await generation_service.create_task_from_generated(record_id=record["id"], created_by="u2")

        assert len(await patched_db.list_all_records("tasks")) == 1

    async def test_failed_assignment_leaves_no_task(self, patched_db, family, monkeypatch):
        record = await self._first_record(patched_db, family)
        original = generation_service.assignment_service.determine_assignment
        calls = []

        async def failing_once(**kwargs):
            calls.append(kwargs["task"].title)
            if len(calls) == 1:
                raise db_client.DatabaseError("database is locked")
            return await original(**kwargs)

        monkeypatch.setattr(generation_service.assignment_service, "determine_assignment", failing_once)

        with pytest.raises(db_client.DatabaseError):
            await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")
        assert await patched_db.list_all_records("tasks") == []

        task = await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")

        assert task.assigned_to == "u1"
        assert [t["id"] for t in await patched_db.list_all_records("tasks")] == [task.id]

    async def test_retry_after_failed_acknowledgement_reuses_task(self, patched_db, family, monkeypatch):
        record = await self._first_record(patched_db, family)
        original_update = patched_db.update_record
        failures = []

        async def update_failing_once(collection, record_id, data):
            if collection == "generated_tasks" and not failures:
                failures.append(record_id)
                raise db_client.DatabaseError("database is locked")
            return await original_update(collection, record_id, data)

        monkeypatch.setattr("familyload.core.db_client.update_record", update_failing_once)

        with pytest.raises(db_client.DatabaseError):
            await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")
        task = await generation_service.create_task_from_generated(record_id=record["id"], created_by="u1")

        assert [t["id"] for t in await patched_db.list_all_records("tasks")] == [task.id]
        updated = await patched_db.get_record("generated_tasks", record["id"])
        assert updated["status"] == GenerationStatus.CREATED
        assert updated["task_id"] == task.id

    async def test_skip_keeps_the_key_reserved(self, patched_db, family):
        record = await self._first_record(patched_db, family)

        skipped = await generation_service.skip_generated_task(record_id=record["id"], acknowledged_by="u2")

        assert skipped.status == GenerationStatus.SKIPPED
        assert skipped.acknowledged is True

        rerun = await generation_service.generate_for_household(
            household_id=family["household_id"], config=GenerationConfig(reference_date=MONDAY)
        )
        assert rerun.generated == 0

    async def test_skip_missing_record(self, patched_db):
        with pytest.raises(db_client.RecordNotFoundError):
            await generation_service.skip_generated_task(record_id="missing", acknowledged_by="u1")


@pytest.mark.unit
class TestPreviewUpcoming:
    """Tests for preview_upcoming_for_child."""

    def test_statuses_and_ordering(self):
        child = Child(id="c1", household_id="h1", first_name="Tom", birthdate=date(2019, 3, 1))
        templates = [
            make_template(id="weekly", schedule_rule="weekly"),
            make_template(id="canteen", schedule_rule="0 9 15 * *"),
            make_template(id="insurance", schedule_rule="0 9 1 9 *"),
            make_template(id="birthday", age_min=7, age_max=7, title="Seventh birthday party"),
            make_template(id="teen", age_min=12, age_max=15, title="Phone contract"),
            make_template(id="off", schedule_rule="daily", is_active=False),
        ]

        previews = generation_service.preview_upcoming_for_child(
            child=child, templates=templates, days=30, reference=MONDAY
        )

        assert [(p.template.id, p.status, p.days_until) for p in previews] == [
            ("birthday", "overdue", -15),
            ("weekly", "due_soon", 6),
            ("canteen", "upcoming", 30),
        ]
        assert previews[1].schedule_description == "every Sunday"
        assert previews[0].schedule_description == "one-time"
