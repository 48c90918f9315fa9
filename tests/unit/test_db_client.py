"""Tests for the SQLite store client."""

from datetime import date

import pytest

from familyload.core import db_client


@pytest.mark.unit
class TestParseFilter:
    """Tests for filter translation."""

    def test_and_with_bool_and_int(self):
        assert db_client.parse_filter('household_id = "12" && is_active = true') == (
            "household_id = ? AND is_active = ?",
            [12, True],
        )

    def test_or_group(self):
        assert db_client.parse_filter('household_id = "h1" && (status = "done" || status = "pending")') == (
            "household_id = ? AND (status = ? OR status = ?)",
            ["h1", "done", "pending"],
        )

    def test_comparison_operators(self):
        clause, params = db_client.parse_filter("deadline >= '2026-03-16' && deadline < '2026-04-15' && weight != '3'")
        assert clause == "deadline >= ? AND deadline < ? AND weight != ?"
        assert params == ["2026-03-16", "2026-04-15", 3]

    def test_like_escapes_wildcards(self):
        assert db_client.parse_filter('title ~ "50%_off"') == ("title LIKE ? ESCAPE '\\'", ["%50\\%\\_off%"])

    def test_empty_value(self):
        assert db_client.parse_filter('assigned_to != ""') == ("assigned_to != ?", [""])

    def test_empty_filter(self):
        assert db_client.parse_filter("") == ("", [])

    def test_superscript_digits_stay_text(self):
        assert db_client.parse_filter('weight = "²" && title = "1.³"') == (
            "weight = ? AND title = ?",
            ["²", "1.³"],
        )

    @pytest.mark.parametrize("query", ["is_active", "title == 'x'", 'title = "x" junk'])
    def test_invalid_syntax(self, query):
        with pytest.raises(ValueError):
            db_client.parse_filter(query)


@pytest.mark.unit
class TestParseSort:
    """Tests for sort translation."""

    @pytest.mark.parametrize(
        ("sort", "expected"),
        [
            ("-created", "created DESC, id DESC"),
            ("age_min", "age_min ASC, id ASC"),
            ("deadline,-weight", "deadline ASC, weight DESC, id ASC"),
            ("", "id ASC"),
            ("created; DROP TABLE tasks", "id ASC"),
        ],
    )
    def test_sort(self, sort, expected):
        assert db_client.parse_sort(sort) == expected


async def _household(store) -> str:
    return (await store.create_record(collection="households", data={"name": "Martin"}))["id"]


@pytest.mark.integration
class TestSqliteStore:
    """Round trips through a real SQLite file."""

    async def test_crud(self, sqlite_store):
        household_id = await _household(sqlite_store)

        created = await sqlite_store.create_record(
            collection="tasks",
            data={"household_id": household_id, "title": "Book dentist", "deadline": date(2026, 3, 18), "weight": 4},
        )
        assert created["id"].isdigit()
        assert created["household_id"] == household_id
        assert created["deadline"] == "2026-03-18"
        assert created["status"] == "pending"
        assert created["created"]

        updated = await sqlite_store.update_record(
            collection="tasks", record_id=created["id"], data={"assigned_to": "u1"}
        )
        assert updated["assigned_to"] == "u1"

        await sqlite_store.delete_record(collection="tasks", record_id=created["id"])
        with pytest.raises(db_client.RecordNotFoundError):
            await sqlite_store.get_record(collection="tasks", record_id=created["id"])

    @pytest.mark.parametrize("record_id", ["999", "missing", "²"])
    async def test_missing_records(self, sqlite_store, record_id):
        with pytest.raises(db_client.RecordNotFoundError):
            await sqlite_store.get_record(collection="tasks", record_id=record_id)
        with pytest.raises(db_client.RecordNotFoundError):
            await sqlite_store.delete_record(collection="tasks", record_id=record_id)

    async def test_generation_key_is_unique_per_household(self, sqlite_store):
        household_id = await _household(sqlite_store)
        child = await sqlite_store.create_record(
            collection="children",
            data={"household_id": household_id, "first_name": "Tom", "birthdate": date(2019, 1, 10)},
        )
        template = await sqlite_store.create_record(
            collection="task_templates",
            data={"age_min": 3, "age_max": 11, "category": "school", "title": "Bag", "schedule_rule": "weekly"},
        )
        data = {
            "template_id": template["id"],
            "child_id": child["id"],
            "household_id": household_id,
            "deadline": date(2026, 3, 22),
            "generation_key": f"{template['id']}:2026-03-22",
        }
        await sqlite_store.create_record(collection="generated_tasks", data=data)

        with pytest.raises(db_client.DuplicateRecordError):
            await sqlite_store.create_record(collection="generated_tasks", data=data)

    async def test_filters_and_sort(self, sqlite_store):
        household_id = await _household(sqlite_store)
        for title, status in (("a", "pending"), ("b", "done"), ("c", "cancelled"), ("d", "pending")):
            await sqlite_store.create_record(
                collection="tasks", data={"household_id": household_id, "title": title, "status": status}
            )

        records = await sqlite_store.list_records(
            collection="tasks",
            filter_query=f'household_id = "{household_id}" && (status = "pending" || status = "done")',
            sort="-created",
        )

        assert [r["title"] for r in records] == ["d", "b", "a"]

    async def test_bool_filter(self, sqlite_store):
        household_id = await _household(sqlite_store)
        for user_id, active in (("u1", True), ("u2", False)):
            await sqlite_store.create_record(
                collection="household_members",
                data={"household_id": household_id, "user_id": user_id, "is_active": active},
            )

        active = await sqlite_store.list_all_records(collection="household_members", filter_query="is_active = true")

        assert [r["user_id"] for r in active] == ["u1"]

    async def test_list_all_records_walks_pages(self, sqlite_store):
        household_id = await _household(sqlite_store)
        for index in range(5):
            await sqlite_store.create_record(collection="tasks", data={"household_id": household_id, "title": str(index)})

        records = await sqlite_store.list_all_records(collection="tasks", per_page=2)

        assert [r["title"] for r in records] == ["0", "1", "2", "3", "4"]

    async def test_get_first_record(self, sqlite_store):
        household_id = await _household(sqlite_store)
        await sqlite_store.create_record(collection="tasks", data={"household_id": household_id, "title": "first"})

        first = await sqlite_store.get_first_record(collection="tasks", filter_query='title = "first"')
        assert first["title"] == "first"
        assert await sqlite_store.get_first_record(collection="tasks", filter_query='title = "none"') is None

    async def test_unknown_table(self, sqlite_store):
        with pytest.raises(db_client.DatabaseError):
            await sqlite_store.create_record(collection="nope", data={"title": "x"})
