"""SQLite schema management (code-first approach)."""

import logging

from familyload.core import db_client


logger = logging.getLogger(__name__)

_TIMESTAMP_DEFAULT = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

# Central list of all collections in the schema, in dependency order
COLLECTIONS = [
    "households",
    "household_members",
    "children",
    "task_templates",
    "household_template_settings",
    "generated_tasks",
    "tasks",
    "member_exclusions",
]

_TABLES: dict[str, str] = {
    "households": """
        name TEXT NOT NULL DEFAULT '',
        country TEXT NOT NULL DEFAULT 'FR'
    """,
    "household_members": """
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        user_id INTEGER NOT NULL,
        display_name TEXT NOT NULL DEFAULT '',
        role TEXT NOT NULL DEFAULT 'parent' CHECK (role IN ('parent', 'co_parent', 'guardian')),
        is_active BOOLEAN NOT NULL DEFAULT 1,
        UNIQUE (household_id, user_id)
    """,
    "children": """
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        first_name TEXT NOT NULL,
        birthdate TEXT NOT NULL,
        is_active BOOLEAN NOT NULL DEFAULT 1
    """,
    "task_templates": """
        country TEXT NOT NULL DEFAULT 'FR',
        age_min INTEGER NOT NULL,
        age_max INTEGER NOT NULL,
        category TEXT NOT NULL,
        subcategory TEXT,
        title TEXT NOT NULL,
        description TEXT,
        schedule_rule TEXT,
        weight INTEGER NOT NULL DEFAULT 3 CHECK (weight BETWEEN 1 AND 5),
        days_before_deadline INTEGER NOT NULL DEFAULT 7,
        is_active BOOLEAN NOT NULL DEFAULT 1
    """,
    "household_template_settings": """
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        template_id INTEGER NOT NULL REFERENCES task_templates(id) ON DELETE CASCADE,
        is_enabled BOOLEAN NOT NULL DEFAULT 1,
        UNIQUE (household_id, template_id)
    """,
    "generated_tasks": """
        template_id INTEGER NOT NULL REFERENCES task_templates(id),
        child_id INTEGER NOT NULL REFERENCES children(id) ON DELETE CASCADE,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        task_id INTEGER,
        deadline TEXT NOT NULL,
        generation_key TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'created', 'skipped')),
        acknowledged BOOLEAN NOT NULL DEFAULT 0,
        acknowledged_at TEXT,
        acknowledged_by INTEGER,
        UNIQUE (household_id, generation_key)
    """,
    "tasks": """
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        description TEXT,
        child_id INTEGER REFERENCES children(id) ON DELETE SET NULL,
        category_id TEXT,
        template_id INTEGER REFERENCES task_templates(id),
        assigned_to INTEGER,
        created_by INTEGER,
        deadline TEXT,
        completed_at TEXT,
        weight INTEGER NOT NULL DEFAULT 3 CHECK (weight BETWEEN 1 AND 5),
        priority TEXT NOT NULL DEFAULT 'normal',
        status TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'done', 'cancelled', 'postponed')),
        source TEXT NOT NULL DEFAULT 'manual' CHECK (source IN ('manual', 'auto', 'template'))
    """,
    "member_exclusions": """
        member_id INTEGER NOT NULL,
        household_id INTEGER NOT NULL REFERENCES households(id) ON DELETE CASCADE,
        exclude_from TEXT NOT NULL,
        exclude_until TEXT NOT NULL,
        reason TEXT NOT NULL DEFAULT ''
    """,
}

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_tasks_household_status ON tasks (household_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_generated_household ON generated_tasks (household_id)",
    "CREATE INDEX IF NOT EXISTS idx_exclusions_member ON member_exclusions (household_id, member_id)",
]


def table_ddl(collection: str) -> str:
    """Return the CREATE TABLE statement for a collection."""
    columns = _TABLES[collection].strip()
    return (
        f"CREATE TABLE IF NOT EXISTS {collection} ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        f"created TEXT NOT NULL DEFAULT ({_TIMESTAMP_DEFAULT}), "
        f"updated TEXT NOT NULL DEFAULT ({_TIMESTAMP_DEFAULT}), "
        f"{columns})"
    )


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)
    for collection in COLLECTIONS:
        await conn.execute(table_ddl(collection))
    for statement in _INDEXES:
        await conn.execute(statement)
    await conn.commit()
    logger.info("Schema initialized", extra={"collections": len(COLLECTIONS)})
