"""SQLite schema management (code-first approach).

Every collection is a document table: the record body lives in a JSON column and
is queried through the JSON1 functions. Indexes cover the fields the visibility
policy filters on.
"""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "users",
    "tasks",
]

# Expression indexes per collection, keyed by index name suffix
_JSON_INDEXES: dict[str, list[str]] = {
    "users": ["email"],
    "tasks": ["assignee_id", "created_by_id", "status", "due_date"],
}


def _table_sql(collection: str) -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {collection} ("  # noqa: S608 - collection names are constants
        "id TEXT PRIMARY KEY, "
        "data TEXT NOT NULL, "
        "created TEXT NOT NULL, "
        "updated TEXT NOT NULL)"
    )


def _index_sql(collection: str, field: str) -> str:
    return (
        f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} "
        f"ON {collection} (json_extract(data, '$.{field}'))"
    )


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and its indexes if missing.

    Args:
        db_path: Optional override for the database path (defaults to settings)
    """
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_table_sql(collection))
        await conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{collection}_created ON {collection} (created)")
        for field in _JSON_INDEXES.get(collection, []):
            await conn.execute(_index_sql(collection, field))
        logger.info("Ensured collection", extra={"collection": collection})

    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})
