"""SQLite document store client with CRUD and set-based operations.

Records are JSON documents stored in per-collection tables. Every function
returns records as flat dicts: ``{"id", "created", "updated", **document}``.
Filters use the syntax of ``src.core.filters``.
"""

import asyncio
import json
import logging
import re
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from src.core.config import settings
from src.core.filters import Predicate, compile_sql, parse_filter


logger = logging.getLogger(__name__)

_SYSTEM_FIELDS = ("id", "created", "updated")
_NAME_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist."""


class DatabaseError(RuntimeError):
    """Raised when a store operation fails."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not _NAME_RE.match(collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field: str) -> None:
    if not _NAME_RE.match(field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in a double-quoted filter literal."""
    return json.dumps(str(value))[1:-1]


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _now() -> str:
    return datetime.now(UTC).isoformat(timespec="microseconds")


def _json_default(value: object) -> str:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC).isoformat(timespec="microseconds")
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _dumps(value: object) -> str:
    return json.dumps(value, default=_json_default, separators=(",", ":"))


def _column(field: str) -> str:
    """SQL expression reading a field of a document row."""
    if field in _SYSTEM_FIELDS:
        return field
    return f"json_extract(data, '$.{field}')"


def _where(filter_query: str | Predicate) -> tuple[str, list[Any]]:
    clause, params = compile_sql(parse_filter(filter_query), column=_column)
    return (f"WHERE {clause}" if clause else ""), params


def _order_by(sort: str) -> str:
    """Translate ``field`` / ``-field`` into a safe ORDER BY clause."""
    if not sort:
        return "created ASC, id ASC"
    descending = sort.startswith("-")
    field = sort.lstrip("-+").strip()
    if not _NAME_RE.match(field):
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "created ASC, id ASC"
    direction = "DESC" if descending else "ASC"
    return f"{_column(field)} {direction}, id {direction}"


def _row_to_record(row: tuple[str, str, str, str]) -> dict[str, Any]:
    record_id, data, created, updated = row
    return {"id": record_id, "created": created, "updated": updated, **json.loads(data)}


def _document(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in _SYSTEM_FIELDS}


def _json_set_clause(data: dict[str, Any]) -> tuple[str, list[str]]:
    """Build a field-level ``json_set`` expression for a partial update."""
    parts = []
    params = []
    for field, value in data.items():
        _validate_field_name(field)
        parts.append(f"'$.{field}', json(?)")
        params.append(_dumps(value))
    return f"json_set(data, {', '.join(parts)})", params


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_event_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    # Check if we have a cached connection and verify the loop is still valid
    if cache_key in _db_connections:
        cached_conn = _db_connections[cache_key]
        if not loop.is_closed():
            return cached_conn
        async with _db_lock:
            _db_connections.pop(cache_key, None)

    async with _db_lock:
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_event_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": str(path)},
                )
    except (aiosqlite.Error, ValueError) as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema  # noqa: PLC0415 - schema imports this module

    await schema.init_db(db_path=db_path)


def _failure(operation: str, collection: str, error: Exception, **context: object) -> DatabaseError:
    if isinstance(error, aiosqlite.OperationalError) and "no such table" in str(error):
        logger.error("Table not found", extra={"collection": collection})
        return DatabaseError(f"Table '{collection}' does not exist. Call init_db() first.")
    logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(error), **context})
    return DatabaseError(f"Failed to {operation.replace('_', ' ')} in {collection}: {error}")


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new document and return it with its assigned id and timestamps."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        record_id = uuid.uuid4().hex
        now = _now()
        query = f"INSERT INTO {collection} (id, data, created, updated) VALUES (?, ?, ?, ?)"  # noqa: S608 - collection is validated
        await conn.execute(query, (record_id, _dumps(_document(data)), now, now))
        await conn.commit()

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return await get_record(collection=collection, record_id=record_id)
    except RecordNotFoundError:
        raise
    except Exception as e:
        raise _failure("create_record", collection, e) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        query = f"SELECT id, data, created, updated FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        row = await cursor.fetchone()

        if row is None:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return _row_to_record(row)
    except RecordNotFoundError:
        raise
    except Exception as e:
        raise _failure("get_record", collection, e, record_id=record_id) from e


async def get_first_record(*, collection: str, filter_query: str | Predicate) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, per_page=1)
    return records[0] if records else None


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Apply a field-level partial update and return the updated record.

    Only the given fields are written; concurrent writers touching other fields
    of the same document do not overwrite each other.
    """
    document = _document(data)
    if not document:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        set_expr, params = _json_set_clause(document)
        query = f"UPDATE {collection} SET data = {set_expr}, updated = ? WHERE id = ?"  # noqa: S608 - collection and fields are validated
        cursor = await conn.execute(query, [*params, _now(), record_id])
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info(
            "Updated record", extra={"collection": collection, "record_id": record_id, "fields": list(document)}
        )
        return await get_record(collection=collection, record_id=record_id)
    except RecordNotFoundError:
        raise
    except Exception as e:
        raise _failure("update_record", collection, e, record_id=record_id) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, (record_id,))
        await conn.commit()

        if cursor.rowcount == 0:
            msg = f"Record not found in {collection}: {record_id}"
            raise RecordNotFoundError(msg)

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except RecordNotFoundError:
        raise
    except Exception as e:
        raise _failure("delete_record", collection, e, record_id=record_id) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str | Predicate = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting (``field`` or ``-field``), and pagination."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause, params = _where(filter_query)
        offset = (max(page, 1) - 1) * per_page

        query = f"SELECT id, data, created, updated FROM {collection} {where_clause} ORDER BY {_order_by(sort)} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, [*params, per_page, offset])
        rows = await cursor.fetchall()

        records = [_row_to_record(row) for row in rows]
        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        raise _failure("list_records", collection, e) from e


async def count_records(*, collection: str, filter_query: str | Predicate = "") -> int:
    """Count records matching the filter."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause, params = _where(filter_query)
        query = f"SELECT COUNT(*) FROM {collection} {where_clause}"  # noqa: S608 - collection is validated
        cursor = await conn.execute(query, params)
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
    except Exception as e:
        raise _failure("count_records", collection, e) from e


async def update_many(*, collection: str, filter_query: str | Predicate, data: dict[str, Any]) -> int:
    """Apply a field-level patch to every matching record in one statement.

    Rows whose fields already hold the patched values are left untouched, so the
    return value is the number of records actually modified.
    """
    document = _document(data)
    if not document:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause, where_params = _where(filter_query)
        if not where_clause:
            msg = "update_many requires a filter"
            raise ValueError(msg)

        set_expr, set_params = _json_set_clause(document)
        changed = " OR ".join(f"{_column(field)} IS NOT json_extract(?, '$')" for field in document)
        changed_params = [_dumps(value) for value in document.values()]

        query = (
            f"UPDATE {collection} SET data = {set_expr}, updated = ? "  # noqa: S608 - collection and fields are validated
            f"{where_clause} AND ({changed})"
        )
        cursor = await conn.execute(query, [*set_params, _now(), *where_params, *changed_params])
        await conn.commit()

        modified = cursor.rowcount
        logger.info(
            "Updated records", extra={"collection": collection, "modified": modified, "fields": list(document)}
        )
        return modified
    except Exception as e:
        raise _failure("update_many", collection, e) from e


async def delete_many(*, collection: str, filter_query: str | Predicate) -> int:
    """Delete every matching record and return how many were removed."""
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause, params = _where(filter_query)
        if not where_clause:
            msg = "delete_many requires a filter"
            raise ValueError(msg)

        cursor = await conn.execute(f"DELETE FROM {collection} {where_clause}", params)  # noqa: S608 - collection is validated
        await conn.commit()

        deleted = cursor.rowcount
        logger.info("Deleted records", extra={"collection": collection, "deleted": deleted})
        return deleted
    except Exception as e:
        raise _failure("delete_many", collection, e) from e


async def aggregate_counts(
    *,
    collection: str,
    filter_query: str | Predicate = "",
    group_fields: list[str],
    sum_fields: list[str] | None = None,
) -> dict[str, Any]:
    """Count matching records grouped by each of the given fields.

    Returns:
        ``{"total": n, field: {value: count, ...}, ...}``, plus
        ``"sums": {field: total}`` when ``sum_fields`` is given
    """
    try:
        _validate_collection_name(collection)
        conn = await get_connection()

        where_clause, params = _where(filter_query)
        cursor = await conn.execute(f"SELECT COUNT(*) FROM {collection} {where_clause}", params)  # noqa: S608 - collection is validated
        row = await cursor.fetchone()
        result: dict[str, Any] = {"total": int(row[0]) if row else 0}

        for field in group_fields:
            _validate_field_name(field)
            expr = _column(field)
            query = f"SELECT {expr} AS value, COUNT(*) FROM {collection} {where_clause} GROUP BY value"  # noqa: S608 - collection and field are validated
            cursor = await conn.execute(query, params)
            result[field] = {value: int(count) for value, count in await cursor.fetchall()}

        if sum_fields:
            sums: dict[str, int] = {}
            for field in sum_fields:
                _validate_field_name(field)
                query = f"SELECT COALESCE(SUM({_column(field)}), 0) FROM {collection} {where_clause}"  # noqa: S608 - collection and field are validated
                cursor = await conn.execute(query, params)
                row = await cursor.fetchone()
                sums[field] = int(row[0]) if row else 0
            result["sums"] = sums

        return result
    except Exception as e:
        raise _failure("aggregate_counts", collection, e) from e
