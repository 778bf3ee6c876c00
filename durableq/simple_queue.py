"""A plain FIFO queue, and the schema helpers shared by every queue kind."""

from __future__ import annotations

import sqlite3
from collections.abc import Callable, Mapping
from typing import TypeVar

from .blocking import QueueError
from .db import determine_table_name, initialize_db, prepare_db
from .queue import Queue

_Q = TypeVar("_Q", bound=Queue)

_BASE_COLUMNS = (
    "id INTEGER PRIMARY KEY AUTOINCREMENT",
    "item BLOB NOT NULL",
    "enqueued_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP",
)

_ENQUEUE = "INSERT INTO {table} (item) VALUES (?)"


def _create_table(*columns: str, indexes: Mapping[str, str] | None = None) -> str:
    """Schema template: the common columns, the given extras and named indexes."""
    body = ",\n    ".join((*_BASE_COLUMNS, *columns))
    statements = [f"CREATE TABLE IF NOT EXISTS {{table}} (\n    {body}\n);"]
    statements += [
        f"CREATE INDEX IF NOT EXISTS {index} ON {{table}}({column});"
        for index, column in (indexes or {}).items()
    ]
    return "\n".join(statements)


def _take_oldest(action: str, condition: str | None = None) -> str:
    """Template that applies action to the oldest matching row and returns it."""
    where = f"WHERE {condition}" if condition else ""
    return (
        f"WITH oldest AS (SELECT id, item FROM {{table}} {where} "
        "ORDER BY enqueued_at ASC, id ASC LIMIT 1) "
        f"{action} WHERE id = (SELECT id FROM oldest) RETURNING id, item"
    )


def _open_queue(
    factory: Callable[..., _Q],
    prefix: str,
    file_path: str | None,
    templates: Mapping[str, str],
    *,
    error: str,
    prepare_error: str | None = None,
    **options: object,
) -> _Q:
    """Open the database, create the table and build a queue from the templates."""
    try:
        conn = initialize_db(file_path)
    except sqlite3.Error as exc:
        raise QueueError(f"{error}: {exc}") from exc

    table = determine_table_name(prefix, file_path)
    queries = {key: template.format(table=table) for key, template in templates.items()}
    others = [query for key, query in queries.items() if key != "create_table_query"]
    try:
        prepare_db(conn, queries["create_table_query"], *others)
    except sqlite3.Error as exc:
        conn.close()
        raise QueueError(f"{prepare_error or error}: {exc}") from exc

    return factory(conn, table, **queries, **options)


_TEMPLATES = {
    "create_table_query": _create_table(
        "processed_at TIMESTAMP", indexes={"idx_processed": "processed_at"}
    ),
    "enqueue_query": _ENQUEUE,
    "try_dequeue_query": _take_oldest(
        "UPDATE {table} SET processed_at = CURRENT_TIMESTAMP", "processed_at IS NULL"
    ),
    "len_query": "SELECT COUNT(*) FROM {table} WHERE processed_at IS NULL",
}


def new_simple_queue(file_path: str | None = None) -> Queue:
    """Open a simple queue stored in file_path, or in memory if it is empty."""
    return _open_queue(
        Queue,
        "simple_queue",
        file_path,
        _TEMPLATES,
        error="failed to open database",
        prepare_error="failed to prepare database",
    )