"""Opening and preparing the SQLite databases that back the queues."""

from __future__ import annotations

import itertools
import logging
import sqlite3
import threading

logger = logging.getLogger(__name__)

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def initialize_db(file_name: str | None) -> sqlite3.Connection:
    """Open the database for a queue.

    An empty or missing file name gives an in-memory database; otherwise the
    file is opened (and created if needed) in WAL journal mode.
    """
    if not file_name:
        logger.info("Using in-memory database")
        target = ":memory:"
    else:
        logger.info("Using SQLite database at %s", file_name)
        target = file_name

    conn = sqlite3.connect(target, check_same_thread=False, isolation_level=None)
    if file_name:
        conn.execute("PRAGMA journal_mode=WAL").fetchall()
    return conn


def prepare_db(conn: sqlite3.Connection, create_table_query: str, *args: str) -> None:
    """Create the queue's table and check that every query compiles against it."""
    conn.executescript(create_table_query)
    for query in args:
        placeholders = (None,) * query.count("?")
        cursor = conn.execute("EXPLAIN " + query.strip(), placeholders)
        try:
            cursor.fetchall()
        finally:
            cursor.close()


def determine_table_name(prefix: str, file_name: str | None) -> str:
    """Return the table name for a queue.

    Queues kept in memory get a name made unique with a process-wide counter;
    queues kept in a file use the prefix alone.
    """
    if not file_name:
        with _counter_lock:
            number = next(_counter)
        return f"{prefix}_{number}"
    return prefix