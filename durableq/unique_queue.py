"""A FIFO queue that ignores an item already waiting in it."""

from __future__ import annotations

from . import simple_queue as _base
from .queue import Queue


def new_unique_queue(file_path: str | None = None) -> Queue:
    """Open a unique queue stored in file_path, or in memory if it is empty."""
    templates = dict(
        create_table_query=_base._create_table("UNIQUE(item) ON CONFLICT IGNORE"),
        enqueue_query=_base._ENQUEUE,
        try_dequeue_query=_base._take_oldest("DELETE FROM {table}"),
        len_query="SELECT COUNT(*) FROM {table}",
    )
    return _base._open_queue(
        Queue, "unique_queue", file_path, templates, error="failed to create unique queue"
    )