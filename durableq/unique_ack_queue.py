"""An acknowledgeable queue that ignores duplicates and deletes items once acknowledged."""

from __future__ import annotations

from .queue import AckOpts, AcknowledgeableQueue
from .simple_queue import _ENQUEUE, _create_table, _open_queue, _take_oldest

_UNCLAIMED = "ack_deadline IS NULL OR ack_deadline < ?"

_TEMPLATES = {
    "create_table_query": _create_table(
        "ack_deadline INTEGER",
        "retry_count INTEGER DEFAULT 0",
        "UNIQUE(item) ON CONFLICT IGNORE",
        indexes={"idx_ack_deadline": "ack_deadline"},
    ),
    "enqueue_query": _ENQUEUE,
    "try_dequeue_query": _take_oldest(
        "UPDATE {table} SET ack_deadline = ?", f"({_UNCLAIMED})"
    ),
    "ack_query": "DELETE FROM {table} WHERE id = ? AND ack_deadline >= ?",
    "len_query": f"SELECT COUNT(*) FROM {{table}} WHERE {_UNCLAIMED}",
}


def new_unique_ack_queue(
    file_path: str | None = None, opts: AckOpts | None = None
) -> AcknowledgeableQueue:
    """Open a unique acknowledgeable queue stored in file_path, or in memory."""
    return _open_queue(
        AcknowledgeableQueue,
        "unique_ack_queue",
        file_path,
        _TEMPLATES,
        error="failed to create unique ack queue",
        opts=opts,
    )