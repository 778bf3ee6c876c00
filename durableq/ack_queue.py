"""A queue whose items must be acknowledged; acknowledged items are kept as processed."""

from __future__ import annotations

from .queue import AckOpts, AcknowledgeableQueue
from .simple_queue import _ENQUEUE, _create_table, _open_queue, _take_oldest

_VISIBLE = "processed_at IS NULL AND (ack_deadline IS NULL OR ack_deadline < ?)"

_TEMPLATES = {
    "create_table_query": _create_table(
        "processed_at TIMESTAMP",
        "ack_deadline INTEGER",
        "retry_count INTEGER DEFAULT 0",
        indexes={"idx_processed": "processed_at", "idx_ack_deadline": "ack_deadline"},
    ),
    "enqueue_query": _ENQUEUE,
    "try_dequeue_query": _take_oldest("UPDATE {table} SET ack_deadline = ?", _VISIBLE),
    "ack_query": (
        "UPDATE {table} SET processed_at = CURRENT_TIMESTAMP "
        "WHERE id = ? AND ack_deadline >= ?"
    ),
    "len_query": f"SELECT COUNT(*) FROM {{table}} WHERE {_VISIBLE}",
}


def new_ack_queue(
    file_path: str | None = None, opts: AckOpts | None = None
) -> AcknowledgeableQueue:
    """Open an acknowledgeable queue stored in file_path, or in memory if it is empty."""
    return _open_queue(
        AcknowledgeableQueue,
        "ack_queue",
        file_path,
        _TEMPLATES,
        error="failed to create ack queue",
        opts=opts,
    )