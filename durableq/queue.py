"""Queues stored in SQLite, with optional acknowledgement of messages."""

from __future__ import annotations

import dataclasses
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .blocking import (
    DBLocked,
    NoItemsWaiting,
    QueueError,
    ack_blocking,
    dequeue_blocking,
    enqueue_blocking,
    is_locked_error,
    nack_blocking,
)

INFINITE_RETRIES = -1
DEFAULT_POLL_INTERVAL = 0.01

_SELECT_ITEM_DETAILS = "SELECT retry_count, ack_deadline FROM {} WHERE id = ?"
_DELETE_ITEM = "DELETE FROM {} WHERE id = ? RETURNING item"
_UPDATE_FOR_RETRY = (
    "UPDATE {} SET ack_deadline = ?, retry_count = retry_count + 1 WHERE id = ?"
)
_EXPIRE_ACK_DEADLINE = "UPDATE {} SET ack_deadline = ? WHERE id = ?"


@dataclass(frozen=True)
class Msg:
    """A message taken from a queue."""

    id: int
    item: bytes


FailureCallback = Callable[[Msg], Any]


@dataclass
class AckOpts:
    """How a queue handles acknowledgement; durations are in seconds."""

    ack_timeout: float = 0.0
    max_retries: int = 0
    retry_backoff: float = 0.0
    failure_callbacks: list[FailureCallback] = field(default_factory=list)


class _Enqueuer(Protocol):
    def enqueue(
        self,
        item: bytes,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None: ...


def _now() -> int:
    return int(time.time())


class Queue:
    """A durable FIFO queue held in one SQLite table."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        name: str,
        *,
        enqueue_query: str,
        try_dequeue_query: str,
        len_query: str,
        create_table_query: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.conn = conn
        self.name = name
        self.poll_interval = poll_interval
        self.create_table_query = create_table_query
        self.enqueue_query = enqueue_query
        self.try_dequeue_query = try_dequeue_query
        self.len_query = len_query
        self._lock = threading.Lock()
        self._notify = threading.Event()

    def _fetch(self, query: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            cursor = self.conn.execute(query, params)
            try:
                return cursor.fetchall()
            finally:
                cursor.close()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self.conn.close()

    def __enter__(self) -> Queue:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __len__(self) -> int:
        return self._fetch(self.len_query)[0][0]

    def enqueue(
        self,
        item: bytes,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Add an item, waiting while the database is locked."""
        enqueue_blocking(self.try_enqueue, item, DEFAULT_POLL_INTERVAL, timeout, cancel)

    def try_enqueue(self, item: bytes) -> None:
        """Add an item; raises DBLocked at once if the database is locked."""
        try:
            self._fetch(self.enqueue_query, (bytes(item),))
        except sqlite3.Error as exc:
            if is_locked_error(exc):
                raise DBLocked() from exc
            raise
        self._notify.set()

    def dequeue(
        self, timeout: float | None = None, cancel: threading.Event | None = None
    ) -> Msg:
        """Take the next item, waiting until one is available."""
        return dequeue_blocking(
            self.try_dequeue, self.poll_interval, self._notify, timeout, cancel
        )

    def try_dequeue(self) -> Msg:
        """Take the next item; raises NoItemsWaiting if there is none."""
        return self._dequeue_row(self._fetch(self.try_dequeue_query))

    @staticmethod
    def _dequeue_row(rows: list[tuple]) -> Msg:
        if not rows:
            raise NoItemsWaiting()
        msg_id, item = rows[0]
        return Msg(id=msg_id, item=bytes(item))


class AcknowledgeableQueue(Queue):
    """A queue whose messages must be acknowledged within a deadline."""

    def __init__(
        self,
        conn: sqlite3.Connection,
        name: str,
        *,
        enqueue_query: str,
        try_dequeue_query: str,
        len_query: str,
        ack_query: str,
        opts: AckOpts | None = None,
        create_table_query: str = "",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        super().__init__(
            conn,
            name,
            enqueue_query=enqueue_query,
            try_dequeue_query=try_dequeue_query,
            len_query=len_query,
            create_table_query=create_table_query,
            poll_interval=poll_interval,
        )
        opts = opts if opts is not None else AckOpts()
        self.opts = dataclasses.replace(
            opts, failure_callbacks=list(opts.failure_callbacks)
        )
        self.ack_query = ack_query

    def __len__(self) -> int:
        return self._fetch(self.len_query, (_now(),))[0][0]

    def try_dequeue(self) -> Msg:
        """Take the next visible item and hide it until its ack deadline."""
        ack_deadline = int(time.time() + self.opts.ack_timeout)
        rows = self._fetch(self.try_dequeue_query, (_now(), ack_deadline))
        return self._dequeue_row(rows)

    def try_ack(self, msg_id: int) -> None:
        """Acknowledge a message whose deadline has not passed."""
        self._fetch(self.ack_query, (msg_id, _now()))

    def ack(
        self,
        msg_id: int,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Acknowledge a message, waiting while the database is locked."""
        ack_blocking(self.try_ack, msg_id, self.poll_interval, timeout, cancel)

    def try_nack(self, msg_id: int) -> None:
        """Mark a message as failed.

        It is retried after the backoff, or removed and handed to the failure
        callbacks once it has run out of retries.
        """
        failed = self._nack_in_transaction(msg_id)
        if failed is None:
            return
        for callback in self.opts.failure_callbacks:
            try:
                callback(failed)
            except Exception as exc:
                raise QueueError("failed to execute failure callback") from exc

    def _nack_in_transaction(self, msg_id: int) -> Msg | None:
        opts = self.opts
        with self._lock:
            self.conn.execute("BEGIN IMMEDIATE")
            try:
                row = self.conn.execute(
                    _SELECT_ITEM_DETAILS.format(self.name), (msg_id,)
                ).fetchone()
                if row is None:
                    raise QueueError(f"failed to get item details: no item {msg_id}")
                retry_count, ack_deadline = row
                if ack_deadline is None:
                    raise QueueError(
                        f"failed to get item details: item {msg_id} has no ack deadline"
                    )
                if ack_deadline < _now():
                    raise QueueError("ack deadline has expired, cannot nack")

                if opts.max_retries != INFINITE_RETRIES and retry_count >= opts.max_retries:
                    deleted = self.conn.execute(
                        _DELETE_ITEM.format(self.name), (msg_id,)
                    ).fetchall()
                    self.conn.execute("COMMIT")
                    return Msg(id=msg_id, item=bytes(deleted[0][0]))

                new_deadline = int(
                    time.time() + max(opts.retry_backoff, opts.ack_timeout)
                )
                self.conn.execute(
                    _UPDATE_FOR_RETRY.format(self.name), (new_deadline, msg_id)
                )
                self.conn.execute("COMMIT")
                return None
            except BaseException:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise

    def nack(
        self,
        msg_id: int,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Mark a message as failed, waiting while the database is locked."""
        nack_blocking(self.try_nack, msg_id, self.poll_interval, timeout, cancel)

    def expire_ack(self, msg_id: int) -> None:
        """Move a message's ack deadline into the past so it can be taken again."""
        expired = int(time.time() - 1)
        self._fetch(_EXPIRE_ACK_DEADLINE.format(self.name), (expired, msg_id))

    def register_on_failure_callback(self, fn: FailureCallback) -> None:
        """Call fn with each message that runs out of retries."""
        self.opts.failure_callbacks.append(fn)

    def register_behaviour_on_failure(self, fn: FailureCallback) -> None:
        """Call fn with each message that runs out of retries."""
        self.opts.failure_callbacks.append(fn)

    def register_dead_letter_queue(self, dlq: _Enqueuer) -> None:
        """Send messages that run out of retries to another queue."""
        self.register_on_failure_callback(lambda msg: dlq.enqueue(msg.item))