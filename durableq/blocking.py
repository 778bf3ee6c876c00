"""Errors and the retry loops that turn non-blocking queue calls into blocking ones."""

from __future__ import annotations

import sqlite3
import threading
import time
from typing import Callable, TypeVar

T = TypeVar("T")

_LOCKED_MESSAGES = ("database table is locked", "database is locked")


class QueueError(Exception):
    """Base class for queue errors."""


class NoItemsWaiting(QueueError):
    """Raised when there is nothing to dequeue."""

    def __init__(self, message: str = "no items waiting") -> None:
        super().__init__(message)


class DBLocked(QueueError):
    """Raised when the database is locked by another writer."""

    def __init__(self, message: str = "database table is locked") -> None:
        super().__init__(message)


class Cancelled(QueueError):
    """Raised when a blocking call is cancelled or runs out of time."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__(message)


def is_locked_error(error: BaseException) -> bool:
    """Tell whether an error means the database is locked and may be retried."""
    text = str(error)
    return any(message in text for message in _LOCKED_MESSAGES)


def _deadline(timeout: float | None) -> float | None:
    return None if timeout is None else time.monotonic() + timeout


def _pause(
    poll_interval: float,
    deadline: float | None,
    cancel: threading.Event | None,
    notify: threading.Event | None = None,
) -> None:
    """Wait before the next attempt, raising Cancelled when time is up."""
    if cancel is not None and cancel.is_set():
        raise Cancelled()
    wait = poll_interval
    if deadline is not None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise Cancelled()
        wait = min(wait, remaining)

    if notify is not None:
        if notify.wait(wait):
            notify.clear()
    elif cancel is not None:
        cancel.wait(wait)
    else:
        time.sleep(wait)

    if cancel is not None and cancel.is_set():
        raise Cancelled()


def dequeue_blocking(
    try_dequeue: Callable[[], T],
    poll_interval: float,
    notify: threading.Event | None = None,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> T:
    """Call try_dequeue until it yields an item.

    Waits between attempts for the poll interval or until notify is set.
    Raises Cancelled when the timeout passes or cancel is set.
    """
    deadline = _deadline(timeout)
    while True:
        try:
            return try_dequeue()
        except NoItemsWaiting:
            pass
        _pause(poll_interval, deadline, cancel, notify)


def enqueue_blocking(
    try_enqueue: Callable[[bytes], None],
    item: bytes,
    poll_interval: float,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Call try_enqueue, retrying while the database is locked."""
    deadline = _deadline(timeout)
    while True:
        try:
            try_enqueue(item)
            return
        except DBLocked:
            pass
        _pause(poll_interval, deadline, cancel)


def _retry_while_locked(
    operation: Callable[[int], None],
    msg_id: int,
    poll_interval: float,
    timeout: float | None,
    cancel: threading.Event | None,
) -> None:
    deadline = _deadline(timeout)
    while True:
        try:
            operation(msg_id)
            return
        except (sqlite3.Error, QueueError) as exc:
            if not is_locked_error(exc):
                raise
        _pause(poll_interval, deadline, cancel)


def ack_blocking(
    try_ack: Callable[[int], None],
    msg_id: int,
    poll_interval: float,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Call try_ack, retrying while the database is locked."""
    _retry_while_locked(try_ack, msg_id, poll_interval, timeout, cancel)


def nack_blocking(
    try_nack: Callable[[int], None],
    msg_id: int,
    poll_interval: float,
    timeout: float | None = None,
    cancel: threading.Event | None = None,
) -> None:
    """Call try_nack, retrying while the database is locked."""
    _retry_while_locked(try_nack, msg_id, poll_interval, timeout, cancel)