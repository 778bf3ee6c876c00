import sqlite3
import threading
import time

import pytest

from durableq.blocking import (
    Cancelled,
    DBLocked,
    NoItemsWaiting,
    QueueError,
    ack_blocking,
    dequeue_blocking,
    enqueue_blocking,
    is_locked_error,
    nack_blocking,
)

SQLITE_LOCKED = sqlite3.OperationalError("database table is locked")


class Flaky:
    """Raises the given errors in turn, then returns the value."""

    def __init__(self, errors, value=None):
        self.errors = list(errors)
        self.value = value
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args)
        if self.errors:
            raise self.errors.pop(0)
        return self.value


def test_error_messages():
    assert str(NoItemsWaiting()) == "no items waiting"
    assert str(DBLocked()) == "database table is locked"
    assert isinstance(Cancelled(), QueueError)


@pytest.mark.parametrize(
    "error, expected",
    [(SQLITE_LOCKED, True), (DBLocked(), True), (ValueError("something else"), False)],
)
def test_is_locked_error(error, expected):
    assert is_locked_error(error) is expected


def test_dequeue_returns_after_empty_attempts():
    fake = Flaky([NoItemsWaiting(), NoItemsWaiting()], value="item")
    assert dequeue_blocking(fake, 0.001) == "item"
    assert len(fake.calls) == 3


def test_dequeue_times_out():
    fake = Flaky([NoItemsWaiting()] * 1000)
    start = time.monotonic()
    with pytest.raises(Cancelled):
        dequeue_blocking(fake, 0.01, timeout=0.1)
    assert time.monotonic() - start >= 0.1


def test_dequeue_honours_cancel_event():
    cancel = threading.Event()
    cancel.set()
    fake = Flaky([NoItemsWaiting()] * 10)
    with pytest.raises(Cancelled):
        dequeue_blocking(fake, 0.01, cancel=cancel)
    assert len(fake.calls) == 1


def test_dequeue_propagates_other_errors():
    fake = Flaky([RuntimeError("boom")])
    with pytest.raises(RuntimeError):
        dequeue_blocking(fake, 0.001)
    assert len(fake.calls) == 1


def test_dequeue_wakes_on_notify():
    notify = threading.Event()
    fake = Flaky([NoItemsWaiting()], value="woken")
    timer = threading.Timer(0.05, notify.set)
    timer.start()
    start = time.monotonic()
    try:
        result = dequeue_blocking(fake, 10.0, notify=notify, timeout=20.0)
    finally:
        timer.cancel()
    assert result == "woken"
    assert time.monotonic() - start < 5.0
    assert not notify.is_set()


def test_enqueue_retries_while_locked():
    fake = Flaky([DBLocked(), DBLocked()])
    enqueue_blocking(fake, b"data", 0.001)
    assert fake.calls == [(b"data",)] * 3


def test_ack_retries_while_locked():
    fake = Flaky([SQLITE_LOCKED, SQLITE_LOCKED])
    ack_blocking(fake, 7, 0.001)
    assert fake.calls == [(7,)] * 3


def test_nack_retries_while_locked():
    fake = Flaky([DBLocked(), DBLocked()])
    nack_blocking(fake, 3, 0.001)
    assert fake.calls == [(3,)] * 3


def test_enqueue_times_out_while_locked():
    fake = Flaky([DBLocked()] * 1000)
    with pytest.raises(Cancelled):
        enqueue_blocking(fake, b"data", 0.01, timeout=0.05)
    assert len(fake.calls) >= 1


def test_ack_times_out_while_locked():
    fake = Flaky([SQLITE_LOCKED] * 1000)
    with pytest.raises(Cancelled):
        ack_blocking(fake, 7, 0.01, timeout=0.05)
    assert len(fake.calls) >= 1


def test_nack_times_out_while_locked():
    fake = Flaky([DBLocked()] * 1000)
    with pytest.raises(Cancelled):
        nack_blocking(fake, 3, 0.01, timeout=0.05)
    assert len(fake.calls) >= 1


def test_nack_cancelled_while_locked():
    cancel = threading.Event()
    cancel.set()
    with pytest.raises(Cancelled):
        nack_blocking(Flaky([DBLocked()] * 10), 3, 0.001, cancel=cancel)


def test_enqueue_other_errors_propagate_at_once():
    fake = Flaky([sqlite3.IntegrityError("constraint")])
    with pytest.raises(sqlite3.IntegrityError):
        enqueue_blocking(fake, b"data", 0.001)
    assert fake.calls == [(b"data",)]


def test_ack_other_errors_propagate_at_once():
    fake = Flaky([sqlite3.OperationalError("no such table: x")])
    with pytest.raises(sqlite3.OperationalError):
        ack_blocking(fake, 7, 0.001)
    assert fake.calls == [(7,)]


def test_nack_other_errors_propagate_at_once():
    fake = Flaky([QueueError("ack deadline has expired, cannot nack")])
    with pytest.raises(QueueError, match="ack deadline has expired"):
        nack_blocking(fake, 3, 0.001)
    assert fake.calls == [(3,)]