import threading
import time

import pytest

from durableq.blocking import Cancelled, NoItemsWaiting, QueueError
from durableq.simple_queue import new_simple_queue


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "queue_test.db")


@pytest.fixture
def sq(db_path):
    q = new_simple_queue(db_path)
    yield q
    q.close()


def test_file_created_and_contents_persist(db_path):
    with new_simple_queue(db_path) as q:
        assert len(q) == 0
        q.enqueue(b"kept")
    with new_simple_queue(db_path) as q:
        assert len(q) == 1
        assert q.try_dequeue().item == b"kept"


def test_order_and_length(sq):
    items = [b"test item", b"item2", b"item3"]
    lengths = []
    for item in items:
        sq.enqueue(item)
        lengths.append(len(sq))
    assert lengths == [1, 2, 3]
    assert [sq.try_dequeue().item for _ in items] == items
    assert len(sq) == 0
    with pytest.raises(NoItemsWaiting):
        sq.try_dequeue()


def test_timed_dequeue_then_success(sq):
    with pytest.raises(Cancelled):
        sq.dequeue(timeout=0.1)
    sq.enqueue(b"test item")
    assert sq.dequeue().item == b"test item"


def test_dequeue_wakes_on_enqueue(sq):
    timer = threading.Timer(0.05, sq.enqueue, args=(b"late",))
    timer.start()
    try:
        got = sq.dequeue(timeout=5)
    finally:
        timer.join()
    assert got.item == b"late"


def test_dequeue_cancelled_by_event(sq):
    stop = threading.Event()
    stop.set()
    began = time.monotonic()
    with pytest.raises(Cancelled):
        sq.dequeue(cancel=stop)
    assert time.monotonic() - began < 1


def test_in_memory_queues_are_separate():
    with new_simple_queue("") as first, new_simple_queue(None) as second:
        first.enqueue(b"a")
        assert (len(first), len(second)) == (1, 0)
        assert first.name != second.name


def test_unopenable_path_raises(tmp_path):
    with pytest.raises(QueueError, match="database"):
        new_simple_queue(str(tmp_path / "missing" / "dir" / "queue.db"))