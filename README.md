# durableq

Queues backed by SQLite. Items are stored as bytes in a SQLite table, either
in a database file (opened in WAL journal mode) or in memory. Queues kept in a
file survive restarts.

Four kinds of queue are available, each opened by a function in its own module:

| Function | Module | Behaviour |
| --- | --- | --- |
| `new_simple_queue` | `durableq.simple_queue` | First in, first out. Dequeued rows are kept and marked as processed. |
| `new_unique_queue` | `durableq.unique_queue` | Enqueuing an item that is already waiting is ignored. Dequeued rows are deleted. |
| `new_ack_queue` | `durableq.ack_queue` | A dequeued item must be acknowledged before its ack deadline. Acknowledged rows are kept and marked as processed. |
| `new_unique_ack_queue` | `durableq.unique_ack_queue` | An ack queue that ignores duplicate items. Acknowledged rows are deleted. |

Pass an empty string (or `None`) as the file path to keep the queue in memory.
Each in-memory queue has its own database and is gone once closed.

## Installation

```
pip install durableq
```

## Simple queue

```python
from durableq.simple_queue import new_simple_queue
from durableq.blocking import NoItemsWaiting

with new_simple_queue("") as queue:
    for item in (b"item1", b"item2", b"item3"):
        queue.enqueue(item)

    msg = queue.try_dequeue()            # does not wait
    print(msg.id, msg.item)              # 1 b"item1"

    msg = queue.dequeue(timeout=2.0)     # waits up to two seconds
    print(msg.item)                      # b"item2"

    try:
        while True:
            print(queue.try_dequeue().item)
    except NoItemsWaiting:
        pass
```

Every queue is a context manager that closes its database connection on exit;
`close()` does the same.

- `try_dequeue()` returns a `Msg` (with `id` and `item`) or raises
  `NoItemsWaiting` when nothing is ready.
- `dequeue(timeout=None, cancel=None)` polls until an item is ready, waking
  early when an item is enqueued on the same queue object. It raises
  `Cancelled` when `timeout` seconds pass or the `threading.Event` passed as
  `cancel` is set.
- `try_enqueue(item)` raises `DBLocked` if the database is locked;
  `enqueue(item, timeout=None, cancel=None)` retries while it is locked.

A queue object may be shared between threads; calls on it are serialised.

## Acknowledgement

```python
from durableq.queue import AckOpts
from durableq.ack_queue import new_ack_queue

opts = AckOpts(ack_timeout=5.0, max_retries=3, retry_backoff=1.0)

with new_ack_queue("jobs.db", opts) as queue:
    queue.enqueue(b"process me")
    msg = queue.dequeue()
    queue.ack(msg.id)        # done with it

    queue.enqueue(b"fail me")
    msg = queue.dequeue()
    queue.nack(msg.id)       # try again later
```

`AckOpts` fields (times in seconds, deadlines kept to whole seconds):

- `ack_timeout`: how long a dequeued item stays hidden waiting for an ack.
- `max_retries`: how many negative acknowledgements an item may take before it
  fails; `-1` (`durableq.queue.INFINITE_RETRIES`) means no limit.
- `retry_backoff`: after a nack the item stays hidden for the larger of
  `retry_backoff` and `ack_timeout`.
- `failure_callbacks`: callables given each `Msg` that fails.

If an item is not acknowledged before its deadline it becomes available to
`dequeue` again. `ack` after the deadline has passed changes nothing.
`nack` raises `QueueError` when the deadline has passed or the id is unknown.
`expire_ack(msg_id)` moves an item's deadline into the past so it can be
dequeued again at once.

`ack`/`nack` retry while the database is locked; `try_ack`/`try_nack` do not.

## Failures and dead letter queues

```python
from durableq.queue import AckOpts
from durableq.ack_queue import new_ack_queue
from durableq.simple_queue import new_simple_queue

main = new_ack_queue("", AckOpts(ack_timeout=3600.0, max_retries=2))
dlq = new_simple_queue("")
main.register_dead_letter_queue(dlq)
```

A nack on an item that has already been retried `max_retries` times removes it
from the queue and passes it to every failure callback in turn; with
`max_retries=2` that is the third nack. `register_dead_letter_queue(dlq)`
registers a callback that enqueues the item on `dlq`. Any callable taking a
`Msg` can be added with `register_on_failure_callback` (or its alias
`register_behaviour_on_failure`). An exception from a callback is raised from
`nack` as a `QueueError`.

## Length

`len(queue)` gives the number of items ready to be dequeued now: for ack
queues, items being processed (dequeued and not yet past their deadline) are
not counted.

## Errors

All errors live in `durableq.blocking` and derive from `QueueError`:
`NoItemsWaiting`, `DBLocked` and `Cancelled`. Failing to open or set up a
queue's database also raises `QueueError`.

## What is not included

durableq is a library only: it has no command-line tool, no server and no
asyncio interface. Blocking calls wait on threads and poll the database.