#!/usr/bin/env python3
"""
Retention Cleaner: Deletion Worker Pool (v1)

- WorkQueue: bounded FIFO with an explicit closed state (no sentinels)
- RateLimiter: fixed-interval pacing shared by all workers (1/rate seconds)
- DeletionPool: N threads draining the queue, one candidate per get()

Lifecycle:
  start() -> submit()* -> close() -> join()
Setting the cancel event (or calling cancel()) stops the run early: a worker
that sees it gives up its candidate and closes the queue, so a producer
blocked on a full queue gets QueueClosed.

Failures are per-candidate: logged, counted, never retried.
"""

from __future__ import annotations

import logging
import shutil
import threading
import time
from collections import deque
from typing import Callable, Deque, Generic, Iterator, List, Optional, TypeVar

from report.progress import RunCounters

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_QUEUE_SIZE = 1024


class QueueClosed(Exception):
    """Raised by put() after close(), and by get() once closed and drained."""


class WorkQueue(Generic[T]):
    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        if maxsize < 1:
            raise ValueError("queue size must be >= 1")
        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._closed = False

    def put(self, item: T) -> None:
        """Blocks while the queue is full."""
        with self._not_full:
            while len(self._items) >= self.maxsize and not self._closed:
                self._not_full.wait()
            if self._closed:
                raise QueueClosed("put on closed queue")
            self._items.append(item)
            self._not_empty.notify()

    def get(self) -> T:
        """Blocks while the queue is empty and still open."""
        with self._not_empty:
            while not self._items and not self._closed:
                self._not_empty.wait()
            if not self._items:
                raise QueueClosed("queue closed and drained")
            item = self._items.popleft()
            self._not_full.notify()
            return item

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._not_empty.notify_all()
            self._not_full.notify_all()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except QueueClosed:
                return


class RateLimiter:
    """
    Hands out admission slots spaced `1 / per_sec` seconds apart.

    Idle time does not accumulate credit: after a pause the next slot is
    "now", never a burst of back-dated ones.
    """

    def __init__(self, per_sec: float, clock: Callable[[], float] = time.monotonic):
        if per_sec <= 0:
            raise ValueError("rate must be > 0")
        self.interval = 1.0 / per_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._next: Optional[float] = None

    def reserve(self) -> float:
        """Claim the next slot; returns seconds to wait until it."""
        with self._lock:
            now = self._clock()
            slot = now if self._next is None or self._next < now else self._next
            self._next = slot + self.interval
        return slot - now

    def wait(self, cancel: threading.Event) -> bool:
        """Block until admitted. False if cancel was raised first."""
        delay = self.reserve()
        if delay > 0:
            return not cancel.wait(delay)
        return not cancel.is_set()


class DeletionPool:
    def __init__(
        self,
        workers: int,
        counters: RunCounters,
        execute: bool = False,
        deletes_per_sec: float = 0,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        cancel: Optional[threading.Event] = None,
        remove: Callable[[str], None] = shutil.rmtree,
    ):
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.workers = workers
        self.counters = counters
        self.execute = execute
        self.queue: WorkQueue[str] = WorkQueue(queue_size)
        self.limiter = RateLimiter(deletes_per_sec) if deletes_per_sec > 0 else None
        self.cancel_event = cancel if cancel is not None else threading.Event()
        self._remove = remove
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("pool already started")
        for i in range(self.workers):
            t = threading.Thread(target=self._work, name=f"delete-worker-{i}", daemon=True)
            t.start()
            self._threads.append(t)

    def submit(self, path: str) -> None:
        """Count `path` as a candidate and queue it; blocks when the queue is full."""
        self.counters.add_candidate()
        self.queue.put(path)

    def close(self) -> None:
        self.queue.close()

    def cancel(self) -> None:
        self.cancel_event.set()
        self.queue.close()

    def join(self) -> None:
        for t in self._threads:
            t.join()

    def __enter__(self) -> "DeletionPool":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is not None:
            self.cancel()
        self.close()
        self.join()

    def _work(self) -> None:
        for path in self.queue:
            admitted = not self.cancel_event.is_set() and (
                self.limiter is None or self.limiter.wait(self.cancel_event)
            )
            if not admitted:
                # a producer may be blocked on a full queue; release it
                self.queue.close()
                return
            self._process(path)

    def _process(self, path: str) -> None:
        if not self.execute:
            log.debug("would delete: %s", path)
            self.counters.add_deleted()
            return

        try:
            self._remove(path)
        except FileNotFoundError:
            # already gone: same end state as a successful delete
            log.debug("already deleted: %s", path)
        except OSError as e:
            log.warning("delete failed: %s: %s", path, e)
            self.counters.add_failed()
            return
        except Exception as e:
            # a dead worker would leave the walker blocked on a full queue
            log.exception("delete failed: %s: unexpected %r", path, e)
            self.counters.add_failed()
            return
        else:
            log.debug("deleted: %s", path)
        self.counters.add_deleted()
