#!/usr/bin/env python3
"""
Retention Cleaner: Run Orchestration (v1)

One run =
  1) start the deletion pool
  2) walk tenants, feeding expired minute dirs into the pool
  3) close the queue, wait for workers to drain it
  4) emit the final summary

Safety:
- Defaults to dry-run (counts only, filesystem untouched)
- execute=True is required to actually delete
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from hold.retention import RetentionPolicy
from purge.workers import DEFAULT_QUEUE_SIZE, DeletionPool, QueueClosed
from report.progress import CounterSnapshot, ProgressReporter, RunCounters, emit, mode_label
from scan.walker import walk_tenants

log = logging.getLogger(__name__)

DEFAULT_LOG_EVERY = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def default_workers() -> int:
    return min(4, os.cpu_count() or 1)


@dataclass(frozen=True)
class RunOptions:
    root: str
    execute: bool = False
    workers: int = field(default_factory=default_workers)
    deletes_per_sec: int = 0          # 0 = unlimited
    log_every: int = DEFAULT_LOG_EVERY  # 0 = no periodic progress lines
    tenant: Optional[str] = None
    now_utc: datetime = field(default_factory=utc_now)
    queue_size: int = DEFAULT_QUEUE_SIZE

    def __post_init__(self) -> None:
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.deletes_per_sec < 0:
            raise ValueError("deletes-per-sec must be >= 0")
        if self.log_every < 0:
            raise ValueError("log-every must be >= 0")
        if self.queue_size < 1:
            raise ValueError("queue-size must be >= 1")
        if self.tenant is not None:
            if self.tenant in ("", ".", "..") or os.sep in self.tenant or (os.altsep and os.altsep in self.tenant):
                raise ValueError(f"tenant must be a single directory name, got {self.tenant!r}")
        if self.now_utc.tzinfo is None:
            raise ValueError("now_utc must be timezone-aware")
        object.__setattr__(self, "now_utc", self.now_utc.astimezone(timezone.utc))


@dataclass(frozen=True)
class RunResult:
    counters: CounterSnapshot
    execute: bool
    cancelled: bool
    elapsed_sec: float

    @property
    def mode(self) -> str:
        return mode_label(self.execute)


def run_cleanup(
    opts: RunOptions,
    policy: RetentionPolicy,
    cancel: Optional[threading.Event] = None,
    remove: Callable[[str], None] = shutil.rmtree,
) -> RunResult:
    """
    Scan opts.root and remove (or count, in dry-run) expired minute dirs.

    Raises RootUnreadableError if the data root can't be listed; every
    other error is absorbed into logs and counters.
    """
    if cancel is None:
        cancel = threading.Event()

    counters = RunCounters()
    progress = ProgressReporter(counters, opts.log_every)

    emit(
        "cleaner_start",
        {
            "root": opts.root,
            "mode": mode_label(opts.execute),
            "workers": opts.workers,
            "deletes_per_sec": opts.deletes_per_sec,
            "log_every": opts.log_every,
            "tenant": opts.tenant,
            "now_utc": opts.now_utc.isoformat(timespec="seconds"),
        },
    )

    started = time.monotonic()
    pool = DeletionPool(
        workers=opts.workers,
        counters=counters,
        execute=opts.execute,
        deletes_per_sec=opts.deletes_per_sec,
        queue_size=opts.queue_size,
        cancel=cancel,
        remove=remove,
    )
    pool.start()
    try:
        walk_tenants(
            opts.root,
            policy,
            opts.now_utc,
            on_candidate=pool.submit,
            on_scanned=progress.on_scanned,
            tenant=opts.tenant,
            cancel=cancel,
        )
    except QueueClosed:
        log.info("walk stopped: run cancelled")
    except BaseException:
        pool.cancel()
        raise
    finally:
        pool.close()
        pool.join()

    elapsed = time.monotonic() - started
    cancelled = cancel.is_set()
    snap = progress.final(opts.execute, elapsed_sec=elapsed, cancelled=cancelled)
    return RunResult(counters=snap, execute=opts.execute, cancelled=cancelled, elapsed_sec=elapsed)
