#!/usr/bin/env python3
"""
Retention Cleaner: Run Counters & Progress (v1)

Four counters shared by the walker and the deletion workers:
  scanned     minute directories evaluated
  candidates  minute directories older than their tenant cutoff
  deleted     candidates removed (or that would be, in dry-run)
  failed      candidates whose removal raised

All mutation goes through RunCounters; readers get an immutable
CounterSnapshot. Progress and summary lines are single-line JSON
events written through the logger.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class CounterSnapshot:
    scanned: int = 0
    candidates: int = 0
    deleted: int = 0
    failed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)

    @property
    def settled(self) -> int:
        return self.deleted + self.failed


class RunCounters:
    """Lock-protected counters. Increments return the new value."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._scanned = 0
        self._candidates = 0
        self._deleted = 0
        self._failed = 0

    def add_scanned(self, n: int = 1) -> int:
        with self._lock:
            self._scanned += n
            return self._scanned

    def add_candidate(self, n: int = 1) -> int:
        with self._lock:
            self._candidates += n
            return self._candidates

    def add_deleted(self, n: int = 1) -> int:
        with self._lock:
            self._deleted += n
            return self._deleted

    def add_failed(self, n: int = 1) -> int:
        with self._lock:
            self._failed += n
            return self._failed

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                scanned=self._scanned,
                candidates=self._candidates,
                deleted=self._deleted,
                failed=self._failed,
            )


def emit(event: str, payload: Dict[str, Any], level: int = logging.INFO) -> None:
    log.log(level, json.dumps({"event": event, **payload}, ensure_ascii=False))


def mode_label(execute: bool) -> str:
    return "execute" if execute else "dry_run"


class ProgressReporter:
    """
    Emits a "progress" event every `every` scanned directories.

    every=0 disables periodic lines; the final summary is always emitted.
    """

    def __init__(self, counters: RunCounters, every: int):
        if every < 0:
            raise ValueError("progress interval must be >= 0")
        self.counters = counters
        self.every = every

    def on_scanned(self) -> int:
        n = self.counters.add_scanned()
        if self.every and n % self.every == 0:
            emit("progress", self.counters.snapshot().as_dict())
        return n

    def final(self, execute: bool, elapsed_sec: Optional[float] = None, cancelled: bool = False) -> CounterSnapshot:
        snap = self.counters.snapshot()
        payload: Dict[str, Any] = {**snap.as_dict(), "mode": mode_label(execute)}
        if elapsed_sec is not None:
            payload["elapsed_sec"] = round(elapsed_sec, 3)
        payload["cancelled"] = cancelled
        emit("cleaner_done", payload)
        return snap
