#!/usr/bin/env python3
"""
Retention Cleaner runner

Runs a single cleanup pass:
- load retention config
- walk <root>/<tenant>/<device>/YYYY/MM/DD/HH/mm
- delete (or, by default, just count) minute dirs past their tenant's window

Designed to be executed by a systemd timer or cron. Requires --execute to
actually delete anything.

Exit codes:
  0    run completed (per-directory failures are reported in the summary)
  1    fatal runtime error (unreadable data root, lock held elsewhere)
  2    bad arguments or configuration
  130  cancelled by SIGINT/SIGTERM
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from dateutil import parser as dtparser

from hold.retention import ConfigError, load_policy
from purge.cleaner import DEFAULT_LOG_EVERY, RunOptions, default_workers, run_cleanup, utc_now
from purge.workers import DEFAULT_QUEUE_SIZE
from scan.walker import RootUnreadableError
from utils.lock import DEFAULT_LOCK_FILE, DEFAULT_LOCK_TIMEOUT, run_with_lock

log = logging.getLogger("retention-cleaner")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )


def parse_now(s: Optional[str]) -> datetime:
    """Reference instant for the run; naive values are taken as UTC."""
    if not s:
        return utc_now()
    dt = dtparser.parse(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Delete minute partitions older than each tenant's retention window")
    ap.add_argument("--root", default="/data", help="Data root directory, e.g. /data")
    ap.add_argument("--config", default="./config.json", help="Path to retention config (JSON or YAML)")
    ap.add_argument("--execute", action="store_true", help="Perform deletions (default: dry-run)")
    ap.add_argument("--workers", type=int, default=default_workers(), help="Concurrent delete workers")
    ap.add_argument("--deletes-per-sec", type=int, default=20, help="Max deletions per second (0 = unlimited)")
    ap.add_argument("--log-every", type=int, default=DEFAULT_LOG_EVERY, help="Log progress every N minute-dirs scanned (0 = off)")
    ap.add_argument("--tenant", "--company", dest="tenant", default=None, help="If set, only process this tenant id")
    ap.add_argument("--now", default=None, help="Reference instant (ISO 8601, UTC if no offset). Defaults to current time")
    ap.add_argument("--queue-size", type=int, default=DEFAULT_QUEUE_SIZE, help="Pending deletions before the scan blocks")
    ap.add_argument("--lock-file", default=str(DEFAULT_LOCK_FILE), help="Single-instance lock file")
    ap.add_argument("--lock-timeout", type=float, default=DEFAULT_LOCK_TIMEOUT, help="Seconds to wait for the lock")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return ap


def install_cancel_handlers(cancel: threading.Event) -> dict:
    """Route SIGINT/SIGTERM to the run's cancel event. Returns the previous handlers."""
    def _handler(signum, frame):
        log.warning(f"Received signal {signum}, cancelling run")
        cancel.set()

    previous = {}
    for sig in (signal.SIGINT, signal.SIGTERM):
        previous[sig] = signal.signal(sig, _handler)
    return previous


def restore_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    try:
        now_utc = parse_now(args.now)
    except (ValueError, OverflowError) as e:
        print(f"ERROR: invalid --now {args.now!r}: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        policy = load_policy(Path(args.config))
    except ConfigError as e:
        log.error(f"load config: {e}")
        return EXIT_USAGE

    try:
        opts = RunOptions(
            root=args.root,
            execute=args.execute,
            workers=args.workers,
            deletes_per_sec=args.deletes_per_sec,
            log_every=args.log_every,
            tenant=args.tenant or None,
            now_utc=now_utc,
            queue_size=args.queue_size,
        )
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_USAGE

    cancel = threading.Event()

    def _run() -> int:
        try:
            result = run_cleanup(opts, policy, cancel=cancel)
        except RootUnreadableError as e:
            log.error(f"walk error: {e}")
            return EXIT_FATAL
        return EXIT_CANCELLED if result.cancelled else EXIT_OK

    previous = install_cancel_handlers(cancel)
    try:
        return run_with_lock(_run, lock_file=Path(args.lock_file), timeout=args.lock_timeout)
    finally:
        restore_handlers(previous)


if __name__ == "__main__":
    sys.exit(main())
