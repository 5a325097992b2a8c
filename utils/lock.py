# utils/lock.py
"""
File locking utility for cleanup runs.

Prevents two cleaners from working the same host at once by using a file lock.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

from filelock import FileLock, Timeout

log = logging.getLogger(__name__)

# Default lock timeout: a second cleaner should give up quickly, not queue behind a long scan
DEFAULT_LOCK_TIMEOUT = 10  # seconds

# Lock file location (can be overridden)
DEFAULT_LOCK_FILE = Path("/tmp/retention_cleaner.lock")


def run_with_lock(
    fn: Callable[[], int],
    lock_file: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> int:
    """
    Run `fn` while holding the cleaner's file lock.

    Args:
        fn: Callable returning a process exit code
        lock_file: Path to lock file (defaults to /tmp/retention_cleaner.lock)
        timeout: Lock acquisition timeout in seconds (defaults to 10)

    Returns:
        Exit code from fn, or 1 if the lock could not be acquired or fn raised
    """
    if lock_file is None:
        lock_file = DEFAULT_LOCK_FILE
    if timeout is None:
        timeout = DEFAULT_LOCK_TIMEOUT

    lock = FileLock(str(lock_file), timeout=timeout)

    try:
        with lock:
            log.info(f"Acquired lock: {lock_file}")
            return fn()
    except Timeout:
        log.error(f"Could not acquire lock {lock_file} within {timeout}s. Another cleaner may be running.")
        return 1
    except Exception as e:
        log.exception(f"Error during locked cleanup run: {e}")
        return 1
