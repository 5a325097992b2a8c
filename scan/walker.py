#!/usr/bin/env python3
"""
Retention Cleaner: Depth-Aware Walker (v1)

Walks <root>/<tenant>/<device>/YYYY/MM/DD/HH/mm looking only at directories.

Depth is the number of path components below the data root:
  1 tenant, 2 device, 3-6 year/month/day/hour  -> descend
  7 minute                                     -> evaluate, then prune
  8+                                           -> prune

The walk itself knows nothing about retention: it asks a visit function
for a Visit decision per directory. MinuteEvaluator is the visit function
that turns minute directories into deletion candidates.

I/O notes:
- os.scandir + DirEntry.is_dir(follow_symlinks=False) classifies entries from
  d_type, so files and symlinks are never stat'd or followed.
- Unreadable directories are logged and pruned; the walk keeps going.
"""

from __future__ import annotations

import logging
import os
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from hold.retention import RetentionPolicy, cutoff_for, decode_minute_instant, is_expired

log = logging.getLogger(__name__)

TENANT_DEPTH = 1
DEVICE_DEPTH = 2
MINUTE_DEPTH = 7


class Visit(Enum):
    DESCEND = "descend"
    PRUNE = "prune"


Parts = Tuple[str, ...]
VisitFn = Callable[[str, Parts], Visit]


class RootUnreadableError(OSError):
    """The data root itself could not be listed."""


def list_subdirs(path: str) -> List[Tuple[str, str]]:
    """[(name, path), ...] of child directories, sorted by name. Raises OSError."""
    out: List[Tuple[str, str]] = []
    with os.scandir(path) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                out.append((entry.name, entry.path))
    out.sort()
    return out


def walk_dirs(
    base: str,
    visit: VisitFn,
    base_parts: Sequence[str] = (),
    cancel: Optional[threading.Event] = None,
    raise_on_base_error: bool = False,
) -> int:
    """
    Depth-first walk of the directories under `base` (base included).

    visit(path, parts) is called before a directory's children are listed;
    `parts` is `base_parts` plus the names below base. Returns the number
    of directories visited.

    Listing errors are logged and prune that directory only. With
    raise_on_base_error, a failure to list `base` itself is raised instead.
    """
    base = os.path.normpath(base)
    stack: List[Tuple[str, Parts]] = [(base, tuple(base_parts))]
    visited = 0

    while stack:
        if cancel is not None and cancel.is_set():
            break

        path, parts = stack.pop()
        visited += 1
        if visit(path, parts) is Visit.PRUNE:
            continue

        try:
            children = list_subdirs(path)
        except OSError as e:
            if raise_on_base_error and path == base:
                raise
            log.warning("walk: %s: %s", path, e)
            continue

        # reversed so the smallest name is popped first
        for name, child in reversed(children):
            stack.append((child, parts + (name,)))

    return visited


class MinuteEvaluator:
    """Visit function for one tenant subtree with a precomputed cutoff."""

    def __init__(
        self,
        cutoff: datetime,
        on_candidate: Callable[[str], None],
        on_scanned: Callable[[], object],
    ):
        self.cutoff = cutoff
        self.on_candidate = on_candidate
        self.on_scanned = on_scanned

    def __call__(self, path: str, parts: Parts) -> Visit:
        depth = len(parts)
        if depth < MINUTE_DEPTH:
            return Visit.DESCEND

        if depth == MINUTE_DEPTH:
            instant = decode_minute_instant(*parts[DEVICE_DEPTH:MINUTE_DEPTH])
            if instant is None:
                log.debug("malformed timestamp, skipping: %s", path)
            elif is_expired(instant, self.cutoff):
                self.on_candidate(path)
            self.on_scanned()
            return Visit.PRUNE

        # minute dirs are pruned, so this only fires if a caller walks
        # from below the minute level
        log.debug("depth %d below minute level, pruning: %s", depth, path)
        return Visit.PRUNE


def list_tenants(root: str) -> List[Tuple[str, str]]:
    try:
        return list_subdirs(root)
    except OSError as e:
        raise RootUnreadableError(e.errno, f"read root: {e.strerror or e}", root) from e


def walk_tenants(
    root: str,
    policy: RetentionPolicy,
    now_utc: datetime,
    on_candidate: Callable[[str], None],
    on_scanned: Callable[[], object],
    tenant: Optional[str] = None,
    cancel: Optional[threading.Event] = None,
) -> int:
    """
    Walk every tenant under root (or only `tenant`) and report expired
    minute directories through on_candidate.

    Retention and cutoff are resolved once per tenant. Returns the number
    of tenant subtrees walked; a tenant whose directory can't be listed
    is logged and not counted.
    """
    if tenant:
        tenants = [(tenant, os.path.join(root, tenant))]
        if not os.path.isdir(tenants[0][1]):
            log.warning("walk tenant %s: no such directory under %s", tenant, root)
            return 0
    else:
        tenants = list_tenants(root)

    walked = 0
    for name, path in tenants:
        if cancel is not None and cancel.is_set():
            break
        days = policy.retention_for(name)
        cutoff = cutoff_for(now_utc, days)
        log.debug("tenant %s: retention_days=%d cutoff=%s", name, days, cutoff.isoformat())

        evaluator = MinuteEvaluator(cutoff, on_candidate, on_scanned)
        try:
            walk_dirs(path, evaluator, base_parts=(name,), cancel=cancel, raise_on_base_error=True)
        except OSError as e:
            log.warning("walk tenant %s: %s", name, e)
            continue
        walked += 1

    return walked
