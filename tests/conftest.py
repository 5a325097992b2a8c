"""
Shared fixtures for the retention cleaner tests.

Modules live in top-level packages (hold/, scan/, purge/, report/, utils/)
at the repository root, so the root goes on sys.path.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict

import pytest

parent_dir = Path(__file__).parent.parent
sys.path.insert(0, str(parent_dir))

from hold.retention import format_minute_parts  # noqa: E402

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def minute_dir(root: Path, tenant: str, device: str, instant: datetime, payload: str = "frame") -> Path:
    """Create <root>/<tenant>/<device>/YYYY/MM/DD/HH/mm with one file inside."""
    path = root.joinpath(tenant, device, *format_minute_parts(instant))
    path.mkdir(parents=True, exist_ok=True)
    (path / "data.bin").write_text(payload, encoding="utf-8")
    return path


def tree_state(root: Path) -> Dict[str, str]:
    """Relative path -> file content (or "<dir>") for everything under root."""
    state: Dict[str, str] = {}
    for p in sorted(root.rglob("*")):
        rel = str(p.relative_to(root))
        state[rel] = "<dir>" if p.is_dir() else p.read_text(encoding="utf-8")
    return state


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def data_root(tmp_path) -> Path:
    root = tmp_path / "data"
    root.mkdir()
    return root


@pytest.fixture
def mixed_tree(data_root):
    """
    Two tenants, default 30 days, tenant 1001 overridden to 60.

    Returns (root, expired_paths, kept_paths).
    """
    expired = [
        minute_dir(data_root, "1001", "cam-a", NOW - timedelta(days=61)),
        minute_dir(data_root, "1001", "cam-b", NOW - timedelta(days=90, minutes=5)),
        minute_dir(data_root, "2002", "cam-a", NOW - timedelta(days=31)),
        minute_dir(data_root, "2002", "cam-a", NOW - timedelta(days=40, hours=3)),
        minute_dir(data_root, "2002", "cam-c", NOW - timedelta(days=365)),
    ]
    kept = [
        minute_dir(data_root, "1001", "cam-a", NOW - timedelta(days=40)),
        minute_dir(data_root, "1001", "cam-a", NOW - timedelta(days=1)),
        minute_dir(data_root, "2002", "cam-a", NOW - timedelta(days=29)),
        minute_dir(data_root, "2002", "cam-c", NOW - timedelta(days=30)),  # exactly at cutoff
    ]
    # noise the walker must ignore
    (data_root / "README.txt").write_text("not a tenant", encoding="utf-8")
    (data_root / "2002" / "cam-a" / "index.json").write_text("{}", encoding="utf-8")
    return data_root, expired, kept
