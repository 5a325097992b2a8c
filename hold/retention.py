#!/usr/bin/env python3
"""
Retention Cleaner: Hold Rules (v1)

Decides how long each tenant's data is held on disk.

Config layout (JSON or YAML, same shape):
  {"retention": {"default": 30, "1001": 60}}

Policy model:
- Every tenant gets the "default" window unless it has its own entry
- Windows are whole days, measured back from the run's reference instant
- A minute partition is expired iff its instant is strictly before the cutoff

Partition layout (UTC):
  <root>/<tenant>/<device>/YYYY/MM/DD/HH/mm
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml


DEFAULT_KEY = "default"

YAML_SUFFIXES = (".yaml", ".yml")

NUMERIC_RE = re.compile(r"[0-9]+")


class ConfigError(ValueError):
    """Configuration is missing, unreadable or malformed."""


@dataclass(frozen=True)
class RetentionPolicy:
    days: Mapping[str, int]

    def __post_init__(self) -> None:
        if DEFAULT_KEY not in self.days:
            raise ConfigError(f"retention policy missing '{DEFAULT_KEY}' entry")
        # freeze a private copy so callers can't mutate it mid-run
        object.__setattr__(self, "days", MappingProxyType(dict(self.days)))

    @property
    def default_days(self) -> int:
        return self.days[DEFAULT_KEY]

    def retention_for(self, tenant: str) -> int:
        return retention_days_for(tenant, self)


def retention_days_for(tenant: str, policy: RetentionPolicy) -> int:
    """Tenant-specific window if present, else the default one."""
    days = policy.days.get(tenant)
    if days is None:
        return policy.default_days
    return days


def _coerce_days(key: str, value: Any) -> int:
    # bool is an int subclass; "true" is never a retention window
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"retention.{key} must be an integer number of days, got {value!r}")
    if value < 0:
        raise ConfigError(f"retention.{key} must be >= 0, got {value}")
    return value


def parse_policy(cfg: Any) -> RetentionPolicy:
    if not isinstance(cfg, dict):
        raise ConfigError("config root must be a mapping")
    raw = cfg.get("retention")
    if raw is None:
        raise ConfigError("retention map missing")
    if not isinstance(raw, dict):
        raise ConfigError("retention must be a mapping of tenant -> days")

    days: Dict[str, int] = {}
    for k, v in raw.items():
        # YAML turns unquoted 1001 into an int key
        key = str(k)
        days[key] = _coerce_days(key, v)

    if DEFAULT_KEY not in days:
        raise ConfigError(f"config missing retention.{DEFAULT_KEY}")
    return RetentionPolicy(days=days)


def load_policy(path: Path) -> RetentionPolicy:
    """
    Load and validate a retention config file.

    .yaml/.yml files go through yaml.safe_load; anything else is read as
    JSON (YAML rejects the tab indentation common in JSON files).
    """
    is_yaml = path.suffix.lower() in YAML_SUFFIXES
    try:
        with path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) if is_yaml else json.load(f)
    except OSError as e:
        raise ConfigError(f"cannot read config {path}: {e}") from e
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"cannot parse config {path}: {e}") from e
    return parse_policy(cfg)


def decode_minute_instant(year: str, month: str, day: str, hour: str, minute: str) -> Optional[datetime]:
    """
    Parse YYYY/MM/DD/HH/mm path components into a UTC instant.

    Returns None when any component is not a plain non-negative integer
    or the values don't form a real calendar date/time.
    """
    parts = (year, month, day, hour, minute)
    if not all(NUMERIC_RE.fullmatch(p) for p in parts):
        return None
    try:
        y, mo, d, h, mi = (int(p) for p in parts)
        return datetime(y, mo, d, h, mi, tzinfo=timezone.utc)
    except (ValueError, OverflowError):
        # out-of-range values, or digit runs too long for int()/C long
        return None


def format_minute_parts(instant: datetime) -> Tuple[str, str, str, str, str]:
    """Inverse of decode_minute_instant, zero-padded the way partitions are written."""
    instant = instant.astimezone(timezone.utc)
    return (
        f"{instant.year:04d}",
        f"{instant.month:02d}",
        f"{instant.day:02d}",
        f"{instant.hour:02d}",
        f"{instant.minute:02d}",
    )


def cutoff_for(now_utc: datetime, retention_days: int) -> datetime:
    return now_utc - timedelta(days=retention_days)


def is_expired(instant: datetime, cutoff: datetime) -> bool:
    # exactly-at-cutoff is retained
    return instant < cutoff
