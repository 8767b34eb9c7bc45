"""
Parsers for Kubernetes resource quantities, durations and memory sizes.

Pure functions, no I/O.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone

DEFAULT_DURATION_SECONDS = 120
DEFAULT_MEMORY_BYTES = 1024 ** 3

_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")
_PLAIN_NUMBER_RE = re.compile(r"^\d+(\.\d+)?$")
_DURATION_RE = re.compile(r"^(\d+)([sm])$")
_MEMORY_SIZE_RE = re.compile(r"^(\d+)([KMGT]?)$", re.IGNORECASE)

# Binary suffixes are listed before their decimal prefixes so "Mi" wins over "M".
_QUANTITY_UNITS: tuple[tuple[str, int], ...] = (
    ("Ki", 1024),
    ("Mi", 1024 ** 2),
    ("Gi", 1024 ** 3),
    ("Ti", 1024 ** 4),
    ("K", 1000),
    ("M", 1000 ** 2),
    ("G", 1000 ** 3),
    ("T", 1000 ** 4),
)

_MEMORY_MULTIPLIERS = {
    "": 1,
    "K": 1024,
    "M": 1024 ** 2,
    "G": 1024 ** 3,
    "T": 1024 ** 4,
}


def parse_resource_value(value) -> float:
    """Convert a CPU or memory quantity string to cores or bytes.

    ``"500m"`` -> 0.5 cores, ``"2"`` -> 2 cores, ``"128Mi"`` -> bytes,
    ``"1G"`` -> 1e9 bytes. Empty, non-string or unparseable input yields 0.
    """
    if not value or not isinstance(value, str):
        return 0
    value = value.strip()
    match = _NUMBER_RE.match(value)
    if not match:
        return 0
    number = float(match.group(0))

    if value.endswith("m"):
        return number / 1000
    if _PLAIN_NUMBER_RE.match(value):
        return number
    for suffix, multiplier in _QUANTITY_UNITS:
        if value.endswith(suffix):
            return number * multiplier
    return number


def parse_duration(duration) -> int:
    """``"45s"`` -> 45, ``"2m"`` -> 120. Anything else yields the 2 minute default."""
    if not isinstance(duration, str):
        return DEFAULT_DURATION_SECONDS
    match = _DURATION_RE.match(duration.strip())
    if not match:
        return DEFAULT_DURATION_SECONDS
    amount = int(match.group(1))
    return amount * 60 if match.group(2) == "m" else amount


def parse_memory_size(size) -> int:
    """``"1G"`` -> 1073741824. Suffixes are binary; malformed input yields 1 GiB."""
    if not isinstance(size, str):
        return DEFAULT_MEMORY_BYTES
    match = _MEMORY_SIZE_RE.match(size.strip())
    if not match:
        return DEFAULT_MEMORY_BYTES
    return int(match.group(1)) * _MEMORY_MULTIPLIERS[match.group(2).upper()]


def parse_timestamp(timestamp: str | None) -> datetime | None:
    """Parse an RFC 3339 timestamp as emitted by the API server."""
    if not timestamp:
        return None
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def calculate_age(timestamp: str | None, now: datetime) -> float:
    """Age in seconds; 0 when the timestamp is missing or malformed."""
    created = parse_timestamp(timestamp)
    if created is None:
        return 0
    return (now - created).total_seconds()


def format_age(timestamp: str | None, now: datetime) -> str:
    if not timestamp or parse_timestamp(timestamp) is None:
        return "unknown"
    age = int(calculate_age(timestamp, now))
    days, rem = divmod(age, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d{hours}h"
    if hours > 0:
        return f"{hours}h{minutes}m"
    return f"{minutes}m"
