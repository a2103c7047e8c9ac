"""Utility functions for the abilities engine."""

import re
import secrets
import time
from datetime import datetime, timezone
from typing import Any

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def generate_execution_id() -> str:
    """Generate an execution id derived from the clock and a random suffix."""
    return f"exec_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def now_utc() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    """Milliseconds between two datetimes."""
    return int((end - start).total_seconds() * 1000)


def truncate_string(s: str, max_length: int = 200) -> str:
    """Truncate string to max length with ellipsis."""
    if len(s) <= max_length:
        return s
    return s[:max_length - 3] + "..."


def parse_duration(value: str | int | float | None) -> float | None:
    """Parse a duration such as ``30s``, ``5m``, ``500ms`` or a number of seconds.

    Returns:
        Seconds as a float, or None when no duration is given.

    Raises:
        ValueError: If the value is not a recognised duration.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]

