"""Utilities for the abilities engine."""

from abilities.utils.helpers import (
    elapsed_ms,
    generate_execution_id,
    now_utc,
    parse_duration,
    truncate_string,
)
from abilities.utils.logging import get_logger, setup_logging

__all__ = [
    "generate_execution_id",
    "now_utc",
    "elapsed_ms",
    "parse_duration",
    "truncate_string",
    "setup_logging",
    "get_logger",
]
