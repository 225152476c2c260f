"""
giftstrack/utils/time_utils.py

Purpose: Time and expiry helpers

- Epoch millisecond timestamps used by the persisted cache layout
- TTL age checks
- Timestamp formatting
"""

import time
from datetime import datetime, timezone
from typing import Optional


def now_ms(clock=time.time) -> int:
    """
    Returns the current epoch time in milliseconds.
    """
    return int(clock() * 1000)


def seconds_to_ms(seconds: float) -> int:
    return int(seconds * 1000)


def is_entry_expired(timestamp_ms: int, ttl_ms: int, current_ms: int) -> bool:
    """
    Checks whether an entry stored at `timestamp_ms` has outlived its TTL.

    An entry is still valid while its age is strictly below the TTL.
    """
    return current_ms - timestamp_ms >= ttl_ms


def format_timestamp(timestamp_ms: Optional[int], format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """
    Formats an epoch millisecond timestamp (UTC) to string.
    """
    if timestamp_ms is None:
        return "N/A"
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).strftime(format_str)
