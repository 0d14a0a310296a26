from __future__ import annotations

import re
from typing import Any, Iterable

FALLBACK_SLOT_MINUTES = 60

_BARE_HOUR = re.compile(r"^\d{1,2}$")
_HOUR_MINUTE = re.compile(r"^(\d{1,2})\s*:\s*(\d{1,2})$")


def normalize_hour(value: Any) -> str | None:
    """Coerce "9", 9, "9:5" or " 09 : 30 " to canonical "HH:MM". Returns None if malformed."""
    if value is None or isinstance(value, bool):
        return None
    text = str(value).strip()
    if not text:
        return None

    if _BARE_HOUR.match(text):
        hour, minute = int(text), 0
    else:
        match = _HOUR_MINUTE.match(text)
        if not match:
            return None
        hour, minute = int(match.group(1)), int(match.group(2))

    if hour > 23 or minute > 59:
        return None
    return f"{hour:02d}:{minute:02d}"


def time_to_minutes(hhmm: str) -> int:
    hour, _, minute = hhmm.partition(":")
    return int(hour) * 60 + int(minute or 0)


def minutes_to_time(total: int) -> str:
    """Format minutes since midnight; values past 24h keep counting hours ("25:10")."""
    return f"{total // 60:02d}:{total % 60:02d}"


def unique_sorted_times(values: Iterable[Any] | None) -> list[str]:
    """Normalize, drop malformed entries, de-duplicate and sort by time of day."""
    if not isinstance(values, (list, tuple, set, frozenset)):
        return []
    normalized = {h for h in (normalize_hour(v) for v in values) if h}
    return sorted(normalized, key=time_to_minutes)


def slot_step_minutes(times: list[str], fallback: int = FALLBACK_SLOT_MINUTES) -> int:
    """Smallest positive gap between consecutive sorted times."""
    if len(times) < 2:
        return fallback
    gaps = [
        time_to_minutes(times[i]) - time_to_minutes(times[i - 1])
        for i in range(1, len(times))
    ]
    positive = [g for g in gaps if g > 0]
    return min(positive) if positive else fallback
