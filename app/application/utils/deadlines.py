from __future__ import annotations

from datetime import date as date_cls, datetime, time, timedelta, tzinfo


def slot_datetime(date: str, hour: str, tz: tzinfo) -> datetime | None:
    """Wall-clock datetime of a slot in the business timezone, or None if unparsable."""
    try:
        day = date_cls.fromisoformat(date)
        hh, _, mm = hour.partition(":")
        return datetime.combine(day, time(int(hh), int(mm or 0)), tzinfo=tz)
    except (ValueError, TypeError, AttributeError):
        return None


def is_past(date: str, hour: str, now: datetime, tz: tzinfo, grace_seconds: int = 0) -> bool:
    """True once the slot start plus the grace window lies before now."""
    start = slot_datetime(date, hour, tz)
    if start is None:
        return False
    return start + timedelta(seconds=grace_seconds) < now
