"""Timestamp helpers. Stored datetimes are naive local server time."""
from __future__ import annotations

from datetime import date, datetime, time


def to_local_naive(value: datetime | str | None) -> datetime | None:
    """Parse ISO-8601 (a trailing `Z` included) and convert to naive local time."""
    if value is None:
        return None
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def day_window(day: date) -> tuple[datetime, datetime]:
    """Inclusive [00:00:00.000, 23:59:59.999] bounds of `day`."""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time(23, 59, 59, 999000))
    return start, end
