"""Week bucketing for the weekly leaderboard.

A week starts at local midnight on a configurable weekday in a configurable
timezone. The week id is the local calendar date of that midnight, so a week
that starts on Saturday 2024-05-04 is ``"2024-05-04"`` regardless of the UTC
offset of the zone.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
DEFAULT_START_WEEKDAY = 5  # Saturday


def parse_weekday(value: str | int) -> int:
    """Return a Python weekday number (Monday=0) for a name, prefix or number."""

    if isinstance(value, bool):
        raise ValueError(f"invalid weekday: {value!r}")
    if isinstance(value, int):
        if 0 <= value <= 6:
            return value
        raise ValueError(f"weekday number out of range: {value}")
    text = str(value).strip().lower()
    if text.isdigit():
        return parse_weekday(int(text))
    if len(text) >= 3:
        for index, name in enumerate(WEEKDAYS):
            if name.startswith(text):
                return index
    raise ValueError(f"invalid weekday: {value!r}")


def resolve_tz(tz: str | tzinfo | None) -> tzinfo:
    if tz is None:
        return ZoneInfo("UTC")
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def _local(moment: datetime, tz: tzinfo) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def week_start_date(moment: datetime, tz: str | tzinfo | None = None, start_weekday: int = DEFAULT_START_WEEKDAY) -> date:
    zone = resolve_tz(tz)
    local_day = _local(moment, zone).date()
    return local_day - timedelta(days=(local_day.weekday() - start_weekday) % 7)


def week_start(moment: datetime, tz: str | tzinfo | None = None, start_weekday: int = DEFAULT_START_WEEKDAY) -> datetime:
    """Aware local midnight that opens the week containing ``moment``."""

    zone = resolve_tz(tz)
    return datetime.combine(week_start_date(moment, zone, start_weekday), time(0), tzinfo=zone)


def week_bounds(
    moment: datetime, tz: str | tzinfo | None = None, start_weekday: int = DEFAULT_START_WEEKDAY
) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` span of the week containing ``moment``."""

    zone = resolve_tz(tz)
    first = week_start_date(moment, zone, start_weekday)
    start = datetime.combine(first, time(0), tzinfo=zone)
    end = datetime.combine(first + timedelta(days=7), time(0), tzinfo=zone)
    return start, end


def week_id(moment: datetime, tz: str | tzinfo | None = None, start_weekday: int = DEFAULT_START_WEEKDAY) -> str:
    return week_start_date(moment, tz, start_weekday).isoformat()


__all__ = [
    "DEFAULT_START_WEEKDAY",
    "WEEKDAYS",
    "parse_weekday",
    "resolve_tz",
    "week_bounds",
    "week_id",
    "week_start",
    "week_start_date",
]
