"""Tests for week bucketing."""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from screentime.services.weeks import parse_weekday, week_bounds, week_id, week_start

SATURDAY = 5


def test_week_id_is_stable_for_the_whole_week():
    start = datetime(2024, 5, 4, 0, 0, tzinfo=timezone.utc)  # a Saturday
    ids = {week_id(start + timedelta(hours=hour), "UTC", SATURDAY) for hour in range(7 * 24)}
    ids.add(week_id(start + timedelta(days=7) - timedelta(microseconds=1), "UTC", SATURDAY))
    assert ids == {"2024-05-04"}


def test_week_id_changes_exactly_at_the_boundary():
    boundary = datetime(2024, 5, 11, 0, 0, tzinfo=timezone.utc)
    assert week_id(boundary - timedelta(seconds=1), "UTC", SATURDAY) == "2024-05-04"
    assert week_id(boundary, "UTC", SATURDAY) == "2024-05-11"


def test_week_start_is_local_midnight_in_the_configured_zone():
    # 03:30 UTC on Saturday is still Friday evening in Chicago.
    moment = datetime(2024, 5, 11, 3, 30, tzinfo=timezone.utc)
    chicago = ZoneInfo("America/Chicago")

    start = week_start(moment, chicago, SATURDAY)

    assert start == datetime(2024, 5, 4, 0, 0, tzinfo=chicago)
    assert week_id(moment, chicago, SATURDAY) == "2024-05-04"
    assert week_id(moment, "UTC", SATURDAY) == "2024-05-11"


def test_naive_moments_are_read_in_the_given_zone():
    assert week_id(datetime(2024, 5, 10, 23, 0), "Asia/Tokyo", SATURDAY) == "2024-05-04"


def test_week_bounds_cover_seven_days_across_dst():
    # US clocks spring forward on Sunday 2024-03-10.
    chicago = ZoneInfo("America/Chicago")
    start, end = week_bounds(datetime(2024, 3, 12, 12, 0, tzinfo=chicago), chicago, SATURDAY)

    assert start == datetime(2024, 3, 9, 0, 0, tzinfo=chicago)
    assert end == datetime(2024, 3, 16, 0, 0, tzinfo=chicago)
    elapsed = end.astimezone(timezone.utc) - start.astimezone(timezone.utc)
    assert elapsed == timedelta(days=7) - timedelta(hours=1)


def test_other_start_days():
    moment = datetime(2024, 5, 8, 12, 0, tzinfo=timezone.utc)  # a Wednesday
    assert week_id(moment, "UTC", parse_weekday("monday")) == "2024-05-06"
    assert week_id(moment, "UTC", parse_weekday("sun")) == "2024-05-05"
    assert week_id(moment, "UTC", parse_weekday("wed")) == "2024-05-08"


@pytest.mark.parametrize(
    "value, expected",
    [("saturday", 5), ("Sat", 5), (" SUNDAY ", 6), ("0", 0), (3, 3)],
)
def test_parse_weekday(value, expected):
    assert parse_weekday(value) == expected


@pytest.mark.parametrize("value", ["", "s", "tu", "funday", 7, -1, True])
def test_parse_weekday_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_weekday(value)
