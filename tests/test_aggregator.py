"""Tests for screen time submission, ranking, reset and rename."""

import math
import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from screentime.core.errors import NotFoundError
from screentime.crud.users import create_profile, get_profile, list_profiles
from screentime.crud.weekly_records import get_record, list_records
from screentime.db.session import Base
from screentime.services.aggregator import Aggregator, RankMode, SortOrder
from screentime.services.identity import UserSession

# Ensure models are registered so metadata tables are created
from screentime import models  # noqa: F401

WEDNESDAY = datetime(2024, 5, 8, 12, 0, tzinfo=timezone.utc)
NEXT_SATURDAY = datetime(2024, 5, 11, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def clock():
    return FakeClock(WEDNESDAY)


@pytest.fixture()
def aggregator(session_factory, clock):
    return Aggregator(session_factory, clock=clock, tz="UTC", week_start_day="saturday", default_order="asc")


def make_user(factory, name, *, is_admin=False) -> UserSession:
    user_id = uuid4().hex
    email = f"{name.lower()}@example.com"
    with factory() as db:
        create_profile(db, user_id, {"name": name, "email": email, "is_admin": is_admin})
    return UserSession(user_id=user_id, email=email, name=name, is_admin=is_admin)


def test_submissions_in_the_same_week_accumulate(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")

    first = aggregator.submit(ada, 30)
    second = aggregator.submit(ada, 45)

    assert first.week_id == second.week_id == "2024-05-04"
    assert second.weekly_minutes == 75
    assert second.lifetime_total == 75
    with session_factory() as db:
        record = get_record(db, ada.user_id, "2024-05-04")
        assert record.id == f"{ada.user_id}_2024-05-04"
        assert record.minutes == 75
        assert record.name == "Ada"
        assert record.email == "ada@example.com"
        assert get_profile(db, ada.user_id).lifetime_total == 75
        assert len(list_records(db, ada.user_id)) == 1


def test_leaderboard_order_is_configurable(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")
    bob = make_user(session_factory, "Bob")
    aggregator.submit(ada, 30)
    aggregator.submit(ada, 45)
    aggregator.submit(bob, 60)

    ascending = aggregator.snapshot(RankMode.WEEKLY)
    descending = aggregator.snapshot("weekly", "desc")

    assert ascending.order is SortOrder.ASC
    assert [(e.rank, e.name, e.minutes) for e in ascending.entries] == [(1, "Bob", 60), (2, "Ada", 75)]
    assert [(e.rank, e.name, e.minutes) for e in descending.entries] == [(1, "Ada", 75), (2, "Bob", 60)]
    assert ascending.week_id == "2024-05-04"

    lifetime = aggregator.snapshot(RankMode.LIFETIME, SortOrder.DESC)
    assert [(e.user_id, e.minutes) for e in lifetime.entries] == [(ada.user_id, 75), (bob.user_id, 60)]
    assert lifetime.week_id is None


def test_lifetime_view_lists_users_without_submissions(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")
    make_user(session_factory, "Cy")
    aggregator.submit(ada, 10)

    weekly = aggregator.snapshot(RankMode.WEEKLY)
    lifetime = aggregator.snapshot(RankMode.LIFETIME)

    assert [e.name for e in weekly.entries] == ["Ada"]
    assert [(e.name, e.minutes) for e in lifetime.entries] == [("Cy", 0), ("Ada", 10)]


def test_weekly_view_excludes_prior_weeks(session_factory, aggregator, clock):
    ada = make_user(session_factory, "Ada")
    bob = make_user(session_factory, "Bob")
    aggregator.submit(ada, 100)

    clock.now = NEXT_SATURDAY
    aggregator.submit(bob, 10)

    weekly = aggregator.snapshot(RankMode.WEEKLY)
    assert weekly.week_id == "2024-05-11"
    assert [e.user_id for e in weekly.entries] == [bob.user_id]

    lifetime = aggregator.snapshot(RankMode.LIFETIME, "desc")
    assert [(e.user_id, e.minutes) for e in lifetime.entries] == [(ada.user_id, 100), (bob.user_id, 10)]

    with session_factory() as db:
        assert get_record(db, ada.user_id, "2024-05-04").minutes == 100


def test_boundary_starts_a_new_bucket(session_factory, aggregator, clock):
    ada = make_user(session_factory, "Ada")

    clock.now = NEXT_SATURDAY - timedelta(seconds=1)
    before = aggregator.submit(ada, 20)
    clock.now = NEXT_SATURDAY
    after = aggregator.submit(ada, 5)

    assert before.week_id == "2024-05-04"
    assert after.week_id == "2024-05-11"
    assert after.weekly_minutes == 5
    assert after.lifetime_total == 25


def test_reset_by_non_admin_changes_nothing(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")
    aggregator.submit(ada, 30)

    assert aggregator.reset_all(ada) is None

    with session_factory() as db:
        assert len(list_records(db)) == 1
        assert get_profile(db, ada.user_id).lifetime_total == 30


def test_reset_by_admin_clears_records_and_totals(session_factory, aggregator, clock):
    admin = make_user(session_factory, "Root", is_admin=True)
    ada = make_user(session_factory, "Ada")
    aggregator.submit(ada, 30)
    clock.now = NEXT_SATURDAY
    aggregator.submit(ada, 15)
    aggregator.submit(admin, 5)

    result = aggregator.reset_all(admin)

    assert result.deleted_records == 3
    assert result.reset_profiles == 2
    with session_factory() as db:
        assert list_records(db) == []
        assert all(profile.lifetime_total == 0 for profile in list_profiles(db))
    assert aggregator.snapshot(RankMode.WEEKLY).entries == ()


def test_rename_does_not_touch_historical_records(session_factory, aggregator, clock):
    ada = make_user(session_factory, "Ada")
    aggregator.submit(ada, 30)

    renamed = aggregator.update_name(ada, "  Countess  ")

    assert renamed.name == "Countess"
    assert renamed.user_id == ada.user_id
    with session_factory() as db:
        assert get_profile(db, ada.user_id).name == "Countess"
        assert get_record(db, ada.user_id, "2024-05-04").name == "Ada"

    clock.now = NEXT_SATURDAY
    aggregator.submit(renamed, 10)
    with session_factory() as db:
        assert get_record(db, ada.user_id, "2024-05-11").name == "Countess"
        assert get_record(db, ada.user_id, "2024-05-04").name == "Ada"


def test_rename_rejects_blank_names(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")
    with pytest.raises(ValueError):
        aggregator.update_name(ada, "   ")


@pytest.mark.parametrize("value", ["30", None, True, math.nan, math.inf])
def test_submit_rejects_values_that_are_not_numbers(session_factory, aggregator, value):
    ada = make_user(session_factory, "Ada")

    with pytest.raises(ValueError):
        aggregator.submit(ada, value)

    with session_factory() as db:
        assert list_records(db) == []


def test_fractional_and_negative_values_are_accepted(session_factory, aggregator):
    ada = make_user(session_factory, "Ada")
    aggregator.submit(ada, 12.5)
    result = aggregator.submit(ada, -2.5)

    assert result.weekly_minutes == 10
    assert result.lifetime_total == 10


def test_submit_without_profile_fails(aggregator):
    ghost = UserSession(user_id=uuid4().hex, email="ghost@example.com", name="Ghost")
    with pytest.raises(NotFoundError):
        aggregator.submit(ghost, 5)
