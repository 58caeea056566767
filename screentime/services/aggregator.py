"""Screen time aggregation and leaderboard ranking.

``submit`` folds a self-reported value into the user's bucket for the current
week and into their lifetime total. ``ranked_view`` keeps a sorted list of
either figure up to date through the live query feed. ``reset_all`` wipes
both for every user and is reserved to administrators.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from numbers import Real
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.config import settings
from ..core.errors import NotFoundError, StoreError
from ..crud.users import get_profile, list_profiles, ranked_profiles, update_profile
from ..crud.weekly_records import get_record, list_records, ranked_records, upsert_record
from ..models.user import UserProfile
from ..models.weekly_record import WeeklyRecord
from . import weeks
from .identity import ANONYMOUS, IdentityService, UserSession
from .live import ChangeFeed, Subscription, change_feed

logger = logging.getLogger(__name__)


class RankMode(str, Enum):
    WEEKLY = "weekly"
    LIFETIME = "lifetime"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    user_id: str
    name: str
    minutes: float


@dataclass(frozen=True)
class LeaderboardSnapshot:
    mode: RankMode
    order: SortOrder
    entries: tuple[LeaderboardEntry, ...]
    generated_at: datetime
    week_id: str | None = None
    week_start: datetime | None = None

    @property
    def signature(self) -> tuple:
        """Everything but the generation time; equal signatures mean nothing moved."""

        return (self.mode, self.order, self.week_id, self.entries)


@dataclass(frozen=True)
class SubmitResult:
    user_id: str
    week_id: str
    week_start: datetime
    weekly_minutes: float
    lifetime_total: float


@dataclass(frozen=True)
class ResetResult:
    deleted_records: int
    reset_profiles: int


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _check_minutes(minutes: object) -> float:
    if isinstance(minutes, bool) or not isinstance(minutes, Real):
        raise ValueError("minutes must be a number")
    value = float(minutes)
    if not math.isfinite(value):
        raise ValueError("minutes must be a finite number")
    return value


class Aggregator:
    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        *,
        identity: IdentityService | None = None,
        feed: ChangeFeed | None = None,
        clock: Callable[[], datetime] | None = None,
        tz: str | None = None,
        week_start_day: str | int | None = None,
        default_order: str | SortOrder | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._identity = identity
        self._feed = feed or change_feed
        self._clock = clock or _utcnow
        self._tz = weeks.resolve_tz(tz or settings.TZ)
        self._start_weekday = weeks.parse_weekday(
            settings.WEEK_START_DAY if week_start_day is None else week_start_day
        )
        self.default_order = SortOrder(default_order or settings.LEADERBOARD_ORDER)

    # ---------- weeks ----------

    def current_week(self) -> tuple[str, datetime]:
        start = weeks.week_start(self._clock(), self._tz, self._start_weekday)
        return start.date().isoformat(), start

    # ---------- writes ----------

    def submit(self, session: UserSession, minutes: float) -> SubmitResult:
        """Add ``minutes`` to the current week's record and the lifetime total.

        The weekly record and the profile are committed separately. A failure
        between the two commits leaves them out of step; nothing repairs it.
        """

        delta = _check_minutes(minutes)
        now = self._clock()
        week_id, start = self.current_week()
        with self._session_factory() as db:
            try:
                profile = get_profile(db, session.user_id)
                if profile is None:
                    raise NotFoundError("No profile for this user", {"user_id": session.user_id})
                record = get_record(db, session.user_id, week_id)
                prior_weekly = record.minutes if record is not None and record.minutes else 0.0
                record = upsert_record(
                    db,
                    user_id=session.user_id,
                    week_id=week_id,
                    minutes=prior_weekly + delta,
                    name=profile.name or session.name or ANONYMOUS,
                    email=session.email or profile.email,
                    week_start=start,
                    updated_at=now,
                )
                prior_total = profile.lifetime_total or 0.0
                profile = update_profile(db, profile, {"lifetime_total": prior_total + delta})
                result = SubmitResult(
                    user_id=session.user_id,
                    week_id=week_id,
                    week_start=start,
                    weekly_minutes=record.minutes,
                    lifetime_total=profile.lifetime_total,
                )
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception(
                    "screen_time.submit_failed",
                    extra={"extra_data": {"user_id": session.user_id, "week_id": week_id}},
                )
                raise StoreError("Could not record screen time") from exc
        logger.info(
            "screen_time.submitted",
            extra={
                "extra_data": {
                    "user_id": session.user_id,
                    "week_id": week_id,
                    "minutes": delta,
                    "weekly_minutes": result.weekly_minutes,
                    "lifetime_total": result.lifetime_total,
                }
            },
        )
        return result

    def reset_all(self, session: UserSession) -> ResetResult | None:
        """Delete every weekly record and zero every lifetime total.

        Returns ``None`` without touching anything when the caller is not an
        administrator.
        """

        if not session.is_admin:
            logger.warning("leaderboard.reset_ignored", extra={"extra_data": {"user_id": session.user_id}})
            return None
        with self._session_factory() as db:
            try:
                records = list_records(db)
                profiles = list_profiles(db)
                for record in records:
                    db.delete(record)
                for profile in profiles:
                    profile.lifetime_total = 0.0
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("leaderboard.reset_failed", extra={"extra_data": {"user_id": session.user_id}})
                raise StoreError("Could not reset leaderboard") from exc
        result = ResetResult(deleted_records=len(records), reset_profiles=len(profiles))
        logger.info(
            "leaderboard.reset",
            extra={
                "extra_data": {
                    "user_id": session.user_id,
                    "deleted_records": result.deleted_records,
                    "reset_profiles": result.reset_profiles,
                }
            },
        )
        return result

    def update_name(self, session: UserSession, new_name: str) -> UserSession:
        """Rename the profile and the identity display name.

        Weekly records keep the name they were written with.
        """

        name = (new_name or "").strip()
        if not name:
            raise ValueError("name is required")
        with self._session_factory() as db:
            try:
                profile = get_profile(db, session.user_id)
                if profile is None:
                    raise NotFoundError("No profile for this user", {"user_id": session.user_id})
                update_profile(db, profile, {"name": name})
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("profile.rename_failed", extra={"extra_data": {"user_id": session.user_id}})
                raise StoreError("Could not update name") from exc
        if self._identity is not None:
            self._identity.set_display_name(session.user_id, name)
        logger.info("profile.renamed", extra={"extra_data": {"user_id": session.user_id}})
        return replace(session, name=name)

    # ---------- reads ----------

    def snapshot(self, mode: RankMode | str, order: SortOrder | str | None = None) -> LeaderboardSnapshot:
        mode = RankMode(mode)
        order = SortOrder(order) if order else self.default_order
        descending = order is SortOrder.DESC
        with self._session_factory() as db:
            if mode is RankMode.WEEKLY:
                week_id, start = self.current_week()
                rows: list[WeeklyRecord] = ranked_records(db, week_id, descending=descending)
                entries = tuple(
                    LeaderboardEntry(
                        rank=index,
                        user_id=row.user_id,
                        name=row.name or ANONYMOUS,
                        minutes=row.minutes or 0.0,
                    )
                    for index, row in enumerate(rows, start=1)
                )
                return LeaderboardSnapshot(mode, order, entries, self._clock(), week_id, start)
            profiles: list[UserProfile] = ranked_profiles(db, descending=descending)
            entries = tuple(
                LeaderboardEntry(
                    rank=index,
                    user_id=profile.id,
                    name=profile.name or ANONYMOUS,
                    minutes=profile.lifetime_total or 0.0,
                )
                for index, profile in enumerate(profiles, start=1)
            )
            return LeaderboardSnapshot(mode, order, entries, self._clock())

    def ranked_view(
        self,
        mode: RankMode | str,
        listener: Callable[[LeaderboardSnapshot], None],
        *,
        order: SortOrder | str | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> Subscription[LeaderboardSnapshot]:
        """Subscribe ``listener`` to the ranked list; close the handle to stop.

        The first snapshot is delivered before this returns. The weekly view
        re-reads the clock on every evaluation, so it follows week rollover.
        """

        mode = RankMode(mode)
        order = SortOrder(order) if order else self.default_order
        table = WeeklyRecord.__tablename__ if mode is RankMode.WEEKLY else UserProfile.__tablename__
        return self._feed.subscribe(
            {table},
            lambda: self.snapshot(mode, order),
            listener,
            on_error,
            key=lambda snapshot: snapshot.signature,
            name=f"leaderboard:{mode.value}:{order.value}",
        )


__all__ = [
    "Aggregator",
    "LeaderboardEntry",
    "LeaderboardSnapshot",
    "RankMode",
    "ResetResult",
    "SortOrder",
    "SubmitResult",
]
