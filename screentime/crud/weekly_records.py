"""CRUD helpers for weekly screen time records."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import asc, desc, select
from sqlalchemy.orm import Session

from ..models.weekly_record import WeeklyRecord, record_key


def get_record(db: Session, user_id: str, week_id: str) -> WeeklyRecord | None:
    return db.get(WeeklyRecord, record_key(user_id, week_id))


def list_records(db: Session, user_id: str | None = None) -> list[WeeklyRecord]:
    stmt = select(WeeklyRecord)
    if user_id:
        stmt = stmt.where(WeeklyRecord.user_id == user_id)
    return list(db.execute(stmt.order_by(WeeklyRecord.week_id)).scalars().all())


def ranked_records(db: Session, week_id: str, *, descending: bool) -> list[WeeklyRecord]:
    direction = desc if descending else asc
    stmt = (
        select(WeeklyRecord)
        .where(WeeklyRecord.week_id == week_id)
        .order_by(direction(WeeklyRecord.minutes), WeeklyRecord.name, WeeklyRecord.user_id)
    )
    return list(db.execute(stmt).scalars().all())


def upsert_record(
    db: Session,
    *,
    user_id: str,
    week_id: str,
    minutes: float,
    name: str | None,
    email: str | None,
    week_start: datetime,
    updated_at: datetime,
) -> WeeklyRecord:
    """Write the whole record for (user, week), creating it when absent."""

    record = get_record(db, user_id, week_id)
    if record is None:
        record = WeeklyRecord(id=record_key(user_id, week_id), user_id=user_id, week_id=week_id)
        db.add(record)
    record.minutes = minutes
    record.name = name
    record.email = email
    record.week_start = week_start
    record.updated_at = updated_at
    db.commit()
    db.refresh(record)
    return record
