"""Per-user, per-week screen time bucket."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, Index, String, Text

from ..db.session import Base


def record_key(user_id: str, week_id: str) -> str:
    return f"{user_id}_{week_id}"


class WeeklyRecord(Base):
    """One row per (user, week); the primary key is built by :func:`record_key`."""

    __tablename__ = "screen_time"
    __table_args__ = (Index("ix_screen_time_week_minutes", "week_id", "minutes"),)

    id = Column(String(64), primary_key=True)
    user_id = Column(String(32), nullable=False, index=True)
    week_id = Column(String(10), nullable=False)
    minutes = Column(Float, nullable=False, default=0.0)
    name = Column(Text, nullable=True)
    email = Column(String(320), nullable=True)
    week_start = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


__all__ = ["WeeklyRecord", "record_key"]
