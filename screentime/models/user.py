"""SQLAlchemy model for the public user profile shown on the leaderboard."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, Float, String, Text

from ..db.session import Base


class UserProfile(Base):
    """Profile keyed by the account id. ``lifetime_total`` is owned by the aggregator."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True)
    name = Column(Text, nullable=True)
    email = Column(String(320), nullable=False)
    lifetime_total = Column(Float, nullable=False, default=0.0, index=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


__all__ = ["UserProfile"]
