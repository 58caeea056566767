"""CRUD helpers for user profiles."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import asc, desc, select
from sqlalchemy.orm import Session

from ..models.user import UserProfile

PROFILE_FIELDS = ("name", "email", "lifetime_total", "is_admin")


def get_profile(db: Session, user_id: str) -> UserProfile | None:
    return db.get(UserProfile, user_id)


def list_profiles(db: Session) -> list[UserProfile]:
    return list(db.execute(select(UserProfile)).scalars().all())


def ranked_profiles(db: Session, *, descending: bool) -> list[UserProfile]:
    direction = desc if descending else asc
    stmt = select(UserProfile).order_by(
        direction(UserProfile.lifetime_total),
        UserProfile.name,
        UserProfile.id,
    )
    return list(db.execute(stmt).scalars().all())


def create_profile(db: Session, user_id: str, payload: dict, *, commit: bool = True) -> UserProfile:
    """Insert a zeroed profile. With ``commit=False`` the row is only flushed so the caller owns the transaction."""
    email = (payload.get("email") or "").strip()
    if not email:
        raise ValueError("email is required")
    profile = UserProfile(
        id=user_id,
        name=(payload.get("name") or "").strip() or None,
        email=email,
        lifetime_total=0.0,
        is_admin=bool(payload.get("is_admin", False)),
        created_at=payload.get("created_at") or datetime.now(timezone.utc),
    )
    db.add(profile)
    if not commit:
        db.flush()
        return profile
    db.commit()
    db.refresh(profile)
    return profile


def update_profile(db: Session, profile: UserProfile, payload: dict) -> UserProfile:
    for field in PROFILE_FIELDS:
        if field in payload:
            setattr(profile, field, payload[field])
    db.commit()
    db.refresh(profile)
    return profile
