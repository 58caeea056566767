from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..crud.users import get_profile
from ..db.session import get_db
from ..deps.auth import require_session
from ..deps.services import get_aggregator
from ..models.user import UserProfile
from ..schemas.user import SettingsUpdate, UserOut
from ..services.aggregator import Aggregator
from ..services.identity import UserSession

router = APIRouter(prefix="/api/v1/me", tags=["users"])


def user_to_schema(session: UserSession, profile: UserProfile | None) -> UserOut:
    if profile is None:
        return UserOut(id=session.user_id, name=session.name, email=session.email, is_admin=session.is_admin)
    return UserOut(
        id=profile.id,
        name=profile.name or session.name,
        email=profile.email,
        lifetime_total=profile.lifetime_total or 0.0,
        is_admin=bool(profile.is_admin),
    )


@router.get("", response_model=UserOut)
def api_get_me(session: UserSession = Depends(require_session), db: Session = Depends(get_db)):
    return user_to_schema(session, get_profile(db, session.user_id))


@router.patch("/settings", response_model=UserOut)
def api_update_settings(
    payload: SettingsUpdate,
    session: UserSession = Depends(require_session),
    aggregator: Aggregator = Depends(get_aggregator),
    db: Session = Depends(get_db),
):
    try:
        renamed = aggregator.update_name(session, payload.name)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return user_to_schema(renamed, get_profile(db, session.user_id))
