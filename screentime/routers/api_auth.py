from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..crud.users import get_profile
from ..db.session import get_db
from ..core.errors import AuthError
from ..core.security import decode_token
from ..deps.auth import require_session
from ..deps.services import get_identity
from ..schemas.auth import LoginRequest, LogoutRequest, RefreshRequest, RegisterRequest, TokenResponse
from ..services.identity import AuthResult, IdentityService, UserSession
from .api_users import user_to_schema

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _token_response(db: Session, result: AuthResult) -> TokenResponse:
    profile = get_profile(db, result.session.user_id)
    return TokenResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        token_type=result.tokens.token_type,
        expires_in=result.tokens.expires_in,
        user=user_to_schema(result.session, profile),
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED, summary="Create an account")
def register(
    payload: RegisterRequest,
    identity: IdentityService = Depends(get_identity),
    db: Session = Depends(get_db),
):
    result = identity.create_account(payload.email, payload.password, payload.name)
    return _token_response(db, result)


@router.post("/login", response_model=TokenResponse, summary="Sign in with email and password")
def login(
    payload: LoginRequest,
    identity: IdentityService = Depends(get_identity),
    db: Session = Depends(get_db),
):
    result = identity.sign_in(payload.email, payload.password)
    return _token_response(db, result)


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
def refresh(
    payload: RefreshRequest,
    identity: IdentityService = Depends(get_identity),
    db: Session = Depends(get_db),
):
    result = identity.refresh(payload.refresh_token)
    return _token_response(db, result)


@router.post("/logout", summary="Sign out and revoke the session tokens")
def logout(
    payload: LogoutRequest | None = None,
    session: UserSession = Depends(require_session),
    identity: IdentityService = Depends(get_identity),
):
    extra: list[str] = []
    if payload is not None and payload.refresh_token:
        try:
            refresh_payload = decode_token(payload.refresh_token, verify_type="refresh")
        except ValueError as exc:
            raise AuthError("invalid_token", str(exc)) from exc
        if refresh_payload.sub != session.user_id:
            raise AuthError("invalid_token", "Refresh token belongs to another user")
        extra.append(refresh_payload.jti)
    identity.sign_out(session, extra)
    return {"status": "signed_out"}
