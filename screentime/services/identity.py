"""Account, sign-in and session handling.

The identity service owns credentials (the ``accounts`` table) and the
revocation list used by sign-out. It creates the public profile at
registration and notifies listeners whenever a session changes.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Iterable
from uuid import uuid4

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette import status

from ..core.config import settings
from ..core.errors import AuthError, StoreError
from ..core.security import TokenPair, TokenPayload, decode_token, hash_password, issue_token_pair, verify_password
from ..crud.users import create_profile, get_profile
from ..models.account import Account
from ..models.revoked_token import RevokedToken

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
ANONYMOUS = "Anonymous"


@dataclass(frozen=True)
class UserSession:
    """The signed-in user as seen by the leaderboard operations."""

    user_id: str
    email: str
    name: str
    is_admin: bool = False
    token_id: str | None = None


@dataclass(frozen=True)
class AuthResult:
    session: UserSession
    tokens: TokenPair


@dataclass(frozen=True)
class SessionEvent:
    kind: str  # registered | signed_in | signed_out | profile_updated
    user_id: str
    session: UserSession | None = None
    token_ids: tuple[str, ...] = field(default_factory=tuple)


SessionListener = Callable[[SessionEvent], None]


def normalize_email(email: str) -> str:
    try:
        result = validate_email((email or "").strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise AuthError(
            "invalid_email",
            str(exc),
            {"field": "email"},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ) from exc
    return result.normalized.lower()


class IdentityService:
    def __init__(
        self,
        session_factory: sessionmaker | Callable[[], Session],
        *,
        admin_emails: Iterable[str] | None = None,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ) -> None:
        self._session_factory = session_factory
        source = settings.ADMIN_EMAILS if admin_emails is None else admin_emails
        self._admin_emails = {item.strip().lower() for item in source if item.strip()}
        self._min_password_length = min_password_length
        self._listeners: list[SessionListener] = []
        self._lock = threading.Lock()

    # ---------- session change notification ----------

    def on_session_change(self, listener: SessionListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""

        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: SessionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("identity.listener_failed", extra={"extra_data": {"event": event.kind}})

    # ---------- accounts ----------

    def create_account(self, email: str, password: str, name: str) -> AuthResult:
        address = normalize_email(email)
        if len(password or "") < self._min_password_length:
            raise AuthError(
                "weak_password",
                f"Password should be at least {self._min_password_length} characters",
                {"field": "password"},
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )
        display_name = (name or "").strip()
        user_id = uuid4().hex
        now = datetime.now(timezone.utc)
        with self._session_factory() as db:
            try:
                if self._find_account(db, address) is not None:
                    raise self._email_in_use()
                db.add(
                    Account(
                        id=user_id,
                        email=address,
                        password_hash=hash_password(password),
                        display_name=display_name or None,
                        created_at=now,
                    )
                )
                profile = create_profile(
                    db,
                    user_id,
                    {
                        "name": display_name,
                        "email": address,
                        "is_admin": address in self._admin_emails,
                        "created_at": now,
                    },
                    commit=False,
                )
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise self._email_in_use() from exc
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("identity.register_failed", extra={"extra_data": {"email": address}})
                raise StoreError("Could not create account") from exc
            session = UserSession(
                user_id=user_id,
                email=address,
                name=profile.name or display_name or ANONYMOUS,
                is_admin=bool(profile.is_admin),
            )
        result = self._issue(session)
        logger.info("identity.registered", extra={"extra_data": {"user_id": user_id}})
        self._emit(SessionEvent("registered", user_id, result.session, (result.tokens.access_jti,)))
        return result

    def sign_in(self, email: str, password: str) -> AuthResult:
        try:
            address = normalize_email(email)
        except AuthError as exc:
            raise self._invalid_credentials() from exc
        with self._session_factory() as db:
            try:
                account = self._find_account(db, address)
                if account is None or not verify_password(password or "", account.password_hash):
                    logger.info("identity.sign_in_rejected", extra={"extra_data": {"email": address}})
                    raise self._invalid_credentials()
                session = self._build_session(db, account)
            except SQLAlchemyError as exc:
                logger.exception("identity.sign_in_failed", extra={"extra_data": {"email": address}})
                raise StoreError("Could not sign in") from exc
        result = self._issue(session)
        self._emit(SessionEvent("signed_in", session.user_id, result.session, (result.tokens.access_jti,)))
        return result

    def sign_out(self, session: UserSession, extra_token_ids: Iterable[str] = ()) -> None:
        token_ids = tuple(dict.fromkeys(t for t in (session.token_id, *extra_token_ids) if t))
        now = datetime.now(timezone.utc)
        with self._session_factory() as db:
            try:
                for jti in token_ids:
                    if db.get(RevokedToken, jti) is None:
                        db.add(RevokedToken(jti=jti, user_id=session.user_id, revoked_at=now))
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("identity.sign_out_failed", extra={"extra_data": {"user_id": session.user_id}})
                raise StoreError("Could not sign out") from exc
        logger.info("identity.signed_out", extra={"extra_data": {"user_id": session.user_id}})
        self._emit(SessionEvent("signed_out", session.user_id, None, token_ids))

    def set_display_name(self, user_id: str, name: str) -> None:
        with self._session_factory() as db:
            try:
                account = db.get(Account, user_id)
                if account is None:
                    raise AuthError("user_not_found", "No account for this session")
                account.display_name = name
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("identity.rename_failed", extra={"extra_data": {"user_id": user_id}})
                raise StoreError("Could not update display name") from exc
        self._emit(SessionEvent("profile_updated", user_id))

    # ---------- tokens ----------

    def resolve(self, payload: TokenPayload) -> UserSession:
        """Turn a verified access token into a session, rejecting revoked tokens."""

        with self._session_factory() as db:
            try:
                if db.get(RevokedToken, payload.jti) is not None:
                    raise AuthError("token_revoked", "Session has been signed out")
                account = db.get(Account, payload.sub)
                if account is None:
                    raise AuthError("user_not_found", "No account for this session")
                session = self._build_session(db, account)
            except SQLAlchemyError as exc:
                logger.exception("identity.resolve_failed", extra={"extra_data": {"user_id": payload.sub}})
                raise StoreError("Could not load session") from exc
        return replace(session, token_id=payload.jti)

    def authenticate(self, access_token: str) -> UserSession:
        try:
            payload = decode_token(access_token, verify_type="access")
        except ValueError as exc:
            raise AuthError("invalid_token", str(exc)) from exc
        return self.resolve(payload)

    def refresh(self, refresh_token: str) -> AuthResult:
        try:
            payload = decode_token(refresh_token, verify_type="refresh")
        except ValueError as exc:
            raise AuthError("invalid_token", str(exc)) from exc
        session = self.resolve(payload)
        # Refresh tokens are single use.
        self._revoke(payload.jti, payload.sub, payload.exp)
        return self._issue(replace(session, token_id=None))

    def is_revoked(self, jti: str) -> bool:
        with self._session_factory() as db:
            return db.get(RevokedToken, jti) is not None

    # ---------- helpers ----------

    def _revoke(self, jti: str, user_id: str, expires_at: datetime | None = None) -> None:
        with self._session_factory() as db:
            try:
                if db.get(RevokedToken, jti) is None:
                    db.add(
                        RevokedToken(
                            jti=jti,
                            user_id=user_id,
                            revoked_at=datetime.now(timezone.utc),
                            expires_at=expires_at,
                        )
                    )
                    db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("identity.revoke_failed", extra={"extra_data": {"user_id": user_id}})
                raise StoreError("Could not revoke token") from exc

    @staticmethod
    def _issue(session: UserSession) -> AuthResult:
        tokens = issue_token_pair(session.user_id)
        return AuthResult(session=replace(session, token_id=tokens.access_jti), tokens=tokens)

    @staticmethod
    def _find_account(db: Session, email: str) -> Account | None:
        return db.execute(select(Account).where(Account.email == email)).scalars().first()

    @staticmethod
    def _build_session(db: Session, account: Account) -> UserSession:
        profile = get_profile(db, account.id)
        name = (profile.name if profile else None) or account.display_name or ANONYMOUS
        return UserSession(
            user_id=account.id,
            email=account.email,
            name=name,
            is_admin=bool(profile.is_admin) if profile else False,
        )

    @staticmethod
    def _email_in_use() -> AuthError:
        return AuthError(
            "email_in_use",
            "The email address is already in use by another account",
            {"field": "email"},
            status_code=status.HTTP_409_CONFLICT,
        )

    @staticmethod
    def _invalid_credentials() -> AuthError:
        return AuthError("invalid_credentials", "Invalid email or password")


__all__ = [
    "ANONYMOUS",
    "AuthResult",
    "IdentityService",
    "MIN_PASSWORD_LENGTH",
    "SessionEvent",
    "UserSession",
    "normalize_email",
]
