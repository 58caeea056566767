from __future__ import annotations

from fastapi import Depends, Header, Request
from fastapi.security.utils import get_authorization_scheme_param
from starlette.concurrency import run_in_threadpool

from ..core.errors import AuthError
from ..middlewares import principal_ctx_var
from ..services.identity import IdentityService, UserSession
from .services import get_identity


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


def bearer_token(authorization: str | None) -> str:
    scheme, credentials = get_authorization_scheme_param(authorization or "")
    if scheme.lower() != "bearer" or not credentials:
        raise AuthError("authorization_required", "Authorization required")
    return credentials


async def require_session(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    identity: IdentityService = Depends(get_identity),
) -> UserSession:
    token = bearer_token(authorization)
    session = await run_in_threadpool(identity.authenticate, token)
    _set_principal(request, f"user:{session.user_id}")
    request.state.user_session = session
    return session
