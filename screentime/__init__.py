"""Application wiring for the Screen Time Leaderboard service.

Configuration, database tables, middleware, routers and error handlers are
assembled here. ``screentime.main`` adds logging and metrics on top and is the
module to point an ASGI server at.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    ServiceError,
    http_exception_handler,
    service_error_handler,
    validation_exception_handler,
)
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Registers every model with ``Base.metadata`` before ``create_all``.
from . import models as _models  # noqa: F401

# ---------- App init ----------
app = FastAPI(title=settings.APP_NAME)

# ---------- DB init ----------
Base.metadata.create_all(bind=engine)

# ---------- Middleware ----------
app.add_middleware(SecurityHeadersMiddleware)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )
# Added last so it wraps everything else and times the whole request.
app.add_middleware(RequestIdMiddleware)

# ---------- Routers ----------
from .routers import api_auth as api_auth_router  # noqa: E402

app.include_router(api_auth_router.router)

from .routers import api_users as api_users_router  # noqa: E402

app.include_router(api_users_router.router)

from .routers import api_leaderboard as api_leaderboard_router  # noqa: E402

app.include_router(api_leaderboard_router.router)

# ---------- Exception handling ----------
app.add_exception_handler(ServiceError, service_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)


__all__ = ["app"]
