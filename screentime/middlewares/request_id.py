from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("screentime.request")

EVENT_STREAM = "text/event-stream"


def _route_template(request: Request) -> str:
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and log one line per request.

    Leaderboard streams are logged when they open, since their body keeps
    flowing long after ``call_next`` returns.
    """

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        principal_token = principal_ctx_var.set(None)
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_ctx_var.reset(token)
            principal_ctx_var.reset(principal_token)
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[self.header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")

        user_session = getattr(request.state, "user_session", None)
        streaming = response.headers.get("content-type", "").startswith(EVENT_STREAM)
        extra_data = {
            "request_id": request_id,
            "method": request.method,
            "route": _route_template(request),
            "status": response.status_code,
            "duration_ms": round(duration_ms, 2),
        }
        if user_session is not None:
            extra_data["user_id"] = user_session.user_id
        principal = getattr(request.state, "principal", None)
        if principal:
            extra_data["principal"] = principal
        logger.info("request.stream_opened" if streaming else "request.completed", extra={"extra_data": extra_data})
        return response
