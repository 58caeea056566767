from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(Exception):
    """Base class for failures raised by the leaderboard services."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str = "service_error", message: str = "Service error", details: Any | None = None):
        self.code = code
        self.message = message
        self.details = details
        super().__init__(message)


class AuthError(ServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, code: str, message: str, details: Any | None = None, *, status_code: int | None = None):
        super().__init__(code, message, details)
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "Not found", details: Any | None = None):
        super().__init__("not_found", message, details)


class StoreError(ServiceError):
    """A read or write against the document store failed. Never retried."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Store operation failed", details: Any | None = None):
        super().__init__("store_error", message, details)


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def service_error_handler(request: Request, exc: ServiceError):
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": _jsonable_errors(exc.errors())},
    )


def _jsonable_errors(errors: Any) -> list[dict[str, Any]]:
    cleaned = []
    for error in errors:
        item = {key: value for key, value in error.items() if key in ("type", "loc", "msg", "input")}
        if "input" in item and not isinstance(item["input"], (str, int, float, bool, type(None), list, dict)):
            item["input"] = str(item["input"])
        cleaned.append(item)
    return cleaned
