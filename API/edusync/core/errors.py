from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

if TYPE_CHECKING:
    from edusync.storage.models import PendingAction

logger = logging.getLogger(__name__)


class SyncError(Exception):
    """Base class for failures inside the offline sync layer."""


class StorageUnavailable(SyncError):
    """Local persistence cannot be opened or written; callers degrade to memory-only mode."""


class NetworkUnreachable(SyncError):
    """Transient transport failure; recovered by queuing or cache fallback."""


class AuthRequired(SyncError):
    """Missing or rejected bearer credential while replaying queued actions."""


class DeliveryFailed(SyncError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TranslationUnavailable(SyncError):
    """Neither the cache nor the translation endpoint produced a result."""


class ReplayExhausted(SyncError):
    """A pending action hit its retry cap. Reported as a notice, not raised to callers."""

    def __init__(self, action: PendingAction, attempts: int, last_error: str | None = None):
        super().__init__(f"Action {action.id} {action.method} {action.url} dropped after {attempts} attempts")
        self.action = action
        self.attempts = attempts
        self.last_error = last_error

    def to_dict(self) -> dict:
        return {
            "action_id": self.action.id,
            "url": self.action.url,
            "method": self.action.method,
            "attempts": self.attempts,
            "last_error": self.last_error,
        }


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def error_response(
    request: Request,
    *,
    code: str,
    message: str,
    status_code: int,
    details=None,
) -> JSONResponse:
    payload = {
        "success": False,
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
            "details": details,
        },
    }
    return JSONResponse(status_code=status_code, content=payload)


async def http_exception_handler(request: Request, exc: HTTPException):
    return error_response(
        request,
        code="http_error",
        message=str(exc.detail),
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(
        request,
        code="validation_error",
        message="Request validation failed",
        status_code=422,
        details=exc.errors(),
    )


async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
    logger.warning("Local store unavailable | request_id=%s error=%s", get_request_id(request), exc)
    return error_response(
        request,
        code="storage_unavailable",
        message="Local storage is unavailable",
        status_code=503,
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception | request_id=%s", get_request_id(request), exc_info=exc)
    return error_response(
        request,
        code="internal_error",
        message="Internal server error",
        status_code=500,
    )


async def request_id_middleware(request: Request, call_next):
    incoming = request.headers.get("x-request-id")
    request.state.request_id = incoming or str(uuid.uuid4())
    response = await call_next(request)
    response.headers["x-request-id"] = request.state.request_id
    return response
