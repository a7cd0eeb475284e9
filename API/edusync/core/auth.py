from starlette.requests import Request

from edusync.core.errors import error_response
from edusync.core.settings import settings


EXEMPT_PATH_PREFIXES = (
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
)


class CredentialStore:
    """Bearer token and student id the agent forwards to the backend."""

    def __init__(self, token: str | None = None, student_id: str | None = None):
        self._token = token if token is not None else (settings.auth_token or None)
        self._student_id = student_id if student_id is not None else (settings.student_id or None)

    @property
    def token(self) -> str | None:
        return self._token

    @property
    def student_id(self) -> str | None:
        return self._student_id

    def set(self, token: str | None = None, student_id: str | None = None) -> None:
        if token:
            self._token = token
        if student_id:
            self._student_id = student_id

    def clear(self) -> None:
        self._token = None
        self._student_id = None

    def describe(self) -> dict:
        return {"authenticated": bool(self._token), "student_id": self._student_id}


def bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    scheme, _, value = header_value.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


async def api_key_auth_middleware(request: Request, call_next):
    if settings.agent_auth_enabled:
        path = request.url.path
        if not any(path.startswith(prefix) for prefix in EXEMPT_PATH_PREFIXES):
            provided = request.headers.get("x-api-key", "")
            if not settings.agent_api_key or provided != settings.agent_api_key:
                return error_response(
                    request,
                    code="unauthorized",
                    message="Unauthorized: invalid or missing x-api-key",
                    status_code=401,
                )
    return await call_next(request)


def credential_capture_middleware(runtime_getter):
    """Build middleware that picks up Authorization / x-student-id headers from agent callers.

    A different x-student-id switches the session the same way POST /session does.
    """

    async def middleware(request: Request, call_next):
        token = bearer_token(request.headers.get("authorization"))
        student_id = request.headers.get("x-student-id")
        if token or student_id:
            await runtime_getter().update_session(token=token, student_id=student_id)
        return await call_next(request)

    return middleware
