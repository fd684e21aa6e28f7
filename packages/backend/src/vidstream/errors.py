"""Application error taxonomy and FastAPI exception handlers.

Every failure a client can see is an AppError subclass. Each carries an
HTTP status, a stable machine-readable `code`, and a client-safe message.
Services raise them; the handlers registered in main.create_app() turn
them into the JSON error envelope:

    {"status_code": 403, "code": "permission_denied",
     "message": "...", "success": false, "errors": []}

Anything that isn't an AppError is logged and reported as a generic 500.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = structlog.get_logger()


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    code: str = "internal_error"
    default_message: str = "Something went wrong"

    def __init__(self, message: str | None = None, errors: list | None = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(self.message)


# ─── 400 ──────────────────────────────────────────────────


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "Invalid request"


class InvalidCredential(AppError):
    status_code = 400
    code = "invalid_credential"
    default_message = "Invalid refresh token"


class CredentialExpired(AppError):
    status_code = 400
    code = "credential_expired"
    default_message = "Refresh token has expired"


class StaleCredential(AppError):
    """Refresh token was valid once but has been superseded by rotation."""

    status_code = 400
    code = "stale_credential"
    default_message = "Stale credential: refresh token has already been used"


class SessionRevoked(AppError):
    """Account has no active session (logged out)."""

    status_code = 400
    code = "session_revoked"
    default_message = "Session revoked: please log in again"


# ─── 401 ──────────────────────────────────────────────────


class AuthenticationError(AppError):
    status_code = 401
    code = "authentication_failed"
    default_message = "Invalid username or password"


class Unauthenticated(AuthenticationError):
    code = "unauthenticated"
    default_message = "Authentication required"


class AccountNotFound(AuthenticationError):
    code = "account_not_found"
    default_message = "Account no longer exists"


# ─── 403 / 404 / 409 / 500 ───────────────────────────────


class PermissionDenied(AppError):
    status_code = 403
    code = "permission_denied"
    default_message = "You are not allowed to modify this resource"


class NotFound(AppError):
    status_code = 404
    code = "not_found"
    default_message = "Not found"


class Conflict(AppError):
    status_code = 409
    code = "conflict"
    default_message = "Resource already exists"


class InternalFailure(AppError):
    status_code = 500
    code = "internal_error"
    default_message = "Something went wrong"


# ─── Handlers ─────────────────────────────────────────────


def _error_body(status_code: int, code: str, message: str, errors: list) -> dict:
    return {
        "status_code": status_code,
        "code": code,
        "message": message,
        "success": False,
        "errors": errors,
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = None
    if isinstance(exc, AuthenticationError):
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.code, exc.message, exc.errors),
        headers=headers,
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=_error_body(422, "validation_error", "Invalid request body", errors),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "app.unhandled_error",
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(
        status_code=500,
        content=_error_body(
            500, InternalFailure.code, InternalFailure.default_message, []
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
