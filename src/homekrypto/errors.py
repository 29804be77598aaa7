"""Application error taxonomy and the handlers that render it.

Services raise these; routes never build error responses by hand.
Every error renders as {"message": ...} with the class's status code.
Authentication failures also clear the session cookie so the client
never retries with a token the server already rejected.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from homekrypto.config import settings

logger = structlog.get_logger()


class AppError(Exception):
    """Base class for all errors that cross the HTTP boundary."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(AppError):
    """Missing, invalid or expired session."""

    status_code = 401
    default_message = "Authentication required"
    clear_cookie = True


class InvalidCredentialsError(AuthenticationError):
    """Wrong email/password. The caller's existing session stays untouched."""

    default_message = "Invalid email or password"
    clear_cookie = False


class AuthorizationError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 400
    default_message = "Already exists"


class RateLimitError(AppError):
    status_code = 429
    default_message = "Too many attempts. Try again later."


class InternalError(AppError):
    pass


def _error_response(exc: AppError) -> JSONResponse:
    response = JSONResponse(
        status_code=exc.status_code, content={"message": exc.message}
    )
    if getattr(exc, "clear_cookie", False):
        response.delete_cookie(
            settings.cookie_name,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="strict",
        )
    return response


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request.failed", path=request.url.path, error=exc.message)
    return _error_response(exc)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report only the first validation problem, as a 400."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = str(first.get("msg", message))
        # pydantic prefixes custom ValueError messages
        msg = msg.removeprefix("Value error, ")
        message = f"{field}: {msg}" if field else msg
    return JSONResponse(status_code=400, content={"message": message})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("request.unhandled_error", path=request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
