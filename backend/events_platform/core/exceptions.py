"""
Typed application errors.

Services raise these instead of building HTTP responses. A single handler
registered on the app turns them into JSON bodies of the form
{"detail": <message>, "error": <kind>} with the status code of the kind.

Conflict is reported as 400 because clients of this API already treat
"already registered", "already cancelled" and "sold out" as bad requests.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from events_platform.core.logging import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    kind = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(AppError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    kind = "conflict"
    status_code = status.HTTP_400_BAD_REQUEST


class ValidationError(AppError):
    kind = "validation"
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    kind = "unauthorized"
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class UnavailableError(AppError):
    kind = "unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class InternalError(AppError):
    pass


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("request_error", kind=exc.kind, detail=exc.message)
    else:
        logger.info("request_rejected", kind=exc.kind, detail=exc.message)

    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.kind},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
