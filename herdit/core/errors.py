"""Domain errors raised by services and mapped to HTTP responses."""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from herdit.utils.logging import get_logger

logger = get_logger(__name__)


class HerditError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail: str = "Internal server error"

    def __init__(self, detail: Any = None):
        self.detail = detail if detail is not None else self.default_detail
        super().__init__(str(self.detail))


class Unauthorized(HerditError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Unauthorized"


class Forbidden(HerditError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Forbidden"


class NotFound(HerditError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found"


class ValidationError(HerditError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Invalid payload"


class NoApproverAssigned(HerditError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "No approver assigned to this user"


class Conflict(HerditError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(HerditError)
    async def herdit_error_handler(request: Request, exc: HerditError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("[%s %s] %s", request.method, request.url.path, exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[%s %s] unhandled error", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
