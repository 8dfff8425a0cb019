"""
Error taxonomy shared by the REST handlers, the services and the socket layer.

Each error is an HTTPException with a fixed status code, so FastAPI turns it
into a `{"detail": ...}` response without extra handlers. The socket layer
catches the same classes and maps them to named error events.
"""

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from settings import logger


class AppError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(AppError):
    """Malformed input, rejected before any write."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(AppError):
    """Missing, unknown, revoked or expired token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    """Caller lacks the role or membership the operation needs."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class PersistenceError(AppError):
    """Database call failed. Never retried."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


async def persistence_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error while handling request", extra={
        "path": request.url.path,
        "method": request.method,
        "error": str(exc)
    })
    return JSONResponse(
        status_code=PersistenceError.status_code,
        content={"detail": "Database operation failed"}
    )
