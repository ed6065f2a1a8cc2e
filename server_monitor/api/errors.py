"""Uniform error responses and exception handlers."""

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from server_monitor.core.logging import get_logger

logger = get_logger(__name__)


def forbidden_response() -> JSONResponse:
    """403 carrying no detail about which rule matched."""
    return JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"detail": "Forbidden"})


def unauthorized_error() -> HTTPException:
    """401 shared by every token and login failure."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Reject malformed bodies without echoing validation internals."""
    logger.info(
        "Rejected malformed request",
        extra={"path": request.url.path, "error_count": len(exc.errors())},
    )
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": "Bad request"})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(
        RequestValidationError,
        validation_exception_handler,  # type: ignore[arg-type]
    )
