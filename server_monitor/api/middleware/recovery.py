"""Panic containment middleware."""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from server_monitor.core.logging import get_logger

logger = get_logger(__name__)


class RecoveryMiddleware(BaseHTTPMiddleware):
    """
    Convert unhandled exceptions into a generic 500 response.

    The exception is logged with its traceback; the client only sees
    "Internal server error" and the server keeps serving other requests.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Unhandled exception while serving request",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"detail": "Internal server error"},
            )
