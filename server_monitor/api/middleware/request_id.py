"""Request ID middleware."""

import re
import time
from contextvars import ContextVar

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from server_monitor.core.logging import get_logger
from server_monitor.core.security import generate_request_id

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
# Client supplied IDs end up in log lines; anything else is replaced
_VALID_REQUEST_ID = re.compile(r"[A-Za-z0-9._:\-]{1,128}")

# Context variable for request ID (accessible throughout request lifecycle)
request_id_context: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(candidate: str | None) -> str:
    """Propagate a well-formed client request ID or generate a new one."""
    if candidate and _VALID_REQUEST_ID.fullmatch(candidate):
        return candidate
    return generate_request_id()


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Tag every request with a correlation ID.

    The ID is taken from the X-Request-ID header when present, otherwise
    generated, and is added to:
    - Response headers (X-Request-ID)
    - Logging context
    - Request state (request.state.request_id)
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        req_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = req_id
        token = request_id_context.set(req_id)

        start_time = time.perf_counter()
        logger.info(
            "Request started",
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            },
        )

        try:
            response = await call_next(request)

            response.headers[REQUEST_ID_HEADER] = req_id
            logger.info(
                "Request completed",
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                },
            )
            return response
        finally:
            request_id_context.reset(token)


def get_request_id() -> str:
    """
    Get the current request ID from context.

    Returns:
        Current request ID or empty string if not in request context
    """
    return request_id_context.get()
