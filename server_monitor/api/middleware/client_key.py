"""Pre-shared client key gate."""

from fastapi import Request
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from server_monitor.api.errors import forbidden_response
from server_monitor.core.errors import AccessDeniedError
from server_monitor.core.logging import get_logger
from server_monitor.services.credentials import CredentialStore

logger = get_logger(__name__)

CLIENT_KEY_HEADER = "X-Client-Key"
API_PREFIX = "/api"


class ClientKeyGate:
    """
    Requires a known pre-shared key on API paths.

    The gate is disabled when neither a key hash nor a plain text key is
    configured.
    """

    def __init__(self, store: CredentialStore, prefix: str = API_PREFIX) -> None:
        self.store = store
        self.prefix = prefix

    @property
    def enabled(self) -> bool:
        return self.store.client_key_enabled

    def applies_to(self, path: str) -> bool:
        return path == self.prefix or path.startswith(f"{self.prefix}/")

    def check(self, presented: str | None) -> None:
        """
        Verify a presented key.

        Raises:
            AccessDeniedError: If the gate is enabled and the key is missing
                or wrong
        """
        if not self.enabled:
            return
        if not presented or not self.store.verify_client_key(presented):
            raise AccessDeniedError()


class ClientKeyMiddleware(BaseHTTPMiddleware):
    """Reject API requests without a valid X-Client-Key header with 403."""

    def __init__(self, app: ASGIApp, gate: ClientKeyGate) -> None:
        super().__init__(app)
        self.gate = gate

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.gate.enabled or not self.gate.applies_to(request.url.path):
            return await call_next(request)

        try:
            # bcrypt verification is CPU bound
            await run_in_threadpool(self.gate.check, request.headers.get(CLIENT_KEY_HEADER))
        except AccessDeniedError:
            logger.warning(
                "Request denied by client key gate",
                extra={"path": request.url.path},
            )
            return forbidden_response()

        return await call_next(request)
