"""Network allowlist gate."""

import ipaddress
from collections.abc import Iterable

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from server_monitor.api.errors import forbidden_response
from server_monitor.core.errors import AccessDeniedError
from server_monitor.core.logging import get_logger

logger = get_logger(__name__)

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


def parse_client_ip(address: str | None) -> IPAddress | None:
    """
    Resolve a caller address to an IP, stripping any port.

    Accepts ``1.2.3.4``, ``1.2.3.4:5678``, ``::1`` and ``[::1]:8443``.
    IPv4-mapped IPv6 addresses are unwrapped to IPv4.

    Returns:
        Parsed address or None if it is missing or not an IP
    """
    if not address:
        return None

    host = address.strip()
    if host.startswith("["):
        host = host[1:].split("]", 1)[0]
    elif host.count(":") == 1:
        host = host.rsplit(":", 1)[0]

    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None

    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return ip.ipv4_mapped
    return ip


class NetworkAllowlist:
    """Ordered set of permitted caller ranges; empty means unrestricted."""

    def __init__(self, cidrs: Iterable[str]) -> None:
        self.networks: list[IPNetwork] = []
        for entry in cidrs:
            try:
                self.networks.append(ipaddress.ip_network(entry.strip(), strict=False))
            except ValueError:
                logger.warning("Ignoring unparsable allowlist entry", extra={"entry": entry})

    @property
    def enabled(self) -> bool:
        return bool(self.networks)

    def allows(self, address: str | None) -> bool:
        """Whether a caller address falls inside any configured range."""
        if not self.enabled:
            return True

        ip = parse_client_ip(address)
        if ip is None:
            return False
        return any(ip in network for network in self.networks)

    def check(self, address: str | None) -> None:
        """
        Raises:
            AccessDeniedError: If the caller is outside every range
        """
        if not self.allows(address):
            raise AccessDeniedError()


class AllowlistMiddleware(BaseHTTPMiddleware):
    """Reject callers outside the configured network ranges with 403."""

    def __init__(self, app: ASGIApp, allowlist: NetworkAllowlist) -> None:
        super().__init__(app)
        self.allowlist = allowlist

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self.allowlist.enabled:
            return await call_next(request)

        client = request.client.host if request.client else None
        try:
            self.allowlist.check(client)
        except AccessDeniedError:
            logger.warning(
                "Request denied by network allowlist",
                extra={"client": client, "path": request.url.path},
            )
            return forbidden_response()

        return await call_next(request)
