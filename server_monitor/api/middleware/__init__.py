"""API middleware."""

from server_monitor.api.middleware.allowlist import AllowlistMiddleware, NetworkAllowlist
from server_monitor.api.middleware.auth import get_current_principal
from server_monitor.api.middleware.client_key import ClientKeyGate, ClientKeyMiddleware
from server_monitor.api.middleware.recovery import RecoveryMiddleware
from server_monitor.api.middleware.request_id import RequestIDMiddleware
from server_monitor.api.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "AllowlistMiddleware",
    "ClientKeyGate",
    "ClientKeyMiddleware",
    "NetworkAllowlist",
    "RecoveryMiddleware",
    "RequestIDMiddleware",
    "SecurityHeadersMiddleware",
    "get_current_principal",
]
