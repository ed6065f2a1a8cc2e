"""Error taxonomy for the trust and access-control core."""


class ServerMonitorError(Exception):
    """Base exception for server-monitor failures."""


class ConfigError(ServerMonitorError):
    """Raised when the configuration record is malformed or unreadable."""


class TrustConfigError(ServerMonitorError):
    """Raised when TLS material or the client CA pool cannot be used."""


class PersistenceError(ServerMonitorError):
    """Raised when the configuration record cannot be written back."""


class InvalidTokenError(ServerMonitorError):
    """Raised for any token that fails verification.

    The message is deliberately uniform: expired, forged and wrong-purpose
    tokens are indistinguishable to callers.
    """

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class AccessDeniedError(ServerMonitorError):
    """Raised when a network or client-key gate rejects a request."""

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class InternalFault(ServerMonitorError):
    """Unexpected runtime fault converted into a generic 500 response."""
