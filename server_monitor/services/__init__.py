"""Services for the application."""

from server_monitor.services.credentials import CredentialStore
from server_monitor.services.tokens import TokenManager

__all__ = [
    "CredentialStore",
    "TokenManager",
]
