"""Accessors for application-scoped services."""

from typing import Any

from fastapi import Request

from server_monitor.core.errors import InternalFault
from server_monitor.services.credentials import CredentialStore
from server_monitor.services.tokens import TokenManager


def _app_service(request: Request, name: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise InternalFault(f"Application service {name!r} is not configured")
    return service


def get_credential_store(request: Request) -> CredentialStore:
    return _app_service(request, "credential_store")


def get_token_manager(request: Request) -> TokenManager:
    return _app_service(request, "token_manager")
