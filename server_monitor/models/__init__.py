"""Data models for the application."""

from server_monitor.models.auth import (
    ChangeCredentialsRequest,
    LoginRequest,
    MeResponse,
    Principal,
    RefreshRequest,
    TokenClaims,
    TokenPair,
    TokenUse,
)

__all__ = [
    "ChangeCredentialsRequest",
    "LoginRequest",
    "MeResponse",
    "Principal",
    "RefreshRequest",
    "TokenClaims",
    "TokenPair",
    "TokenUse",
]
