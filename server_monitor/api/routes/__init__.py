"""API routes."""

from server_monitor.api.routes.account import router as account_router
from server_monitor.api.routes.auth import router as auth_router
from server_monitor.api.routes.health import router as health_router

__all__ = ["account_router", "auth_router", "health_router"]
