"""Main FastAPI application."""

import ssl
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from server_monitor.api.errors import register_exception_handlers
from server_monitor.api.middleware import (
    AllowlistMiddleware,
    ClientKeyGate,
    ClientKeyMiddleware,
    NetworkAllowlist,
    RecoveryMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)
from server_monitor.api.routes import account_router, auth_router, health_router
from server_monitor.core.config import get_settings
from server_monitor.core.errors import TrustConfigError
from server_monitor.core.logging import get_logger, setup_logging
from server_monitor.core.tls import build_ssl_options
from server_monitor.services.credentials import CredentialStore
from server_monitor.services.tokens import TokenManager

logger = get_logger(__name__)

SHUTDOWN_TIMEOUT = 15
MAX_CONCURRENT_CONNECTIONS = 256
MAX_HEADER_BYTES = 64 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    store: CredentialStore = app.state.credential_store
    settings = store.settings
    logger.info(
        "Starting server-monitor service",
        extra={"version": settings.version, "host": settings.host, "port": settings.port},
    )
    if store.default_credentials:
        logger.warning(
            "Default administrator credentials are in use; "
            "change them via /api/auth/change_credentials"
        )

    yield
    logger.info("Shutting down server-monitor service")


def create_app(store: CredentialStore | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Gates run in this order for every request: security headers, request
    ID, panic containment, network allowlist, client key. The bearer gate
    is a per-route dependency.

    Args:
        store: Credential store; loaded from the default settings if omitted

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    if store is None:
        store = CredentialStore.from_settings(get_settings())
    settings = store.settings

    app = FastAPI(
        title=settings.app_name,
        description="Authenticated host monitoring agent",
        version=settings.version,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.credential_store = store
    app.state.token_manager = TokenManager.from_settings(settings)

    allowlist = NetworkAllowlist(settings.network.allowed_cidrs)

    # Starlette runs the last added middleware first
    app.add_middleware(ClientKeyMiddleware, gate=ClientKeyGate(store))
    app.add_middleware(AllowlistMiddleware, allowlist=allowlist)
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(account_router)

    logger.debug("FastAPI application created")

    return app


def build_server(store: CredentialStore) -> uvicorn.Server:
    """
    Bootstrap TLS material and configure the HTTPS listener.

    The TLS context is built eagerly so protocol versions below TLS 1.2
    can be refused before the socket is bound.

    Raises:
        TrustConfigError: If certificates or the client CA pool are unusable
    """
    settings = store.settings
    ssl_options = build_ssl_options(settings)

    config = uvicorn.Config(
        create_app(store),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        log_config=None,
        timeout_keep_alive=60,
        timeout_graceful_shutdown=SHUTDOWN_TIMEOUT,
        limit_concurrency=MAX_CONCURRENT_CONNECTIONS,
        h11_max_incomplete_event_size=MAX_HEADER_BYTES,
        **ssl_options,
    )
    try:
        config.load()
    except OSError as exc:
        raise TrustConfigError(f"Cannot load TLS certificate or key: {exc}") from exc
    if config.ssl is not None:
        config.ssl.minimum_version = ssl.TLSVersion.TLSv1_2
    return uvicorn.Server(config)


def run(store: CredentialStore) -> None:
    """
    Serve over HTTPS until interrupted.

    Raises:
        TrustConfigError: If certificates or the client CA pool are unusable
    """
    build_server(store).run()


if __name__ == "__main__":
    from server_monitor.cli import main

    raise SystemExit(main())
