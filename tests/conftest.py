"""Pytest configuration and fixtures."""

import logging
import os
from collections.abc import AsyncIterator, Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from server_monitor.core.config import AuthConfig, Settings, get_settings
from server_monitor.core.security import generate_secret, hash_password
from server_monitor.main import create_app
from server_monitor.services.credentials import CredentialStore

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "secret"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """
    Keep tests independent of the host environment.

    Clears SERVER_MONITOR_* variables, runs from an empty directory so no
    .env file is picked up, and restores the root logger afterwards.
    """
    for name in list(os.environ):
        if name.startswith("SERVER_MONITOR_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()

    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level

    yield

    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)
    get_settings.cache_clear()


@pytest.fixture(scope="session")
def admin_password_hash() -> str:
    """bcrypt hash of the test administrator password."""
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Path of the configuration record (not created)."""
    return tmp_path / "config" / "server-monitor.yaml"


@pytest.fixture
def settings(config_file: Path, admin_password_hash: str) -> Settings:
    """Settings with a known administrator and signing secret."""
    return Settings(
        config_file=str(config_file),
        auth=AuthConfig(
            username=ADMIN_USERNAME,
            password_hash=admin_password_hash,
            jwt_secret=generate_secret(),
        ),
    )


@pytest.fixture
def store(settings: Settings) -> CredentialStore:
    """Credential store built from the test settings."""
    return CredentialStore.from_settings(settings)


@pytest.fixture
def app(store: CredentialStore) -> FastAPI:
    """Application wired to the test credential store."""
    return create_app(store)


@pytest.fixture
def client(app: FastAPI) -> Iterator[TestClient]:
    """
    Create a test client for the FastAPI app.

    Yields:
        TestClient for making requests to the app
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """
    Create an async test client for the FastAPI app.

    Yields:
        AsyncClient for making async requests to the app
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def login(client: TestClient) -> Callable[..., dict[str, Any]]:
    """Log in through the API and return the token pair."""

    def _login(username: str = ADMIN_USERNAME, password: str = ADMIN_PASSWORD) -> dict[str, Any]:
        response = client.post(
            "/api/auth/login", json={"username": username, "password": password}
        )
        assert response.status_code == 200, response.text
        return response.json()

    return _login
