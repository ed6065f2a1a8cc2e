"""Administrator identity and pre-shared client key store."""

import asyncio
from pathlib import Path
from typing import Any

from server_monitor.core.config import Settings, load_settings, write_config_record
from server_monitor.core.errors import ConfigError, PersistenceError
from server_monitor.core.logging import get_logger
from server_monitor.core.security import (
    DEFAULT_PASSWORD,
    constant_time_equals,
    generate_secret,
    hash_password,
    verify_password,
)

logger = get_logger(__name__)


class CredentialStore:
    """
    Owns the configuration record and the credentials derived from it.

    The store is the single write path for the persisted record: rotations
    are serialized with a lock and written with an atomic rename. Reads are
    lock-free; the identity is replaced as a whole under the lock.
    """

    def __init__(self, settings: Settings, *, default_credentials: bool = False) -> None:
        self._settings = settings
        self._default_credentials = default_credentials
        self._lock = asyncio.Lock()

    @classmethod
    def load(cls, config_file: str | None = None, **overrides: Any) -> "CredentialStore":
        """
        Load the configuration record and prepare credentials.

        Args:
            config_file: Path to the YAML record
            **overrides: Explicit runtime overrides

        Raises:
            ConfigError: If the configuration is malformed
        """
        return cls.from_settings(load_settings(config_file, **overrides))

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        """
        Fill in generated secrets and default credentials.

        A signing secret missing from an existing record is generated once
        and written back so tokens survive restarts.

        Raises:
            ConfigError: If a configured password cannot be hashed
        """
        auth = settings.auth
        record_exists = bool(settings.config_file) and Path(settings.config_file).is_file()

        generated_secret = False
        if not auth.jwt_secret:
            auth.jwt_secret = generate_secret()
            generated_secret = True
            logger.info("Generated new token signing secret")

        if auth.password:
            try:
                auth.password_hash = hash_password(auth.password)
            except ValueError as exc:
                raise ConfigError(f"Invalid administrator password: {exc}") from exc
            auth.password = None

        if auth.password_hash:
            # A written-back record stores the default hash like any other.
            default_credentials = verify_password(auth.password_hash, DEFAULT_PASSWORD)
        else:
            auth.password_hash = hash_password(DEFAULT_PASSWORD)
            default_credentials = True

        if default_credentials:
            logger.warning(
                "Using the default password. "
                "This is unsafe for production, change the credentials.",
                extra={"username": auth.username},
            )

        if auth.client_key and not auth.client_key_hash:
            logger.warning("Plain text client_key is deprecated; configure client_key_hash instead")

        store = cls(settings, default_credentials=default_credentials)

        if generated_secret and record_exists:
            try:
                store.persist()
            except PersistenceError as exc:
                logger.warning(
                    "Could not write generated signing secret back",
                    extra={"error": str(exc)},
                )

        return store

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def username(self) -> str:
        return self._settings.auth.username

    @property
    def default_credentials(self) -> bool:
        """True while the factory default password is in use."""
        return self._default_credentials

    @property
    def client_key_enabled(self) -> bool:
        auth = self._settings.auth
        return bool(auth.client_key_hash or auth.client_key)

    async def authenticate(self, username: str, password: str) -> bool:
        """
        Check a username/password pair against the stored identity.

        The password is always verified, even for an unknown username, so
        response time does not reveal which part was wrong.
        """
        auth = self._settings.auth
        stored_username, stored_hash = auth.username, auth.password_hash

        username_ok = constant_time_equals(username, stored_username)
        password_ok = await asyncio.to_thread(verify_password, stored_hash, password)
        return username_ok and password_ok

    def verify_client_key(self, candidate: str | None) -> bool:
        """
        Check a presented client key.

        The hash is preferred; the plain text key is only consulted when no
        hash is configured.
        """
        if not candidate:
            return False

        auth = self._settings.auth
        if auth.client_key_hash:
            return verify_password(auth.client_key_hash, candidate)
        if auth.client_key:
            return constant_time_equals(candidate, auth.client_key)
        return False

    def persist(self) -> None:
        """
        Write the full configuration record to disk.

        Raises:
            PersistenceError: If no configuration file is configured or the
                write fails
        """
        path = self._settings.config_file
        if not path:
            raise PersistenceError("No configuration file configured")
        write_config_record(path, self._settings.to_record())

    async def rotate(self, new_username: str, new_password: str) -> None:
        """
        Replace the administrator identity and persist it.

        The in-memory identity is updated before persisting, so it takes
        effect for this process even when the write fails.

        Raises:
            ValueError: If username or password is blank or cannot be hashed
            PersistenceError: If the record cannot be written
        """
        if not new_username.strip() or not new_password.strip():
            raise ValueError("Username and password must not be blank")

        # Hash outside the lock
        password_hash = await asyncio.to_thread(hash_password, new_password)

        async with self._lock:
            auth = self._settings.auth
            auth.username = new_username
            auth.password_hash = password_hash
            self._default_credentials = constant_time_equals(new_password, DEFAULT_PASSWORD)

            path = self._settings.config_file
            if not path:
                raise PersistenceError("No configuration file configured")
            await asyncio.to_thread(write_config_record, path, self._settings.to_record())

        logger.info("Administrator credentials rotated", extra={"username": new_username})
