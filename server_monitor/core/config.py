"""Configuration management.

Values are layered with the following precedence (highest first):

1. explicit keyword overrides passed to :func:`load_settings`
2. ``SERVER_MONITOR_*`` environment variables (and ``.env``)
3. the YAML configuration record on disk
4. compiled-in defaults
"""

import contextlib
import os
import re
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_serializer, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict, SettingsError

from server_monitor.core.errors import ConfigError, PersistenceError

DEFAULT_USERNAME = "admin"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_FULL = re.compile(r"^(?:\d+(?:\.\d+)?(?:ms|h|m|s))+$")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def parse_duration(value: Any) -> Any:
    """
    Parse Go-style duration strings such as ``15m``, ``168h`` or ``1h30m``.

    Anything else is returned unchanged so pydantic can handle seconds,
    ISO 8601 durations and ``HH:MM:SS`` strings itself.
    """
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not _DURATION_FULL.match(text):
        return value

    seconds = sum(
        float(amount) * _DURATION_UNITS[unit] for amount, unit in _DURATION_PART.findall(text)
    )
    return timedelta(seconds=seconds)


def format_duration(value: timedelta) -> str:
    """Render a timedelta as a Go-style duration string (``1h30m``, ``1500ms``)."""
    total_ms = round(value.total_seconds() * 1000)
    if total_ms <= 0:
        return "0s"

    total, millis = divmod(total_ms, 1000)
    if millis:
        return f"{total_ms}ms"

    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds}s")
    return "".join(parts)


class TLSConfig(BaseModel):
    """Transport security configuration."""

    cert_path: str = Field(default="./data/server.crt", description="Server certificate (PEM)")
    key_path: str = Field(default="./data/server.key", description="Server private key (PEM)")
    client_ca_path: str | None = Field(
        default=None, description="PEM bundle of CAs trusted for client certificates"
    )
    require_client_ca: bool = Field(
        default=False, description="Require and verify client certificates (mutual TLS)"
    )


class NetworkConfig(BaseModel):
    """Network hardening configuration."""

    # Comma separated in the environment, not JSON.
    allowed_cidrs: Annotated[list[str], NoDecode] = Field(
        default_factory=list,
        description="Permitted caller ranges; empty disables the allowlist",
    )

    @field_validator("allowed_cidrs", mode="before")
    @classmethod
    def split_cidrs(cls, value: Any) -> Any:
        """Accept a comma separated string as well as a list."""
        if value is None:
            return []
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


class AuthConfig(BaseModel):
    """Administrator identity, token and client-key configuration."""

    username: str = Field(default=DEFAULT_USERNAME, description="Administrator username")
    password: str | None = Field(
        default=None,
        description="Plain text password override, hashed at load and never persisted",
    )
    password_hash: str = Field(default="", description="bcrypt hash of the administrator password")
    jwt_secret: str = Field(default="", description="Shared token signing secret")
    access_ttl: timedelta = Field(
        default=timedelta(minutes=15), description="Access token lifetime"
    )
    refresh_ttl: timedelta = Field(default=timedelta(days=7), description="Refresh token lifetime")
    client_key: str | None = Field(
        default=None, description="Deprecated plain text pre-shared client key"
    )
    client_key_hash: str | None = Field(
        default=None, description="bcrypt hash of the pre-shared client key"
    )

    @field_validator("access_ttl", "refresh_ttl", mode="before")
    @classmethod
    def parse_ttl(cls, value: Any) -> Any:
        """Allow Go-style duration strings for token lifetimes."""
        return parse_duration(value)

    @field_validator("access_ttl", "refresh_ttl")
    @classmethod
    def positive_ttl(cls, value: timedelta) -> timedelta:
        """Token lifetimes must be positive."""
        if value.total_seconds() <= 0:
            raise ValueError("token lifetime must be positive")
        return value

    @field_serializer("access_ttl", "refresh_ttl", when_used="json")
    def serialize_ttl(self, value: timedelta) -> str:
        return format_duration(value)


class Settings(BaseSettings):
    """Application settings."""

    # Application
    app_name: str = Field(default="server-monitor", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")

    # Listener
    host: str = Field(default="0.0.0.0", description="Listen host")
    port: int = Field(default=8443, ge=1, le=65535, description="Listen port")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")

    tls: TLSConfig = Field(default_factory=TLSConfig, description="TLS configuration")
    network: NetworkConfig = Field(default_factory=NetworkConfig, description="Network allowlist")
    auth: AuthConfig = Field(default_factory=AuthConfig, description="Authentication configuration")

    # Configuration record path; None means nothing is persisted
    config_file: str | None = Field(default=None, description="Path to YAML configuration record")

    model_config = SettingsConfigDict(
        env_prefix="SERVER_MONITOR_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    def to_record(self) -> dict[str, Any]:
        """
        Build the mapping written to the configuration record.

        Returns:
            Serializable configuration without runtime-only fields
        """
        return self.model_dump(
            mode="json",
            exclude={"config_file": True, "auth": {"password"}},
        )


def read_config_record(path: str | os.PathLike[str]) -> dict[str, Any]:
    """
    Load the YAML configuration record.

    Args:
        path: Path to the record

    Returns:
        Configuration mapping, empty when the file does not exist

    Raises:
        ConfigError: If the file cannot be read or is not a YAML mapping
    """
    config_path = Path(path)
    if not config_path.exists():
        return {}

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"Cannot read configuration file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Malformed configuration file {config_path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration file {config_path} must contain a mapping")
    return data


def write_config_record(path: str | os.PathLike[str], record: dict[str, Any]) -> None:
    """
    Atomically replace the YAML configuration record.

    The record is written to ``<path>.tmp`` with owner-only permissions and
    renamed over the target, so readers see either the old or the new file.

    Raises:
        PersistenceError: If the record cannot be written
    """
    config_path = Path(path)
    tmp_path = Path(f"{config_path}.tmp")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            yaml.safe_dump(record, f, default_flow_style=False, sort_keys=False)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, config_path)
    except (OSError, yaml.YAMLError) as exc:
        with contextlib.suppress(OSError):
            tmp_path.unlink()
        raise PersistenceError(f"Cannot write configuration file {config_path}: {exc}") from exc


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_settings(config_file: str | None = None, **overrides: Any) -> Settings:
    """
    Load settings from overrides, environment, the YAML record and defaults.

    Args:
        config_file: Path to the YAML record; falls back to
            ``SERVER_MONITOR_CONFIG_FILE`` when omitted
        **overrides: Explicit runtime values, highest precedence

    Returns:
        Merged settings

    Raises:
        ConfigError: If any layer is malformed
    """
    try:
        explicit = Settings(**overrides)
    except (ValidationError, SettingsError) as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc

    path = config_file or explicit.config_file
    record = read_config_record(path) if path else {}

    merged = _deep_merge(record, explicit.model_dump(exclude_unset=True))
    merged["config_file"] = path

    try:
        return Settings(**merged)
    except (ValidationError, SettingsError) as exc:
        raise ConfigError(f"Invalid configuration in {path or 'environment'}: {exc}") from exc


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Application settings
    """
    return load_settings()
