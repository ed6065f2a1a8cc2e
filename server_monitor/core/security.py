"""Security utilities for password, secret and client key handling."""

import hmac
import secrets
from typing import Final

import bcrypt

# bcrypt work factor
BCRYPT_ROUNDS: Final = 10
BCRYPT_MAX_BYTES: Final = 72

DEFAULT_PASSWORD: Final = "admin"

# Client key format: smk_<32 random hex characters>
CLIENT_KEY_PREFIX: Final = "smk_"
CLIENT_KEY_LENGTH: Final = 32

SECRET_BYTES: Final = 32


def hash_password(plain: str) -> str:
    """
    Hash a password (or client key) with bcrypt.

    Args:
        plain: Plain text secret

    Returns:
        bcrypt hash string

    Raises:
        ValueError: If the secret is empty or longer than bcrypt accepts
    """
    if not plain:
        raise ValueError("Cannot hash an empty password")

    encoded = plain.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password exceeds {BCRYPT_MAX_BYTES} bytes")

    return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(password_hash: str | None, candidate: str | None) -> bool:
    """
    Check a candidate secret against a bcrypt hash.

    Never raises: empty inputs, malformed hashes and over-long candidates
    all verify as False.
    """
    if not password_hash or not candidate:
        return False

    encoded = candidate.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return False

    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def constant_time_equals(left: str, right: str) -> bool:
    """Compare two strings without leaking the mismatch position."""
    return hmac.compare_digest(left.encode("utf-8"), right.encode("utf-8"))


def generate_secret() -> str:
    """
    Generate a token signing secret.

    Returns:
        64 hex characters drawn from a CSPRNG
    """
    return secrets.token_hex(SECRET_BYTES)


def generate_client_key() -> str:
    """
    Generate a new pre-shared client key.

    Returns:
        A new key in format: smk_<32 hex chars>
    """
    return f"{CLIENT_KEY_PREFIX}{secrets.token_hex(CLIENT_KEY_LENGTH // 2)}"


def generate_request_id() -> str:
    """
    Generate a unique request ID.

    Returns:
        A unique request ID
    """
    return f"req_{secrets.token_hex(16)}"


def mask_secret(value: str | None, keep: int = 4) -> str:
    """Replace all but the last ``keep`` characters with asterisks."""
    if not value:
        return ""
    if len(value) <= keep:
        return "*" * len(value)
    return "*" * (len(value) - keep) + value[-keep:]
