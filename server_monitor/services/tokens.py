"""Stateless access/refresh token issuance and verification."""

import time
from collections.abc import Callable
from datetime import timedelta

import jwt
from pydantic import ValidationError

from server_monitor.core.config import Settings
from server_monitor.core.errors import InvalidTokenError
from server_monitor.core.logging import get_logger
from server_monitor.models.auth import TokenClaims, TokenPair, TokenUse

logger = get_logger(__name__)

ALGORITHM = "HS256"
REQUIRED_CLAIMS = ["sub", "token_use", "iat", "exp"]

Clock = Callable[[], float]


class TokenManager:
    """
    Issues and verifies HS256 tokens bound to the shared signing secret.

    Tokens are never stored server-side: validity is decided by signature
    and expiry alone, so there is no revocation.
    """

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        clock: Clock = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Token signing secret is required")
        self._secret = secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.time) -> "TokenManager":
        """Build a manager from the loaded authentication settings."""
        return cls(
            secret=settings.auth.jwt_secret,
            access_ttl=settings.auth.access_ttl,
            refresh_ttl=settings.auth.refresh_ttl,
            clock=clock,
        )

    def sign(self, subject: str, use: TokenUse, ttl: timedelta) -> str:
        """Sign a single token for ``subject``."""
        issued_at = int(self._clock())
        payload = {
            "sub": subject,
            "username": subject,
            "token_use": use.value,
            "iat": issued_at,
            "exp": issued_at + int(ttl.total_seconds()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def issue_pair(self, subject: str) -> TokenPair:
        """
        Issue a fresh access/refresh pair.

        Args:
            subject: Username the tokens are bound to

        Returns:
            Token pair
        """
        return TokenPair(
            access_token=self.sign(subject, TokenUse.ACCESS, self.access_ttl),
            refresh_token=self.sign(subject, TokenUse.REFRESH, self.refresh_ttl),
        )

    def verify(self, token: str, expected_use: TokenUse | None = None) -> TokenClaims:
        """
        Verify structure, signature and expiry of a token.

        Args:
            token: Encoded token
            expected_use: When given, the token must have been issued for it

        Returns:
            Verified claims

        Raises:
            InvalidTokenError: For any malformed, forged, expired or
                wrong-purpose token
        """
        if not token:
            raise InvalidTokenError()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                # Expiry is checked below against the injected clock
                options={"verify_exp": False, "verify_iat": False, "require": REQUIRED_CLAIMS},
            )
            claims = TokenClaims(
                subject=payload["sub"],
                use=payload["token_use"],
                issued_at=payload["iat"],
                expires_at=payload["exp"],
            )
        except (jwt.InvalidTokenError, ValidationError) as exc:
            logger.debug("Token rejected", extra={"reason": type(exc).__name__})
            raise InvalidTokenError() from exc

        if not self._clock() < claims.expires_at:
            logger.debug("Token rejected", extra={"reason": "expired"})
            raise InvalidTokenError()

        if expected_use is not None and claims.use != expected_use:
            logger.debug("Token rejected", extra={"reason": "wrong_use"})
            raise InvalidTokenError()

        return claims

    def refresh(self, refresh_token: str) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        The presented refresh token stays valid until its own expiry.

        Raises:
            InvalidTokenError: If the token is not a valid refresh token
        """
        claims = self.verify(refresh_token, expected_use=TokenUse.REFRESH)
        return self.issue_pair(claims.subject)
