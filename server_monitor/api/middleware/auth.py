"""Bearer token authentication."""

from fastapi import Depends, Header, Request

from server_monitor.api.dependencies import get_token_manager
from server_monitor.api.errors import unauthorized_error
from server_monitor.core.errors import InvalidTokenError
from server_monitor.core.logging import get_logger
from server_monitor.models.auth import Principal, TokenUse
from server_monitor.services.tokens import TokenManager

logger = get_logger(__name__)


def extract_bearer_token(authorization: str | None) -> str | None:
    """
    Extract the token from an ``Authorization: Bearer <token>`` header.

    The scheme is matched case-insensitively.

    Returns:
        Token or None if the header is missing or not a bearer header
    """
    if not authorization:
        return None

    parts = authorization.strip().split(None, 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None

    token = parts[1].strip()
    return token or None


async def get_current_principal(
    request: Request,
    authorization: str | None = Header(default=None),
    token_manager: TokenManager = Depends(get_token_manager),
) -> Principal:
    """
    Validate the bearer access token on protected routes.

    Args:
        request: Current request; the principal is stored on its state
        authorization: Authorization header value
        token_manager: Token manager (injected)

    Returns:
        Authenticated principal

    Raises:
        HTTPException: 401 for a missing, invalid, expired or refresh token
    """
    token = extract_bearer_token(authorization)
    if token is None:
        logger.warning("Bearer token missing from request", extra={"path": request.url.path})
        raise unauthorized_error()

    try:
        claims = token_manager.verify(token, expected_use=TokenUse.ACCESS)
    except InvalidTokenError:
        logger.warning("Bearer token rejected", extra={"path": request.url.path})
        raise unauthorized_error() from None

    principal = Principal(username=claims.subject, claims=claims)
    request.state.principal = principal

    logger.debug("Bearer token validated", extra={"username": principal.username})
    return principal
