"""Login, token refresh and credential rotation endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response, status

from server_monitor.api.dependencies import get_credential_store, get_token_manager
from server_monitor.api.errors import unauthorized_error
from server_monitor.api.middleware.auth import get_current_principal
from server_monitor.core.errors import InvalidTokenError, PersistenceError
from server_monitor.core.logging import get_logger
from server_monitor.models.auth import (
    ChangeCredentialsRequest,
    LoginRequest,
    Principal,
    RefreshRequest,
    TokenPair,
)
from server_monitor.services.credentials import CredentialStore
from server_monitor.services.tokens import TokenManager

logger = get_logger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=TokenPair)
async def login(
    body: LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
    token_manager: TokenManager = Depends(get_token_manager),
) -> TokenPair:
    """
    Exchange administrator credentials for an access/refresh token pair.
    """
    if not await store.authenticate(body.username, body.password):
        logger.warning("Login failed", extra={"username": body.username})
        raise unauthorized_error()

    logger.info("Login succeeded", extra={"username": body.username})
    return token_manager.issue_pair(body.username)


@router.post("/refresh", response_model=TokenPair)
async def refresh(
    body: RefreshRequest,
    token_manager: TokenManager = Depends(get_token_manager),
) -> TokenPair:
    """
    Exchange a refresh token for a new pair.

    Access tokens are rejected here.
    """
    try:
        return token_manager.refresh(body.refresh_token)
    except InvalidTokenError:
        logger.warning("Token refresh rejected")
        raise unauthorized_error() from None


@router.post("/change_credentials", status_code=status.HTTP_204_NO_CONTENT)
async def change_credentials(
    body: ChangeCredentialsRequest,
    principal: Principal = Depends(get_current_principal),
    store: CredentialStore = Depends(get_credential_store),
) -> Response:
    """
    Rotate the administrator username and password.

    Persistence is best effort: if the record cannot be written the new
    credentials still apply until the process restarts.
    """
    try:
        await store.rotate(body.username, body.new_password)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid input"
        ) from None
    except PersistenceError as exc:
        logger.warning(
            "Credentials changed in memory only; configuration record not updated",
            extra={"error": str(exc), "changed_by": principal.username},
        )

    return Response(status_code=status.HTTP_204_NO_CONTENT)
