"""Current identity endpoint."""

from fastapi import APIRouter, Depends

from server_monitor.api.dependencies import get_credential_store
from server_monitor.api.middleware.auth import get_current_principal
from server_monitor.models.auth import MeResponse, Principal
from server_monitor.services.credentials import CredentialStore

router = APIRouter(prefix="/api", tags=["auth"])


@router.get("/me", response_model=MeResponse)
async def me(
    principal: Principal = Depends(get_current_principal),
    store: CredentialStore = Depends(get_credential_store),
) -> MeResponse:
    """
    Report the administrator identity.

    ``default_creds`` stays true until the factory default password is
    replaced, so clients can prompt for a credential change.
    """
    return MeResponse(username=store.username, default_creds=store.default_credentials)
