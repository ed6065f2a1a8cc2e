"""Liveness endpoint."""

from datetime import UTC, datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from server_monitor.api.dependencies import get_credential_store
from server_monitor.services.credentials import CredentialStore

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    timestamp: datetime
    service: str
    version: str


@router.get("/healthz", response_model=HealthResponse, tags=["System"])
async def healthz(store: CredentialStore = Depends(get_credential_store)) -> HealthResponse:
    """
    Unauthenticated liveness probe; always 200 while the process serves.
    """
    settings = store.settings
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(UTC),
        service=settings.app_name,
        version=settings.version,
    )
