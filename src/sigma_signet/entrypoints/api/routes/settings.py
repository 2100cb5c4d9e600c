"""Admin routes for the SIGMA IdP settings record."""

from __future__ import annotations

import secrets
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from sigma_signet.core.settings import REDACTED, SigmaSettings
from sigma_signet.entrypoints.api.deps import SigmaContainer, get_container

logger = structlog.get_logger()

router = APIRouter(prefix="/sigma/settings", tags=["sigma-settings"])

ADMIN_TOKEN_HEADER = APIKeyHeader(name="X-Admin-Token", auto_error=False)

ContainerDep = Annotated[SigmaContainer, Depends(get_container)]


async def verify_admin_token(
    container: ContainerDep,
    admin_token: str | None = Security(ADMIN_TOKEN_HEADER),
) -> None:
    """Require the configured admin token.

    An empty SIGMA_ADMIN_TOKEN disables the settings API entirely.
    """
    if not container.admin_token:
        raise HTTPException(status_code=404, detail="Settings API is disabled")
    if not admin_token:
        raise HTTPException(status_code=401, detail="Missing admin token")
    if not secrets.compare_digest(admin_token.encode(), container.admin_token.encode()):
        logger.warning("sigma_settings_invalid_admin_token")
        raise HTTPException(status_code=401, detail="Invalid admin token")


AdminDep = Annotated[None, Depends(verify_admin_token)]


class SigmaSettingsResponse(BaseModel):
    """Settings record as shown to administrators."""

    idp_url: str
    client_id: str
    client_secret: str = Field(description="Masked; empty when no secret is stored")
    redirect_uri: str
    ip_auth_enabled: bool
    debug_enabled: bool
    configured: bool
    warnings: list[str] = Field(default_factory=list)


class UpdateSigmaSettingsRequest(BaseModel):
    """Full replacement of the settings record."""

    idp_url: str = ""
    client_id: str = ""
    client_secret: str = Field(default="", description="Blank keeps the stored secret")
    redirect_uri: str = ""
    ip_auth_enabled: bool = False
    debug_enabled: bool = False


def _to_response(settings: SigmaSettings) -> SigmaSettingsResponse:
    return SigmaSettingsResponse(
        idp_url=settings.idp_url,
        client_id=settings.client_id,
        client_secret=REDACTED if settings.client_secret else "",
        redirect_uri=settings.redirect_uri,
        ip_auth_enabled=settings.ip_auth_enabled,
        debug_enabled=settings.debug_enabled,
        configured=settings.is_configured(),
        warnings=settings.missing_fields(),
    )


@router.get("", response_model=SigmaSettingsResponse)
async def get_sigma_settings(_: AdminDep, container: ContainerDep) -> SigmaSettingsResponse:
    """Get the current settings with the client secret masked."""
    settings = await container.settings.reload()
    return _to_response(settings)


@router.put("", response_model=SigmaSettingsResponse)
async def update_sigma_settings(
    request: UpdateSigmaSettingsRequest,
    _: AdminDep,
    container: ContainerDep,
) -> SigmaSettingsResponse:
    """Replace the settings record.

    Missing required fields are reported as warnings; the record is
    saved regardless.
    """
    stored = await container.settings.reload()
    record = request.model_dump()
    if not record["client_secret"].strip():
        record["client_secret"] = stored.client_secret

    settings = SigmaSettings.from_record(record)
    if not await container.settings.update(settings):
        raise HTTPException(status_code=500, detail="Failed to save settings")

    return _to_response(settings)
