"""Session status route for front-end widgets."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from sigma_signet.entrypoints.api.deps import SigmaContainer, get_container
from sigma_signet.entrypoints.api.middleware.sigma_auth import (
    BROWSER_SESSION_COOKIE,
    current_account,
)

router = APIRouter(prefix="/sigma", tags=["sigma-session"])

ContainerDep = Annotated[SigmaContainer, Depends(get_container)]


class SessionStatus(BaseModel):
    """Whether the browser is signed in, plus any pending flash message."""

    authenticated: bool
    username: str | None = None
    flash: str | None = None


@router.get("/session", response_model=SessionStatus)
async def get_session(request: Request, container: ContainerDep) -> SessionStatus:
    """Report the session and consume the pending flash message."""
    account = current_account(request, container.session_secret_key)

    flash = None
    session_id = request.cookies.get(BROWSER_SESSION_COOKIE)
    if session_id:
        flash = await container.flashes.pop(session_id)

    return SessionStatus(
        authenticated=account is not None,
        username=account.username if account else None,
        flash=flash,
    )
