"""Runs every request through the SIGMA sign-in flow."""

from __future__ import annotations

import html
import secrets
from typing import TYPE_CHECKING

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import HTMLResponse, RedirectResponse, Response

from sigma_signet.core.auth import (
    SessionClaims,
    TokenError,
    create_session_token,
    decode_session_token,
)
from sigma_signet.core.flow import FlowError, FlowOutcome, InboundRequest

if TYPE_CHECKING:
    from sigma_signet.entrypoints.api.deps import SigmaContainer

logger = structlog.get_logger()

BROWSER_SESSION_COOKIE = "sigma_sid"
SESSION_COOKIE = "sigma_session"
BROWSER_SESSION_MAX_AGE = 60 * 60 * 24 * 30

# Paths the flow never sees.
EXEMPT_PATHS = ("/health",)
EXEMPT_PREFIXES = ("/api/",)

ERROR_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Sign-in error</title></head>
<body>
<h1>Sign-in error</h1>
<p>{message}</p>
<p><a href="{home_url}">Return to the home page</a></p>
</body>
</html>
"""


def client_ip(request: Request) -> str:
    """First X-Forwarded-For entry, else the peer address."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    return request.client.host if request.client else ""


def current_account(request: Request, secret_key: str) -> SessionClaims | None:
    """Claims from a valid session cookie, or None."""
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        return None
    try:
        return decode_session_token(token, secret_key)
    except TokenError as e:
        logger.debug("sigma_session_cookie_rejected", reason=str(e))
        return None


def render_error(error: FlowError, home_url: str) -> HTMLResponse:
    """Minimal error page with the message HTML-escaped."""
    body = ERROR_PAGE.format(
        message=html.escape(error.message),
        home_url=html.escape(home_url, quote=True),
    )
    return HTMLResponse(body, status_code=error.status_code)


class SigmaAuthMiddleware(BaseHTTPMiddleware):
    """Hands each request to the flow controller and applies its outcome.

    The container is looked up on ``app.state.sigma`` per request, so it
    can be installed by the lifespan after the middleware stack is built.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Classify the request and either short-circuit it or pass it on."""
        path = request.url.path
        if path in EXEMPT_PATHS or path.startswith(EXEMPT_PREFIXES):
            return await call_next(request)

        container: SigmaContainer = request.app.state.sigma

        session_id = request.cookies.get(BROWSER_SESSION_COOKIE) or ""
        new_session_id = not session_id
        if new_session_id:
            session_id = secrets.token_urlsafe(32)

        account = current_account(request, container.session_secret_key)

        inbound = InboundRequest.create(
            path=path,
            query=dict(request.query_params),
            client_ip=client_ip(request),
            session_id=session_id,
            is_authenticated=account is not None,
            referrer=request.headers.get("referer") or None,
        )
        outcome = await container.controller.handle(inbound)

        if outcome.is_passthrough:
            request.state.sigma_session_id = session_id
            request.state.sigma_account = account
            response = await call_next(request)
        else:
            response = self._render(outcome, container)
            self._apply_session_changes(response, outcome, container)

        if new_session_id:
            response.set_cookie(
                BROWSER_SESSION_COOKIE,
                session_id,
                max_age=BROWSER_SESSION_MAX_AGE,
                httponly=True,
                secure=container.cookie_secure,
                samesite="lax",
            )
        return response

    def _render(self, outcome: FlowOutcome, container: SigmaContainer) -> Response:
        if outcome.error is not None:
            return render_error(outcome.error, container.controller.home_url)
        redirect_url = outcome.redirect_url or container.controller.home_url
        return RedirectResponse(redirect_url, status_code=302)

    def _apply_session_changes(
        self, response: Response, outcome: FlowOutcome, container: SigmaContainer
    ) -> None:
        if outcome.end_session:
            response.delete_cookie(SESSION_COOKIE)

        account = outcome.establish_session
        if account is not None:
            token = create_session_token(
                str(account.id),
                account.username,
                container.session_secret_key,
                expire_minutes=container.session_expire_minutes,
            )
            response.set_cookie(
                SESSION_COOKIE,
                token,
                max_age=container.session_expire_minutes * 60,
                httponly=True,
                secure=container.cookie_secure,
                samesite="lax",
            )
