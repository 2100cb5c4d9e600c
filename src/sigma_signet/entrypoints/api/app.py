"""FastAPI application definition."""

from __future__ import annotations

import html

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse

from sigma_signet import __version__
from sigma_signet.core.flow import LOGIN_PARAM, LOGOUT_PARAM, WELCOME_PARAM

from .deps import SigmaContainer, lifespan
from .middleware import SigmaAuthMiddleware
from .routes import api_router

HOME_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>Sigma Signet</title></head>
<body>
{flash}{welcome}<p>{status}</p>
<p><a href="{action_url}">{action_label}</a></p>
</body>
</html>
"""


def create_app(container: SigmaContainer | None = None) -> FastAPI:
    """Create the application.

    Args:
        container: Pre-wired dependencies. When omitted, the lifespan
            builds them from the environment at startup.
    """
    app = FastAPI(
        title="sigma-signet",
        description="SIGMA OpenID Connect relying party",
        version=__version__,
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.sigma = container

    app.add_middleware(SigmaAuthMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/", response_class=HTMLResponse)
    async def home(request: Request) -> HTMLResponse:
        """Landing page showing sign-in status and any pending flash message."""
        sigma: SigmaContainer = request.app.state.sigma
        account = getattr(request.state, "sigma_account", None)
        session_id = getattr(request.state, "sigma_session_id", "")

        flash = await sigma.flashes.pop(session_id) if session_id else None
        flash_html = f'<p class="flash">{html.escape(flash)}</p>\n' if flash else ""
        welcome_html = ""
        if account is not None and WELCOME_PARAM in request.query_params:
            welcome_html = f"<h1>Welcome, {html.escape(account.username)}</h1>\n"

        if account is not None:
            status = f"Signed in as {html.escape(account.username)}."
            action_url, action_label = f"/?{LOGOUT_PARAM}=1", "Sign out"
        else:
            status = "You are not signed in."
            action_url, action_label = f"/?{LOGIN_PARAM}=1", "Sign in with SIGMA"

        return HTMLResponse(
            HOME_PAGE.format(
                flash=flash_html,
                welcome=welcome_html,
                status=status,
                action_url=action_url,
                action_label=action_label,
            )
        )

    return app


app = create_app()
