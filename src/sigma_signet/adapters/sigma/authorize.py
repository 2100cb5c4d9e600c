"""Authorization endpoint URLs for login, silent (IP) login and logout."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from urllib.parse import urlencode

import structlog

if TYPE_CHECKING:
    from sigma_signet.adapters.sigma.token_builder import SecureTokenBuilder
    from sigma_signet.core.settings import SettingsService

logger = structlog.get_logger()

SCOPE = "openid profile email license license_lite profile_extended offline_access"
VIEW_NAME = "fullscreen"
RESPONSE_TYPE = "code"


class Prompt(str, Enum):
    """``prompt`` values understood by SIGMA's authorize endpoint."""

    LOGIN = "login"
    NONE = "none"
    LOGOUT = "logout"


class AuthorizationUrlBuilder:
    """Composes ``{idp_url}/authorize`` URLs.

    Every URL carries a freshly generated auth token, so each build
    contacts SIGMA's key endpoints unless the token builder is in test mode.
    """

    def __init__(self, settings: SettingsService, token_builder: SecureTokenBuilder) -> None:
        """Initialize the builder.

        Args:
            settings: Settings service.
            token_builder: Builder for the encrypted auth token.
        """
        self._settings = settings
        self._token_builder = token_builder

    def is_ready(self) -> bool:
        """True if URLs can be built (configured and token generation possible)."""
        return self._settings.is_configured() and self._token_builder.can_generate()

    async def build_login_url(
        self,
        ip_address: str,
        referrer_url: str | None = None,
        state: str | None = None,
    ) -> str | None:
        """Interactive login URL (``prompt=login``) embedding the CSRF state."""
        return await self._build(Prompt.LOGIN, ip_address, referrer_url, state)

    async def build_silent_url(
        self,
        ip_address: str,
        referrer_url: str | None = None,
    ) -> str | None:
        """Silent IP-recognition URL (``prompt=none``)."""
        return await self._build(Prompt.NONE, ip_address, referrer_url, None)

    async def build_logout_url(self, ip_address: str) -> str | None:
        """Logout propagation URL (``prompt=logout``)."""
        return await self._build(Prompt.LOGOUT, ip_address, None, None)

    async def _build(
        self,
        prompt: Prompt,
        ip_address: str,
        referrer_url: str | None,
        state: str | None,
    ) -> str | None:
        if not self._settings.is_configured():
            logger.warning("sigma_authorize_url_not_configured", prompt=prompt.value)
            return None

        auth_token = await self._token_builder.generate()
        if not auth_token:
            logger.error("sigma_authorize_url_no_token", prompt=prompt.value)
            return None

        settings = self._settings.current
        params = {
            "auth_token": auth_token,
            "client_id": settings.client_id,
            "ip_address": ip_address,
            "prompt": prompt.value,
            "redirect_uri": settings.redirect_uri,
            "response_type": RESPONSE_TYPE,
            "scope": SCOPE,
            "view_name": VIEW_NAME,
        }
        if referrer_url:
            params["referrer_url"] = referrer_url
        if state:
            params["state"] = state

        self._settings.debug_log(
            "sigma_authorize_url_built",
            prompt=prompt.value,
            client_id=settings.client_id,
            ip_address=ip_address,
        )
        return f"{settings.idp_base_url}/authorize?{urlencode(params)}"
