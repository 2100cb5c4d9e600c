"""Authorization code exchange and userinfo retrieval."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from sigma_signet.core.claims import UserInfo

if TYPE_CHECKING:
    from sigma_signet.core.settings import SettingsService

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0
LOGGED_BODY_CHARS = 500


@dataclass(frozen=True)
class TokenResponse:
    """Tokens from SIGMA's token endpoint. Used within one request only."""

    access_token: str = field(repr=False)
    token_type: str = "Bearer"
    expires_in: int | None = None
    refresh_token: str | None = field(default=None, repr=False)


class CodeExchanger:
    """Talks to SIGMA's token and userinfo endpoints.

    Each call is attempted once with a bounded timeout. Any failure is
    logged and reported as None.
    """

    def __init__(
        self,
        settings: SettingsService,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the exchanger.

        Args:
            settings: Settings service holding endpoints and credentials.
            timeout_seconds: Per-request timeout.
        """
        self._settings = settings
        self._timeout_seconds = timeout_seconds

    async def exchange_code(self, code: str) -> TokenResponse | None:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the callback.

        Returns:
            Parsed token response, or None on any failure.
        """
        if not self._settings.is_configured():
            logger.warning("sigma_exchange_not_configured")
            return None

        settings = self._settings.current
        token_url = f"{settings.idp_base_url}/token"

        data = await self._request_json(
            "token_exchange",
            "POST",
            token_url,
            data={
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": settings.redirect_uri,
                "client_id": settings.client_id,
            },
            auth=httpx.BasicAuth(settings.client_id, settings.client_secret),
        )
        if data is None:
            return None

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            logger.error("token_exchange_missing_access_token", keys=sorted(data))
            return None

        expires_in = data.get("expires_in")
        refresh_token = data.get("refresh_token")
        tokens = TokenResponse(
            access_token=access_token,
            token_type=str(data.get("token_type") or "Bearer"),
            expires_in=expires_in if isinstance(expires_in, int) else None,
            refresh_token=refresh_token if isinstance(refresh_token, str) else None,
        )
        logger.info("token_exchange_succeeded", token_type=tokens.token_type)
        return tokens

    async def fetch_user_info(self, access_token: str) -> UserInfo | None:
        """Fetch userinfo claims with a bearer token.

        Returns:
            Parsed claims, or None on any failure.
        """
        if not self._settings.current.idp_url:
            logger.warning("sigma_userinfo_not_configured")
            return None

        userinfo_url = f"{self._settings.current.idp_base_url}/userinfo"
        data = await self._request_json(
            "userinfo",
            "GET",
            userinfo_url,
            headers={"Authorization": f"Bearer {access_token}"},
        )
        if data is None:
            return None

        user_info = UserInfo.from_claims(data)
        if user_info is None:
            return None

        logger.info(
            "userinfo_retrieved",
            authentication_type=user_info.authentication_type,
            agreement_count=len(user_info.license_agreements),
        )
        return user_info

    async def _request_json(
        self,
        operation: str,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> dict[str, Any] | None:
        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException:
            logger.error(f"{operation}_timeout", url=url, timeout=self._timeout_seconds)
            return None
        except httpx.HTTPError as e:
            logger.error(f"{operation}_request_failed", url=url, error=str(e))
            return None

        if response.status_code != 200:
            logger.error(
                f"{operation}_failed",
                url=url,
                status_code=response.status_code,
                body=response.text[:LOGGED_BODY_CHARS],
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.error(f"{operation}_invalid_json", url=url)
            return None

        if not isinstance(data, dict) or not data:
            logger.error(f"{operation}_unexpected_payload", url=url)
            return None
        return data
