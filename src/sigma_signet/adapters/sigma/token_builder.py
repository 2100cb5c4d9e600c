"""Encrypted client assertion passed to SIGMA as ``auth_token``.

The token is a compact JWE (RSA-OAEP-256 key wrap, A128GCM content
encryption) under SIGMA's published encryption key. It carries the
client credentials and expires after 60 seconds.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import TYPE_CHECKING, Any

import httpx
import structlog
from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

if TYPE_CHECKING:
    from sigma_signet.core.settings import SettingsService

logger = structlog.get_logger()

TOKEN_LIFETIME_SECONDS = 60
DEFAULT_TIMEOUT_SECONDS = 30.0
TEST_MODE_TOKEN = "test-jwt-token"


def select_encryption_key(keys: Any) -> dict[str, Any] | None:
    """Pick the encryption key from a JWKS ``keys`` list.

    Prefers a key with ``use == "enc"``, then any key whose ``kid``
    contains ``enc``. The returned copy has its ``alg`` member removed:
    SIGMA publishes the key scoped to a single algorithm while expecting
    RSA-OAEP-256 wrapping. Revisit if SIGMA changes how it publishes keys.

    Returns:
        A JWK dict, or None if no candidate exists.
    """
    if not isinstance(keys, list):
        return None
    candidates = [key for key in keys if isinstance(key, dict)]

    chosen = next((key for key in candidates if key.get("use") == "enc"), None)
    if chosen is None:
        chosen = next(
            (key for key in candidates if "enc" in str(key.get("kid", ""))),
            None,
        )
    if chosen is None:
        return None
    return {name: value for name, value in chosen.items() if name != "alg"}


class SecureTokenBuilder:
    """Builds the encrypted auth token proving client identity to SIGMA."""

    def __init__(
        self,
        settings: SettingsService,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        test_mode: bool = False,
    ) -> None:
        """Initialize the builder.

        Args:
            settings: Settings service holding client credentials.
            timeout_seconds: Timeout for discovery and JWKS requests.
            test_mode: Return a fixed placeholder instead of contacting SIGMA.
        """
        self._settings = settings
        self._timeout_seconds = timeout_seconds
        self._test_mode = test_mode

    def can_generate(self) -> bool:
        """True if the settings allow token generation."""
        return self._settings.is_configured()

    async def generate(self) -> str | None:
        """Generate a fresh encrypted token.

        Returns:
            Compact-serialized JWE, or None if settings are incomplete or
            the key could not be obtained or used.
        """
        if not self._settings.is_configured():
            logger.warning("sigma_token_not_configured")
            return None

        settings = self._settings.current
        if self._test_mode:
            self._settings.debug_log("sigma_token_test_mode", client_id=settings.client_id)
            return TEST_MODE_TOKEN

        key = await self.fetch_encryption_key()
        if key is None:
            logger.error("sigma_token_no_public_key", idp_url=settings.idp_base_url)
            return None

        claims = {
            "iss": settings.client_id,
            "secret": settings.client_secret,
            "exp": int(time.time()) + TOKEN_LIFETIME_SECONDS,
            "jti": str(uuid.uuid4()),
        }

        try:
            token = jwe.encrypt(
                json.dumps(claims).encode("utf-8"),
                key,
                encryption=ALGORITHMS.A128GCM,
                algorithm=ALGORITHMS.RSA_OAEP_256,
                kid=key.get("kid"),
            )
        except (JOSEError, ValueError, TypeError) as e:
            logger.error("sigma_token_encryption_failed", kid=key.get("kid"), error=str(e))
            return None

        self._settings.debug_log("sigma_token_generated", kid=key.get("kid"))
        return token.decode("ascii") if isinstance(token, bytes) else str(token)

    async def fetch_encryption_key(self) -> dict[str, Any] | None:
        """Resolve SIGMA's public encryption key via discovery and JWKS."""
        discovery_url = f"{self._settings.current.idp_base_url}/.well-known/openid-configuration"

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                discovery = await self._get_json(client, discovery_url)
                if discovery is None:
                    return None

                jwks_uri = discovery.get("jwks_uri")
                if not isinstance(jwks_uri, str) or not jwks_uri:
                    logger.error("sigma_discovery_missing_jwks_uri", url=discovery_url)
                    return None

                jwks = await self._get_json(client, jwks_uri)
                if jwks is None:
                    return None
        except httpx.HTTPError as e:
            logger.error("sigma_key_fetch_failed", error=str(e), error_type=type(e).__name__)
            return None

        keys = jwks.get("keys")
        if not isinstance(keys, list):
            logger.error("sigma_jwks_missing_keys", url=jwks_uri)
            return None

        key = select_encryption_key(keys)
        if key is None:
            logger.error(
                "sigma_jwks_no_encryption_key",
                available_kids=[k.get("kid") for k in keys if isinstance(k, dict)],
            )
            return None

        self._settings.debug_log("sigma_encryption_key_selected", kid=key.get("kid"))
        return key

    async def _get_json(self, client: httpx.AsyncClient, url: str) -> dict[str, Any] | None:
        response = await client.get(url)
        if response.status_code != 200:
            logger.error(
                "sigma_key_endpoint_error",
                url=url,
                status_code=response.status_code,
                body=response.text[:500],
            )
            return None
        try:
            data = response.json()
        except ValueError:
            logger.error("sigma_key_endpoint_invalid_json", url=url)
            return None
        if not isinstance(data, dict):
            logger.error("sigma_key_endpoint_unexpected_payload", url=url)
            return None
        return data
