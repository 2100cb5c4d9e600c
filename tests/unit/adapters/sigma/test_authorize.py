"""Unit tests for AuthorizationUrlBuilder."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest

from sigma_signet.adapters.sigma.authorize import SCOPE, AuthorizationUrlBuilder
from sigma_signet.adapters.sigma.token_builder import TEST_MODE_TOKEN, SecureTokenBuilder
from sigma_signet.adapters.stores import InMemoryConfigStore
from sigma_signet.core.settings import SettingsService
from tests.fixtures.sigma import IDP_URL, REDIRECT_URI


def query_of(url: str) -> dict[str, str]:
    """Flatten a URL's query string."""
    return {name: values[0] for name, values in parse_qs(urlsplit(url).query).items()}


class TestAuthorizationUrlBuilder:
    """Tests for AuthorizationUrlBuilder."""

    @pytest.fixture
    def builder(self, settings_service: SettingsService) -> AuthorizationUrlBuilder:
        """Return a builder whose token builder runs in test mode."""
        return AuthorizationUrlBuilder(
            settings_service, SecureTokenBuilder(settings_service, test_mode=True)
        )

    def test_is_ready(self, builder: AuthorizationUrlBuilder) -> None:
        """Test readiness with complete settings."""
        assert builder.is_ready() is True

    async def test_login_url(self, builder: AuthorizationUrlBuilder) -> None:
        """Test the interactive login URL parameters."""
        url = await builder.build_login_url(
            "203.0.113.7", "https://library.example.com/page", "state-123"
        )

        assert url is not None
        assert url.startswith(f"{IDP_URL}/authorize?")
        assert query_of(url) == {
            "auth_token": TEST_MODE_TOKEN,
            "client_id": "library-client",
            "ip_address": "203.0.113.7",
            "prompt": "login",
            "redirect_uri": REDIRECT_URI,
            "response_type": "code",
            "scope": SCOPE,
            "view_name": "fullscreen",
            "referrer_url": "https://library.example.com/page",
            "state": "state-123",
        }

    async def test_login_url_without_optionals(self, builder: AuthorizationUrlBuilder) -> None:
        """Test that absent referrer and state are omitted."""
        url = await builder.build_login_url("203.0.113.7")

        assert url is not None
        params = query_of(url)
        assert "referrer_url" not in params
        assert "state" not in params

    async def test_silent_url(self, builder: AuthorizationUrlBuilder) -> None:
        """Test the silent authentication URL."""
        url = await builder.build_silent_url("203.0.113.7", "https://library.example.com/")

        assert url is not None
        params = query_of(url)
        assert params["prompt"] == "none"
        assert params["referrer_url"] == "https://library.example.com/"
        assert "state" not in params

    async def test_logout_url(self, builder: AuthorizationUrlBuilder) -> None:
        """Test the logout propagation URL."""
        url = await builder.build_logout_url("203.0.113.7")

        assert url is not None
        params = query_of(url)
        assert params["prompt"] == "logout"
        assert params["ip_address"] == "203.0.113.7"
        assert "referrer_url" not in params

    async def test_trailing_slash_normalized(self, settings_record: dict[str, str]) -> None:
        """Test that a trailing slash on the IdP URL is not doubled."""
        record = {**settings_record, "idp_url": IDP_URL + "/"}
        service = SettingsService(InMemoryConfigStore(record))
        await service.reload()
        builder = AuthorizationUrlBuilder(service, SecureTokenBuilder(service, test_mode=True))

        url = await builder.build_logout_url("203.0.113.7")

        assert url is not None
        assert url.startswith(f"{IDP_URL}/authorize?")

    async def test_not_configured(self) -> None:
        """Test that no URL is built without settings."""
        service = SettingsService(InMemoryConfigStore())
        builder = AuthorizationUrlBuilder(service, SecureTokenBuilder(service, test_mode=True))

        assert builder.is_ready() is False
        assert await builder.build_login_url("203.0.113.7") is None

    async def test_token_failure(self, settings_service: SettingsService) -> None:
        """Test that a missing auth token means no URL."""
        token_builder = MagicMock()
        token_builder.can_generate.return_value = True
        token_builder.generate = AsyncMock(return_value=None)
        builder = AuthorizationUrlBuilder(settings_service, token_builder)

        assert await builder.build_silent_url("203.0.113.7") is None
