"""Fixtures for API tests."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sigma_signet.adapters.stores import InMemoryAccountRepository, InMemoryEphemeralStore
from sigma_signet.core.flow import AuthFlowController
from sigma_signet.core.settings import SettingsService
from sigma_signet.core.state import FlashMessages
from sigma_signet.entrypoints.api.app import create_app
from sigma_signet.entrypoints.api.deps import SigmaContainer

SESSION_SECRET = "api-test-session-secret-0123456789"
ADMIN_TOKEN = "admin-token-123"


@pytest.fixture
def container(
    settings_service: SettingsService,
    flow_controller: AuthFlowController,
    ephemeral_store: InMemoryEphemeralStore,
    account_repository: InMemoryAccountRepository,
) -> SigmaContainer:
    """Return a container around the mocked flow controller."""
    return SigmaContainer(
        settings=settings_service,
        controller=flow_controller,
        flashes=FlashMessages(ephemeral_store),
        accounts=account_repository,
        session_secret_key=SESSION_SECRET,
        cookie_secure=False,
        admin_token=ADMIN_TOKEN,
    )


@pytest.fixture
def client(container: SigmaContainer) -> TestClient:
    """Return a test client for an app using the container."""
    return TestClient(create_app(container), follow_redirects=False)
