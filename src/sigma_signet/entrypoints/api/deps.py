"""Composition root and application lifespan management."""

from __future__ import annotations

import os
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from fastapi import Request

from sigma_signet.adapters.db.app_db import AppDatabase
from sigma_signet.adapters.sigma import AuthorizationUrlBuilder, CodeExchanger, SecureTokenBuilder
from sigma_signet.adapters.stores import (
    InMemoryAccountRepository,
    InMemoryConfigStore,
    InMemoryEphemeralStore,
    PostgresAccountRepository,
    PostgresConfigStore,
    PostgresEphemeralStore,
)
from sigma_signet.core.entitlements import EntitlementAuthorizer
from sigma_signet.core.exceptions import ConfigurationError
from sigma_signet.core.flow import AuthFlowController
from sigma_signet.core.identity import IdentityMapper
from sigma_signet.core.settings import SettingsService, SigmaSettings
from sigma_signet.core.state import AuthStateManager, FlashMessages, SilentAuthMarker

if TYPE_CHECKING:
    from fastapi import FastAPI

    from sigma_signet.core.interfaces import AccountRepository, ConfigStore, EphemeralStore

logger = structlog.get_logger()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_number(name: str, default: str, kind: type[int] | type[float]) -> Any:
    value = os.getenv(name, default)
    try:
        return kind(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


class AppSettings:
    """Process settings loaded from environment."""

    def __init__(self) -> None:
        """Load settings from environment variables."""
        self.database_url = os.getenv("DATABASE_URL", "")
        self.session_secret_key = os.getenv("SESSION_SECRET_KEY", "")
        self.session_expire_minutes = _env_number("SESSION_EXPIRE_MINUTES", "720", int)
        self.home_url = os.getenv("SIGMA_HOME_URL", "/")
        self.admin_token = os.getenv("SIGMA_ADMIN_TOKEN", "")
        self.cookie_secure = _env_bool("SIGMA_COOKIE_SECURE", True)
        self.test_mode = _env_bool("SIGMA_TEST_MODE", False)
        self.http_timeout_seconds = _env_number("SIGMA_HTTP_TIMEOUT_SECONDS", "30", float)

        # Seed values for an empty config store
        self.bootstrap_record = {
            "idp_url": os.getenv("SIGMA_IDP_URL", ""),
            "client_id": os.getenv("SIGMA_CLIENT_ID", ""),
            "client_secret": os.getenv("SIGMA_CLIENT_SECRET", ""),
            "redirect_uri": os.getenv("SIGMA_REDIRECT_URI", ""),
            "ip_auth_enabled": _env_bool("SIGMA_IP_AUTH_ENABLED", False),
            "debug_enabled": _env_bool("SIGMA_DEBUG_ENABLED", False),
        }


@dataclass
class SigmaContainer:
    """Everything the HTTP layer needs, wired once per process."""

    settings: SettingsService
    controller: AuthFlowController
    flashes: FlashMessages
    accounts: AccountRepository
    session_secret_key: str
    session_expire_minutes: int = 720
    cookie_secure: bool = True
    admin_token: str = ""


def build_container(
    app_settings: AppSettings,
    config_store: ConfigStore,
    ephemeral_store: EphemeralStore,
    accounts: AccountRepository,
) -> SigmaContainer:
    """Wire settings, the SIGMA clients and the flow controller.

    Args:
        app_settings: Process settings.
        config_store: Persistent store for the IdP settings record.
        ephemeral_store: TTL store for CSRF state, markers and flash messages.
        accounts: Local account store.

    Returns:
        The wired container.
    """
    settings = SettingsService(config_store)
    token_builder = SecureTokenBuilder(
        settings,
        timeout_seconds=app_settings.http_timeout_seconds,
        test_mode=app_settings.test_mode,
    )
    url_builder = AuthorizationUrlBuilder(settings, token_builder)
    exchanger = CodeExchanger(settings, timeout_seconds=app_settings.http_timeout_seconds)
    flashes = FlashMessages(ephemeral_store)

    controller = AuthFlowController(
        settings=settings,
        url_builder=url_builder,
        exchanger=exchanger,
        authorizer=EntitlementAuthorizer(settings),
        identity_mapper=IdentityMapper(accounts, settings),
        states=AuthStateManager(ephemeral_store),
        silent_auth_marker=SilentAuthMarker(ephemeral_store),
        flashes=flashes,
        home_url=app_settings.home_url,
    )

    session_secret_key = app_settings.session_secret_key
    if not session_secret_key:
        session_secret_key = secrets.token_urlsafe(32)
        logger.warning("session_secret_generated", reason="SESSION_SECRET_KEY not set")

    return SigmaContainer(
        settings=settings,
        controller=controller,
        flashes=flashes,
        accounts=accounts,
        session_secret_key=session_secret_key,
        session_expire_minutes=app_settings.session_expire_minutes,
        cookie_secure=app_settings.cookie_secure,
        admin_token=app_settings.admin_token,
    )


async def seed_settings(settings: SettingsService, record: dict[str, object]) -> None:
    """Store bootstrap settings when the config store is still empty."""
    current = await settings.reload()
    if current != SigmaSettings():
        return
    seeded = SigmaSettings.from_record(record)
    if seeded == SigmaSettings():
        return
    await settings.update(seeded)
    logger.info("sigma_settings_seeded", configured=seeded.is_configured())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan - setup and teardown.

    Uses PostgreSQL-backed stores when DATABASE_URL is set and in-memory
    stores otherwise. A container installed before startup is left as is.
    """
    if getattr(app.state, "sigma", None) is not None:
        yield
        return

    app_settings = AppSettings()
    app_db: AppDatabase | None = None

    config_store: ConfigStore
    ephemeral_store: EphemeralStore
    accounts: AccountRepository
    if app_settings.database_url:
        app_db = AppDatabase(app_settings.database_url)
        await app_db.connect()
        await app_db.ensure_schema()
        postgres_ephemeral = PostgresEphemeralStore(app_db)
        purged = await postgres_ephemeral.purge_expired()
        logger.info("sigma_ephemeral_purged", status=purged)
        ephemeral_store = postgres_ephemeral
        config_store = PostgresConfigStore(app_db)
        accounts = PostgresAccountRepository(app_db)
    else:
        logger.warning("in_memory_stores_enabled", reason="DATABASE_URL not set")
        config_store = InMemoryConfigStore()
        ephemeral_store = InMemoryEphemeralStore()
        accounts = InMemoryAccountRepository()

    container = build_container(app_settings, config_store, ephemeral_store, accounts)
    await seed_settings(container.settings, app_settings.bootstrap_record)
    app.state.sigma = container

    yield

    if app_db is not None:
        await app_db.close()


def get_container(request: Request) -> SigmaContainer:
    """Get the wired container from app state."""
    container: SigmaContainer = request.app.state.sigma
    return container
