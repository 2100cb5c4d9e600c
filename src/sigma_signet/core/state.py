"""Short-lived per-browser state: CSRF login state, silent-auth marker, flash messages.

All three live in an :class:`EphemeralStore` keyed by random tokens, so
concurrent requests only ever contend on a single key.
"""

from __future__ import annotations

import json
import secrets
import time
from typing import TYPE_CHECKING

import structlog

from sigma_signet.core.exceptions import StoreError

if TYPE_CHECKING:
    from sigma_signet.core.interfaces import EphemeralStore

logger = structlog.get_logger()

STATE_BYTES = 32  # 256 bits of entropy
STATE_TTL_SECONDS = 300
SILENT_AUTH_MARKER_TTL_SECONDS = 3600
FLASH_TTL_SECONDS = 60

STATE_KEY_PREFIX = "sigma_state:"
SILENT_AUTH_KEY_PREFIX = "sigma_ip_auth_attempted:"
FLASH_KEY_PREFIX = "sigma_flash:"


class AuthStateManager:
    """Issues and redeems single-use CSRF state values."""

    def __init__(self, store: EphemeralStore, ttl_seconds: int = STATE_TTL_SECONDS) -> None:
        """Initialize with the backing store.

        Args:
            store: Ephemeral store with atomic get-and-delete.
            ttl_seconds: Lifetime of an issued state.
        """
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def issue(self, session_id: str) -> str:
        """Issue a fresh state bound to the browser session.

        Returns:
            URL-safe random state value.
        """
        state = secrets.token_urlsafe(STATE_BYTES)
        record = json.dumps({"session_id": session_id, "issued_at": time.time()})
        await self._store.put(STATE_KEY_PREFIX + state, record, self._ttl_seconds)
        return state

    async def consume(self, state: str, session_id: str) -> bool:
        """Verify and consume a state value.

        The stored record is deleted in the same step it is read, so a
        second presentation of the same value always fails.

        Returns:
            True only if the state existed, was unexpired and belongs to
            this browser session.
        """
        if not state:
            return False

        raw = await self._store.get_and_delete(STATE_KEY_PREFIX + state)
        if raw is None:
            logger.warning("sigma_state_unknown_or_reused")
            return False

        try:
            record = json.loads(raw)
            issued_at = float(record["issued_at"])
            bound_session = record["session_id"]
        except (ValueError, KeyError, TypeError):
            logger.warning("sigma_state_record_corrupt")
            return False

        if time.time() - issued_at > self._ttl_seconds:
            logger.warning("sigma_state_expired")
            return False

        if not secrets.compare_digest(str(bound_session), session_id):
            logger.warning("sigma_state_session_mismatch")
            return False

        return True


class SilentAuthMarker:
    """Remembers that silent authentication was attempted for a browser session."""

    def __init__(
        self,
        store: EphemeralStore,
        ttl_seconds: int = SILENT_AUTH_MARKER_TTL_SECONDS,
    ) -> None:
        """Initialize with the backing store."""
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def has_attempted(self, session_id: str) -> bool:
        """True if silent auth already ran for this session within the TTL."""
        return await self._store.exists(SILENT_AUTH_KEY_PREFIX + session_id)

    async def mark_attempted(self, session_id: str) -> None:
        """Record a silent-auth attempt for this session."""
        await self._store.put(SILENT_AUTH_KEY_PREFIX + session_id, "1", self._ttl_seconds)


class FlashMessages:
    """One-shot messages shown on the next rendered page."""

    def __init__(self, store: EphemeralStore, ttl_seconds: int = FLASH_TTL_SECONDS) -> None:
        """Initialize with the backing store."""
        self._store = store
        self._ttl_seconds = ttl_seconds

    async def set(self, session_id: str, message: str) -> None:
        """Store a message for the session, replacing any pending one."""
        await self._store.put(FLASH_KEY_PREFIX + session_id, message, self._ttl_seconds)

    async def pop(self, session_id: str) -> str | None:
        """Return and clear the pending message, if any.

        A store failure loses the message rather than the page.
        """
        try:
            return await self._store.get_and_delete(FLASH_KEY_PREFIX + session_id)
        except StoreError as e:
            logger.warning("sigma_flash_unavailable", error=str(e))
            return None
