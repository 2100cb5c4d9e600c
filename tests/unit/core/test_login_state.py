"""Unit tests for CSRF state, the silent-auth marker and flash messages."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from sigma_signet.adapters.stores import InMemoryEphemeralStore
from sigma_signet.core.exceptions import StoreError
from sigma_signet.core.state import (
    FLASH_TTL_SECONDS,
    STATE_KEY_PREFIX,
    STATE_TTL_SECONDS,
    AuthStateManager,
    FlashMessages,
    SilentAuthMarker,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestAuthStateManager:
    """Tests for AuthStateManager."""

    @pytest.fixture
    def states(self, ephemeral_store: InMemoryEphemeralStore) -> AuthStateManager:
        """Return a state manager over an in-memory store."""
        return AuthStateManager(ephemeral_store)

    async def test_issue_is_random(self, states: AuthStateManager) -> None:
        """Test that each issued state is unique and high-entropy."""
        first = await states.issue("sid-1")
        second = await states.issue("sid-1")

        assert first != second
        assert len(first) >= 43  # 32 bytes, base64url

    async def test_consume_once(self, states: AuthStateManager) -> None:
        """Test that a state verifies exactly once."""
        state = await states.issue("sid-1")

        assert await states.consume(state, "sid-1") is True
        assert await states.consume(state, "sid-1") is False

    async def test_unknown_state(self, states: AuthStateManager) -> None:
        """Test that never-issued values fail."""
        assert await states.consume("forged", "sid-1") is False
        assert await states.consume("", "sid-1") is False

    async def test_session_mismatch_consumes(
        self, states: AuthStateManager, ephemeral_store: InMemoryEphemeralStore
    ) -> None:
        """Test that a state from another browser session fails and is spent."""
        state = await states.issue("sid-1")

        assert await states.consume(state, "sid-2") is False
        assert await ephemeral_store.exists(STATE_KEY_PREFIX + state) is False
        assert await states.consume(state, "sid-1") is False

    async def test_expired_by_store_ttl(self) -> None:
        """Test that states past their TTL are rejected."""
        clock = FakeClock()
        states = AuthStateManager(InMemoryEphemeralStore(clock=clock))
        state = await states.issue("sid-1")

        clock.now += STATE_TTL_SECONDS + 1

        assert await states.consume(state, "sid-1") is False

    async def test_expired_by_issue_time(self, ephemeral_store: InMemoryEphemeralStore) -> None:
        """Test that the recorded issue time is checked as well."""
        states = AuthStateManager(ephemeral_store)
        with patch("sigma_signet.core.state.time.time", return_value=1_000.0):
            state = await states.issue("sid-1")
        expired_at = 1_000.0 + STATE_TTL_SECONDS + 1
        with patch("sigma_signet.core.state.time.time", return_value=expired_at):
            assert await states.consume(state, "sid-1") is False

    async def test_corrupt_record(self, ephemeral_store: InMemoryEphemeralStore) -> None:
        """Test that unreadable stored records fail closed."""
        await ephemeral_store.put(STATE_KEY_PREFIX + "bad", "not-json", 60)
        await ephemeral_store.put(STATE_KEY_PREFIX + "partial", json.dumps({"x": 1}), 60)
        states = AuthStateManager(ephemeral_store)

        assert await states.consume("bad", "sid-1") is False
        assert await states.consume("partial", "sid-1") is False

    async def test_concurrent_redemption(self, states: AuthStateManager) -> None:
        """Test that two simultaneous redemptions succeed at most once."""
        state = await states.issue("sid-1")

        results = await asyncio.gather(
            states.consume(state, "sid-1"),
            states.consume(state, "sid-1"),
        )

        assert sorted(results) == [False, True]


class TestSilentAuthMarker:
    """Tests for SilentAuthMarker."""

    async def test_mark_and_check(self, ephemeral_store: InMemoryEphemeralStore) -> None:
        """Test that marking is per browser session."""
        marker = SilentAuthMarker(ephemeral_store)

        assert await marker.has_attempted("sid-1") is False
        await marker.mark_attempted("sid-1")

        assert await marker.has_attempted("sid-1") is True
        assert await marker.has_attempted("sid-2") is False

    async def test_marker_expires(self) -> None:
        """Test that the marker lapses after its TTL."""
        clock = FakeClock()
        marker = SilentAuthMarker(InMemoryEphemeralStore(clock=clock), ttl_seconds=3600)
        await marker.mark_attempted("sid-1")

        clock.now += 3601

        assert await marker.has_attempted("sid-1") is False


class TestFlashMessages:
    """Tests for FlashMessages."""

    async def test_pop_once(self, ephemeral_store: InMemoryEphemeralStore) -> None:
        """Test that a flash message is shown exactly once."""
        flashes = FlashMessages(ephemeral_store)
        await flashes.set("sid-1", "Access denied")

        assert await flashes.pop("sid-1") == "Access denied"
        assert await flashes.pop("sid-1") is None

    async def test_flash_expires(self) -> None:
        """Test that unread messages lapse."""
        clock = FakeClock()
        flashes = FlashMessages(InMemoryEphemeralStore(clock=clock))
        await flashes.set("sid-1", "Access denied")

        clock.now += FLASH_TTL_SECONDS

        assert await flashes.pop("sid-1") is None

    async def test_pop_survives_store_failure(
        self, ephemeral_store: InMemoryEphemeralStore
    ) -> None:
        """Test that an unreadable store yields no message instead of an error."""
        flashes = FlashMessages(ephemeral_store)

        with patch.object(
            ephemeral_store,
            "get_and_delete",
            AsyncMock(side_effect=StoreError("database unavailable")),
        ):
            assert await flashes.pop("sid-1") is None
