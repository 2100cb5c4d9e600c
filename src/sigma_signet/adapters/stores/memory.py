"""In-memory stores for single-process deployments, development and tests."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sigma_signet.core.exceptions import AccountExistsError
from sigma_signet.core.identity import AccountMetadata, LocalAccount, NewAccount


class InMemoryConfigStore:
    """Holds the settings record in process memory."""

    def __init__(self, record: dict[str, Any] | None = None) -> None:
        """Initialize with an optional starting record."""
        self._record = dict(record or {})
        self._lock = threading.Lock()

    async def load_config(self) -> dict[str, Any]:
        """Return a copy of the current record."""
        with self._lock:
            return dict(self._record)

    async def save_config(self, record: dict[str, Any]) -> bool:
        """Replace the whole record."""
        with self._lock:
            self._record = dict(record)
        return True


class InMemoryEphemeralStore:
    """TTL key-value store.

    Every operation runs under one lock, so ``get_and_delete`` hands a
    value to exactly one caller.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize the store.

        Args:
            clock: Monotonic time source, injectable for tests.
        """
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a time-to-live."""
        with self._lock:
            self._purge_expired()
            self._entries[key] = (value, self._clock() + ttl_seconds)

    async def get_and_delete(self, key: str) -> str | None:
        """Remove and return an unexpired value."""
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            return None
        return value

    async def exists(self, key: str) -> bool:
        """True if an unexpired value exists."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False
            if entry[1] <= self._clock():
                del self._entries[key]
                return False
            return True

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]


class InMemoryAccountRepository:
    """Account store keyed by username with a unique constraint."""

    def __init__(self) -> None:
        """Initialize an empty repository."""
        self._by_id: dict[UUID, LocalAccount] = {}
        self._ids_by_username: dict[str, UUID] = {}
        self._password_hashes: dict[UUID, str] = {}
        self._lock = threading.Lock()

    @property
    def accounts(self) -> list[LocalAccount]:
        """Snapshot of all stored accounts."""
        with self._lock:
            return list(self._by_id.values())

    async def find_by_username(self, username: str) -> LocalAccount | None:
        """Get an account by username."""
        with self._lock:
            account_id = self._ids_by_username.get(username)
            return self._by_id.get(account_id) if account_id else None

    async def create_account(self, account: NewAccount) -> LocalAccount:
        """Create an account; usernames are unique."""
        with self._lock:
            if account.username in self._ids_by_username:
                raise AccountExistsError(account.username)
            created = LocalAccount(
                id=uuid4(),
                username=account.username,
                email=account.email,
                display_name=account.display_name,
                first_name=account.first_name,
                last_name=account.last_name,
                role=account.role,
                metadata=account.metadata,
                created_at=datetime.now(UTC),
            )
            self._by_id[created.id] = created
            self._ids_by_username[created.username] = created.id
            self._password_hashes[created.id] = account.password_hash
            return created

    async def update_account(
        self,
        account_id: UUID,
        *,
        display_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        metadata: AccountMetadata | None = None,
    ) -> LocalAccount | None:
        """Update the given fields of an account."""
        changes: dict[str, Any] = {
            name: value
            for name, value in (
                ("display_name", display_name),
                ("first_name", first_name),
                ("last_name", last_name),
                ("metadata", metadata),
            )
            if value is not None
        }
        with self._lock:
            account = self._by_id.get(account_id)
            if account is None:
                return None
            updated = account.model_copy(update={**changes, "updated_at": datetime.now(UTC)})
            self._by_id[account_id] = updated
            return updated
