"""Protocol definitions for the collaborators the sign-in flow depends on.

The core only depends on these protocols. Adapters provide in-memory
and PostgreSQL implementations; the host application can supply its own.
Implementations report backend failures as
:class:`~sigma_signet.core.exceptions.StoreError`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from sigma_signet.core.identity import AccountMetadata, LocalAccount, NewAccount


@runtime_checkable
class ConfigStore(Protocol):
    """Persistent store for the whole IdP settings record."""

    async def load_config(self) -> dict[str, Any]:
        """Load the stored record, or an empty dict when none exists."""
        ...

    async def save_config(self, record: dict[str, Any]) -> bool:
        """Replace the stored record. Returns True on success."""
        ...


@runtime_checkable
class EphemeralStore(Protocol):
    """Keyed store with per-key time-to-live.

    ``get_and_delete`` must be atomic per key: when two callers race on
    the same key, at most one of them receives the value.
    """

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        ...

    async def get_and_delete(self, key: str) -> str | None:
        """Remove and return an unexpired value, or None."""
        ...

    async def exists(self, key: str) -> bool:
        """True if an unexpired value is stored under ``key``."""
        ...


@runtime_checkable
class AccountRepository(Protocol):
    """Local account store."""

    async def find_by_username(self, username: str) -> LocalAccount | None:
        """Get an account by its username."""
        ...

    async def create_account(self, account: NewAccount) -> LocalAccount:
        """Create an account.

        Raises:
            AccountExistsError: If the username is already taken.
        """
        ...

    async def update_account(
        self,
        account_id: UUID,
        *,
        display_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        metadata: AccountMetadata | None = None,
    ) -> LocalAccount | None:
        """Update the given fields; None leaves a field unchanged."""
        ...
