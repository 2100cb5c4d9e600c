"""PostgreSQL implementations of the config, ephemeral and account stores."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import asyncpg
import structlog

from sigma_signet.adapters.db.app_db import AppDatabase
from sigma_signet.core.exceptions import AccountExistsError, StoreError
from sigma_signet.core.identity import AccountMetadata, LocalAccount, NewAccount

logger = structlog.get_logger()


def _json_value(value: Any) -> dict[str, Any]:
    """Decode a JSONB column, which asyncpg returns as text by default."""
    if value is None:
        return {}
    if isinstance(value, str):
        decoded = json.loads(value)
        return decoded if isinstance(decoded, dict) else {}
    return dict(value)


class PostgresConfigStore:
    """Settings record kept as a single JSONB row."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    async def load_config(self) -> dict[str, Any]:
        """Load the settings record."""
        try:
            row = await self._db.fetch_one("SELECT record FROM sigma_settings WHERE id = 1")
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to load settings: {e}") from e
        return _json_value(row["record"]) if row else {}

    async def save_config(self, record: dict[str, Any]) -> bool:
        """Replace the settings record in one statement."""
        try:
            await self._db.execute(
                """INSERT INTO sigma_settings (id, record, updated_at)
                   VALUES (1, $1::jsonb, now())
                   ON CONFLICT (id) DO UPDATE
                   SET record = EXCLUDED.record, updated_at = EXCLUDED.updated_at""",
                json.dumps(record),
            )
        except asyncpg.PostgresError as e:
            logger.error("sigma_settings_save_failed", error=str(e))
            return False
        return True


class PostgresEphemeralStore:
    """TTL store backed by a table.

    ``get_and_delete`` is a single ``DELETE ... RETURNING`` statement, so
    concurrent redemptions of one key cannot both see the value. Expired
    rows are swept on every write. Database failures raise StoreError.
    """

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection."""
        self._db = db

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store or replace a value with a time-to-live."""
        expires_at = datetime.now(UTC) + timedelta(seconds=ttl_seconds)
        try:
            await self.purge_expired()
            await self._db.execute(
                """INSERT INTO sigma_ephemeral (key, value, expires_at)
                   VALUES ($1, $2, $3)
                   ON CONFLICT (key) DO UPDATE
                   SET value = EXCLUDED.value, expires_at = EXCLUDED.expires_at""",
                key,
                value,
                expires_at,
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to store ephemeral key: {e}") from e

    async def get_and_delete(self, key: str) -> str | None:
        """Atomically remove a key and return its value if unexpired."""
        try:
            row = await self._db.execute_returning(
                "DELETE FROM sigma_ephemeral WHERE key = $1 RETURNING value, expires_at",
                key,
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to redeem ephemeral key: {e}") from e
        if row is None:
            return None
        if row["expires_at"] <= datetime.now(UTC):
            return None
        value: str = row["value"]
        return value

    async def exists(self, key: str) -> bool:
        """True if an unexpired value exists."""
        try:
            row = await self._db.fetch_one(
                "SELECT 1 AS present FROM sigma_ephemeral WHERE key = $1 AND expires_at > now()",
                key,
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to read ephemeral key: {e}") from e
        return row is not None

    async def purge_expired(self) -> str:
        """Delete expired rows."""
        return await self._db.execute("DELETE FROM sigma_ephemeral WHERE expires_at <= now()")


class PostgresAccountRepository:
    """Accounts table with a unique username."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection."""
        self._db = db

    def _row_to_account(self, row: dict[str, Any]) -> LocalAccount:
        """Convert database row to LocalAccount model."""
        return LocalAccount(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            display_name=row["display_name"],
            first_name=row.get("first_name") or "",
            last_name=row.get("last_name") or "",
            role=row["role"],
            metadata=AccountMetadata.model_validate(_json_value(row.get("metadata"))),
            created_at=row["created_at"],
            updated_at=row.get("updated_at"),
        )

    async def find_by_username(self, username: str) -> LocalAccount | None:
        """Get account by username."""
        try:
            row = await self._db.fetch_one(
                "SELECT * FROM sigma_accounts WHERE username = $1",
                username,
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to look up account: {e}") from e
        return self._row_to_account(row) if row else None

    async def create_account(self, account: NewAccount) -> LocalAccount:
        """Insert an account; a taken username raises AccountExistsError."""
        try:
            row = await self._db.execute_returning(
                """INSERT INTO sigma_accounts
                       (id, username, email, display_name, first_name, last_name,
                        role, password_hash, metadata, created_at)
                   VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb, now())
                   ON CONFLICT (username) DO NOTHING
                   RETURNING *""",
                uuid4(),
                account.username,
                account.email,
                account.display_name,
                account.first_name,
                account.last_name,
                account.role,
                account.password_hash,
                account.metadata.model_dump_json(),
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to create account: {e}") from e
        if row is None:
            raise AccountExistsError(account.username)
        return self._row_to_account(row)

    async def update_account(
        self,
        account_id: UUID,
        *,
        display_name: str | None = None,
        first_name: str | None = None,
        last_name: str | None = None,
        metadata: AccountMetadata | None = None,
    ) -> LocalAccount | None:
        """Update the given fields; None leaves a column unchanged."""
        try:
            row = await self._db.execute_returning(
                """UPDATE sigma_accounts
                   SET display_name = COALESCE($2, display_name),
                       first_name = COALESCE($3, first_name),
                       last_name = COALESCE($4, last_name),
                       metadata = COALESCE($5::jsonb, metadata),
                       updated_at = now()
                   WHERE id = $1
                   RETURNING *""",
                account_id,
                display_name,
                first_name,
                last_name,
                metadata.model_dump_json() if metadata is not None else None,
            )
        except asyncpg.PostgresError as e:
            raise StoreError(f"Failed to update account: {e}") from e
        return self._row_to_account(row) if row else None
