"""Unit tests for the PostgreSQL stores."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import asyncpg
import pytest

from sigma_signet.adapters.stores import (
    PostgresAccountRepository,
    PostgresConfigStore,
    PostgresEphemeralStore,
)
from sigma_signet.core.exceptions import AccountExistsError, StoreError
from sigma_signet.core.identity import AccountMetadata, NewAccount


@pytest.fixture
def mock_db() -> MagicMock:
    """Return an AppDatabase stand-in with async query methods."""
    db = MagicMock()
    db.fetch_one = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="OK")
    db.execute_returning = AsyncMock(return_value=None)
    return db


def account_row(**overrides: Any) -> dict[str, Any]:
    """Build a sigma_accounts row."""
    row: dict[str, Any] = {
        "id": uuid4(),
        "username": "profile_1",
        "email": "1@sigma.local",
        "display_name": "Ada Lovelace",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "role": "subscriber",
        "password_hash": "$2b$12$hash",
        "metadata": json.dumps(
            {
                "sigma_profile_id": "1",
                "sigma_auth_type": "named",
                "sigma_identifier_type": "unknown",
                "sigma_userinfo": {},
            }
        ),
        "created_at": datetime.now(UTC),
        "updated_at": None,
    }
    row.update(overrides)
    return row


class TestPostgresConfigStore:
    """Tests for PostgresConfigStore."""

    async def test_load_empty(self, mock_db: MagicMock) -> None:
        """Test that a missing row loads as an empty record."""
        assert await PostgresConfigStore(mock_db).load_config() == {}

    async def test_load_decodes_json(self, mock_db: MagicMock) -> None:
        """Test that the JSONB text is decoded."""
        mock_db.fetch_one.return_value = {"record": json.dumps({"idp_url": "https://idp"})}

        assert await PostgresConfigStore(mock_db).load_config() == {"idp_url": "https://idp"}

    async def test_save_upserts(self, mock_db: MagicMock) -> None:
        """Test that saving writes the whole record in one statement."""
        result = await PostgresConfigStore(mock_db).save_config({"idp_url": "https://idp"})

        assert result is True
        query, payload = mock_db.execute.call_args.args
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert json.loads(payload) == {"idp_url": "https://idp"}

    async def test_save_failure(self, mock_db: MagicMock) -> None:
        """Test that database errors are reported as False."""
        mock_db.execute.side_effect = asyncpg.PostgresError("boom")

        assert await PostgresConfigStore(mock_db).save_config({}) is False

    async def test_load_failure(self, mock_db: MagicMock) -> None:
        """Test that an unreadable settings row raises StoreError."""
        mock_db.fetch_one.side_effect = asyncpg.PostgresError("boom")

        with pytest.raises(StoreError):
            await PostgresConfigStore(mock_db).load_config()


class TestPostgresEphemeralStore:
    """Tests for PostgresEphemeralStore."""

    async def test_put(self, mock_db: MagicMock) -> None:
        """Test that put stores an absolute expiry."""
        before = datetime.now(UTC)

        await PostgresEphemeralStore(mock_db).put("k", "v", 60)

        _, key, value, expires_at = mock_db.execute.call_args.args
        assert (key, value) == ("k", "v")
        assert before + timedelta(seconds=59) < expires_at <= datetime.now(UTC) + timedelta(
            seconds=60
        )

    async def test_put_failure(self, mock_db: MagicMock) -> None:
        """Test that write failures raise StoreError."""
        mock_db.execute.side_effect = asyncpg.PostgresError("boom")

        with pytest.raises(StoreError):
            await PostgresEphemeralStore(mock_db).put("k", "v", 60)

    async def test_put_purges_expired_rows(self, mock_db: MagicMock) -> None:
        """Test that every write sweeps expired rows before inserting."""
        store = PostgresEphemeralStore(mock_db)

        await store.put("a", "1", 60)
        await store.put("b", "2", 60)

        queries = [call.args[0] for call in mock_db.execute.call_args_list]
        assert len(queries) == 4
        assert queries[0] == queries[2]
        assert queries[0].startswith("DELETE FROM sigma_ephemeral")
        assert "expires_at <= now()" in queries[0]
        assert queries[1].startswith("INSERT INTO sigma_ephemeral")

    async def test_read_failures_raise_store_error(self, mock_db: MagicMock) -> None:
        """Test that database errors on reads surface as StoreError."""
        mock_db.execute_returning.side_effect = asyncpg.PostgresError("boom")
        mock_db.fetch_one.side_effect = asyncpg.PostgresError("boom")
        store = PostgresEphemeralStore(mock_db)

        with pytest.raises(StoreError):
            await store.get_and_delete("k")
        with pytest.raises(StoreError):
            await store.exists("k")

    async def test_get_and_delete_single_statement(self, mock_db: MagicMock) -> None:
        """Test that redemption is one DELETE ... RETURNING."""
        mock_db.execute_returning.return_value = {
            "value": "v",
            "expires_at": datetime.now(UTC) + timedelta(seconds=30),
        }

        assert await PostgresEphemeralStore(mock_db).get_and_delete("k") == "v"
        query = mock_db.execute_returning.call_args.args[0]
        assert query.startswith("DELETE FROM sigma_ephemeral")
        assert "RETURNING" in query

    async def test_get_and_delete_expired(self, mock_db: MagicMock) -> None:
        """Test that an expired row is deleted but not returned."""
        mock_db.execute_returning.return_value = {
            "value": "v",
            "expires_at": datetime.now(UTC) - timedelta(seconds=1),
        }

        assert await PostgresEphemeralStore(mock_db).get_and_delete("k") is None

    async def test_get_and_delete_missing(self, mock_db: MagicMock) -> None:
        """Test a key that was never stored."""
        assert await PostgresEphemeralStore(mock_db).get_and_delete("k") is None

    async def test_purge_expired(self, mock_db: MagicMock) -> None:
        """Test that expired rows are removed in one statement."""
        mock_db.execute.return_value = "DELETE 3"

        assert await PostgresEphemeralStore(mock_db).purge_expired() == "DELETE 3"
        assert "expires_at <= now()" in mock_db.execute.call_args.args[0]

    async def test_exists(self, mock_db: MagicMock) -> None:
        """Test existence checks."""
        store = PostgresEphemeralStore(mock_db)

        assert await store.exists("k") is False
        mock_db.fetch_one.return_value = {"present": 1}
        assert await store.exists("k") is True


class TestPostgresAccountRepository:
    """Tests for PostgresAccountRepository."""

    async def test_find_by_username(self, mock_db: MagicMock) -> None:
        """Test row to account conversion."""
        row = account_row()
        mock_db.fetch_one.return_value = row

        account = await PostgresAccountRepository(mock_db).find_by_username("profile_1")

        assert account is not None
        assert account.id == row["id"]
        assert account.metadata.sigma_auth_type == "named"

    async def test_create_conflict(self, mock_db: MagicMock) -> None:
        """Test that an insert skipped by ON CONFLICT raises."""
        new = NewAccount(
            username="profile_1",
            email="1@sigma.local",
            display_name="Ada",
            password_hash="$2b$12$hash",
            metadata=AccountMetadata(
                sigma_profile_id="1", sigma_auth_type="named", sigma_identifier_type="unknown"
            ),
        )

        with pytest.raises(AccountExistsError):
            await PostgresAccountRepository(mock_db).create_account(new)

        query = mock_db.execute_returning.call_args.args[0]
        assert "ON CONFLICT (username) DO NOTHING" in query

    async def test_create(self, mock_db: MagicMock) -> None:
        """Test a successful insert."""
        mock_db.execute_returning.return_value = account_row()
        new = NewAccount(
            username="profile_1",
            email="1@sigma.local",
            display_name="Ada Lovelace",
            password_hash="$2b$12$hash",
            metadata=AccountMetadata(
                sigma_profile_id="1", sigma_auth_type="named", sigma_identifier_type="unknown"
            ),
        )

        account = await PostgresAccountRepository(mock_db).create_account(new)

        assert account.username == "profile_1"

    async def test_update_metadata_only(self, mock_db: MagicMock) -> None:
        """Test that omitted fields are passed as NULL for COALESCE."""
        mock_db.execute_returning.return_value = account_row(updated_at=datetime.now(UTC))
        account_id = uuid4()
        metadata = AccountMetadata(
            sigma_profile_id="1", sigma_auth_type="anonymous", sigma_identifier_type="user_pass"
        )

        updated = await PostgresAccountRepository(mock_db).update_account(
            account_id, metadata=metadata
        )

        assert updated is not None
        args = mock_db.execute_returning.call_args.args
        assert args[1:5] == (account_id, None, None, None)
        assert json.loads(args[5])["sigma_auth_type"] == "anonymous"

    async def test_database_errors_raise_store_error(self, mock_db: MagicMock) -> None:
        """Test that lookups, inserts and updates report failures as StoreError."""
        mock_db.fetch_one.side_effect = asyncpg.PostgresError("boom")
        mock_db.execute_returning.side_effect = asyncpg.PostgresError("boom")
        repository = PostgresAccountRepository(mock_db)
        new = NewAccount(
            username="profile_1",
            email="1@sigma.local",
            display_name="Ada",
            password_hash="$2b$12$hash",
            metadata=AccountMetadata(
                sigma_profile_id="1", sigma_auth_type="named", sigma_identifier_type="unknown"
            ),
        )

        with pytest.raises(StoreError):
            await repository.find_by_username("profile_1")
        with pytest.raises(StoreError):
            await repository.create_account(new)
        with pytest.raises(StoreError):
            await repository.update_account(uuid4(), display_name="Ada")
