"""
Unit tests for the mapping ledger repositories.

Tests cover:
- In-memory and SQLite implementations through one parametrized fixture
- Point and bulk lookups
- Upsert keyed on (legacy_table, legacy_id) with checksum refresh
- PostgreSQL implementation against a mocked connection
"""

from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import aiosqlite
import pytest
import pytest_asyncio

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.repositories import (
    InMemoryLegacyMappingRepository,
    LegacyMappingRepository,
    PostgreSQLLegacyMappingRepository,
    SQLiteLegacyMappingRepository,
)
from ontomigrate.serialization import content_checksum


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def ledger(request: pytest.FixtureRequest) -> AsyncGenerator[LegacyMappingRepository, None]:
    """Mapping ledger backed by each local implementation."""
    if request.param == "memory":
        yield InMemoryLegacyMappingRepository(enable_tracing=False)
        return
    async with aiosqlite.connect(":memory:") as db:
        repo = SQLiteLegacyMappingRepository(db, enable_tracing=False)
        await repo.initialize()
        yield repo


class TestLedgerLookups:
    """Tests for get and get_many."""

    @pytest.mark.asyncio
    async def test_get_unknown_returns_none(self, ledger: LegacyMappingRepository) -> None:
        """An unmigrated record has no mapping."""
        assert await ledger.get("tasks", "t-unknown") is None

    @pytest.mark.asyncio
    async def test_upsert_then_get(self, ledger: LegacyMappingRepository) -> None:
        """A stored mapping is returned by get."""
        stored = await ledger.upsert(
            "tasks", "t-1", "onto_tasks", "ot-1", record={"title": "Draft"}, metadata={"run": "r"}
        )

        found = await ledger.get("tasks", "t-1")

        assert found is not None
        assert found.onto_table == "onto_tasks"
        assert found.onto_id == "ot-1"
        assert found.metadata == {"run": "r"}
        assert found.checksum == content_checksum({"title": "Draft"})
        assert stored.onto_id == found.onto_id

    @pytest.mark.asyncio
    async def test_get_many_omits_unmapped(self, ledger: LegacyMappingRepository) -> None:
        """get_many returns only mapped ids."""
        await ledger.upsert("tasks", "t-1", "onto_tasks", "ot-1")
        await ledger.upsert("tasks", "t-2", "onto_tasks", "ot-2")
        await ledger.upsert("phases", "t-3", "onto_plans", "pl-3")

        found = await ledger.get_many("tasks", ["t-1", "t-2", "t-3", "t-9"])

        assert set(found) == {"t-1", "t-2"}
        assert found["t-2"].onto_id == "ot-2"

    @pytest.mark.asyncio
    async def test_get_many_empty(self, ledger: LegacyMappingRepository) -> None:
        assert await ledger.get_many("tasks", []) == {}


class TestLedgerUpsert:
    """Tests for upsert semantics."""

    @pytest.mark.asyncio
    async def test_upsert_keeps_single_row_per_key(
        self, ledger: LegacyMappingRepository
    ) -> None:
        """Re-upserting the same key overwrites the target, never duplicates."""
        await ledger.upsert("tasks", "t-1", "onto_tasks", "ot-1", record={"v": 1})
        await ledger.upsert("tasks", "t-1", "onto_tasks", "ot-2", record={"v": 2})

        found = await ledger.get_many("tasks", ["t-1"])

        assert len(found) == 1
        assert found["t-1"].onto_id == "ot-2"

    @pytest.mark.asyncio
    async def test_upsert_recomputes_checksum(self, ledger: LegacyMappingRepository) -> None:
        """The checksum follows the latest source record."""
        first = await ledger.upsert("tasks", "t-1", "onto_tasks", "ot-1", record={"v": 1})
        second = await ledger.upsert("tasks", "t-1", "onto_tasks", "ot-1", record={"v": 2})

        assert first.checksum != second.checksum
        assert second.checksum == content_checksum({"v": 2})

    @pytest.mark.asyncio
    async def test_upsert_without_record_has_no_checksum(
        self, ledger: LegacyMappingRepository
    ) -> None:
        stored = await ledger.upsert("projects", "p-1", "onto_projects", "op-1")
        assert stored.checksum is None

    @pytest.mark.asyncio
    async def test_same_id_in_different_tables(self, ledger: LegacyMappingRepository) -> None:
        """The key includes the legacy table."""
        await ledger.upsert("tasks", "x", "onto_tasks", "ot-x")
        await ledger.upsert("phases", "x", "onto_plans", "pl-x")

        task = await ledger.get("tasks", "x")
        phase = await ledger.get("phases", "x")

        assert task is not None and task.onto_id == "ot-x"
        assert phase is not None and phase.onto_id == "pl-x"


class TestInMemoryLedgerHelpers:
    @pytest.mark.asyncio
    async def test_count_and_clear(self) -> None:
        repo = InMemoryLegacyMappingRepository(enable_tracing=False)
        await repo.upsert("tasks", "t-1", "onto_tasks", "ot-1")
        await repo.upsert("phases", "ph-1", "onto_plans", "pl-1")

        assert await repo.count() == 2
        assert await repo.count("tasks") == 1

        await repo.clear()
        assert await repo.count() == 0

    def test_implements_protocol(self) -> None:
        assert isinstance(
            InMemoryLegacyMappingRepository(enable_tracing=False), LegacyMappingRepository
        )


class TestPostgreSQLLedger:
    """Tests for PostgreSQLLegacyMappingRepository with a mocked connection."""

    @pytest.fixture
    def conn(self) -> MagicMock:
        return MagicMock()

    @pytest.mark.asyncio
    async def test_get_maps_row(self, conn: MagicMock) -> None:
        """A returned row is converted into a LegacyMapping."""
        stamp = datetime(2025, 1, 1, tzinfo=UTC)
        result = MagicMock()
        result.fetchone.return_value = (
            "tasks",
            "t-1",
            "onto_tasks",
            "ot-1",
            "abc",
            {"run": "r"},
            stamp,
            stamp,
        )
        conn.execute = AsyncMock(return_value=result)
        repo = PostgreSQLLegacyMappingRepository(conn, enable_tracing=False)

        mapping = await repo.get("tasks", "t-1")

        assert mapping is not None
        assert mapping.onto_id == "ot-1"
        assert mapping.metadata == {"run": "r"}
        assert mapping.created_at == stamp
        params = conn.execute.call_args[0][1]
        assert params == {"legacy_table": "tasks", "legacy_id": "t-1"}

    @pytest.mark.asyncio
    async def test_get_many_skips_query_for_empty_ids(self, conn: MagicMock) -> None:
        conn.execute = AsyncMock()
        repo = PostgreSQLLegacyMappingRepository(conn, enable_tracing=False)

        assert await repo.get_many("tasks", []) == {}
        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_upsert_sends_checksum(self, conn: MagicMock) -> None:
        """upsert passes the record checksum and JSON metadata."""
        stamp = datetime(2025, 1, 1, tzinfo=UTC)
        checksum = content_checksum({"v": 1})
        result = MagicMock()
        result.fetchone.return_value = (
            "tasks",
            "t-1",
            "onto_tasks",
            "ot-1",
            checksum,
            '{"run": "r"}',
            stamp,
            stamp,
        )
        conn.execute = AsyncMock(return_value=result)
        repo = PostgreSQLLegacyMappingRepository(conn, enable_tracing=False)

        mapping = await repo.upsert(
            "tasks", "t-1", "onto_tasks", "ot-1", record={"v": 1}, metadata={"run": "r"}
        )

        params = conn.execute.call_args[0][1]
        assert params["checksum"] == checksum
        assert params["metadata"] == '{"run": "r"}'
        assert mapping.metadata == {"run": "r"}

    @pytest.mark.asyncio
    async def test_upsert_without_returned_row_raises(self, conn: MagicMock) -> None:
        result = MagicMock()
        result.fetchone.return_value = None
        conn.execute = AsyncMock(return_value=result)
        repo = PostgreSQLLegacyMappingRepository(conn, enable_tracing=False)

        with pytest.raises(StoreWriteError, match="no row returned"):
            await repo.upsert("tasks", "t-1", "onto_tasks", "ot-1")

    @pytest.mark.asyncio
    async def test_driver_error_becomes_store_write_error(self, conn: MagicMock) -> None:
        """Driver failures surface as StoreWriteError carrying the legacy id."""
        conn.execute = AsyncMock(side_effect=OSError("connection reset"))
        repo = PostgreSQLLegacyMappingRepository(conn, enable_tracing=False)

        with pytest.raises(StoreWriteError, match="connection reset") as exc_info:
            await repo.upsert("tasks", "t-1", "onto_tasks", "ot-1")

        assert exc_info.value.legacy_id == "t-1"
        assert isinstance(exc_info.value.__cause__, OSError)


class TestSQLiteLedgerFailures:
    @pytest.mark.asyncio
    async def test_missing_table_becomes_store_write_error(self) -> None:
        async with aiosqlite.connect(":memory:") as db:
            repo = SQLiteLegacyMappingRepository(db, enable_tracing=False)
            await repo.initialize()
            await db.execute("DROP TABLE legacy_entity_mappings")

            with pytest.raises(StoreWriteError, match="upsert legacy_entity_mappings"):
                await repo.upsert("tasks", "t-1", "onto_tasks", "ot-1")
