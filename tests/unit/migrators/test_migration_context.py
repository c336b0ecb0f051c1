"""
Unit tests for the shared migrator pieces: bounded fan-out, the run
context's mapping cache and entity results.
"""

import asyncio

import pytest

from ontomigrate.migrators import EntityResult, gather_in_chunks
from ontomigrate.models import EntityScope, EntityStatus, LegacyMapping
from ontomigrate.repositories import InMemoryLegacyMappingRepository
from tests.fixtures import make_context


class CountingLedger(InMemoryLegacyMappingRepository):
    """Ledger that counts single-row lookups."""

    def __init__(self) -> None:
        super().__init__(enable_tracing=False)
        self.gets = 0

    async def get(self, legacy_table: str, legacy_id: str) -> LegacyMapping | None:
        self.gets += 1
        return await super().get(legacy_table, legacy_id)


class TestGatherInChunks:
    """Tests for gather_in_chunks."""

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_chunk_size(self) -> None:
        in_flight = 0
        peak = 0

        async def work(item: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return item * 2

        results = await gather_in_chunks(list(range(7)), 3, work)

        assert results == [0, 2, 4, 6, 8, 10, 12]
        assert peak == 3

    @pytest.mark.asyncio
    async def test_chunks_run_sequentially(self) -> None:
        events: list[str] = []

        async def work(item: str) -> str:
            events.append(f"start {item}")
            await asyncio.sleep(0)
            events.append(f"end {item}")
            return item

        await gather_in_chunks(["a", "b", "c"], 2, work)

        assert events.index("end a") < events.index("start c")
        assert events.index("end b") < events.index("start c")

    @pytest.mark.asyncio
    async def test_empty_input(self) -> None:
        async def work(item: int) -> int:
            return item

        assert await gather_in_chunks([], 5, work) == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_size(self) -> None:
        async def work(item: int) -> int:
            return item

        with pytest.raises(ValueError):
            await gather_in_chunks([1], 0, work)

    @pytest.mark.asyncio
    async def test_exception_propagates(self) -> None:
        async def work(item: int) -> int:
            if item == 2:
                raise RuntimeError("boom")
            return item

        with pytest.raises(RuntimeError, match="boom"):
            await gather_in_chunks([1, 2, 3], 2, work)

    @pytest.mark.asyncio
    async def test_failure_waits_for_rest_of_chunk(self) -> None:
        finished: list[int] = []
        started: list[int] = []

        async def work(item: int) -> int:
            started.append(item)
            if item == 2:
                raise RuntimeError("boom")
            for _ in range(5):
                await asyncio.sleep(0)
            finished.append(item)
            return item

        with pytest.raises(RuntimeError, match="boom"):
            await gather_in_chunks([1, 2, 3, 4], 3, work)

        assert finished == [1, 3]
        assert 4 not in started

        for _ in range(10):
            await asyncio.sleep(0)
        assert finished == [1, 3]

    @pytest.mark.asyncio
    async def test_first_failure_in_input_order_wins(self) -> None:
        async def work(item: int) -> int:
            if item == 1:
                await asyncio.sleep(0)
                raise ValueError("first")
            if item == 2:
                raise RuntimeError("second")
            return item

        with pytest.raises(ValueError, match="first"):
            await gather_in_chunks([1, 2], 2, work)


class TestMigrationContext:
    """Tests for MigrationContext."""

    @pytest.mark.asyncio
    async def test_prefetched_table_skips_ledger(self) -> None:
        ledger = CountingLedger()
        await ledger.upsert("tasks", "t-1", "onto_tasks", "o-1")
        ctx = make_context()
        ctx.prime("tasks", {})

        assert await ctx.lookup(ledger, "tasks", "t-1") is None
        assert ledger.gets == 0

    @pytest.mark.asyncio
    async def test_lookup_caches_hits(self) -> None:
        ledger = CountingLedger()
        await ledger.upsert("phases", "ph-1", "onto_plans", "plan-1")
        ctx = make_context()

        first = await ctx.lookup(ledger, "phases", "ph-1")
        second = await ctx.lookup(ledger, "phases", "ph-1")

        assert first is not None and first.onto_id == "plan-1"
        assert second == first
        assert ledger.gets == 1

    @pytest.mark.asyncio
    async def test_remember_fills_cache(self) -> None:
        ledger = CountingLedger()
        ctx = make_context()
        ctx.remember(LegacyMapping("tasks", "t-9", "onto_tasks", "o-9"))

        found = await ctx.lookup(ledger, "tasks", "t-9")

        assert found is not None and found.onto_id == "o-9"
        assert ledger.gets == 0

    def test_ledger_metadata_and_stamp(self) -> None:
        ctx = make_context(dry_run=True, initiated_by="ops")

        assert ctx.dry_run
        assert ctx.initiated_by == "ops"
        assert ctx.ledger_metadata(type_key="task.base") == {
            "run_id": str(ctx.run_id),
            "batch_id": str(ctx.batch_id),
            "dry_run": True,
            "type_key": "task.base",
        }
        assert ctx.migration_stamp()["migrated_at"] == ctx.now.isoformat()


class TestEntityResult:
    def test_to_log_entry(self) -> None:
        ctx = make_context(org_id="org-1")
        result = EntityResult(
            scope=EntityScope.TASK,
            legacy_id="t-1",
            status=EntityStatus.VALIDATION_FAILED,
            error_message="bad",
            metadata={"message": "bad"},
        )

        entry = result.to_log_entry(ctx)

        assert result.failed
        assert entry.run_id == ctx.run_id
        assert entry.batch_id == ctx.batch_id
        assert (entry.legacy_table, entry.onto_table) == ("tasks", "onto_tasks")
        assert entry.status == "validation_failed"
        assert entry.org_id == "org-1"
        assert entry.metadata == {"message": "bad"}

    def test_detail(self) -> None:
        result = EntityResult(
            scope=EntityScope.PHASE,
            legacy_id=None,
            status=EntityStatus.COMPLETED,
            onto_id="plan-1",
            message="Net-new plan",
        )

        assert result.detail() == {
            "legacy_id": None,
            "onto_id": "plan-1",
            "status": "completed",
            "message": "Net-new plan",
            "error": None,
        }
        assert not result.failed
