"""
Shared pieces of the entity migrators.

- MigrationContext: run identity, options and the prefetched mapping cache
- EntityResult: explicit per-entity outcome turned into one log row
- gather_in_chunks: bounded fan-out used at every concurrency knob
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar, cast
from uuid import UUID

from ontomigrate.models import (
    EntityScope,
    EntityStatus,
    LegacyMapping,
    MigrationLogEntry,
    MigrationOptions,
)
from ontomigrate.repositories.mapping import LegacyMappingRepository

logger = logging.getLogger(__name__)

_T = TypeVar("_T")
_R = TypeVar("_R")


async def gather_in_chunks(
    items: Sequence[_T],
    size: int,
    fn: Callable[[_T], Awaitable[_R]],
) -> list[_R]:
    """
    Run `fn` over items in sequential chunks of at most `size`.

    Items within a chunk run concurrently; the next chunk starts only
    after every item of the previous chunk finished. Results keep input
    order. When items raise, the rest of their chunk still runs to the
    end, then the first exception (in input order) is raised and later
    chunks are not started.

    Example:
        >>> await gather_in_chunks(["a", "b", "c"], 2, migrate)
        [<a>, <b>, <c>]
    """
    if size < 1:
        raise ValueError(f"size must be >= 1, got {size}")

    results: list[_R] = []
    for chunk_start in range(0, len(items), size):
        chunk = items[chunk_start : chunk_start + size]
        outcomes = await asyncio.gather(*(fn(item) for item in chunk), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome
        results.extend(cast(list[_R], outcomes))
    return results


@dataclass
class MigrationContext:
    """
    State shared by every migrator call of one run.

    `mappings` holds ledger rows keyed by legacy table, then legacy id.
    Tables listed in `prefetched` were bulk-loaded for every candidate of
    the run, so a miss there means "not migrated" without a ledger query.
    Records mapped during the run are added with remember().
    """

    run_id: UUID
    batch_id: UUID
    options: MigrationOptions = field(default_factory=MigrationOptions)
    now: datetime = field(default_factory=lambda: datetime.now(UTC))
    mappings: dict[str, dict[str, LegacyMapping]] = field(default_factory=dict)
    prefetched: set[str] = field(default_factory=set)

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    @property
    def initiated_by(self) -> str | None:
        return self.options.initiated_by

    def prime(self, legacy_table: str, mappings: dict[str, LegacyMapping]) -> None:
        """Install the prefetched mappings of one legacy table."""
        self.mappings.setdefault(legacy_table, {}).update(mappings)
        self.prefetched.add(legacy_table)

    def remember(self, mapping: LegacyMapping) -> None:
        self.mappings.setdefault(mapping.legacy_table, {})[mapping.legacy_id] = mapping

    async def lookup(
        self,
        ledger: LegacyMappingRepository,
        legacy_table: str,
        legacy_id: str,
    ) -> LegacyMapping | None:
        """Ledger lookup through the prefetch cache."""
        mapping = self.mappings.get(legacy_table, {}).get(legacy_id)
        if mapping is not None or legacy_table in self.prefetched:
            return mapping

        mapping = await ledger.get(legacy_table, legacy_id)
        if mapping is not None:
            self.remember(mapping)
        return mapping

    def ledger_metadata(self, **extra: Any) -> dict[str, Any]:
        """Metadata stored on ledger rows written by this run."""
        return {
            "run_id": str(self.run_id),
            "batch_id": str(self.batch_id),
            "dry_run": self.dry_run,
            **extra,
        }

    def migration_stamp(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "batch_id": str(self.batch_id),
            "dry_run": self.dry_run,
            "migrated_at": self.now.isoformat(),
        }


@dataclass
class EntityResult:
    """
    Outcome of migrating one legacy record (or one scope summary row).

    Attributes:
        scope: Entity scope of the log row
        legacy_id: Legacy record id (None for net-new entities)
        status: Outcome status
        onto_id: Ontology id created or found
        message: Human-readable note
        error_message: Underlying error for failed outcomes
        metadata: Extra log row metadata
    """

    scope: EntityScope
    legacy_id: str | None
    status: EntityStatus
    onto_id: str | None = None
    message: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.status.bucket == "failed"

    def detail(self) -> dict[str, Any]:
        """Per-entity detail record of a batch scope summary."""
        return {
            "legacy_id": self.legacy_id,
            "onto_id": self.onto_id,
            "status": self.status.value,
            "message": self.message,
            "error": self.error_message,
        }

    def to_log_entry(self, ctx: MigrationContext) -> MigrationLogEntry:
        return MigrationLogEntry(
            run_id=ctx.run_id,
            batch_id=ctx.batch_id,
            entity_type=self.scope,
            legacy_table=self.scope.legacy_table,
            legacy_id=self.legacy_id,
            onto_table=self.scope.onto_table,
            onto_id=self.onto_id,
            status=self.status.value,
            error_message=self.error_message,
            metadata=dict(self.metadata),
            org_id=ctx.options.org_id,
        )


__all__ = [
    "EntityResult",
    "MigrationContext",
    "gather_in_chunks",
]
