"""
Mapping ledger repositories.

The mapping ledger is the durable legacy-id to ontology-id table that
makes every migration idempotent: a migrator checks the ledger before
creating an entity and upserts the ledger row right after the create.

Responsibilities:
    - Point lookup by (legacy_table, legacy_id)
    - Bulk in-list lookup used to prefetch a run's mapping cache
    - Upsert keyed on (legacy_table, legacy_id) that recomputes the
      content checksum of the source record on every call

Database Table:
    legacy_entity_mappings (legacy_table, legacy_id) UNIQUE

Usage:
    >>> repo = PostgreSQLLegacyMappingRepository(engine)
    >>> mapping = await repo.get("tasks", task_id)
    >>> if mapping is None:
    ...     onto_id = await create_task(...)
    ...     await repo.upsert("tasks", task_id, "onto_tasks", onto_id, record=task)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.models import LegacyMapping, parse_timestamp
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_COUNT,
    ATTR_LEGACY_ID,
    ATTR_LEGACY_TABLE,
)
from ontomigrate.repositories._connection import (
    decode_json,
    encode_json,
    execute_with_connection,
)
from ontomigrate.serialization import content_checksum

if TYPE_CHECKING:
    import aiosqlite


MAPPING_TABLE = "legacy_entity_mappings"

SQLITE_MAPPING_SCHEMA = """
CREATE TABLE IF NOT EXISTS legacy_entity_mappings (
    legacy_table TEXT NOT NULL,
    legacy_id TEXT NOT NULL,
    onto_table TEXT NOT NULL,
    onto_id TEXT NOT NULL,
    checksum TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (legacy_table, legacy_id)
)
"""


def compute_checksum(record: Any | None) -> str | None:
    """Checksum of a source record, or None when no record was supplied."""
    if record is None:
        return None
    return content_checksum(record)


@runtime_checkable
class LegacyMappingRepository(Protocol):
    """
    Protocol for mapping ledger persistence.

    Implementations must ensure:
    - At most one mapping per (legacy_table, legacy_id)
    - upsert never changes the key, only the target id, checksum and metadata
    - Mappings are never deleted by the engine
    """

    async def get(self, legacy_table: str, legacy_id: str) -> LegacyMapping | None:
        """
        Get the mapping for one legacy record.

        Args:
            legacy_table: Legacy table name (e.g., "tasks")
            legacy_id: Legacy record id

        Returns:
            The mapping, or None if the record was never migrated
        """
        ...

    async def get_many(
        self,
        legacy_table: str,
        legacy_ids: Sequence[str],
    ) -> dict[str, LegacyMapping]:
        """
        Get mappings for many legacy records of one table.

        Args:
            legacy_table: Legacy table name
            legacy_ids: Legacy record ids

        Returns:
            Mappings keyed by legacy id; unmapped ids are absent
        """
        ...

    async def upsert(
        self,
        legacy_table: str,
        legacy_id: str,
        onto_table: str,
        onto_id: str,
        record: Any | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LegacyMapping:
        """
        Insert or overwrite the mapping for a legacy record.

        Args:
            legacy_table: Legacy table name
            legacy_id: Legacy record id
            onto_table: Ontology table the record migrated into
            onto_id: Ontology entity id
            record: Source record used for the content checksum
            metadata: Run metadata (run_id, batch_id, dry_run, ...)

        Returns:
            The stored mapping
        """
        ...


class PostgreSQLLegacyMappingRepository:
    """
    PostgreSQL implementation of LegacyMappingRepository.

    Example:
        >>> async with engine.begin() as conn:
        ...     repo = PostgreSQLLegacyMappingRepository(conn)
        ...     await repo.upsert("phases", phase.id, "onto_plans", plan_id, record=phase)
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the repository.

        Args:
            conn: Database connection or engine
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._conn = conn

    async def get(self, legacy_table: str, legacy_id: str) -> LegacyMapping | None:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_LEGACY_ID: legacy_id,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            query = text("""
                SELECT legacy_table, legacy_id, onto_table, onto_id,
                       checksum, metadata, created_at, updated_at
                FROM legacy_entity_mappings
                WHERE legacy_table = :legacy_table AND legacy_id = :legacy_id
            """)

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(
                    query, {"legacy_table": legacy_table, "legacy_id": legacy_id}
                )
                row = result.fetchone()

            if row is None:
                return None
            return self._row_to_mapping(row)

    async def get_many(
        self,
        legacy_table: str,
        legacy_ids: Sequence[str],
    ) -> dict[str, LegacyMapping]:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get_many",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_ENTITY_COUNT: len(legacy_ids),
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            if not legacy_ids:
                return {}

            query = text("""
                SELECT legacy_table, legacy_id, onto_table, onto_id,
                       checksum, metadata, created_at, updated_at
                FROM legacy_entity_mappings
                WHERE legacy_table = :legacy_table AND legacy_id = ANY(:legacy_ids)
            """)

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(
                    query,
                    {"legacy_table": legacy_table, "legacy_ids": list(legacy_ids)},
                )
                rows = result.fetchall()

            mappings = [self._row_to_mapping(row) for row in rows]
            return {mapping.legacy_id: mapping for mapping in mappings}

    async def upsert(
        self,
        legacy_table: str,
        legacy_id: str,
        onto_table: str,
        onto_id: str,
        record: Any | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LegacyMapping:
        with self._tracer.span(
            "ontomigrate.mapping_repo.upsert",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_LEGACY_ID: legacy_id,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            now = datetime.now(UTC)
            query = text("""
                INSERT INTO legacy_entity_mappings (
                    legacy_table, legacy_id, onto_table, onto_id,
                    checksum, metadata, created_at, updated_at
                ) VALUES (
                    :legacy_table, :legacy_id, :onto_table, :onto_id,
                    :checksum, CAST(:metadata AS JSONB), :now, :now
                )
                ON CONFLICT (legacy_table, legacy_id) DO UPDATE SET
                    onto_table = EXCLUDED.onto_table,
                    onto_id = EXCLUDED.onto_id,
                    checksum = EXCLUDED.checksum,
                    metadata = EXCLUDED.metadata,
                    updated_at = EXCLUDED.updated_at
                RETURNING legacy_table, legacy_id, onto_table, onto_id,
                          checksum, metadata, created_at, updated_at
            """)

            params = {
                "legacy_table": legacy_table,
                "legacy_id": legacy_id,
                "onto_table": onto_table,
                "onto_id": onto_id,
                "checksum": compute_checksum(record),
                "metadata": encode_json(metadata or {}),
                "now": now,
            }

            try:
                async with execute_with_connection(self._conn, transactional=True) as conn:
                    result = await conn.execute(query, params)
                    row = result.fetchone()
            except Exception as e:
                raise StoreWriteError(f"upsert {MAPPING_TABLE}", str(e), legacy_id=legacy_id) from e

            if row is None:
                raise StoreWriteError(
                    f"upsert {MAPPING_TABLE}", "no row returned", legacy_id=legacy_id
                )
            return self._row_to_mapping(row)

    def _row_to_mapping(self, row: Sequence[Any]) -> LegacyMapping:
        return LegacyMapping(
            legacy_table=row[0],
            legacy_id=str(row[1]),
            onto_table=row[2],
            onto_id=str(row[3]),
            checksum=row[4],
            metadata=decode_json(row[5], {}),
            created_at=parse_timestamp(row[6]),
            updated_at=parse_timestamp(row[7]),
        )


class SQLiteLegacyMappingRepository:
    """
    SQLite implementation of LegacyMappingRepository.

    SQLite-specific adaptations:
    - Timestamps stored as ISO 8601 TEXT
    - metadata stored as JSON TEXT
    - UPSERT with ON CONFLICT syntax (SQLite 3.24+)

    Example:
        >>> async with aiosqlite.connect("migration.db") as db:
        ...     repo = SQLiteLegacyMappingRepository(db)
        ...     await repo.initialize()
        ...     await repo.upsert("tasks", task.id, "onto_tasks", onto_id, record=task)
    """

    def __init__(
        self,
        connection: aiosqlite.Connection,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._connection = connection

    async def initialize(self) -> None:
        """Create the ledger table if it does not exist."""
        await self._connection.execute(SQLITE_MAPPING_SCHEMA)
        await self._connection.commit()

    async def get(self, legacy_table: str, legacy_id: str) -> LegacyMapping | None:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_LEGACY_ID: legacy_id,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            cursor = await self._connection.execute(
                """
                SELECT legacy_table, legacy_id, onto_table, onto_id,
                       checksum, metadata, created_at, updated_at
                FROM legacy_entity_mappings
                WHERE legacy_table = ? AND legacy_id = ?
                """,
                (legacy_table, legacy_id),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_mapping(row)

    async def get_many(
        self,
        legacy_table: str,
        legacy_ids: Sequence[str],
    ) -> dict[str, LegacyMapping]:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get_many",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_ENTITY_COUNT: len(legacy_ids),
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            if not legacy_ids:
                return {}

            placeholders = ", ".join("?" for _ in legacy_ids)
            # placeholders is a fixed run of "?" markers; values are bound
            cursor = await self._connection.execute(
                f"""
                SELECT legacy_table, legacy_id, onto_table, onto_id,
                       checksum, metadata, created_at, updated_at
                FROM legacy_entity_mappings
                WHERE legacy_table = ? AND legacy_id IN ({placeholders})
                """,  # nosec B608
                (legacy_table, *legacy_ids),
            )
            rows = await cursor.fetchall()
            mappings = [self._row_to_mapping(row) for row in rows]
            return {mapping.legacy_id: mapping for mapping in mappings}

    async def upsert(
        self,
        legacy_table: str,
        legacy_id: str,
        onto_table: str,
        onto_id: str,
        record: Any | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LegacyMapping:
        with self._tracer.span(
            "ontomigrate.mapping_repo.upsert",
            {
                ATTR_LEGACY_TABLE: legacy_table,
                ATTR_LEGACY_ID: legacy_id,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            now = datetime.now(UTC).isoformat()
            try:
                await self._connection.execute(
                    """
                    INSERT INTO legacy_entity_mappings
                        (legacy_table, legacy_id, onto_table, onto_id,
                         checksum, metadata, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (legacy_table, legacy_id) DO UPDATE
                    SET onto_table = excluded.onto_table,
                        onto_id = excluded.onto_id,
                        checksum = excluded.checksum,
                        metadata = excluded.metadata,
                        updated_at = excluded.updated_at
                    """,
                    (
                        legacy_table,
                        legacy_id,
                        onto_table,
                        onto_id,
                        compute_checksum(record),
                        encode_json(metadata or {}),
                        now,
                        now,
                    ),
                )
                await self._connection.commit()
            except Exception as e:
                raise StoreWriteError(f"upsert {MAPPING_TABLE}", str(e), legacy_id=legacy_id) from e

        stored = await self.get(legacy_table, legacy_id)
        if stored is None:
            raise StoreWriteError(
                f"upsert {MAPPING_TABLE}", "row not readable", legacy_id=legacy_id
            )
        return stored

    def _row_to_mapping(self, row: Sequence[Any]) -> LegacyMapping:
        return LegacyMapping(
            legacy_table=row[0],
            legacy_id=row[1],
            onto_table=row[2],
            onto_id=row[3],
            checksum=row[4],
            metadata=decode_json(row[5], {}),
            created_at=parse_timestamp(row[6]),
            updated_at=parse_timestamp(row[7]),
        )


class InMemoryLegacyMappingRepository:
    """
    In-memory implementation of LegacyMappingRepository for testing.

    Example:
        >>> repo = InMemoryLegacyMappingRepository()
        >>> await repo.upsert("tasks", "t-1", "onto_tasks", "ot-1", record={"title": "x"})
        >>> (await repo.get("tasks", "t-1")).onto_id
        'ot-1'
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._mappings: dict[tuple[str, str], LegacyMapping] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    async def get(self, legacy_table: str, legacy_id: str) -> LegacyMapping | None:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get",
            {ATTR_LEGACY_TABLE: legacy_table, ATTR_LEGACY_ID: legacy_id},
        ):
            async with self._lock:
                return self._mappings.get((legacy_table, legacy_id))

    async def get_many(
        self,
        legacy_table: str,
        legacy_ids: Sequence[str],
    ) -> dict[str, LegacyMapping]:
        with self._tracer.span(
            "ontomigrate.mapping_repo.get_many",
            {ATTR_LEGACY_TABLE: legacy_table, ATTR_ENTITY_COUNT: len(legacy_ids)},
        ):
            async with self._lock:
                return {
                    legacy_id: self._mappings[(legacy_table, legacy_id)]
                    for legacy_id in legacy_ids
                    if (legacy_table, legacy_id) in self._mappings
                }

    async def upsert(
        self,
        legacy_table: str,
        legacy_id: str,
        onto_table: str,
        onto_id: str,
        record: Any | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LegacyMapping:
        with self._tracer.span(
            "ontomigrate.mapping_repo.upsert",
            {ATTR_LEGACY_TABLE: legacy_table, ATTR_LEGACY_ID: legacy_id},
        ):
            now = datetime.now(UTC)
            async with self._lock:
                existing = self._mappings.get((legacy_table, legacy_id))
                if existing is None:
                    mapping = LegacyMapping(
                        legacy_table=legacy_table,
                        legacy_id=legacy_id,
                        onto_table=onto_table,
                        onto_id=onto_id,
                        checksum=compute_checksum(record),
                        metadata=dict(metadata or {}),
                        created_at=now,
                        updated_at=now,
                    )
                else:
                    mapping = replace(
                        existing,
                        onto_table=onto_table,
                        onto_id=onto_id,
                        checksum=compute_checksum(record),
                        metadata=dict(metadata or {}),
                        updated_at=now,
                    )
                self._mappings[(legacy_table, legacy_id)] = mapping
                return mapping

    async def count(self, legacy_table: str | None = None) -> int:
        """Number of stored mappings, optionally for one legacy table."""
        async with self._lock:
            if legacy_table is None:
                return len(self._mappings)
            return sum(1 for table, _ in self._mappings if table == legacy_table)

    async def clear(self) -> None:
        """Clear all mappings."""
        async with self._lock:
            self._mappings.clear()


__all__ = [
    "LegacyMappingRepository",
    "PostgreSQLLegacyMappingRepository",
    "SQLiteLegacyMappingRepository",
    "InMemoryLegacyMappingRepository",
    "SQLITE_MAPPING_SCHEMA",
    "compute_checksum",
]
