"""
Migration log repositories.

The migration log is the append-only audit table every run writes to.
Run status, validation and rollback are all computed by grouping and
filtering its rows; the engine keeps no long-lived in-memory run state.

Responsibilities:
    - Append entity, project summary and run outcome rows
    - Read the primary run row of a run (entity_type run, operation
      migrate or analyze), the only row ever updated after insert
    - List rows of one run or of several runs
    - List the most recent run ids
    - Flip non-run rows to rolled_back for an explicit rollback

Database Table:
    migration_log

Usage:
    >>> repo = PostgreSQLMigrationLogRepository(engine)
    >>> await repo.append([MigrationLogEntry.for_run(run_id, "in_progress", LogOperation.MIGRATE)])
    >>> rows = await repo.list_by_run(run_id)
    >>> summary = RunSummary.from_entries(run_id, rows)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.exceptions import RunNotFoundError
from ontomigrate.models import (
    PRIMARY_RUN_OPERATIONS,
    EntityScope,
    EntityStatus,
    LogOperation,
    MigrationLogEntry,
    parse_timestamp,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_COUNT,
    ATTR_RUN_ID,
    ATTR_RUN_STATUS,
)
from ontomigrate.repositories._connection import (
    decode_json,
    encode_json,
    execute_with_connection,
)

if TYPE_CHECKING:
    import aiosqlite


_COLUMNS = """
    id, run_id, batch_id, entity_type, legacy_table, legacy_id,
    onto_table, onto_id, status, operation, error_message, metadata,
    org_id, created_at, updated_at
"""

SQLITE_MIGRATION_LOG_SCHEMA = """
CREATE TABLE IF NOT EXISTS migration_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    run_id TEXT NOT NULL,
    batch_id TEXT,
    entity_type TEXT NOT NULL,
    legacy_table TEXT,
    legacy_id TEXT,
    onto_table TEXT,
    onto_id TEXT,
    status TEXT NOT NULL,
    operation TEXT NOT NULL,
    error_message TEXT,
    metadata TEXT,
    org_id TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
)
"""

SQLITE_MIGRATION_LOG_INDEX = """
CREATE INDEX IF NOT EXISTS idx_migration_log_run_id ON migration_log (run_id)
"""


@runtime_checkable
class MigrationLogRepository(Protocol):
    """
    Protocol for migration log persistence.

    Implementations must ensure:
    - Rows are immutable once written, except the primary run row
    - Rows of one run are returned in insertion order
    - Timestamps are UTC
    """

    async def append(self, entries: Sequence[MigrationLogEntry]) -> int:
        """
        Append log rows.

        Args:
            entries: Rows to append (id and timestamps are assigned)

        Returns:
            Number of rows written
        """
        ...

    async def get_run_row(self, run_id: UUID) -> MigrationLogEntry | None:
        """
        Get the primary run row of a run.

        Args:
            run_id: The run

        Returns:
            The run row, or None if the run was never started
        """
        ...

    async def list_by_run(self, run_id: UUID) -> list[MigrationLogEntry]:
        """
        Get every row of a run, in insertion order.

        Args:
            run_id: The run

        Returns:
            List of log rows
        """
        ...

    async def list_by_runs(self, run_ids: Sequence[UUID]) -> dict[UUID, list[MigrationLogEntry]]:
        """
        Get the rows of several runs.

        Args:
            run_ids: The runs

        Returns:
            Rows grouped by run id; runs with no rows are absent
        """
        ...

    async def latest_run_ids(self, limit: int) -> list[UUID]:
        """
        Get the ids of the most recently started runs.

        Args:
            limit: Maximum number of run ids

        Returns:
            Run ids, newest first
        """
        ...

    async def update_run_row(
        self,
        run_id: UUID,
        status: str,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> MigrationLogEntry:
        """
        Update the status of the primary run row.

        Args:
            run_id: The run
            status: New status value
            metadata: Keys merged into the row's metadata
            error_message: Optional error message stored on the row

        Returns:
            The updated run row

        Raises:
            RunNotFoundError: If the run has no primary run row
        """
        ...

    async def mark_rolled_back(self, run_id: UUID, from_date: datetime | None = None) -> int:
        """
        Flip every non-run row of a run to rolled_back.

        Args:
            run_id: The run
            from_date: Only rows created at or after this instant

        Returns:
            Number of rows updated
        """
        ...


class PostgreSQLMigrationLogRepository:
    """
    PostgreSQL implementation of MigrationLogRepository.

    Example:
        >>> repo = PostgreSQLMigrationLogRepository(engine)
        >>> run_row = await repo.get_run_row(run_id)
        >>> await repo.update_run_row(run_id, "paused", {"pause_reason": "maintenance"})
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

    async def append(self, entries: Sequence[MigrationLogEntry]) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.append",
            {ATTR_ENTITY_COUNT: len(entries), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not entries:
                return 0

            query = text("""
                INSERT INTO migration_log (
                    run_id, batch_id, entity_type, legacy_table, legacy_id,
                    onto_table, onto_id, status, operation, error_message,
                    metadata, org_id, created_at, updated_at
                ) VALUES (
                    :run_id, :batch_id, :entity_type, :legacy_table, :legacy_id,
                    :onto_table, :onto_id, :status, :operation, :error_message,
                    CAST(:metadata AS JSONB), :org_id, :created_at, :updated_at
                )
            """)

            now = datetime.now(UTC)
            params = [self._entry_params(entry, now) for entry in entries]

            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(query, params)

            return len(params)

    async def get_run_row(self, run_id: UUID) -> MigrationLogEntry | None:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.get_run_row",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id = :run_id
                  AND entity_type = :entity_type
                  AND operation = ANY(:operations)
                ORDER BY id ASC
                LIMIT 1
            """)  # nosec B608 - column list is a module constant

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(
                    query,
                    {
                        "run_id": run_id,
                        "entity_type": EntityScope.RUN.value,
                        "operations": list(PRIMARY_RUN_OPERATIONS),
                    },
                )
                row = result.fetchone()

            if row is None:
                return None
            return self._row_to_entry(row)

    async def list_by_run(self, run_id: UUID) -> list[MigrationLogEntry]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_run",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text(f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id = :run_id
                ORDER BY id ASC
            """)  # nosec B608 - column list is a module constant

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"run_id": run_id})
                rows = result.fetchall()

            return [self._row_to_entry(row) for row in rows]

    async def list_by_runs(self, run_ids: Sequence[UUID]) -> dict[UUID, list[MigrationLogEntry]]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_runs",
            {ATTR_ENTITY_COUNT: len(run_ids), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not run_ids:
                return {}

            query = text(f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id = ANY(:run_ids)
                ORDER BY id ASC
            """)  # nosec B608 - column list is a module constant

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(query, {"run_ids": list(run_ids)})
                rows = result.fetchall()

            grouped: dict[UUID, list[MigrationLogEntry]] = {}
            for row in rows:
                entry = self._row_to_entry(row)
                grouped.setdefault(entry.run_id, []).append(entry)
            return grouped

    async def latest_run_ids(self, limit: int) -> list[UUID]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.latest_run_ids",
            {ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text("""
                SELECT run_id
                FROM migration_log
                WHERE entity_type = :entity_type
                  AND operation = ANY(:operations)
                ORDER BY created_at DESC, id DESC
                LIMIT :limit
            """)

            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(
                    query,
                    {
                        "entity_type": EntityScope.RUN.value,
                        "operations": list(PRIMARY_RUN_OPERATIONS),
                        "limit": limit,
                    },
                )
                rows = result.fetchall()

            return [_to_uuid(row[0]) for row in rows]

    async def update_run_row(
        self,
        run_id: UUID,
        status: str,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> MigrationLogEntry:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.update_run_row",
            {
                ATTR_RUN_ID: str(run_id),
                ATTR_RUN_STATUS: status,
                ATTR_DB_SYSTEM: "postgresql",
            },
        ):
            query = text(f"""
                UPDATE migration_log
                SET status = :status,
                    metadata = COALESCE(metadata, '{{}}'::jsonb) || CAST(:metadata AS JSONB),
                    error_message = COALESCE(:error_message, error_message),
                    updated_at = :updated_at
                WHERE id = (
                    SELECT id FROM migration_log
                    WHERE run_id = :run_id
                      AND entity_type = :entity_type
                      AND operation = ANY(:operations)
                    ORDER BY id ASC
                    LIMIT 1
                )
                RETURNING {_COLUMNS}
            """)  # nosec B608 - column list is a module constant

            params = {
                "run_id": run_id,
                "status": status,
                "metadata": encode_json(metadata or {}),
                "error_message": error_message,
                "updated_at": datetime.now(UTC),
                "entity_type": EntityScope.RUN.value,
                "operations": list(PRIMARY_RUN_OPERATIONS),
            }

            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await conn.execute(query, params)
                row = result.fetchone()

            if row is None:
                raise RunNotFoundError(run_id)
            return self._row_to_entry(row)

    async def mark_rolled_back(self, run_id: UUID, from_date: datetime | None = None) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.mark_rolled_back",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "postgresql"},
        ):
            conditions = ["run_id = :run_id", "entity_type <> :run_scope"]
            params: dict[str, Any] = {
                "run_id": run_id,
                "run_scope": EntityScope.RUN.value,
                "status": EntityStatus.ROLLED_BACK.value,
                "updated_at": datetime.now(UTC),
            }

            if from_date is not None:
                conditions.append("created_at >= :from_date")
                params["from_date"] = from_date

            where_clause = " AND ".join(conditions)

            # where_clause built from hardcoded conditions
            query = text(f"""
                UPDATE migration_log
                SET status = :status, updated_at = :updated_at
                WHERE {where_clause}
            """)  # nosec B608 - no user input in SQL construction

            async with execute_with_connection(self._conn, transactional=True) as conn:
                result = await conn.execute(query, params)

            return int(result.rowcount or 0)

    def _entry_params(self, entry: MigrationLogEntry, now: datetime) -> dict[str, Any]:
        return {
            "run_id": entry.run_id,
            "batch_id": entry.batch_id,
            "entity_type": entry.entity_type.value,
            "legacy_table": entry.legacy_table,
            "legacy_id": entry.legacy_id,
            "onto_table": entry.onto_table,
            "onto_id": entry.onto_id,
            "status": entry.status,
            "operation": entry.operation.value,
            "error_message": entry.error_message,
            "metadata": encode_json(entry.metadata or {}),
            "org_id": entry.org_id,
            "created_at": entry.created_at or now,
            "updated_at": entry.updated_at or entry.created_at or now,
        }

    def _row_to_entry(self, row: Sequence[Any]) -> MigrationLogEntry:
        return _row_to_entry(row)


class SQLiteMigrationLogRepository:
    """
    SQLite implementation of MigrationLogRepository.

    SQLite-specific adaptations:
    - run_id and batch_id stored as TEXT
    - Timestamps stored as ISO 8601 TEXT in UTC, so string comparison
      orders them correctly
    - metadata merged in Python on update

    Example:
        >>> async with aiosqlite.connect("migration.db") as db:
        ...     repo = SQLiteMigrationLogRepository(db)
        ...     await repo.initialize()
        ...     rows = await repo.list_by_run(run_id)
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
        """Create the log table and its run index if they do not exist."""
        await self._connection.execute(SQLITE_MIGRATION_LOG_SCHEMA)
        await self._connection.execute(SQLITE_MIGRATION_LOG_INDEX)
        await self._connection.commit()

    async def append(self, entries: Sequence[MigrationLogEntry]) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.append",
            {ATTR_ENTITY_COUNT: len(entries), ATTR_DB_SYSTEM: "sqlite"},
        ):
            if not entries:
                return 0

            now = datetime.now(UTC)
            await self._connection.executemany(
                """
                INSERT INTO migration_log
                    (run_id, batch_id, entity_type, legacy_table, legacy_id,
                     onto_table, onto_id, status, operation, error_message,
                     metadata, org_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [self._entry_values(entry, now) for entry in entries],
            )
            await self._connection.commit()
            return len(entries)

    async def get_run_row(self, run_id: UUID) -> MigrationLogEntry | None:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.get_run_row",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id = ? AND entity_type = ? AND operation IN (?, ?)
                ORDER BY id ASC
                LIMIT 1
                """,  # nosec B608 - column list is a module constant
                (str(run_id), EntityScope.RUN.value, *PRIMARY_RUN_OPERATIONS),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return _row_to_entry(row)

    async def list_by_run(self, run_id: UUID) -> list[MigrationLogEntry]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_run",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id = ?
                ORDER BY id ASC
                """,  # nosec B608 - column list is a module constant
                (str(run_id),),
            )
            rows = await cursor.fetchall()
            return [_row_to_entry(row) for row in rows]

    async def list_by_runs(self, run_ids: Sequence[UUID]) -> dict[UUID, list[MigrationLogEntry]]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_runs",
            {ATTR_ENTITY_COUNT: len(run_ids), ATTR_DB_SYSTEM: "sqlite"},
        ):
            if not run_ids:
                return {}

            placeholders = ", ".join("?" for _ in run_ids)
            cursor = await self._connection.execute(
                f"""
                SELECT {_COLUMNS}
                FROM migration_log
                WHERE run_id IN ({placeholders})
                ORDER BY id ASC
                """,  # nosec B608 - only "?" markers are interpolated
                tuple(str(run_id) for run_id in run_ids),
            )
            rows = await cursor.fetchall()

            grouped: dict[UUID, list[MigrationLogEntry]] = {}
            for row in rows:
                entry = _row_to_entry(row)
                grouped.setdefault(entry.run_id, []).append(entry)
            return grouped

    async def latest_run_ids(self, limit: int) -> list[UUID]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.latest_run_ids",
            {ATTR_DB_SYSTEM: "sqlite"},
        ):
            cursor = await self._connection.execute(
                """
                SELECT run_id
                FROM migration_log
                WHERE entity_type = ? AND operation IN (?, ?)
                ORDER BY created_at DESC, id DESC
                LIMIT ?
                """,
                (EntityScope.RUN.value, *PRIMARY_RUN_OPERATIONS, limit),
            )
            rows = await cursor.fetchall()
            return [_to_uuid(row[0]) for row in rows]

    async def update_run_row(
        self,
        run_id: UUID,
        status: str,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> MigrationLogEntry:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.update_run_row",
            {
                ATTR_RUN_ID: str(run_id),
                ATTR_RUN_STATUS: status,
                ATTR_DB_SYSTEM: "sqlite",
            },
        ):
            current = await self.get_run_row(run_id)
            if current is None or current.id is None:
                raise RunNotFoundError(run_id)

            merged = {**current.metadata, **(metadata or {})}
            await self._connection.execute(
                """
                UPDATE migration_log
                SET status = ?, metadata = ?, error_message = ?, updated_at = ?
                WHERE id = ?
                """,
                (
                    status,
                    encode_json(merged),
                    error_message if error_message is not None else current.error_message,
                    datetime.now(UTC).isoformat(),
                    current.id,
                ),
            )
            await self._connection.commit()

        updated = await self.get_run_row(run_id)
        if updated is None:
            raise RunNotFoundError(run_id)
        return updated

    async def mark_rolled_back(self, run_id: UUID, from_date: datetime | None = None) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.mark_rolled_back",
            {ATTR_RUN_ID: str(run_id), ATTR_DB_SYSTEM: "sqlite"},
        ):
            conditions = ["run_id = ?", "entity_type <> ?"]
            params: list[Any] = [
                EntityStatus.ROLLED_BACK.value,
                datetime.now(UTC).isoformat(),
                str(run_id),
                EntityScope.RUN.value,
            ]

            if from_date is not None:
                conditions.append("created_at >= ?")
                params.append(_iso(from_date))

            where_clause = " AND ".join(conditions)
            cursor = await self._connection.execute(
                f"""
                UPDATE migration_log
                SET status = ?, updated_at = ?
                WHERE {where_clause}
                """,  # nosec B608 - where_clause built from hardcoded conditions
                tuple(params),
            )
            await self._connection.commit()
            return int(cursor.rowcount or 0)

    def _entry_values(self, entry: MigrationLogEntry, now: datetime) -> tuple[Any, ...]:
        created_at = entry.created_at or now
        updated_at = entry.updated_at or created_at
        return (
            str(entry.run_id),
            str(entry.batch_id) if entry.batch_id else None,
            entry.entity_type.value,
            entry.legacy_table,
            entry.legacy_id,
            entry.onto_table,
            entry.onto_id,
            entry.status,
            entry.operation.value,
            entry.error_message,
            encode_json(entry.metadata or {}),
            entry.org_id,
            _iso(created_at),
            _iso(updated_at),
        )


class InMemoryMigrationLogRepository:
    """
    In-memory implementation of MigrationLogRepository for testing.

    Example:
        >>> repo = InMemoryMigrationLogRepository()
        >>> row = MigrationLogEntry.for_run(run_id, "in_progress", LogOperation.MIGRATE)
        >>> await repo.append([row])
        >>> (await repo.get_run_row(run_id)).status
        'in_progress'
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._rows: list[MigrationLogEntry] = []
        self._next_id = 1
        self._lock: asyncio.Lock = asyncio.Lock()

    async def append(self, entries: Sequence[MigrationLogEntry]) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.append",
            {ATTR_ENTITY_COUNT: len(entries)},
        ):
            now = datetime.now(UTC)
            async with self._lock:
                for entry in entries:
                    created_at = entry.created_at or now
                    self._rows.append(
                        replace(
                            entry,
                            id=self._next_id,
                            metadata=dict(entry.metadata or {}),
                            created_at=created_at,
                            updated_at=entry.updated_at or created_at,
                        )
                    )
                    self._next_id += 1
            return len(entries)

    async def get_run_row(self, run_id: UUID) -> MigrationLogEntry | None:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.get_run_row",
            {ATTR_RUN_ID: str(run_id)},
        ):
            async with self._lock:
                index = self._run_row_index(run_id)
                return self._rows[index] if index is not None else None

    async def list_by_run(self, run_id: UUID) -> list[MigrationLogEntry]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_run",
            {ATTR_RUN_ID: str(run_id)},
        ):
            async with self._lock:
                return [row for row in self._rows if row.run_id == run_id]

    async def list_by_runs(self, run_ids: Sequence[UUID]) -> dict[UUID, list[MigrationLogEntry]]:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.list_by_runs",
            {ATTR_ENTITY_COUNT: len(run_ids)},
        ):
            wanted = set(run_ids)
            grouped: dict[UUID, list[MigrationLogEntry]] = {}
            async with self._lock:
                for row in self._rows:
                    if row.run_id in wanted:
                        grouped.setdefault(row.run_id, []).append(row)
            return grouped

    async def latest_run_ids(self, limit: int) -> list[UUID]:
        with self._tracer.span("ontomigrate.migration_log_repo.latest_run_ids", {}):
            async with self._lock:
                run_rows = [row for row in self._rows if row.is_primary_run_row]
            # id breaks ties between rows created in the same instant
            run_rows.sort(key=lambda row: (row.created_at, row.id or 0), reverse=True)
            return [row.run_id for row in run_rows[:limit]]

    async def update_run_row(
        self,
        run_id: UUID,
        status: str,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> MigrationLogEntry:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.update_run_row",
            {ATTR_RUN_ID: str(run_id), ATTR_RUN_STATUS: status},
        ):
            async with self._lock:
                index = self._run_row_index(run_id)
                if index is None:
                    raise RunNotFoundError(run_id)
                current = self._rows[index]
                updated = replace(
                    current,
                    status=status,
                    metadata={**current.metadata, **(metadata or {})},
                    error_message=(
                        error_message if error_message is not None else current.error_message
                    ),
                    updated_at=datetime.now(UTC),
                )
                self._rows[index] = updated
                return updated

    async def mark_rolled_back(self, run_id: UUID, from_date: datetime | None = None) -> int:
        with self._tracer.span(
            "ontomigrate.migration_log_repo.mark_rolled_back",
            {ATTR_RUN_ID: str(run_id)},
        ):
            now = datetime.now(UTC)
            updated = 0
            async with self._lock:
                for index, row in enumerate(self._rows):
                    if row.run_id != run_id or row.entity_type == EntityScope.RUN:
                        continue
                    if from_date is not None and (
                        row.created_at is None or row.created_at < from_date
                    ):
                        continue
                    self._rows[index] = replace(
                        row, status=EntityStatus.ROLLED_BACK.value, updated_at=now
                    )
                    updated += 1
            return updated

    async def all_rows(self) -> list[MigrationLogEntry]:
        """Every stored row, in insertion order."""
        async with self._lock:
            return list(self._rows)

    async def count(self) -> int:
        async with self._lock:
            return len(self._rows)

    async def clear(self) -> None:
        """Clear all rows."""
        async with self._lock:
            self._rows.clear()
            self._next_id = 1

    def _run_row_index(self, run_id: UUID) -> int | None:
        for index, row in enumerate(self._rows):
            if row.run_id == run_id and row.is_primary_run_row:
                return index
        return None


def _to_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def _row_to_entry(row: Sequence[Any]) -> MigrationLogEntry:
    return MigrationLogEntry(
        id=int(row[0]) if row[0] is not None else None,
        run_id=_to_uuid(row[1]),
        batch_id=_to_uuid(row[2]) if row[2] else None,
        entity_type=EntityScope(row[3]),
        legacy_table=row[4],
        legacy_id=str(row[5]) if row[5] is not None else None,
        onto_table=row[6],
        onto_id=str(row[7]) if row[7] is not None else None,
        status=row[8],
        operation=LogOperation(row[9]),
        error_message=row[10],
        metadata=decode_json(row[11], {}),
        org_id=row[12],
        created_at=parse_timestamp(row[13]),
        updated_at=parse_timestamp(row[14]),
    )


__all__ = [
    "MigrationLogRepository",
    "PostgreSQLMigrationLogRepository",
    "SQLiteMigrationLogRepository",
    "InMemoryMigrationLogRepository",
    "SQLITE_MIGRATION_LOG_SCHEMA",
]
