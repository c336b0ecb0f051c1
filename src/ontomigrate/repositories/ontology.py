"""
Ontology store repositories.

Write access to the ontology model the engine migrates into: entity
tables (onto_projects, onto_plans, onto_tasks, onto_events,
onto_documents), relationship edges, event sync rows, and the link
from a legacy project calendar to its ontology project.

No cross-table transactions are assumed. Migrators order their writes
(entity, then ledger, then edges) and treat a partial failure as a
failure of that one entity.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.models import Edge
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_COUNT,
    ATTR_LEGACY_ID,
    ATTR_ONTO_TABLE,
)
from ontomigrate.repositories._connection import encode_json, execute_with_connection

if TYPE_CHECKING:
    from ontomigrate.repositories.legacy import InMemoryLegacySource


ONTO_ENTITY_TABLES: frozenset[str] = frozenset(
    {"onto_projects", "onto_plans", "onto_tasks", "onto_events", "onto_documents"}
)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


@runtime_checkable
class OntologyStore(Protocol):
    """Protocol for writing ontology entities and edges."""

    async def insert_entity(self, table: str, record: dict[str, Any]) -> str:
        """
        Insert one entity row.

        Args:
            table: One of ONTO_ENTITY_TABLES
            record: Column values (id is assigned when absent)

        Returns:
            The new entity id

        Raises:
            StoreWriteError: If the store rejects the row
        """
        ...

    async def insert_edges(self, edges: Sequence[Edge]) -> None:
        """
        Insert relationship edges.

        Raises:
            StoreWriteError: If the store rejects the edges
        """
        ...

    async def link_calendars(self, project_id: str, onto_project_id: str) -> int:
        """
        Point not-yet-linked project calendars at their ontology project.

        Returns:
            Number of calendars linked
        """
        ...

    async def insert_event_sync(self, record: dict[str, Any]) -> str:
        """Insert one onto_event_sync row and return its id."""
        ...


def _check_table(table: str) -> None:
    if table not in ONTO_ENTITY_TABLES:
        raise ValueError(f"Unknown ontology table: {table}")


def _check_columns(columns: Sequence[str]) -> None:
    for column in columns:
        if not _IDENTIFIER.match(column):
            raise ValueError(f"Invalid column name: {column!r}")


class PostgreSQLOntologyStore:
    """
    PostgreSQL implementation of OntologyStore.

    dict and list values are written to JSONB columns.

    Example:
        >>> store = PostgreSQLOntologyStore(engine)
        >>> plan_id = await store.insert_entity("onto_plans", {"name": "Draft", ...})
        >>> await store.insert_edges([Edge("project", project_id, "has_plan", "plan", plan_id)])
    """

    def __init__(
        self,
        conn: AsyncConnection | AsyncEngine,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._conn = conn

    async def insert_entity(self, table: str, record: dict[str, Any]) -> str:
        _check_table(table)
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_entity",
            {ATTR_ONTO_TABLE: table, ATTR_DB_SYSTEM: "postgresql"},
        ):
            values = {"id": str(uuid4()), **record}
            await self._insert(table, values)
            return str(values["id"])

    async def insert_edges(self, edges: Sequence[Edge]) -> None:
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_edges",
            {ATTR_ENTITY_COUNT: len(edges), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not edges:
                return

            query = text("""
                INSERT INTO onto_edges (id, src_kind, src_id, rel, dst_kind, dst_id, props)
                VALUES (:id, :src_kind, :src_id, :rel, :dst_kind, :dst_id, CAST(:props AS JSONB))
            """)
            params = [
                {
                    "id": str(uuid4()),
                    "src_kind": edge.src_kind,
                    "src_id": edge.src_id,
                    "rel": edge.rel,
                    "dst_kind": edge.dst_kind,
                    "dst_id": edge.dst_id,
                    "props": encode_json(edge.props or {}),
                }
                for edge in edges
            ]

            try:
                async with execute_with_connection(self._conn, transactional=True) as conn:
                    await conn.execute(query, params)
            except Exception as e:
                raise StoreWriteError("insert onto_edges", str(e)) from e

    async def link_calendars(self, project_id: str, onto_project_id: str) -> int:
        with self._tracer.span(
            "ontomigrate.ontology_store.link_calendars",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            query = text("""
                UPDATE project_calendars
                SET onto_project_id = :onto_project_id
                WHERE project_id = :project_id AND onto_project_id IS NULL
            """)

            try:
                async with execute_with_connection(self._conn, transactional=True) as conn:
                    result = await conn.execute(
                        query,
                        {"project_id": project_id, "onto_project_id": onto_project_id},
                    )
            except Exception as e:
                raise StoreWriteError("link project_calendars", str(e)) from e

            return int(result.rowcount or 0)

    async def insert_event_sync(self, record: dict[str, Any]) -> str:
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_event_sync",
            {ATTR_ONTO_TABLE: "onto_event_sync", ATTR_DB_SYSTEM: "postgresql"},
        ):
            values = {"id": str(uuid4()), **record}
            await self._insert("onto_event_sync", values)
            return str(values["id"])

    async def _insert(self, table: str, values: dict[str, Any]) -> None:
        columns = list(values)
        _check_columns(columns)

        placeholders = []
        params: dict[str, Any] = {}
        for column in columns:
            value = values[column]
            if isinstance(value, (dict, list)):
                placeholders.append(f"CAST(:{column} AS JSONB)")
                params[column] = encode_json(value)
            else:
                placeholders.append(f":{column}")
                params[column] = value

        # table is checked against a fixed set; columns are validated identifiers
        query = text(f"""
            INSERT INTO {table} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
        """)  # nosec B608 - identifiers validated above

        try:
            async with execute_with_connection(self._conn, transactional=True) as conn:
                await conn.execute(query, params)
        except Exception as e:
            raise StoreWriteError(f"insert {table}", str(e)) from e


class InMemoryOntologyStore:
    """
    In-memory implementation of OntologyStore for testing.

    Failures can be injected per table or per edge relation to exercise
    the per-entity failure paths of the migrators.

    Example:
        >>> store = InMemoryOntologyStore()
        >>> store.fail_edges_with_rel("has_event")
        >>> await store.insert_edges([Edge("task", "t", "has_event", "event", "e")])
        Traceback (most recent call last):
        StoreWriteError: insert onto_edges failed: ...
    """

    def __init__(
        self,
        legacy: InMemoryLegacySource | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._legacy = legacy
        self._rows: dict[str, list[dict[str, Any]]] = {table: [] for table in ONTO_ENTITY_TABLES}
        self._event_sync: list[dict[str, Any]] = []
        self._edges: list[Edge] = []
        self._failing_tables: set[str] = set()
        self._failing_rels: set[str] = set()
        self._lock: asyncio.Lock = asyncio.Lock()

    def fail_inserts_into(self, table: str) -> None:
        self._failing_tables.add(table)

    def fail_edges_with_rel(self, rel: str) -> None:
        self._failing_rels.add(rel)

    def clear_failures(self) -> None:
        self._failing_tables.clear()
        self._failing_rels.clear()

    async def insert_entity(self, table: str, record: dict[str, Any]) -> str:
        _check_table(table)
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_entity",
            {ATTR_ONTO_TABLE: table},
        ):
            if table in self._failing_tables:
                raise StoreWriteError(f"insert {table}", "injected failure")
            row = {"id": str(uuid4()), **record}
            async with self._lock:
                self._rows[table].append(row)
            return str(row["id"])

    async def insert_edges(self, edges: Sequence[Edge]) -> None:
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_edges",
            {ATTR_ENTITY_COUNT: len(edges)},
        ):
            failing = [edge.rel for edge in edges if edge.rel in self._failing_rels]
            if failing:
                raise StoreWriteError("insert onto_edges", f"injected failure for {failing[0]}")
            async with self._lock:
                self._edges.extend(edges)

    async def link_calendars(self, project_id: str, onto_project_id: str) -> int:
        with self._tracer.span(
            "ontomigrate.ontology_store.link_calendars",
            {ATTR_LEGACY_ID: project_id},
        ):
            if "project_calendars" in self._failing_tables:
                raise StoreWriteError("link project_calendars", "injected failure")
            if self._legacy is None:
                return 0
            linked = 0
            for calendar in await self._legacy.fetch_project_calendars(project_id):
                if calendar.onto_project_id is None:
                    self._legacy.link_calendar(calendar.id, onto_project_id)
                    linked += 1
            return linked

    async def insert_event_sync(self, record: dict[str, Any]) -> str:
        with self._tracer.span(
            "ontomigrate.ontology_store.insert_event_sync",
            {ATTR_ONTO_TABLE: "onto_event_sync"},
        ):
            if "onto_event_sync" in self._failing_tables:
                raise StoreWriteError("insert onto_event_sync", "injected failure")
            row = {"id": str(uuid4()), **record}
            async with self._lock:
                self._event_sync.append(row)
            return str(row["id"])

    # Read helpers for assertions

    async def all_rows(self, table: str) -> list[dict[str, Any]]:
        async with self._lock:
            if table == "onto_event_sync":
                return list(self._event_sync)
            return list(self._rows[table])

    async def all_edges(self) -> list[Edge]:
        async with self._lock:
            return list(self._edges)

    async def count(self, table: str | None = None) -> int:
        """Rows in one table, or entity rows plus edges and sync rows overall."""
        async with self._lock:
            if table == "onto_edges":
                return len(self._edges)
            if table == "onto_event_sync":
                return len(self._event_sync)
            if table is not None:
                return len(self._rows[table])
            return (
                sum(len(rows) for rows in self._rows.values())
                + len(self._edges)
                + len(self._event_sync)
            )


__all__ = [
    "OntologyStore",
    "PostgreSQLOntologyStore",
    "InMemoryOntologyStore",
    "ONTO_ENTITY_TABLES",
]
