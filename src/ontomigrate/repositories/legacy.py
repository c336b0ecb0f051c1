"""
Legacy source repositories.

Read-only access to the legacy relational model the engine migrates
from: projects, phases (with the phase_tasks link table), tasks,
project calendars and task calendar events.

Responsibilities:
    - Fetch candidate projects (id filter, archived exclusion, size cap)
    - Fetch the phases, tasks, calendars and events of a project
    - Head counts used by analyze()
    - Id listings used to prefetch the mapping cache of a run
    - Owning-project lookups used when retrying failed entities
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from ontomigrate.models import (
    LegacyPhase,
    LegacyProject,
    LegacyTask,
    LegacyTaskEvent,
    ProjectCalendar,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_CANDIDATE_COUNT,
    ATTR_DB_SYSTEM,
    ATTR_ENTITY_COUNT,
    ATTR_LEGACY_ID,
)
from ontomigrate.repositories._connection import decode_json, execute_with_connection

_JSON_COLUMNS = ("tags", "source_metadata", "calendar_settings", "dependencies")
_PROJECT_CHILD_TABLES = ("phases", "tasks")


@runtime_checkable
class LegacySource(Protocol):
    """Protocol for reading the legacy model."""

    async def fetch_projects(
        self,
        project_ids: Sequence[str] | None = None,
        include_archived: bool = False,
        limit: int | None = None,
    ) -> list[LegacyProject]:
        """
        Fetch candidate projects, most recently updated first.

        Args:
            project_ids: Only these project ids
            include_archived: Include projects whose status is archived
            limit: Maximum number of projects

        Returns:
            List of legacy projects
        """
        ...

    async def get_project(self, project_id: str) -> LegacyProject | None: ...

    async def fetch_phases(self, project_id: str) -> list[LegacyPhase]:
        """Phases of a project ordered by their `order` column."""
        ...

    async def fetch_phase_task_links(self, phase_ids: Sequence[str]) -> dict[str, str]:
        """
        Read the phase_tasks link table.

        Returns:
            Mapping of task id to phase id (first link wins)
        """
        ...

    async def fetch_tasks(self, project_id: str, skip_completed: bool = True) -> list[LegacyTask]:
        """
        Tasks of a project ordered by created_at.

        Deleted tasks are always excluded; done tasks are excluded when
        skip_completed is set.
        """
        ...

    async def fetch_project_calendars(self, project_id: str) -> list[ProjectCalendar]: ...

    async def fetch_task_events(self, task_ids: Sequence[str]) -> list[LegacyTaskEvent]:
        """Calendar events of the given tasks ordered by event_start."""
        ...

    async def count_phases(self, project_id: str) -> int: ...

    async def count_tasks(self, project_id: str) -> int:
        """Number of non-deleted tasks of a project."""
        ...

    async def count_calendars(self, project_id: str) -> int: ...

    async def list_phase_ids(self, project_ids: Sequence[str]) -> list[str]: ...

    async def list_task_ids(self, project_ids: Sequence[str]) -> list[str]: ...

    async def list_event_ids(self, task_ids: Sequence[str]) -> list[str]: ...

    async def owning_project_ids(self, legacy_table: str, legacy_ids: Sequence[str]) -> list[str]:
        """
        Project ids owning the given phases or tasks.

        Args:
            legacy_table: "phases" or "tasks"
            legacy_ids: Record ids in that table

        Returns:
            Distinct project ids; unknown record ids are ignored

        Raises:
            ValueError: For any other table
        """
        ...


def _normalize_row(row: Mapping[str, Any]) -> dict[str, Any]:
    values = dict(row)
    for key in _JSON_COLUMNS:
        if key in values:
            values[key] = decode_json(values[key])
    for key, value in list(values.items()):
        if key == "id" or key.endswith("_id"):
            values[key] = str(value) if value is not None else None
    return values


class PostgreSQLLegacySource:
    """
    PostgreSQL implementation of LegacySource.

    Example:
        >>> source = PostgreSQLLegacySource(engine)
        >>> projects = await source.fetch_projects(limit=10)
        >>> tasks = await source.fetch_tasks(projects[0].id)
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

    async def fetch_projects(
        self,
        project_ids: Sequence[str] | None = None,
        include_archived: bool = False,
        limit: int | None = None,
    ) -> list[LegacyProject]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_projects",
            {ATTR_DB_SYSTEM: "postgresql"},
        ) as span:
            conditions: list[str] = []
            params: dict[str, Any] = {}

            if project_ids:
                conditions.append("id = ANY(:project_ids)")
                params["project_ids"] = list(project_ids)

            if not include_archived:
                conditions.append("status IS DISTINCT FROM 'archived'")

            where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
            limit_clause = f"LIMIT {int(limit)}" if limit else ""

            # where_clause built from hardcoded conditions; limit_clause is an integer
            query = text(f"""
                SELECT * FROM projects
                {where_clause}
                ORDER BY updated_at DESC
                {limit_clause}
            """)  # nosec B608 - no user input in SQL construction

            rows = await self._fetch_all(query, params)
            projects = [LegacyProject.from_row(_normalize_row(row)) for row in rows]
            if span is not None:
                span.set_attribute(ATTR_CANDIDATE_COUNT, len(projects))
            return projects

    async def get_project(self, project_id: str) -> LegacyProject | None:
        with self._tracer.span(
            "ontomigrate.legacy_source.get_project",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            rows = await self._fetch_all(
                text("SELECT * FROM projects WHERE id = :id"), {"id": project_id}
            )
            return LegacyProject.from_row(_normalize_row(rows[0])) if rows else None

    async def fetch_phases(self, project_id: str) -> list[LegacyPhase]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_phases",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            rows = await self._fetch_all(
                text("""
                    SELECT * FROM phases
                    WHERE project_id = :project_id
                    ORDER BY "order" ASC
                """),
                {"project_id": project_id},
            )
            return [LegacyPhase.from_row(_normalize_row(row)) for row in rows]

    async def fetch_phase_task_links(self, phase_ids: Sequence[str]) -> dict[str, str]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_phase_task_links",
            {ATTR_ENTITY_COUNT: len(phase_ids), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not phase_ids:
                return {}
            rows = await self._fetch_all(
                text("""
                    SELECT task_id, phase_id FROM phase_tasks
                    WHERE phase_id = ANY(:phase_ids)
                """),
                {"phase_ids": list(phase_ids)},
            )
            links: dict[str, str] = {}
            for row in rows:
                links.setdefault(str(row["task_id"]), str(row["phase_id"]))
            return links

    async def fetch_tasks(self, project_id: str, skip_completed: bool = True) -> list[LegacyTask]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_tasks",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            done_clause = "AND status IS DISTINCT FROM 'done'" if skip_completed else ""
            query = text(f"""
                SELECT * FROM tasks
                WHERE project_id = :project_id
                  AND deleted_at IS NULL
                  {done_clause}
                ORDER BY created_at ASC
            """)  # nosec B608 - done_clause is a hardcoded condition
            rows = await self._fetch_all(query, {"project_id": project_id})
            return [LegacyTask.from_row(_normalize_row(row)) for row in rows]

    async def fetch_project_calendars(self, project_id: str) -> list[ProjectCalendar]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_project_calendars",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            rows = await self._fetch_all(
                text("SELECT * FROM project_calendars WHERE project_id = :project_id"),
                {"project_id": project_id},
            )
            return [ProjectCalendar.from_row(_normalize_row(row)) for row in rows]

    async def fetch_task_events(self, task_ids: Sequence[str]) -> list[LegacyTaskEvent]:
        with self._tracer.span(
            "ontomigrate.legacy_source.fetch_task_events",
            {ATTR_ENTITY_COUNT: len(task_ids), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not task_ids:
                return []
            rows = await self._fetch_all(
                text("""
                    SELECT * FROM task_calendar_events
                    WHERE task_id = ANY(:task_ids)
                    ORDER BY event_start ASC NULLS LAST
                """),
                {"task_ids": list(task_ids)},
            )
            return [LegacyTaskEvent.from_row(_normalize_row(row)) for row in rows]

    async def count_phases(self, project_id: str) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM phases WHERE project_id = :project_id", project_id
        )

    async def count_tasks(self, project_id: str) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM tasks WHERE project_id = :project_id AND deleted_at IS NULL",
            project_id,
        )

    async def count_calendars(self, project_id: str) -> int:
        return await self._count(
            "SELECT COUNT(*) FROM project_calendars WHERE project_id = :project_id", project_id
        )

    async def list_phase_ids(self, project_ids: Sequence[str]) -> list[str]:
        return await self._list_ids(
            "SELECT id FROM phases WHERE project_id = ANY(:ids)", project_ids
        )

    async def list_task_ids(self, project_ids: Sequence[str]) -> list[str]:
        return await self._list_ids(
            "SELECT id FROM tasks WHERE project_id = ANY(:ids) AND deleted_at IS NULL",
            project_ids,
        )

    async def list_event_ids(self, task_ids: Sequence[str]) -> list[str]:
        return await self._list_ids(
            "SELECT id FROM task_calendar_events WHERE task_id = ANY(:ids)", task_ids
        )

    async def owning_project_ids(self, legacy_table: str, legacy_ids: Sequence[str]) -> list[str]:
        if legacy_table not in _PROJECT_CHILD_TABLES:
            raise ValueError(f"No project owner lookup for table {legacy_table!r}")
        return await self._list_ids(
            f"SELECT DISTINCT project_id FROM {legacy_table} "
            "WHERE id = ANY(:ids) AND project_id IS NOT NULL",
            legacy_ids,
        )

    async def _fetch_all(self, query: Any, params: dict[str, Any]) -> list[Mapping[str, Any]]:
        async with execute_with_connection(self._conn, transactional=False) as conn:
            result = await conn.execute(query, params)
            return list(result.mappings().all())

    async def _count(self, sql: str, project_id: str) -> int:
        with self._tracer.span(
            "ontomigrate.legacy_source.count",
            {ATTR_LEGACY_ID: project_id, ATTR_DB_SYSTEM: "postgresql"},
        ):
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(text(sql), {"project_id": project_id})
                return int(result.scalar() or 0)

    async def _list_ids(self, sql: str, ids: Sequence[str]) -> list[str]:
        with self._tracer.span(
            "ontomigrate.legacy_source.list_ids",
            {ATTR_ENTITY_COUNT: len(ids), ATTR_DB_SYSTEM: "postgresql"},
        ):
            if not ids:
                return []
            async with execute_with_connection(self._conn, transactional=False) as conn:
                result = await conn.execute(text(sql), {"ids": list(ids)})
                return [str(row[0]) for row in result.fetchall()]


def _sort_stamp(value: datetime | None) -> float:
    return value.timestamp() if value is not None else float("-inf")


class InMemoryLegacySource:
    """
    In-memory implementation of LegacySource for testing and previews.

    Example:
        >>> source = InMemoryLegacySource()
        >>> source.add_project(LegacyProject(id="p-1", name="Novel"))
        >>> [p.id for p in await source.fetch_projects()]
        ['p-1']
    """

    def __init__(
        self,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._projects: dict[str, LegacyProject] = {}
        self._phases: dict[str, LegacyPhase] = {}
        self._phase_tasks: list[tuple[str, str]] = []
        self._tasks: dict[str, LegacyTask] = {}
        self._calendars: dict[str, ProjectCalendar] = {}
        self._events: dict[str, LegacyTaskEvent] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    # Seeding helpers

    def add_project(self, project: LegacyProject) -> None:
        self._projects[project.id] = project

    def add_phase(self, phase: LegacyPhase, task_ids: Sequence[str] = ()) -> None:
        self._phases[phase.id] = phase
        for task_id in task_ids:
            self._phase_tasks.append((phase.id, task_id))

    def add_task(self, task: LegacyTask) -> None:
        self._tasks[task.id] = task

    def add_calendar(self, calendar: ProjectCalendar) -> None:
        self._calendars[calendar.id] = calendar

    def add_event(self, event: LegacyTaskEvent) -> None:
        self._events[event.id] = event

    def link_calendar(self, calendar_id: str, onto_project_id: str) -> None:
        """Record a link written by the ontology store."""
        calendar = self._calendars[calendar_id]
        self._calendars[calendar_id] = ProjectCalendar(
            id=calendar.id,
            project_id=calendar.project_id,
            calendar_id=calendar.calendar_id,
            calendar_name=calendar.calendar_name,
            sync_enabled=calendar.sync_enabled,
            onto_project_id=onto_project_id,
        )

    # LegacySource

    async def fetch_projects(
        self,
        project_ids: Sequence[str] | None = None,
        include_archived: bool = False,
        limit: int | None = None,
    ) -> list[LegacyProject]:
        with self._tracer.span("ontomigrate.legacy_source.fetch_projects", {}):
            async with self._lock:
                projects = list(self._projects.values())
            if project_ids:
                wanted = set(project_ids)
                projects = [p for p in projects if p.id in wanted]
            if not include_archived:
                projects = [p for p in projects if p.status != "archived"]
            projects.sort(key=lambda p: _sort_stamp(p.updated_at), reverse=True)
            return projects[:limit] if limit else projects

    async def get_project(self, project_id: str) -> LegacyProject | None:
        async with self._lock:
            return self._projects.get(project_id)

    async def fetch_phases(self, project_id: str) -> list[LegacyPhase]:
        async with self._lock:
            phases = [p for p in self._phases.values() if p.project_id == project_id]
        return sorted(phases, key=lambda p: p.order)

    async def fetch_phase_task_links(self, phase_ids: Sequence[str]) -> dict[str, str]:
        wanted = set(phase_ids)
        links: dict[str, str] = {}
        async with self._lock:
            for phase_id, task_id in self._phase_tasks:
                if phase_id in wanted:
                    links.setdefault(task_id, phase_id)
        return links

    async def fetch_tasks(self, project_id: str, skip_completed: bool = True) -> list[LegacyTask]:
        async with self._lock:
            tasks = [
                t
                for t in self._tasks.values()
                if t.project_id == project_id and t.deleted_at is None
            ]
        if skip_completed:
            tasks = [t for t in tasks if t.status != "done"]
        return sorted(tasks, key=lambda t: _sort_stamp(t.created_at))

    async def fetch_project_calendars(self, project_id: str) -> list[ProjectCalendar]:
        async with self._lock:
            return [c for c in self._calendars.values() if c.project_id == project_id]

    async def fetch_task_events(self, task_ids: Sequence[str]) -> list[LegacyTaskEvent]:
        wanted = set(task_ids)
        async with self._lock:
            events = [e for e in self._events.values() if e.task_id in wanted]
        # unscheduled events sort last
        return sorted(
            events,
            key=lambda e: (e.event_start is None, _sort_stamp(e.event_start)),
        )

    async def count_phases(self, project_id: str) -> int:
        return len(await self.fetch_phases(project_id))

    async def count_tasks(self, project_id: str) -> int:
        return len(await self.fetch_tasks(project_id, skip_completed=False))

    async def count_calendars(self, project_id: str) -> int:
        return len(await self.fetch_project_calendars(project_id))

    async def list_phase_ids(self, project_ids: Sequence[str]) -> list[str]:
        wanted = set(project_ids)
        async with self._lock:
            return [p.id for p in self._phases.values() if p.project_id in wanted]

    async def list_task_ids(self, project_ids: Sequence[str]) -> list[str]:
        wanted = set(project_ids)
        async with self._lock:
            return [
                t.id
                for t in self._tasks.values()
                if t.project_id in wanted and t.deleted_at is None
            ]

    async def list_event_ids(self, task_ids: Sequence[str]) -> list[str]:
        wanted = set(task_ids)
        async with self._lock:
            return [e.id for e in self._events.values() if e.task_id in wanted]

    async def owning_project_ids(self, legacy_table: str, legacy_ids: Sequence[str]) -> list[str]:
        if legacy_table not in _PROJECT_CHILD_TABLES:
            raise ValueError(f"No project owner lookup for table {legacy_table!r}")
        records: Mapping[str, LegacyPhase | LegacyTask]
        records = self._phases if legacy_table == "phases" else self._tasks
        async with self._lock:
            owners = [records[i].project_id for i in legacy_ids if i in records]
        return list(dict.fromkeys(owner for owner in owners if owner))


__all__ = [
    "LegacySource",
    "PostgreSQLLegacySource",
    "InMemoryLegacySource",
]
