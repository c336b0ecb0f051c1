"""
Calendar migration: link project calendars and turn task calendar events
into `onto_events`.

One log row summarizes the calendar stage of a project; individual events
are counted as created, skipped or failed on it.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.migrators.base import EntityResult, MigrationContext, gather_in_chunks
from ontomigrate.models import (
    Edge,
    EntityScope,
    EntityStatus,
    LegacyProject,
    LegacyTaskEvent,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_ENTITY_COUNT,
    ATTR_LEGACY_ID,
    ATTR_RUN_ID,
)
from ontomigrate.repositories.legacy import LegacySource
from ontomigrate.repositories.mapping import LegacyMappingRepository
from ontomigrate.repositories.ontology import OntologyStore

logger = logging.getLogger(__name__)

LEGACY_TABLE = "task_calendar_events"
ONTO_TABLE = "onto_events"
EVENT_TYPE_KEY = "event.task_work"
DEFAULT_EVENT_TITLE = "Task Work Session"

NOTE_DEFERRED = "Ontology project id missing - calendar updates deferred."
NOTE_DRY_RUN = "Dry-run mode: would link project_calendars + emit onto_events."

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class CalendarResult:
    """
    Calendar stage of one project.

    Attributes:
        entity: The calendar summary row
        calendar_count: Project calendars found
        updated_calendars: Calendars linked to the ontology project now
        task_event_count: Events of the project's tasks
        created_events: Events written
        skipped_events: Events already migrated or not migratable
        failed_events: Events whose writes failed
        preview: total/linkable/blocked stats and per-event entries
    """

    entity: EntityResult
    calendar_count: int = 0
    updated_calendars: int = 0
    task_event_count: int = 0
    created_events: int = 0
    skipped_events: int = 0
    failed_events: int = 0
    preview: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return self.entity.failed


def build_calendar_preview(
    events: list[LegacyTaskEvent],
    task_mapping: Mapping[str, str | None],
) -> dict[str, Any]:
    """Which events could be emitted given the current task mapping."""
    entries = []
    linkable = 0
    for event in events:
        onto_task_id = task_mapping.get(event.task_id)
        can_link = bool(onto_task_id) and event.event_start is not None
        linkable += can_link
        entries.append(
            {
                "legacy_event_id": event.id,
                "task_id": event.task_id,
                "onto_task_id": onto_task_id,
                "title": event.event_title or DEFAULT_EVENT_TITLE,
                "start_at": event.event_start.isoformat() if event.event_start else None,
                "end_at": event.event_end.isoformat() if event.event_end else None,
                "sync_status": event.sync_status,
                "linkable": can_link,
            }
        )
    return {
        "total_events": len(events),
        "linkable_events": linkable,
        "blocked_events": len(events) - linkable,
        "events": entries,
    }


class CalendarMigrator:
    """
    Migrates project calendars and task events.

    An event is emitted only when its task already has an ontology id and
    the event has a start time. Failing to write its has_event edge fails
    the event; failing to write its sync row is logged only.
    """

    def __init__(
        self,
        legacy: LegacySource,
        ontology: OntologyStore,
        mappings: LegacyMappingRepository,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._legacy = legacy
        self._ontology = ontology
        self._mappings = mappings

    async def migrate(
        self,
        project: LegacyProject,
        onto_project_id: str | None,
        task_mapping: Mapping[str, str | None],
        ctx: MigrationContext,
    ) -> CalendarResult:
        """
        Migrate the calendar stage of one project.

        Args:
            project: The legacy project
            onto_project_id: Ontology project id, None when not migrated
            task_mapping: Legacy task id to ontology task id for every task
                considered in this run
            ctx: Run context

        Raises:
            StoreWriteError: If the project calendars cannot be linked
        """
        with self._tracer.span(
            "ontomigrate.calendar_migrator.migrate",
            {ATTR_RUN_ID: str(ctx.run_id), ATTR_LEGACY_ID: project.id},
        ) as span:
            calendars = await self._legacy.fetch_project_calendars(project.id)
            task_ids = list(task_mapping)
            events = await self._legacy.fetch_task_events(task_ids) if task_ids else []
            preview = build_calendar_preview(events, task_mapping)
            if span:
                span.set_attribute(ATTR_ENTITY_COUNT, len(events))

            result = CalendarResult(
                entity=EntityResult(
                    scope=EntityScope.CALENDAR,
                    legacy_id=project.id,
                    status=EntityStatus.PENDING,
                    onto_id=onto_project_id,
                ),
                calendar_count=len(calendars),
                task_event_count=len(events),
                preview=preview,
            )

            if onto_project_id is None:
                return self._finish(result, NOTE_DEFERRED)
            if ctx.dry_run:
                return self._finish(result, NOTE_DRY_RUN)

            result.updated_calendars = await self._ontology.link_calendars(
                project.id, onto_project_id
            )

            outcomes = await gather_in_chunks(
                events,
                ctx.options.event_concurrency,
                lambda event: self._migrate_event(event, onto_project_id, task_mapping, ctx),
            )
            result.created_events = outcomes.count(CREATED)
            result.skipped_events = outcomes.count(SKIPPED)
            result.failed_events = outcomes.count(FAILED)

            result.entity.status = (
                EntityStatus.FAILED if result.failed_events else EntityStatus.COMPLETED
            )
            if result.failed_events:
                result.entity.error_message = f"{result.failed_events} events failed to migrate"
            return self._finish(
                result,
                f"Linked {result.updated_calendars} calendars; "
                f"created {result.created_events} ontology events.",
            )

    @staticmethod
    def _finish(result: CalendarResult, notes: str) -> CalendarResult:
        result.entity.message = notes
        result.entity.metadata = {
            "notes": notes,
            "calendar_count": result.calendar_count,
            "updated_calendars": result.updated_calendars,
            "task_event_count": result.task_event_count,
            "created_events": result.created_events,
            "skipped_events": result.skipped_events,
            "failed_events": result.failed_events,
        }
        logger.info("Project %s calendar: %s", result.entity.legacy_id, notes)
        return result

    async def _migrate_event(
        self,
        event: LegacyTaskEvent,
        onto_project_id: str,
        task_mapping: Mapping[str, str | None],
        ctx: MigrationContext,
    ) -> str:
        if await ctx.lookup(self._mappings, LEGACY_TABLE, event.id) is not None:
            return SKIPPED
        onto_task_id = task_mapping.get(event.task_id)
        if not onto_task_id or event.event_start is None:
            return SKIPPED

        try:
            event_id = await self._ontology.insert_entity(
                ONTO_TABLE,
                {
                    "project_id": onto_project_id,
                    "owner_entity_type": "task",
                    "owner_entity_id": onto_task_id,
                    "type_key": EVENT_TYPE_KEY,
                    "state_key": "cancelled" if event.sync_status == "cancelled" else "scheduled",
                    "title": event.event_title or DEFAULT_EVENT_TITLE,
                    "description": event.event_link,
                    "start_at": event.event_start,
                    "end_at": event.event_end,
                    "all_day": False,
                    "props": {
                        "legacy_task_calendar_event_id": event.id,
                        "calendar_id": event.project_calendar_id,
                        "sync_source": event.sync_source,
                        "recurrence": event.recurrence_rule,
                        "last_synced_at": (
                            event.last_synced_at.isoformat() if event.last_synced_at else None
                        ),
                    },
                    "created_by": ctx.initiated_by,
                },
            )
            mapping = await self._mappings.upsert(
                LEGACY_TABLE,
                event.id,
                ONTO_TABLE,
                event_id,
                record=event,
                metadata=ctx.ledger_metadata(),
            )
        except StoreWriteError as e:
            logger.error("Failed to write event %s: %s", event.id, e)
            return FAILED
        ctx.remember(mapping)

        if event.project_calendar_id and event.calendar_event_id:
            try:
                await self._ontology.insert_event_sync(
                    {
                        "event_id": event_id,
                        "calendar_id": event.project_calendar_id,
                        "provider": event.sync_source or "google",
                        "external_event_id": event.calendar_event_id,
                        "sync_status": event.sync_status or "pending",
                        "sync_error": event.sync_error,
                        "last_synced_at": event.last_synced_at,
                    }
                )
            except StoreWriteError as e:
                logger.warning("Sync row for event %s failed: %s", event.id, e)

        try:
            await self._ontology.insert_edges(
                [
                    Edge(
                        "task",
                        onto_task_id,
                        "has_event",
                        "event",
                        event_id,
                        {"legacy_task_calendar_event_id": event.id},
                    )
                ]
            )
        except StoreWriteError as e:
            logger.error("Failed to link event %s to task %s: %s", event_id, onto_task_id, e)
            return FAILED
        return CREATED


__all__ = [
    "CalendarMigrator",
    "CalendarResult",
    "build_calendar_preview",
    "EVENT_TYPE_KEY",
    "LEGACY_TABLE",
    "ONTO_TABLE",
]
