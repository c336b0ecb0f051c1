"""
Task migration: legacy `tasks` into `onto_tasks`.

Classification is a heuristic over duration and recurrence; tasks are
high-volume, so no LLM call is made per task.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.migrators.base import EntityResult, MigrationContext, gather_in_chunks
from ontomigrate.models import Edge, EntityScope, EntityStatus, LegacyProject, LegacyTask
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_ENTITY_COUNT,
    ATTR_LEGACY_ID,
    ATTR_RUN_ID,
)
from ontomigrate.repositories.mapping import LegacyMappingRepository
from ontomigrate.repositories.ontology import OntologyStore
from ontomigrate.templates.classifier import TemplateClassifier
from ontomigrate.templates.props import deep_merge

logger = logging.getLogger(__name__)

LEGACY_TABLE = "tasks"
ONTO_TABLE = "onto_tasks"
DEEP_WORK_MINUTES = 120
MODERATE_MINUTES = 60

NOTE_ALREADY_MIGRATED = "Task already migrated"
NOTE_DEFERRED = "Project not migrated yet; task migration deferred."
NOTE_DRY_RUN = "Dry-run mode: ontology task not created."
NOTE_MIGRATED = "Task migrated successfully."

_STATE_BY_STATUS = {
    "completed": "done",
    "done": "done",
    "in_progress": "in_progress",
    "cancelled": "cancelled",
    "pending": "todo",
    "blocked": "blocked",
}

_PRIORITY = {"urgent": 5, "high": 4, "medium": 3, "low": 2}


def classify_task(task: LegacyTask) -> dict[str, Any]:
    """
    Heuristic classification of a legacy task.

    Recurring tasks are task.recurring, tasks of at least two hours are
    task.deep_work, everything else is task.base.

    Example:
        >>> classify_task(LegacyTask(id="t", project_id="p", title="Write", duration_minutes=150))
        {'type_key': 'task.deep_work', 'complexity': 'complex', ...}
    """
    duration = task.duration_minutes or 0
    is_recurring = bool(task.recurrence_pattern)
    requires_deep_work = duration >= DEEP_WORK_MINUTES

    if is_recurring:
        type_key = "task.recurring"
        reasoning = f"Recurring task ({task.recurrence_pattern})"
    elif requires_deep_work:
        type_key = "task.deep_work"
        reasoning = f"Duration of {duration} minutes requires focused work"
    else:
        type_key = "task.base"
        reasoning = "Standard task"

    if duration >= DEEP_WORK_MINUTES:
        complexity = "complex"
    elif duration >= MODERATE_MINUTES:
        complexity = "moderate"
    else:
        complexity = "simple"

    return {
        "type_key": type_key,
        "complexity": complexity,
        "requires_deep_work": requires_deep_work,
        "is_recurring": is_recurring,
        "reasoning": reasoning,
    }


def task_state(status: str | None) -> str:
    return _STATE_BY_STATUS.get(status or "", "backlog")


def task_priority(priority: str | None) -> int:
    return _PRIORITY.get((priority or "").lower(), 1)


@dataclass
class TaskBatchResult:
    """
    Tasks of one project.

    Attributes:
        entities: One result per task
        task_mapping: Legacy task id to ontology task id (None for tasks
            not in the ontology)
        summary: total, already_migrated, ready_to_migrate, blocked and
            missing_project counters
        previews: Per-task preview records
    """

    entities: list[EntityResult] = field(default_factory=list)
    task_mapping: dict[str, str | None] = field(default_factory=dict)
    summary: dict[str, int] = field(
        default_factory=lambda: {
            "total": 0,
            "already_migrated": 0,
            "ready_to_migrate": 0,
            "blocked": 0,
            "missing_project": 0,
        }
    )
    previews: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(entity.failed for entity in self.entities)


@dataclass
class _TaskOutcome:
    entity: EntityResult
    summary_key: str
    preview: dict[str, Any]


class TaskMigrator:
    """
    Migrates a project's tasks into ontology tasks.

    Tasks linked to a phase that maps to a plan get belongs_to_plan and
    has_task edges; a failure writing them fails that task.
    """

    def __init__(
        self,
        ontology: OntologyStore,
        mappings: LegacyMappingRepository,
        classifier: TemplateClassifier,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._ontology = ontology
        self._mappings = mappings
        self._classifier = classifier

    async def migrate(
        self,
        project: LegacyProject,
        onto_project_id: str | None,
        tasks: Sequence[LegacyTask],
        phase_mapping: dict[str, str | None],
        task_phase: dict[str, str],
        ctx: MigrationContext,
    ) -> TaskBatchResult:
        """
        Migrate the given tasks of one project.

        Args:
            project: The legacy project
            onto_project_id: Ontology project id, None when not migrated
            tasks: Tasks selected for this run
            phase_mapping: Legacy phase id to ontology plan id
            task_phase: Legacy task id to legacy phase id
            ctx: Run context
        """
        with self._tracer.span(
            "ontomigrate.task_migrator.migrate",
            {
                ATTR_RUN_ID: str(ctx.run_id),
                ATTR_LEGACY_ID: project.id,
                ATTR_ENTITY_COUNT: len(tasks),
            },
        ):
            result = TaskBatchResult()
            result.summary["total"] = len(tasks)
            if not tasks:
                return result

            defaults = await self._template_defaults({classify_task(t)["type_key"] for t in tasks})

            outcomes = await gather_in_chunks(
                list(tasks),
                ctx.options.task_concurrency,
                lambda task: self._migrate_one(
                    task,
                    onto_project_id,
                    phase_mapping,
                    task_phase,
                    defaults,
                    ctx,
                ),
            )

            for outcome in outcomes:
                result.entities.append(outcome.entity)
                result.previews.append(outcome.preview)
                result.summary[outcome.summary_key] += 1
                if outcome.entity.legacy_id is not None:
                    result.task_mapping[outcome.entity.legacy_id] = outcome.entity.onto_id

            logger.info(
                "Project %s tasks: %s",
                project.id,
                ", ".join(f"{key}={value}" for key, value in result.summary.items()),
            )
            return result

    async def _template_defaults(self, type_keys: set[str]) -> dict[str, dict[str, Any]]:
        defaults: dict[str, dict[str, Any]] = {}
        for type_key in sorted(type_keys):
            resolved = await self._classifier.resolve_or_none(type_key, "task")
            defaults[type_key] = dict(resolved.default_props) if resolved is not None else {}
        return defaults

    async def _migrate_one(
        self,
        task: LegacyTask,
        onto_project_id: str | None,
        phase_mapping: dict[str, str | None],
        task_phase: dict[str, str],
        defaults: dict[str, dict[str, Any]],
        ctx: MigrationContext,
    ) -> _TaskOutcome:
        classification = classify_task(task)
        type_key = classification["type_key"]
        phase_id = task_phase.get(task.id)
        plan_id = phase_mapping.get(phase_id) if phase_id else None
        state_key = task_state(task.status)
        due_at = task.start_date or task.completed_at
        priority = task_priority(task.priority)
        facet_scale = "medium" if classification["requires_deep_work"] else "small"

        preview = {
            "legacy_task_id": task.id,
            "title": task.title,
            "legacy_status": task.status,
            "onto_task_id": None,
            "phase_id": phase_id,
            "suggested_onto_plan_id": plan_id,
            "recommended_type_key": type_key,
            "recommended_state_key": state_key,
            "due_at": due_at.isoformat() if due_at else None,
            "priority": priority,
            "facet_scale": facet_scale,
        }

        def outcome(
            status: EntityStatus,
            message: str,
            summary_key: str,
            onto_id: str | None = None,
            error: str | None = None,
        ) -> _TaskOutcome:
            preview.update(onto_task_id=onto_id, status=status.value, notes=message)
            return _TaskOutcome(
                entity=EntityResult(
                    scope=EntityScope.TASK,
                    legacy_id=task.id,
                    status=status,
                    onto_id=onto_id,
                    message=message,
                    error_message=error,
                    metadata={
                        "message": message,
                        "classification": classification,
                        "recommended_type_key": type_key,
                        "phase_id": phase_id,
                        "suggested_onto_plan_id": plan_id,
                    },
                ),
                summary_key=summary_key,
                preview=preview,
            )

        mapping = await ctx.lookup(self._mappings, LEGACY_TABLE, task.id)
        if mapping is not None:
            return outcome(
                EntityStatus.COMPLETED, NOTE_ALREADY_MIGRATED, "already_migrated", mapping.onto_id
            )

        if onto_project_id is None:
            return outcome(EntityStatus.PENDING, NOTE_DEFERRED, "missing_project")

        if ctx.dry_run:
            return outcome(EntityStatus.PENDING, NOTE_DRY_RUN, "ready_to_migrate")

        props = deep_merge(
            defaults.get(type_key, {}),
            {
                "legacy_task_id": task.id,
                "description": task.description,
                "details": task.details,
                "task_type": task.task_type,
                "dependencies": list(task.dependencies or []),
                "recurrence": (
                    {
                        "pattern": task.recurrence_pattern,
                        "ends": task.recurrence_ends.isoformat() if task.recurrence_ends else None,
                        "end_source": task.recurrence_end_source,
                    }
                    if task.recurrence_pattern
                    else None
                ),
                "source_calendar_event_id": task.source_calendar_event_id,
                "source": task.source,
                "classification": classification,
                "facets": {"scale": facet_scale},
                "migration": ctx.migration_stamp(),
            },
        )
        record = {
            "project_id": onto_project_id,
            "title": task.title,
            "type_key": type_key,
            "state_key": state_key,
            "priority": priority,
            "due_at": due_at,
            "props": props,
            "facet_scale": facet_scale,
            "created_by": ctx.initiated_by,
        }

        try:
            onto_task_id = await self._ontology.insert_entity(ONTO_TABLE, record)
            mapping = await self._mappings.upsert(
                LEGACY_TABLE,
                task.id,
                ONTO_TABLE,
                onto_task_id,
                record=task,
                metadata=ctx.ledger_metadata(type_key=type_key),
            )
        except StoreWriteError as e:
            logger.error("Failed to write task %s: %s", task.id, e)
            return outcome(
                EntityStatus.FAILED, f"Failed to insert task: {e}", "blocked", error=str(e)
            )
        ctx.remember(mapping)

        if plan_id:
            try:
                await self._ontology.insert_edges(
                    [
                        Edge("task", onto_task_id, "belongs_to_plan", "plan", plan_id),
                        Edge("plan", plan_id, "has_task", "task", onto_task_id),
                    ]
                )
            except StoreWriteError as e:
                logger.error(
                    "Failed to create task-plan edges for task %s -> plan %s: %s",
                    task.id,
                    plan_id,
                    e,
                )
                return outcome(
                    EntityStatus.FAILED,
                    "Failed to create task-plan edges",
                    "blocked",
                    onto_task_id,
                    str(e),
                )

        return outcome(EntityStatus.COMPLETED, NOTE_MIGRATED, "ready_to_migrate", onto_task_id)


__all__ = [
    "TaskMigrator",
    "TaskBatchResult",
    "classify_task",
    "task_priority",
    "task_state",
    "LEGACY_TABLE",
    "ONTO_TABLE",
]
