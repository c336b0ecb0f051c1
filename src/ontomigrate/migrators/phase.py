"""
Phase migration: legacy `phases` into `onto_plans`.

All phases of a project are migrated together. When plan synthesis is
enabled and none of the project's phases has been migrated yet, one LLM
call regroups them into plans; synthesized plans without a legacy phase
are net-new. Otherwise (or when synthesis returns nothing) each legacy
phase becomes one fallback plan.

Net-new plans are recorded in the ledger under the synthetic key
`<project id>:synth:<n>`, so synthesizing again never duplicates them.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ontomigrate.exceptions import StoreWriteError
from ontomigrate.migrators.base import EntityResult, MigrationContext, gather_in_chunks
from ontomigrate.models import (
    Edge,
    EntityScope,
    EntityStatus,
    LegacyPhase,
    LegacyProject,
    LegacyTask,
    parse_timestamp,
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
from ontomigrate.templates.classifier import TemplateClassifier
from ontomigrate.templates.props import deep_merge
from ontomigrate.templates.schemas import SynthesizedPlan
from ontomigrate.templates.scopes import is_valid_type_key, normalize_type_key

logger = logging.getLogger(__name__)

LEGACY_TABLE = "phases"
ONTO_TABLE = "onto_plans"
PLAN_TYPE_KEY = "plan.phase.project"

NOTE_SYNTHESIZED = "Plan synthesized by LLM for legacy phase."
NOTE_NET_NEW = "Net-new plan synthesized by LLM."
NOTE_NET_NEW_EXISTS = "Net-new plan already migrated."
NOTE_ALREADY_MIGRATED = "Phase already migrated before LLM synthesis."
NOTE_FALLBACK = "Fallback plan created from legacy phase."
NOTE_DEFERRED = "Project not migrated yet; plan migration deferred."


def phase_state(start: datetime | None, end: datetime | None, now: datetime) -> str:
    """
    State of a plan from its date range.

    Example:
        >>> phase_state(None, datetime(2020, 1, 1, tzinfo=UTC), now)
        'complete'
    """
    if end is not None and end < now:
        return "complete"
    if start is not None and start <= now:
        return "execution"
    return "planning"


def plan_scale(task_count: int) -> str:
    if task_count > 20:
        return "large"
    if task_count > 10:
        return "medium"
    if task_count > 3:
        return "small"
    return "micro"


def _parse_date(value: str | None) -> datetime | None:
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.debug("Ignoring unparseable synthesized date %r", value)
        return None


@dataclass
class PlanDraft:
    """One plan to write (or preview), with where it came from."""

    name: str
    generation: str
    note: str
    phase: LegacyPhase | None = None
    synthesized: SynthesizedPlan | None = None
    owns_ledger_row: bool = True
    task_count: int = 0
    synthetic_id: str | None = None

    @property
    def legacy_phase_id(self) -> str | None:
        if self.phase is not None:
            return self.phase.id
        if self.synthesized is not None:
            return self.synthesized.legacy_phase_id
        return None

    @property
    def ledger_id(self) -> str | None:
        """Ledger key of the plan; None when another draft owns the phase's row."""
        if self.phase is not None:
            return self.phase.id if self.owns_ledger_row else None
        return self.synthetic_id

    @property
    def source_record(self) -> Any:
        if self.phase is not None:
            return self.phase
        return self.synthesized.model_dump(mode="json") if self.synthesized else None

    @property
    def summary(self) -> str | None:
        if self.synthesized is not None and self.synthesized.summary:
            return self.synthesized.summary
        return self.phase.description if self.phase is not None else None

    @property
    def type_key(self) -> str:
        raw = self.synthesized.type_key if self.synthesized is not None else None
        normalized = normalize_type_key(raw, "plan") if raw else None
        if normalized and is_valid_type_key(normalized, "plan"):
            return normalized
        return PLAN_TYPE_KEY

    @property
    def start_at(self) -> datetime | None:
        if self.synthesized is not None and self.synthesized.start_date:
            return _parse_date(self.synthesized.start_date)
        return self.phase.start_date if self.phase is not None else None

    @property
    def end_at(self) -> datetime | None:
        if self.synthesized is not None and self.synthesized.end_date:
            return _parse_date(self.synthesized.end_date)
        return self.phase.end_date if self.phase is not None else None

    @property
    def order(self) -> int:
        if self.synthesized is not None and self.synthesized.order is not None:
            return self.synthesized.order
        return self.phase.order if self.phase is not None else 0

    @property
    def confidence(self) -> float | None:
        return self.synthesized.confidence if self.synthesized is not None else None

    def state_key(self, now: datetime) -> str:
        if self.synthesized is not None and self.synthesized.state_key:
            return self.synthesized.state_key
        return phase_state(self.start_at, self.end_at, now)

    def preview(self, now: datetime) -> dict[str, Any]:
        return {
            "legacy_phase_id": self.legacy_phase_id,
            "name": self.name,
            "summary": self.summary,
            "type_key": self.type_key,
            "state_key": self.state_key(now),
            "start_at": self.start_at.isoformat() if self.start_at else None,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "order": self.order,
            "task_count": self.task_count,
            "generation": self.generation,
            "confidence": self.confidence,
        }


@dataclass
class PhaseBatchResult:
    """
    Plans of one project.

    Attributes:
        entities: One result per plan (or per already-migrated phase)
        phase_mapping: Legacy phase id to ontology plan id (None when no
            plan exists for the phase)
        task_phase: Legacy task id to the legacy phase it belongs to
        plans: Preview payload of every plan considered
        synthesis_reasoning: Reasoning returned by plan synthesis, if used
    """

    entities: list[EntityResult] = field(default_factory=list)
    phase_mapping: dict[str, str | None] = field(default_factory=dict)
    task_phase: dict[str, str] = field(default_factory=dict)
    plans: list[dict[str, Any]] = field(default_factory=list)
    synthesis_reasoning: str | None = None

    @property
    def failed(self) -> bool:
        return any(entity.failed for entity in self.entities)


class PhaseMigrator:
    """
    Migrates a project's phases into ontology plans.

    Example:
        >>> migrator = PhaseMigrator(legacy, ontology, mappings, classifier)
        >>> batch = await migrator.migrate(project, onto_project_id, narrative, facets, tasks, ctx)
        >>> batch.phase_mapping
        {'phase-1': '...'}
    """

    def __init__(
        self,
        legacy: LegacySource,
        ontology: OntologyStore,
        mappings: LegacyMappingRepository,
        classifier: TemplateClassifier,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._legacy = legacy
        self._ontology = ontology
        self._mappings = mappings
        self._classifier = classifier

    async def migrate(
        self,
        project: LegacyProject,
        onto_project_id: str | None,
        project_narrative: str,
        project_facets: dict[str, str],
        tasks: Sequence[LegacyTask],
        ctx: MigrationContext,
    ) -> PhaseBatchResult:
        """
        Migrate every phase of one project.

        Args:
            project: The legacy project
            onto_project_id: Ontology project id, None when the project
                was not migrated (dry run or failure)
            project_narrative: Narrative used for plan synthesis
            project_facets: Facets of the project; plans inherit its context
            tasks: The project's tasks as selected for this run
            ctx: Run context

        Returns:
            PhaseBatchResult with one entity result per plan
        """
        with self._tracer.span(
            "ontomigrate.phase_migrator.migrate",
            {ATTR_RUN_ID: str(ctx.run_id), ATTR_LEGACY_ID: project.id},
        ) as span:
            phases = await self._legacy.fetch_phases(project.id)
            task_phase = await self._legacy.fetch_phase_task_links([p.id for p in phases])
            active_counts = Counter(
                task_phase[task.id] for task in tasks if task.is_active and task.id in task_phase
            )
            if ctx.options.skip_completed_tasks:
                dropped = [p.id for p in phases if active_counts[p.id] == 0]
                if dropped:
                    logger.debug(
                        "Skipping %d phases without active tasks for project %s",
                        len(dropped),
                        project.id,
                    )
                phases = [p for p in phases if active_counts[p.id] > 0]

            result = PhaseBatchResult(task_phase=task_phase)
            if span:
                span.set_attribute(ATTR_ENTITY_COUNT, len(phases))
            if not phases:
                return result

            existing = {
                phase.id: await ctx.lookup(self._mappings, LEGACY_TABLE, phase.id)
                for phase in phases
            }
            pending = [phase for phase in phases if existing[phase.id] is None]
            for phase in phases:
                mapping = existing[phase.id]
                if mapping is not None:
                    result.phase_mapping[phase.id] = mapping.onto_id
                    result.entities.append(
                        EntityResult(
                            scope=EntityScope.PHASE,
                            legacy_id=phase.id,
                            status=EntityStatus.COMPLETED,
                            onto_id=mapping.onto_id,
                            message="Phase already migrated",
                            metadata={"message": "Phase already migrated"},
                        )
                    )
                else:
                    result.phase_mapping[phase.id] = None

            if not pending:
                return result

            drafts = await self._draft_plans(
                project.id,
                project_narrative,
                phases,
                pending,
                synthesize=ctx.options.synthesize_plans and len(pending) == len(phases),
                active_counts=active_counts,
                result=result,
            )

            if ctx.dry_run or onto_project_id is None:
                for draft in drafts:
                    result.plans.append({**draft.preview(ctx.now), "status": "pending"})
                    note = self._preview_note(draft, onto_project_id)
                    result.entities.append(
                        EntityResult(
                            scope=EntityScope.PHASE,
                            legacy_id=draft.legacy_phase_id,
                            status=EntityStatus.PENDING,
                            message=note,
                            metadata={"message": note},
                        )
                    )
                return result

            defaults = await self._plan_defaults()
            written = await gather_in_chunks(
                drafts,
                ctx.options.phase_concurrency,
                lambda draft: self._write_plan(
                    draft, project, onto_project_id, project_facets, defaults, ctx
                ),
            )
            for draft, entity in zip(drafts, written, strict=True):
                result.entities.append(entity)
                result.plans.append(
                    {
                        **draft.preview(ctx.now),
                        "status": entity.status.value,
                        "onto_id": entity.onto_id,
                    }
                )
                if draft.owns_ledger_row and draft.phase is not None and entity.onto_id:
                    result.phase_mapping[draft.phase.id] = entity.onto_id

            logger.info(
                "Project %s: %d plans written, %d failed",
                project.id,
                sum(1 for e in written if e.status == EntityStatus.COMPLETED),
                sum(1 for e in written if e.failed),
            )
            return result

    async def _draft_plans(
        self,
        project_id: str,
        project_narrative: str,
        phases: Sequence[LegacyPhase],
        pending: Sequence[LegacyPhase],
        *,
        synthesize: bool,
        active_counts: Counter[str],
        result: PhaseBatchResult,
    ) -> list[PlanDraft]:
        by_id = {phase.id: phase for phase in phases}
        response = None
        if synthesize:
            response = await self._classifier.synthesize_plans(
                project_narrative,
                [self._phase_payload(phase, active_counts[phase.id]) for phase in phases],
            )

        if response is None:
            return [
                PlanDraft(
                    name=phase.name,
                    generation="legacy",
                    note=NOTE_FALLBACK,
                    phase=phase,
                    task_count=active_counts[phase.id],
                )
                for phase in pending
            ]

        result.synthesis_reasoning = response.reasoning
        drafts: list[PlanDraft] = []
        claimed: set[str] = set()
        net_new = 0
        for plan in response.plans:
            phase = by_id.get(plan.legacy_phase_id) if plan.legacy_phase_id else None
            if phase is None:
                if plan.legacy_phase_id:
                    logger.warning(
                        "Synthesized plan %r references unknown phase %s; treating as net-new",
                        plan.name,
                        plan.legacy_phase_id,
                    )
                net_new += 1
                drafts.append(
                    PlanDraft(
                        name=plan.name,
                        generation="llm",
                        note=NOTE_NET_NEW,
                        synthesized=plan.model_copy(update={"legacy_phase_id": None}),
                        synthetic_id=f"{project_id}:synth:{net_new}",
                    )
                )
                continue
            drafts.append(
                PlanDraft(
                    name=plan.name,
                    generation="llm",
                    note=NOTE_SYNTHESIZED,
                    phase=phase,
                    synthesized=plan,
                    owns_ledger_row=phase.id not in claimed,
                    task_count=active_counts[phase.id],
                )
            )
            claimed.add(phase.id)

        # Phases the synthesis left out still get a plan of their own.
        for phase in pending:
            if phase.id not in claimed:
                drafts.append(
                    PlanDraft(
                        name=phase.name,
                        generation="legacy",
                        note=NOTE_FALLBACK,
                        phase=phase,
                        task_count=active_counts[phase.id],
                    )
                )
        return drafts

    @staticmethod
    def _phase_payload(phase: LegacyPhase, task_count: int) -> dict[str, Any]:
        return {
            "id": phase.id,
            "name": phase.name,
            "description": phase.description,
            "order": phase.order,
            "start_date": phase.start_date.isoformat() if phase.start_date else None,
            "end_date": phase.end_date.isoformat() if phase.end_date else None,
            "task_count": task_count,
        }

    @staticmethod
    def _preview_note(draft: PlanDraft, onto_project_id: str | None) -> str:
        if onto_project_id is None and draft.generation == "legacy":
            return NOTE_DEFERRED
        if draft.generation == "llm":
            return draft.summary or "LLM preview plan"
        return "Dry-run: would create plan from legacy phase."

    async def _plan_defaults(self) -> dict[str, Any]:
        resolved = await self._classifier.resolve_or_none(PLAN_TYPE_KEY, "plan")
        return dict(resolved.default_props) if resolved is not None else {}

    async def _write_plan(
        self,
        draft: PlanDraft,
        project: LegacyProject,
        onto_project_id: str,
        project_facets: dict[str, str],
        defaults: dict[str, Any],
        ctx: MigrationContext,
    ) -> EntityResult:
        ledger_id = draft.ledger_id
        if ledger_id is not None:
            # Another run may have written the plan since the prefetch.
            mapping = await self._mappings.get(LEGACY_TABLE, ledger_id)
            if mapping is not None:
                ctx.remember(mapping)
                if draft.phase is None:
                    note = NOTE_NET_NEW_EXISTS
                elif draft.generation == "llm":
                    note = NOTE_ALREADY_MIGRATED
                else:
                    note = "Phase already migrated"
                return EntityResult(
                    scope=EntityScope.PHASE,
                    legacy_id=draft.legacy_phase_id,
                    status=EntityStatus.COMPLETED,
                    onto_id=mapping.onto_id,
                    message=note,
                    metadata={"message": note},
                )

        facets = {
            "context": project_facets.get("context"),
            "scale": plan_scale(draft.task_count),
            "stage": draft.state_key(ctx.now),
        }
        start_at, end_at = draft.start_at, draft.end_at
        props = deep_merge(
            defaults,
            {
                "source": "migration",
                "summary": draft.summary,
                "legacy_phase_id": draft.legacy_phase_id,
                "order": draft.order,
                "task_count": draft.task_count,
                "scheduling_method": draft.phase.scheduling_method if draft.phase else None,
                "date_range": (
                    {
                        "start": start_at.isoformat() if start_at else None,
                        "end": end_at.isoformat() if end_at else None,
                    }
                    if start_at or end_at
                    else None
                ),
                "metadata": {
                    "legacy_phase_id": draft.legacy_phase_id,
                    "generation": draft.generation,
                    "confidence": draft.confidence,
                },
                "facets": facets,
                "migration": ctx.migration_stamp(),
            },
        )
        record = {
            "project_id": onto_project_id,
            "name": draft.name,
            "description": draft.summary,
            "type_key": draft.type_key,
            "state_key": draft.state_key(ctx.now),
            "props": props,
            "facet_context": facets["context"],
            "facet_scale": facets["scale"],
            "facet_stage": facets["stage"],
            "start_at": start_at,
            "end_at": end_at,
            "created_by": ctx.initiated_by,
        }

        try:
            plan_id = await self._ontology.insert_entity(ONTO_TABLE, record)
            if ledger_id is not None:
                mapping = await self._mappings.upsert(
                    LEGACY_TABLE,
                    ledger_id,
                    ONTO_TABLE,
                    plan_id,
                    record=draft.source_record,
                    metadata=ctx.ledger_metadata(generation=draft.generation),
                )
                ctx.remember(mapping)
        except StoreWriteError as e:
            logger.error(
                "Failed to write plan %r for project %s: %s", draft.name, project.id, e
            )
            return EntityResult(
                scope=EntityScope.PHASE,
                legacy_id=draft.legacy_phase_id,
                status=EntityStatus.FAILED,
                message="Failed to write ontology plan",
                error_message=str(e),
                metadata={"message": "Failed to write ontology plan"},
            )

        try:
            await self._ontology.insert_edges(
                [Edge("project", onto_project_id, "has_plan", "plan", plan_id)]
            )
        except StoreWriteError as e:
            logger.warning("has_plan edge for plan %s failed: %s", plan_id, e)

        return EntityResult(
            scope=EntityScope.PHASE,
            legacy_id=draft.legacy_phase_id,
            status=EntityStatus.COMPLETED,
            onto_id=plan_id,
            message=draft.note,
            metadata={"message": draft.note, "generation": draft.generation},
        )


__all__ = [
    "PhaseMigrator",
    "PhaseBatchResult",
    "PlanDraft",
    "phase_state",
    "plan_scale",
    "PLAN_TYPE_KEY",
    "LEGACY_TABLE",
    "ONTO_TABLE",
]
