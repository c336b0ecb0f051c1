"""
MigrationOrchestrator - runs and audits ontology migrations.

The orchestrator is the public entry point of the engine. It selects
candidate legacy projects, cascades each one through the entity migrators
(project, then phases/plans, then tasks, then calendar) and records every
outcome in the append-only migration log.

Responsibilities:
    - Run lifecycle (start, pause, resume) on the primary run row
    - Bounded project fan-out with a per-project failure boundary
    - Prefetching the mapping ledger for every candidate of a run
    - Status, validation and rollback computed from log rows only
    - Retrying the projects behind the failed entities of a run

Usage:
    >>> orchestrator = MigrationOrchestrator(
    ...     legacy=legacy_source,
    ...     ontology=ontology_store,
    ...     mappings=mapping_repo,
    ...     logs=log_repo,
    ...     templates=template_repo,
    ...     llm=llm_client,
    ... )
    >>> result = await orchestrator.start(MigrationOptions(project_concurrency=2))
    >>> [summary] = await orchestrator.get_status(result.run_id)
    >>> summary.scope_counts[EntityScope.TASK].completed
    12
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from ontomigrate.exceptions import RunNotFoundError, RunStateError
from ontomigrate.llm.client import LLMClient
from ontomigrate.migrators import (
    CalendarMigrator,
    EntityResult,
    MigrationContext,
    PhaseMigrator,
    ProjectAnalysis,
    ProjectMigrator,
    TaskMigrator,
    gather_in_chunks,
)
from ontomigrate.models import (
    ENTITY_SCOPES,
    LEGACY_TABLE_BY_SCOPE,
    BatchScopeSummary,
    EntityScope,
    EntityStatus,
    LegacyProject,
    LogOperation,
    MigrationLogEntry,
    MigrationOptions,
    RollbackResult,
    RunStatus,
    RunSummary,
    StartResult,
    ValidationReport,
)
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_BATCH_ID,
    ATTR_CANDIDATE_COUNT,
    ATTR_CONCURRENCY,
    ATTR_DRY_RUN,
    ATTR_RUN_ID,
    ATTR_RUN_STATUS,
)
from ontomigrate.repositories.legacy import LegacySource
from ontomigrate.repositories.mapping import LegacyMappingRepository
from ontomigrate.repositories.migration_log import MigrationLogRepository
from ontomigrate.repositories.ontology import OntologyStore
from ontomigrate.repositories.templates import TemplateRepository
from ontomigrate.templates import ClassifierConfig, TemplateClassifier

logger = logging.getLogger(__name__)

NOTE_NO_CANDIDATES = "No candidate projects matched filters."
NOTE_ORCHESTRATION_FAILED = "Migration orchestration failed before completion."

_RETRYABLE_STATUSES = frozenset(
    {EntityStatus.FAILED.value, EntityStatus.VALIDATION_FAILED.value}
)


@dataclass(frozen=True)
class AnalysisReport:
    """Read-only overview of the candidates of a prospective run."""

    totals: dict[str, int]
    projects: list[ProjectAnalysis]
    options: MigrationOptions

    def to_dict(self) -> dict[str, Any]:
        return {
            "totals": dict(self.totals),
            "projects": [analysis.to_dict() for analysis in self.projects],
            "options": self.options.to_dict(),
            "initiated_by": self.options.initiated_by,
        }


@dataclass
class _ProjectRun:
    project_id: str
    entities: list[EntityResult] = field(default_factory=list)
    preview: dict[str, Any] | None = None
    failed: bool = False


class MigrationOrchestrator:
    """
    Orchestrates migration runs over the entity migrators.

    Runs move through the states of RunStatus; only the primary run row
    (operation migrate, or analyze for dry runs) is ever updated. Entity
    outcomes are appended as log rows, one per entity plus one project
    summary row written first for each project.

    Attributes:
        _classifier: Template classifier shared by every run; owns the
            score cache cleared by clear_caches().
        _status_run_limit: Number of recent runs get_status() reports
            when no run id is given.
    """

    def __init__(
        self,
        legacy: LegacySource,
        ontology: OntologyStore,
        mappings: LegacyMappingRepository,
        logs: MigrationLogRepository,
        templates: TemplateRepository,
        llm: LLMClient,
        *,
        classifier_config: ClassifierConfig | None = None,
        status_run_limit: int = 5,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ):
        """
        Initialize the orchestrator.

        Args:
            legacy: Source of legacy projects, phases, tasks and events
            ontology: Destination store for ontology entities and edges
            mappings: Mapping ledger
            logs: Migration log
            templates: Template directory
            llm: Language-model client (optionally a GuardedLLMClient)
            classifier_config: Classifier thresholds and cache settings
            status_run_limit: Runs reported by get_status() without a run id
            tracer: Optional custom Tracer instance.
            enable_tracing: Whether to enable OpenTelemetry tracing
        """
        if status_run_limit < 1:
            raise ValueError(f"status_run_limit must be >= 1, got {status_run_limit}")

        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._legacy = legacy
        self._ontology = ontology
        self._mappings = mappings
        self._logs = logs
        self._status_run_limit = status_run_limit

        self._classifier = TemplateClassifier(
            templates,
            llm,
            classifier_config,
            tracer=self._tracer,
        )
        self._projects = ProjectMigrator(
            legacy, ontology, mappings, self._classifier, tracer=self._tracer
        )
        self._phases = PhaseMigrator(
            legacy, ontology, mappings, self._classifier, tracer=self._tracer
        )
        self._tasks = TaskMigrator(ontology, mappings, self._classifier, tracer=self._tracer)
        self._calendars = CalendarMigrator(legacy, ontology, mappings, tracer=self._tracer)

    @property
    def classifier(self) -> TemplateClassifier:
        return self._classifier

    # =========================================================================
    # Read-only operations
    # =========================================================================

    async def analyze(self, options: MigrationOptions | None = None) -> AnalysisReport:
        """
        Count what a run with these options would touch.

        Nothing is written, not even a log row.
        """
        options = options or MigrationOptions()
        with self._tracer.span("ontomigrate.orchestrator.analyze") as span:
            candidates = await self._fetch_candidates(options)
            if span:
                span.set_attribute(ATTR_CANDIDATE_COUNT, len(candidates))

            analyses = [await self._projects.analyze(project) for project in candidates]
            totals = {
                "projects": len(analyses),
                "phases": sum(a.phase_count for a in analyses),
                "tasks": sum(a.task_count for a in analyses),
                "calendars": sum(a.calendar_count for a in analyses),
            }
            return AnalysisReport(totals=totals, projects=analyses, options=options)

    async def preview_projects(
        self,
        options: MigrationOptions | None = None,
    ) -> list[dict[str, Any]]:
        """
        Dry-run every candidate and return its preview payload.

        Each project gets its own throwaway run and batch ids; no log rows
        are written. A project whose cascade raises yields an entry carrying
        `error` instead of the preview sections.
        """
        options = replace(options or MigrationOptions(), dry_run=True)
        with self._tracer.span("ontomigrate.orchestrator.preview_projects") as span:
            candidates = await self._fetch_candidates(options)
            if span:
                span.set_attribute(ATTR_CANDIDATE_COUNT, len(candidates))

            previews: list[dict[str, Any]] = []
            for project in candidates:
                ctx = MigrationContext(run_id=uuid4(), batch_id=uuid4(), options=options)
                try:
                    previews.append(await self._cascade(project, ctx, []))
                except Exception as e:
                    logger.exception("Preview of project %s failed", project.id)
                    previews.append(
                        {
                            "project_id": project.id,
                            "project_name": project.name,
                            "project_status": project.status,
                            "notes": NOTE_ORCHESTRATION_FAILED,
                            "error": str(e),
                        }
                    )
            return previews

    # =========================================================================
    # Runs
    # =========================================================================

    async def start(
        self,
        options: MigrationOptions | None = None,
        *,
        retry_of: UUID | None = None,
    ) -> StartResult:
        """
        Start and run a migration to completion.

        Projects run in chunks of options.project_concurrency; chunks run
        one after another. A pause requested while the run is in progress
        takes effect at the next chunk boundary.

        Args:
            options: Run options (defaults when None)
            retry_of: Run whose failures this run retries; recorded on the run row

        Returns:
            StartResult with per-scope counters and entity details

        Raises:
            OntologyMigrationError: If the log, the ledger prefetch or the
                candidate fetch fails
        """
        options = options or MigrationOptions()
        run_id, batch_id = uuid4(), uuid4()
        operation = LogOperation.ANALYZE if options.dry_run else LogOperation.MIGRATE

        with self._tracer.span(
            "ontomigrate.orchestrator.start",
            {
                ATTR_RUN_ID: str(run_id),
                ATTR_BATCH_ID: str(batch_id),
                ATTR_DRY_RUN: options.dry_run,
                ATTR_CONCURRENCY: options.project_concurrency,
            },
        ) as span:
            run_metadata: dict[str, Any] = {
                "options": options.to_dict(),
                "initiated_by": options.initiated_by,
                "dry_run": options.dry_run,
            }
            if retry_of is not None:
                run_metadata["retry_of"] = str(retry_of)
            await self._logs.append(
                [
                    MigrationLogEntry.for_run(
                        run_id,
                        RunStatus.IN_PROGRESS.value,
                        operation,
                        batch_id=batch_id,
                        metadata=run_metadata,
                        org_id=options.org_id,
                    )
                ]
            )
            logger.info(
                "Started migration run %s (batch %s, dry_run=%s)",
                run_id,
                batch_id,
                options.dry_run,
            )

            ctx = MigrationContext(run_id=run_id, batch_id=batch_id, options=options)
            scopes = {scope: BatchScopeSummary(scope) for scope in ENTITY_SCOPES}

            candidates = await self._fetch_candidates(options)
            if span:
                span.set_attribute(ATTR_CANDIDATE_COUNT, len(candidates))

            if not candidates:
                await self._logs.update_run_row(
                    run_id,
                    RunStatus.COMPLETED.value,
                    {"notes": NOTE_NO_CANDIDATES, "summary": _summary_dict(scopes)},
                )
                logger.info("Run %s: %s", run_id, NOTE_NO_CANDIDATES)
                return StartResult(
                    run_id=run_id,
                    batch_id=batch_id,
                    dry_run=options.dry_run,
                    status=RunStatus.COMPLETED.value,
                    scopes=scopes,
                )

            await self._prefetch(candidates, ctx)

            runs: list[_ProjectRun] = []
            remaining = list(candidates)
            paused = False
            while remaining:
                chunk = remaining[: options.project_concurrency]
                remaining = remaining[options.project_concurrency :]
                runs.extend(
                    await gather_in_chunks(chunk, len(chunk), lambda p: self._run_project(p, ctx))
                )
                if remaining and await self._is_paused(run_id):
                    paused = True
                    logger.info(
                        "Run %s paused; %d projects left unprocessed", run_id, len(remaining)
                    )
                    break

            failed_projects = [run.project_id for run in runs if run.failed]
            for run in runs:
                for entity in run.entities:
                    scopes[entity.scope].record(entity.status.value, entity.detail())

            if paused:
                status = RunStatus.PAUSED
            elif failed_projects:
                status = RunStatus.FAILED
            else:
                status = RunStatus.COMPLETED

            metadata: dict[str, Any] = {"summary": _summary_dict(scopes)}
            if paused:
                metadata["remaining_project_ids"] = [project.id for project in remaining]
            await self._logs.update_run_row(run_id, status.value, metadata)

            if span:
                span.set_attribute(ATTR_RUN_STATUS, status.value)
            logger.info(
                "Run %s finished as %s: %s",
                run_id,
                status.value,
                ", ".join(
                    f"{scope.value}={summary.counts.completed}/{summary.counts.total}"
                    for scope, summary in scopes.items()
                ),
            )

            return StartResult(
                run_id=run_id,
                batch_id=batch_id,
                dry_run=options.dry_run,
                status=status.value,
                scopes=scopes,
                failed_projects=failed_projects,
                previews=[run.preview for run in runs if run.preview is not None],
            )

    async def retry(
        self,
        run_id: UUID,
        entity_type: EntityScope | None = None,
        initiated_by: str | None = None,
    ) -> StartResult | None:
        """
        Re-run the projects behind the failed entities of a run.

        Failed and validation_failed entity rows of the run are resolved to
        their legacy projects: project and calendar rows carry the project
        id, phase and task rows are looked up in the legacy source. Those
        projects go through start() under a new run whose run row records
        `retry_of`. Entities that migrated on the first attempt are skipped
        by the ledger as usual.

        Args:
            run_id: Run whose failures to retry
            entity_type: Only retry failures of this scope
            initiated_by: Operator for the new run (source run's when None)

        Returns:
            StartResult of the new run, or None when nothing resolved to a
            project

        Raises:
            RunNotFoundError: If the run has no run row
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.retry",
            {ATTR_RUN_ID: str(run_id)},
        ) as span:
            run_row = await self._require_run_row(run_id)
            targets = [
                entry
                for entry in await self._logs.list_by_run(run_id)
                if entry.entity_type in ENTITY_SCOPES
                and entry.status in _RETRYABLE_STATUSES
                and (entity_type is None or entry.entity_type == entity_type)
            ]
            project_ids = await self._retry_project_ids(targets)
            if span:
                span.set_attribute(ATTR_CANDIDATE_COUNT, len(project_ids))
            if not project_ids:
                logger.info("Run %s has no failed entities to retry", run_id)
                return None

            source = MigrationOptions.from_dict(run_row.metadata.get("options") or {})
            options = replace(
                source,
                dry_run=False,
                project_ids=tuple(project_ids),
                batch_size=len(project_ids),
                initiated_by=initiated_by or source.initiated_by,
            )
            logger.info(
                "Retrying %d failed entities of run %s across %d projects",
                len(targets),
                run_id,
                len(project_ids),
            )
            return await self.start(options, retry_of=run_id)

    async def _retry_project_ids(self, targets: list[MigrationLogEntry]) -> list[str]:
        project_ids: list[str] = []
        children: dict[str, list[str]] = {}
        for entry in targets:
            if not entry.legacy_id:
                continue
            if entry.entity_type in (EntityScope.PROJECT, EntityScope.CALENDAR):
                project_ids.append(entry.legacy_id)
            else:
                table = LEGACY_TABLE_BY_SCOPE[entry.entity_type]
                children.setdefault(table, []).append(entry.legacy_id)
        for table, ids in children.items():
            project_ids.extend(await self._legacy.owning_project_ids(table, ids))
        return list(dict.fromkeys(project_ids))

    async def _fetch_candidates(self, options: MigrationOptions) -> list[LegacyProject]:
        return await self._legacy.fetch_projects(
            project_ids=options.project_ids,
            include_archived=options.include_archived,
            limit=options.batch_size,
        )

    async def _prefetch(self, candidates: list[LegacyProject], ctx: MigrationContext) -> None:
        """Load every existing mapping of the candidates into the run context."""
        project_ids = [project.id for project in candidates]
        phase_ids = await self._legacy.list_phase_ids(project_ids)
        task_ids = await self._legacy.list_task_ids(project_ids)
        event_ids = await self._legacy.list_event_ids(task_ids)

        ids_by_scope = {
            EntityScope.PROJECT: project_ids,
            EntityScope.PHASE: phase_ids,
            EntityScope.TASK: task_ids,
            EntityScope.CALENDAR: event_ids,
        }
        for scope, table in LEGACY_TABLE_BY_SCOPE.items():
            ctx.prime(table, await self._mappings.get_many(table, ids_by_scope[scope]))

        logger.debug(
            "Prefetched mappings for %d projects, %d phases, %d tasks, %d events",
            len(project_ids),
            len(phase_ids),
            len(task_ids),
            len(event_ids),
        )

    async def _run_project(self, project: LegacyProject, ctx: MigrationContext) -> _ProjectRun:
        """Cascade one project and log its rows; failures stop at this boundary."""
        run = _ProjectRun(project.id)
        try:
            preview = await self._cascade(project, ctx, run.entities)
        except Exception as e:
            logger.exception("Migration of project %s failed", project.id)
            if run.entities:
                await self._logs.append([entity.to_log_entry(ctx) for entity in run.entities])
            failure = EntityResult(
                scope=EntityScope.PROJECT,
                legacy_id=project.id,
                status=EntityStatus.FAILED,
                message=NOTE_ORCHESTRATION_FAILED,
                error_message=str(e),
                metadata={"notes": NOTE_ORCHESTRATION_FAILED},
            )
            await self._logs.append([failure.to_log_entry(ctx)])
            run.entities.append(failure)
            run.failed = True
            return run

        await self._logs.append([entity.to_log_entry(ctx) for entity in run.entities])
        if ctx.dry_run:
            run.preview = preview
        return run

    async def _cascade(
        self,
        project: LegacyProject,
        ctx: MigrationContext,
        entities: list[EntityResult],
    ) -> dict[str, Any]:
        """
        Project, then plans, then tasks, then calendar.

        Entity results are appended to `entities` as each stage finishes,
        the project row first. Returns the project's preview payload.
        """
        project_result = await self._projects.migrate(project, ctx)
        entities.append(project_result.entity)
        onto_project_id = project_result.onto_project_id

        tasks = await self._legacy.fetch_tasks(
            project.id, skip_completed=ctx.options.skip_completed_tasks
        )

        phases = await self._phases.migrate(
            project,
            onto_project_id,
            project_result.narrative,
            project_result.facets,
            tasks,
            ctx,
        )
        entities.extend(phases.entities)

        task_batch = await self._tasks.migrate(
            project,
            onto_project_id,
            tasks,
            phases.phase_mapping,
            phases.task_phase,
            ctx,
        )
        entities.extend(task_batch.entities)

        calendar = await self._calendars.migrate(
            project, onto_project_id, task_batch.task_mapping, ctx
        )
        entities.append(calendar.entity)

        return {
            "project_id": project.id,
            "project_name": project.name,
            "project_status": project.status,
            "context_document_id": project_result.context_document_id,
            "context_markdown": project_result.context_markdown,
            "core_values": project_result.core_values,
            "plan_preview": {
                "plans": phases.plans,
                "reasoning": phases.synthesis_reasoning,
            },
            "task_preview": {
                "summary": task_batch.summary,
                "tasks": task_batch.previews,
            },
            "calendar_preview": calendar.preview,
            "template_preview": project_result.template_preview,
        }

    # =========================================================================
    # Status, validation and rollback
    # =========================================================================

    async def get_status(self, run_id: UUID | None = None) -> list[RunSummary]:
        """
        Summaries of one run, or of the most recent runs.

        Args:
            run_id: Run to summarize; None for the latest `status_run_limit` runs

        Returns:
            RunSummary per run that has log rows, newest first when listing
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.get_status",
            {ATTR_RUN_ID: str(run_id) if run_id else ""},
        ):
            if run_id is not None:
                run_ids = [run_id]
            else:
                run_ids = await self._logs.latest_run_ids(self._status_run_limit)
            rows = await self._logs.list_by_runs(run_ids)
            return [
                RunSummary.from_entries(rid, rows[rid]) for rid in run_ids if rows.get(rid)
            ]

    async def validate(self, run_id: UUID) -> ValidationReport:
        """
        Flag scopes with failures, or with pending work once the run ended.

        Appends one validate row to the log and changes nothing else.

        Raises:
            RunNotFoundError: If the run has no log rows
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.validate",
            {ATTR_RUN_ID: str(run_id)},
        ) as span:
            entries = await self._logs.list_by_run(run_id)
            if not entries:
                raise RunNotFoundError(run_id)

            summary = RunSummary.from_entries(run_id, entries)
            issues: list[str] = []
            for scope, counts in summary.scope_counts.items():
                if counts.failed > 0:
                    issues.append(f"{scope.value} scope has {counts.failed} failed entries")
                if counts.pending > 0 and summary.status != RunStatus.IN_PROGRESS.value:
                    issues.append(f"{scope.value} scope still has {counts.pending} pending items")

            status = EntityStatus.FAILED if issues else EntityStatus.COMPLETED
            await self._logs.append(
                [
                    MigrationLogEntry.for_run(
                        run_id,
                        status.value,
                        LogOperation.VALIDATE,
                        batch_id=uuid4(),
                        metadata={"issues": issues},
                        org_id=summary.options.get("org_id"),
                    )
                ]
            )
            if span:
                span.set_attribute(ATTR_RUN_STATUS, status.value)
            if issues:
                logger.warning("Run %s failed validation: %s", run_id, "; ".join(issues))
            else:
                logger.info("Run %s validated without issues", run_id)
            return ValidationReport(run_id=run_id, issues=issues, summary=summary)

    async def rollback(
        self,
        run_id: UUID,
        from_date: datetime | None = None,
        initiated_by: str | None = None,
    ) -> RollbackResult:
        """
        Mark the entity rows of a run rolled back.

        Only audit rows change; entities, edges and ledger rows stay.

        Args:
            run_id: The run
            from_date: Only rows created at or after this instant
            initiated_by: Operator for the audit row ("system" when None)

        Raises:
            RunNotFoundError: If the run has no run row
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.rollback",
            {ATTR_RUN_ID: str(run_id)},
        ):
            run_row = await self._logs.get_run_row(run_id)
            if run_row is None:
                raise RunNotFoundError(run_id)

            updated = await self._logs.mark_rolled_back(run_id, from_date)
            await self._logs.append(
                [
                    MigrationLogEntry.for_run(
                        run_id,
                        EntityStatus.ROLLED_BACK.value,
                        LogOperation.ROLLBACK,
                        batch_id=run_row.batch_id,
                        metadata={
                            "from_date": from_date.isoformat() if from_date else None,
                            "initiated_by": initiated_by or "system",
                            "updated": updated,
                        },
                        org_id=run_row.org_id,
                    )
                ]
            )
            logger.info("Rolled back %d log rows of run %s", updated, run_id)
            return RollbackResult(run_id=run_id, updated=updated)

    # =========================================================================
    # Pause / resume
    # =========================================================================

    async def pause(
        self,
        run_id: UUID,
        reason: str,
        paused_by: str | None = None,
    ) -> MigrationLogEntry:
        """
        Pause a run.

        A run executing in this process stops after its current chunk of
        projects; in-flight projects are not interrupted.

        Raises:
            RunNotFoundError: If the run has no run row
            RunStateError: If the run cannot be paused from its status
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.pause",
            {ATTR_RUN_ID: str(run_id)},
        ):
            run_row = await self._require_run_row(run_id)
            current = RunStatus(run_row.status)
            if current == RunStatus.PAUSED:
                logger.debug("Run %s is already paused", run_id)
                return run_row
            if not current.can_transition_to(RunStatus.PAUSED):
                raise RunStateError(run_id, current.value, RunStatus.PAUSED.value)

            updated = await self._logs.update_run_row(
                run_id,
                RunStatus.PAUSED.value,
                {
                    "pause_reason": reason,
                    "pause_set_at": datetime.now(UTC).isoformat(),
                    "pause_set_by": paused_by or "system",
                },
            )
            logger.info("Paused run %s: %s", run_id, reason)
            return updated

    async def resume(self, run_id: UUID, resumed_by: str | None = None) -> MigrationLogEntry:
        """
        Resume a paused run.

        Only the run row changes; projects left unprocessed are picked up
        by starting a new run, which skips everything already migrated.

        Raises:
            RunNotFoundError: If the run has no run row
            RunStateError: If the run is not paused
        """
        with self._tracer.span(
            "ontomigrate.orchestrator.resume",
            {ATTR_RUN_ID: str(run_id)},
        ):
            run_row = await self._require_run_row(run_id)
            current = RunStatus(run_row.status)
            if current != RunStatus.PAUSED:
                raise RunStateError(run_id, current.value, RunStatus.IN_PROGRESS.value)

            updated = await self._logs.update_run_row(
                run_id,
                RunStatus.IN_PROGRESS.value,
                {
                    "pause_reason": None,
                    "resumed_at": datetime.now(UTC).isoformat(),
                    "resumed_by": resumed_by,
                },
            )
            logger.info("Resumed run %s", run_id)
            return updated

    async def _require_run_row(self, run_id: UUID) -> MigrationLogEntry:
        run_row = await self._logs.get_run_row(run_id)
        if run_row is None:
            raise RunNotFoundError(run_id)
        return run_row

    async def _is_paused(self, run_id: UUID) -> bool:
        run_row = await self._logs.get_run_row(run_id)
        return run_row is not None and run_row.status == RunStatus.PAUSED.value

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def clear_caches(self) -> None:
        """Drop cached template scores, e.g. after editing the template catalog."""
        await self._classifier.clear_cache()


def _summary_dict(scopes: dict[EntityScope, BatchScopeSummary]) -> dict[str, Any]:
    return {scope.value: summary.to_dict() for scope, summary in scopes.items()}


__all__ = [
    "MigrationOrchestrator",
    "AnalysisReport",
]
