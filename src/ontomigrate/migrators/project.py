"""
Project migration: legacy `projects` rows into `onto_projects`.

Flow per project:
    1. Ledger check; an existing mapping short-circuits with zero writes.
    2. Narrative, facets and analysis counts.
    3. Template via the classifier, then property extraction and validation.
    4. Dry runs stop here with a preview.
    5. Live runs insert the project, then the ledger row, then the context
       document and its edge (the document is optional).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from ontomigrate.exceptions import (
    CircuitBreakerOpenError,
    ExternalCallError,
    RateLimitExceededError,
    StoreWriteError,
    TemplateError,
)
from ontomigrate.migrators.base import EntityResult, MigrationContext
from ontomigrate.models import Edge, EntityScope, EntityStatus, LegacyProject
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_ENTITY_STATUS,
    ATTR_LEGACY_ID,
    ATTR_RUN_ID,
    ATTR_TYPE_KEY,
)
from ontomigrate.repositories.legacy import LegacySource
from ontomigrate.repositories.mapping import LegacyMappingRepository
from ontomigrate.repositories.ontology import OntologyStore
from ontomigrate.templates.classifier import TemplateClassifier
from ontomigrate.templates.models import (
    Created,
    Extraction,
    PlanOnly,
    ResolvedTemplate,
    Reused,
    TemplateOutcome,
)
from ontomigrate.templates.narrative import build_project_narrative
from ontomigrate.templates.props import deep_merge

logger = logging.getLogger(__name__)

LEGACY_TABLE = "projects"
ONTO_TABLE = "onto_projects"
CONTEXT_DOCUMENT_TYPE = "document.context.project"
DEFAULT_PROJECT_TYPE = "project.migration.generic"

# Model call failures, including calls rejected by the guard.
LLM_FAILURES = (ExternalCallError, CircuitBreakerOpenError, RateLimitExceededError)

_STATE_BY_STATUS = {
    "active": "execution",
    "completed": "complete",
    "planning": "planning",
}


def project_state(status: str | None) -> str:
    """Ontology state (and facet stage) of a legacy project status."""
    return _STATE_BY_STATUS.get(status or "", "discovery")


def heuristic_type_key(project: LegacyProject) -> str:
    """
    Type key guessed from tags and context without the classifier.

    Example:
        >>> heuristic_type_key(LegacyProject(id="p", name="Essays", tags=["write"]))
        'project.writer.general'
    """
    tags = [tag.lower() for tag in project.tags or []]
    if any("write" in tag for tag in tags):
        return "project.writer.general"
    if any("app" in tag for tag in tags):
        return "project.developer.app"
    if project.context and "client" in project.context.lower():
        return "project.coach.client"
    return DEFAULT_PROJECT_TYPE


def project_facets(project: LegacyProject, task_count: int) -> dict[str, str]:
    """Context, scale and stage facets of a legacy project."""
    context = (project.context or "").lower()
    if "client" in context:
        facet_context = "client"
    elif "work" in context:
        facet_context = "commercial"
    else:
        facet_context = "personal"

    if task_count > 50:
        scale = "epic"
    elif task_count > 20:
        scale = "large"
    elif task_count > 5:
        scale = "medium"
    else:
        scale = "small"

    return {"context": facet_context, "scale": scale, "stage": project_state(project.status)}


@dataclass(frozen=True)
class ProjectAnalysis:
    """Read-only counts for one candidate project."""

    project: LegacyProject
    phase_count: int
    task_count: int
    calendar_count: int
    existing_onto_project_id: str | None
    calendar_sync_enabled: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project.id,
            "project_name": self.project.name,
            "project_status": self.project.status,
            "phase_count": self.phase_count,
            "task_count": self.task_count,
            "calendar_count": self.calendar_count,
            "existing_onto_project_id": self.existing_onto_project_id,
            "calendar_sync_enabled": self.calendar_sync_enabled,
        }


@dataclass
class ProjectResult:
    """Outcome of migrating one project plus what later stages need."""

    entity: EntityResult
    analysis: ProjectAnalysis
    narrative: str
    facets: dict[str, str]
    core_values: dict[str, str | None]
    context_markdown: str | None = None
    type_key: str | None = None
    context_document_id: str | None = None
    template_preview: dict[str, Any] | None = field(default=None)

    @property
    def onto_project_id(self) -> str | None:
        return self.entity.onto_id


class ProjectMigrator:
    """
    Migrates legacy projects into ontology projects.

    Example:
        >>> migrator = ProjectMigrator(legacy, ontology, mappings, classifier)
        >>> result = await migrator.migrate(project, ctx)
        >>> result.entity.status
        <EntityStatus.COMPLETED: 'completed'>
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

    async def analyze(
        self,
        project: LegacyProject,
        ctx: MigrationContext | None = None,
    ) -> ProjectAnalysis:
        """Count the project's phases, tasks and calendars and look up its mapping."""
        if ctx is not None:
            mapping = await ctx.lookup(self._mappings, LEGACY_TABLE, project.id)
        else:
            mapping = await self._mappings.get(LEGACY_TABLE, project.id)
        return ProjectAnalysis(
            project=project,
            phase_count=await self._legacy.count_phases(project.id),
            task_count=await self._legacy.count_tasks(project.id),
            calendar_count=await self._legacy.count_calendars(project.id),
            existing_onto_project_id=mapping.onto_id if mapping is not None else None,
            calendar_sync_enabled=bool(project.calendar_sync_enabled),
        )

    async def migrate(self, project: LegacyProject, ctx: MigrationContext) -> ProjectResult:
        """
        Migrate one project.

        Per-project failures (classifier, validation, store writes) are
        returned as results; nothing is raised for them.
        """
        with self._tracer.span(
            "ontomigrate.project_migrator.migrate",
            {ATTR_RUN_ID: str(ctx.run_id), ATTR_LEGACY_ID: project.id},
        ) as span:
            result = await self._migrate(project, ctx)
            if span:
                span.set_attribute(ATTR_ENTITY_STATUS, result.entity.status.value)
                if result.type_key:
                    span.set_attribute(ATTR_TYPE_KEY, result.type_key)
            logger.info(
                "Project %s: %s (%s)",
                project.id,
                result.entity.status.value,
                result.entity.message,
            )
            return result

    async def _migrate(self, project: LegacyProject, ctx: MigrationContext) -> ProjectResult:
        analysis = await self.analyze(project, ctx)
        narrative = build_project_narrative(project)
        facets = project_facets(project, analysis.task_count)
        core_values = project.core_values()
        context_markdown = (project.context or "").strip() or None

        def finish(entity: EntityResult, **extra: Any) -> ProjectResult:
            entity.metadata.setdefault("message", entity.message)
            entity.metadata.setdefault("facets", facets)
            return ProjectResult(
                entity=entity,
                analysis=analysis,
                narrative=narrative,
                facets=facets,
                core_values=core_values,
                context_markdown=context_markdown,
                **extra,
            )

        if analysis.existing_onto_project_id is not None:
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.COMPLETED,
                    onto_id=analysis.existing_onto_project_id,
                    message="Project already migrated",
                )
            )

        try:
            outcome = await self._classify(project, narrative, ctx)
        except (
            ExternalCallError,
            CircuitBreakerOpenError,
            RateLimitExceededError,
            TemplateError,
        ) as e:
            logger.error("Template classification failed for project %s: %s", project.id, e)
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.FAILED,
                    message="Template classification failed",
                    error_message=str(e),
                )
            )

        if isinstance(outcome, PlanOnly):
            suggestion = outcome.plan
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.PENDING_REVIEW,
                    message=f"Dry-run: would create template {suggestion.type_key}",
                    metadata={"type_key": suggestion.type_key, "template_outcome": outcome.kind},
                ),
                type_key=suggestion.type_key,
                template_preview={
                    "outcome": outcome.kind,
                    "type_key": suggestion.type_key,
                    "suggestion": suggestion.to_dict(),
                },
            )

        template = outcome.template
        template_preview: dict[str, Any] = {
            "outcome": outcome.kind,
            "type_key": template.type_key,
            "template_id": template.id,
            "score": getattr(outcome, "score", None),
            "inheritance_chain": list(template.inheritance_chain),
        }
        if isinstance(outcome, Created):
            template_preview["suggestion"] = outcome.suggestion.to_dict()

        try:
            extraction = await self._classifier.extract(template, narrative)
        except LLM_FAILURES as e:
            logger.error("Property extraction failed for project %s: %s", project.id, e)
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.FAILED,
                    message="Property extraction failed",
                    error_message=str(e),
                    metadata={"type_key": template.type_key},
                ),
                type_key=template.type_key,
                template_preview=template_preview,
            )

        validation = self._classifier.validate(extraction, template)
        template_preview["extraction"] = {
            "props": extraction.props,
            "facets": extraction.facets,
            "confidence": extraction.confidence,
            "notes": extraction.notes,
            "warnings": validation.warnings,
        }
        if not validation.valid:
            logger.warning(
                "Extracted props for project %s failed %s: %s",
                project.id,
                template.type_key,
                "; ".join(validation.errors),
            )
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.VALIDATION_FAILED,
                    message="Extracted properties failed template validation",
                    error_message="; ".join(validation.errors),
                    metadata={"type_key": template.type_key, "errors": validation.errors},
                ),
                type_key=template.type_key,
                template_preview=template_preview,
            )

        record = self._build_record(project, template, extraction, facets, ctx, template_preview)

        if ctx.dry_run:
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.PENDING,
                    message=f"Dry-run: would create project as {template.type_key}",
                    metadata={"type_key": template.type_key, "template_outcome": outcome.kind},
                ),
                type_key=template.type_key,
                template_preview=template_preview,
            )

        try:
            onto_project_id = await self._ontology.insert_entity(ONTO_TABLE, record)
            mapping = await self._mappings.upsert(
                LEGACY_TABLE,
                project.id,
                ONTO_TABLE,
                onto_project_id,
                record=project,
                metadata=ctx.ledger_metadata(type_key=template.type_key),
            )
        except StoreWriteError as e:
            logger.error("Failed to write project %s: %s", project.id, e)
            return finish(
                EntityResult(
                    scope=EntityScope.PROJECT,
                    legacy_id=project.id,
                    status=EntityStatus.FAILED,
                    message="Failed to write ontology project",
                    error_message=str(e),
                    metadata={"type_key": template.type_key},
                ),
                type_key=template.type_key,
                template_preview=template_preview,
            )
        ctx.remember(mapping)

        document_id = await self._create_context_document(
            project, onto_project_id, context_markdown, core_values, ctx
        )

        return finish(
            EntityResult(
                scope=EntityScope.PROJECT,
                legacy_id=project.id,
                status=EntityStatus.COMPLETED,
                onto_id=onto_project_id,
                message=f"Migrated as {template.type_key}",
                metadata={
                    "type_key": template.type_key,
                    "template_outcome": outcome.kind,
                    "context_document_id": document_id,
                },
            ),
            type_key=template.type_key,
            context_document_id=document_id,
            template_preview=template_preview,
        )

    async def _classify(
        self,
        project: LegacyProject,
        narrative: str,
        ctx: MigrationContext,
    ) -> TemplateOutcome:
        """
        Obtain a template, degrading to the heuristic type key on LLM errors.

        The heuristic template is used only when it exists and can be
        instantiated; otherwise the classifier error propagates.
        """
        try:
            return await self._classifier.ensure(
                "project",
                narrative,
                dry_run=ctx.dry_run,
                created_by=ctx.initiated_by,
            )
        except LLM_FAILURES:
            fallback = await self._classifier.resolve_or_none(
                heuristic_type_key(project), "project"
            )
            if fallback is None or fallback.is_abstract or fallback.status != "active":
                raise
            logger.warning(
                "Classifier unavailable for project %s; using heuristic template %s",
                project.id,
                fallback.type_key,
            )
            return Reused(template=fallback, score=0.0)

    def _build_record(
        self,
        project: LegacyProject,
        template: ResolvedTemplate,
        extraction: Extraction,
        facets: dict[str, str],
        ctx: MigrationContext,
        template_preview: dict[str, Any],
    ) -> dict[str, Any]:
        migration_props = {
            "legacy_project_id": project.id,
            "legacy_slug": project.slug,
            "legacy_status": project.status,
            "tags": list(project.tags or []),
            "executive_summary": project.executive_summary,
            "context": project.context,
            "core_values": project.core_values(),
            "calendar": {
                "color_id": project.calendar_color_id,
                "settings": project.calendar_settings,
                "sync_enabled": project.calendar_sync_enabled,
            },
            "source": project.source,
            "source_metadata": project.source_metadata,
            "migration": ctx.migration_stamp(),
            "facets": facets,
            "template_summary": template_preview,
            "template_fields": extraction.props,
            "template_notes": extraction.notes,
            "template_confidence": extraction.confidence,
            "template_facets": extraction.facets,
            "legacy_snapshot": {
                "name": project.name,
                "description": project.description,
                "executive_summary": project.executive_summary,
                "tags": list(project.tags or []),
                "status": project.status,
            },
        }
        props = deep_merge(deep_merge(template.default_props, extraction.props), migration_props)
        return {
            "name": project.name,
            "description": project.description,
            "type_key": template.type_key,
            "state_key": project_state(project.status),
            "props": props,
            "facet_context": facets["context"],
            "facet_scale": facets["scale"],
            "facet_stage": facets["stage"],
            "start_at": project.start_date,
            "end_at": project.end_date,
            "created_by": ctx.initiated_by,
        }

    async def _create_context_document(
        self,
        project: LegacyProject,
        onto_project_id: str,
        markdown: str | None,
        core_values: dict[str, str | None],
        ctx: MigrationContext,
    ) -> str | None:
        if not markdown:
            return None

        try:
            document_id = await self._ontology.insert_entity(
                "onto_documents",
                {
                    "project_id": onto_project_id,
                    "title": f"{project.name} - Legacy Context",
                    "type_key": CONTEXT_DOCUMENT_TYPE,
                    "state_key": "published",
                    "props": {
                        "source": "legacy_project_context",
                        "body_markdown": markdown,
                        "legacy_project_id": project.id,
                        "migration_run_id": str(ctx.run_id),
                        "migrated_at": ctx.now.isoformat(),
                        "core_values": core_values,
                    },
                    "created_by": ctx.initiated_by,
                },
            )
            await self._ontology.insert_edges(
                [Edge("project", onto_project_id, "has_document", "document", document_id)]
            )
        except StoreWriteError as e:
            logger.error("Failed to persist context document for project %s: %s", project.id, e)
            return None
        return document_id


__all__ = [
    "ProjectMigrator",
    "ProjectAnalysis",
    "ProjectResult",
    "heuristic_type_key",
    "project_facets",
    "project_state",
    "LEGACY_TABLE",
    "ONTO_TABLE",
    "CONTEXT_DOCUMENT_TYPE",
]
