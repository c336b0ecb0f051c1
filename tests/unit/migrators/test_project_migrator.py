"""
Unit tests for ProjectMigrator.

Tests cover:
- Live migration: project row, ledger row, context document and edge
- Idempotence through the mapping ledger
- Dry runs writing nothing
- Classifier degradation to the heuristic template
- Extraction, validation and store failures as per-project results
"""

import pytest

from ontomigrate.migrators import (
    ProjectMigrator,
    heuristic_type_key,
    project_facets,
    project_state,
)
from ontomigrate.migrators.base import MigrationContext
from ontomigrate.models import EntityStatus, LegacyProject
from ontomigrate.repositories import (
    InMemoryLegacyMappingRepository,
    InMemoryLegacySource,
    InMemoryOntologyStore,
    InMemoryTemplateRepository,
)
from ontomigrate.templates import TemplateClassifier
from ontomigrate.templates.classifier import EXTRACTION_OPERATION, SUGGESTION_OPERATION
from tests.fixtures import PROJECT_ID, FakeLLMClient

MEMOIR_SUGGESTION = {
    "type_key": "writer.memoir",
    "name": "Memoir",
    "match_score": 60,
    "properties": {"era": {"type": "string"}},
    "workflow_states": [{"key": "outline"}, {"key": "draft"}],
}


@pytest.fixture
def migrator(
    legacy: InMemoryLegacySource,
    ontology: InMemoryOntologyStore,
    mappings: InMemoryLegacyMappingRepository,
    classifier: TemplateClassifier,
) -> ProjectMigrator:
    return ProjectMigrator(legacy, ontology, mappings, classifier, enable_tracing=False)


def _migrator_with(
    llm: FakeLLMClient,
    legacy: InMemoryLegacySource,
    ontology: InMemoryOntologyStore,
    mappings: InMemoryLegacyMappingRepository,
    template_repo: InMemoryTemplateRepository,
) -> ProjectMigrator:
    classifier = TemplateClassifier(template_repo, llm, enable_tracing=False)
    return ProjectMigrator(legacy, ontology, mappings, classifier, enable_tracing=False)


class TestProjectHelpers:
    """Tests for the status, facet and heuristic helpers."""

    @pytest.mark.parametrize(
        ("status", "state"),
        [
            ("active", "execution"),
            ("completed", "complete"),
            ("planning", "planning"),
            ("paused", "discovery"),
            (None, "discovery"),
        ],
    )
    def test_project_state(self, status: str | None, state: str) -> None:
        assert project_state(status) == state

    @pytest.mark.parametrize(
        ("tags", "context", "expected"),
        [
            (["Write daily"], None, "project.writer.general"),
            (["mobile app"], None, "project.developer.app"),
            ([], "Work for a client", "project.coach.client"),
            ([], None, "project.migration.generic"),
        ],
    )
    def test_heuristic_type_key(
        self, tags: list[str], context: str | None, expected: str
    ) -> None:
        project = LegacyProject(id="p", name="P", tags=tags, context=context)
        assert heuristic_type_key(project) == expected

    def test_facets(self) -> None:
        project = LegacyProject(id="p", name="P", status="active", context="Day job work")

        assert project_facets(project, 3) == {
            "context": "commercial",
            "scale": "small",
            "stage": "execution",
        }
        assert project_facets(project, 6)["scale"] == "medium"
        assert project_facets(project, 21)["scale"] == "large"
        assert project_facets(project, 51)["scale"] == "epic"


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_counts_related_rows(
        self, migrator: ProjectMigrator, project: LegacyProject
    ) -> None:
        analysis = await migrator.analyze(project)

        assert analysis.phase_count == 2
        assert analysis.task_count == 5
        assert analysis.calendar_count == 1
        assert analysis.existing_onto_project_id is None
        assert analysis.calendar_sync_enabled
        assert analysis.to_dict()["project_name"] == "Novel Draft"


class TestMigrateLive:
    """Tests for live project migration."""

    @pytest.mark.asyncio
    async def test_creates_project_ledger_row_and_context_document(
        self,
        migrator: ProjectMigrator,
        project: LegacyProject,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        live_ctx: MigrationContext,
    ) -> None:
        result = await migrator.migrate(project, live_ctx)

        assert result.entity.status == EntityStatus.COMPLETED
        assert result.type_key == "project.writer.book"
        assert result.entity.message == "Migrated as project.writer.book"

        [row] = await ontology.all_rows("onto_projects")
        assert row["id"] == result.onto_project_id
        assert row["type_key"] == "project.writer.book"
        assert row["state_key"] == "execution"
        assert row["created_by"] == "tester"
        assert row["facet_context"] == "personal"
        assert row["props"]["genre"] == "fiction"
        assert row["props"]["visibility"] == "private"
        assert row["props"]["legacy_project_id"] == PROJECT_ID
        assert row["props"]["migration"]["run_id"] == str(live_ctx.run_id)

        mapping = await mappings.get("projects", PROJECT_ID)
        assert mapping is not None
        assert mapping.onto_id == result.onto_project_id
        assert mapping.metadata["type_key"] == "project.writer.book"

        [document] = await ontology.all_rows("onto_documents")
        assert result.context_document_id == document["id"]
        assert document["props"]["body_markdown"].startswith("Personal writing project")
        [edge] = await ontology.all_edges()
        assert (edge.rel, edge.src_id, edge.dst_id) == (
            "has_document",
            result.onto_project_id,
            document["id"],
        )

    @pytest.mark.asyncio
    async def test_already_migrated_project_writes_nothing(
        self,
        migrator: ProjectMigrator,
        project: LegacyProject,
        ontology: InMemoryOntologyStore,
        fake_llm: FakeLLMClient,
        live_ctx: MigrationContext,
    ) -> None:
        first = await migrator.migrate(project, live_ctx)
        rows_before = await ontology.count()
        calls_before = len(fake_llm.calls)

        second = await migrator.migrate(project, live_ctx)

        assert second.entity.status == EntityStatus.COMPLETED
        assert second.entity.message == "Project already migrated"
        assert second.onto_project_id == first.onto_project_id
        assert await ontology.count() == rows_before
        assert len(fake_llm.calls) == calls_before

    @pytest.mark.asyncio
    async def test_project_without_context_has_no_document(
        self,
        migrator: ProjectMigrator,
        ontology: InMemoryOntologyStore,
        live_ctx: MigrationContext,
    ) -> None:
        result = await migrator.migrate(
            LegacyProject(id="p-bare", name="Bare", status="planning", tags=["writing"]),
            live_ctx,
        )

        assert result.entity.status == EntityStatus.COMPLETED
        assert result.context_document_id is None
        assert await ontology.count("onto_documents") == 0


class TestMigrateDryRun:
    """Tests for dry-run project migration."""

    @pytest.mark.asyncio
    async def test_preview_writes_nothing(
        self,
        migrator: ProjectMigrator,
        project: LegacyProject,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        fake_llm: FakeLLMClient,
        dry_ctx: MigrationContext,
    ) -> None:
        result = await migrator.migrate(project, dry_ctx)

        assert result.entity.status == EntityStatus.PENDING
        assert result.entity.message == "Dry-run: would create project as project.writer.book"
        assert result.onto_project_id is None
        assert result.template_preview is not None
        assert result.template_preview["extraction"]["confidence"] == 0.9
        assert len(fake_llm.calls_for(EXTRACTION_OPERATION)) == 1
        assert await ontology.count() == 0
        assert await mappings.count() == 0

    @pytest.mark.asyncio
    async def test_unmatched_project_needs_review(
        self,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        template_repo: InMemoryTemplateRepository,
        project: LegacyProject,
        dry_ctx: MigrationContext,
    ) -> None:
        llm = FakeLLMClient(suggestion=MEMOIR_SUGGESTION)
        migrator = _migrator_with(llm, legacy, ontology, mappings, template_repo)

        result = await migrator.migrate(project, dry_ctx)

        assert result.entity.status == EntityStatus.PENDING_REVIEW
        assert result.entity.message == "Dry-run: would create template project.writer.memoir"
        assert result.type_key == "project.writer.memoir"
        assert await template_repo.get_by_type_key("project.writer.memoir") is None
        assert await ontology.count() == 0


class TestMigrateFailures:
    """Tests for per-project failure outcomes."""

    @pytest.mark.asyncio
    async def test_classifier_outage_uses_heuristic_template(
        self,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        template_repo: InMemoryTemplateRepository,
        project: LegacyProject,
        live_ctx: MigrationContext,
    ) -> None:
        llm = FakeLLMClient(failing={SUGGESTION_OPERATION})
        migrator = _migrator_with(llm, legacy, ontology, mappings, template_repo)
        essays = LegacyProject(id="p-essays", name="Essays", tags=["Write weekly"])

        result = await migrator.migrate(essays, live_ctx)

        assert result.entity.status == EntityStatus.COMPLETED
        assert result.type_key == "project.writer.general"

    @pytest.mark.asyncio
    async def test_classifier_outage_without_fallback_fails(
        self,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        template_repo: InMemoryTemplateRepository,
        live_ctx: MigrationContext,
    ) -> None:
        llm = FakeLLMClient(failing={SUGGESTION_OPERATION})
        migrator = _migrator_with(llm, legacy, ontology, mappings, template_repo)

        result = await migrator.migrate(
            LegacyProject(id="p-app", name="App", tags=["app"]), live_ctx
        )

        assert result.entity.status == EntityStatus.FAILED
        assert result.entity.message == "Template classification failed"
        assert result.entity.error_message
        assert await ontology.count() == 0
        assert await mappings.count() == 0

    @pytest.mark.asyncio
    async def test_extraction_failure(
        self,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        template_repo: InMemoryTemplateRepository,
        project: LegacyProject,
        live_ctx: MigrationContext,
    ) -> None:
        llm = FakeLLMClient(scores={"project.writer.book": 90}, failing={EXTRACTION_OPERATION})
        migrator = _migrator_with(llm, legacy, ontology, mappings, template_repo)

        result = await migrator.migrate(project, live_ctx)

        assert result.entity.status == EntityStatus.FAILED
        assert result.entity.message == "Property extraction failed"
        assert await ontology.count() == 0

    @pytest.mark.asyncio
    async def test_invalid_props_fail_validation(
        self,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        template_repo: InMemoryTemplateRepository,
        project: LegacyProject,
        live_ctx: MigrationContext,
    ) -> None:
        llm = FakeLLMClient(
            scores={"project.writer.book": 90},
            extraction={"props": {"word_count_target": "lots"}, "confidence": 0.8},
        )
        migrator = _migrator_with(llm, legacy, ontology, mappings, template_repo)

        result = await migrator.migrate(project, live_ctx)

        assert result.entity.status == EntityStatus.VALIDATION_FAILED
        assert result.entity.failed
        assert result.entity.error_message == (
            "Type mismatch for word_count_target: expected integer, got string"
        )
        assert await ontology.count() == 0
        assert await mappings.count() == 0

    @pytest.mark.asyncio
    async def test_project_write_failure(
        self,
        migrator: ProjectMigrator,
        project: LegacyProject,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        live_ctx: MigrationContext,
    ) -> None:
        ontology.fail_inserts_into("onto_projects")

        result = await migrator.migrate(project, live_ctx)

        assert result.entity.status == EntityStatus.FAILED
        assert result.entity.message == "Failed to write ontology project"
        assert await mappings.count() == 0

    @pytest.mark.asyncio
    async def test_document_failure_keeps_project(
        self,
        migrator: ProjectMigrator,
        project: LegacyProject,
        ontology: InMemoryOntologyStore,
        live_ctx: MigrationContext,
    ) -> None:
        ontology.fail_inserts_into("onto_documents")

        result = await migrator.migrate(project, live_ctx)

        assert result.entity.status == EntityStatus.COMPLETED
        assert result.context_document_id is None
        assert await ontology.count("onto_projects") == 1
