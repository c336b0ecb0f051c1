"""
Shared pytest fixtures for the ontomigrate tests.

This module provides:
- LLM fixtures (fake_llm)
- Template fixtures (seeded InMemoryTemplateRepository)
- Legacy fixtures (seeded InMemoryLegacySource and its project)
- In-memory store fixtures (mapping ledger, migration log, ontology store)
- Classifier, context and orchestrator fixtures wired to the above
- SQLite fixtures (aiosqlite connection, ledger and log repositories)
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

import aiosqlite
import pytest
import pytest_asyncio

from ontomigrate.migrators.base import MigrationContext
from ontomigrate.models import LegacyProject
from ontomigrate.orchestrator import MigrationOrchestrator
from ontomigrate.repositories import (
    InMemoryLegacyMappingRepository,
    InMemoryLegacySource,
    InMemoryMigrationLogRepository,
    InMemoryOntologyStore,
    InMemoryTemplateRepository,
    SQLiteLegacyMappingRepository,
    SQLiteMigrationLogRepository,
)
from ontomigrate.templates import ClassifierConfig, TemplateClassifier
from tests.fixtures import (
    PROJECT_ID,
    FakeLLMClient,
    build_templates,
    make_context,
    seed_legacy,
)

# ============================================================================
# LLM and templates
# ============================================================================


@pytest.fixture
def fake_llm() -> FakeLLMClient:
    """LLM that matches project.writer.book at 85 and returns empty props."""
    return FakeLLMClient(scores={"project.writer.book": 85})


@pytest.fixture
def template_repo() -> InMemoryTemplateRepository:
    return InMemoryTemplateRepository(build_templates(), enable_tracing=False)


# ============================================================================
# Legacy data
# ============================================================================


@pytest.fixture
def legacy() -> InMemoryLegacySource:
    source = InMemoryLegacySource(enable_tracing=False)
    seed_legacy(source)
    return source


@pytest_asyncio.fixture
async def project(legacy: InMemoryLegacySource) -> LegacyProject:
    found = await legacy.get_project(PROJECT_ID)
    assert found is not None
    return found


# ============================================================================
# In-memory stores
# ============================================================================


@pytest.fixture
def ontology(legacy: InMemoryLegacySource) -> InMemoryOntologyStore:
    return InMemoryOntologyStore(legacy, enable_tracing=False)


@pytest.fixture
def mappings() -> InMemoryLegacyMappingRepository:
    return InMemoryLegacyMappingRepository(enable_tracing=False)


@pytest.fixture
def logs() -> InMemoryMigrationLogRepository:
    return InMemoryMigrationLogRepository(enable_tracing=False)


# ============================================================================
# Classifier, contexts and orchestrator
# ============================================================================


@pytest.fixture
def classifier(
    template_repo: InMemoryTemplateRepository,
    fake_llm: FakeLLMClient,
) -> TemplateClassifier:
    return TemplateClassifier(template_repo, fake_llm, ClassifierConfig(), enable_tracing=False)


@pytest.fixture
def live_ctx() -> MigrationContext:
    return make_context(initiated_by="tester")


@pytest.fixture
def dry_ctx() -> MigrationContext:
    return make_context(dry_run=True, initiated_by="tester")


@pytest.fixture
def orchestrator(
    legacy: InMemoryLegacySource,
    ontology: InMemoryOntologyStore,
    mappings: InMemoryLegacyMappingRepository,
    logs: InMemoryMigrationLogRepository,
    template_repo: InMemoryTemplateRepository,
    fake_llm: FakeLLMClient,
) -> MigrationOrchestrator:
    return MigrationOrchestrator(
        legacy,
        ontology,
        mappings,
        logs,
        template_repo,
        fake_llm,
        enable_tracing=False,
    )


# ============================================================================
# SQLite
# ============================================================================


@pytest_asyncio.fixture
async def sqlite_connection() -> AsyncGenerator[aiosqlite.Connection, None]:
    """In-memory SQLite connection, closed after the test."""
    async with aiosqlite.connect(":memory:") as db:
        yield db


@pytest_asyncio.fixture
async def sqlite_mapping_repo(
    sqlite_connection: aiosqlite.Connection,
) -> SQLiteLegacyMappingRepository:
    repo = SQLiteLegacyMappingRepository(sqlite_connection, enable_tracing=False)
    await repo.initialize()
    return repo


@pytest_asyncio.fixture
async def sqlite_log_repo(
    sqlite_connection: aiosqlite.Connection,
) -> SQLiteMigrationLogRepository:
    repo = SQLiteMigrationLogRepository(sqlite_connection, enable_tracing=False)
    await repo.initialize()
    return repo
