"""
Unit tests for the tracer implementations and the spans emitted by a run.

Tests for:
- Tracer protocol conformance of the bundled tracers
- NullTracer, MockTracer and OpenTelemetryTracer behavior
- create_tracer() factory
- Span names and attributes recorded through an orchestrator run
"""

from __future__ import annotations

import asyncio

import pytest

from ontomigrate.observability import (
    ATTR_CANDIDATE_COUNT,
    ATTR_CONCURRENCY,
    ATTR_DRY_RUN,
    ATTR_ENTITY_STATUS,
    ATTR_LEGACY_ID,
    ATTR_RUN_ID,
    ATTR_RUN_STATUS,
    ATTR_TYPE_KEY,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from ontomigrate.models import MigrationOptions
from ontomigrate.orchestrator import MigrationOrchestrator
from ontomigrate.repositories import (
    InMemoryLegacyMappingRepository,
    InMemoryLegacySource,
    InMemoryMigrationLogRepository,
    InMemoryOntologyStore,
    InMemoryTemplateRepository,
)
from tests.fixtures import PROJECT_ID, FakeLLMClient


class TestTracerProtocol:
    """Tests for Tracer protocol conformance."""

    @pytest.mark.parametrize(
        "tracer",
        [NullTracer(), MockTracer(), OpenTelemetryTracer(__name__)],
        ids=["null", "mock", "otel"],
    )
    def test_bundled_tracers_implement_protocol(self, tracer: Tracer) -> None:
        assert isinstance(tracer, Tracer)


class TestNullTracer:
    def test_span_yields_none(self) -> None:
        tracer = NullTracer()

        with tracer.span("ontomigrate.test", {"key": "value"}) as span:
            assert span is None

        assert not tracer.enabled


class TestMockTracer:
    """Tests for MockTracer."""

    def test_records_names_and_attributes(self) -> None:
        tracer = MockTracer()

        with tracer.span("first", {"key": "value"}) as span:
            span.set_attribute("count", 3)
        with tracer.span("second"):
            pass

        assert tracer.span_names == ["first", "second"]
        first, second = tracer.spans
        assert first.attributes == {"key": "value", "count": 3}
        assert second.attributes == {}
        assert tracer.enabled

    def test_nesting(self) -> None:
        tracer = MockTracer()

        with tracer.span("outer"):
            with tracer.span("middle"):
                with tracer.span("inner"):
                    pass
        with tracer.span("sibling"):
            pass

        [inner] = tracer.find("inner")
        assert inner.ancestors == ["middle", "outer"]
        assert tracer.find("sibling")[0].parent is None

    @pytest.mark.asyncio
    async def test_concurrent_tasks_nest_under_their_own_parent(self) -> None:
        tracer = MockTracer()

        async def child(name: str) -> None:
            with tracer.span(name):
                await asyncio.sleep(0)
                with tracer.span(f"{name}.inner"):
                    await asyncio.sleep(0)

        with tracer.span("root"):
            await asyncio.gather(child("a"), child("b"))

        assert tracer.find("a.inner")[0].ancestors == ["a", "root"]
        assert tracer.find("b.inner")[0].ancestors == ["b", "root"]

    def test_clear(self) -> None:
        tracer = MockTracer()
        with tracer.span("first"):
            pass

        tracer.clear()

        assert tracer.spans == []


class TestOpenTelemetryTracer:
    def test_span_yields_span_object(self) -> None:
        tracer = OpenTelemetryTracer(__name__)

        with tracer.span("ontomigrate.test", {"key": "value"}) as span:
            assert span is not None

        assert tracer.enabled


class TestCreateTracer:
    def test_enabled_returns_opentelemetry_tracer(self) -> None:
        assert isinstance(create_tracer(__name__, enable_tracing=True), OpenTelemetryTracer)

    def test_disabled_returns_null_tracer(self) -> None:
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)


class TestRunSpans:
    """Spans recorded when a MockTracer is injected into the orchestrator."""

    @pytest.fixture
    def tracer(self) -> MockTracer:
        return MockTracer()

    @pytest.fixture
    def traced_orchestrator(
        self,
        tracer: MockTracer,
        legacy: InMemoryLegacySource,
        ontology: InMemoryOntologyStore,
        mappings: InMemoryLegacyMappingRepository,
        logs: InMemoryMigrationLogRepository,
        template_repo: InMemoryTemplateRepository,
        fake_llm: FakeLLMClient,
    ) -> MigrationOrchestrator:
        return MigrationOrchestrator(
            legacy, ontology, mappings, logs, template_repo, fake_llm, tracer=tracer
        )

    @pytest.mark.asyncio
    async def test_start_span_attributes(
        self, tracer: MockTracer, traced_orchestrator: MigrationOrchestrator
    ) -> None:
        result = await traced_orchestrator.start(MigrationOptions(project_concurrency=2))

        [start] = tracer.find("ontomigrate.orchestrator.start")
        assert start.parent is None
        assert start.attributes[ATTR_RUN_ID] == str(result.run_id)
        assert start.attributes[ATTR_DRY_RUN] is False
        assert start.attributes[ATTR_CONCURRENCY] == 2
        assert start.attributes[ATTR_CANDIDATE_COUNT] == 1
        assert start.attributes[ATTR_RUN_STATUS] == "completed"

    @pytest.mark.asyncio
    async def test_migrator_spans_nest_under_start(
        self, tracer: MockTracer, traced_orchestrator: MigrationOrchestrator
    ) -> None:
        await traced_orchestrator.start()

        for name in (
            "ontomigrate.project_migrator.migrate",
            "ontomigrate.phase_migrator.migrate",
            "ontomigrate.task_migrator.migrate",
            "ontomigrate.calendar_migrator.migrate",
        ):
            [span] = tracer.find(name)
            assert span.ancestors[-1] == "ontomigrate.orchestrator.start"

        [ensure] = tracer.find("ontomigrate.classifier.ensure")
        assert ensure.parent is not None
        assert ensure.parent.name == "ontomigrate.project_migrator.migrate"

    @pytest.mark.asyncio
    async def test_project_span_records_outcome(
        self, tracer: MockTracer, traced_orchestrator: MigrationOrchestrator
    ) -> None:
        await traced_orchestrator.start()

        [project] = tracer.find("ontomigrate.project_migrator.migrate")
        assert project.attributes[ATTR_LEGACY_ID] == PROJECT_ID
        assert project.attributes[ATTR_ENTITY_STATUS] == "completed"
        assert project.attributes[ATTR_TYPE_KEY] == "project.writer.book"

    @pytest.mark.asyncio
    async def test_disabled_tracing_records_nothing(
        self, tracer: MockTracer, orchestrator: MigrationOrchestrator
    ) -> None:
        await orchestrator.start()

        assert tracer.spans == []
