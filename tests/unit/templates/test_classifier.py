"""
Unit tests for TemplateClassifier.

Tests cover:
- Discovery scoring, abstract penalty and score caching
- Fallback score on scoring failures
- ensure(): match threshold, PlanOnly in dry runs, Created in live runs
- Suggestion normalization and parent selection
- Property extraction and plan synthesis
"""

import pytest

from ontomigrate.exceptions import LLMCallError
from ontomigrate.llm import LLMProfile
from ontomigrate.repositories import InMemoryTemplateRepository
from ontomigrate.templates import (
    ClassifierConfig,
    Created,
    Extraction,
    PlanOnly,
    Reused,
    TemplateClassifier,
)
from ontomigrate.templates.classifier import (
    EXTRACTION_OPERATION,
    PLAN_SYNTHESIS_OPERATION,
    SCORING_OPERATION,
    SUGGESTION_OPERATION,
)
from tests.fixtures import FakeLLMClient

NARRATIVE = "Project Name: Novel Draft\n\nStatus: active\n\nTags: writing, fiction"

MEMOIR_SUGGESTION = {
    "type_key": "writer.memoir",
    "name": "Memoir",
    "description": "Personal memoir project",
    "match_score": 60,
    "rationale": "No memoir template exists",
    "properties": {"era": {"type": "string", "required": True}},
    "workflow_states": [{"key": "outline"}, {"key": "draft"}, {"key": "revise"}],
    "benefits": ["Tracks eras"],
}


def _classifier(
    template_repo: InMemoryTemplateRepository,
    llm: FakeLLMClient,
    config: ClassifierConfig | None = None,
) -> TemplateClassifier:
    return TemplateClassifier(template_repo, llm, config, enable_tracing=False)


class TestClassifierConfig:
    def test_defaults(self) -> None:
        config = ClassifierConfig()

        assert config.match_threshold == 0.70
        assert config.fallback_score == 0.3
        assert config.generic_fallback("project") == "project.migration.generic"
        assert config.generic_fallback("plan") == "plan.phase.project"
        assert config.generic_fallback("goal") == "goal.base"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"match_threshold": 1.5},
            {"fallback_score": -0.1},
            {"cache_ttl_seconds": 0},
            {"max_templates_to_score": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            ClassifierConfig(**kwargs)


class TestDiscovery:
    """Tests for discover() and score()."""

    @pytest.mark.asyncio
    async def test_scores_sorted_best_first(
        self, classifier: TemplateClassifier, fake_llm: FakeLLMClient
    ) -> None:
        scored = await classifier.discover("project", NARRATIVE)

        assert scored[0].template.type_key == "project.writer.book"
        assert scored[0].score == pytest.approx(0.85)
        assert len(scored) == 4
        assert all(call["profile"] == LLMProfile.FAST for call in fake_llm.calls)

    @pytest.mark.asyncio
    async def test_abstract_templates_penalized(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(scores={"project.base": 100})
        scored = await _classifier(template_repo, llm).discover("project", NARRATIVE)

        base = next(item for item in scored if item.template.type_key == "project.base")
        assert base.score == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_scores_are_cached(
        self, classifier: TemplateClassifier, fake_llm: FakeLLMClient
    ) -> None:
        """A second discovery over the same narrative makes no scoring calls."""
        await classifier.discover("project", NARRATIVE)
        first = len(fake_llm.calls_for(SCORING_OPERATION))
        await classifier.discover("project", NARRATIVE)

        assert len(fake_llm.calls_for(SCORING_OPERATION)) == first
        assert classifier.cache_stats().hits == first

    @pytest.mark.asyncio
    async def test_clear_cache_forces_rescoring(
        self, classifier: TemplateClassifier, fake_llm: FakeLLMClient
    ) -> None:
        await classifier.discover("task", NARRATIVE)
        await classifier.clear_cache()
        await classifier.discover("task", NARRATIVE)

        assert len(fake_llm.calls_for(SCORING_OPERATION)) == 4
        assert classifier.cache_stats().entries == 2

    @pytest.mark.asyncio
    async def test_failed_scoring_uses_fallback_uncached(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        """Provider failures score 0.3 and are retried on the next call."""
        llm = FakeLLMClient(failing={SCORING_OPERATION})
        classifier = _classifier(template_repo, llm)

        scored = await classifier.discover("task", NARRATIVE)

        assert {item.score for item in scored} == {0.3}
        assert classifier.cache_stats().entries == 0

    @pytest.mark.asyncio
    async def test_max_templates_to_score(self, template_repo: InMemoryTemplateRepository) -> None:
        llm = FakeLLMClient()
        classifier = _classifier(template_repo, llm, ClassifierConfig(max_templates_to_score=2))

        scored = await classifier.discover("project", NARRATIVE)

        assert len(scored) == 2
        assert len(llm.calls_for(SCORING_OPERATION)) == 2


class TestEnsure:
    """Tests for ensure()."""

    @pytest.mark.asyncio
    async def test_reuses_matching_template(self, classifier: TemplateClassifier) -> None:
        outcome = await classifier.ensure("project", NARRATIVE, dry_run=False)

        assert isinstance(outcome, Reused)
        assert outcome.kind == "reused"
        assert outcome.template.type_key == "project.writer.book"
        assert outcome.template.inheritance_chain == ["project.base", "project.writer.book"]
        assert outcome.score == pytest.approx(0.85)

    @pytest.mark.asyncio
    async def test_threshold_is_inclusive(self, template_repo: InMemoryTemplateRepository) -> None:
        """A score of exactly 70 reuses the template."""
        llm = FakeLLMClient(scores={"project.writer.book": 70})

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

        assert isinstance(outcome, Reused)
        assert llm.calls_for(SUGGESTION_OPERATION) == []

    @pytest.mark.asyncio
    async def test_below_threshold_requests_suggestion(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        """69.9 falls below the threshold and asks for a new template."""
        llm = FakeLLMClient(scores={"project.writer.book": 69.9}, suggestion=MEMOIR_SUGGESTION)

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

        assert isinstance(outcome, PlanOnly)
        assert len(llm.calls_for(SUGGESTION_OPERATION)) == 1

    @pytest.mark.asyncio
    async def test_abstract_match_not_reused(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        """An abstract template above the threshold is skipped."""
        llm = FakeLLMClient(scores={"project.base": 100}, suggestion=MEMOIR_SUGGESTION)

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

        assert isinstance(outcome, PlanOnly)

    @pytest.mark.asyncio
    async def test_dry_run_returns_plan_only_without_storing(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(suggestion=MEMOIR_SUGGESTION)
        before = await template_repo.count()

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

        assert isinstance(outcome, PlanOnly)
        assert outcome.plan.type_key == "project.writer.memoir"
        assert outcome.plan.match_score == pytest.approx(0.6)
        assert await template_repo.count() == before

    @pytest.mark.asyncio
    async def test_live_run_creates_template(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        """Live runs store the suggestion under the generic fallback parent."""
        llm = FakeLLMClient(suggestion=MEMOIR_SUGGESTION)

        outcome = await _classifier(template_repo, llm).ensure(
            "project", NARRATIVE, dry_run=False, created_by="tester"
        )

        assert isinstance(outcome, Created)
        assert outcome.template.inheritance_chain == [
            "project.base",
            "project.migration.generic",
            "project.writer.memoir",
        ]
        assert outcome.template.required == ["era"]
        assert outcome.template.fsm is not None
        assert outcome.template.fsm["initial"] == "outline"

        stored = await template_repo.get_by_type_key("project.writer.memoir", "project")
        assert stored is not None
        assert stored.metadata["created_by_migration"] is True
        assert stored.created_by == "tester"
        assert stored.status == "active"

    @pytest.mark.asyncio
    async def test_suggested_parent_preferred(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(
            suggestion={**MEMOIR_SUGGESTION, "parent_type_key": "writer.general"}
        )

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=False)

        assert isinstance(outcome, Created)
        assert outcome.template.inheritance_chain[-2] == "project.writer.general"

    @pytest.mark.asyncio
    async def test_existing_suggested_key_is_reused(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(
            suggestion={**MEMOIR_SUGGESTION, "type_key": "project.writer.general"}
        )

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=False)

        assert isinstance(outcome, Reused)
        assert outcome.template.type_key == "project.writer.general"
        assert outcome.score == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_invalid_suggested_key_is_rebuilt(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(suggestion={**MEMOIR_SUGGESTION, "type_key": "memoir"})

        outcome = await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

        assert isinstance(outcome, PlanOnly)
        assert outcome.plan.type_key == "project.migration.memoir"

    @pytest.mark.asyncio
    async def test_missing_suggestion_raises(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient()

        with pytest.raises(LLMCallError, match="empty response"):
            await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)

    @pytest.mark.asyncio
    async def test_provider_failure_wrapped(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(failing={SUGGESTION_OPERATION})

        with pytest.raises(LLMCallError) as exc_info:
            await _classifier(template_repo, llm).ensure("project", NARRATIVE, dry_run=True)
        assert exc_info.value.operation == SUGGESTION_OPERATION


class TestExtraction:
    """Tests for extract() and validate()."""

    @pytest.mark.asyncio
    async def test_extracts_props(self, template_repo: InMemoryTemplateRepository) -> None:
        llm = FakeLLMClient(
            extraction={
                "props": {"genre": "literary", "word_count_target": 80000},
                "facets": {"scale": "medium"},
                "confidence": 1.4,
                "notes": "from context",
            }
        )
        classifier = _classifier(template_repo, llm)
        template = await classifier.resolver.resolve("project.writer.book", "project")

        extraction = await classifier.extract(template, NARRATIVE)

        assert extraction.props == {"genre": "literary", "word_count_target": 80000}
        assert extraction.facets == {"scale": "medium"}
        assert extraction.confidence == 1.0
        assert "word_count_target: integer" in llm.calls_for(EXTRACTION_OPERATION)[0][
            "user_prompt"
        ]
        assert classifier.validate(extraction, template).valid

    @pytest.mark.asyncio
    async def test_validate_reports_type_errors(self, classifier: TemplateClassifier) -> None:
        template = await classifier.resolver.resolve("project.writer.book", "project")

        result = classifier.validate(Extraction(props={"word_count_target": "lots"}), template)

        assert not result.valid
        assert result.errors == [
            "Type mismatch for word_count_target: expected integer, got string"
        ]

    @pytest.mark.asyncio
    async def test_extraction_failure_raises(
        self, template_repo: InMemoryTemplateRepository
    ) -> None:
        llm = FakeLLMClient(failing={EXTRACTION_OPERATION})
        classifier = _classifier(template_repo, llm)
        template = await classifier.resolver.resolve("task.base", "task")

        with pytest.raises(LLMCallError):
            await classifier.extract(template, NARRATIVE)


class TestPlanSynthesis:
    """Tests for synthesize_plans()."""

    PHASES = [{"id": "phase-draft", "name": "Drafting", "order": 1}]

    @pytest.mark.asyncio
    async def test_returns_parsed_plans(self, template_repo: InMemoryTemplateRepository) -> None:
        llm = FakeLLMClient(
            plans={
                "plans": [
                    {"legacy_phase_id": "phase-draft", "name": "Draft", "order": 1},
                    {"legacy_phase_id": None, "name": "Launch"},
                ],
                "reasoning": "split launch out",
            }
        )

        response = await _classifier(template_repo, llm).synthesize_plans(NARRATIVE, self.PHASES)

        assert response is not None
        assert [plan.name for plan in response.plans] == ["Draft", "Launch"]
        assert response.plans[1].legacy_phase_id is None
        assert response.reasoning == "split launch out"

    @pytest.mark.asyncio
    async def test_no_phases_skips_call(self, template_repo: InMemoryTemplateRepository) -> None:
        llm = FakeLLMClient()

        assert await _classifier(template_repo, llm).synthesize_plans(NARRATIVE, []) is None
        assert llm.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "llm",
        [
            FakeLLMClient(),
            FakeLLMClient(plans={"plans": []}),
            FakeLLMClient(failing={PLAN_SYNTHESIS_OPERATION}),
        ],
    )
    async def test_unusable_reply_returns_none(
        self, template_repo: InMemoryTemplateRepository, llm: FakeLLMClient
    ) -> None:
        """Empty, plan-less or failed replies fall back to legacy phases."""
        classifier = _classifier(template_repo, llm)
        assert await classifier.synthesize_plans(NARRATIVE, self.PHASES) is None


class TestResolveOrNone:
    @pytest.mark.asyncio
    async def test_resolve_or_none(self, classifier: TemplateClassifier) -> None:
        assert await classifier.resolve_or_none("task.recurring", "task") is None
        resolved = await classifier.resolve_or_none("task.deep_work", "task")
        assert resolved is not None
        assert resolved.default_props == {"effort": "focused"}
