"""
LLM-assisted template classification.

The classifier obtains a template for a narrative in three phases:

1. Discovery: list active templates of the scope and score each one
   against the narrative (0 to 1). Scores are cached; a failed scoring
   call degrades to a fixed low score instead of failing.
2. Suggestion: when no template reaches the match threshold, ask the
   model for a new template. Live runs store it; dry runs return it
   unpersisted.
3. Extraction: fill the chosen template's properties from the narrative.

Suggestion and extraction failures raise LLMCallError; callers fail the
one entity being migrated.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ontomigrate.exceptions import (
    LLMCallError,
    OntologyMigrationError,
    TemplateError,
    TemplateNotFoundError,
)
from ontomigrate.llm.client import LLMClient, LLMProfile, ResponseValidation
from ontomigrate.observability import Tracer, create_tracer
from ontomigrate.observability.attributes import (
    ATTR_LLM_OPERATION,
    ATTR_MATCH_SCORE,
    ATTR_TEMPLATE_OUTCOME,
    ATTR_TEMPLATE_SCOPE,
    ATTR_TYPE_KEY,
)
from ontomigrate.templates.cache import CacheStats, ScoreCache
from ontomigrate.templates.models import (
    Created,
    Extraction,
    PlanOnly,
    PropsValidation,
    ResolvedTemplate,
    Reused,
    ScoredTemplate,
    Template,
    TemplateOutcome,
    TemplateSuggestion,
    WorkflowState,
)
from ontomigrate.templates.props import validate_props
from ontomigrate.templates.resolver import TemplateResolver
from ontomigrate.templates.schemas import (
    ExtractionResponse,
    PlanSynthesisResponse,
    ScoreResponse,
    SuggestionResponse,
    parse_response,
)
from ontomigrate.templates.scopes import (
    base_type_key,
    build_fsm,
    build_schema,
    get_scope_definition,
    normalize_slug,
    normalize_type_key,
)

if TYPE_CHECKING:
    from ontomigrate.repositories.templates import TemplateRepository

logger = logging.getLogger(__name__)

SCORING_OPERATION = "ontology_migration.template_scoring"
SUGGESTION_OPERATION = "ontology_migration.template_suggestion"
EXTRACTION_OPERATION = "ontology_migration.property_extraction"
PLAN_SYNTHESIS_OPERATION = "ontology_migration.plan_synthesis"

GENERIC_FALLBACK_TYPE_KEYS: dict[str, str] = {
    "project": "project.migration.generic",
    "task": "task.base",
    "plan": "plan.phase.project",
}

_SCORING_SYSTEM_PROMPT = "You score template match quality objectively and consistently."

_EXTRACTION_SYSTEM_PROMPT = """You extract template-specific properties from legacy data narratives.

Extract every property value the narrative mentions.

Rules:
1. Review the template schema and extract a value for each property it defines.
2. Infer types: "$80k budget" becomes budget: 80000, "React + TypeScript" becomes
   tech_stack: ["React", "TypeScript"], "June 20, 2026" becomes "2026-06-20".
3. Infer missing values from context when reasonable; leave truly unknown values out.
4. Always include facets (context, scale, stage).
5. Return nested objects when the schema defines objects.

Return JSON: {"props": {...}, "facets": {...}, "confidence": 0.0-1.0, "notes": "..."}"""

_PLAN_SYNTHESIS_SYSTEM_PROMPT = """\
You reorganize the phases of a legacy project into ontology plans.

You may keep, merge, split or reorder phases. A plan that continues a legacy phase
keeps its legacy_phase_id; a plan with no legacy phase uses null.

Return JSON:
{"plans": [{"legacy_phase_id": "...|null", "name": "...", "summary": "...",
  "type_key": "plan.family[.variant]", "state_key": "planning|execution|complete",
  "start_date": "YYYY-MM-DD|null", "end_date": "YYYY-MM-DD|null", "order": 1,
  "confidence": 0.0-1.0}],
 "reasoning": "...", "confidence": 0.0-1.0}"""


@dataclass(frozen=True)
class ClassifierConfig:
    """
    Configuration for TemplateClassifier.

    Attributes:
        match_threshold: Minimum score (inclusive) to reuse a template.
        fallback_score: Score used when a scoring call fails.
        cache_ttl_seconds: Lifetime of cached scores.
        max_templates_to_score: Templates scored per discovery.
        abstract_penalty: Multiplier applied to abstract templates' scores.
        generic_fallback_type_keys: Last-resort parent type key per scope.
    """

    match_threshold: float = 0.70
    fallback_score: float = 0.3
    cache_ttl_seconds: float = 3600.0
    max_templates_to_score: int = 30
    abstract_penalty: float = 0.8
    generic_fallback_type_keys: dict[str, str] = field(
        default_factory=lambda: dict(GENERIC_FALLBACK_TYPE_KEYS)
    )

    def __post_init__(self) -> None:
        if not 0.0 <= self.match_threshold <= 1.0:
            raise ValueError(f"match_threshold must be within [0, 1], got {self.match_threshold}")
        if not 0.0 <= self.fallback_score <= 1.0:
            raise ValueError(f"fallback_score must be within [0, 1], got {self.fallback_score}")
        if self.cache_ttl_seconds <= 0:
            raise ValueError(f"cache_ttl_seconds must be > 0, got {self.cache_ttl_seconds}")
        if self.max_templates_to_score < 1:
            raise ValueError(
                f"max_templates_to_score must be >= 1, got {self.max_templates_to_score}"
            )

    def generic_fallback(self, scope: str) -> str:
        return self.generic_fallback_type_keys.get(scope, f"{scope}.base")


class TemplateClassifier:
    """
    Discovers, suggests and fills templates for legacy narratives.

    Example:
        >>> classifier = TemplateClassifier(templates, llm)
        >>> outcome = await classifier.ensure("project", narrative, dry_run=True)
        >>> outcome.kind
        'plan_only'
    """

    def __init__(
        self,
        templates: TemplateRepository,
        llm: LLMClient,
        config: ClassifierConfig | None = None,
        resolver: TemplateResolver | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._enable_tracing = self._tracer.enabled
        self._templates = templates
        self._llm = llm
        self.config = config or ClassifierConfig()
        self.resolver = resolver or TemplateResolver(templates, tracer=self._tracer)
        self._cache = ScoreCache(ttl_seconds=self.config.cache_ttl_seconds)

    # =========================================================================
    # Discovery
    # =========================================================================

    async def discover(
        self,
        scope: str,
        narrative: str,
        realm: str | None = None,
        search: str | None = None,
    ) -> list[ScoredTemplate]:
        """
        Score active templates of a scope against a narrative.

        Args:
            scope: Template scope
            narrative: Legacy record narrative
            realm: Optional realm filter
            search: Optional type key / name filter

        Returns:
            Scored templates, best first
        """
        with self._tracer.span(
            "ontomigrate.classifier.discover",
            {ATTR_TEMPLATE_SCOPE: scope},
        ):
            templates = await self._templates.list_active(scope, realm=realm, search=search)
            templates = templates[: self.config.max_templates_to_score]
            scores = await asyncio.gather(
                *(self.score(template, narrative) for template in templates)
            )

            scored = [
                ScoredTemplate(
                    template=template,
                    score=score * self.config.abstract_penalty if template.is_abstract else score,
                )
                for template, score in zip(templates, scores, strict=True)
            ]
            scored.sort(key=lambda item: item.score, reverse=True)
            return scored

    async def score(self, template: Template, narrative: str) -> float:
        """
        Score one template against a narrative, 0 to 1.

        Failed calls return the fallback score, which is not cached.
        """
        cached = await self._cache.get(template.type_key, narrative)
        if cached is not None:
            logger.debug("Score cache hit for %s", template.type_key)
            return cached

        try:
            payload = await self._llm.get_json_response(
                system_prompt=_SCORING_SYSTEM_PROMPT,
                user_prompt=self._scoring_prompt(template, narrative),
                profile=LLMProfile.FAST,
                temperature=0.1,
                validation=ResponseValidation(retry_on_parse_error=True, max_retries=1),
                operation_type=SCORING_OPERATION,
            )
            response = parse_response(ScoreResponse, payload, SCORING_OPERATION)
        except Exception as e:
            logger.warning(
                "Template scoring failed for %s, using fallback score %s: %s",
                template.type_key,
                self.config.fallback_score,
                e,
            )
            return self.config.fallback_score

        score = response.score / 100
        await self._cache.set(template.type_key, narrative, score)
        return score

    def _scoring_prompt(self, template: Template, narrative: str) -> str:
        metadata = template.metadata or {}
        description = metadata.get("description") or metadata.get("summary") or "N/A"
        properties = ", ".join(template.property_names) or "none defined"
        return f"""Score how well this template matches the narrative (0-100):

Template: {template.name} ({template.type_key})
Realm: {metadata.get("realm") or "unknown"}
Description: {description}
Properties: {properties}

Narrative:
{narrative}

Scoring criteria:
- Domain alignment (40%): does the template's realm match the narrative's domain?
- Workflow compatibility (30%): would the template's workflow fit the described work?
- Feature coverage (20%): do the template properties cover the mentioned requirements?
- Customization potential (10%): can the template be adapted if needed?

Return JSON: {{"score": 0-100, "rationale": "brief explanation"}}"""

    # =========================================================================
    # Suggestion
    # =========================================================================

    async def _request(self, **kwargs: Any) -> dict[str, Any] | None:
        """Call the model, reporting provider exceptions as LLMCallError."""
        try:
            return await self._llm.get_json_response(**kwargs)
        except OntologyMigrationError:
            raise
        except Exception as e:
            raise LLMCallError(kwargs["operation_type"], str(e)) from e

    async def suggest(
        self,
        scope: str,
        narrative: str,
        existing: Sequence[ScoredTemplate] = (),
    ) -> TemplateSuggestion:
        """
        Ask the model for a new template.

        Raises:
            LLMCallError: If the reply is empty or malformed
        """
        with self._tracer.span(
            "ontomigrate.classifier.suggest",
            {ATTR_TEMPLATE_SCOPE: scope, ATTR_LLM_OPERATION: SUGGESTION_OPERATION},
        ):
            definition = get_scope_definition(scope)
            payload = await self._request(
                system_prompt=(
                    "You suggest new ontology templates when existing ones don't match well.\n\n"
                    f"Type keys follow {definition.type_key_pattern}, for example "
                    f"{', '.join(definition.examples)}.\n"
                    f"{definition.family_description}.\n\n"
                    "Include a complete property schema with types and descriptions, "
                    "workflow states matching the typical lifecycle, and explain why a "
                    "new template is needed."
                ),
                user_prompt=self._suggestion_prompt(scope, narrative, existing),
                profile=LLMProfile.BALANCED,
                temperature=0.3,
                validation=ResponseValidation(retry_on_parse_error=True, max_retries=2),
                operation_type=SUGGESTION_OPERATION,
            )
            response = parse_response(SuggestionResponse, payload, SUGGESTION_OPERATION)
            return self._normalize_suggestion(scope, response)

    def _suggestion_prompt(
        self,
        scope: str,
        narrative: str,
        existing: Sequence[ScoredTemplate],
    ) -> str:
        listed = "\n".join(
            f"- {item.template.type_key}: {item.template.name} (score: {round(item.score * 100)}%)"
            for item in existing[:10]
        )
        threshold = round(self.config.match_threshold * 100)
        return f"""Suggest a new {scope} template for this narrative.

Existing templates (none match >= {threshold}%):
{listed or "- None found or none match well"}

Narrative:
{narrative}

Return JSON with:
- type_key: dotted key starting with "{scope}."
- name: human-readable, reusable name
- description: what it is for and when to use it
- parent_type_key: optional parent template to inherit from
- match_score: 0-100, estimated score for this narrative
- rationale: why a new template is needed
- properties: object of property name to
  {{"type": "string|number|integer|boolean|array|object", "description": "...",
    "required": true|false, "default": optional, "example": optional}}
- workflow_states: array of {{"key", "label", "description"}}
- benefits: array of strings
- example_props: example property values taken from the narrative"""

    def _normalize_suggestion(
        self,
        scope: str,
        response: SuggestionResponse,
    ) -> TemplateSuggestion:
        type_key = normalize_type_key(response.type_key, scope)
        if type_key is None:
            slug = normalize_slug(response.name) or "generic"
            type_key = normalize_type_key(f"migration.{slug}", scope)
            logger.warning(
                "Suggested type key %r is not valid for scope %s; using %s",
                response.type_key,
                scope,
                type_key,
            )

        parent = response.parent_type_key
        return TemplateSuggestion(
            type_key=type_key or f"{scope}.migration.generic",
            scope=scope,
            name=response.name,
            description=response.description,
            parent_type_key=normalize_type_key(parent, scope) if parent else None,
            match_score=min(max(response.match_score / 100, 0.0), 1.0),
            rationale=response.rationale or "No rationale provided",
            properties={
                key: definition.model_dump() for key, definition in response.properties.items()
            },
            workflow_states=tuple(
                WorkflowState(
                    key=state.key,
                    label=state.label,
                    description=state.description,
                    initial=state.initial,
                    final=state.final,
                )
                for state in response.workflow_states
            ),
            benefits=tuple(response.benefits),
            example_props=dict(response.example_props),
        )

    # =========================================================================
    # Ensure
    # =========================================================================

    async def ensure(
        self,
        scope: str,
        narrative: str,
        *,
        dry_run: bool,
        realm: str | None = None,
        created_by: str | None = None,
    ) -> TemplateOutcome:
        """
        Obtain a template for a narrative.

        Returns Reused when an instantiable template scores at or above the
        match threshold. Otherwise a suggestion is requested: dry runs get
        PlanOnly; live runs store the template and get Created (or Reused
        when the suggested type key already exists).

        Raises:
            LLMCallError: If the suggestion call fails
            TemplateError: If the suggested template cannot be stored
        """
        with self._tracer.span(
            "ontomigrate.classifier.ensure",
            {ATTR_TEMPLATE_SCOPE: scope},
        ) as span:
            scored = await self.discover(scope, narrative, realm=realm)

            for candidate in scored:
                if candidate.score < self.config.match_threshold:
                    break
                resolved = await self._resolve_instantiable(candidate.template.type_key, scope)
                if resolved is not None:
                    if span:
                        span.set_attribute(ATTR_TEMPLATE_OUTCOME, Reused.kind)
                        span.set_attribute(ATTR_MATCH_SCORE, candidate.score)
                    return Reused(template=resolved, score=candidate.score)

            suggestion = await self.suggest(scope, narrative, scored)

            if dry_run:
                if span:
                    span.set_attribute(ATTR_TEMPLATE_OUTCOME, PlanOnly.kind)
                return PlanOnly(plan=suggestion)

            existing = await self._templates.get_by_type_key(suggestion.type_key, scope)
            if existing is not None:
                logger.info("Suggested template %s already exists; reusing", suggestion.type_key)
                if span:
                    span.set_attribute(ATTR_TEMPLATE_OUTCOME, Reused.kind)
                return Reused(
                    template=await self.resolver.resolve(existing.type_key, scope),
                    score=suggestion.match_score,
                )

            created = await self.create_from_suggestion(suggestion, created_by=created_by)
            if span:
                span.set_attribute(ATTR_TEMPLATE_OUTCOME, Created.kind)
                span.set_attribute(ATTR_TYPE_KEY, created.type_key)
            return Created(template=created, suggestion=suggestion)

    async def _resolve_instantiable(self, type_key: str, scope: str) -> ResolvedTemplate | None:
        try:
            resolved = await self.resolver.resolve(type_key, scope)
            self.resolver.validate_instantiable(resolved)
        except TemplateError as e:
            logger.debug("Skipping matched template %s: %s", type_key, e)
            return None
        return resolved

    async def create_from_suggestion(
        self,
        suggestion: TemplateSuggestion,
        created_by: str | None = None,
    ) -> ResolvedTemplate:
        """
        Store a suggested template and resolve it.

        The parent is the first existing template among the suggested
        parent, the suggestion's base key and the scope's generic fallback.
        """
        scope = suggestion.scope
        parent = await self._find_parent(suggestion)
        template = Template(
            type_key=suggestion.type_key,
            scope=scope,
            name=suggestion.name,
            schema=build_schema(suggestion.properties),
            fsm=build_fsm(suggestion.workflow_states, suggestion.type_key, scope),
            metadata={
                "description": suggestion.description,
                "rationale": suggestion.rationale,
                "match_score": suggestion.match_score,
                "benefits": list(suggestion.benefits),
                "created_by_migration": True,
                "created_at": datetime.now(UTC).isoformat(),
            },
            parent_template_id=parent.id if parent is not None else None,
            is_abstract=False,
            status="active",
            created_by=created_by,
        )
        stored = await self._templates.create(template)
        logger.info(
            "Created template %s (parent %s)",
            stored.type_key,
            parent.type_key if parent is not None else None,
        )
        return await self.resolver.resolve(stored.type_key, scope)

    async def _find_parent(self, suggestion: TemplateSuggestion) -> Template | None:
        candidates: list[str] = []
        for key in (
            suggestion.parent_type_key,
            base_type_key(suggestion.type_key, suggestion.scope),
            self.config.generic_fallback(suggestion.scope),
        ):
            if key and key != suggestion.type_key and key not in candidates:
                candidates.append(key)

        for key in candidates:
            parent = await self._templates.get_by_type_key(key, suggestion.scope)
            if parent is not None:
                return parent
        return None

    # =========================================================================
    # Extraction
    # =========================================================================

    async def extract(
        self,
        template: ResolvedTemplate,
        narrative: str,
    ) -> Extraction:
        """
        Extract property values for a template from a narrative.

        Raises:
            LLMCallError: If the reply is empty or malformed
        """
        with self._tracer.span(
            "ontomigrate.classifier.extract",
            {ATTR_TYPE_KEY: template.type_key, ATTR_LLM_OPERATION: EXTRACTION_OPERATION},
        ):
            payload = await self._request(
                system_prompt=_EXTRACTION_SYSTEM_PROMPT,
                user_prompt=self._extraction_prompt(template, narrative),
                profile=LLMProfile.BALANCED,
                temperature=0.2,
                validation=ResponseValidation(retry_on_parse_error=True, max_retries=2),
                operation_type=EXTRACTION_OPERATION,
            )
            response = parse_response(ExtractionResponse, payload, EXTRACTION_OPERATION)
            return Extraction(
                props=dict(response.props),
                facets=dict(response.facets) if response.facets is not None else None,
                confidence=response.confidence,
                notes=response.notes,
            )

    def _extraction_prompt(self, template: ResolvedTemplate, narrative: str) -> str:
        fields = "\n".join(
            f"- {item['key']}: {item['type']}"
            + (" (required)" if item["required"] else "")
            + (f": {item['description']}" if item["description"] else "")
            for item in template.summary_fields()
        )
        return f"""Extract template properties from this legacy data.

Template: {template.type_key} ({template.name})

Property Schema:
{fields or "- No specific properties defined"}

Legacy Data Narrative:
{narrative}

Set confidence 0.0-1.0 by how complete the data is and explain decisions in notes."""

    def validate(self, extraction: Extraction, template: ResolvedTemplate) -> PropsValidation:
        """Check extracted properties against the template schema."""
        return validate_props(extraction.props, template.schema)

    # =========================================================================
    # Plan synthesis
    # =========================================================================

    async def synthesize_plans(
        self,
        project_narrative: str,
        phases: Sequence[Mapping[str, Any]],
    ) -> PlanSynthesisResponse | None:
        """
        Regroup all phases of one project into plans with a single call.

        Returns None when the call fails or returns nothing usable; callers
        then fall back to one plan per legacy phase.
        """
        if not phases:
            return None

        with self._tracer.span(
            "ontomigrate.classifier.synthesize_plans",
            {ATTR_LLM_OPERATION: PLAN_SYNTHESIS_OPERATION},
        ):
            try:
                payload = await self._llm.get_json_response(
                    system_prompt=_PLAN_SYNTHESIS_SYSTEM_PROMPT,
                    user_prompt=(
                        f"Project:\n{project_narrative}\n\n"
                        f"Legacy phases:\n{json.dumps(list(phases), indent=2, default=str)}"
                    ),
                    profile=LLMProfile.BALANCED,
                    temperature=0.3,
                    validation=ResponseValidation(retry_on_parse_error=True, max_retries=2),
                    operation_type=PLAN_SYNTHESIS_OPERATION,
                )
                response = parse_response(
                    PlanSynthesisResponse, payload, PLAN_SYNTHESIS_OPERATION
                )
            except Exception as e:
                logger.warning(
                    "Plan synthesis failed, falling back to legacy phases: %s",
                    e,
                )
                return None

            return response if response.plans else None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def resolve_or_none(self, type_key: str, scope: str) -> ResolvedTemplate | None:
        """Resolve a type key, returning None when it does not exist."""
        try:
            return await self.resolver.resolve(type_key, scope)
        except TemplateNotFoundError:
            return None

    async def clear_cache(self) -> None:
        """Drop cached scores, e.g. after the template catalog changed."""
        await self._cache.clear()

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()


__all__ = [
    "ClassifierConfig",
    "TemplateClassifier",
    "GENERIC_FALLBACK_TYPE_KEYS",
    "SCORING_OPERATION",
    "SUGGESTION_OPERATION",
    "EXTRACTION_OPERATION",
    "PLAN_SYNTHESIS_OPERATION",
]
