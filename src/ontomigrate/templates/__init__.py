"""
Template directory support: resolution, classification and property handling.

Example:
    >>> from ontomigrate.templates import TemplateClassifier, TemplateResolver
    >>> resolver = TemplateResolver(template_repo)
    >>> resolved = await resolver.resolve("task.deep_work", "task")
"""

from ontomigrate.templates.cache import CacheStats, ScoreCache, score_cache_key
from ontomigrate.templates.classifier import (
    GENERIC_FALLBACK_TYPE_KEYS,
    ClassifierConfig,
    TemplateClassifier,
)
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
from ontomigrate.templates.narrative import (
    build_phase_narrative,
    build_project_narrative,
    build_task_narrative,
    core_value_label,
)
from ontomigrate.templates.props import deep_merge, json_type, validate_props
from ontomigrate.templates.resolver import MAX_DEPTH, TemplateResolver, merge_chain
from ontomigrate.templates.schemas import (
    ExtractionResponse,
    PlanSynthesisResponse,
    ScoreResponse,
    SuggestionResponse,
    SynthesizedPlan,
    parse_response,
)
from ontomigrate.templates.scopes import (
    SCOPE_DEFINITIONS,
    ScopeDefinition,
    base_type_key,
    build_fsm,
    build_schema,
    is_valid_type_key,
    normalize_slug,
    normalize_type_key,
)

__all__ = [
    # Models
    "Template",
    "ResolvedTemplate",
    "WorkflowState",
    "TemplateSuggestion",
    "ScoredTemplate",
    "Reused",
    "Created",
    "PlanOnly",
    "TemplateOutcome",
    "Extraction",
    "PropsValidation",
    # Resolution
    "TemplateResolver",
    "merge_chain",
    "MAX_DEPTH",
    # Classification
    "TemplateClassifier",
    "ClassifierConfig",
    "GENERIC_FALLBACK_TYPE_KEYS",
    "ScoreCache",
    "CacheStats",
    "score_cache_key",
    # Narratives
    "build_project_narrative",
    "build_task_narrative",
    "build_phase_narrative",
    "core_value_label",
    # Properties
    "deep_merge",
    "json_type",
    "validate_props",
    # Response schemas
    "ScoreResponse",
    "SuggestionResponse",
    "ExtractionResponse",
    "PlanSynthesisResponse",
    "SynthesizedPlan",
    "parse_response",
    # Scopes
    "ScopeDefinition",
    "SCOPE_DEFINITIONS",
    "normalize_slug",
    "normalize_type_key",
    "is_valid_type_key",
    "base_type_key",
    "build_fsm",
    "build_schema",
]
