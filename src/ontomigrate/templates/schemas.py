"""
Typed response schemas for language-model prompts.

Each prompt kind has one pydantic model. Replies are parsed with
`parse_response` at the call boundary; nothing deeper in the pipeline
sees an untyped payload.
"""

from __future__ import annotations

from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ontomigrate.exceptions import LLMCallError

_M = TypeVar("_M", bound=BaseModel)


class _Response(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class ScoreResponse(_Response):
    """Discovery score of one template, 0 to 100."""

    score: float = Field(default=0.0, ge=0.0, le=100.0)
    rationale: str | None = None

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        if isinstance(value, (int, float)):
            return min(max(float(value), 0.0), 100.0)
        return value


class PropertyDefinitionResponse(_Response):
    type: str = "string"
    description: str | None = None
    required: bool = False
    default: Any = None
    example: Any = None


class WorkflowStateResponse(_Response):
    key: str
    label: str | None = None
    description: str | None = None
    initial: bool = False
    final: bool = False


class SuggestionResponse(_Response):
    """A proposed new template."""

    type_key: str
    name: str
    description: str | None = None
    parent_type_key: str | None = None
    match_score: float = 0.0
    rationale: str | None = None
    properties: dict[str, PropertyDefinitionResponse] = Field(default_factory=dict)
    workflow_states: list[WorkflowStateResponse] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)
    example_props: dict[str, Any] = Field(default_factory=dict)

    @field_validator("properties", "example_props", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("workflow_states", "benefits", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return value if value is not None else []


class ExtractionResponse(_Response):
    """Property values extracted from a narrative."""

    props: dict[str, Any] = Field(default_factory=dict)
    facets: dict[str, Any] | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    notes: str | None = None

    @field_validator("props", mode="before")
    @classmethod
    def _none_to_dict(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if value is None:
            return 0.0
        if isinstance(value, (int, float)):
            return min(max(float(value), 0.0), 1.0)
        return value


class SynthesizedPlan(_Response):
    legacy_phase_id: str | None = None
    name: str
    summary: str | None = None
    type_key: str | None = None
    state_key: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    order: int | None = None
    confidence: float | None = None

    @field_validator("legacy_phase_id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        return str(value) if value is not None and value != "" else None


class PlanSynthesisResponse(_Response):
    """Plans regrouped from all phases of one project."""

    plans: list[SynthesizedPlan] = Field(default_factory=list)
    reasoning: str | None = None
    confidence: float | None = None


def parse_response(model: type[_M], payload: dict[str, Any] | None, operation: str) -> _M:
    """
    Parse an LLM reply into its response model.

    Raises:
        LLMCallError: If the reply is empty or does not match the model
    """
    if payload is None:
        raise LLMCallError(operation, "empty response")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise LLMCallError(operation, f"invalid response: {e.error_count()} errors") from e


__all__ = [
    "ScoreResponse",
    "PropertyDefinitionResponse",
    "WorkflowStateResponse",
    "SuggestionResponse",
    "ExtractionResponse",
    "SynthesizedPlan",
    "PlanSynthesisResponse",
    "parse_response",
]
