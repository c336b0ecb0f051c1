"""
Template data models.

Models in this module:
    - Template: One row of the template directory
    - ResolvedTemplate: A template merged with its whole parent chain
    - TemplateSuggestion: A proposed template that has not been stored
    - Reused, Created, PlanOnly: Tagged outcomes of obtaining a template
    - Extraction: Property values extracted from a narrative
    - PropsValidation: Result of checking props against a schema
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Literal

from ontomigrate.models import parse_timestamp


@dataclass(frozen=True)
class Template:
    """
    A template definition as stored in the directory.

    type_key follows `scope.family[.variant]` (projects use
    `project.domain.deliverable[.variant]`). Templates form a tree through
    parent_template_id.
    """

    type_key: str
    scope: str
    name: str
    schema: dict[str, Any] = field(default_factory=dict)
    fsm: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    facet_defaults: dict[str, Any] = field(default_factory=dict)
    default_props: dict[str, Any] = field(default_factory=dict)
    default_views: list[dict[str, Any]] = field(default_factory=list)
    parent_template_id: str | None = None
    is_abstract: bool = False
    status: str = "active"
    created_by: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    @property
    def property_names(self) -> list[str]:
        return list((self.schema or {}).get("properties", {}) or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type_key": self.type_key,
            "scope": self.scope,
            "name": self.name,
            "schema": self.schema,
            "fsm": self.fsm,
            "metadata": self.metadata,
            "facet_defaults": self.facet_defaults,
            "default_props": self.default_props,
            "default_views": self.default_views,
            "parent_template_id": self.parent_template_id,
            "is_abstract": self.is_abstract,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Template:
        parent = data.get("parent_template_id")
        return cls(
            id=str(data["id"]) if data.get("id") is not None else None,
            type_key=data["type_key"],
            scope=data["scope"],
            name=data.get("name") or data["type_key"],
            schema=dict(data.get("schema") or {}),
            fsm=dict(data["fsm"]) if data.get("fsm") else None,
            metadata=dict(data.get("metadata") or {}),
            facet_defaults=dict(data.get("facet_defaults") or {}),
            default_props=dict(data.get("default_props") or {}),
            default_views=list(data.get("default_views") or []),
            parent_template_id=str(parent) if parent is not None else None,
            is_abstract=bool(data.get("is_abstract", False)),
            status=data.get("status") or "active",
            created_by=data.get("created_by"),
            created_at=parse_timestamp(data.get("created_at")),
        )


@dataclass
class ResolvedTemplate:
    """
    A template merged root to leaf along its inheritance chain.

    Merge rules:
        - schema properties: union, descendant wins on a name clash
        - schema required: union in first-seen order, no duplicates
        - fsm: replaced by the lowest non-null definition
        - metadata, facet_defaults, default_props: shallow merge, descendant wins
        - default_views: replaced by the last non-empty list
        - identity fields (id, type_key, name, status, is_abstract): the leaf's
    """

    id: str | None
    scope: str
    type_key: str
    name: str
    status: str = "active"
    parent_template_id: str | None = None
    schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    fsm: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    facet_defaults: dict[str, Any] = field(default_factory=dict)
    default_props: dict[str, Any] = field(default_factory=dict)
    default_views: list[dict[str, Any]] = field(default_factory=list)
    is_abstract: bool = False
    inheritance_chain: list[str] = field(default_factory=list)

    @property
    def properties(self) -> dict[str, Any]:
        return self.schema.get("properties", {})

    @property
    def required(self) -> list[str]:
        return self.schema.get("required", [])

    def summary_fields(self) -> list[dict[str, Any]]:
        """Property descriptors used in prompts and previews."""
        required = set(self.required)
        return [
            {
                "key": key,
                "type": (definition or {}).get("type", "string"),
                "required": key in required,
                "description": (definition or {}).get("description"),
            }
            for key, definition in self.properties.items()
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scope": self.scope,
            "type_key": self.type_key,
            "name": self.name,
            "status": self.status,
            "parent_template_id": self.parent_template_id,
            "schema": self.schema,
            "fsm": self.fsm,
            "metadata": self.metadata,
            "facet_defaults": self.facet_defaults,
            "default_props": self.default_props,
            "default_views": self.default_views,
            "is_abstract": self.is_abstract,
            "inheritance_chain": list(self.inheritance_chain),
        }


@dataclass(frozen=True)
class WorkflowState:
    key: str
    label: str | None = None
    description: str | None = None
    initial: bool = False
    final: bool = False


@dataclass(frozen=True)
class TemplateSuggestion:
    """A new template proposed for a narrative, normalized to its scope."""

    type_key: str
    scope: str
    name: str
    description: str | None = None
    parent_type_key: str | None = None
    match_score: float = 0.0
    rationale: str = "No rationale provided"
    properties: dict[str, dict[str, Any]] = field(default_factory=dict)
    workflow_states: tuple[WorkflowState, ...] = ()
    benefits: tuple[str, ...] = ()
    example_props: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type_key": self.type_key,
            "scope": self.scope,
            "name": self.name,
            "description": self.description,
            "parent_type_key": self.parent_type_key,
            "match_score": self.match_score,
            "rationale": self.rationale,
            "properties": self.properties,
            "workflow_states": [
                {
                    "key": state.key,
                    "label": state.label,
                    "description": state.description,
                    "initial": state.initial,
                    "final": state.final,
                }
                for state in self.workflow_states
            ],
            "benefits": list(self.benefits),
            "example_props": self.example_props,
        }


@dataclass(frozen=True)
class ScoredTemplate:
    template: Template
    score: float


@dataclass(frozen=True)
class Reused:
    """An existing template scored at or above the match threshold."""

    kind: ClassVar[Literal["reused"]] = "reused"
    template: ResolvedTemplate
    score: float


@dataclass(frozen=True)
class Created:
    """A template materialized from a suggestion during a live run."""

    kind: ClassVar[Literal["created"]] = "created"
    template: ResolvedTemplate
    suggestion: TemplateSuggestion


@dataclass(frozen=True)
class PlanOnly:
    """A suggestion returned unpersisted during a dry run."""

    kind: ClassVar[Literal["plan_only"]] = "plan_only"
    plan: TemplateSuggestion


TemplateOutcome = Reused | Created | PlanOnly


@dataclass(frozen=True)
class Extraction:
    """Property values extracted from a narrative for one template."""

    props: dict[str, Any] = field(default_factory=dict)
    facets: dict[str, Any] | None = None
    confidence: float = 0.0
    notes: str | None = None


@dataclass(frozen=True)
class PropsValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


__all__ = [
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
]
