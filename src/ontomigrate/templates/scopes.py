"""
Template scopes, type key rules and state machine construction.

Every template belongs to one scope. A scope fixes the shape of its type
keys (projects use `project.domain.deliverable[.variant]`, every other
scope `scope.family[.variant]`) and supplies the default workflow used
when a suggested template does not describe a usable one.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from ontomigrate.templates.models import WorkflowState


@dataclass(frozen=True)
class ScopeDefinition:
    """Type key pattern and default workflow of one template scope."""

    type_key_pattern: str
    examples: tuple[str, ...]
    family_description: str
    default_states: tuple[str, ...]
    default_transitions: tuple[tuple[str, str, str], ...]
    """(from, to, event) triples."""


SCOPE_DEFINITIONS: dict[str, ScopeDefinition] = {
    "project": ScopeDefinition(
        type_key_pattern="project.{domain}.{deliverable}[.{variant}]",
        examples=("project.writer.book", "project.developer.app.mobile", "project.coach.client"),
        family_description="Domain represents the actor role, deliverable the primary output",
        default_states=("draft", "active", "paused", "complete", "archived"),
        default_transitions=(
            ("draft", "active", "start"),
            ("active", "paused", "pause"),
            ("paused", "active", "resume"),
            ("active", "complete", "finish"),
            ("complete", "archived", "archive"),
        ),
    ),
    "task": ScopeDefinition(
        type_key_pattern="task.{work_mode}[.{specialization}]",
        examples=("task.execute", "task.create", "task.coordinate.meeting", "task.research"),
        family_description=(
            "Work modes: execute, create, refine, research, review, coordinate, admin, plan"
        ),
        default_states=("todo", "in_progress", "blocked", "done"),
        default_transitions=(
            ("todo", "in_progress", "start"),
            ("in_progress", "blocked", "block"),
            ("blocked", "in_progress", "unblock"),
            ("in_progress", "done", "complete"),
        ),
    ),
    "plan": ScopeDefinition(
        type_key_pattern="plan.{family}[.{variant}]",
        examples=("plan.timebox.sprint", "plan.pipeline.sales", "plan.phase.project"),
        family_description="Families: timebox, pipeline, campaign, roadmap, process, phase",
        default_states=("draft", "active", "complete"),
        default_transitions=(
            ("draft", "active", "start"),
            ("active", "complete", "finish"),
        ),
    ),
    "goal": ScopeDefinition(
        type_key_pattern="goal.{family}[.{variant}]",
        examples=("goal.outcome.project", "goal.metric.revenue", "goal.behavior.cadence"),
        family_description=(
            "Families: outcome (binary), metric (quantitative), behavior (frequency), "
            "learning (skill)"
        ),
        default_states=("proposed", "active", "achieved", "abandoned"),
        default_transitions=(
            ("proposed", "active", "accept"),
            ("active", "achieved", "achieve"),
            ("active", "abandoned", "abandon"),
        ),
    ),
    "document": ScopeDefinition(
        type_key_pattern="document.{family}[.{variant}]",
        examples=(
            "document.context.project",
            "document.knowledge.research",
            "document.spec.technical",
        ),
        family_description="Families: context, knowledge, decision, spec, reference, intake",
        default_states=("draft", "review", "published", "archived"),
        default_transitions=(
            ("draft", "review", "submit"),
            ("review", "published", "publish"),
            ("review", "draft", "revise"),
            ("published", "archived", "archive"),
        ),
    ),
    "output": ScopeDefinition(
        type_key_pattern="output.{family}[.{variant}]",
        examples=("output.written.article", "output.media.slide_deck", "output.software.feature"),
        family_description="Families: written, media, software, operational",
        default_states=("draft", "in_progress", "delivered", "accepted"),
        default_transitions=(
            ("draft", "in_progress", "start"),
            ("in_progress", "delivered", "deliver"),
            ("delivered", "accepted", "accept"),
        ),
    ),
    "risk": ScopeDefinition(
        type_key_pattern="risk.{family}[.{variant}]",
        examples=("risk.technical.security", "risk.schedule.dependency", "risk.resource.skill_gap"),
        family_description=(
            "Families: technical, schedule, resource, budget, scope, external, quality"
        ),
        default_states=("identified", "analyzing", "mitigating", "resolved", "accepted"),
        default_transitions=(
            ("identified", "analyzing", "analyze"),
            ("analyzing", "mitigating", "mitigate"),
            ("mitigating", "resolved", "resolve"),
            ("analyzing", "accepted", "accept"),
        ),
    ),
    "event": ScopeDefinition(
        type_key_pattern="event.{family}[.{variant}]",
        examples=(
            "event.work.focus_block",
            "event.collab.meeting.standup",
            "event.marker.deadline",
        ),
        family_description=(
            "Families: work (individual), collab (coordination), marker (deadlines/reminders)"
        ),
        default_states=("scheduled", "in_progress", "completed", "cancelled"),
        default_transitions=(
            ("scheduled", "in_progress", "start"),
            ("in_progress", "completed", "complete"),
            ("scheduled", "cancelled", "cancel"),
        ),
    ),
}

TYPE_KEY_PATTERNS: dict[str, re.Pattern[str]] = {
    scope: (
        re.compile(r"^project\.[a-z_]+\.[a-z_]+(\.[a-z_]+)?$")
        if scope == "project"
        else re.compile(rf"^{scope}\.[a-z_]+(\.[a-z_]+)?$")
    )
    for scope in SCOPE_DEFINITIONS
}

MAX_TYPE_KEY_PARTS = 4

_NON_SLUG = re.compile(r"[^a-z0-9]+")
_LEADING_NON_LETTERS = re.compile(r"^[^a-z]+")


def min_depth(scope: str) -> int:
    """Minimum number of dotted parts in a type key of this scope."""
    return 3 if scope == "project" else 2


def get_scope_definition(scope: str) -> ScopeDefinition:
    try:
        return SCOPE_DEFINITIONS[scope]
    except KeyError:
        raise ValueError(f"Unknown template scope: {scope}") from None


def normalize_slug(value: str | None) -> str | None:
    """
    Lowercase a segment into snake case.

    Returns None when nothing usable remains.

    Example:
        >>> normalize_slug("Mobile App!")
        'mobile_app'
        >>> normalize_slug("3D Printing")
        'd_printing'
    """
    if not value:
        return None
    slug = _NON_SLUG.sub("_", value.strip().lower()).strip("_")
    slug = _LEADING_NON_LETTERS.sub("", slug)
    return slug or None


def normalize_type_key(raw: str | None, scope: str) -> str | None:
    """
    Normalize a type key into `scope.segment[.segment...]` form.

    Segments are slugged, empty segments dropped, the scope prefixed when
    missing and the key truncated to four parts. Returns None when fewer
    parts than the scope's minimum depth remain.

    Example:
        >>> normalize_type_key("Writer.Book", "project")
        'project.writer.book'
        >>> normalize_type_key("deep work", "task")
        'task.deep_work'
        >>> normalize_type_key("book", "project") is None
        True
    """
    if not raw:
        return None

    parts = [slug for slug in (normalize_slug(part) for part in raw.split(".")) if slug]
    if not parts:
        return None
    if parts[0] != scope:
        parts.insert(0, scope)
    if len(parts) < min_depth(scope):
        return None
    return ".".join(parts[:MAX_TYPE_KEY_PARTS])


def is_valid_type_key(type_key: str, scope: str) -> bool:
    pattern = TYPE_KEY_PATTERNS.get(scope)
    return bool(pattern and pattern.match(type_key))


def base_type_key(type_key: str, scope: str) -> str | None:
    """
    The `scope.domain.deliverable` (or `scope.family`) prefix of a key.

    Returns None when the key is already at that depth.
    """
    parts = type_key.split(".")
    depth = min_depth(scope)
    if len(parts) <= depth:
        return None
    return ".".join(parts[:depth])


def build_fsm(
    states: Sequence[WorkflowState],
    type_key: str,
    scope: str,
) -> dict[str, Any]:
    """
    Build a state machine definition from suggested workflow states.

    States are joined by sequential `advance` transitions; the first state
    is initial and the last final. With fewer than two usable states the
    scope's default workflow is used instead.
    """
    details: list[WorkflowState] = []
    for state in states:
        key = normalize_slug(state.key)
        if key and all(existing.key != key for existing in details):
            details.append(
                WorkflowState(key=key, label=state.label or key, description=state.description)
            )

    if len(details) < 2:
        definition = get_scope_definition(scope)
        return {
            "type_key": type_key,
            "initial": definition.default_states[0],
            "states": [
                {
                    "key": key,
                    "label": key,
                    "initial": index == 0,
                    "final": index == len(definition.default_states) - 1,
                }
                for index, key in enumerate(definition.default_states)
            ],
            "transitions": [
                {"id": f"{src}_to_{dst}", "from": src, "to": dst, "on": event}
                for src, dst, event in definition.default_transitions
            ],
        }

    last = len(details) - 1
    return {
        "type_key": type_key,
        "initial": details[0].key,
        "states": [
            {
                "key": state.key,
                "label": state.label,
                "description": state.description,
                "initial": index == 0,
                "final": index == last,
            }
            for index, state in enumerate(details)
        ],
        "transitions": [
            {
                "id": f"{src.key}_to_{dst.key}",
                "from": src.key,
                "to": dst.key,
                "on": "advance",
            }
            for src, dst in zip(details, details[1:], strict=False)
        ],
    }


def build_schema(properties: dict[str, dict[str, Any]]) -> dict[str, Any]:
    """Build a JSON object schema from suggested property definitions."""
    schema_properties: dict[str, Any] = {}
    required: list[str] = []
    for key, definition in properties.items():
        definition = definition or {}
        entry: dict[str, Any] = {"type": definition.get("type") or "string"}
        if definition.get("description"):
            entry["description"] = definition["description"]
        if definition.get("default") is not None:
            entry["default"] = definition["default"]
        schema_properties[key] = entry
        if definition.get("required"):
            required.append(key)
    return {"type": "object", "properties": schema_properties, "required": required}


__all__ = [
    "ScopeDefinition",
    "SCOPE_DEFINITIONS",
    "TYPE_KEY_PATTERNS",
    "MAX_TYPE_KEY_PARTS",
    "min_depth",
    "get_scope_definition",
    "normalize_slug",
    "normalize_type_key",
    "is_valid_type_key",
    "base_type_key",
    "build_fsm",
    "build_schema",
]
