"""
Narratives: free text built from legacy records for classification prompts.

Sections with no content are omitted; sections are separated by a blank
line.
"""

from __future__ import annotations

from datetime import datetime

from ontomigrate.models import CORE_VALUE_FIELDS, LegacyPhase, LegacyProject, LegacyTask


def core_value_label(field_name: str) -> str:
    """
    Human label of a core_* column.

    Example:
        >>> core_value_label("core_goals_momentum")
        'Goals Momentum'
    """
    return " ".join(part.capitalize() for part in field_name.removeprefix("core_").split("_"))


def _date(value: datetime | None) -> str | None:
    return value.date().isoformat() if value is not None else None


def _join(sections: list[str | None]) -> str:
    return "\n\n".join(section for section in sections if section)


def build_project_narrative(project: LegacyProject) -> str:
    core_values = "\n".join(
        f"- {core_value_label(name)}: {value}"
        for name in CORE_VALUE_FIELDS
        if (value := getattr(project, name))
    )
    return _join(
        [
            f"Project Name: {project.name}",
            f"Status: {project.status}",
            f"Description:\n{project.description}" if project.description else None,
            f"Context:\n{project.context}" if project.context else None,
            f"Tags: {', '.join(project.tags)}" if project.tags else None,
            (
                f"Executive Summary:\n{project.executive_summary}"
                if project.executive_summary
                else None
            ),
            f"Core Values:\n{core_values}" if core_values else None,
            f"Source: {project.source}" if project.source else None,
        ]
    )


def build_task_narrative(task: LegacyTask) -> str:
    due = _date(task.start_date)
    return _join(
        [
            f"Task Title: {task.title}",
            f"Status: {task.status}",
            f"Description:\n{task.description}" if task.description else None,
            f"Notes:\n{task.details}" if task.details else None,
            f"Due Date: {due}" if due else None,
            f"Priority: {task.priority}" if task.priority else None,
        ]
    )


def build_phase_narrative(phase: LegacyPhase) -> str:
    start = _date(phase.start_date)
    end = _date(phase.end_date)
    return _join(
        [
            f"Phase Name: {phase.name}",
            f"Order: {phase.order}",
            f"Description:\n{phase.description}" if phase.description else None,
            f"Start Date: {start}" if start else None,
            f"End Date: {end}" if end else None,
        ]
    )


__all__ = [
    "build_phase_narrative",
    "build_project_narrative",
    "build_task_narrative",
    "core_value_label",
]
