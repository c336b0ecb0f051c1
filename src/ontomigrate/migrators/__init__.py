"""
Entity migrators: project, phase/plan, task and calendar.

Each migrator checks the mapping ledger before creating anything and
returns explicit per-entity results instead of raising for per-entity
failures.
"""

from ontomigrate.migrators.base import EntityResult, MigrationContext, gather_in_chunks
from ontomigrate.migrators.calendar import CalendarMigrator, CalendarResult, build_calendar_preview
from ontomigrate.migrators.phase import (
    PLAN_TYPE_KEY,
    PhaseBatchResult,
    PhaseMigrator,
    PlanDraft,
    phase_state,
    plan_scale,
)
from ontomigrate.migrators.project import (
    ProjectAnalysis,
    ProjectMigrator,
    ProjectResult,
    heuristic_type_key,
    project_facets,
    project_state,
)
from ontomigrate.migrators.task import (
    TaskBatchResult,
    TaskMigrator,
    classify_task,
    task_priority,
    task_state,
)

__all__ = [
    "EntityResult",
    "MigrationContext",
    "gather_in_chunks",
    "ProjectMigrator",
    "ProjectResult",
    "ProjectAnalysis",
    "heuristic_type_key",
    "project_facets",
    "project_state",
    "PhaseMigrator",
    "PhaseBatchResult",
    "PlanDraft",
    "PLAN_TYPE_KEY",
    "phase_state",
    "plan_scale",
    "TaskMigrator",
    "TaskBatchResult",
    "classify_task",
    "task_priority",
    "task_state",
    "CalendarMigrator",
    "CalendarResult",
    "build_calendar_preview",
]
