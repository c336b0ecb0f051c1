"""
Data models for the ontology migration engine.

Models in this module:

Enums:
    - RunStatus: Migration run lifecycle states
    - EntityScope: Audit/concurrency bucket of an entity kind
    - EntityStatus: Per-entity migration outcome
    - LogOperation: Operation recorded on a log row

Configuration:
    - MigrationOptions: Options for analyze/preview/start

Ledger and audit:
    - LegacyMapping: Legacy id to ontology id correspondence
    - MigrationLogEntry: One append-only migration log row
    - ScopeCounts: completed/failed/pending counters for one scope
    - BatchScopeSummary: Scope counters plus per-entity details
    - RunSummary: Run snapshot reconstructed from log rows
    - ValidationReport, RollbackResult, StartResult: Operation results

Legacy records:
    - LegacyProject, LegacyPhase, LegacyTask, ProjectCalendar, LegacyTaskEvent
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, TypeVar
from uuid import UUID

_T = TypeVar("_T")


class RunStatus(Enum):
    """
    Migration run lifecycle states.

    State machine transitions:
        PENDING -> IN_PROGRESS -> COMPLETED | FAILED | PAUSED
        PAUSED -> IN_PROGRESS (resume)
        any non-terminal -> ROLLED_BACK (explicit rollback only)
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        """True for states a run never leaves on its own."""
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.ROLLED_BACK)

    def can_transition_to(self, target: RunStatus) -> bool:
        """
        Check whether a transition to `target` is allowed.

        Args:
            target: The requested status

        Returns:
            True if the transition is valid
        """
        if target == RunStatus.ROLLED_BACK:
            return True
        return target in _RUN_TRANSITIONS.get(self, frozenset())


_RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.IN_PROGRESS}),
    RunStatus.IN_PROGRESS: frozenset({RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.PAUSED}),
    RunStatus.PAUSED: frozenset({RunStatus.IN_PROGRESS}),
}


class EntityScope(Enum):
    """Entity-kind bucket used for audit counters and concurrency."""

    RUN = "run"
    PROJECT = "project"
    PHASE = "phase"
    TASK = "task"
    CALENDAR = "calendar"

    @property
    def legacy_table(self) -> str | None:
        """Legacy table for this scope (None for run rows)."""
        return LEGACY_TABLE_BY_SCOPE.get(self)

    @property
    def onto_table(self) -> str | None:
        """Ontology table for this scope (None for run rows)."""
        return ONTO_TABLE_BY_SCOPE.get(self)


ENTITY_SCOPES: tuple[EntityScope, ...] = (
    EntityScope.PROJECT,
    EntityScope.PHASE,
    EntityScope.TASK,
    EntityScope.CALENDAR,
)

LEGACY_TABLE_BY_SCOPE: dict[EntityScope, str] = {
    EntityScope.PROJECT: "projects",
    EntityScope.PHASE: "phases",
    EntityScope.TASK: "tasks",
    EntityScope.CALENDAR: "task_calendar_events",
}

ONTO_TABLE_BY_SCOPE: dict[EntityScope, str] = {
    EntityScope.PROJECT: "onto_projects",
    EntityScope.PHASE: "onto_plans",
    EntityScope.TASK: "onto_tasks",
    EntityScope.CALENDAR: "onto_events",
}


class EntityStatus(Enum):
    """
    Outcome of migrating one legacy record.

    Attributes:
        COMPLETED: Entity exists in the ontology (created now or earlier).
        PENDING: Nothing written; preview only or deferred.
        PENDING_REVIEW: Dry-run preview that needs a new template.
        VALIDATION_FAILED: Extracted props failed the template schema.
        FAILED: A write or external call failed for this entity.
        ROLLED_BACK: Audit row flipped by an explicit rollback.
    """

    COMPLETED = "completed"
    PENDING = "pending"
    PENDING_REVIEW = "pending_review"
    VALIDATION_FAILED = "validation_failed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def bucket(self) -> str:
        """Counter bucket: completed, failed or pending."""
        return status_bucket(self.value)


_FAILED_STATUSES = frozenset({"failed", "validation_failed", "rolled_back"})


def status_bucket(status: str) -> str:
    """
    Map a logged status value onto a scope counter bucket.

    completed counts as completed; failed, validation_failed and
    rolled_back count as failed; every other value counts as pending.
    """
    if status == "completed":
        return "completed"
    if status in _FAILED_STATUSES:
        return "failed"
    return "pending"


class LogOperation(Enum):
    """Operation recorded on a migration log row."""

    MIGRATE = "migrate"
    ANALYZE = "analyze"
    VALIDATE = "validate"
    ROLLBACK = "rollback"


PRIMARY_RUN_OPERATIONS: tuple[str, ...] = (LogOperation.MIGRATE.value, LogOperation.ANALYZE.value)


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class MigrationOptions:
    """
    Options for analyze, preview and start.

    Attributes:
        dry_run: Compute previews without writing entities, edges or mappings.
        project_ids: Restrict candidates to these legacy project ids.
        include_archived: Include projects whose status is archived.
        batch_size: Maximum number of candidate projects (default 10).
        skip_completed_tasks: Ignore done tasks and phases left without
            active tasks (default True).
        project_concurrency: Projects migrated in parallel per chunk (default 3).
        phase_concurrency: Plans written in parallel per chunk (default 5).
        task_concurrency: Tasks migrated in parallel per chunk (default 5).
        event_concurrency: Calendar events migrated in parallel per chunk (default 10).
        synthesize_plans: Ask the LLM to regroup phases into plans (default True).
        initiated_by: Operator or service identifier for the audit trail.
        org_id: Organization recorded on every log row.

    Example:
        >>> options = MigrationOptions(dry_run=True, project_ids=("p-1",))
        >>> options.project_concurrency
        3
    """

    dry_run: bool = False
    project_ids: tuple[str, ...] | None = None
    include_archived: bool = False
    batch_size: int = 10
    skip_completed_tasks: bool = True
    project_concurrency: int = 3
    phase_concurrency: int = 5
    task_concurrency: int = 5
    event_concurrency: int = 10
    synthesize_plans: bool = True
    initiated_by: str | None = None
    org_id: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        for name in (
            "project_concurrency",
            "phase_concurrency",
            "task_concurrency",
            "event_concurrency",
        ):
            value = getattr(self, name)
            if value < 1:
                raise ValueError(f"{name} must be >= 1, got {value}")
        if self.project_ids is not None and not isinstance(self.project_ids, tuple):
            object.__setattr__(self, "project_ids", tuple(self.project_ids))

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary for JSON storage on the run row.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "dry_run": self.dry_run,
            "project_ids": list(self.project_ids) if self.project_ids is not None else None,
            "include_archived": self.include_archived,
            "batch_size": self.batch_size,
            "skip_completed_tasks": self.skip_completed_tasks,
            "project_concurrency": self.project_concurrency,
            "phase_concurrency": self.phase_concurrency,
            "task_concurrency": self.task_concurrency,
            "event_concurrency": self.event_concurrency,
            "synthesize_plans": self.synthesize_plans,
            "initiated_by": self.initiated_by,
            "org_id": self.org_id,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationOptions:
        """
        Create from dictionary.

        Args:
            data: Dictionary containing option values.

        Returns:
            MigrationOptions instance.
        """
        project_ids = data.get("project_ids")
        return cls(
            dry_run=bool(data.get("dry_run", False)),
            project_ids=tuple(project_ids) if project_ids is not None else None,
            include_archived=bool(data.get("include_archived", False)),
            batch_size=data.get("batch_size", 10),
            skip_completed_tasks=bool(data.get("skip_completed_tasks", True)),
            project_concurrency=data.get("project_concurrency", 3),
            phase_concurrency=data.get("phase_concurrency", 5),
            task_concurrency=data.get("task_concurrency", 5),
            event_concurrency=data.get("event_concurrency", 10),
            synthesize_plans=bool(data.get("synthesize_plans", True)),
            initiated_by=data.get("initiated_by"),
            org_id=data.get("org_id"),
        )


# =============================================================================
# Ledger and audit models
# =============================================================================


@dataclass(frozen=True)
class LegacyMapping:
    """
    Durable legacy-id to ontology-id correspondence.

    Unique on (legacy_table, legacy_id). Re-migrating the same legacy id
    refreshes checksum and metadata, never the key.
    """

    legacy_table: str
    legacy_id: str
    onto_table: str
    onto_id: str
    checksum: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "legacy_table": self.legacy_table,
            "legacy_id": self.legacy_id,
            "onto_table": self.onto_table,
            "onto_id": self.onto_id,
            "checksum": self.checksum,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class MigrationLogEntry:
    """
    One append-only row of the migration log.

    The row shape is the compatibility surface of the engine: status,
    validation and rollback are all computed by grouping these rows.
    Only the primary run row (entity_type run, operation migrate or
    analyze) is ever updated after insert.
    """

    run_id: UUID
    entity_type: EntityScope
    status: str
    operation: LogOperation = LogOperation.MIGRATE
    batch_id: UUID | None = None
    legacy_table: str | None = None
    legacy_id: str | None = None
    onto_table: str | None = None
    onto_id: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    org_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    @property
    def is_primary_run_row(self) -> bool:
        """True for the single mutable run row of a run."""
        return (
            self.entity_type == EntityScope.RUN
            and self.operation.value in PRIMARY_RUN_OPERATIONS
        )

    @classmethod
    def for_run(
        cls,
        run_id: UUID,
        status: str,
        operation: LogOperation,
        *,
        batch_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
        error_message: str | None = None,
        org_id: str | None = None,
    ) -> MigrationLogEntry:
        """
        Create a run-level log row.

        Args:
            run_id: Run the row belongs to
            status: Status value
            operation: migrate/analyze for the primary row, validate or
                rollback for outcome rows
            batch_id: Batch identifier of the run
            metadata: Row metadata
            error_message: Optional error message
            org_id: Optional organization id

        Returns:
            MigrationLogEntry with entity_type RUN
        """
        return cls(
            run_id=run_id,
            batch_id=batch_id,
            entity_type=EntityScope.RUN,
            status=status,
            operation=operation,
            metadata=metadata or {},
            error_message=error_message,
            org_id=org_id,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted row shape."""
        return {
            "id": self.id,
            "run_id": str(self.run_id),
            "batch_id": str(self.batch_id) if self.batch_id else None,
            "entity_type": self.entity_type.value,
            "legacy_table": self.legacy_table,
            "legacy_id": self.legacy_id,
            "onto_table": self.onto_table,
            "onto_id": self.onto_id,
            "status": self.status,
            "operation": self.operation.value,
            "error_message": self.error_message,
            "metadata": self.metadata,
            "org_id": self.org_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MigrationLogEntry:
        """Create from the persisted row shape."""
        batch_id = data.get("batch_id")
        return cls(
            id=data.get("id"),
            run_id=_as_uuid(data["run_id"]),
            batch_id=_as_uuid(batch_id) if batch_id else None,
            entity_type=EntityScope(data["entity_type"]),
            legacy_table=data.get("legacy_table"),
            legacy_id=data.get("legacy_id"),
            onto_table=data.get("onto_table"),
            onto_id=data.get("onto_id"),
            status=data["status"],
            operation=LogOperation(data.get("operation") or LogOperation.MIGRATE.value),
            error_message=data.get("error_message"),
            metadata=dict(data.get("metadata") or {}),
            org_id=data.get("org_id"),
            created_at=parse_timestamp(data.get("created_at")),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


@dataclass
class ScopeCounts:
    """Counters for one scope; completed + failed + pending == total."""

    total: int = 0
    completed: int = 0
    failed: int = 0
    pending: int = 0

    def add(self, status: str) -> None:
        """Count one logged entry with the given status."""
        self.total += 1
        bucket = status_bucket(status)
        setattr(self, bucket, getattr(self, bucket) + 1)

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
        }


@dataclass
class BatchScopeSummary:
    """Scope counters plus the per-entity detail records of one run."""

    scope: EntityScope
    counts: ScopeCounts = field(default_factory=ScopeCounts)
    details: list[dict[str, Any]] = field(default_factory=list)

    def record(self, status: str, detail: dict[str, Any]) -> None:
        self.counts.add(status)
        self.details.append(detail)

    def to_dict(self) -> dict[str, Any]:
        return {"scope": self.scope.value, **self.counts.to_dict(), "details": self.details}


@dataclass(frozen=True)
class RunSummary:
    """
    Snapshot of a run reconstructed purely from log rows.

    Attributes:
        run_id: The run
        status: Status of the primary run row, or pending when absent
        scope_counts: Counters per entity scope
        started_at: created_at of the earliest row
        updated_at: Latest updated_at over all rows
        options: Options stored on the run row
        initiated_by: Operator stored with the options
    """

    run_id: UUID
    status: str
    scope_counts: dict[EntityScope, ScopeCounts]
    started_at: datetime | None = None
    updated_at: datetime | None = None
    options: dict[str, Any] = field(default_factory=dict)
    initiated_by: str | None = None

    @classmethod
    def from_entries(cls, run_id: UUID, entries: Iterable[MigrationLogEntry]) -> RunSummary:
        """
        Build a summary by grouping log rows.

        Args:
            run_id: Run to summarize
            entries: Every log row of that run

        Returns:
            RunSummary with one ScopeCounts per entity scope
        """
        counts = {scope: ScopeCounts() for scope in ENTITY_SCOPES}
        run_row: MigrationLogEntry | None = None
        started_at: datetime | None = None
        updated_at: datetime | None = None

        for entry in entries:
            if entry.is_primary_run_row:
                run_row = entry
            elif entry.entity_type in counts:
                counts[entry.entity_type].add(entry.status)
            if entry.created_at and (started_at is None or entry.created_at < started_at):
                started_at = entry.created_at
            stamp = entry.updated_at or entry.created_at
            if stamp and (updated_at is None or stamp > updated_at):
                updated_at = stamp

        options = dict(run_row.metadata.get("options") or {}) if run_row else {}
        return cls(
            run_id=run_id,
            status=run_row.status if run_row else RunStatus.PENDING.value,
            scope_counts=counts,
            started_at=started_at,
            updated_at=updated_at,
            options=options,
            initiated_by=options.get("initiated_by"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "status": self.status,
            "scope_counts": {
                scope.value: counts.to_dict() for scope, counts in self.scope_counts.items()
            },
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "options": self.options,
            "initiated_by": self.initiated_by,
        }


@dataclass(frozen=True)
class ValidationReport:
    """Outcome of validate(run_id)."""

    run_id: UUID
    issues: list[str]
    summary: RunSummary

    @property
    def valid(self) -> bool:
        return not self.issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "valid": self.valid,
            "issues": list(self.issues),
            "summary": self.summary.to_dict(),
        }


@dataclass(frozen=True)
class RollbackResult:
    """Outcome of rollback(run_id)."""

    run_id: UUID
    updated: int

    def to_dict(self) -> dict[str, Any]:
        return {"run_id": str(self.run_id), "updated": self.updated}


@dataclass(frozen=True)
class StartResult:
    """
    Structured result returned by start().

    Attributes:
        run_id: Allocated run id
        batch_id: Allocated batch id
        dry_run: Whether the run wrote anything
        status: Final run status value
        scopes: Per-scope counters and entity details
        failed_projects: Legacy ids of projects whose cascade failed
        previews: Preview payloads of each candidate project (dry runs)
    """

    run_id: UUID
    batch_id: UUID
    dry_run: bool
    status: str
    scopes: dict[EntityScope, BatchScopeSummary]
    failed_projects: list[str] = field(default_factory=list)
    previews: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "batch_id": str(self.batch_id),
            "dry_run": self.dry_run,
            "status": self.status,
            "scopes": {scope.value: summary.to_dict() for scope, summary in self.scopes.items()},
            "failed_projects": list(self.failed_projects),
            "previews": list(self.previews),
        }


@dataclass(frozen=True)
class Edge:
    """
    Directed relationship between two ontology entities.

    Example:
        >>> Edge("project", project_id, "has_plan", "plan", plan_id)
    """

    src_kind: str
    src_id: str
    rel: str
    dst_kind: str
    dst_id: str
    props: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "src_kind": self.src_kind,
            "src_id": self.src_id,
            "rel": self.rel,
            "dst_kind": self.dst_kind,
            "dst_id": self.dst_id,
            "props": self.props,
        }


# =============================================================================
# Legacy records
# =============================================================================


def parse_timestamp(value: Any) -> datetime | None:
    """
    Coerce a stored timestamp into an aware datetime.

    Accepts datetimes, dates and ISO 8601 strings (a trailing "Z" is
    accepted). Naive values are assumed to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _as_uuid(value: Any) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _from_row(cls: type[_T], row: Mapping[str, Any], timestamps: tuple[str, ...] = ()) -> _T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    values = {key: row[key] for key in known if key in row}
    for key in timestamps:
        if key in values:
            values[key] = parse_timestamp(values[key])
    return cls(**values)


CORE_VALUE_FIELDS: tuple[str, ...] = (
    "core_goals_momentum",
    "core_harmony_integration",
    "core_integrity_ideals",
    "core_meaning_identity",
    "core_opportunity_freedom",
    "core_people_bonds",
    "core_power_resources",
    "core_reality_understanding",
    "core_trust_safeguards",
)


@dataclass(frozen=True)
class LegacyProject:
    """A row of the legacy `projects` table."""

    id: str
    name: str
    status: str | None = None
    description: str | None = None
    context: str | None = None
    executive_summary: str | None = None
    tags: list[str] | None = None
    slug: str | None = None
    source: str | None = None
    source_metadata: dict[str, Any] | None = None
    user_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    calendar_color_id: str | None = None
    calendar_settings: dict[str, Any] | None = None
    calendar_sync_enabled: bool = False
    core_goals_momentum: str | None = None
    core_harmony_integration: str | None = None
    core_integrity_ideals: str | None = None
    core_meaning_identity: str | None = None
    core_opportunity_freedom: str | None = None
    core_people_bonds: str | None = None
    core_power_resources: str | None = None
    core_reality_understanding: str | None = None
    core_trust_safeguards: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LegacyProject:
        return _from_row(cls, row, ("start_date", "end_date", "created_at", "updated_at"))

    def core_values(self) -> dict[str, str | None]:
        """The nine core_* fields keyed by column name."""
        return {name: getattr(self, name) for name in CORE_VALUE_FIELDS}


@dataclass(frozen=True)
class LegacyPhase:
    """A row of the legacy `phases` table."""

    id: str
    project_id: str
    name: str
    description: str | None = None
    order: int = 0
    start_date: datetime | None = None
    end_date: datetime | None = None
    scheduling_method: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LegacyPhase:
        return _from_row(cls, row, ("start_date", "end_date", "created_at"))


@dataclass(frozen=True)
class LegacyTask:
    """A row of the legacy `tasks` table."""

    id: str
    project_id: str
    title: str
    description: str | None = None
    details: str | None = None
    status: str | None = None
    priority: str | None = None
    task_type: str | None = None
    start_date: datetime | None = None
    completed_at: datetime | None = None
    duration_minutes: int | None = None
    recurrence_pattern: str | None = None
    recurrence_ends: datetime | None = None
    recurrence_end_source: str | None = None
    dependencies: list[str] | None = None
    source: str | None = None
    source_calendar_event_id: str | None = None
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LegacyTask:
        return _from_row(
            cls,
            row,
            (
                "start_date",
                "completed_at",
                "recurrence_ends",
                "deleted_at",
                "created_at",
                "updated_at",
            ),
        )

    @property
    def is_active(self) -> bool:
        """Not deleted and not done."""
        return self.deleted_at is None and self.status != "done"


@dataclass(frozen=True)
class ProjectCalendar:
    """A row of the legacy `project_calendars` table."""

    id: str
    project_id: str
    calendar_id: str | None = None
    calendar_name: str | None = None
    sync_enabled: bool = False
    onto_project_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> ProjectCalendar:
        return _from_row(cls, row)


@dataclass(frozen=True)
class LegacyTaskEvent:
    """A row of the legacy `task_calendar_events` table."""

    id: str
    task_id: str
    project_calendar_id: str | None = None
    calendar_event_id: str | None = None
    event_title: str | None = None
    event_link: str | None = None
    event_start: datetime | None = None
    event_end: datetime | None = None
    sync_status: str | None = None
    sync_source: str | None = None
    sync_error: str | None = None
    recurrence_rule: str | None = None
    last_synced_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> LegacyTaskEvent:
        return _from_row(cls, row, ("event_start", "event_end", "last_synced_at"))


__all__ = [
    "RunStatus",
    "EntityScope",
    "EntityStatus",
    "LogOperation",
    "ENTITY_SCOPES",
    "LEGACY_TABLE_BY_SCOPE",
    "ONTO_TABLE_BY_SCOPE",
    "PRIMARY_RUN_OPERATIONS",
    "status_bucket",
    "MigrationOptions",
    "LegacyMapping",
    "MigrationLogEntry",
    "ScopeCounts",
    "BatchScopeSummary",
    "RunSummary",
    "ValidationReport",
    "RollbackResult",
    "StartResult",
    "Edge",
    "parse_timestamp",
    "CORE_VALUE_FIELDS",
    "LegacyProject",
    "LegacyPhase",
    "LegacyTask",
    "ProjectCalendar",
    "LegacyTaskEvent",
]
