"""Pydantic models for the bidirectional sync engine.

Defines the data contracts used across all sync modules:

- ``Project``, ``Task``, ``Status``: local entities and their sync
  bookkeeping (``external_id``, ``external_metadata``, watermark, status).
- ``SyncOptions``: what one run should do.
- ``SyncConflict``: an entity changed on both sides since its watermark.
- ``SyncResult``: outcome of one run.
- Inspector reports: ``SyncStatusSummary``, ``DetailedSyncStatus``,
  ``ValidationReport``, ``MatchingReport``.

All models are frozen (immutable); the store hands out updated copies.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityKind(str, Enum):
    """Whether a local entity mirrors a Jira object."""

    EXTERNALLY_TRACKED = "externally-tracked"
    LOCAL_ONLY = "local-only"


class SyncStatus(str, Enum):
    """Per-entity sync state: pending -> synced | failed."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EntityType(str, Enum):
    TASK = "task"
    STATUS = "status"


class ConflictPolicy(str, Enum):
    """How a recorded conflict is resolved at the end of a run."""

    LOCAL = "local"
    REMOTE = "remote"
    MANUAL = "manual"


class Project(BaseModel):
    """A local project; ``external_metadata`` holds ``jira_project_key``."""

    id: str
    name: str
    external_metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def project_key(self) -> str | None:
        key = self.external_metadata.get("jira_project_key")
        return str(key) if key else None


class _SyncedEntity(BaseModel):
    """Bookkeeping shared by tasks and statuses.

    Attributes:
        entity_kind: ``externally-tracked`` once linked to Jira.
        external_id: Jira's stable id, or None before the first push.
        external_metadata: Secondary key and provider fields.
        last_synced_at: Watermark, never later than the run that wrote it.
        sync_status: pending, synced or failed.
        pending_sync: True while local edits are not confirmed pushed.
        updated_at: Last local modification; sync writes leave it alone.
    """

    id: str
    project_id: str
    name: str
    entity_kind: EntityKind = EntityKind.LOCAL_ONLY
    external_id: str | None = None
    external_metadata: dict[str, Any] = Field(default_factory=dict)
    last_synced_at: datetime | None = None
    sync_status: SyncStatus = SyncStatus.PENDING
    pending_sync: bool = False
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_tracked(self) -> bool:
        return self.entity_kind == EntityKind.EXTERNALLY_TRACKED


class Task(_SyncedEntity):
    """A local work item."""

    description: str = ""
    status_id: str | None = None
    priority: Priority = Priority.MEDIUM
    due_date: date | None = None

    model_config = {"frozen": True}


class Status(_SyncedEntity):
    """A workflow status scoped to one project."""

    color: str = "gray"
    category: str = "todo"
    position: int = 0

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Run input / output
# ---------------------------------------------------------------------------


class SyncOptions(BaseModel):
    """Toggles for one sync run.

    Attributes:
        push_to_jira: Run the push phase.
        pull_from_jira: Run both pull phases.
        resolve_conflicts: Policy applied to recorded conflicts.
        sync_tasks: Include tasks.
        sync_statuses: Include statuses.
    """

    push_to_jira: bool = True
    pull_from_jira: bool = True
    resolve_conflicts: ConflictPolicy = ConflictPolicy.MANUAL
    sync_tasks: bool = True
    sync_statuses: bool = True

    model_config = {"frozen": True}


class SyncConflict(BaseModel):
    """An entity changed locally and remotely since its last sync.

    Attributes:
        entity_type: ``task`` or ``status``.
        entity_id: Local id of the entity.
        entity_name: Display name.
        local_change: What changed locally.
        remote_change: What changed remotely.
        resolution: Policy the conflict was (or will be) resolved with.
    """

    entity_type: EntityType
    entity_id: str
    entity_name: str
    local_change: str
    remote_change: str
    resolution: ConflictPolicy

    model_config = {"frozen": True}


class SyncCounts(BaseModel):
    tasks_pushed: int = 0
    tasks_pulled: int = 0
    statuses_pushed: int = 0
    statuses_pulled: int = 0

    model_config = {"frozen": True}


class ItemFailure(BaseModel):
    """A per-item failure recorded during a run."""

    entity_type: EntityType
    entity_id: str
    entity_name: str
    phase: str
    error_kind: str
    error: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of one ``perform_bidirectional_sync`` call.

    ``success`` is False only for fatal errors (configuration, auth,
    cancellation, a concurrent run). Per-item failures show up in
    ``failures`` and in entity state, not in ``success``.
    """

    success: bool
    message: str
    counts: SyncCounts = Field(default_factory=SyncCounts)
    conflicts: list[SyncConflict] = Field(default_factory=list)
    failures: list[ItemFailure] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    cleaned_up: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Inspector reports
# ---------------------------------------------------------------------------


class SyncStatusSummary(BaseModel):
    pending_tasks: list[Task] = Field(default_factory=list)
    pending_statuses: list[Status] = Field(default_factory=list)
    has_pending_changes: bool = False

    model_config = {"frozen": True}


class EntityCounts(BaseModel):
    total: int = 0
    pending: int = 0
    failed: int = 0
    synced: int = 0

    model_config = {"frozen": True}


class DetailedSyncStatus(BaseModel):
    tasks: EntityCounts
    statuses: EntityCounts
    failed_tasks: list[Task] = Field(default_factory=list)
    failed_statuses: list[Status] = Field(default_factory=list)
    has_pending_changes: bool = False
    has_failed_syncs: bool = False

    model_config = {"frozen": True}


class ValidationReport(BaseModel):
    """Anomalies found in the local sync state; never auto-corrected.

    Attributes:
        is_valid: True when no anomaly was found.
        issues: Human-readable description of every anomaly.
        invalid_entities: Ids of tracked entities without an external id.
        duplicate_external_ids: external_id -> local ids sharing it.
        duplicate_keys: secondary key -> local ids sharing it.
        orphans_missing_key: Ids with an external id but no key.
        orphans_missing_id: Ids with a key but no external id.
    """

    is_valid: bool
    issues: list[str] = Field(default_factory=list)
    invalid_entities: list[str] = Field(default_factory=list)
    duplicate_external_ids: dict[str, list[str]] = Field(default_factory=dict)
    duplicate_keys: dict[str, list[str]] = Field(default_factory=dict)
    orphans_missing_key: list[str] = Field(default_factory=list)
    orphans_missing_id: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}


class TaskMatch(BaseModel):
    task_id: str
    task_name: str
    issue_key: str
    matched_by: str

    model_config = {"frozen": True}


class MatchingReport(BaseModel):
    """How local tasks line up with the project's Jira issues."""

    matches: list[TaskMatch] = Field(default_factory=list)
    unmatched_local: list[str] = Field(default_factory=list)
    unmatched_remote: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}
