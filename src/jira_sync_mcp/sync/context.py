"""Mutable state shared by the phases of one sync run."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from jira_sync_mcp.core.models import RemoteIssue, RemoteStatus
from jira_sync_mcp.errors import SyncError
from jira_sync_mcp.sync.guard import CancelToken
from jira_sync_mcp.sync.models import (
    EntityType,
    ItemFailure,
    Status,
    SyncConflict,
    SyncCounts,
    SyncOptions,
    Task,
)

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Accumulates counts, conflicts and failures while a run progresses.

    Attributes:
        project_id: Local project being synced.
        project_key: Jira project key.
        options: The run's toggles and conflict policy.
        run_start: Start time; the watermark written by this run.
        cancel: Checked between items.
        apply_remote_on_conflict: Overwrite from remote during pull even
            when a conflict is recorded.
        issue_type: Issue type for created issues.
        push_conflicted: Conflicted entities may be pushed (local policy).
        pushed: Entities pushed during this run.
        remote_issues: Latest fetched issues by id.
        remote_statuses: Latest fetched statuses by id.
    """

    project_id: str
    project_key: str
    options: SyncOptions
    run_start: datetime
    cancel: CancelToken
    apply_remote_on_conflict: bool = False
    issue_type: str = "Story"
    tasks_pushed: int = 0
    tasks_pulled: int = 0
    statuses_pushed: int = 0
    statuses_pulled: int = 0
    cleaned_up: int = 0
    push_conflicted: bool = False
    pushed: set[tuple[EntityType, str]] = field(default_factory=set)
    conflicts: dict[tuple[EntityType, str], SyncConflict] = field(
        default_factory=dict
    )
    failures: list[ItemFailure] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    remote_issues: dict[str, RemoteIssue] = field(default_factory=dict)
    remote_statuses: dict[str, RemoteStatus] = field(default_factory=dict)

    def watermark(self, entity: Task | Status | None = None) -> datetime:
        """Value to store in ``last_synced_at``; never moves backwards."""
        if entity is not None and entity.last_synced_at is not None:
            return max(entity.last_synced_at, self.run_start)
        return self.run_start

    def is_conflicted(self, entity_type: EntityType, entity_id: str) -> bool:
        return (entity_type, entity_id) in self.conflicts

    def record_conflict(
        self,
        entity_type: EntityType,
        entity: Task | Status,
        local_change: str,
        remote_change: str,
    ) -> bool:
        """Record a conflict once per entity; return True if it is new."""
        key = (entity_type, entity.id)
        if key in self.conflicts:
            return False
        self.conflicts[key] = SyncConflict(
            entity_type=entity_type,
            entity_id=entity.id,
            entity_name=entity.name,
            local_change=local_change,
            remote_change=remote_change,
            resolution=self.options.resolve_conflicts,
        )
        logger.info(
            "Conflict on %s %s (%s): local and remote both changed",
            entity_type.value,
            entity.id,
            entity.name,
        )
        return True

    def record_failure(
        self,
        entity_type: EntityType,
        entity_id: str,
        entity_name: str,
        phase: str,
        exc: Exception,
    ) -> None:
        kind = exc.kind.value if isinstance(exc, SyncError) else "unexpected"
        self.failures.append(
            ItemFailure(
                entity_type=entity_type,
                entity_id=entity_id,
                entity_name=entity_name,
                phase=phase,
                error_kind=kind,
                error=str(exc),
            )
        )

    def record_error(self, message: str) -> None:
        logger.error(message)
        self.errors.append(message)

    @property
    def counts(self) -> SyncCounts:
        return SyncCounts(
            tasks_pushed=self.tasks_pushed,
            tasks_pulled=self.tasks_pulled,
            statuses_pushed=self.statuses_pushed,
            statuses_pulled=self.statuses_pulled,
        )
