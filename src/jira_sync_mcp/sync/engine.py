"""Core sync engine that orchestrates the full bidirectional sync cycle.

The ``SyncEngine`` ties together the store, the reconcilers, cleanup and
the conflict resolver into a complete sync run for one project:

1. Acquires the project's run lock (a concurrent run is refused).
2. Resolves the Jira project key (missing key is fatal).
3. Pull: statuses, then tasks.
4. Push: tasks (create, then update), then statuses.
5. Cleanup: deletes externally-tracked entities without an id.
6. Pull again, since the push moved the remote side.
7. Resolves recorded conflicts per the run's policy.
8. Builds and returns a ``SyncResult``.

Error handling is per item: a single entity failure marks that entity
``failed`` and the run continues. Auth, configuration and cancellation
errors abort the run with ``success=False``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from jira_sync_mcp.config_schema import SyncConfig
from jira_sync_mcp.core.client import JiraClient
from jira_sync_mcp.errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    SyncError,
)
from jira_sync_mcp.sync import inspector
from jira_sync_mcp.sync.cleanup import cleanup_invalid_entities
from jira_sync_mcp.sync.context import RunContext
from jira_sync_mcp.sync.guard import CancelToken, RunLockRegistry
from jira_sync_mcp.sync.mapper import LAST_REMOTE_UPDATE
from jira_sync_mcp.sync.models import (
    ConflictPolicy,
    DetailedSyncStatus,
    EntityType,
    MatchingReport,
    Status,
    SyncConflict,
    SyncOptions,
    SyncResult,
    SyncStatus,
    SyncStatusSummary,
    Task,
    ValidationReport,
    utcnow,
)
from jira_sync_mcp.sync.resolver import ConflictResolver, create_resolver
from jira_sync_mcp.sync.statuses import StatusReconciler
from jira_sync_mcp.sync.store import LocalStore
from jira_sync_mcp.sync.tasks import TaskReconciler
from jira_sync_mcp.validators import validate_project_key

logger = logging.getLogger(__name__)


class _RunApplier:
    """``ConflictApplier`` that writes resolutions through the engine."""

    def __init__(self, engine: SyncEngine, ctx: RunContext) -> None:
        self.engine = engine
        self.ctx = ctx

    def load(self, entity_type: EntityType, entity_id: str) -> Task | Status:
        store = self.engine.store
        entity: Task | Status | None
        if entity_type == EntityType.TASK:
            entity = store.get_task(entity_id)
        else:
            entity = store.get_status(entity_id)
        if entity is None:
            raise NotFoundError(
                f"{entity_type.value.capitalize()} {entity_id} not found"
            )
        return entity

    def _entity(self, conflict: SyncConflict) -> Task | Status:
        return self.load(conflict.entity_type, conflict.entity_id)

    def _update(self, entity: Task | Status, **fields) -> Task | Status:
        if isinstance(entity, Task):
            return self.engine.store.update_task(entity.id, **fields)
        return self.engine.store.update_status(entity.id, **fields)

    def keep_local(self, conflict: SyncConflict) -> None:
        entity = self._entity(conflict)
        if entity.sync_status == SyncStatus.FAILED:
            logger.warning(
                "Not marking %s synced: its push failed", entity.id
            )
            return
        metadata = dict(entity.external_metadata)
        remote = (
            self.ctx.remote_issues.get(entity.external_id)
            if isinstance(entity, Task) and entity.external_id
            else None
        )
        if remote is not None and remote.updated is not None:
            metadata[LAST_REMOTE_UPDATE] = remote.updated.isoformat()
        # Edits not pushed in this run stay pending for the next push
        still_pending = entity.pending_sync and (
            (conflict.entity_type, entity.id) not in self.ctx.pushed
        )
        self._update(
            entity,
            external_metadata=metadata,
            sync_status=SyncStatus.PENDING if still_pending else SyncStatus.SYNCED,
            last_synced_at=self.ctx.watermark(entity),
        )

    def take_remote(self, conflict: SyncConflict) -> None:
        entity = self._entity(conflict)
        if isinstance(entity, Task):
            self.engine.tasks.overwrite_from_remote(self.ctx, entity)
            self.ctx.tasks_pulled += 1
        else:
            self.engine.statuses.overwrite_from_remote(self.ctx, entity)
            self.ctx.statuses_pulled += 1

    def defer(self, conflict: SyncConflict) -> None:
        entity = self._entity(conflict)
        self._update(entity, sync_status=SyncStatus.PENDING)


class SyncEngine:
    """Orchestrate bidirectional sync for one local project.

    Args:
        client: Jira REST client.
        store: Local datastore.
        project_id: Local project to sync; its ``external_metadata`` must
            hold ``jira_project_key``.
        settings: Sync behaviour (issue type, default policy, timeouts).
        locks: Run lock registry shared by every engine of the process.
        clock: Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        client: JiraClient,
        store: LocalStore,
        project_id: str,
        *,
        settings: SyncConfig | None = None,
        locks: RunLockRegistry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.client = client
        self.store = store
        self.project_id = project_id
        self.settings = settings or SyncConfig(project_id=project_id)
        self.locks = locks or RunLockRegistry()
        self.clock = clock

        self.statuses = StatusReconciler(client, store)
        self.tasks = TaskReconciler(client, store)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def default_options(self) -> SyncOptions:
        return SyncOptions(
            resolve_conflicts=ConflictPolicy(self.settings.resolve_conflicts)
        )

    def perform_bidirectional_sync(
        self,
        options: SyncOptions | None = None,
        cancel: CancelToken | None = None,
    ) -> SyncResult:
        """Execute a full sync cycle.

        Args:
            options: Phase toggles and conflict policy; defaults come from
                the settings.
            cancel: Token checked between items. Defaults to one with the
                configured run timeout.

        Returns:
            A ``SyncResult``; ``success`` is False only for fatal errors.
        """
        options = options or self.default_options()
        started_at = self.clock()
        if not self.locks.try_acquire(self.project_id):
            logger.warning("Sync already in progress for %s", self.project_id)
            return SyncResult(
                success=False,
                message=f"Sync already in progress for project {self.project_id}",
                started_at=started_at,
                completed_at=self.clock(),
            )
        try:
            return self._run(
                options,
                cancel or CancelToken(self.settings.run_timeout),
                started_at,
            )
        finally:
            self.locks.release(self.project_id)

    def _run(
        self, options: SyncOptions, cancel: CancelToken, started_at: datetime
    ) -> SyncResult:
        ctx: RunContext | None = None
        try:
            project_key = self._project_key()
            resolver = create_resolver(options.resolve_conflicts)
            ctx = RunContext(
                project_id=self.project_id,
                project_key=project_key,
                options=options,
                run_start=started_at,
                cancel=cancel,
                apply_remote_on_conflict=self.settings.apply_remote_on_pull_conflict,
                issue_type=self.settings.issue_type,
                push_conflicted=resolver.allows_push(),
            )
            logger.info(
                "Starting sync of %s with %s (policy %s)",
                self.project_id,
                project_key,
                options.resolve_conflicts.value,
            )

            if options.pull_from_jira:
                self._pull(ctx)
            if options.push_to_jira:
                self._push(ctx)
            ctx.cleaned_up = cleanup_invalid_entities(self.store, self.project_id)
            if options.pull_from_jira:
                self._pull(ctx)
            self._resolve_conflicts(ctx, resolver)
        except SyncError as exc:
            logger.error("Sync of %s failed: %s", self.project_id, exc)
            return self._result(
                ctx, started_at, success=False, message=f"Sync failed: {exc}"
            )

        message = "Bidirectional sync completed"
        if ctx.failures:
            message += f" with {len(ctx.failures)} item failure(s)"
        logger.info(
            "%s: %s",
            message,
            ctx.counts.model_dump(),
        )
        return self._result(ctx, started_at, success=True, message=message)

    def _result(
        self,
        ctx: RunContext | None,
        started_at: datetime,
        *,
        success: bool,
        message: str,
    ) -> SyncResult:
        if ctx is None:
            return SyncResult(
                success=success,
                message=message,
                started_at=started_at,
                completed_at=self.clock(),
            )
        return SyncResult(
            success=success,
            message=message,
            counts=ctx.counts,
            conflicts=list(ctx.conflicts.values()),
            failures=ctx.failures,
            errors=ctx.errors,
            cleaned_up=ctx.cleaned_up,
            started_at=started_at,
            completed_at=self.clock(),
        )

    def _project_key(self) -> str:
        project = self.store.get_project(self.project_id)
        if project is None:
            raise ConfigurationError(f"Project {self.project_id} not found")
        key = project.project_key
        if not key:
            raise ConfigurationError(
                f"Project key not found in external metadata of {self.project_id}"
            )
        is_valid, reason = validate_project_key(key)
        if not is_valid:
            raise ConfigurationError(reason)
        return key

    def _pull(self, ctx: RunContext) -> None:
        if ctx.options.sync_statuses:
            self.statuses.pull(ctx)
        if ctx.options.sync_tasks:
            self.tasks.pull(ctx)

    def _push(self, ctx: RunContext) -> None:
        if ctx.options.sync_tasks:
            self.tasks.push(ctx)
        if ctx.options.sync_statuses:
            self.statuses.push(ctx)

    def _resolve_conflicts(
        self, ctx: RunContext, resolver: ConflictResolver
    ) -> None:
        applier = _RunApplier(self, ctx)
        for conflict in ctx.conflicts.values():
            ctx.cancel.raise_if_cancelled()
            try:
                resolver.resolve(conflict, applier)
            except SyncError as exc:
                if exc.fatal:
                    raise
                logger.error(
                    "Error resolving conflict for %s %s: %s",
                    conflict.entity_type.value,
                    conflict.entity_id,
                    exc,
                )
                ctx.record_failure(
                    conflict.entity_type,
                    conflict.entity_id,
                    conflict.entity_name,
                    "resolve",
                    exc,
                )

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def resolve_conflict(
        self,
        entity_type: EntityType,
        entity_id: str,
        resolution: ConflictPolicy,
    ) -> Task | Status:
        """Apply a resolution to a single entity outside a sync run.

        Raises:
            ConflictError: If a sync run for the project is in progress.
            NotFoundError: If the entity does not exist.
            ConfigurationError: If the project has no Jira key.
        """
        if not self.locks.try_acquire(self.project_id):
            raise ConflictError(
                f"Sync in progress for project {self.project_id}; retry later"
            )
        try:
            ctx = RunContext(
                project_id=self.project_id,
                project_key=self._project_key(),
                options=SyncOptions(resolve_conflicts=resolution),
                run_start=self.clock(),
                cancel=CancelToken(),
            )
            applier = _RunApplier(self, ctx)
            entity = applier.load(entity_type, entity_id)
            conflict = SyncConflict(
                entity_type=entity_type,
                entity_id=entity.id,
                entity_name=entity.name,
                local_change="operator request",
                remote_change="operator request",
                resolution=resolution,
            )
            create_resolver(resolution).resolve(conflict, applier)
            logger.info(
                "Resolved %s %s with %s",
                entity_type.value,
                entity_id,
                resolution.value,
            )
            return applier.load(entity_type, entity_id)
        finally:
            self.locks.release(self.project_id)

    def reset_failed_syncs(self) -> tuple[int, int]:
        """Flip every failed task and status back to pending.

        Returns:
            ``(tasks_reset, statuses_reset)``.
        """
        tasks = self.store.list_tasks(
            self.project_id, sync_status=SyncStatus.FAILED
        )
        for task in tasks:
            self.store.update_task(
                task.id, sync_status=SyncStatus.PENDING, pending_sync=True
            )
        statuses = self.store.list_statuses(
            self.project_id, sync_status=SyncStatus.FAILED
        )
        for status in statuses:
            self.store.update_status(
                status.id, sync_status=SyncStatus.PENDING, pending_sync=True
            )
        logger.info(
            "Reset %d failed tasks and %d failed statuses in %s",
            len(tasks),
            len(statuses),
            self.project_id,
        )
        return len(tasks), len(statuses)

    def cleanup_invalid_entities(self) -> int:
        return cleanup_invalid_entities(self.store, self.project_id)

    def mark_task_for_sync(self, task_id: str) -> Task:
        """Flag a locally edited task for the next push."""
        return self.store.update_task(
            task_id,
            pending_sync=True,
            sync_status=SyncStatus.PENDING,
            updated_at=self.clock(),
        )

    def mark_status_for_sync(self, status_id: str) -> Status:
        """Flag a locally edited status for the next push."""
        return self.store.update_status(
            status_id,
            pending_sync=True,
            sync_status=SyncStatus.PENDING,
            updated_at=self.clock(),
        )

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def get_sync_status(self) -> SyncStatusSummary:
        return inspector.get_sync_status(self.store, self.project_id)

    def get_detailed_sync_status(self) -> DetailedSyncStatus:
        return inspector.get_detailed_sync_status(self.store, self.project_id)

    def validate_sync_state(self) -> ValidationReport:
        return inspector.validate_sync_state(self.store, self.project_id)

    def debug_task_matching(self) -> MatchingReport:
        """Compare local tasks with the project's current Jira issues.

        Raises:
            ConfigurationError: If the project has no Jira key.
            SyncError: If the issues cannot be fetched.
        """
        issues = self.client.get_project_issues(self._project_key())
        return inspector.debug_task_matching(self.store, self.project_id, issues)
