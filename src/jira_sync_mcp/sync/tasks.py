"""Task reconciliation: pull Jira issues into local tasks, push local tasks.

Pull resolves each remote issue to a local task (stable id first, issue
key second), classifies the pair against the task's watermark and then
overwrites, records a conflict, or creates a new local task.

Push runs in two phases:

1. **Create**: tasks without an ``external_id`` become new issues; the
   returned id and key are written back.
2. **Update**: tasks with an ``external_id`` and ``pending_sync`` are
   written to Jira, moving the issue through the workflow transition that
   leads to the task's status when one exists.

Every remote call is made one item at a time. A failing item is marked
``failed`` with the error and a timestamp and the batch continues; only
fatal errors (auth, cancellation) escape.
"""

from __future__ import annotations

import logging
import uuid

from jira_sync_mcp.converters import to_remote_markup
from jira_sync_mcp.core.client import JiraClient
from jira_sync_mcp.core.models import RemoteIssue
from jira_sync_mcp.errors import NotFoundError, SyncError
from jira_sync_mcp.sync.context import RunContext
from jira_sync_mcp.sync.detector import ChangeClass, classify, has_local_change
from jira_sync_mcp.sync.identity import IdentityIndex
from jira_sync_mcp.sync.mapper import (
    LAST_REMOTE_UPDATE,
    LAST_SYNC_ERROR,
    REMOTE_PRIORITY,
    REMOTE_STATUS_ID,
    TASK_KEY,
    failure_metadata,
    issue_differs,
    priority_to_remote,
    remote_issue_fields,
)
from jira_sync_mcp.sync.models import (
    EntityKind,
    EntityType,
    SyncStatus,
    Task,
    utcnow,
)
from jira_sync_mcp.sync.statuses import status_id_map
from jira_sync_mcp.sync.store import LocalStore

logger = logging.getLogger(__name__)


def _is_fatal(exc: Exception) -> bool:
    return isinstance(exc, SyncError) and exc.fatal


class TaskReconciler:
    """Pull and push for tasks.

    Args:
        client: Jira REST client.
        store: Local datastore.
    """

    def __init__(self, client: JiraClient, store: LocalStore) -> None:
        self.client = client
        self.store = store

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def pull(self, ctx: RunContext) -> None:
        """Pull every issue of the project into local tasks."""
        try:
            issues = self.client.get_project_issues(ctx.project_key)
        except Exception as exc:
            if _is_fatal(exc):
                raise
            ctx.record_error(
                f"Failed to fetch issues for {ctx.project_key}: {exc}"
            )
            return

        statuses = status_id_map(self.store, ctx.project_id)
        index: IdentityIndex[Task] = IdentityIndex(
            self.store.list_tasks(
                ctx.project_id, entity_kind=EntityKind.EXTERNALLY_TRACKED
            ),
            TASK_KEY,
        )
        for remote in issues:
            ctx.cancel.raise_if_cancelled()
            ctx.remote_issues[remote.id] = remote
            try:
                if self._pull_one(ctx, index, statuses, remote):
                    ctx.tasks_pulled += 1
            except Exception as exc:
                if _is_fatal(exc):
                    raise
                logger.error("Error processing Jira issue %s: %s", remote.key, exc)
                local = index.lookup(remote.id, remote.key)
                if local is not None:
                    self._mark_failed(local, exc)
                ctx.record_failure(
                    EntityType.TASK,
                    local.id if local else remote.id,
                    local.name if local else remote.summary,
                    "pull",
                    exc,
                )

    def _pull_one(
        self,
        ctx: RunContext,
        index: IdentityIndex[Task],
        statuses: dict[str, str],
        remote: RemoteIssue,
    ) -> bool:
        """Reconcile one issue. Returns True if local data changed."""
        local = index.resolve(
            remote.id, remote.key, lambda t: self._repair(t, remote)
        )
        if local is None:
            return self._create_local(ctx, index, statuses, remote)

        # Our own push moved Jira's "updated"; remember it, write nothing
        if (EntityType.TASK, local.id) in ctx.pushed and not has_local_change(
            local
        ):
            index.replace(self._record_remote_seen(local, remote))
            return False

        if ctx.is_conflicted(EntityType.TASK, local.id):
            return False

        change = classify(local, remote.updated)
        if change is ChangeClass.CONFLICT:
            ctx.record_conflict(
                EntityType.TASK,
                local,
                local_change=f"Last modified locally: {local.updated_at.isoformat()}",
                remote_change=f"{remote.key} last modified in Jira: "
                f"{remote.updated.isoformat() if remote.updated else 'unknown'}",
            )
            if not ctx.apply_remote_on_conflict:
                return False
        elif change is not ChangeClass.REMOTE_CHANGED:
            return False

        changed, updated = self._apply_remote(ctx, local, remote, statuses)
        index.replace(updated)
        return changed

    def _apply_remote(
        self,
        ctx: RunContext,
        local: Task,
        remote: RemoteIssue,
        statuses: dict[str, str],
    ) -> tuple[bool, Task]:
        status_id = statuses.get(remote.status_id) if remote.status_id else None
        if remote.status_id and status_id is None:
            logger.warning(
                "No local status for Jira status %s (%s) on %s; keeping current status",
                remote.status_id,
                remote.status_name,
                remote.key,
            )
        fields = remote_issue_fields(remote, local, status_id)
        if not issue_differs(local, fields):
            return False, self.store.update_task(
                local.id, external_metadata=fields["external_metadata"]
            )
        updated = self.store.update_task(
            local.id,
            **fields,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=ctx.watermark(local),
        )
        logger.info("Updated task %s from %s", local.id, remote.key)
        return True, updated

    def _repair(self, task: Task, remote: RemoteIssue) -> Task:
        metadata = dict(task.external_metadata)
        metadata[TASK_KEY] = remote.key
        return self.store.update_task(
            task.id, external_id=remote.id, external_metadata=metadata
        )

    def _record_remote_seen(self, task: Task, remote: RemoteIssue) -> Task:
        metadata = dict(task.external_metadata)
        metadata[TASK_KEY] = remote.key
        metadata[REMOTE_STATUS_ID] = remote.status_id
        if remote.updated is not None:
            metadata[LAST_REMOTE_UPDATE] = remote.updated.isoformat()
        return self.store.update_task(task.id, external_metadata=metadata)

    def _create_local(
        self,
        ctx: RunContext,
        index: IdentityIndex[Task],
        statuses: dict[str, str],
        remote: RemoteIssue,
    ) -> bool:
        status_id = statuses.get(remote.status_id) if remote.status_id else None
        if status_id is None:
            logger.warning(
                "Status not found for new Jira issue %s (status %s), skipping creation",
                remote.key,
                remote.status_name,
            )
            return False
        created = self.store.add_task(
            Task(
                id=str(uuid.uuid4()),
                project_id=ctx.project_id,
                entity_kind=EntityKind.EXTERNALLY_TRACKED,
                sync_status=SyncStatus.SYNCED,
                pending_sync=False,
                last_synced_at=ctx.run_start,
                updated_at=ctx.run_start,
                **remote_issue_fields(remote, None, status_id),
            )
        )
        index.replace(created)
        logger.info("Created local task %s from %s", created.id, remote.key)
        return True

    def overwrite_from_remote(self, ctx: RunContext, task: Task) -> Task:
        """Re-fetch the issue and overwrite *task* with it.

        Raises:
            NotFoundError: If the task has no Jira id or the issue is gone.
        """
        if not task.external_id:
            raise NotFoundError(f"Task {task.id} has no Jira id")
        remote = self.client.get_issue(task.external_id)
        ctx.remote_issues[remote.id] = remote
        statuses = status_id_map(self.store, ctx.project_id)
        status_id = statuses.get(remote.status_id) if remote.status_id else None
        return self.store.update_task(
            task.id,
            **remote_issue_fields(remote, task, status_id),
            sync_status=SyncStatus.SYNCED,
            pending_sync=False,
            last_synced_at=ctx.watermark(task),
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self, ctx: RunContext) -> None:
        """Create new issues, then update changed ones."""
        self._push_creates(ctx)
        self._push_updates(ctx)

    def _push_creates(self, ctx: RunContext) -> None:
        # Failed tasks in either phase wait for reset_failed_syncs
        candidates = [
            t
            for t in self.store.list_tasks(ctx.project_id)
            if not t.external_id and t.sync_status != SyncStatus.FAILED
        ]
        for task in candidates:
            ctx.cancel.raise_if_cancelled()
            try:
                self._create_remote(ctx, task)
            except Exception as exc:
                if _is_fatal(exc):
                    raise
                logger.error(
                    "Failed to create Jira issue for task %s: %s", task.id, exc
                )
                self._mark_failed(task, exc)
                ctx.record_failure(
                    EntityType.TASK, task.id, task.name, "create", exc
                )
                continue
            ctx.tasks_pushed += 1
            ctx.pushed.add((EntityType.TASK, task.id))

    def _create_remote(self, ctx: RunContext, task: Task) -> Task:
        priority = priority_to_remote(task.priority)
        created = self.client.create_issue(
            ctx.project_key,
            task.name,
            to_remote_markup(task.description),
            issue_type=ctx.issue_type,
            priority=priority,
        )
        metadata = dict(task.external_metadata)
        metadata.pop(LAST_SYNC_ERROR, None)
        metadata[TASK_KEY] = created.key
        metadata[REMOTE_PRIORITY] = priority
        target = self._target_status(task)
        if target and self._transition_new_issue(created.key, target):
            metadata[REMOTE_STATUS_ID] = target
        return self.store.update_task(
            task.id,
            external_id=created.id,
            external_metadata=metadata,
            entity_kind=EntityKind.EXTERNALLY_TRACKED,
            sync_status=SyncStatus.SYNCED,
            pending_sync=False,
            last_synced_at=ctx.watermark(task),
        )

    def _transition_new_issue(self, issue_key: str, target: str) -> bool:
        """Move a freshly created issue to the task's status, best effort."""
        transition_id = self._find_transition(issue_key, target)
        if transition_id is None:
            return False
        try:
            self.client.transition_issue(issue_key, transition_id)
        except SyncError as exc:
            if exc.fatal:
                raise
            logger.warning(
                "Could not move new issue %s to status %s: %s",
                issue_key,
                target,
                exc,
            )
            return False
        return True

    def _push_updates(self, ctx: RunContext) -> None:
        candidates = [
            t
            for t in self.store.list_tasks(ctx.project_id, pending_sync=True)
            if t.external_id and t.sync_status != SyncStatus.FAILED
        ]
        for task in candidates:
            ctx.cancel.raise_if_cancelled()
            if (
                ctx.is_conflicted(EntityType.TASK, task.id)
                and not ctx.push_conflicted
            ):
                logger.info("Skipping push of conflicted task %s", task.id)
                continue
            try:
                self._update_remote(ctx, task)
            except Exception as exc:
                if _is_fatal(exc):
                    raise
                logger.error(
                    "Failed to update Jira issue for task %s: %s", task.id, exc
                )
                self._mark_failed(task, exc)
                ctx.record_failure(
                    EntityType.TASK, task.id, task.name, "update", exc
                )
                continue
            ctx.tasks_pushed += 1
            ctx.pushed.add((EntityType.TASK, task.id))

    def _update_remote(self, ctx: RunContext, task: Task) -> Task:
        issue_ref = task.external_metadata.get(TASK_KEY) or task.external_id
        if issue_ref is None:
            raise NotFoundError(f"Task {task.id} has no Jira id")
        priority = priority_to_remote(task.priority)

        transition_id = None
        target = self._target_status(task)
        if target and target != task.external_metadata.get(REMOTE_STATUS_ID):
            transition_id = self._find_transition(issue_ref, target)
            if transition_id is None:
                logger.warning(
                    "No transition on %s leads to status %s; updating other fields only",
                    issue_ref,
                    target,
                )

        self.client.update_issue(
            issue_ref,
            task.name,
            to_remote_markup(task.description),
            priority=priority,
            transition_id=transition_id,
        )

        metadata = dict(task.external_metadata)
        metadata.pop(LAST_SYNC_ERROR, None)
        metadata[REMOTE_PRIORITY] = priority
        if transition_id is not None:
            metadata[REMOTE_STATUS_ID] = target
        return self.store.update_task(
            task.id,
            external_metadata=metadata,
            sync_status=SyncStatus.SYNCED,
            pending_sync=False,
            last_synced_at=ctx.watermark(task),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _target_status(self, task: Task) -> str | None:
        """Jira status id of the task's local status, if it has one."""
        if not task.status_id:
            return None
        status = self.store.get_status(task.status_id)
        return status.external_id if status else None

    def _find_transition(self, issue_ref: str, target: str) -> str | None:
        try:
            transitions = self.client.get_issue_transitions(issue_ref)
        except SyncError as exc:
            if exc.fatal:
                raise
            logger.warning("Failed to get transitions for %s: %s", issue_ref, exc)
            return None
        for transition in transitions:
            if transition.to_status_id == target:
                return transition.id
        return None

    def _mark_failed(self, task: Task, exc: Exception) -> None:
        self.store.update_task(
            task.id,
            sync_status=SyncStatus.FAILED,
            external_metadata=failure_metadata(task, str(exc), utcnow()),
        )
