"""Workflow status reconciliation.

Pull mirrors the project's Jira statuses into local statuses, matched by
id then by name. Push only confirms pending local edits: Jira workflow
statuses cannot be changed with ordinary API permissions, so local status
edits are marked synced without touching the remote side.
"""

from __future__ import annotations

import logging
import uuid

from jira_sync_mcp.core.client import JiraClient
from jira_sync_mcp.core.models import RemoteStatus
from jira_sync_mcp.errors import NotFoundError, SyncError
from jira_sync_mcp.sync.context import RunContext
from jira_sync_mcp.sync.detector import ChangeClass, classify
from jira_sync_mcp.sync.identity import IdentityIndex
from jira_sync_mcp.sync.mapper import (
    STATUS_KEY,
    failure_metadata,
    remote_status_fields,
    status_changed_remotely,
    status_differs,
)
from jira_sync_mcp.sync.models import (
    EntityKind,
    EntityType,
    Status,
    SyncStatus,
    utcnow,
)
from jira_sync_mcp.sync.store import LocalStore

logger = logging.getLogger(__name__)


def status_id_map(store: LocalStore, project_id: str) -> dict[str, str]:
    """Map Jira status ids to local status ids for one project."""
    mapping: dict[str, str] = {}
    for status in store.list_statuses(project_id):
        if status.external_id:
            mapping.setdefault(status.external_id, status.id)
    return mapping


class StatusReconciler:
    """Pull and push for workflow statuses.

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
        """Mirror remote statuses into the project; per-item failures are recorded."""
        try:
            remote_statuses = self.client.get_project_statuses(ctx.project_key)
        except Exception as exc:
            if isinstance(exc, SyncError) and exc.fatal:
                raise
            ctx.record_error(
                f"Failed to fetch statuses for {ctx.project_key}: {exc}"
            )
            return

        index: IdentityIndex[Status] = IdentityIndex(
            self.store.list_statuses(ctx.project_id),
            STATUS_KEY,
            case_insensitive=True,
        )
        for remote in remote_statuses:
            ctx.cancel.raise_if_cancelled()
            ctx.remote_statuses[remote.id] = remote
            try:
                if self._pull_one(ctx, index, remote):
                    ctx.statuses_pulled += 1
            except Exception as exc:
                if isinstance(exc, SyncError) and exc.fatal:
                    raise
                logger.error("Error pulling status %s: %s", remote.name, exc)
                local = index.lookup(remote.id, remote.name)
                if local is not None:
                    self._mark_failed(local, exc)
                ctx.record_failure(
                    EntityType.STATUS,
                    local.id if local else remote.id,
                    remote.name,
                    "pull",
                    exc,
                )

    def _pull_one(
        self,
        ctx: RunContext,
        index: IdentityIndex[Status],
        remote: RemoteStatus,
    ) -> bool:
        """Reconcile one remote status. Returns True if local data changed."""
        local = index.resolve(
            remote.id, remote.name, lambda s: self._repair(s, remote)
        )
        if local is None:
            created = self._create(ctx, remote)
            index.replace(created)
            logger.info("Created local status %s from Jira", remote.name)
            return True

        if ctx.is_conflicted(EntityType.STATUS, local.id):
            return False

        change = classify(
            local,
            remote.updated,
            remote_differs=status_changed_remotely(local, remote),
        )
        if change is ChangeClass.CONFLICT:
            ctx.record_conflict(
                EntityType.STATUS,
                local,
                local_change=f"Edited locally at {local.updated_at.isoformat()}",
                remote_change=f"Jira status now '{remote.name}' ({remote.category_key})",
            )
            if not ctx.apply_remote_on_conflict:
                return False
        elif change is not ChangeClass.REMOTE_CHANGED:
            return False

        fields = remote_status_fields(remote, local)
        if not status_differs(local, remote):
            # Mirror metadata only; content already matches
            index.replace(
                self.store.update_status(
                    local.id, external_metadata=fields["external_metadata"]
                )
            )
            return False

        updated = self.store.update_status(
            local.id,
            **fields,
            sync_status=SyncStatus.SYNCED,
            last_synced_at=ctx.watermark(local),
        )
        index.replace(updated)
        logger.info("Updated status %s from Jira", remote.name)
        return True

    def _repair(self, status: Status, remote: RemoteStatus) -> Status:
        metadata = dict(status.external_metadata)
        metadata[STATUS_KEY] = remote.name
        return self.store.update_status(
            status.id,
            external_id=remote.id,
            external_metadata=metadata,
            entity_kind=EntityKind.EXTERNALLY_TRACKED,
        )

    def _create(self, ctx: RunContext, remote: RemoteStatus) -> Status:
        existing = self.store.list_statuses(ctx.project_id)
        position = max((s.position for s in existing), default=-1) + 1
        return self.store.add_status(
            Status(
                id=str(uuid.uuid4()),
                project_id=ctx.project_id,
                entity_kind=EntityKind.EXTERNALLY_TRACKED,
                sync_status=SyncStatus.SYNCED,
                pending_sync=False,
                last_synced_at=ctx.run_start,
                updated_at=ctx.run_start,
                position=position,
                **remote_status_fields(remote, None),
            )
        )

    # ------------------------------------------------------------------
    # Push
    # ------------------------------------------------------------------

    def push(self, ctx: RunContext) -> None:
        """Confirm pending local status edits without mutating Jira."""
        pending = self.store.list_statuses(
            ctx.project_id,
            entity_kind=EntityKind.EXTERNALLY_TRACKED,
            pending_sync=True,
        )
        for status in pending:
            ctx.cancel.raise_if_cancelled()
            if not status.external_id:
                continue
            if (
                ctx.is_conflicted(EntityType.STATUS, status.id)
                and not ctx.push_conflicted
            ):
                logger.info("Skipping push of conflicted status %s", status.id)
                continue
            try:
                self.store.update_status(
                    status.id,
                    sync_status=SyncStatus.SYNCED,
                    pending_sync=False,
                    last_synced_at=ctx.watermark(status),
                )
            except Exception as exc:
                if isinstance(exc, SyncError) and exc.fatal:
                    raise
                logger.error("Failed to push status %s: %s", status.id, exc)
                self._mark_failed(status, exc)
                ctx.record_failure(
                    EntityType.STATUS, status.id, status.name, "push", exc
                )
                continue
            ctx.statuses_pushed += 1
            ctx.pushed.add((EntityType.STATUS, status.id))

    # ------------------------------------------------------------------
    # Resolution helpers
    # ------------------------------------------------------------------

    def overwrite_from_remote(self, ctx: RunContext, status: Status) -> Status:
        """Re-fetch the project's statuses and overwrite *status* from Jira.

        Raises:
            NotFoundError: If the status no longer exists in Jira.
        """
        if not status.external_id:
            raise NotFoundError(f"Status {status.id} has no Jira id")
        self.client.invalidate_statuses(ctx.project_key)
        for remote in self.client.get_project_statuses(ctx.project_key):
            if remote.id == status.external_id:
                return self.store.update_status(
                    status.id,
                    **remote_status_fields(remote, status),
                    sync_status=SyncStatus.SYNCED,
                    pending_sync=False,
                    last_synced_at=ctx.watermark(status),
                )
        raise NotFoundError(
            f"Jira status {status.external_id} not found in {ctx.project_key}"
        )

    def _mark_failed(self, status: Status, exc: Exception) -> None:
        self.store.update_status(
            status.id,
            sync_status=SyncStatus.FAILED,
            external_metadata=failure_metadata(status, str(exc), utcnow()),
        )
