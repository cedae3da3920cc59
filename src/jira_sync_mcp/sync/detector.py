"""Classify a matched local/remote pair by which side changed.

Local changes are measured against the entity's ``last_synced_at``
watermark. Remote changes are measured against the later of that
watermark and the last remote ``updated`` value the engine already
consumed (``last_jira_update``), so a pull followed by an unchanged
second pull does not see the same remote edit twice.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum

from jira_sync_mcp.core.models import parse_timestamp
from jira_sync_mcp.errors import TransformError
from jira_sync_mcp.sync.mapper import LAST_REMOTE_UPDATE
from jira_sync_mcp.sync.models import EPOCH, Status, Task

logger = logging.getLogger(__name__)


class ChangeClass(str, Enum):
    UNCHANGED = "unchanged"
    LOCAL_CHANGED = "local-changed"
    REMOTE_CHANGED = "remote-changed"
    CONFLICT = "conflict"


def local_watermark(entity: Task | Status) -> datetime:
    return entity.last_synced_at or EPOCH


def remote_watermark(entity: Task | Status) -> datetime:
    """The point after which a remote ``updated`` counts as new."""
    mark = local_watermark(entity)
    raw = entity.external_metadata.get(LAST_REMOTE_UPDATE)
    if raw:
        try:
            consumed = parse_timestamp(raw)
        except TransformError:
            logger.warning(
                "Ignoring unreadable %s on %s: %r",
                LAST_REMOTE_UPDATE,
                entity.id,
                raw,
            )
            consumed = None
        if consumed is not None and consumed > mark:
            mark = consumed
    return mark


def has_local_change(entity: Task | Status) -> bool:
    return entity.updated_at > local_watermark(entity)


def has_remote_change(
    entity: Task | Status,
    remote_updated: datetime | None,
    *,
    remote_differs: bool | None = None,
) -> bool:
    """Whether the remote side changed since the entity was last synced.

    When the tracker gives no timestamp, *remote_differs* (a field
    comparison done by the caller) decides.
    """
    if remote_updated is None:
        return bool(remote_differs)
    return remote_updated > remote_watermark(entity)


def classify(
    entity: Task | Status,
    remote_updated: datetime | None,
    *,
    remote_differs: bool | None = None,
) -> ChangeClass:
    """Classify a matched pair.

    Args:
        entity: The local entity.
        remote_updated: Remote modification time, or None if unknown.
        remote_differs: Field comparison result used when
            *remote_updated* is None.
    """
    local = has_local_change(entity)
    remote = has_remote_change(
        entity, remote_updated, remote_differs=remote_differs
    )
    match (local, remote):
        case (True, True):
            return ChangeClass.CONFLICT
        case (True, False):
            return ChangeClass.LOCAL_CHANGED
        case (False, True):
            return ChangeClass.REMOTE_CHANGED
        case _:
            return ChangeClass.UNCHANGED
