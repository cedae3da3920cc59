"""Delete half-created entities.

A push that failed after the local record was flagged as externally
tracked, but before Jira returned an id, leaves an entity that can never
be matched again. Such entities are hard-deleted.
"""

from __future__ import annotations

import logging

from jira_sync_mcp.sync.models import EntityKind
from jira_sync_mcp.sync.store import LocalStore

logger = logging.getLogger(__name__)


def cleanup_invalid_entities(store: LocalStore, project_id: str) -> int:
    """Hard-delete externally-tracked tasks and statuses with no external id.

    Returns:
        Number of deleted entities.
    """
    deleted = 0
    for task in store.list_tasks(
        project_id, entity_kind=EntityKind.EXTERNALLY_TRACKED
    ):
        if not task.external_id:
            logger.info("Deleting invalid task %s (%s)", task.id, task.name)
            store.delete_task(task.id)
            deleted += 1
    for status in store.list_statuses(
        project_id, entity_kind=EntityKind.EXTERNALLY_TRACKED
    ):
        if not status.external_id:
            logger.info("Deleting invalid status %s (%s)", status.id, status.name)
            store.delete_status(status.id)
            deleted += 1
    if deleted:
        logger.info("Cleaned up %d invalid entities in %s", deleted, project_id)
    return deleted
