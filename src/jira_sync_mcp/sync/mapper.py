"""Field translation tables between local entities and Jira.

Jira and the local datastore use different vocabularies for priorities,
status colors and status categories. This module holds the fixed tables
and the ``external_metadata`` key names, plus the pure functions that
turn remote payloads into local field dicts:

- ``priority_to_local`` / ``priority_to_remote``
- ``color_to_local`` / ``category_to_local``
- ``remote_status_fields`` / ``remote_issue_fields``

Nothing here performs I/O.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from jira_sync_mcp.converters import from_remote_markup
from jira_sync_mcp.core.models import RemoteIssue, RemoteStatus
from jira_sync_mcp.sync.models import Priority, Status, Task

# external_metadata keys
TASK_KEY = "jira_key"
STATUS_KEY = "status_name"
LAST_REMOTE_UPDATE = "last_jira_update"
REMOTE_STATUS_ID = "jira_status_id"
REMOTE_PRIORITY = "jira_priority"
REMOTE_ASSIGNEE = "jira_assignee"
STATUS_CATEGORY = "status_category"
COLOR_NAME = "color_name"
LAST_SYNC_ERROR = "last_sync_error"
LAST_SYNC_ATTEMPT = "last_sync_attempt"

_PRIORITY_FROM_REMOTE: dict[str, Priority] = {
    "highest": Priority.CRITICAL,
    "high": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "low": Priority.LOW,
    "lowest": Priority.LOW,
}

_PRIORITY_TO_REMOTE: dict[Priority, str] = {
    Priority.CRITICAL: "Highest",
    Priority.HIGH: "High",
    Priority.MEDIUM: "Medium",
    Priority.LOW: "Low",
}

_COLOR_FROM_REMOTE: dict[str, str] = {
    "medium-gray": "gray",
    "green": "green",
    "yellow": "yellow",
    "red": "red",
    "blue-gray": "blue",
    "blue": "blue",
    "orange": "orange",
    "purple": "purple",
    "pink": "pink",
    "indigo": "indigo",
    "teal": "teal",
}

_CATEGORY_FROM_REMOTE: dict[str, str] = {
    "new": "todo",
    "indeterminate": "in_progress",
    "done": "done",
}


def priority_to_local(name: str | None) -> Priority:
    """Map a Jira priority name to the local vocabulary (default medium)."""
    if not name:
        return Priority.MEDIUM
    return _PRIORITY_FROM_REMOTE.get(name.strip().lower(), Priority.MEDIUM)


def priority_to_remote(priority: Priority) -> str:
    return _PRIORITY_TO_REMOTE[priority]


def color_to_local(color_name: str | None) -> str:
    return _COLOR_FROM_REMOTE.get((color_name or "").lower(), "gray")


def category_to_local(category_key: str | None) -> str:
    return _CATEGORY_FROM_REMOTE.get((category_key or "").lower(), "todo")


# ---------------------------------------------------------------------------
# Remote payload -> local fields
# ---------------------------------------------------------------------------


def remote_status_fields(
    remote: RemoteStatus, current: Status | None
) -> dict[str, Any]:
    """Fields a pulled status writes onto its local mirror.

    The secondary key (status name), category and color name are stored in
    ``external_metadata`` alongside any keys the local record already had.
    """
    metadata = dict(current.external_metadata) if current else {}
    metadata.update(
        {
            STATUS_KEY: remote.name,
            STATUS_CATEGORY: remote.category_key,
            COLOR_NAME: remote.color_name,
        }
    )
    if remote.updated is not None:
        metadata[LAST_REMOTE_UPDATE] = remote.updated.isoformat()
    return {
        "name": remote.name,
        "color": color_to_local(remote.color_name),
        "category": category_to_local(remote.category_key),
        "external_id": remote.id,
        "external_metadata": metadata,
    }


def status_differs(local: Status, remote: RemoteStatus) -> bool:
    """True when any mirrored field of *local* disagrees with *remote*."""
    return (
        local.name != remote.name
        or local.color != color_to_local(remote.color_name)
        or local.category != category_to_local(remote.category_key)
        or local.external_id != remote.id
    )


def remote_issue_fields(
    remote: RemoteIssue,
    current: Task | None,
    status_id: str | None,
) -> dict[str, Any]:
    """Fields a pulled issue writes onto its local task.

    Args:
        remote: The issue as fetched.
        current: The local task being overwritten, or None on create.
        status_id: Local status id resolved from the issue's status; None
            keeps the task's current status.

    Raises:
        TransformError: If the description is an unrecognised document.
    """
    metadata = dict(current.external_metadata) if current else {}
    metadata.update(
        {
            TASK_KEY: remote.key,
            REMOTE_STATUS_ID: remote.status_id,
            REMOTE_PRIORITY: remote.priority,
            REMOTE_ASSIGNEE: remote.assignee,
        }
    )
    if remote.updated is not None:
        metadata[LAST_REMOTE_UPDATE] = remote.updated.isoformat()
    metadata.pop(LAST_SYNC_ERROR, None)
    fields: dict[str, Any] = {
        "name": remote.summary,
        "description": from_remote_markup(remote.description),
        "priority": priority_to_local(remote.priority),
        "due_date": remote.due_date,
        "external_id": remote.id,
        "external_metadata": metadata,
    }
    if status_id is not None:
        fields["status_id"] = status_id
    elif current is not None:
        fields["status_id"] = current.status_id
    return fields


def issue_differs(local: Task, fields: dict[str, Any]) -> bool:
    """True when applying *fields* would change the task's content."""
    return any(
        getattr(local, name) != fields[name]
        for name in ("name", "description", "priority", "due_date", "status_id")
        if name in fields
    )


def status_changed_remotely(local: Status, remote: RemoteStatus) -> bool:
    """Compare *remote* with what was mirrored at the last sync.

    Jira gives statuses no modification time. The mirrored name, category
    and color are kept in ``external_metadata``; a status never mirrored
    is compared with its local fields instead.
    """
    meta = local.external_metadata
    if STATUS_KEY not in meta:
        return status_differs(local, remote)
    return (
        meta.get(STATUS_KEY) != remote.name
        or meta.get(STATUS_CATEGORY) != remote.category_key
        or meta.get(COLOR_NAME) != remote.color_name
        or local.external_id != remote.id
    )


def failure_metadata(
    entity: Task | Status, error: str, attempted_at: datetime
) -> dict[str, Any]:
    """``external_metadata`` with the last sync error recorded."""
    metadata = dict(entity.external_metadata)
    metadata[LAST_SYNC_ERROR] = error
    metadata[LAST_SYNC_ATTEMPT] = attempted_at.isoformat()
    return metadata
