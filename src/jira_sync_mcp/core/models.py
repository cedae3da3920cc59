"""Typed views of Jira REST payloads.

The REST API returns loosely-shaped JSON. Each remote entity the sync
engine reads is parsed into an explicit frozen model here; payloads that
lack the fields we rely on are rejected with ``TransformError`` instead of
being accessed optimistically.

- ``RemoteIssue``: an issue from ``/search`` or ``/issue/{id}``.
- ``RemoteStatus``: a workflow status from ``/project/{key}/statuses``.
- ``Transition``: a workflow transition from ``/issue/{key}/transitions``.
- ``CreatedIssue``: the id/key pair returned by ``POST /issue``.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any

from pydantic import BaseModel, ValidationError

from ..errors import TransformError

# Jira emits "+0000" offsets; fromisoformat wants "+00:00"
_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a Jira timestamp into an aware UTC ``datetime``.

    Accepts ``datetime`` objects, ISO 8601 strings with ``Z``, ``+00:00``
    or ``+0000`` offsets, and ``None``. Naive values are assumed UTC.

    Raises:
        TransformError: If *value* is not a recognisable timestamp.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip().replace("Z", "+00:00")
        text = _COMPACT_OFFSET.sub(r"\1:\2", text)
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise TransformError(
                f"Unrecognised timestamp: {value!r}"
            ) from None
    else:
        raise TransformError(f"Unrecognised timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _require_dict(payload: Any, what: str) -> dict[str, Any]:
    if not isinstance(payload, dict):
        raise TransformError(
            f"Expected {what} object, got {type(payload).__name__}"
        )
    return payload


def _string_id(value: Any) -> str | None:
    """Jira ids arrive as strings or numbers; null and empty stay missing."""
    if value is None or value == "":
        return None
    return str(value)


def _build(model: type[BaseModel], data: dict[str, Any], what: str):
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise TransformError(f"Malformed {what} payload: {exc}") from exc


class RemoteIssue(BaseModel):
    """An issue as seen by the sync engine.

    Attributes:
        id: Stable numeric id (as a string).
        key: Human-readable key such as ``ABC-12``.
        summary: Issue title.
        description: Wiki markup (API v2), an ADF document (API v3), or None.
        status_id: Id of the current workflow status.
        status_name: Name of the current workflow status.
        priority: Priority name (``Highest`` .. ``Lowest``), if set.
        assignee: Assignee display name, if assigned.
        created: Creation timestamp.
        updated: Last modification timestamp.
        due_date: Due date, if set.
    """

    id: str
    key: str
    summary: str
    description: str | dict[str, Any] | None = None
    status_id: str | None = None
    status_name: str | None = None
    priority: str | None = None
    assignee: str | None = None
    created: datetime | None = None
    updated: datetime | None = None
    due_date: date | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, payload: Any) -> RemoteIssue:
        """Parse an issue JSON object.

        Raises:
            TransformError: If required fields are missing or malformed.
        """
        data = _require_dict(payload, "issue")
        fields = _require_dict(data.get("fields"), "issue.fields")
        status = fields.get("status") or {}
        priority = fields.get("priority") or {}
        assignee = fields.get("assignee") or {}
        if not isinstance(status, dict) or not isinstance(priority, dict):
            raise TransformError(
                f"Malformed status/priority on issue {data.get('key')!r}"
            )
        return _build(
            cls,
            {
                "id": _string_id(data.get("id")),
                "key": data.get("key"),
                "summary": fields.get("summary"),
                "description": fields.get("description"),
                "status_id": status.get("id"),
                "status_name": status.get("name"),
                "priority": priority.get("name"),
                "assignee": assignee.get("displayName")
                if isinstance(assignee, dict)
                else None,
                "created": parse_timestamp(fields.get("created")),
                "updated": parse_timestamp(fields.get("updated")),
                "due_date": fields.get("duedate"),
            },
            "issue",
        )


class RemoteStatus(BaseModel):
    """A workflow status definition.

    Jira does not expose a modification time for statuses, so ``updated``
    is normally ``None`` and changes are detected by field comparison.
    """

    id: str
    name: str
    category_key: str = "new"
    color_name: str = "medium-gray"
    updated: datetime | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, payload: Any) -> RemoteStatus:
        data = _require_dict(payload, "status")
        category = data.get("statusCategory") or {}
        if not isinstance(category, dict):
            raise TransformError(
                f"Malformed statusCategory on status {data.get('name')!r}"
            )
        return _build(
            cls,
            {
                "id": _string_id(data.get("id")),
                "name": data.get("name"),
                "category_key": category.get("key") or "new",
                "color_name": category.get("colorName") or "medium-gray",
            },
            "status",
        )


class Transition(BaseModel):
    """A transition available from an issue's current status."""

    id: str
    name: str
    to_status_id: str
    to_status_name: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, payload: Any) -> Transition:
        data = _require_dict(payload, "transition")
        target = _require_dict(data.get("to"), "transition.to")
        return _build(
            cls,
            {
                "id": _string_id(data.get("id")),
                "name": data.get("name"),
                "to_status_id": _string_id(target.get("id")),
                "to_status_name": target.get("name"),
            },
            "transition",
        )


class CreatedIssue(BaseModel):
    """Identity returned after creating an issue."""

    id: str
    key: str

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, payload: Any) -> CreatedIssue:
        data = _require_dict(payload, "created issue")
        return _build(
            cls,
            {"id": _string_id(data.get("id")), "key": data.get("key")},
            "created issue",
        )
