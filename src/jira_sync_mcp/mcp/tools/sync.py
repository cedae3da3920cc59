"""MCP tool handlers for bidirectional Jira sync.

Defines the sync tools:

- ``jira_sync`` -- run a full pull/push/pull cycle.
- ``jira_sync_status`` -- pending and failed entities.
- ``jira_sync_validate`` -- identity anomalies in the local store.
- ``jira_sync_debug_matching`` -- how local tasks line up with Jira issues.
- ``jira_sync_reset_failed`` -- flip failed entities back to pending.
- ``jira_sync_cleanup`` -- delete half-created entities.
- ``jira_sync_resolve_conflict`` -- resolve one entity outside a run.
"""

from __future__ import annotations

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.engine import SyncEngine
from ...sync.models import ConflictPolicy, EntityType, SyncOptions
from ...sync.reporter import (
    format_matching_report,
    format_sync_result,
    format_sync_status,
    format_validation_report,
    result_to_json,
)
from .registry import SYNC_ADMIN, SYNC_RUN, SYNC_VIEW, ToolSpec

logger = logging.getLogger(__name__)

_POLICIES = [policy.value for policy in ConflictPolicy]


def _text_result(
    text: str, structured: dict[str, Any], is_error: bool = False
) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
        isError=is_error,
    )


def _options_from_args(
    engine: SyncEngine, args: dict[str, Any]
) -> SyncOptions:
    """Overlay tool arguments on the engine's default options.

    Raises:
        ValueError: If a toggle is not a boolean or ``resolve_conflicts``
            is not a known policy.
    """
    defaults = engine.default_options()
    updates: dict[str, Any] = {}
    for flag in (
        "push_to_jira",
        "pull_from_jira",
        "sync_tasks",
        "sync_statuses",
    ):
        if flag in args:
            value = args[flag]
            if not isinstance(value, bool):
                raise ValueError(
                    f"{flag} must be true or false, got {value!r}"
                )
            updates[flag] = value
    if args.get("resolve_conflicts"):
        updates["resolve_conflicts"] = ConflictPolicy(args["resolve_conflicts"])
    return defaults.model_copy(update=updates)


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_jira_sync(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync`` tool."""
    options = _options_from_args(engine, args)
    result = await run_sync(engine.perform_bidirectional_sync, options)
    return _text_result(
        format_sync_result(result),
        result_to_json(result),
        is_error=not result.success,
    )


async def _handle_sync_status(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_status`` tool."""
    summary = await run_sync(engine.get_sync_status)
    detailed = await run_sync(engine.get_detailed_sync_status)
    structured = {
        "projectId": engine.project_id,
        "hasPendingChanges": summary.has_pending_changes,
        "hasFailedSyncs": detailed.has_failed_syncs,
        "tasks": detailed.tasks.model_dump(),
        "statuses": detailed.statuses.model_dump(),
        "pendingTasks": [t.id for t in summary.pending_tasks],
        "pendingStatuses": [s.id for s in summary.pending_statuses],
        "failedTasks": [t.id for t in detailed.failed_tasks],
        "failedStatuses": [s.id for s in detailed.failed_statuses],
    }
    return _text_result(format_sync_status(summary, detailed), structured)


async def _handle_sync_validate(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_validate`` tool."""
    report = await run_sync(engine.validate_sync_state)
    return _text_result(
        format_validation_report(report), report.model_dump(mode="json")
    )


async def _handle_debug_matching(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_debug_matching`` tool."""
    report = await run_sync(engine.debug_task_matching)
    return _text_result(
        format_matching_report(report), report.model_dump(mode="json")
    )


async def _handle_reset_failed(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_reset_failed`` tool."""
    tasks, statuses = await run_sync(engine.reset_failed_syncs)
    text = f"Reset {tasks} failed task(s) and {statuses} failed status(es) to pending."
    return _text_result(text, {"tasksReset": tasks, "statusesReset": statuses})


async def _handle_cleanup(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_cleanup`` tool."""
    deleted = await run_sync(engine.cleanup_invalid_entities)
    return _text_result(
        f"Deleted {deleted} invalid entit{'y' if deleted == 1 else 'ies'}.",
        {"cleanedUp": deleted},
    )


async def _handle_resolve_conflict(
    engine: SyncEngine, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``jira_sync_resolve_conflict`` tool.

    Raises:
        ValueError: If an argument is missing or not one of the allowed values.
    """
    for required in ("entity_type", "entity_id", "resolution"):
        if not args.get(required):
            raise ValueError(f"{required} is required")
    entity_type = EntityType(args["entity_type"])
    resolution = ConflictPolicy(args["resolution"])
    entity = await run_sync(
        engine.resolve_conflict, entity_type, args["entity_id"], resolution
    )
    text = (
        f"Resolved {entity_type.value} {entity.name} ({entity.id}) "
        f"with '{resolution.value}': sync status is now {entity.sync_status.value}."
    )
    structured = {
        "entityType": entity_type.value,
        "entityId": entity.id,
        "resolution": resolution.value,
        "syncStatus": entity.sync_status.value,
        "pendingSync": entity.pending_sync,
    }
    return _text_result(text, structured)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


_NO_ARGS: dict[str, Any] = {"type": "object", "properties": {}, "required": []}

SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="jira_sync",
            description=(
                "Run a bidirectional sync between the local project and its "
                "Jira project: pull remote changes, push local edits, then "
                "pull again. Reports counts, conflicts and per-item failures."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "push_to_jira": {
                        "type": "boolean",
                        "default": True,
                        "description": "Send local changes to Jira",
                    },
                    "pull_from_jira": {
                        "type": "boolean",
                        "default": True,
                        "description": "Apply Jira changes locally",
                    },
                    "sync_tasks": {
                        "type": "boolean",
                        "default": True,
                        "description": "Include tasks",
                    },
                    "sync_statuses": {
                        "type": "boolean",
                        "default": True,
                        "description": "Include workflow statuses",
                    },
                    "resolve_conflicts": {
                        "type": "string",
                        "enum": _POLICIES,
                        "description": (
                            "Conflict policy: local keeps local edits, remote "
                            "takes Jira's version, manual defers to an operator. "
                            "Defaults to the configured policy."
                        ),
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({SYNC_RUN}),
        handler=_handle_jira_sync,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_status",
            description=(
                "Show pending and failed tasks and statuses of the synced project."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema=_NO_ARGS,
        ),
        permissions=frozenset({SYNC_VIEW}),
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_validate",
            description=(
                "Check the local sync state for duplicate identities, "
                "orphaned keys and half-created entities. Never modifies data."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema=_NO_ARGS,
        ),
        permissions=frozenset({SYNC_VIEW}),
        handler=_handle_sync_validate,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_debug_matching",
            description=(
                "Fetch the project's Jira issues and show which local tasks "
                "match them by id or by issue key."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema=_NO_ARGS,
        ),
        permissions=frozenset({SYNC_VIEW}),
        handler=_handle_debug_matching,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_reset_failed",
            description=(
                "Mark every failed task and status as pending so the next "
                "sync retries them."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema=_NO_ARGS,
        ),
        permissions=frozenset({SYNC_ADMIN}),
        handler=_handle_reset_failed,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_cleanup",
            description=(
                "Delete externally-tracked tasks and statuses that never "
                "received a Jira id."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema=_NO_ARGS,
        ),
        permissions=frozenset({SYNC_ADMIN}),
        handler=_handle_cleanup,
    ),
    ToolSpec(
        tool=types.Tool(
            name="jira_sync_resolve_conflict",
            description=(
                "Resolve a conflicted task or status: 'local' keeps the local "
                "version for the next push, 'remote' overwrites it from Jira, "
                "'manual' leaves it pending."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "entity_type": {
                        "type": "string",
                        "enum": [t.value for t in EntityType],
                        "description": "Kind of entity",
                    },
                    "entity_id": {
                        "type": "string",
                        "description": "Local id of the task or status",
                    },
                    "resolution": {
                        "type": "string",
                        "enum": _POLICIES,
                        "description": "Resolution to apply",
                    },
                },
                "required": ["entity_type", "entity_id", "resolution"],
            },
        ),
        permissions=frozenset({SYNC_ADMIN}),
        handler=_handle_resolve_conflict,
    ),
]
