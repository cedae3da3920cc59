"""Sync report formatting functions.

Provides human-readable and machine-readable output for sync operations:

- ``format_sync_result`` -- full post-sync summary.
- ``format_sync_status`` -- pending/failed overview.
- ``format_validation_report`` -- identity anomalies.
- ``format_matching_report`` -- local task to Jira issue matching.
- ``result_to_json`` -- structured dict for MCP tool output.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import (
        DetailedSyncStatus,
        MatchingReport,
        SyncResult,
        SyncStatusSummary,
        ValidationReport,
    )


def _timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_sync_result(result: SyncResult) -> str:
    """Format a complete sync result as human-readable text.

    Sections are only included when they contain at least one entry.

    Args:
        result: The completed sync result.

    Returns:
        Multi-line formatted string.
    """
    lines: list[str] = []

    header = result.message if result.success else f"FAILED: {result.message}"
    lines.append(header)
    if result.started_at:
        lines.append(f"Started: {result.started_at.isoformat()}")
    if result.completed_at:
        lines.append(f"Completed: {result.completed_at.isoformat()}")
    lines.append("")

    counts = result.counts
    lines.append(
        f"Tasks: {counts.tasks_pushed} pushed, {counts.tasks_pulled} pulled; "
        f"Statuses: {counts.statuses_pushed} pushed, {counts.statuses_pulled} pulled; "
        f"{len(result.conflicts)} conflicts, {len(result.failures)} failures, "
        f"{result.cleaned_up} cleaned up"
    )
    lines.append("")

    if result.conflicts:
        lines.append("Conflicts:")
        for c in result.conflicts:
            lines.append(
                f"  [{c.entity_type.value}] {c.entity_name} ({c.entity_id}) "
                f"-> {c.resolution.value}"
            )
            lines.append(f"    local:  {c.local_change}")
            lines.append(f"    remote: {c.remote_change}")
        lines.append("")

    if result.failures:
        lines.append("Failures:")
        for f in result.failures:
            lines.append(
                f"  [{f.entity_type.value}] {f.entity_name} ({f.entity_id}) "
                f"during {f.phase}: {f.error_kind}: {f.error}"
            )
        lines.append("")

    if result.errors:
        lines.append("Errors:")
        for message in result.errors:
            lines.append(f"  {message}")
        lines.append("")

    return "\n".join(lines).rstrip()


def format_sync_status(
    summary: SyncStatusSummary, detailed: DetailedSyncStatus
) -> str:
    """Format the pending/failed overview of a project."""
    lines: list[str] = []
    sections = (("Tasks", detailed.tasks), ("Statuses", detailed.statuses))
    for label, counts in sections:
        lines.append(
            f"{label}: {counts.total} total, {counts.synced} synced, "
            f"{counts.pending} pending, {counts.failed} failed"
        )
    lines.append("")

    if summary.pending_tasks or summary.pending_statuses:
        lines.append("Pending:")
        for task in summary.pending_tasks:
            lines.append(f"  [task] {task.name} ({task.id})")
        for status in summary.pending_statuses:
            lines.append(f"  [status] {status.name} ({status.id})")
        lines.append("")

    if detailed.has_failed_syncs:
        lines.append("Failed:")
        for task in detailed.failed_tasks:
            error = task.external_metadata.get("last_sync_error", "unknown error")
            lines.append(f"  [task] {task.name} ({task.id}): {error}")
        for status in detailed.failed_statuses:
            error = status.external_metadata.get("last_sync_error", "unknown error")
            lines.append(f"  [status] {status.name} ({status.id}): {error}")
        lines.append("")

    if not summary.has_pending_changes and not detailed.has_failed_syncs:
        lines.append("Everything is in sync.")

    return "\n".join(lines).rstrip()


def format_validation_report(report: ValidationReport) -> str:
    """Format a validation report; one line per anomaly."""
    if report.is_valid:
        return "Sync state is valid: no anomalies found."
    lines = [f"Sync state has {len(report.issues)} issue(s):"]
    lines.extend(f"  - {issue}" for issue in report.issues)
    return "\n".join(lines)


def format_matching_report(report: MatchingReport) -> str:
    lines = [
        f"{len(report.matches)} matched, "
        f"{len(report.unmatched_local)} unmatched local, "
        f"{len(report.unmatched_remote)} unmatched in Jira",
        "",
    ]
    if report.matches:
        lines.append("Matches:")
        for m in report.matches:
            lines.append(
                f"  {m.task_name} ({m.task_id}) <-> {m.issue_key} by {m.matched_by}"
            )
        lines.append("")
    if report.unmatched_local:
        lines.append("Unmatched local tasks:")
        lines.extend(f"  {task_id}" for task_id in report.unmatched_local)
        lines.append("")
    if report.unmatched_remote:
        lines.append("Unmatched Jira issues:")
        lines.extend(f"  {key}" for key in report.unmatched_remote)
        lines.append("")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def result_to_json(result: SyncResult) -> dict:
    """Convert a sync result to a structured dict for JSON serialisation.

    Suitable for MCP ``structuredContent`` output. Counts use the
    camelCase names callers of the sync endpoint expect.

    Args:
        result: The sync result.

    Returns:
        Dict with success flag, message, counts, conflicts and failures.
    """
    return {
        "success": result.success,
        "message": result.message,
        "startedAt": _timestamp(result.started_at),
        "completedAt": _timestamp(result.completed_at),
        "data": {
            "tasksPushed": result.counts.tasks_pushed,
            "tasksPulled": result.counts.tasks_pulled,
            "statusesPushed": result.counts.statuses_pushed,
            "statusesPulled": result.counts.statuses_pulled,
            "cleanedUp": result.cleaned_up,
            "conflicts": [
                {
                    "entityType": c.entity_type.value,
                    "entityId": c.entity_id,
                    "entityName": c.entity_name,
                    "localChange": c.local_change,
                    "remoteChange": c.remote_change,
                    "resolution": c.resolution.value,
                }
                for c in result.conflicts
            ],
            "failures": [
                {
                    "entityType": f.entity_type.value,
                    "entityId": f.entity_id,
                    "entityName": f.entity_name,
                    "phase": f.phase,
                    "errorKind": f.error_kind,
                    "error": f.error,
                }
                for f in result.failures
            ],
            "errors": list(result.errors),
        },
    }
