"""Read-only diagnostics over the local sync state.

Nothing in this module writes to the store. Anomalies such as duplicate
identities or orphaned keys are reported, never corrected.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence

from jira_sync_mcp.core.models import RemoteIssue
from jira_sync_mcp.sync.mapper import STATUS_KEY, TASK_KEY
from jira_sync_mcp.sync.models import (
    DetailedSyncStatus,
    EntityCounts,
    EntityKind,
    MatchingReport,
    Status,
    SyncStatus,
    SyncStatusSummary,
    Task,
    TaskMatch,
    ValidationReport,
)
from jira_sync_mcp.sync.store import LocalStore


def get_sync_status(store: LocalStore, project_id: str) -> SyncStatusSummary:
    """Entities with unpushed local changes."""
    tasks = store.list_tasks(project_id, pending_sync=True)
    statuses = store.list_statuses(project_id, pending_sync=True)
    return SyncStatusSummary(
        pending_tasks=tasks,
        pending_statuses=statuses,
        has_pending_changes=bool(tasks or statuses),
    )


def _counts(entities: Sequence[Task | Status]) -> EntityCounts:
    return EntityCounts(
        total=len(entities),
        pending=sum(1 for e in entities if e.pending_sync),
        failed=sum(1 for e in entities if e.sync_status == SyncStatus.FAILED),
        synced=sum(1 for e in entities if e.sync_status == SyncStatus.SYNCED),
    )


def get_detailed_sync_status(
    store: LocalStore, project_id: str
) -> DetailedSyncStatus:
    """Per-kind totals plus the failed entities themselves."""
    tasks = store.list_tasks(project_id)
    statuses = store.list_statuses(project_id)
    task_counts = _counts(tasks)
    status_counts = _counts(statuses)
    return DetailedSyncStatus(
        tasks=task_counts,
        statuses=status_counts,
        failed_tasks=[t for t in tasks if t.sync_status == SyncStatus.FAILED],
        failed_statuses=[
            s for s in statuses if s.sync_status == SyncStatus.FAILED
        ],
        has_pending_changes=task_counts.pending + status_counts.pending > 0,
        has_failed_syncs=task_counts.failed + status_counts.failed > 0,
    )


def _duplicates(pairs: Iterable[tuple[str, str]]) -> dict[str, list[str]]:
    groups: dict[str, list[str]] = defaultdict(list)
    for value, entity_id in pairs:
        groups[value].append(entity_id)
    return {value: ids for value, ids in groups.items() if len(ids) > 1}


def _group_key(value: object, fold_case: bool) -> str:
    key = str(value)
    return key.lower() if fold_case else key


def validate_sync_state(store: LocalStore, project_id: str) -> ValidationReport:
    """Check identity invariants across the project's tasks and statuses.

    Reports:
        - externally-tracked entities without an external id;
        - external ids or secondary keys shared by several entities;
        - entities with an external id but no secondary key, or the
          reverse (a partially repaired identity).
    """
    issues: list[str] = []
    invalid: list[str] = []
    duplicate_ids: dict[str, list[str]] = {}
    duplicate_keys: dict[str, list[str]] = {}
    missing_key: list[str] = []
    missing_id: list[str] = []

    # Status names compare case-insensitively, as in the pull index
    groups: tuple[tuple[str, Sequence[Task | Status], str, bool], ...] = (
        ("task", store.list_tasks(project_id), TASK_KEY, False),
        ("status", store.list_statuses(project_id), STATUS_KEY, True),
    )
    for label, entities, key_field, fold_case in groups:
        for entity in entities:
            key = entity.external_metadata.get(key_field)
            if entity.is_tracked and not entity.external_id:
                invalid.append(entity.id)
                issues.append(
                    f"Externally-tracked {label} {entity.id} ({entity.name}) has no external id"
                )
            if entity.external_id and not key:
                missing_key.append(entity.id)
                issues.append(
                    f"{label.capitalize()} {entity.id} has external id {entity.external_id} but no {key_field}"
                )
            elif key and not entity.external_id:
                missing_id.append(entity.id)
                issues.append(
                    f"{label.capitalize()} {entity.id} has {key_field} {key} but no external id"
                )

        for value, ids in _duplicates(
            (e.external_id, e.id) for e in entities if e.external_id
        ).items():
            duplicate_ids[value] = ids
            issues.append(
                f"Duplicate external id {value} on {label}s: {', '.join(ids)}"
            )
        for value, ids in _duplicates(
            (_group_key(e.external_metadata[key_field], fold_case), e.id)
            for e in entities
            if e.external_metadata.get(key_field)
        ).items():
            duplicate_keys[value] = ids
            issues.append(
                f"Duplicate {key_field} {value} on {label}s: {', '.join(ids)}"
            )

    return ValidationReport(
        is_valid=not issues,
        issues=issues,
        invalid_entities=invalid,
        duplicate_external_ids=duplicate_ids,
        duplicate_keys=duplicate_keys,
        orphans_missing_key=missing_key,
        orphans_missing_id=missing_id,
    )


def debug_task_matching(
    store: LocalStore, project_id: str, issues: Sequence[RemoteIssue]
) -> MatchingReport:
    """Show how externally-tracked tasks line up with Jira issues."""
    tasks = store.list_tasks(
        project_id, entity_kind=EntityKind.EXTERNALLY_TRACKED
    )
    issues_by_id = {issue.id: issue for issue in issues}
    issues_by_key = {issue.key: issue for issue in issues}

    matches: list[TaskMatch] = []
    unmatched_local: list[str] = []
    matched_issue_ids: set[str] = set()
    for task in tasks:
        by_id = issues_by_id.get(task.external_id) if task.external_id else None
        key = task.external_metadata.get(TASK_KEY)
        by_key = issues_by_key.get(str(key)) if key else None
        issue = by_id or by_key
        if issue is None:
            unmatched_local.append(task.id)
            continue
        matched_issue_ids.add(issue.id)
        matches.append(
            TaskMatch(
                task_id=task.id,
                task_name=task.name,
                issue_key=issue.key,
                matched_by="id" if by_id else "key",
            )
        )

    return MatchingReport(
        matches=matches,
        unmatched_local=unmatched_local,
        unmatched_remote=[
            issue.key for issue in issues if issue.id not in matched_issue_ids
        ],
    )
