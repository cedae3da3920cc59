"""Bidirectional task sync engine.

Public API for synchronising a project's local tasks and workflow
statuses with the issues and statuses of a Jira project.

Architecture
------------
Each run is **pull, push, pull**: the first pull mirrors remote changes
and records conflicts, the push sends unpushed local edits, and the
second pull picks up server-side effects of the push.  Change detection
is watermark-based: a local edit is anything newer than the entity's
``last_synced_at``; a remote edit is anything newer than both
``last_synced_at`` and the last Jira ``updated`` value seen.

Modules:

- ``engine``     -- ``SyncEngine``: orchestrates a full run plus the
  administrative operations (reset, cleanup, manual resolution).
- ``statuses``   -- ``StatusReconciler``: status pull/push.
- ``tasks``      -- ``TaskReconciler``: task pull/push.
- ``identity``   -- ``IdentityIndex``: id-first, key-fallback matching.
- ``detector``   -- watermark change classification.
- ``mapper``     -- field and priority/color/category translation.
- ``resolver``   -- conflict policies (local, remote, manual).
- ``store``      -- ``LocalStore`` protocol, in-memory and JSON stores.
- ``inspector``  -- read-only status, validation and matching reports.
- ``reporter``   -- human-readable and JSON report formatting.

Usage example
-------------
::

    from pathlib import Path
    from jira_sync_mcp.core.client import JiraClient
    from jira_sync_mcp.sync import JsonFileStore, SyncEngine, format_sync_result

    store = JsonFileStore(Path(".jira-sync/state.json"))
    engine = SyncEngine(client=jira_client, store=store, project_id="proj-1")

    result = engine.perform_bidirectional_sync()
    print(format_sync_result(result))
"""

from .engine import SyncEngine
from .guard import CancelToken, RunLockRegistry
from .models import (
    ConflictPolicy,
    EntityKind,
    EntityType,
    Project,
    Status,
    SyncConflict,
    SyncOptions,
    SyncResult,
    SyncStatus,
    Task,
)
from .reporter import (
    format_matching_report,
    format_sync_result,
    format_sync_status,
    format_validation_report,
    result_to_json,
)
from .store import InMemoryStore, JsonFileStore, LocalStore

__all__ = [
    "CancelToken",
    "ConflictPolicy",
    "EntityKind",
    "EntityType",
    "InMemoryStore",
    "JsonFileStore",
    "LocalStore",
    "Project",
    "RunLockRegistry",
    "Status",
    "SyncConflict",
    "SyncEngine",
    "SyncOptions",
    "SyncResult",
    "SyncStatus",
    "Task",
    "format_matching_report",
    "format_sync_result",
    "format_sync_status",
    "format_validation_report",
    "result_to_json",
]
