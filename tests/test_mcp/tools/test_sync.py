"""Tests for MCP sync tool definitions and handlers.

Covers:
- Tool definitions have valid schemas
- jira_sync runs the engine and reports text plus structured counts
- Option overlay from tool arguments
- Status, validation and matching diagnostics
- Operator tools: reset, cleanup, resolve conflict
- Errors surface as structured responses through the registry

The handlers run against a real SyncEngine backed by the FakeJiraClient
and InMemoryStore fixtures from conftest.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import mcp.types as types
import pytest

from jira_sync_mcp.mcp.tools import SYNC_SPECS, ToolRegistry
from jira_sync_mcp.mcp.tools.sync import _options_from_args
from jira_sync_mcp.sync.models import (
    ConflictPolicy,
    EntityKind,
    SyncStatus,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
LAST_SYNC = NOW - timedelta(days=1)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def registry():
    return ToolRegistry(SYNC_SPECS)


@pytest.fixture
def todo_status(jira, make_status):
    """A Jira 'To Do' status with its synced local mirror."""
    jira.add_status("1", "To Do")
    return make_status(
        "s-1",
        "To Do",
        entity_kind=EntityKind.EXTERNALLY_TRACKED,
        external_id="1",
        external_metadata={
            "status_name": "To Do",
            "status_category": "new",
            "color_name": "medium-gray",
        },
        sync_status=SyncStatus.SYNCED,
        last_synced_at=LAST_SYNC,
    )


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class TestSyncToolDefinitions:
    def test_tool_names(self):
        assert [spec.tool.name for spec in SYNC_SPECS] == [
            "jira_sync",
            "jira_sync_status",
            "jira_sync_validate",
            "jira_sync_debug_matching",
            "jira_sync_reset_failed",
            "jira_sync_cleanup",
            "jira_sync_resolve_conflict",
        ]

    def test_schemas_are_objects(self):
        for spec in SYNC_SPECS:
            schema = spec.tool.inputSchema
            assert schema["type"] == "object"
            assert "properties" in schema
            assert "required" in schema

    def test_policy_enum(self):
        schema = SYNC_SPECS[0].tool.inputSchema
        assert schema["properties"]["resolve_conflicts"]["enum"] == [
            "local",
            "remote",
            "manual",
        ]

    def test_resolve_conflict_requires_arguments(self):
        schema = SYNC_SPECS[-1].tool.inputSchema
        assert schema["required"] == ["entity_type", "entity_id", "resolution"]
        assert schema["properties"]["entity_type"]["enum"] == ["task", "status"]


# ---------------------------------------------------------------------------
# Option overlay
# ---------------------------------------------------------------------------


class TestOptionsFromArgs:
    def test_defaults_from_settings(self, engine):
        options = _options_from_args(engine, {})
        assert options == engine.default_options()
        assert options.resolve_conflicts == ConflictPolicy.MANUAL

    def test_flags_and_policy(self, engine):
        options = _options_from_args(
            engine,
            {
                "push_to_jira": False,
                "sync_statuses": False,
                "resolve_conflicts": "remote",
            },
        )
        assert options.push_to_jira is False
        assert options.pull_from_jira is True
        assert options.sync_statuses is False
        assert options.resolve_conflicts == ConflictPolicy.REMOTE

    def test_unknown_policy(self, engine):
        with pytest.raises(ValueError):
            _options_from_args(engine, {"resolve_conflicts": "newest"})

    @pytest.mark.parametrize("value", ["false", 0, 1, None])
    def test_non_boolean_flag_rejected(self, engine, value):
        with pytest.raises(ValueError, match="push_to_jira must be true or false"):
            _options_from_args(engine, {"push_to_jira": value})


# ---------------------------------------------------------------------------
# jira_sync
# ---------------------------------------------------------------------------


class TestJiraSync:
    async def test_run_creates_issue(
        self, registry, engine, jira, store, make_task, todo_status
    ):
        make_task("t1", "Write docs", pending_sync=True)

        result = await registry.call_tool("jira_sync", {}, engine)

        assert result.isError is False
        assert _text(result).startswith("Bidirectional sync completed")
        data = result.structuredContent
        assert data["success"] is True
        assert data["data"]["tasksPushed"] == 1
        assert [c["summary"] for c in jira.created] == ["Write docs"]
        assert store.get_task("t1").external_metadata["jira_key"] == "ABC-101"

    async def test_push_disabled(
        self, registry, engine, jira, make_task, todo_status
    ):
        make_task("t1", pending_sync=True)

        result = await registry.call_tool(
            "jira_sync", {"push_to_jira": False}, engine
        )

        assert result.isError is False
        assert jira.created == []

    async def test_fatal_failure_marks_error(self, registry, engine, store):
        project = store.get_project("proj-1")
        store.save_project(project.model_copy(update={"external_metadata": {}}))

        result = await registry.call_tool("jira_sync", {}, engine)

        assert result.isError is True
        assert _text(result).startswith("FAILED: Sync failed: Project key not found")
        assert result.structuredContent["success"] is False

    async def test_bad_policy_is_validation_error(self, registry, engine):
        result = await registry.call_tool(
            "jira_sync", {"resolve_conflicts": "newest"}, engine
        )

        assert result.isError is True
        assert _text(result).startswith("Error (validation_error)")

    async def test_string_flag_is_validation_error(self, registry, engine, jira):
        result = await registry.call_tool(
            "jira_sync", {"push_to_jira": "false"}, engine
        )

        assert result.isError is True
        assert _text(result).startswith("Error (validation_error)")
        assert jira.created == []


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------


class TestDiagnostics:
    async def test_status(self, registry, engine, make_task):
        make_task("t1", pending_sync=True)
        make_task("t2", sync_status=SyncStatus.FAILED)

        result = await registry.call_tool("jira_sync_status", {}, engine)

        data = result.structuredContent
        assert data["projectId"] == "proj-1"
        assert data["hasPendingChanges"] is True
        assert data["hasFailedSyncs"] is True
        assert data["pendingTasks"] == ["t1"]
        assert data["failedTasks"] == ["t2"]
        assert data["tasks"]["total"] == 2
        assert "Pending:" in _text(result)

    async def test_validate(self, registry, engine, make_task):
        make_task("half", entity_kind=EntityKind.EXTERNALLY_TRACKED)

        result = await registry.call_tool("jira_sync_validate", {}, engine)

        assert result.isError is False
        assert result.structuredContent["is_valid"] is False
        assert result.structuredContent["invalid_entities"] == ["half"]
        assert _text(result).startswith("Sync state has")

    async def test_debug_matching(
        self, registry, engine, jira, make_tracked_task
    ):
        jira.add_issue("10001", "ABC-1", "One", updated=LAST_SYNC)
        jira.add_issue("10002", "ABC-2", "Two", updated=LAST_SYNC)
        make_tracked_task("t1", "10001", "ABC-1")

        result = await registry.call_tool(
            "jira_sync_debug_matching", {}, engine
        )

        data = result.structuredContent
        assert [m["issue_key"] for m in data["matches"]] == ["ABC-1"]
        assert data["unmatched_remote"] == ["ABC-2"]


# ---------------------------------------------------------------------------
# Operator tools
# ---------------------------------------------------------------------------


class TestOperatorTools:
    async def test_reset_failed(self, registry, engine, store, make_task):
        make_task("t1", sync_status=SyncStatus.FAILED)

        result = await registry.call_tool("jira_sync_reset_failed", {}, engine)

        assert _text(result) == (
            "Reset 1 failed task(s) and 0 failed status(es) to pending."
        )
        assert result.structuredContent == {"tasksReset": 1, "statusesReset": 0}
        assert store.get_task("t1").pending_sync is True

    async def test_cleanup(self, registry, engine, store, make_task):
        make_task("ghost", entity_kind=EntityKind.EXTERNALLY_TRACKED)

        result = await registry.call_tool("jira_sync_cleanup", {}, engine)

        assert _text(result) == "Deleted 1 invalid entity."
        assert result.structuredContent == {"cleanedUp": 1}
        assert store.get_task("ghost") is None

    async def test_resolve_conflict_remote(
        self, registry, engine, jira, make_tracked_task
    ):
        jira.add_issue("10001", "ABC-1", "Remote", updated=LAST_SYNC)
        make_tracked_task(
            "t1", "10001", "ABC-1", name="Local", pending_sync=True
        )

        result = await registry.call_tool(
            "jira_sync_resolve_conflict",
            {"entity_type": "task", "entity_id": "t1", "resolution": "remote"},
            engine,
        )

        assert result.isError is False
        assert _text(result) == (
            "Resolved task Remote (t1) with 'remote': sync status is now synced."
        )
        assert result.structuredContent["pendingSync"] is False

    async def test_resolve_conflict_missing_argument(self, registry, engine):
        result = await registry.call_tool(
            "jira_sync_resolve_conflict",
            {"entity_type": "task", "resolution": "remote"},
            engine,
        )

        assert result.isError is True
        assert "entity_id is required" in _text(result)

    async def test_resolve_conflict_unknown_entity(self, registry, engine):
        result = await registry.call_tool(
            "jira_sync_resolve_conflict",
            {"entity_type": "task", "entity_id": "nope", "resolution": "local"},
            engine,
        )

        assert result.isError is True
        assert _text(result).startswith("Error (not_found)")
