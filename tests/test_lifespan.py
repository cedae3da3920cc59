"""Tests for jira_sync_mcp.mcp.lifespan -- server startup/shutdown lifecycle.

Tests the server_lifespan() async context manager which:
- Loads config from env vars (with optional CLI overrides)
- Creates JiraClient and validates credentials
- Opens the store and seeds the local project
- Fails fast on config errors or connection failures
- Prints status messages to stderr

Also covers the build_client() and ensure_project() helpers.
"""

from contextlib import ExitStack
from unittest.mock import MagicMock, patch

import pytest

from jira_sync_mcp.config import Config
from jira_sync_mcp.config_schema import SyncConfig
from jira_sync_mcp.errors import AuthError
from jira_sync_mcp.mcp.lifespan import (
    build_client,
    ensure_project,
    server_lifespan,
)
from jira_sync_mcp.sync.engine import SyncEngine
from jira_sync_mcp.sync.models import Project
from jira_sync_mcp.sync.store import InMemoryStore

LIFESPAN = "jira_sync_mcp.mcp.lifespan"

# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


def _make_config(**overrides):
    """Create a valid Config for testing."""
    defaults = {
        "domain": "acme.atlassian.net",
        "email": "bot@example.com",
        "api_token": "secret-token",
        "project_key": "ABC",
    }
    defaults.update(overrides)
    return Config(**defaults)


class _Startup:
    """Patch every external dependency of server_lifespan()."""

    def __init__(self, config=None, load_error=None, connect_error=None):
        self.config = config or _make_config()
        self.load_error = load_error
        self.connect_error = connect_error
        self.client = MagicMock()
        self.store = InMemoryStore()
        self.printed: list[str] = []

    def __enter__(self):
        self._stack = ExitStack()
        p = self._stack.enter_context
        p(patch(f"{LIFESPAN}.load_dotenv"))
        p(patch(f"{LIFESPAN}.discover_config_files", return_value=[]))
        self.load_config = p(
            patch(
                f"{LIFESPAN}.load_config",
                return_value=self.config,
                side_effect=self.load_error,
            )
        )
        p(patch(f"{LIFESPAN}.build_client", return_value=self.client))
        self.run_sync = p(
            patch(
                f"{LIFESPAN}.run_sync",
                return_value="Sync Bot",
                side_effect=self.connect_error,
            )
        )
        p(patch(f"{LIFESPAN}.JsonFileStore", return_value=self.store))
        p(
            patch(
                f"{LIFESPAN}._stderr_print",
                side_effect=self.printed.append,
            )
        )
        return self

    def __exit__(self, *exc):
        return self._stack.__exit__(*exc)


# -------------------------------------------------------------------------
# server_lifespan() -- successful startup
# -------------------------------------------------------------------------


class TestServerLifespanSuccess:
    async def test_successful_startup(self):
        with _Startup() as s:
            async with server_lifespan() as ctx:
                assert ctx["client"] is s.client
                assert isinstance(ctx["engine"], SyncEngine)
                assert ctx["engine"].project_id == "default"
                s.run_sync.assert_called_once_with(
                    s.client.validate_connection
                )

        project = s.store.get_project("default")
        assert project.project_key == "ABC"
        assert "  Authenticated as Sync Bot" in s.printed
        assert "  Project: default -> ABC" in s.printed

    async def test_config_overrides_forwarded(self):
        overrides = {"domain": "other.atlassian.net", "insecure": True}
        with _Startup() as s:
            async with server_lifespan(config_overrides=overrides):
                pass

        s.load_config.assert_called_once_with(
            domain="other.atlassian.net",
            email=None,
            project_key=None,
            insecure=True,
            debug=False,
            yaml_fallbacks=None,
        )

    async def test_missing_project_key_warns(self):
        with _Startup(config=_make_config(project_key=None)) as s:
            async with server_lifespan():
                pass

        assert any("no project key configured" in m for m in s.printed)

    async def test_shutdown_message(self):
        with _Startup() as s:
            async with server_lifespan():
                pass
        assert s.printed[-1] == "Jira Sync MCP Server shutting down."


# -------------------------------------------------------------------------
# server_lifespan() -- failure paths
# -------------------------------------------------------------------------


class TestServerLifespanErrors:
    async def test_config_error_raises_runtime_error(self):
        error = ValueError("Jira domain not found")
        with _Startup(load_error=error) as s:
            with pytest.raises(RuntimeError, match="Configuration error: Jira domain not found"):
                async with server_lifespan():
                    pass  # pragma: no cover

        assert "ERROR: Configuration error: Jira domain not found" in s.printed
        s.run_sync.assert_not_called()

    async def test_connection_error_raises_runtime_error(self):
        error = AuthError("Jira rejected credentials", status_code=401)
        with _Startup(connect_error=error) as s:
            with pytest.raises(RuntimeError, match="Jira connection failed") as exc_info:
                async with server_lifespan():
                    pass  # pragma: no cover

        assert exc_info.value.__cause__ is error
        assert "ERROR: Jira connection failed." in s.printed


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------


class TestBuildClient:
    def test_pacing_and_cache_from_settings(self):
        settings = SyncConfig(
            min_request_interval=0.5,
            chunk_size=4,
            chunk_delay=2.0,
            status_cache_ttl=30,
            connect_timeout=3,
        )

        client = build_client(_make_config(), settings)

        assert client.limiter.min_interval == 0.5
        assert client.limiter.chunk_size == 4
        assert client.limiter.chunk_delay == 2.0
        assert client.cache.ttl == 30
        assert client.timeout == (3.0, 60.0)


class TestEnsureProject:
    def test_creates_missing_project(self):
        store = InMemoryStore()
        project = ensure_project(store, SyncConfig(project_id="p1"), "ABC")

        assert project.id == "p1"
        assert project.name == "ABC"
        assert store.get_project("p1").project_key == "ABC"

    def test_project_name_setting_used(self):
        store = InMemoryStore()
        settings = SyncConfig(project_id="p1", project_name="Website")
        assert ensure_project(store, settings, None).name == "Website"

    def test_key_replaced_when_changed(self):
        store = InMemoryStore()
        store.save_project(
            Project(
                id="p1",
                name="Website",
                external_metadata={"jira_project_key": "OLD", "extra": 1},
            )
        )

        project = ensure_project(store, SyncConfig(project_id="p1"), "NEW")

        assert project.project_key == "NEW"
        assert project.external_metadata["extra"] == 1

    def test_existing_project_kept_without_key(self):
        store = InMemoryStore()
        saved = store.save_project(
            Project(
                id="p1",
                name="Website",
                external_metadata={"jira_project_key": "ABC"},
            )
        )
        assert ensure_project(store, SyncConfig(project_id="p1"), None) == saved
