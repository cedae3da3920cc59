"""Shared pytest fixtures for jira-sync-mcp tests."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any

import pytest
from dotenv import load_dotenv

from jira_sync_mcp.config import Config
from jira_sync_mcp.core.models import (
    CreatedIssue,
    RemoteIssue,
    RemoteStatus,
    Transition,
)
from jira_sync_mcp.errors import NotFoundError, SyncError
from jira_sync_mcp.sync.engine import SyncEngine
from jira_sync_mcp.sync.models import (
    EntityKind,
    Priority,
    Project,
    Status,
    SyncStatus,
    Task,
)
from jira_sync_mcp.sync.store import InMemoryStore

load_dotenv()

PROJECT_ID = "proj-1"
PROJECT_KEY = "ABC"
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
LAST_SYNC = NOW - timedelta(days=1)


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Jira site",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Jira site"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeClock:
    """Settable clock shared by the engine and the fake Jira site."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeJiraClient:
    """In-memory stand-in for JiraClient.

    Issues and statuses live in plain containers. Failures are injected
    per operation: ``fail_create`` by summary, ``fail_update`` by issue
    key, ``fail_listing`` by ``"issues"`` / ``"statuses"``.
    """

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.statuses: list[RemoteStatus] = []
        self.issues: dict[str, RemoteIssue] = {}
        self.fail_create: dict[str, SyncError] = {}
        self.fail_update: dict[str, SyncError] = {}
        self.fail_listing: dict[str, Exception] = {}
        self.created: list[dict[str, Any]] = []
        self.updated: list[dict[str, Any]] = []
        self.transitioned: list[tuple[str, str]] = []
        self.invalidated: list[str] = []
        self._next_id = 10000
        self._next_number = 100

    # -- test setup helpers --------------------------------------------

    def add_status(
        self,
        status_id: str,
        name: str,
        category: str = "new",
        color: str = "medium-gray",
    ) -> RemoteStatus:
        status = RemoteStatus(
            id=status_id, name=name, category_key=category, color_name=color
        )
        self.statuses.append(status)
        return status

    def add_issue(
        self,
        issue_id: str,
        key: str,
        summary: str,
        *,
        updated: datetime,
        description: str | None = None,
        status_id: str | None = None,
        priority: str | None = "Medium",
        due_date: date | None = None,
    ) -> RemoteIssue:
        issue = RemoteIssue(
            id=issue_id,
            key=key,
            summary=summary,
            description=description,
            status_id=status_id,
            status_name=self._status_name(status_id),
            priority=priority,
            created=updated,
            updated=updated,
            due_date=due_date,
        )
        self.issues[issue_id] = issue
        return issue

    def edit_issue(self, issue_id: str, **changes: Any) -> RemoteIssue:
        """Simulate an edit made by someone in Jira."""
        changes.setdefault("updated", self.clock())
        issue = self.issues[issue_id].model_copy(update=changes)
        self.issues[issue_id] = issue
        return issue

    def _status_name(self, status_id: str | None) -> str | None:
        for status in self.statuses:
            if status.id == status_id:
                return status.name
        return None

    def _find(self, ref: str) -> RemoteIssue:
        for issue in self.issues.values():
            if ref in (issue.id, issue.key):
                return issue
        raise NotFoundError(f"Issue {ref} does not exist")

    # -- JiraClient surface --------------------------------------------

    def validate_connection(self) -> str:
        return "Test User"

    def get_project_statuses(self, project_key: str) -> list[RemoteStatus]:
        if "statuses" in self.fail_listing:
            raise self.fail_listing["statuses"]
        return list(self.statuses)

    def invalidate_statuses(self, project_key: str) -> None:
        self.invalidated.append(project_key)

    def get_project_issues(self, project_key: str) -> list[RemoteIssue]:
        if "issues" in self.fail_listing:
            raise self.fail_listing["issues"]
        return list(self.issues.values())

    def get_issue(self, issue_id_or_key: str) -> RemoteIssue:
        return self._find(issue_id_or_key)

    def create_issue(
        self,
        project_key: str,
        summary: str,
        description: str,
        issue_type: str = "Story",
        priority: str | None = None,
    ) -> CreatedIssue:
        if summary in self.fail_create:
            raise self.fail_create[summary]
        self._next_id += 1
        while str(self._next_id) in self.issues:
            self._next_id += 1
        self._next_number += 1
        issue_id = str(self._next_id)
        key = f"{project_key}-{self._next_number}"
        first = self.statuses[0].id if self.statuses else None
        self.add_issue(
            issue_id,
            key,
            summary,
            updated=self.clock(),
            description=description,
            status_id=first,
            priority=priority,
        )
        self.created.append(
            {
                "key": key,
                "summary": summary,
                "description": description,
                "issue_type": issue_type,
                "priority": priority,
            }
        )
        return CreatedIssue(id=issue_id, key=key)

    def update_issue(
        self,
        issue_key: str,
        summary: str,
        description: str,
        priority: str | None = None,
        transition_id: str | None = None,
    ) -> None:
        if issue_key in self.fail_update:
            raise self.fail_update[issue_key]
        issue = self._find(issue_key)
        self.edit_issue(
            issue.id, summary=summary, description=description, priority=priority
        )
        if transition_id:
            self.transition_issue(issue_key, transition_id)
        self.updated.append(
            {
                "key": issue_key,
                "summary": summary,
                "description": description,
                "priority": priority,
                "transition_id": transition_id,
            }
        )

    def get_issue_transitions(self, issue_key: str) -> list[Transition]:
        issue = self._find(issue_key)
        return [
            Transition(
                id=f"t{status.id}",
                name=f"Move to {status.name}",
                to_status_id=status.id,
                to_status_name=status.name,
            )
            for status in self.statuses
            if status.id != issue.status_id
        ]

    def transition_issue(self, issue_key: str, transition_id: str) -> None:
        issue = self._find(issue_key)
        target = transition_id.removeprefix("t")
        self.edit_issue(
            issue.id, status_id=target, status_name=self._status_name(target)
        )
        self.transitioned.append((issue_key, transition_id))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        domain="acme.atlassian.net",
        email="bot@example.com",
        api_token="secret-token",
        project_key=PROJECT_KEY,
        insecure=False,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def jira(clock):
    return FakeJiraClient(clock)


@pytest.fixture
def store():
    """In-memory store holding one project linked to ABC."""
    store = InMemoryStore()
    store.save_project(
        Project(
            id=PROJECT_ID,
            name="Demo",
            external_metadata={"jira_project_key": PROJECT_KEY},
        )
    )
    return store


@pytest.fixture
def engine(jira, store, clock):
    return SyncEngine(jira, store, PROJECT_ID, clock=clock)  # type: ignore[arg-type]


@pytest.fixture
def make_task(store):
    """Factory adding a task to the store; defaults to a synced mirror."""

    def _make(task_id: str, name: str | None = None, **fields: Any) -> Task:
        defaults: dict[str, Any] = {
            "id": task_id,
            "project_id": PROJECT_ID,
            "name": name or f"Task {task_id}",
            "updated_at": LAST_SYNC - timedelta(hours=1),
            "priority": Priority.MEDIUM,
        }
        defaults.update(fields)
        return store.add_task(Task(**defaults))

    return _make


@pytest.fixture
def make_tracked_task(make_task):
    """Factory for a task already linked to a Jira issue."""

    def _make(
        task_id: str, issue_id: str, key: str, **fields: Any
    ) -> Task:
        metadata = {"jira_key": key, "last_jira_update": LAST_SYNC.isoformat()}
        metadata.update(fields.pop("external_metadata", {}))
        fields.setdefault("sync_status", SyncStatus.SYNCED)
        fields.setdefault("last_synced_at", LAST_SYNC)
        return make_task(
            task_id,
            entity_kind=EntityKind.EXTERNALLY_TRACKED,
            external_id=issue_id,
            external_metadata=metadata,
            **fields,
        )

    return _make


@pytest.fixture
def make_status(store):
    """Factory adding a status to the store."""

    def _make(status_id: str, name: str, **fields: Any) -> Status:
        defaults: dict[str, Any] = {
            "id": status_id,
            "project_id": PROJECT_ID,
            "name": name,
            "updated_at": LAST_SYNC - timedelta(hours=1),
        }
        defaults.update(fields)
        return store.add_status(Status(**defaults))

    return _make
