"""Local datastore for projects, tasks and statuses.

``LocalStore`` is the interface the engine consumes: keyed CRUD on tasks
and statuses, filtered by project, kind, ``pending_sync`` and
``sync_status``. Two implementations are provided:

* ``InMemoryStore``: dict-backed, used by tests and embedders.
* ``JsonFileStore``: the in-memory store persisted to one JSON file after
  every mutation, written atomically (temp file + ``os.replace()``) so
  readers never see partial data.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel

from ..errors import NotFoundError
from .models import EntityKind, Project, Status, SyncStatus, Task

logger = logging.getLogger(__name__)

STORE_VERSION = 1


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class LocalStore(Protocol):
    """Interface the sync engine needs from the local datastore."""

    def get_project(self, project_id: str) -> Project | None: ...

    def save_project(self, project: Project) -> Project: ...

    def list_tasks(
        self,
        project_id: str,
        *,
        entity_kind: EntityKind | None = None,
        pending_sync: bool | None = None,
        sync_status: SyncStatus | None = None,
    ) -> list[Task]: ...

    def get_task(self, task_id: str) -> Task | None: ...

    def add_task(self, task: Task) -> Task: ...

    def update_task(self, task_id: str, **fields: Any) -> Task: ...

    def delete_task(self, task_id: str) -> None: ...

    def list_statuses(
        self,
        project_id: str,
        *,
        entity_kind: EntityKind | None = None,
        pending_sync: bool | None = None,
        sync_status: SyncStatus | None = None,
    ) -> list[Status]: ...

    def get_status(self, status_id: str) -> Status | None: ...

    def add_status(self, status: Status) -> Status: ...

    def update_status(self, status_id: str, **fields: Any) -> Status: ...

    def delete_status(self, status_id: str) -> None: ...


def _matches(
    entity: Task | Status,
    project_id: str,
    entity_kind: EntityKind | None,
    pending_sync: bool | None,
    sync_status: SyncStatus | None,
) -> bool:
    return (
        entity.project_id == project_id
        and (entity_kind is None or entity.entity_kind == entity_kind)
        and (pending_sync is None or entity.pending_sync == pending_sync)
        and (sync_status is None or entity.sync_status == sync_status)
    )


def _apply(model: BaseModel, fields: dict[str, Any]) -> Any:
    """Return a validated copy of *model* with *fields* replaced."""
    return type(model).model_validate({**model.model_dump(), **fields})


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Dict-backed ``LocalStore``. Insertion order is preserved."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self.projects: dict[str, Project] = {}
        self.tasks: dict[str, Task] = {}
        self.statuses: dict[str, Status] = {}

    def _changed(self) -> None:
        """Hook called after every mutation."""

    # -- projects ------------------------------------------------------

    def get_project(self, project_id: str) -> Project | None:
        return self.projects.get(project_id)

    def save_project(self, project: Project) -> Project:
        with self._lock:
            self.projects[project.id] = project
            self._changed()
        return project

    # -- tasks ---------------------------------------------------------

    def list_tasks(
        self,
        project_id: str,
        *,
        entity_kind: EntityKind | None = None,
        pending_sync: bool | None = None,
        sync_status: SyncStatus | None = None,
    ) -> list[Task]:
        with self._lock:
            return [
                t
                for t in self.tasks.values()
                if _matches(t, project_id, entity_kind, pending_sync, sync_status)
            ]

    def get_task(self, task_id: str) -> Task | None:
        return self.tasks.get(task_id)

    def add_task(self, task: Task) -> Task:
        with self._lock:
            if task.id in self.tasks:
                raise ValueError(f"Task {task.id} already exists")
            self.tasks[task.id] = task
            self._changed()
        return task

    def update_task(self, task_id: str, **fields: Any) -> Task:
        with self._lock:
            current = self.tasks.get(task_id)
            if current is None:
                raise NotFoundError(f"Task {task_id} not found")
            updated = _apply(current, fields)
            self.tasks[task_id] = updated
            self._changed()
        return updated

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            if self.tasks.pop(task_id, None) is not None:
                self._changed()

    # -- statuses ------------------------------------------------------

    def list_statuses(
        self,
        project_id: str,
        *,
        entity_kind: EntityKind | None = None,
        pending_sync: bool | None = None,
        sync_status: SyncStatus | None = None,
    ) -> list[Status]:
        with self._lock:
            return [
                s
                for s in self.statuses.values()
                if _matches(s, project_id, entity_kind, pending_sync, sync_status)
            ]

    def get_status(self, status_id: str) -> Status | None:
        return self.statuses.get(status_id)

    def add_status(self, status: Status) -> Status:
        with self._lock:
            if status.id in self.statuses:
                raise ValueError(f"Status {status.id} already exists")
            self.statuses[status.id] = status
            self._changed()
        return status

    def update_status(self, status_id: str, **fields: Any) -> Status:
        with self._lock:
            current = self.statuses.get(status_id)
            if current is None:
                raise NotFoundError(f"Status {status_id} not found")
            updated = _apply(current, fields)
            self.statuses[status_id] = updated
            self._changed()
        return updated

    def delete_status(self, status_id: str) -> None:
        with self._lock:
            if self.statuses.pop(status_id, None) is not None:
                self._changed()


# ---------------------------------------------------------------------------
# JSON file implementation
# ---------------------------------------------------------------------------


class JsonFileStore(InMemoryStore):
    """``InMemoryStore`` persisted to a single JSON file.

    Args:
        path: Location of the store file (typically
            ``.jira_sync/store.json``). Missing files start empty.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.debug("Store file %s not found, starting empty", self.path)
            return
        with open(self.path, encoding="utf-8") as fh:
            data = json.load(fh)
        version = data.get("version")
        if version != STORE_VERSION:
            raise ValueError(
                f"Unsupported store version {version!r} in {self.path}"
            )
        self.projects = {
            p["id"]: Project.model_validate(p) for p in data.get("projects", [])
        }
        self.tasks = {t["id"]: Task.model_validate(t) for t in data.get("tasks", [])}
        self.statuses = {
            s["id"]: Status.model_validate(s) for s in data.get("statuses", [])
        }
        logger.debug(
            "Loaded %d tasks and %d statuses from %s",
            len(self.tasks),
            len(self.statuses),
            self.path,
        )

    def _changed(self) -> None:
        self.save()

    def save(self) -> None:
        """Persist the store atomically.

        Writes to a temporary file in the same directory then replaces the
        target. Creates the parent directory if needed.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {
            "version": STORE_VERSION,
            "projects": [p.model_dump(mode="json") for p in self.projects.values()],
            "tasks": [t.model_dump(mode="json") for t in self.tasks.values()],
            "statuses": [s.model_dump(mode="json") for s in self.statuses.values()],
        }
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
