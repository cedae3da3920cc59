"""Match local entities to remote ones by stable id, then secondary key.

Jira issues have a numeric id that never changes and a human-readable key
(``ABC-12``) that can. Statuses have an id and a name. The index looks up
the stable id first and falls back to the secondary key; a key match on a
record whose stored id is missing or stale is repaired in place through
the supplied callback before the caller continues.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Generic, TypeVar

from jira_sync_mcp.sync.models import Status, Task

logger = logging.getLogger(__name__)

E = TypeVar("E", Task, Status)


class IdentityIndex(Generic[E]):
    """Id- and key-indexed view over a set of local entities.

    Args:
        entities: Local entities to index.
        key_field: ``external_metadata`` key holding the secondary key.
        case_insensitive: Compare secondary keys ignoring case (statuses).

    Duplicate ids or keys keep the first entity seen and are collected in
    ``duplicate_ids`` / ``duplicate_keys`` for diagnostics.
    """

    def __init__(
        self,
        entities: Iterable[E],
        key_field: str,
        *,
        case_insensitive: bool = False,
    ) -> None:
        self.key_field = key_field
        self.case_insensitive = case_insensitive
        self.by_id: dict[str, E] = {}
        self.by_key: dict[str, E] = {}
        self.duplicate_ids: dict[str, list[str]] = {}
        self.duplicate_keys: dict[str, list[str]] = {}
        for entity in entities:
            self._add(entity)

    def _norm(self, key: str) -> str:
        return key.lower() if self.case_insensitive else key

    def key_of(self, entity: E) -> str | None:
        value = entity.external_metadata.get(self.key_field)
        return str(value) if value else None

    def _add(self, entity: E) -> None:
        if entity.external_id:
            existing = self.by_id.get(entity.external_id)
            if existing is None:
                self.by_id[entity.external_id] = entity
            elif existing.id != entity.id:
                logger.warning(
                    "Duplicate external id %s on %s and %s",
                    entity.external_id,
                    existing.id,
                    entity.id,
                )
                self.duplicate_ids.setdefault(
                    entity.external_id, [existing.id]
                ).append(entity.id)

        key = self.key_of(entity)
        if key:
            norm = self._norm(key)
            existing = self.by_key.get(norm)
            if existing is None:
                self.by_key[norm] = entity
            elif existing.id != entity.id:
                logger.warning(
                    "Duplicate key %s on %s and %s", key, existing.id, entity.id
                )
                self.duplicate_keys.setdefault(key, [existing.id]).append(
                    entity.id
                )

    def lookup(self, remote_id: str, remote_key: str | None) -> E | None:
        """Find the local entity for a remote one without modifying anything."""
        found = self.by_id.get(remote_id)
        if found is not None:
            return found
        if remote_key:
            return self.by_key.get(self._norm(remote_key))
        return None

    def resolve(
        self,
        remote_id: str,
        remote_key: str | None,
        repair: Callable[[E], E],
    ) -> E | None:
        """Find the local entity and repair its stored id if needed.

        Args:
            remote_id: Stable id of the remote entity.
            remote_key: Secondary key of the remote entity.
            repair: Called with an entity matched by key whose
                ``external_id`` differs from *remote_id*; must persist the
                new id and return the updated entity.

        Returns:
            The (possibly repaired) local entity, or None.
        """
        found = self.by_id.get(remote_id)
        if found is not None:
            return found
        if not remote_key:
            return None
        found = self.by_key.get(self._norm(remote_key))
        if found is None:
            return None

        logger.info(
            "Repairing %s: external id %s -> %s (matched by key %s)",
            found.id,
            found.external_id,
            remote_id,
            remote_key,
        )
        stale_id = found.external_id
        repaired = repair(found)
        if stale_id and self.by_id.get(stale_id) is found:
            del self.by_id[stale_id]
        self.replace(repaired)
        return repaired

    def replace(self, entity: E) -> None:
        """Re-index *entity* after it was updated in the store."""
        for index in (self.by_id, self.by_key):
            for key, value in list(index.items()):
                if value.id == entity.id:
                    index[key] = entity
        if entity.external_id:
            self.by_id.setdefault(entity.external_id, entity)
        key = self.key_of(entity)
        if key:
            self.by_key.setdefault(self._norm(key), entity)
