"""Conflict resolution strategies for the sync engine.

A conflict is recorded when an entity changed locally and remotely since
its watermark. Resolution is whole-entity and policy-selected:

- ``LocalWinsResolver``: keep local data, mark the entity synced; local
  edits are pushed during the run.
- ``RemoteWinsResolver``: re-fetch the remote entity and overwrite.
- ``ManualResolver``: leave the entity ``pending`` for an operator.

Resolvers decide; they do no I/O themselves. The engine passes a
``ConflictApplier`` that performs the store and tracker writes.

The ``create_resolver()`` factory maps policy strings to resolver
instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from jira_sync_mcp.sync.models import ConflictPolicy, SyncConflict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class ConflictApplier(Protocol):
    """Performs the writes a resolution calls for."""

    def keep_local(self, conflict: SyncConflict) -> None: ...

    def take_remote(self, conflict: SyncConflict) -> None: ...

    def defer(self, conflict: SyncConflict) -> None: ...


class ConflictResolver(Protocol):
    """Protocol that all conflict resolvers must satisfy."""

    policy: ConflictPolicy

    def allows_push(self) -> bool:
        """Whether a conflicted entity may be pushed during the run."""
        ...  # pragma: no cover

    def resolve(
        self, conflict: SyncConflict, applier: ConflictApplier
    ) -> ConflictPolicy:
        """Apply the resolution for *conflict* through *applier*.

        Returns:
            The policy that was applied.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


class LocalWinsResolver:
    """Always resolve conflicts in favour of local data."""

    policy = ConflictPolicy.LOCAL

    def allows_push(self) -> bool:
        return True

    def resolve(
        self, conflict: SyncConflict, applier: ConflictApplier
    ) -> ConflictPolicy:
        logger.info(
            "Resolving %s %s: keeping local data",
            conflict.entity_type.value,
            conflict.entity_id,
        )
        applier.keep_local(conflict)
        return self.policy


class RemoteWinsResolver:
    """Always resolve conflicts in favour of remote data."""

    policy = ConflictPolicy.REMOTE

    def allows_push(self) -> bool:
        return False

    def resolve(
        self, conflict: SyncConflict, applier: ConflictApplier
    ) -> ConflictPolicy:
        logger.info(
            "Resolving %s %s: overwriting from remote",
            conflict.entity_type.value,
            conflict.entity_id,
        )
        applier.take_remote(conflict)
        return self.policy


class ManualResolver:
    """Leave conflicts for operator review; no automatic write."""

    policy = ConflictPolicy.MANUAL

    def allows_push(self) -> bool:
        return False

    def resolve(
        self, conflict: SyncConflict, applier: ConflictApplier
    ) -> ConflictPolicy:
        logger.warning(
            "Conflict on %s %s (%s) left for manual resolution",
            conflict.entity_type.value,
            conflict.entity_id,
            conflict.entity_name,
        )
        applier.defer(conflict)
        return self.policy


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    ConflictPolicy.LOCAL.value: LocalWinsResolver,
    ConflictPolicy.REMOTE.value: RemoteWinsResolver,
    ConflictPolicy.MANUAL.value: ManualResolver,
}


def create_resolver(policy: str | ConflictPolicy) -> ConflictResolver:
    """Create a conflict resolver for the given policy.

    Args:
        policy: One of ``"local"``, ``"remote"``, ``"manual"``.

    Raises:
        ValueError: If the policy is not recognised.
    """
    key = policy.value if isinstance(policy, ConflictPolicy) else policy
    cls = _STRATEGY_MAP.get(key)
    if cls is None:
        raise ValueError(
            f"Unknown conflict policy: '{policy}'. Valid policies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
