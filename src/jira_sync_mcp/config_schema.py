"""Unified configuration schema for jira_sync_mcp.

Defines Pydantic models for the unified config structure with dedicated
sections for the Jira connection, sync behaviour, and logging. Includes
an adapter that turns the ``jira`` section into the ``Config`` dataclass
used by the REST client.

Usage:
    from jira_sync_mcp.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"domain": "..."})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class JiraConfig(BaseModel):
    """Jira connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    domain: str | None = Field(
        default=None, description="Jira site host, e.g. acme.atlassian.net"
    )
    email: str | None = Field(
        default=None, description="Account email for basic auth"
    )
    api_token: str | None = Field(default=None, description="API token")
    project_key: str | None = Field(
        default=None, description="Project key used to seed the local project"
    )
    insecure: bool = Field(
        default=False,
        description="Disable SSL verification (development only)",
    )
    debug: bool = Field(default=False, description="Enable debug mode")
    api_version: Literal[2, 3] = Field(
        default=2,
        description="REST API version: 2 sends wiki markup, 3 sends ADF",
    )
    timeout: float = Field(
        default=60.0,
        ge=1,
        le=600,
        description="Read timeout per request in seconds",
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync engine behaviour.

    Attributes:
        project_id: Local project the server syncs.
        project_name: Display name used when the project is seeded.
        issue_type: Issue type used when creating remote issues.
        resolve_conflicts: Default conflict policy for a run.
        apply_remote_on_pull_conflict: Overwrite from remote during pull
            even when a conflict is recorded (legacy behaviour).
        store_path: JSON file backing the local store.
        chunk_size: Remote calls per chunk before the inter-chunk delay.
        chunk_delay: Seconds to pause between chunks.
        min_request_interval: Minimum seconds between two remote calls.
        status_cache_ttl: Seconds project statuses stay cached.
        connect_timeout: Connect timeout per request in seconds.
        run_timeout: Optional deadline for one sync run in seconds.
    """

    project_id: str = Field(default="default")
    project_name: str | None = Field(default=None)
    issue_type: str = Field(default="Story")
    resolve_conflicts: Literal["local", "remote", "manual"] = Field(
        default="manual"
    )
    apply_remote_on_pull_conflict: bool = Field(default=False)
    store_path: str = Field(default=".jira_sync/store.json")
    chunk_size: int = Field(default=10, ge=1, le=1000)
    chunk_delay: float = Field(default=1.0, ge=0)
    min_request_interval: float = Field(default=0.1, ge=0)
    status_cache_ttl: float = Field(default=300.0, ge=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    run_timeout: float | None = Field(default=None, gt=0)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Aggregates all config sections. Every section has sensible defaults,
    so ``UnifiedConfig()`` (zero-config) is always valid.
    """

    jira: JiraConfig = Field(default_factory=JiraConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Factory function
# ---------------------------------------------------------------------------


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Handles missing sections gracefully: anything absent gets defaults.

    Args:
        raw_data: Merged configuration dictionary.

    Returns:
        Validated ``UnifiedConfig`` instance.
    """
    if not raw_data:
        return UnifiedConfig()

    unknown = set(raw_data) - set(UnifiedConfig.model_fields)
    if unknown:
        logger.warning(
            "Ignoring unknown config sections: %s", sorted(unknown)
        )
    known = {k: v for k, v in raw_data.items() if k not in unknown}
    return UnifiedConfig(**known)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the ``Config`` dataclass,
    applying CLI overrides on top.

    The precedence applied here is:
        CLI override > unified config value > None

    CLI overrides dict keys: domain, email, api_token, project_key,
    insecure, debug.

    Args:
        unified: The unified config produced by ``build_config()``.
        cli_overrides: Optional dict of CLI argument values.

    Returns:
        ``Config`` dataclass instance (NOT validated; caller
        should run ``validate_config()`` separately if needed).
    """
    # Import here to avoid circular imports (config.py imports validators)
    from .config import Config

    overrides = cli_overrides or {}

    return Config(
        domain=overrides.get("domain") or unified.jira.domain or "",
        email=overrides.get("email") or unified.jira.email or "",
        api_token=overrides.get("api_token")
        or unified.jira.api_token
        or "",
        project_key=overrides.get("project_key")
        or unified.jira.project_key,
        insecure=overrides.get("insecure", False)
        or unified.jira.insecure,
        debug=overrides.get("debug", False) or unified.jira.debug,
        api_version=unified.jira.api_version,
        timeout=unified.jira.timeout,
    )
