"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..config import Config, load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import SyncConfig, UnifiedConfig, build_config
from ..core.async_utils import run_sync
from ..core.client import JiraClient
from ..core.throttle import RateLimiter, TTLCache
from ..sync.engine import SyncEngine
from ..sync.models import Project
from ..sync.store import JsonFileStore, LocalStore

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


def build_client(config: Config, settings: SyncConfig) -> JiraClient:
    """Create a JiraClient paced and cached according to the sync settings."""
    return JiraClient(
        config,
        limiter=RateLimiter(
            min_interval=settings.min_request_interval,
            chunk_size=settings.chunk_size,
            chunk_delay=settings.chunk_delay,
        ),
        cache=TTLCache(ttl=settings.status_cache_ttl),
        connect_timeout=settings.connect_timeout,
    )


def ensure_project(
    store: LocalStore, settings: SyncConfig, project_key: str | None
) -> Project:
    """Seed or refresh the local project record.

    The project is created when missing. When a project key is configured
    and differs from the stored one, the stored key is replaced.
    """
    project = store.get_project(settings.project_id)
    if project is None:
        metadata = {"jira_project_key": project_key} if project_key else {}
        project = Project(
            id=settings.project_id,
            name=settings.project_name or project_key or settings.project_id,
            external_metadata=metadata,
        )
        logger.info(
            "Creating local project %s (key %s)", project.id, project_key
        )
        return store.save_project(project)

    if project_key and project.project_key != project_key:
        logger.info(
            "Updating project %s key from %s to %s",
            project.id,
            project.project_key,
            project_key,
        )
        project = project.model_copy(
            update={
                "external_metadata": {
                    **project.external_metadata,
                    "jira_project_key": project_key,
                }
            }
        )
        return store.save_project(project)
    return project


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create JiraClient and validate credentials
    - Open the JSON store and seed the local project
    - Fail fast if Jira is unreachable

    On shutdown:
    - Log shutdown message

    Args:
        config_overrides: Optional dict with config values from CLI
            (domain, email, project_key, insecure, debug)

    Yields:
        Dict with 'engine' and 'client' keys

    Raises:
        RuntimeError: If configuration is invalid or the Jira connection fails.
    """
    logger.info("MCP server starting...")
    _stderr_print("Jira Sync MCP Server starting...")

    try:
        load_dotenv()

        yaml_fallbacks: dict[str, Any] | None = None
        unified = UnifiedConfig()
        config_files = discover_config_files()
        sources = []

        if config_files:
            config_path = config_files[0]
            raw = load_hierarchical_config()
            unified = build_config(raw)
            yaml_fallbacks = {
                k: v
                for k, v in unified.jira.model_dump().items()
                if v is not None
            }
            sources.append(f"config file: {config_path}")

        overrides = config_overrides or {}
        config = load_config(
            domain=overrides.get("domain"),
            email=overrides.get("email"),
            project_key=overrides.get("project_key"),
            insecure=overrides.get("insecure", False),
            debug=overrides.get("debug", False),
            yaml_fallbacks=yaml_fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Jira site: %s", config.domain)
        _stderr_print(f"  Jira site: {config.domain}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print(
            "  Ensure JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN are set."
        )
        raise RuntimeError(
            f"Configuration error: {e}. Ensure JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN are set."
        ) from e

    settings = unified.sync
    logger.info("Validating Jira credentials...")
    _stderr_print("  Validating Jira credentials...")
    try:
        client = build_client(config, settings)
        account = await run_sync(client.validate_connection)
        logger.info("Authenticated to Jira as %s", account)
        _stderr_print(f"  Authenticated as {account}")

        store = JsonFileStore(Path(settings.store_path))
        project = ensure_project(store, settings, config.project_key)
        if not project.project_key:
            logger.warning(
                "Project %s has no Jira project key; sync runs will fail",
                project.id,
            )
            _stderr_print(
                "  WARNING: no project key configured (set JIRA_PROJECT_KEY)."
            )
        engine = SyncEngine(client, store, project.id, settings=settings)
        _stderr_print(
            f"  Project: {project.id} -> {project.project_key or '(none)'}"
        )
        _stderr_print(
            "Server ready. Waiting for MCP client connection..."
        )
    except Exception as e:
        logger.error("Failed to start Jira sync: %s", e)
        _stderr_print("ERROR: Jira connection failed.")
        _stderr_print(f"  {e}")
        _stderr_print("  Check JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN.")
        raise RuntimeError(
            f"Jira connection failed: {e}. Check JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN."
        ) from e

    yield {"engine": engine, "client": client}

    logger.info("MCP server shutting down")
    _stderr_print("Jira Sync MCP Server shutting down.")
