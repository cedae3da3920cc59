"""
Hierarchical configuration loader for jira_sync_mcp.

Provides convention-based config file discovery, YAML !include support,
env var interpolation, and a section-wise merge where project files win
over the global one.

Usage:
    from jira_sync_mcp.config_loader import load_hierarchical_config

    config = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "JIRA_SYNC_CONFIG"
PROJECT_CONFIG_DIR = ".jira_sync"

# ---------------------------------------------------------------------------
# 1. Env var interpolation
# ---------------------------------------------------------------------------

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


def interpolate_env_vars(value: str) -> str:
    """Replace ``${VAR}`` and ``${VAR:-default}`` patterns with env values.

    * ``${VAR}`` is replaced with ``os.environ.get(VAR, "")``.
    * ``${VAR:-default}`` uses *default* when VAR is unset or empty.
    * Literal ``${`` with no closing ``}`` is left untouched.
    """

    def _replace(match: re.Match) -> str:
        env_val = os.environ.get(match.group(1))
        if env_val:
            return env_val
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _interpolate_recursive(obj: Any) -> Any:
    """Walk a nested dict/list and interpolate env vars in all strings."""
    if isinstance(obj, str):
        return interpolate_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _interpolate_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_interpolate_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# 2. YAML !include support (dedicated SafeLoader subclass)
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """YAML SafeLoader subclass with ``!include`` support.

    A dedicated subclass keeps the global ``yaml.SafeLoader`` untouched.
    Each load carries an include stack used to detect circular includes.
    """


def _include_constructor(
    loader: ConfigLoader, node: yaml.ScalarNode
) -> Any:
    """Handle ``!include path/to/file.yml`` directives."""
    target = Path(loader.construct_scalar(node))
    if not target.is_absolute():
        # Relative to the file containing the directive
        target = Path(loader.name).resolve().parent / target
    target = target.resolve()

    include_stack: list[Path] = getattr(loader, "_include_stack", [])
    if target in include_stack:
        chain = " -> ".join(str(p) for p in [*include_stack, target])
        raise ValueError(f"Circular include detected: {chain}")

    if not target.exists():
        raise FileNotFoundError(
            f"Include file not found: {target} "
            f"(referenced from {Path(loader.name).resolve()})"
        )

    return _load_yaml_with_includes(
        target, _include_stack=[*include_stack, target]
    )


ConfigLoader.add_constructor("!include", _include_constructor)


def _load_yaml_with_includes(
    path: Path,
    *,
    _include_stack: list[Path] | None = None,
) -> Any:
    """Load a YAML file using the ``ConfigLoader`` (with ``!include``)."""
    path = path.resolve()
    with open(path, "r", encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader._include_stack = _include_stack or [path]  # type: ignore[attr-defined]
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# 3. Convention-based file discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config file paths in precedence order (highest first).

    Search order:
        1. ``JIRA_SYNC_CONFIG`` env var (explicit single path)
        2. ``.jira_sync/config.yml`` in CWD (project-level)
        3. ``.jira_sync/config.yaml`` in CWD (alternate extension)
        4. ``~/.config/jira_sync/config.yml`` (XDG global)

    Only paths that exist on disk are returned.
    """
    candidates: list[Path] = []

    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser().resolve())

    cwd = Path.cwd()
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yml")
    candidates.append(cwd / PROJECT_CONFIG_DIR / "config.yaml")
    candidates.append(Path.home() / ".config" / "jira_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


# ---------------------------------------------------------------------------
# 3a. Config bootstrapping
# ---------------------------------------------------------------------------

_STARTER_CONFIG = """\
# jira-sync-mcp configuration
#
# Connection settings can also be set via environment variables:
#   JIRA_DOMAIN, JIRA_EMAIL, JIRA_API_TOKEN, JIRA_PROJECT_KEY
#
# jira:
#   domain: acme.atlassian.net
#   email: you@example.com
#   api_token: ${JIRA_API_TOKEN}
#   project_key: ABC
#   api_version: 2
#
# sync:
#   project_id: default
#   issue_type: Story
#   resolve_conflicts: manual   # local | remote | manual
#   store_path: .jira_sync/store.json
#   chunk_size: 10
#   chunk_delay: 1.0
#
# logging:
#   level: INFO
#   file: null
"""


def resolve_config_path() -> Path:
    """Return the single config file path that should be used.

    The highest-precedence existing file wins; otherwise the default
    project-level path ``CWD / .jira_sync / config.yml`` is returned.
    This does NOT create the file; use ``ensure_config()`` for that.
    """
    existing = discover_config_files()
    if existing:
        return existing[0]
    return Path.cwd() / PROJECT_CONFIG_DIR / "config.yml"


def ensure_config(target: Path | None = None) -> Path:
    """Ensure a config file exists, creating a commented starter if needed.

    Args:
        target: Explicit path to create. If ``None``, uses
            ``resolve_config_path()``.

    Returns:
        Path to the config file (existing or newly created).
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or resolve_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# 4. Hierarchical merge
# ---------------------------------------------------------------------------


def merge_sections(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Merge two config dicts one level deep.

    Section dicts (``jira``, ``sync``, ``logging``) are merged key by key
    so a project file can set ``sync.issue_type`` while credentials come
    from the global file. Non-dict values are replaced outright.
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = {**current, **value}
        else:
            merged[key] = value
    return merged


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge all discovered config files.

    Files are loaded from lowest precedence to highest and combined with
    ``merge_sections``. Env var interpolation is applied after merging.

    Returns an empty dict when no config files exist (zero-config).
    """
    paths = discover_config_files()

    if not paths:
        logger.debug("No config files found, using zero-config defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = _load_yaml_with_includes(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged = merge_sections(merged, data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_recursive(merged)
