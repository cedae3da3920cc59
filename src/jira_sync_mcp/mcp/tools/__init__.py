"""MCP tool handlers for Jira sync operations.

This package contains MCP tool implementations that wrap the SyncEngine
with async handlers, report formatting, and structured error responses.
"""

from .errors import build_error_response, translate_sync_error
from .registry import (
    READ_ONLY_PERMISSIONS,
    SYNC_ADMIN,
    SYNC_RUN,
    SYNC_VIEW,
    ToolRegistry,
    ToolSpec,
    load_permissions_file,
)
from .sync import SYNC_SPECS

ALL_SPECS: list[ToolSpec] = list(SYNC_SPECS)

__all__ = [
    "build_error_response",
    "translate_sync_error",
    # Registry
    "ToolSpec",
    "ToolRegistry",
    "load_permissions_file",
    "READ_ONLY_PERMISSIONS",
    "SYNC_ADMIN",
    "SYNC_RUN",
    "SYNC_VIEW",
    # Spec lists
    "ALL_SPECS",
    "SYNC_SPECS",
]
