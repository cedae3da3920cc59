"""Error response builders for MCP tool handlers.

This module provides structured error responses with corrective actions
to help AI agents recover from errors without human intervention.
"""

import mcp.types as types

from ...errors import ErrorKind, SyncError


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, auth_error, conflict, validation_error, server_error, ...)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Task t-1 not found", "Use jira_sync_status to list tasks.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


# ---------------------------------------------------------------------------
# Error-kind specific corrective action messages
# ---------------------------------------------------------------------------

_KIND_RESPONSES: dict[ErrorKind, tuple[str, str]] = {
    ErrorKind.CONNECTION: (
        "connection_error",
        "Check network access to the Jira site, then retry.",
    ),
    ErrorKind.AUTH: (
        "auth_error",
        "Check JIRA_EMAIL and JIRA_API_TOKEN, then restart the server.",
    ),
    ErrorKind.NOT_FOUND: (
        "not_found",
        "Use jira_sync_status or jira_sync_debug_matching to list known entities.",
    ),
    ErrorKind.TRANSFORM: (
        "transform_error",
        "Simplify the description markup and retry.",
    ),
    ErrorKind.CONFLICT: (
        "conflict",
        "Wait for the running sync to finish, then retry.",
    ),
    ErrorKind.VALIDATION: (
        "validation_error",
        "Check parameter values and the project configuration, then retry.",
    ),
    ErrorKind.CANCELLED: (
        "cancelled",
        "Retry the sync, or raise sync.run_timeout in config.yml.",
    ),
}


def translate_sync_error(error: SyncError) -> types.CallToolResult:
    """Translate a SyncError into a structured error response.

    Args:
        error: The raised sync error; its ``kind`` selects the action.

    Returns:
        CallToolResult with isError=True and corrective action
    """
    error_type, action = _KIND_RESPONSES.get(
        error.kind, ("server_error", "Retry later.")
    )
    return build_error_response(error_type, error.message, action)
