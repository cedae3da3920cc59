"""
Input validation functions for Jira Sync MCP.

Provides validation for project keys, issue keys and task summaries so
bad input is rejected before any REST call is made.
"""

import re

_PROJECT_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]+$")
_ISSUE_KEY_PATTERN = re.compile(r"^[A-Z][A-Z0-9_]+-\d+$")

# Jira rejects summaries longer than this
MAX_SUMMARY_LENGTH = 255


# ---------------------------------------------------------------------------
# Error message formatting helpers
# ---------------------------------------------------------------------------


def format_validation_error(field_name: str, reason: str) -> str:
    """
    Generate consistent error message for validation failures.

    Args:
        field_name: Human-readable field name (e.g., "Project key")
        reason: Description of validation failure (e.g., "cannot be empty")

    Returns:
        Formatted error message string
    """
    return f"{field_name} {reason}"


def validate_project_key(project_key: str) -> tuple[bool, str]:
    """
    Validate a Jira project key.

    Args:
        project_key: The project key to validate (e.g., "ABC")

    Returns:
        Tuple of (is_valid, error_message).
        Returns (True, "") if valid, (False, reason) if invalid.

    Validation rules:
        - Cannot be empty or whitespace-only
        - Must start with an uppercase letter
        - Only uppercase letters, digits and underscores, at least 2 chars
    """
    if not project_key or not project_key.strip():
        return (
            False,
            format_validation_error("Project key", "cannot be empty"),
        )

    if not _PROJECT_KEY_PATTERN.match(project_key):
        return (
            False,
            format_validation_error(
                "Project key",
                f"'{project_key}' must be uppercase letters, digits or "
                "underscores, starting with a letter (e.g. ABC)",
            ),
        )

    return (True, "")


def validate_issue_key(issue_key: str) -> tuple[bool, str]:
    """
    Validate a Jira issue key such as ``ABC-123``.

    Args:
        issue_key: The issue key to validate

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not issue_key or not issue_key.strip():
        return (
            False,
            format_validation_error("Issue key", "cannot be empty"),
        )

    if not _ISSUE_KEY_PATTERN.match(issue_key):
        return (
            False,
            format_validation_error(
                "Issue key", f"'{issue_key}' is not of the form KEY-123"
            ),
        )

    return (True, "")


def validate_summary(
    summary: str, max_length: int = MAX_SUMMARY_LENGTH
) -> tuple[bool, str]:
    """
    Validate an issue summary before create/update.

    Args:
        summary: The summary (task name) to validate
        max_length: Maximum number of characters (default: 255)

    Returns:
        Tuple of (is_valid, error_message).
    """
    if not summary or not summary.strip():
        return (
            False,
            format_validation_error("Summary", "cannot be empty"),
        )

    if "\n" in summary:
        return (
            False,
            format_validation_error("Summary", "cannot contain newlines"),
        )

    if len(summary) > max_length:
        return (
            False,
            format_validation_error(
                "Summary", f"exceeds maximum length of {max_length} characters"
            ),
        )

    return (True, "")
