"""Closed error taxonomy for tracker access and sync runs.

Every failure the engine reacts to is one of the ``ErrorKind`` members.
The kind decides the handling policy:

- fatal kinds (auth, configuration, cancellation) abort the whole run and
  surface as ``SyncResult(success=False)``;
- everything else is recoverable per item: the entity is marked
  ``failed`` with the message and a timestamp, and the run continues.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a sync failure."""

    CONNECTION = "connection"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    TRANSFORM = "transform"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    CANCELLED = "cancelled"


class SyncError(Exception):
    """Base class for all tracker and sync errors.

    Attributes:
        kind: The error category.
        fatal: Whether the error aborts the whole sync run.
    """

    kind: ErrorKind = ErrorKind.CONNECTION
    fatal: bool = False

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TrackerConnectionError(SyncError):
    """Network failure, timeout, rate limiting or 5xx from the tracker."""

    kind = ErrorKind.CONNECTION


class AuthError(SyncError):
    """The tracker rejected the configured credentials."""

    kind = ErrorKind.AUTH
    fatal = True


class NotFoundError(SyncError):
    """The requested issue, project or transition does not exist."""

    kind = ErrorKind.NOT_FOUND


class TransformError(SyncError):
    """A payload or rich-text body could not be converted."""

    kind = ErrorKind.TRANSFORM


class ConflictError(SyncError):
    """Both sides changed an entity and the operation cannot proceed."""

    kind = ErrorKind.CONFLICT


class SyncValidationError(SyncError):
    """The tracker refused the data (HTTP 400/403/422) or input is invalid."""

    kind = ErrorKind.VALIDATION


class ConfigurationError(SyncValidationError):
    """Required configuration is missing, e.g. no project key."""

    fatal = True


class SyncCancelledError(SyncError):
    """The run was cancelled or exceeded its deadline."""

    kind = ErrorKind.CANCELLED
    fatal = True
