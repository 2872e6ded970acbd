"""Exception hierarchy for the push sync service."""

from typing import Any, Dict, Optional


class PushSyncError(RuntimeError):
    """Base exception that carries structured context."""

    status_code = 500

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.context = context or {}


class InvalidArgumentError(PushSyncError):
    """Raised when the inbound payload cannot be decoded."""

    status_code = 400


class UnauthorizedError(PushSyncError):
    """Raised when a required webhook signature is missing."""

    status_code = 401


class ForbiddenError(PushSyncError):
    """Raised when a webhook signature does not match the payload."""

    status_code = 403


class WorkspaceNotFoundError(PushSyncError):
    """Raised when the configured Rally workspace cannot be resolved."""


class TrackerRequestError(PushSyncError):
    """Raised when a Rally call fails in transport, status or decoding."""


class StateUpdateError(PushSyncError):
    """Raised when Rally does not report the requested schedule state."""


class ChangesetRecordingError(PushSyncError):
    """Raised when a changeset cannot be created for a commit."""


class RepositoryResolutionError(PushSyncError):
    """Raised when the Rally SCM repository cannot be found or created."""


__all__ = [
    "PushSyncError",
    "InvalidArgumentError",
    "UnauthorizedError",
    "ForbiddenError",
    "WorkspaceNotFoundError",
    "TrackerRequestError",
    "StateUpdateError",
    "ChangesetRecordingError",
    "RepositoryResolutionError",
]
