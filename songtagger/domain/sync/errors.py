"""Error taxonomy for playlist import and synchronization.

Every error carries the phase it surfaced in so callers can tell whether
retrying the whole operation is useful.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class SyncPhase(str, Enum):
    LOAD_LOCAL = "load-local"
    READ_REMOTE = "read-remote"
    CREATE = "create"
    ADD = "add"
    REMOVE = "remove"
    UPDATE_METADATA = "update-metadata"
    COMMIT = "commit"


class SyncError(Exception):
    """Base class; subclasses set ``code``, ``http_status`` and ``retryable``."""

    code = "sync_failed"
    http_status = 500
    retryable = False

    def __init__(self, message: str, *, phase: Optional[SyncPhase] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.phase = phase
        self.details = dict(details or {})

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "phase": self.phase.value if self.phase else None,
            "retryable": self.retryable,
        }
        payload.update(self.details)
        return payload

    def __str__(self) -> str:
        if self.phase:
            return f"[{self.phase.value}] {self.message}"
        return self.message


class AuthError(SyncError):
    code = "auth_error"
    http_status = 401


class NotFound(SyncError):
    code = "not_found"
    http_status = 404


class Unauthorized(SyncError):
    code = "unauthorized"
    http_status = 403


class AlreadyImported(SyncError):
    code = "already_imported"
    http_status = 200

    def __init__(self, message: str, *, playlist_id: int, **kwargs):
        super().__init__(message, **kwargs)
        self.playlist_id = playlist_id
        self.details["playlist_id"] = playlist_id


class RemoteError(SyncError):
    """Provider rejected the request for a reason that retrying will not fix."""

    code = "remote_error"
    http_status = 502


class RemoteUnavailable(RemoteError):
    code = "remote_unavailable"
    http_status = 503
    retryable = True


class PlaylistNotLinked(SyncError):
    code = "playlist_not_linked"
    http_status = 409


class PlaylistAlreadyLinked(SyncError):
    code = "playlist_already_linked"
    http_status = 409


__all__ = [
    "SyncPhase",
    "SyncError",
    "AuthError",
    "NotFound",
    "Unauthorized",
    "AlreadyImported",
    "RemoteError",
    "RemoteUnavailable",
    "PlaylistNotLinked",
    "PlaylistAlreadyLinked",
]
