"""
Error taxonomy for the sync engine.

- NetworkError: no response was received; the operation may be buffered
- ServerError: the backend answered and rejected the request
- ConflictError: a write needs a conflict to be resolved before it can apply
- ValidationError: a malformed operation or an unrecognized response shape
"""
from typing import Any, Dict, List, Optional

from datasync.models.conflict import Conflict
from datasync.models.envelope import Envelope


class SyncError(Exception):
    """Base class for all sync engine errors."""


class NetworkError(SyncError):
    """No response was received (timeout, connection failure, offline)."""


class ServerError(SyncError):
    """A response was received but the request was rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 envelope: Optional[Envelope] = None):
        super().__init__(message)
        self.status_code = status_code
        self.envelope = envelope or Envelope.failure(message)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ConflictError(SyncError):
    """Client and server copies of a record diverged and need resolution."""

    def __init__(self, message: str, conflicts: List[Conflict],
                 client_data: Optional[Dict[str, Any]] = None,
                 server_data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.conflicts = conflicts
        self.client_data = client_data
        self.server_data = server_data


class ValidationError(SyncError):
    """Caller supplied a malformed operation, or the backend an unknown shape."""
