import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    FETCH = "fetch"

    @property
    def default_method(self) -> str:
        return _DEFAULT_METHODS[self]

    @property
    def is_mutation(self) -> bool:
        return self is not OperationKind.FETCH


_DEFAULT_METHODS = {
    OperationKind.CREATE: "POST",
    OperationKind.UPDATE: "PUT",
    OperationKind.DELETE: "DELETE",
    OperationKind.FETCH: "GET",
}


class OperationState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    APPLIED = "applied"
    FAILED = "failed"
    AWAITING_CONFLICT_RESOLUTION = "awaiting_conflict_resolution"
    BUFFERED = "buffered"


def generate_operation_id() -> str:
    return f"sync_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class SyncOperation:
    """
    One logical create/update/delete/fetch against a resource endpoint.

    client_snapshot is the record as the client holds it; it is compared
    against the server copy before an update is written.
    """
    kind: OperationKind
    resource_type: str
    endpoint: str
    payload: Any = None
    client_snapshot: Optional[Dict[str, Any]] = None
    method: Optional[str] = None
    id: str = field(default_factory=generate_operation_id)
    enqueued_at: float = field(default_factory=time.time)
    state: OperationState = OperationState.PENDING
    conflict_resolved: bool = False

    def __post_init__(self):
        if isinstance(self.kind, str) and not isinstance(self.kind, OperationKind):
            # Left as a plain string for SyncQueue validation to reject.
            try:
                self.kind = OperationKind(self.kind.lower())
            except ValueError:
                pass

    @property
    def http_method(self) -> str:
        return (self.method or self.kind.default_method).upper()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "resource_type": self.resource_type,
            "endpoint": self.endpoint,
            "payload": self.payload,
            "client_snapshot": self.client_snapshot,
            "method": self.method,
            "enqueued_at": self.enqueued_at,
            "conflict_resolved": self.conflict_resolved,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncOperation':
        return cls(
            kind=OperationKind(data["kind"]),
            resource_type=data["resource_type"],
            endpoint=data["endpoint"],
            payload=data.get("payload"),
            client_snapshot=data.get("client_snapshot"),
            method=data.get("method"),
            id=data["id"],
            enqueued_at=data.get("enqueued_at", time.time()),
            conflict_resolved=data.get("conflict_resolved", False),
        )


@dataclass
class OfflineEntry:
    entry_id: int
    operation: SyncOperation
    queued_at: str
    attempts: int = 0
    last_error: Optional[str] = None
