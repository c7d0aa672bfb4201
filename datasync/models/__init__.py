"""Models package for the data sync engine."""

from .conflict import Conflict, ConflictType
from .envelope import Envelope
from .sync_event import SyncEvent
from .sync_operation import OfflineEntry, OperationKind, OperationState, SyncOperation

__all__ = [
    'Conflict',
    'ConflictType',
    'Envelope',
    'OfflineEntry',
    'OperationKind',
    'OperationState',
    'SyncEvent',
    'SyncOperation',
]
