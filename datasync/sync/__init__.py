"""
Client-side data synchronization module.

This module provides the components that sit between application code and
the REST backend:
- CacheStore: response cache with TTL expiry
- NotificationBus: topic-keyed change notifications
- ConflictResolver: conflict detection and resolution strategies
- RequestGateway: envelope normalization and failure classification
- SyncQueue: serialized FIFO processing of sync operations
- OfflineOutbox: SQLite-backed buffer of operations awaiting the network
- SyncScheduler: periodic refresh of resource types
- ConnectivityMonitor: online/offline tracking
"""

from .errors import ConflictError, NetworkError, ServerError, SyncError, ValidationError
from .cache_store import CacheStore
from .notification_bus import CONFLICT_TOPIC, INCONSISTENCY_TOPIC, NotificationBus
from .conflict_resolver import ConflictResolver, ConflictStrategy
from .request_gateway import RequestGateway, normalize_response
from .offline_outbox import DrainResult, OfflineOutbox
from .sync_queue import SyncQueue
from .consistency import ConsistencyResult, validate_consistency
from .connectivity import ConnectivityMonitor
from .sync_scheduler import SyncScheduler

__all__ = [
    'CONFLICT_TOPIC',
    'INCONSISTENCY_TOPIC',
    'CacheStore',
    'ConflictError',
    'ConflictResolver',
    'ConflictStrategy',
    'ConnectivityMonitor',
    'ConsistencyResult',
    'DrainResult',
    'NetworkError',
    'NotificationBus',
    'OfflineOutbox',
    'RequestGateway',
    'ServerError',
    'SyncError',
    'SyncQueue',
    'SyncScheduler',
    'ValidationError',
    'normalize_response',
    'validate_consistency',
]
