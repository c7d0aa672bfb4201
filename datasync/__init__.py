"""
Client-side data synchronization and caching engine for REST backends.

Quick start::

    from datasync import AppConfig, DataSyncService

    service = DataSyncService(AppConfig.from_base_url("http://localhost:5000/api"))
    unsubscribe = service.subscribe("issues", print)
    service.enable_sync()
"""

from datasync.app.data_sync_service import DataSyncService, SyncStatus
from datasync.config.app_config import AppConfig, ResourceType
from datasync.models import Envelope, OperationKind, OperationState, SyncEvent, SyncOperation

__version__ = "0.1.0"

__all__ = [
    'AppConfig',
    'DataSyncService',
    'Envelope',
    'OperationKind',
    'OperationState',
    'ResourceType',
    'SyncEvent',
    'SyncOperation',
    'SyncStatus',
]
