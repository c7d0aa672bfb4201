"""Application package for the data sync engine."""

from .data_sync_service import DataSyncService, SyncStatus

__all__ = ['DataSyncService', 'SyncStatus']
