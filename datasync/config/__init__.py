"""Configuration package for the data sync engine."""

from .app_config import (
    AppConfig,
    BackoffPolicy,
    CacheConfig,
    ConflictConfig,
    DEFAULT_RESOURCES,
    OutboxConfig,
    ResourceType,
    SchedulerConfig,
    TransportConfig,
)

__all__ = [
    'AppConfig',
    'BackoffPolicy',
    'CacheConfig',
    'ConflictConfig',
    'DEFAULT_RESOURCES',
    'OutboxConfig',
    'ResourceType',
    'SchedulerConfig',
    'TransportConfig',
]
