"""
Application configuration for the data sync engine.
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


DEFAULT_BASE_URL = "http://localhost:5000/api"


@dataclass(frozen=True)
class ResourceType:
    """A named category of synced data refreshed by the scheduler."""
    name: str
    endpoint: str
    priority: int = 100


DEFAULT_RESOURCES: Tuple[ResourceType, ...] = (
    ResourceType(name="issues", endpoint="/issues", priority=1),
    ResourceType(name="categories", endpoint="/categories", priority=2),
    ResourceType(name="notifications", endpoint="/notifications", priority=3),
    ResourceType(name="userStats", endpoint="/auth/stats", priority=4),
)


@dataclass
class TransportConfig:
    """HTTP transport configuration."""
    base_url: str = DEFAULT_BASE_URL
    api_key: Optional[str] = None
    timeout: float = 30.0


@dataclass
class CacheConfig:
    """Response cache configuration."""
    ttl_seconds: float = 300.0
    max_entries: Optional[int] = None


@dataclass
class ConflictConfig:
    """Conflict detection and resolution configuration."""
    strategy: str = "server-wins"
    fields: Tuple[str, ...] = ("title", "description", "status", "priority", "assignedTo")
    timestamp_field: str = "updatedAt"


@dataclass
class SchedulerConfig:
    """Periodic refresh configuration."""
    interval: float = 30.0
    throttle_delay: float = 0.1
    resources: List[ResourceType] = field(default_factory=lambda: list(DEFAULT_RESOURCES))


@dataclass
class OutboxConfig:
    """Offline outbox configuration. ":memory:" keeps it session-scoped."""
    path: str = ":memory:"


@dataclass
class BackoffPolicy:
    """Retry policy for redriving the offline outbox."""
    max_attempts: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0

    def delay_for(self, attempt: int) -> float:
        """
        Get the delay before the given retry attempt.

        Args:
            attempt: Zero-based attempt number

        Returns:
            Delay in seconds, capped at max_delay
        """
        return min(self.base_delay * (self.multiplier ** attempt), self.max_delay)

    def allows(self, attempt: int) -> bool:
        return attempt < self.max_attempts


@dataclass
class AppConfig:
    """Main application configuration."""
    transport: TransportConfig = field(default_factory=TransportConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    conflict: ConflictConfig = field(default_factory=ConflictConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    outbox: OutboxConfig = field(default_factory=OutboxConfig)
    backoff: BackoffPolicy = field(default_factory=BackoffPolicy)

    @classmethod
    def from_base_url(cls, base_url: str, api_key: Optional[str] = None) -> 'AppConfig':
        """Create configuration pointing at the given API base URL."""
        return cls(
            transport=TransportConfig(base_url=base_url, api_key=api_key)
        )

    @classmethod
    def from_env(cls) -> 'AppConfig':
        """
        Create configuration from DATASYNC_* environment variables.

        Unset variables fall back to the dataclass defaults.
        """
        config = cls.from_base_url(
            os.environ.get("DATASYNC_API_URL", DEFAULT_BASE_URL),
            api_key=os.environ.get("DATASYNC_API_KEY") or None
        )
        if "DATASYNC_SYNC_INTERVAL" in os.environ:
            config.scheduler.interval = float(os.environ["DATASYNC_SYNC_INTERVAL"])
        if "DATASYNC_CACHE_TTL" in os.environ:
            config.cache.ttl_seconds = float(os.environ["DATASYNC_CACHE_TTL"])
        if "DATASYNC_CONFLICT_STRATEGY" in os.environ:
            config.conflict.strategy = os.environ["DATASYNC_CONFLICT_STRATEGY"]
        if "DATASYNC_OUTBOX_PATH" in os.environ:
            config.outbox.path = os.environ["DATASYNC_OUTBOX_PATH"]
        return config
