"""
Response cache with time-to-live expiry.

Entries older than the TTL are treated as misses and evicted on read.
Mutations clear the whole store since list and aggregate entries that a
changed record affects are not individually known.
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, List, Optional

from datasync.models.envelope import Envelope

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Envelope
    stored_at: float


class CacheStore:
    """
    In-memory key/value store of envelopes with TTL expiry.

    This class provides:
    - Lazy expiry on read
    - Whole-store or single-key invalidation
    - Optional size cap (oldest entry evicted first)
    - Thread-safe operations
    """

    DEFAULT_TTL = 300.0  # seconds

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize the cache store.

        Args:
            ttl: Maximum age of an entry in seconds
            max_entries: Optional cap on the number of entries
            clock: Time source, monotonic seconds
        """
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Envelope]:
        """
        Get a cached envelope.

        Args:
            key: Cache key

        Returns:
            The envelope, or None if absent or expired
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            if self._clock() - entry.stored_at > self.ttl:
                del self._entries[key]
                logger.debug(f"Cache entry expired: {key}")
                return None

            return entry.value

    def set(self, key: str, value: Envelope) -> None:
        """
        Store a successful envelope, overwriting any previous entry.

        Args:
            key: Cache key
            value: Envelope to store

        Raises:
            ValueError: If the envelope is not successful
        """
        if not value.success:
            raise ValueError("Only successful envelopes can be cached")

        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, value=value, stored_at=self._clock())

            if self.max_entries is not None:
                while len(self._entries) > self.max_entries:
                    evicted, _ = self._entries.popitem(last=False)
                    logger.debug(f"Cache full, evicted {evicted}")

    def invalidate(self, key: Optional[str] = None) -> None:
        """
        Remove one entry, or every entry when key is None.

        Args:
            key: Cache key, or None to clear the store
        """
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries.keys())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
