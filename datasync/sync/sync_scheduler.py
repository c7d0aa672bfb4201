"""
Periodic refresh of the configured resource types.

Each tick enqueues one fetch per resource type, lowest priority number
first, with a short delay between fetches to avoid bursts against the
backend. Ticks happen only while the scheduler is enabled and the network
is online.
"""

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional

from datasync.config.app_config import ResourceType
from datasync.models.sync_operation import OperationKind, SyncOperation
from .sync_queue import SyncQueue

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Timer-driven full refresh of resource types through the sync queue."""

    DEFAULT_INTERVAL = 30.0  # seconds
    DEFAULT_THROTTLE_DELAY = 0.1  # seconds

    def __init__(
        self,
        queue: SyncQueue,
        resources: Iterable[ResourceType],
        interval: float = DEFAULT_INTERVAL,
        throttle_delay: float = DEFAULT_THROTTLE_DELAY,
        is_online: Optional[Callable[[], bool]] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """
        Initialize the scheduler.

        Args:
            queue: Sync queue that receives the fetch operations
            resources: Resource types to refresh
            interval: Seconds between ticks
            throttle_delay: Seconds between fetches within one tick
            is_online: Network state predicate; ticks are skipped while offline
            sleep: Sleep function used for throttling
        """
        self.queue = queue
        self.resources: List[ResourceType] = sorted(resources, key=lambda r: r.priority)
        self.interval = interval
        self.throttle_delay = throttle_delay
        self.is_online = is_online or (lambda: True)
        self._sleep = sleep
        self._enabled = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        """Enable periodic ticks, starting the timer thread if needed."""
        self._enabled = True
        logger.info("Data sync enabled")
        self._start_thread()

    def disable(self) -> None:
        """Stop future ticks. A tick already running completes."""
        self._enabled = False
        logger.info("Data sync disabled")

    def _start_thread(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="SyncScheduler",
            daemon=True
        )
        self._thread.start()
        logger.debug("Sync scheduler thread started")

    def _run_loop(self) -> None:
        """Background loop ticking every interval."""
        while not self._stop_event.wait(self.interval):
            if not self._enabled or not self.is_online():
                continue
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in sync scheduler loop: {e}")

    def tick(self) -> int:
        """
        Run one refresh pass.

        Returns:
            Number of fetch operations issued
        """
        started = time.monotonic()
        logger.info("Starting data sync...")

        issued = 0
        for index, resource in enumerate(self.resources):
            if index and self.throttle_delay > 0:
                self._sleep(self.throttle_delay)

            op = SyncOperation(
                kind=OperationKind.FETCH,
                resource_type=resource.name,
                endpoint=resource.endpoint
            )
            try:
                self.queue.enqueue(op)
                issued += 1
            except Exception as e:
                logger.error(f"Failed to sync {resource.name}: {e}")

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(f"Data sync completed in {duration_ms:.0f}ms")
        return issued

    def stop(self) -> None:
        """Stop the timer thread."""
        self._enabled = False
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5)
        self._thread = None
