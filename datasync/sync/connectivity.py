"""
Network state tracking.

The host reports ``online``/``offline`` transitions through set_online(),
or the monitor polls a reachability check (such as the transport health check) on a
background thread. Listeners are called on transitions only.
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Tracks whether the backend is reachable and announces transitions."""

    DEFAULT_POLL_INTERVAL = 15.0  # seconds

    def __init__(self, online: bool = True):
        self._online = online
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None

    @property
    def online(self) -> bool:
        return self._online

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback for online/offline transitions.

        Args:
            listener: Called with the new online state

        Returns:
            A function that removes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def set_online(self, online: bool) -> bool:
        """
        Record the current network state.

        Args:
            online: Whether the network is reachable

        Returns:
            True if this was a transition
        """
        with self._lock:
            if online == self._online:
                return False
            self._online = online
            listeners = list(self._listeners)

        if online:
            logger.info("Network connection restored")
        else:
            logger.warning("Network connection lost")

        for listener in listeners:
            try:
                listener(online)
            except Exception as e:
                logger.error(f"Error in connectivity listener: {e}")
        return True

    def start_polling(self, check: Callable[[], bool], interval: float = DEFAULT_POLL_INTERVAL) -> None:
        """
        Poll a reachability check on a background thread.

        Args:
            check: Returns True when the backend is reachable
            interval: Seconds between checks
        """
        if self._poll_thread is not None and self._poll_thread.is_alive():
            return

        self._stop_event.clear()
        self._poll_thread = threading.Thread(
            target=self._poll_loop,
            args=(check, interval),
            name="ConnectivityPoll",
            daemon=True
        )
        self._poll_thread.start()
        logger.debug("Connectivity polling started")

    def _poll_loop(self, check: Callable[[], bool], interval: float) -> None:
        """Background loop feeding check results into set_online."""
        while not self._stop_event.is_set():
            try:
                self.set_online(bool(check()))
            except Exception as e:
                logger.error(f"Connectivity check failed: {e}")
                self.set_online(False)

            self._stop_event.wait(interval)

    def stop(self) -> None:
        """Stop polling."""
        self._stop_event.set()
        if self._poll_thread and self._poll_thread.is_alive():
            self._poll_thread.join(timeout=5)
        self._poll_thread = None
