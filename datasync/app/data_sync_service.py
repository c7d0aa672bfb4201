"""
Main service class for the data sync engine.
"""
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from datasync.config.app_config import AppConfig
from datasync.models.envelope import Envelope
from datasync.models.sync_event import SyncEvent
from datasync.models.sync_operation import OperationKind, SyncOperation
from datasync.sync.cache_store import CacheStore
from datasync.sync.conflict_resolver import ConflictResolver
from datasync.sync.connectivity import ConnectivityMonitor
from datasync.sync.consistency import ConsistencyResult, validate_consistency
from datasync.sync.errors import ServerError, SyncError, ValidationError
from datasync.sync.notification_bus import NotificationBus
from datasync.sync.offline_outbox import DrainResult, OfflineOutbox
from datasync.sync.request_gateway import SUPPORTED_METHODS, RequestGateway
from datasync.sync.sync_queue import SyncQueue
from datasync.sync.sync_scheduler import SyncScheduler
from datasync.transport.base import HttpCall
from datasync.transport.http_transport import RequestsTransport

logger = logging.getLogger(__name__)

_METHOD_ACTIONS = {
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


@dataclass
class SyncStatus:
    """Snapshot of the sync engine state."""
    enabled: bool = False
    online: bool = True
    queue_length: int = 0
    offline_queue_length: int = 0
    in_progress: bool = False
    last_sync_times: Dict[str, float] = field(default_factory=dict)
    subscriptions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class DataSyncService:
    """
    Facade that wires the sync components together.

    This class manages:
    - Ad-hoc requests with optional response caching
    - Queued synced operations and their offline buffering
    - Periodic refresh of the configured resource types
    - Outbox replay, with backoff, when the network comes back
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        http_call: Optional[HttpCall] = None,
        online: bool = True,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the service.

        Args:
            config: Application configuration
            http_call: HTTP collaborator; defaults to a RequestsTransport
                       built from the transport configuration
            online: Initial network state
            clock: Time source for last-sync bookkeeping
        """
        self.config = config or AppConfig()
        self.transport: Optional[RequestsTransport] = None
        if http_call is None:
            self.transport = RequestsTransport(
                base_url=self.config.transport.base_url,
                api_key=self.config.transport.api_key,
                timeout=self.config.transport.timeout
            )
            http_call = self.transport

        self.connectivity = ConnectivityMonitor(online=online)
        self.cache = CacheStore(
            ttl=self.config.cache.ttl_seconds,
            max_entries=self.config.cache.max_entries
        )
        self.bus = NotificationBus()
        self.resolver = ConflictResolver(
            fields=self.config.conflict.fields,
            timestamp_field=self.config.conflict.timestamp_field,
            strategy=self.config.conflict.strategy
        )
        self.gateway = RequestGateway(
            http_call,
            base_url=self.config.transport.base_url,
            is_online=lambda: self.connectivity.online
        )
        self.outbox = OfflineOutbox(self.config.outbox.path)
        self.queue = SyncQueue(
            self.gateway,
            self.resolver,
            self.cache,
            self.bus,
            outbox=self.outbox,
            clock=clock
        )
        self.scheduler = SyncScheduler(
            self.queue,
            self.config.scheduler.resources,
            interval=self.config.scheduler.interval,
            throttle_delay=self.config.scheduler.throttle_delay,
            is_online=lambda: self.connectivity.online
        )

        self._redrive_attempt = 0
        self._redrive_timer: Optional[threading.Timer] = None
        self._redrive_lock = threading.Lock()
        self._remove_listener = self.connectivity.add_listener(self._on_network_change)

    @property
    def online(self) -> bool:
        return self.connectivity.online

    def request(
        self,
        method: str,
        resource_type: str,
        endpoint: str,
        payload: Any = None,
        use_cache: bool = False,
        cache_key: Optional[str] = None
    ) -> Envelope:
        """
        Perform an immediate request outside the sync queue.

        Args:
            method: HTTP method
            resource_type: Resource type, used as the notification topic
            endpoint: Endpoint path
            payload: Request body, or query parameters for GET
            use_cache: Serve and store GET responses through the cache
            cache_key: Cache key; defaults to "<resource_type>:<endpoint>"

        Returns:
            The response envelope; failures come back as failure envelopes

        Raises:
            ValidationError: If the HTTP method is not supported
        """
        method = (method or "").upper()
        if method not in SUPPORTED_METHODS:
            raise ValidationError(f"Unsupported HTTP method: {method}")

        key = cache_key or f"{resource_type}:{endpoint}"
        if use_cache and method == "GET":
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            envelope = self.gateway.request(method, endpoint, payload)
        except ServerError as e:
            logger.error(f"Data service error [{method} {endpoint}]: {e}")
            return e.envelope
        except SyncError as e:
            logger.error(f"Data service error [{method} {endpoint}]: {e}")
            return Envelope.failure(str(e) or "Request failed")

        if method == "GET":
            if use_cache:
                self.cache.set(key, envelope)
        else:
            self.cache.invalidate(None)
            self.bus.publish(resource_type, SyncEvent(
                data_type=resource_type,
                data=envelope.data,
                action=_METHOD_ACTIONS[method]
            ))
        return envelope

    def queue_sync(self, op: SyncOperation) -> Future:
        """
        Queue a sync operation without waiting for it to be sent.

        The queue worker sends the operation in order. While offline the
        operation goes straight to the outbox and is replayed when the
        network comes back.

        Args:
            op: The operation to queue

        Returns:
            Future settled with the operation's Envelope or error

        Raises:
            ValidationError: If the operation is malformed
        """
        if not self.connectivity.online:
            future = self.queue.defer(op)
            logger.info(f"Offline, queued {op.kind.value} {op.resource_type} for sync when online")
            return future
        return self.queue.enqueue(op)

    def synced_create(self, resource_type: str, endpoint: str, payload: Any) -> Future:
        return self.queue_sync(SyncOperation(
            kind=OperationKind.CREATE,
            resource_type=resource_type,
            endpoint=endpoint,
            payload=payload
        ))

    def synced_update(
        self,
        resource_type: str,
        endpoint: str,
        payload: Any,
        client_snapshot: Optional[Dict[str, Any]] = None
    ) -> Future:
        return self.queue_sync(SyncOperation(
            kind=OperationKind.UPDATE,
            resource_type=resource_type,
            endpoint=endpoint,
            payload=payload,
            client_snapshot=client_snapshot
        ))

    def synced_delete(self, resource_type: str, endpoint: str) -> Future:
        return self.queue_sync(SyncOperation(
            kind=OperationKind.DELETE,
            resource_type=resource_type,
            endpoint=endpoint
        ))

    def synced_fetch(self, resource_type: str, endpoint: str) -> Future:
        """
        Fetch through the sync queue; while offline answer from the cache.
        """
        if self.connectivity.online:
            return self.queue_sync(SyncOperation(
                kind=OperationKind.FETCH,
                resource_type=resource_type,
                endpoint=endpoint
            ))

        future: Future = Future()
        cached = self.cache.get(f"{resource_type}:{endpoint}")
        future.set_result(cached or Envelope.failure("No cached data available offline"))
        return future

    def subscribe(self, topic: str, callback: Callable[[Any], None]) -> Callable[[], None]:
        return self.bus.subscribe(topic, callback)

    def enable_sync(self) -> None:
        self.scheduler.enable()

    def disable_sync(self) -> None:
        self.scheduler.disable()

    def set_online(self, online: bool) -> None:
        """Report a network state change from the host."""
        self.connectivity.set_online(online)

    def start_connectivity_polling(self, interval: float = ConnectivityMonitor.DEFAULT_POLL_INTERVAL) -> None:
        """
        Poll the transport health check to track network state.

        Raises:
            ValidationError: If the HTTP collaborator has no health check
        """
        if self.transport is None:
            raise ValidationError("Connectivity polling requires the built-in transport")
        self.connectivity.start_polling(self.transport.health_check, interval)

    def _on_network_change(self, online: bool) -> None:
        if online:
            self.flush_outbox()
        else:
            self._cancel_redrive()

    def flush_outbox(self) -> DrainResult:
        """
        Replay the offline outbox into the sync queue.

        When the pass stops on another network failure, a redrive is
        scheduled according to the backoff policy.

        Returns:
            Summary of the drain pass
        """
        result = self.outbox.drain_into(self.queue)
        if result.replayed:
            logger.info(
                f"Offline outbox pass: {result.replayed} replayed, {result.applied} applied, "
                f"{result.failed} failed, {self.outbox.count()} pending"
            )

        if result.stopped:
            self._schedule_redrive()
        else:
            with self._redrive_lock:
                self._redrive_attempt = 0
        return result

    def _schedule_redrive(self) -> None:
        policy = self.config.backoff
        with self._redrive_lock:
            if not self.connectivity.online:
                return
            if not policy.allows(self._redrive_attempt):
                logger.warning(
                    f"Giving up outbox redrive after {self._redrive_attempt} attempts, "
                    "waiting for the next online transition"
                )
                self._redrive_attempt = 0
                return

            delay = policy.delay_for(self._redrive_attempt)
            self._redrive_attempt += 1
            if self._redrive_timer is not None:
                self._redrive_timer.cancel()
            self._redrive_timer = threading.Timer(delay, self._redrive)
            self._redrive_timer.daemon = True
            self._redrive_timer.start()

        logger.debug(f"Outbox redrive {self._redrive_attempt}/{policy.max_attempts} in {delay:.1f}s")

    def _redrive(self) -> None:
        if self.connectivity.online:
            try:
                self.flush_outbox()
            except Exception as e:
                logger.error(f"Error redriving offline outbox: {e}")

    def _cancel_redrive(self) -> None:
        with self._redrive_lock:
            if self._redrive_timer is not None:
                self._redrive_timer.cancel()
                self._redrive_timer = None
            self._redrive_attempt = 0

    def cancel_offline(self, operation_id: str) -> bool:
        """
        Cancel a buffered operation and its pending Future.

        Returns:
            True if the operation was in the outbox
        """
        removed = self.outbox.cancel(operation_id)
        if removed:
            self.queue.abandon(operation_id)
        return removed

    def resolve_conflict(self, operation_id: str, record: Dict[str, Any]) -> Future:
        return self.queue.resolve_conflict(operation_id, record)

    def discard_conflict(self, operation_id: str) -> bool:
        return self.queue.discard_conflict(operation_id)

    def validate_consistency(
        self,
        resource_type: str,
        client_record: Optional[Dict[str, Any]],
        endpoint: str,
        fields: Optional[Iterable[str]] = None
    ) -> ConsistencyResult:
        return validate_consistency(self.gateway, self.bus, resource_type, client_record, endpoint, fields)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the sync queue has processed everything queued so far.

        Returns:
            False if the timeout expired first
        """
        return self.queue.wait_idle(timeout)

    def get_sync_status(self) -> SyncStatus:
        return SyncStatus(
            enabled=self.scheduler.enabled,
            online=self.connectivity.online,
            queue_length=self.queue.length,
            offline_queue_length=self.outbox.count(),
            in_progress=self.queue.in_progress,
            last_sync_times=self.queue.last_sync_times,
            subscriptions=self.bus.topics()
        )

    def close(self) -> None:
        """
        Shut the service down.

        Stops the scheduler and polling, cancels every unsettled operation
        Future, and releases the outbox and transport.
        """
        self.scheduler.stop()
        self.connectivity.stop()
        self._cancel_redrive()
        self._remove_listener()
        self.queue.close()
        self.bus.clear()
        self.outbox.close()
        if self.transport is not None:
            self.transport.close()
        logger.debug("Data sync service closed")
