"""
Sync Queue: ordered, serialized processing of sync operations.

Operations move through ``pending -> in_flight`` and end ``applied``,
``failed``, ``awaiting_conflict_resolution`` or ``buffered`` (handed to the
Offline Outbox after a network failure). A single worker thread takes
operations strictly in FIFO order, so only one is in flight at a time and
enqueue() returns without waiting for the network.

Every operation has a Future that settles when the operation does: with the
Envelope once applied, or with the error once it fails. Buffered and
awaiting operations keep their Future pending until a later replay settles.
"""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Deque, Dict, List, Optional

from datasync.models.conflict import ConflictType
from datasync.models.envelope import Envelope
from datasync.models.sync_event import SyncEvent
from datasync.models.sync_operation import OperationKind, OperationState, SyncOperation
from .cache_store import CacheStore
from .conflict_resolver import ConflictResolver, ConflictStrategy
from .errors import ConflictError, NetworkError, ServerError, SyncError, ValidationError
from .notification_bus import CONFLICT_TOPIC, NotificationBus
from .offline_outbox import OfflineOutbox
from .request_gateway import SUPPORTED_METHODS, RequestGateway

logger = logging.getLogger(__name__)


def cache_key_for(op: SyncOperation) -> str:
    return f"{op.resource_type}:{op.endpoint}"


class SyncQueue:
    """
    FIFO processor of sync operations.

    This class provides:
    - Validation of operations before they are queued
    - A dedicated worker thread processing one operation at a time
    - Conflict detection and resolution before updates are written
    - Cache write-through and change notifications on success
    - Hand-off to the offline outbox on network failures
    """

    def __init__(
        self,
        gateway: RequestGateway,
        resolver: ConflictResolver,
        cache: CacheStore,
        bus: NotificationBus,
        outbox: Optional[OfflineOutbox] = None,
        strategy: Any = None,
        clock: Callable[[], float] = time.time,
        autostart: bool = True
    ):
        """
        Initialize the sync queue.

        Args:
            gateway: Request gateway used for every network call
            resolver: Conflict resolver for updates
            cache: Cache store written through on success
            bus: Notification bus for change events
            outbox: Offline outbox receiving operations that hit network errors
            strategy: Conflict strategy; defaults to the resolver's
            clock: Time source for last-sync bookkeeping
            autostart: Start the worker thread on the first enqueue
        """
        self.gateway = gateway
        self.resolver = resolver
        self.cache = cache
        self.bus = bus
        self.outbox = outbox
        self.strategy = resolver.strategy if strategy is None else ConflictStrategy.parse(strategy)
        self._clock = clock
        self._autostart = autostart

        self._pending: Deque[SyncOperation] = deque()
        self._futures: Dict[str, Future] = {}
        self._awaiting: Dict[str, SyncOperation] = {}
        self._attempts: Dict[str, int] = {}
        self._processed: Dict[str, threading.Event] = {}
        self._last_sync: Dict[str, float] = {}

        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._active: Optional[SyncOperation] = None
        self._worker: Optional[threading.Thread] = None
        self._stopping = False
        self._closed = False

    @property
    def length(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def in_progress(self) -> bool:
        return self._active is not None

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    @property
    def awaiting(self) -> List[str]:
        with self._lock:
            return list(self._awaiting.keys())

    @property
    def last_sync_times(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._last_sync)

    def validate(self, op: SyncOperation) -> None:
        """
        Reject malformed operations before they are queued.

        Raises:
            ValidationError: If the operation cannot be processed
        """
        if not isinstance(op, SyncOperation):
            raise ValidationError(f"Expected a SyncOperation, got {type(op).__name__}")
        if not isinstance(op.kind, OperationKind):
            raise ValidationError(f"Unsupported operation kind: {op.kind}")
        if not op.resource_type or not isinstance(op.resource_type, str):
            raise ValidationError("Operation requires a resource type")
        if not op.endpoint or not isinstance(op.endpoint, str):
            raise ValidationError("Operation requires an endpoint")
        if op.method is not None and op.http_method not in SUPPORTED_METHODS:
            raise ValidationError(f"Unsupported HTTP method: {op.method}")
        if op.kind in (OperationKind.CREATE, OperationKind.UPDATE) and op.payload is None:
            raise ValidationError(f"A {op.kind.value} operation requires a payload")

    def _register(self, op: SyncOperation) -> Future:
        future = self._futures.get(op.id)
        if future is None:
            future = Future()
            self._futures[op.id] = future
        return future

    def start(self) -> None:
        """Start the worker thread if it is not already running."""
        with self._lock:
            if self._closed or (self._worker is not None and self._worker.is_alive()):
                return
            self._stopping = False
            self._worker = threading.Thread(
                target=self._run_worker,
                name="SyncQueueWorker",
                daemon=True
            )
            self._worker.start()
        logger.debug("Sync queue worker started")

    def enqueue(self, op: SyncOperation) -> Future:
        """
        Add an operation to the tail of the queue.

        Returns as soon as the operation is queued; the worker thread sends it.

        Args:
            op: The operation to queue

        Returns:
            Future settled with the operation's Envelope or error

        Raises:
            ValidationError: If the operation is malformed
            SyncError: If the queue has been closed
        """
        self.validate(op)
        with self._lock:
            if self._closed:
                raise SyncError("Sync queue is closed")
            future = self._register(op)
            op.state = OperationState.PENDING
            self._pending.append(op)
            self._idle.notify_all()

        logger.debug(f"Queued {op.kind.value} {op.resource_type} ({op.id})")
        if self._autostart:
            self.start()
        return future

    def defer(self, op: SyncOperation, reason: str = "Network is offline") -> Future:
        """
        Hand an operation straight to the offline outbox without sending it.

        Returns:
            Future settled when the operation is eventually replayed
        """
        self.validate(op)
        if self.outbox is None:
            raise NetworkError(reason)
        with self._lock:
            future = self._register(op)
        self.outbox.add(op, error=reason)
        return future

    def submit(self, op: SyncOperation, attempts: int = 0) -> OperationState:
        """
        Queue an operation and wait until the worker has processed it.

        Used by the outbox to replay buffered operations one at a time.
        Called from the worker thread itself, the operation is processed
        inline.

        Args:
            op: The operation to run
            attempts: Replay attempts made so far

        Returns:
            The operation's state after processing
        """
        try:
            self.validate(op)
        except ValidationError as e:
            logger.error(f"Dropping invalid operation {op.id}: {e}")
            self._settle(op, error=e)
            return OperationState.FAILED

        if threading.current_thread() is self._worker:
            with self._lock:
                self._attempts[op.id] = attempts
                self._register(op)
            self._process_operation(op)
            return op.state

        done = threading.Event()
        with self._lock:
            self._attempts[op.id] = attempts
            self._processed[op.id] = done
        try:
            self.enqueue(op)
        except SyncError as e:
            with self._lock:
                self._processed.pop(op.id, None)
                self._attempts.pop(op.id, None)
            logger.error(f"Cannot replay operation {op.id}: {e}")
            return op.state

        self.start()
        done.wait()
        return op.state

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until every queued operation has been processed.

        Args:
            timeout: Maximum seconds to wait, or None to wait indefinitely

        Returns:
            False if the timeout expired first
        """
        with self._lock:
            return self._idle.wait_for(lambda: not self._pending and self._active is None, timeout)

    def _run_worker(self) -> None:
        """Worker loop taking operations off the queue one at a time."""
        while True:
            with self._lock:
                while not self._pending and not self._stopping:
                    self._idle.wait()
                if self._stopping:
                    break
                op = self._pending.popleft()
                self._active = op

            try:
                self._process_operation(op)
            finally:
                with self._lock:
                    self._active = None
                    done = self._processed.pop(op.id, None)
                    self._idle.notify_all()
                if done is not None:
                    done.set()

        logger.debug("Sync queue worker stopped")

    def _process_operation(self, op: SyncOperation) -> None:
        op.state = OperationState.IN_FLIGHT
        try:
            if op.kind == OperationKind.UPDATE:
                payload = self._prepare_update(op)
            else:
                payload = op.payload
            envelope = self.gateway.request(op.http_method, op.endpoint, payload)
        except NetworkError as e:
            self._buffer(op, e)
        except ConflictError as e:
            if any(c.conflict_type == ConflictType.DELETED for c in e.conflicts):
                self._fail(op, e)
            else:
                self._await_resolution(op, e)
        except SyncError as e:
            self._fail(op, e)
        except Exception as e:
            logger.exception(f"Unexpected error processing {op.kind.value} {op.resource_type} ({op.id})")
            self._fail(op, e)
        else:
            self._apply(op, envelope)

    def _prepare_update(self, op: SyncOperation) -> Any:
        """
        Re-fetch the server record and settle conflicts before an update.

        Returns:
            The payload to write

        Raises:
            ConflictError: If the record was deleted upstream, or the
                           strategy is manual and conflicts exist
            NetworkError: If the server record could not be fetched
        """
        if op.conflict_resolved or not op.client_snapshot:
            return op.payload

        try:
            current = self.gateway.fetch(op.endpoint)
        except ServerError as e:
            if e.is_not_found:
                report = self.resolver.deleted_report(op.client_snapshot)
                self.resolver.resolve(report, op.client_snapshot, None, self.strategy)
                raise ConflictError(
                    "Record was deleted upstream",
                    conflicts=report,
                    client_data=op.client_snapshot,
                    server_data=None
                ) from e
            logger.warning(f"Could not re-fetch {op.endpoint} before update ({e}), writing without conflict check")
            return op.payload

        server_record = current.data
        if not isinstance(server_record, dict):
            return op.payload

        report = self.resolver.detect(op.client_snapshot, server_record)
        if not report:
            return op.payload

        logger.info(f"{len(report)} conflict(s) on {op.endpoint}, resolving {self.strategy.value}")
        return self.resolver.resolve(report, op.client_snapshot, server_record, self.strategy)

    def _apply(self, op: SyncOperation, envelope: Envelope) -> None:
        op.state = OperationState.APPLIED
        if op.kind.is_mutation:
            self.cache.invalidate(None)
        else:
            self.cache.set(cache_key_for(op), envelope)

        with self._lock:
            self._last_sync[op.resource_type] = self._clock()

        logger.debug(f"Applied {op.kind.value} {op.resource_type} ({op.id})")
        self.bus.publish(op.resource_type, SyncEvent(
            data_type=op.resource_type,
            data=envelope.data,
            action=op.kind.value
        ))
        self._settle(op, result=envelope)

    def _buffer(self, op: SyncOperation, error: NetworkError) -> None:
        if self.outbox is None:
            self._fail(op, error)
            return

        with self._lock:
            attempts = self._attempts.pop(op.id, 0)
        logger.warning(f"Network error on {op.kind.value} {op.resource_type} ({op.id}): {error}")
        self.outbox.add(op, error=str(error), attempts=attempts)

    def _fail(self, op: SyncOperation, error: BaseException) -> None:
        op.state = OperationState.FAILED
        logger.error(f"Sync operation failed ({op.kind.value} {op.resource_type}): {error}")
        self._settle(op, error=error)

    def _await_resolution(self, op: SyncOperation, error: ConflictError) -> None:
        op.state = OperationState.AWAITING_CONFLICT_RESOLUTION
        with self._lock:
            self._awaiting[op.id] = op
            self._attempts.pop(op.id, None)

        self.bus.publish(CONFLICT_TOPIC, SyncEvent(
            data_type=CONFLICT_TOPIC,
            data={
                "operation_id": op.id,
                "resource_type": op.resource_type,
                "conflicts": [c.to_dict() for c in error.conflicts],
                "client_data": error.client_data,
                "server_data": error.server_data,
            },
            action="conflict"
        ))

    def _settle(self, op: SyncOperation, result: Any = None, error: Optional[BaseException] = None) -> None:
        with self._lock:
            future = self._futures.pop(op.id, None)
            self._attempts.pop(op.id, None)
        if future is None or future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def resolve_conflict(self, operation_id: str, record: Dict[str, Any]) -> Future:
        """
        Supply the record to write for an operation awaiting resolution.

        The operation is re-queued at the tail without another conflict check.

        Args:
            operation_id: Id of the awaiting operation
            record: The resolved record to write

        Returns:
            The operation's original Future

        Raises:
            ValidationError: If no such operation is awaiting resolution
        """
        with self._lock:
            op = self._awaiting.pop(operation_id, None)
        if op is None:
            raise ValidationError(f"No operation awaiting conflict resolution: {operation_id}")

        op.payload = record
        op.conflict_resolved = True
        return self.enqueue(op)

    def discard_conflict(self, operation_id: str) -> bool:
        """
        Give up on an operation awaiting resolution.

        Returns:
            True if an awaiting operation was discarded
        """
        with self._lock:
            op = self._awaiting.pop(operation_id, None)
        if op is None:
            return False
        self._fail(op, ConflictError("Conflict discarded by caller", conflicts=[]))
        return True

    def clear(self) -> int:
        """
        Drop queued operations and cancel their futures.

        Returns:
            Number of operations dropped
        """
        with self._lock:
            dropped = list(self._pending)
            self._pending.clear()
            futures = [self._futures.pop(op.id, None) for op in dropped]
            waiters = [self._processed.pop(op.id, None) for op in dropped]
            self._idle.notify_all()

        for future in futures:
            if future is not None:
                future.cancel()
        for done in waiters:
            if done is not None:
                done.set()
        return len(dropped)

    def close(self) -> None:
        """
        Stop the worker and cancel every unsettled Future.

        Futures of buffered and awaiting operations are cancelled too; the
        outbox keeps its entries. The operation in flight, if any, completes.
        """
        with self._lock:
            self._closed = True
            self._stopping = True
            self._idle.notify_all()
            worker = self._worker

        self.clear()
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=5)

        with self._lock:
            futures = list(self._futures.values())
            self._futures.clear()
            self._awaiting.clear()
            self._attempts.clear()
            self._worker = None

        for future in futures:
            future.cancel()
        logger.debug(f"Sync queue closed ({len(futures)} unsettled operations cancelled)")

    def abandon(self, operation_id: str) -> bool:
        """
        Cancel the Future of an operation the caller no longer wants.

        Returns:
            True if a pending Future was cancelled
        """
        with self._lock:
            future = self._futures.pop(operation_id, None)
            self._attempts.pop(operation_id, None)
        return future.cancel() if future is not None else False
