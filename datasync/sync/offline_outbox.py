"""
Offline outbox for operations that could not reach the network.

Operations are stored in a SQLite table in the order they failed and are
replayed into the Sync Queue when connectivity is restored. The default
":memory:" database keeps the outbox session-scoped; a file path makes it
survive restarts.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Iterator, List, Optional

from datasync.models.sync_operation import OfflineEntry, OperationState, SyncOperation

if TYPE_CHECKING:
    from .sync_queue import SyncQueue

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    replayed: int = 0
    applied: int = 0
    failed: int = 0
    stopped: bool = False


class OfflineOutbox:
    """
    SQLite-backed FIFO buffer of sync operations pending network recovery.

    This class provides:
    - Enqueue-order storage of buffered operations
    - Cancellation of a buffered operation by id
    - Ordered replay into the Sync Queue
    - Thread-safe operations
    """

    DEFAULT_DB_PATH = ":memory:"

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize the outbox.

        Args:
            db_path: Path to the SQLite database file. If None, an in-memory
                     database is used and the outbox lives for the session.
        """
        self.db_path = db_path or self.DEFAULT_DB_PATH
        self._lock = threading.Lock()
        self._drain_lock = threading.Lock()
        self._is_memory = self.db_path == ":memory:"
        self._shared_conn: Optional[sqlite3.Connection] = None
        self._init_database()

    def _init_database(self) -> None:
        """Initialize the SQLite database schema."""
        with self._connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS offline_operations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    operation_id TEXT NOT NULL,
                    operation TEXT NOT NULL,
                    queued_at TEXT NOT NULL,
                    attempts INTEGER DEFAULT 0,
                    last_error TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_operation_id
                ON offline_operations(operation_id)
            """)
            conn.commit()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        # For in-memory databases, reuse the same connection
        if self._is_memory:
            if self._shared_conn is None:
                self._shared_conn = sqlite3.connect(":memory:", check_same_thread=False)
                self._shared_conn.row_factory = sqlite3.Row
            return self._shared_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection for one transaction, closing file-backed ones afterwards."""
        conn = self._get_connection()
        try:
            with conn:
                yield conn
        finally:
            if not self._is_memory:
                conn.close()

    def add(self, op: SyncOperation, error: Optional[str] = None, attempts: int = 0) -> int:
        """
        Add an operation to the tail of the outbox.

        Args:
            op: The operation that could not be sent
            error: Optional error message from the failed attempt
            attempts: Number of replay attempts already made

        Returns:
            The ID of the inserted entry
        """
        op.state = OperationState.BUFFERED
        with self._lock:
            with self._connection() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO offline_operations (operation_id, operation, queued_at, attempts, last_error)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (op.id, json.dumps(op.to_dict()), datetime.now(timezone.utc).isoformat(), attempts, error)
                )
                conn.commit()
                entry_id = cursor.lastrowid

        logger.info(f"Added operation {op.id} to offline outbox ({self.count()} pending)")
        return entry_id

    def pending(self, limit: Optional[int] = None) -> List[OfflineEntry]:
        """
        Get buffered operations in enqueue order.

        Args:
            limit: Maximum number of entries to return

        Returns:
            List of offline entries
        """
        query = """
            SELECT id, operation, queued_at, attempts, last_error
            FROM offline_operations
            ORDER BY id ASC
        """
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        with self._lock:
            with self._connection() as conn:
                rows = conn.execute(query, params).fetchall()

        entries = []
        for row in rows:
            op = SyncOperation.from_dict(json.loads(row['operation']))
            op.state = OperationState.BUFFERED
            entries.append(OfflineEntry(
                entry_id=row['id'],
                operation=op,
                queued_at=row['queued_at'],
                attempts=row['attempts'],
                last_error=row['last_error']
            ))
        return entries

    def remove(self, entry_id: int) -> None:
        """
        Remove an entry from the outbox.

        Args:
            entry_id: The ID of the entry to remove
        """
        with self._lock:
            with self._connection() as conn:
                conn.execute("DELETE FROM offline_operations WHERE id = ?", (entry_id,))
                conn.commit()

    def cancel(self, operation_id: str) -> bool:
        """
        Cancel a buffered operation.

        Args:
            operation_id: The SyncOperation id

        Returns:
            True if an entry was removed
        """
        with self._lock:
            with self._connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM offline_operations WHERE operation_id = ?",
                    (operation_id,)
                )
                conn.commit()
                return cursor.rowcount > 0

    def count(self) -> int:
        """
        Get the number of buffered operations.

        Returns:
            Number of pending entries
        """
        with self._lock:
            with self._connection() as conn:
                cursor = conn.execute("SELECT COUNT(*) as count FROM offline_operations")
                return cursor.fetchone()['count']

    def clear(self) -> int:
        """
        Clear all buffered operations.

        Returns:
            Number of entries deleted
        """
        with self._lock:
            with self._connection() as conn:
                cursor = conn.execute("DELETE FROM offline_operations")
                conn.commit()
                return cursor.rowcount

    def drain_into(self, queue: 'SyncQueue') -> DrainResult:
        """
        Replay buffered operations into the sync queue in enqueue order.

        Each entry leaves the outbox before it is resubmitted. An operation
        that fails with a network error again is re-added at the tail by
        the queue, and draining stops for this pass.

        Args:
            queue: The sync queue to replay into

        Returns:
            Summary of the drain pass
        """
        result = DrainResult()
        if not self._drain_lock.acquire(blocking=False):
            logger.debug("Outbox drain already running")
            return result

        try:
            entries = self.pending()
            if not entries:
                return result

            logger.info(f"Processing offline outbox ({len(entries)} operations)")
            for entry in entries:
                self.remove(entry.entry_id)
                state = queue.submit(entry.operation, attempts=entry.attempts + 1)
                result.replayed += 1

                if state == OperationState.BUFFERED:
                    result.stopped = True
                    logger.warning(f"Network still unavailable, outbox drain stopped ({self.count()} pending)")
                    break
                if state == OperationState.APPLIED:
                    result.applied += 1
                elif state == OperationState.FAILED:
                    result.failed += 1
        finally:
            self._drain_lock.release()

        return result

    def close(self) -> None:
        """Close the outbox and any open connections."""
        if self._shared_conn is not None:
            self._shared_conn.close()
            self._shared_conn = None
