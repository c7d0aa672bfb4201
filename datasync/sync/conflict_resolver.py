"""
Conflict detection and resolution for synced updates.

Before an update is written, the client's copy of the record is compared
against a freshly fetched server copy. Differences on the tracked fields,
or a newer server modification timestamp, are reported as conflicts and
settled with one of the strategies:

  * ``server-wins`` - shallow merge, server fields override (default)
  * ``client-wins`` - keep the client copy unchanged
  * ``manual`` - raise ConflictError so the caller can decide
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from datasync.models.conflict import Conflict, ConflictType
from .errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

# Larger epoch numbers are milliseconds (year 5138 in seconds)
EPOCH_MILLIS_THRESHOLD = 1e11


class ConflictStrategy(str, Enum):
    SERVER_WINS = "server-wins"
    CLIENT_WINS = "client-wins"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: Any) -> 'ConflictStrategy':
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("_", "-"))
        except ValueError:
            raise ValidationError(f"Unknown conflict strategy: {value}")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a modification timestamp into an aware datetime.

    Accepts datetimes, epoch seconds or milliseconds, and ISO 8601 strings
    (a trailing ``Z`` is understood). Returns None for anything unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000.0 if abs(value) > EPOCH_MILLIS_THRESHOLD else value
        try:
            parsed = datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class ConflictResolver:
    """Compare client and server records and merge them per strategy."""

    DEFAULT_FIELDS = ("title", "description", "status", "priority", "assignedTo")
    DEFAULT_TIMESTAMP_FIELD = "updatedAt"

    def __init__(
        self,
        fields: Iterable[str] = DEFAULT_FIELDS,
        timestamp_field: str = DEFAULT_TIMESTAMP_FIELD,
        strategy: Any = ConflictStrategy.SERVER_WINS
    ):
        """
        Initialize the resolver.

        Args:
            fields: Record fields compared for conflicts
            timestamp_field: Field holding the last modification time
            strategy: Default strategy used by resolve()
        """
        self.fields = tuple(fields)
        self.timestamp_field = timestamp_field
        self.strategy = ConflictStrategy.parse(strategy)

    def detect(self, client_snapshot: Dict[str, Any], server_record: Dict[str, Any]) -> List[Conflict]:
        """
        Detect conflicts between the client and server copies of a record.

        Args:
            client_snapshot: Record as the client holds it
            server_record: Record as currently stored on the server

        Returns:
            List of conflicts, empty when the copies agree
        """
        if server_record is None:
            return self.deleted_report(client_snapshot)

        conflicts: List[Conflict] = []

        client_ts = client_snapshot.get(self.timestamp_field)
        server_ts = server_record.get(self.timestamp_field)
        client_time = parse_timestamp(client_ts)
        server_time = parse_timestamp(server_ts)
        if client_time and server_time and server_time > client_time:
            conflicts.append(Conflict(
                conflict_type=ConflictType.TIMESTAMP,
                field=self.timestamp_field,
                client_value=client_ts,
                server_value=server_ts
            ))

        for name in self.fields:
            if name not in client_snapshot or name not in server_record:
                continue
            if client_snapshot[name] != server_record[name]:
                conflicts.append(Conflict(
                    conflict_type=ConflictType.FIELD,
                    field=name,
                    client_value=client_snapshot[name],
                    server_value=server_record[name]
                ))

        return conflicts

    def deleted_report(self, client_snapshot: Optional[Dict[str, Any]]) -> List[Conflict]:
        """Report for a record that no longer exists on the server."""
        return [Conflict(
            conflict_type=ConflictType.DELETED,
            field="*",
            client_value=client_snapshot,
            server_value=None
        )]

    def resolve(
        self,
        report: List[Conflict],
        client_snapshot: Dict[str, Any],
        server_record: Optional[Dict[str, Any]],
        strategy: Any = None
    ) -> Optional[Dict[str, Any]]:
        """
        Produce the record to write for a conflict report.

        A report containing a deleted conflict always resolves server-wins,
        which for a deleted record is None.

        Args:
            report: Conflicts returned by detect()
            client_snapshot: Record as the client holds it
            server_record: Record as currently stored on the server
            strategy: Overrides the resolver's default strategy

        Returns:
            The merged record

        Raises:
            ConflictError: If the strategy is manual and conflicts exist
        """
        if not report:
            return client_snapshot

        if any(c.conflict_type == ConflictType.DELETED for c in report):
            logger.warning("Record deleted upstream, resolving server-wins")
            return None

        chosen = self.strategy if strategy is None else ConflictStrategy.parse(strategy)

        if chosen == ConflictStrategy.SERVER_WINS:
            return {**client_snapshot, **server_record}

        if chosen == ConflictStrategy.CLIENT_WINS:
            return dict(client_snapshot)

        logger.warning(f"Manual conflict resolution required: {len(report)} conflict(s)")
        raise ConflictError(
            "Manual conflict resolution required",
            conflicts=report,
            client_data=client_snapshot,
            server_data=server_record
        )
