"""
Read-only consistency check between a cached record and the server copy.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from datasync.models.sync_event import SyncEvent
from .errors import ServerError, SyncError
from .notification_bus import INCONSISTENCY_TOPIC, NotificationBus
from .request_gateway import RequestGateway

logger = logging.getLogger(__name__)


@dataclass
class ConsistencyResult:
    is_consistent: bool
    issues: List[str] = field(default_factory=list)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def compare_records(
    client_record: Optional[Dict[str, Any]],
    server_record: Optional[Dict[str, Any]],
    fields: Optional[Iterable[str]] = None
) -> ConsistencyResult:
    """
    Compare two copies of a record field by field.

    Args:
        client_record: Locally held copy
        server_record: Server copy
        fields: Fields to compare; defaults to those present in both records

    Returns:
        The comparison result
    """
    if client_record is None and server_record is None:
        return ConsistencyResult(True)
    if client_record is None or server_record is None:
        return ConsistencyResult(False, ["Data exists in one source but not the other"])

    if fields is None:
        fields = [k for k in client_record if k in server_record]

    issues = []
    for name in fields:
        if _canonical(client_record.get(name)) != _canonical(server_record.get(name)):
            issues.append(f"Field '{name}' differs between client and server")
    return ConsistencyResult(not issues, issues)


def validate_consistency(
    gateway: RequestGateway,
    bus: NotificationBus,
    resource_type: str,
    client_record: Optional[Dict[str, Any]],
    endpoint: str,
    fields: Optional[Iterable[str]] = None
) -> ConsistencyResult:
    """
    Check a locally cached record against the server's current copy.

    Publishes on the "inconsistency" topic when the copies disagree. Never
    mutates either side.

    Args:
        gateway: Request gateway used to fetch the server copy
        bus: Notification bus for inconsistency events
        resource_type: Resource type of the record
        client_record: Locally held copy
        endpoint: Endpoint of the record on the server
        fields: Fields to compare

    Returns:
        The comparison result
    """
    try:
        server_record = gateway.fetch(endpoint).data
    except ServerError as e:
        if not e.is_not_found:
            logger.error(f"Consistency validation failed for {resource_type}: {e}")
            return ConsistencyResult(False, [f"Validation failed: {e}"])
        server_record = None
    except SyncError as e:
        logger.error(f"Consistency validation failed for {resource_type}: {e}")
        return ConsistencyResult(False, [f"Validation failed: {e}"])

    result = compare_records(client_record, server_record, fields)
    if not result.is_consistent:
        logger.warning(f"Data inconsistency detected for {resource_type}: {result.issues}")
        bus.publish(INCONSISTENCY_TOPIC, SyncEvent(
            data_type=INCONSISTENCY_TOPIC,
            data={
                "resource_type": resource_type,
                "client_data": client_record,
                "server_data": server_record,
                "issues": result.issues,
            },
            action="inconsistency"
        ))
    return result
