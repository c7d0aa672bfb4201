import time
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SyncEvent:
    """Payload delivered to notification bus subscribers."""
    data_type: str
    data: Any
    action: str
    timestamp: float = field(default_factory=time.time)
