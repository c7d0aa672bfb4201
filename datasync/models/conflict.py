from dataclasses import dataclass
from enum import Enum
from typing import Any


class ConflictType(str, Enum):
    FIELD = "field"
    TIMESTAMP = "timestamp"
    DELETED = "deleted"


@dataclass(frozen=True)
class Conflict:
    conflict_type: ConflictType
    field: str
    client_value: Any
    server_value: Any

    def to_dict(self) -> dict:
        return {
            "type": self.conflict_type.value,
            "field": self.field,
            "client_value": self.client_value,
            "server_value": self.server_value,
        }
