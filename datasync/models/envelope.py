from dataclasses import dataclass, asdict
from typing import Any, Optional, Union


@dataclass(frozen=True)
class Envelope:
    """Canonical normalized response. A failed envelope never carries data."""
    success: bool
    data: Any = None
    pagination: Optional[dict] = None
    message: Optional[str] = None
    errors: Optional[Union[list, dict]] = None

    def __post_init__(self):
        if not self.success and self.data is not None:
            object.__setattr__(self, 'data', None)

    @classmethod
    def failure(cls, message: Optional[str], errors: Optional[Union[list, dict]] = None) -> 'Envelope':
        return cls(success=False, message=message, errors=errors)

    def to_dict(self) -> dict:
        return asdict(self)
