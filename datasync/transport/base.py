"""
HTTP collaborator boundary.

The sync engine talks to the backend through any callable taking
``(method, url, body)`` and returning an HttpResponse. Callables raise
NetworkError (or a builtin ConnectionError/TimeoutError) when no response
was received.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass
class HttpResponse:
    status_code: int
    body: Any = None
    text: Optional[str] = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


HttpCall = Callable[[str, str, Any], HttpResponse]
