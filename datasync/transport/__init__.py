"""
HTTP transport for the sync engine.

- HttpResponse / HttpCall: the boundary the Request Gateway depends on
- RequestsTransport: default implementation on top of requests
"""

from .base import HttpCall, HttpResponse
from .http_transport import RequestsTransport

__all__ = ['HttpCall', 'HttpResponse', 'RequestsTransport']
