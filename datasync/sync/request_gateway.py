"""
Request Gateway: one logical operation against the HTTP collaborator.

Issues the request, normalizes whatever the backend returned into the
canonical Envelope, and classifies failures as NetworkError, ServerError
or ValidationError. It never touches cache or notification state.
"""

import logging
from typing import Any, Callable, Optional

from datasync.models.envelope import Envelope
from datasync.models.sync_operation import SyncOperation
from datasync.transport.base import HttpCall, HttpResponse
from .errors import NetworkError, ServerError, SyncError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")

STATUS_MESSAGES = {
    400: "Invalid request. Please check your input.",
    401: "Authentication failed.",
    403: "You do not have permission to perform this action.",
    404: "Requested resource not found.",
    409: "A conflict occurred. The resource may already exist.",
    422: "Validation failed. Please check your input.",
    429: "Too many requests. Please slow down and try again later.",
    500: "Server error. Please try again later.",
    502: "Server is temporarily unavailable. Please try again later.",
    503: "Service is temporarily unavailable. Please try again later.",
}


def _check_optional(body: dict, key: str, types: tuple) -> Any:
    value = body.get(key)
    if value is not None and not isinstance(value, types):
        raise ValidationError(f"Malformed envelope: '{key}' has type {type(value).__name__}")
    return value


def normalize_response(body: Any) -> Envelope:
    """
    Map a decoded response body onto the canonical Envelope.

    - None (empty body) is a successful envelope without data
    - A dict with a ``success`` key is an already-wrapped envelope
    - Any other dict, or a list, is bare data
    - Anything else is rejected

    Args:
        body: Decoded JSON body

    Returns:
        The normalized envelope

    Raises:
        ValidationError: If the body has an unexpected shape
    """
    if body is None:
        return Envelope(success=True)

    if isinstance(body, dict) and "success" in body:
        success = body["success"]
        if not isinstance(success, bool):
            raise ValidationError("Malformed envelope: 'success' must be a boolean")
        return Envelope(
            success=success,
            data=body.get("data") if success else None,
            pagination=_check_optional(body, "pagination", (dict,)),
            message=_check_optional(body, "message", (str,)),
            errors=_check_optional(body, "errors", (list, dict)),
        )

    if isinstance(body, (dict, list)):
        return Envelope(success=True, data=body)

    raise ValidationError(f"Unexpected response body of type {type(body).__name__}")


def _failure_envelope(response: HttpResponse) -> Envelope:
    body = response.body if isinstance(response.body, dict) else {}
    message = body.get("message") if isinstance(body.get("message"), str) else None
    if message is None:
        message = STATUS_MESSAGES.get(
            response.status_code, f"Request failed with status {response.status_code}"
        )
    errors = body.get("errors") if isinstance(body.get("errors"), (list, dict)) else None
    return Envelope.failure(message, errors)


class RequestGateway:
    """
    Pure transport adapter between sync operations and the HTTP collaborator.

    This class provides:
    - URL composition from an optional base URL
    - Envelope normalization of every response
    - Failure classification into the sync error taxonomy
    """

    def __init__(
        self,
        http_call: HttpCall,
        base_url: Optional[str] = None,
        is_online: Optional[Callable[[], bool]] = None
    ):
        """
        Initialize the gateway.

        Args:
            http_call: Callable ``(method, url, body) -> HttpResponse``
            base_url: Prefix for relative endpoints
            is_online: Optional connectivity check; when it reports offline
                       requests fail fast with NetworkError
        """
        self.http_call = http_call
        self.base_url = base_url.rstrip('/') if base_url else None
        self.is_online = is_online

    def build_url(self, endpoint: str) -> str:
        if not self.base_url or endpoint.startswith(("http://", "https://")):
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def perform(self, op: SyncOperation) -> Envelope:
        """
        Perform one sync operation.

        Args:
            op: The operation to send

        Returns:
            The successful envelope

        Raises:
            NetworkError: If no response was received
            ServerError: If the backend rejected the request
            ValidationError: If the method or response shape is invalid
        """
        return self.request(op.http_method, op.endpoint, op.payload)

    def fetch(self, endpoint: str) -> Envelope:
        return self.request("GET", endpoint)

    def request(self, method: str, endpoint: str, body: Any = None) -> Envelope:
        """
        Send a request and normalize the response.

        Args:
            method: HTTP method
            endpoint: Endpoint path or absolute URL
            body: Request body

        Returns:
            The successful envelope

        Raises:
            NetworkError: If no response was received
            ServerError: If the backend rejected the request
            ValidationError: If the method or response shape is invalid
        """
        method = (method or "").upper()
        if method not in SUPPORTED_METHODS:
            raise ValidationError(f"Unsupported HTTP method: {method}")

        if self.is_online is not None and not self.is_online():
            raise NetworkError("Network is offline")

        url = self.build_url(endpoint)
        try:
            response = self.http_call(method, url, body)
        except SyncError:
            raise
        except (ConnectionError, TimeoutError, OSError) as e:
            raise NetworkError(f"No response from server: {e}") from e

        if response.status_code >= 400:
            envelope = _failure_envelope(response)
            logger.debug(f"{method} {url} failed with status {response.status_code}")
            raise ServerError(envelope.message, status_code=response.status_code, envelope=envelope)

        envelope = normalize_response(response.body)
        if not envelope.success:
            raise ServerError(
                envelope.message or "Request was rejected by the server",
                status_code=response.status_code,
                envelope=envelope
            )
        return envelope
