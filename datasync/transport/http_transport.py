"""
Requests-based HTTP transport for talking to the REST backend.

This module provides the default HTTP collaborator for the Request Gateway:
- JSON request bodies (query parameters for GET)
- Bearer token authentication
- Bounded call duration, with timeouts surfaced as NetworkError
- Health check against the API's /health endpoint
"""

import json
import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from datasync.sync.errors import NetworkError
from .base import HttpResponse

logger = logging.getLogger(__name__)


class RequestsTransport:
    """
    HTTP client for the REST backend.

    Instances are callables with the ``(method, url, body) -> HttpResponse``
    signature expected by the Request Gateway.
    """

    DEFAULT_BASE_URL = "http://localhost:5000/api"
    DEFAULT_TIMEOUT = 30.0  # seconds
    HEALTH_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the transport.

        Args:
            base_url: API base URL, used by the health check
            api_key: Token sent as a Bearer Authorization header
            timeout: Per-request timeout in seconds
            session: Optional pre-configured requests session
        """
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip('/')
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    @staticmethod
    def json_serialize_fallback(obj: Any) -> Any:
        """
        JSON serialization fallback for non-standard types.

        Args:
            obj: Object to serialize

        Returns:
            Serializable representation of the object

        Raises:
            TypeError: If object is not serializable
        """
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, date):
            return obj.isoformat()
        raise TypeError(f"Object of type {obj.__class__.__name__} is not JSON serializable")

    def _build_headers(self) -> Dict[str, str]:
        """Build HTTP headers for the request."""
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "DataSync/0.1"
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def __call__(self, method: str, url: str, body: Any = None) -> HttpResponse:
        """
        Send one request to the backend.

        Args:
            method: HTTP method
            url: Absolute URL
            body: JSON body, or query parameters for GET

        Returns:
            The response status and decoded JSON body

        Raises:
            NetworkError: If no response was received
        """
        method = method.upper()
        kwargs: Dict[str, Any] = {
            "headers": self._build_headers(),
            "timeout": self.timeout,
        }
        if body is not None:
            if method == "GET":
                kwargs["params"] = body
            else:
                kwargs["data"] = json.dumps(body, default=self.json_serialize_fallback).encode('utf-8')

        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise NetworkError(f"Request timeout: {method} {url}") from e
        except requests.exceptions.ConnectionError as e:
            raise NetworkError(f"Cannot connect to server at {self.base_url}") from e

        return HttpResponse(
            status_code=response.status_code,
            body=self._decode_body(response),
            text=response.text
        )

    @staticmethod
    def _decode_body(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning(f"Non-JSON response body (status {response.status_code})")
            return response.text

    def health_check(self) -> bool:
        """Test if the API is reachable."""
        url = urljoin(self.base_url + '/', 'health')
        try:
            response = self.session.get(url, headers=self._build_headers(), timeout=self.HEALTH_TIMEOUT)
            return response.status_code == 200
        except requests.exceptions.RequestException:
            return False

    def close(self) -> None:
        self.session.close()
