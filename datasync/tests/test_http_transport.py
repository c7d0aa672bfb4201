"""
Tests for RequestsTransport class.

This module covers:
- Initialization and configuration
- Request construction with a mocked session
- Failure mapping to NetworkError
- Health check
"""
import json
from datetime import date
from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from datasync.sync.errors import NetworkError
from datasync.transport.http_transport import RequestsTransport


def make_response(status_code=200, payload=None, content=None):
    response = Mock()
    response.status_code = status_code
    if content is None:
        content = json.dumps(payload).encode('utf-8') if payload is not None else b""
    response.content = content
    response.text = content.decode('utf-8')
    if payload is not None:
        response.json.return_value = payload
    else:
        response.json.side_effect = ValueError("No JSON")
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


class TestRequestsTransportInit:
    """Test cases for RequestsTransport initialization."""

    @pytest.mark.unit
    def test_init_defaults(self):
        """Test initialization with default values."""
        transport = RequestsTransport()
        assert transport.base_url == RequestsTransport.DEFAULT_BASE_URL
        assert transport.api_key is None
        assert transport.timeout == RequestsTransport.DEFAULT_TIMEOUT
        transport.close()

    @pytest.mark.unit
    def test_init_strips_trailing_slash(self, session):
        transport = RequestsTransport(base_url="https://api.example.com/", session=session)
        assert transport.base_url == "https://api.example.com"

    @pytest.mark.unit
    def test_headers_with_api_key(self, session):
        """Test that the API key is sent as a Bearer token."""
        transport = RequestsTransport(api_key="test-api-key-123", session=session)
        headers = transport._build_headers()

        assert headers["Authorization"] == "Bearer test-api-key-123"
        assert headers["Content-Type"] == "application/json"

    @pytest.mark.unit
    def test_headers_without_api_key(self, session):
        assert "Authorization" not in RequestsTransport(session=session)._build_headers()


class TestJsonSerialization:
    """Test cases for the JSON fallback."""

    @pytest.mark.unit
    def test_decimal(self):
        assert RequestsTransport.json_serialize_fallback(Decimal("1.5")) == 1.5

    @pytest.mark.unit
    def test_date(self):
        assert RequestsTransport.json_serialize_fallback(date(2024, 1, 2)) == "2024-01-02"

    @pytest.mark.unit
    def test_unsupported(self):
        with pytest.raises(TypeError):
            RequestsTransport.json_serialize_fallback(object())


class TestRequests:
    """Test cases for sending requests."""

    @pytest.mark.unit
    def test_post_sends_json_body(self, session):
        session.request.return_value = make_response(201, {"success": True, "data": {"_id": "1"}})
        transport = RequestsTransport(session=session, timeout=5.0)

        response = transport("post", "http://api.test/issues", {"title": "A", "cost": Decimal("2.5")})

        args, kwargs = session.request.call_args
        assert args == ("POST", "http://api.test/issues")
        assert json.loads(kwargs["data"].decode('utf-8')) == {"title": "A", "cost": 2.5}
        assert kwargs["timeout"] == 5.0
        assert response.status_code == 201
        assert response.body == {"success": True, "data": {"_id": "1"}}

    @pytest.mark.unit
    def test_get_sends_query_parameters(self, session):
        session.request.return_value = make_response(200, [])
        transport = RequestsTransport(session=session)

        transport("GET", "http://api.test/issues", {"page": 2})

        _, kwargs = session.request.call_args
        assert kwargs["params"] == {"page": 2}
        assert "data" not in kwargs

    @pytest.mark.unit
    def test_empty_body_decodes_to_none(self, session):
        session.request.return_value = make_response(204)
        response = RequestsTransport(session=session)("DELETE", "http://api.test/issues/1")

        assert response.body is None
        assert response.ok

    @pytest.mark.unit
    def test_non_json_body_returns_text(self, session):
        session.request.return_value = make_response(502, content=b"<html>Bad Gateway</html>")
        response = RequestsTransport(session=session)("GET", "http://api.test/issues")

        assert response.body == "<html>Bad Gateway</html>"
        assert not response.ok

    @pytest.mark.unit
    def test_timeout_is_network_error(self, session):
        session.request.side_effect = requests.exceptions.Timeout("slow")

        with pytest.raises(NetworkError, match="timeout"):
            RequestsTransport(session=session)("GET", "http://api.test/issues")

    @pytest.mark.unit
    def test_connection_error_is_network_error(self, session):
        session.request.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(NetworkError, match="Cannot connect"):
            RequestsTransport(session=session)("GET", "http://api.test/issues")


class TestHealthCheck:
    """Test cases for the health check."""

    @pytest.mark.unit
    def test_healthy(self, session):
        session.get.return_value = make_response(200, {"status": "healthy"})
        transport = RequestsTransport(base_url="http://api.test/api", session=session)

        assert transport.health_check() is True
        assert session.get.call_args.args[0] == "http://api.test/api/health"

    @pytest.mark.unit
    def test_unhealthy_status(self, session):
        session.get.return_value = make_response(503, {"status": "down"})
        assert RequestsTransport(session=session).health_check() is False

    @pytest.mark.unit
    def test_unreachable(self, session):
        session.get.side_effect = requests.exceptions.ConnectionError("refused")
        assert RequestsTransport(session=session).health_check() is False
