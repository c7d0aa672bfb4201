"""
Tests for RequestGateway and response normalization.
"""
from unittest.mock import Mock

import pytest

from datasync.models.sync_operation import OperationKind, SyncOperation
from datasync.sync.errors import NetworkError, ServerError, ValidationError
from datasync.sync.request_gateway import RequestGateway, normalize_response
from datasync.transport.base import HttpResponse


class TestNormalizeResponse:
    """Test cases for normalize_response."""

    @pytest.mark.unit
    def test_wrapped_envelope(self):
        envelope = normalize_response({
            "success": True,
            "data": [1, 2],
            "pagination": {"page": 1, "total": 2},
            "message": "ok",
        })

        assert envelope.success is True
        assert envelope.data == [1, 2]
        assert envelope.pagination == {"page": 1, "total": 2}
        assert envelope.message == "ok"

    @pytest.mark.unit
    def test_bare_dict_is_data(self):
        envelope = normalize_response({"_id": "1", "title": "A"})

        assert envelope.success is True
        assert envelope.data == {"_id": "1", "title": "A"}

    @pytest.mark.unit
    def test_bare_list_is_data(self):
        assert normalize_response([{"_id": "1"}]).data == [{"_id": "1"}]

    @pytest.mark.unit
    def test_empty_body(self):
        envelope = normalize_response(None)
        assert envelope.success is True
        assert envelope.data is None

    @pytest.mark.unit
    def test_failed_envelope_drops_data(self):
        envelope = normalize_response({"success": False, "data": {"x": 1}, "message": "no"})

        assert envelope.success is False
        assert envelope.data is None

    @pytest.mark.unit
    @pytest.mark.parametrize("body", [
        "plain text",
        42,
        {"success": "yes"},
        {"success": True, "pagination": [1]},
        {"success": True, "message": 5},
        {"success": False, "errors": "bad"},
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(ValidationError):
            normalize_response(body)


class TestRequestGateway:
    """Test cases for RequestGateway.request."""

    @pytest.mark.unit
    def test_build_url(self):
        gateway = RequestGateway(Mock(), base_url="http://api.test/")

        assert gateway.build_url("/issues") == "http://api.test/issues"
        assert gateway.build_url("issues/1") == "http://api.test/issues/1"
        assert gateway.build_url("https://other.test/x") == "https://other.test/x"

    @pytest.mark.unit
    def test_build_url_without_base(self):
        assert RequestGateway(Mock()).build_url("/issues") == "/issues"

    @pytest.mark.unit
    def test_successful_request(self):
        http_call = Mock(return_value=HttpResponse(200, {"success": True, "data": [1]}))
        gateway = RequestGateway(http_call, base_url="http://api.test")

        envelope = gateway.request("get", "/issues")

        http_call.assert_called_once_with("GET", "http://api.test/issues", None)
        assert envelope.data == [1]

    @pytest.mark.unit
    def test_perform_uses_operation_method_and_payload(self):
        http_call = Mock(return_value=HttpResponse(201, {"_id": "1"}))
        gateway = RequestGateway(http_call)
        op = SyncOperation(kind=OperationKind.CREATE, resource_type="issues",
                           endpoint="/issues", payload={"title": "A"})

        envelope = gateway.perform(op)

        http_call.assert_called_once_with("POST", "/issues", {"title": "A"})
        assert envelope.data == {"_id": "1"}

    @pytest.mark.unit
    def test_unsupported_method(self):
        http_call = Mock()
        with pytest.raises(ValidationError):
            RequestGateway(http_call).request("TRACE", "/issues")
        http_call.assert_not_called()

    @pytest.mark.unit
    def test_offline_fails_fast(self):
        http_call = Mock()
        gateway = RequestGateway(http_call, is_online=lambda: False)

        with pytest.raises(NetworkError):
            gateway.fetch("/issues")
        http_call.assert_not_called()

    @pytest.mark.unit
    @pytest.mark.parametrize("exc", [ConnectionError("refused"), TimeoutError("slow"), OSError("down")])
    def test_transport_failures_are_network_errors(self, exc):
        gateway = RequestGateway(Mock(side_effect=exc))

        with pytest.raises(NetworkError):
            gateway.fetch("/issues")

    @pytest.mark.unit
    def test_network_error_passes_through(self):
        original = NetworkError("Network Error")
        gateway = RequestGateway(Mock(side_effect=original))

        with pytest.raises(NetworkError) as exc_info:
            gateway.fetch("/issues")
        assert exc_info.value is original

    @pytest.mark.unit
    def test_error_status_uses_body_message(self):
        http_call = Mock(return_value=HttpResponse(
            422, {"success": False, "message": "Title is required", "errors": [{"field": "title"}]}
        ))

        with pytest.raises(ServerError) as exc_info:
            RequestGateway(http_call).request("POST", "/issues", {})

        error = exc_info.value
        assert error.status_code == 422
        assert error.envelope.success is False
        assert error.envelope.message == "Title is required"
        assert error.envelope.errors == [{"field": "title"}]

    @pytest.mark.unit
    def test_error_status_without_body_uses_status_message(self):
        http_call = Mock(return_value=HttpResponse(503, None))

        with pytest.raises(ServerError) as exc_info:
            RequestGateway(http_call).fetch("/issues")

        assert "temporarily unavailable" in str(exc_info.value)

    @pytest.mark.unit
    def test_not_found(self):
        http_call = Mock(return_value=HttpResponse(404, {"success": False, "message": "Not found"}))

        with pytest.raises(ServerError) as exc_info:
            RequestGateway(http_call).fetch("/issues/1")

        assert exc_info.value.is_not_found

    @pytest.mark.unit
    def test_success_false_with_ok_status(self):
        http_call = Mock(return_value=HttpResponse(200, {"success": False, "message": "Rejected"}))

        with pytest.raises(ServerError) as exc_info:
            RequestGateway(http_call).fetch("/issues")

        assert exc_info.value.envelope.message == "Rejected"

    @pytest.mark.unit
    def test_malformed_success_body(self):
        http_call = Mock(return_value=HttpResponse(200, "<html>"))

        with pytest.raises(ValidationError):
            RequestGateway(http_call).fetch("/issues")
