"""
Integration tests against the mock REST API over real HTTP.

These tests start the mock server on an ephemeral port and drive the
service through the requests-based transport.
"""
import threading
import time

import pytest

from datasync.app.data_sync_service import DataSyncService
from datasync.config.app_config import AppConfig, BackoffPolicy, ResourceType
from datasync.mock_api.server import create_server
from datasync.sync.errors import ConflictError
from datasync.transport.http_transport import RequestsTransport


@pytest.fixture
def mock_server():
    """Start the mock API server in a background thread."""
    httpd = create_server('127.0.0.1', 0)
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()
    yield httpd
    httpd.shutdown()
    httpd.server_close()
    thread.join(timeout=5)


@pytest.fixture
def base_url(mock_server):
    host, port = mock_server.server_address[:2]
    return f"http://{host}:{port}/api"


@pytest.fixture
def live_service(base_url):
    config = AppConfig.from_base_url(base_url)
    config.transport.timeout = 5.0
    config.scheduler.throttle_delay = 0.0
    config.scheduler.resources = [
        ResourceType(name="issues", endpoint="/issues", priority=1),
        ResourceType(name="categories", endpoint="/categories", priority=2),
    ]
    config.backoff = BackoffPolicy(max_attempts=0)
    svc = DataSyncService(config)
    yield svc
    svc.close()


class TestLiveRoundTrip:
    """End-to-end tests through the real HTTP stack."""

    @pytest.mark.integration
    def test_health_check(self, base_url):
        transport = RequestsTransport(base_url=base_url)
        try:
            assert transport.health_check() is True
        finally:
            transport.close()

    @pytest.mark.integration
    def test_create_then_fetch(self, live_service):
        created = live_service.synced_create("issues", "/issues", {"title": "A", "status": "open"}).result(timeout=5)

        assert created.success
        record_id = created.data["_id"]
        assert created.data["updatedAt"]

        fetched = live_service.synced_fetch("issues", "/issues").result(timeout=5)
        assert [r["_id"] for r in fetched.data] == [record_id]

    @pytest.mark.integration
    def test_scheduler_tick_notifies_subscribers(self, live_service, mock_server):
        mock_server.store.create("categories", {"name": "Roads"})
        events = []
        live_service.subscribe("issues", events.append)
        live_service.subscribe("categories", events.append)

        assert live_service.scheduler.tick() == 2
        assert live_service.wait_idle(timeout=5)

        assert [e.data_type for e in events] == ["issues", "categories"]
        assert events[1].data[0]["name"] == "Roads"

    @pytest.mark.integration
    def test_update_with_stale_snapshot_merges_server_fields(self, live_service, mock_server):
        server = mock_server.store.put("issues", "7", {
            "title": "A", "status": "closed", "updatedAt": "2024-01-02T00:00:00Z"
        })
        snapshot = dict(server, status="open", updatedAt="2024-01-01T00:00:00Z")

        result = live_service.synced_update("issues", "/issues/7", dict(snapshot), client_snapshot=snapshot).result(timeout=5)

        assert result.data["status"] == "closed"

    @pytest.mark.integration
    def test_update_of_deleted_record_fails(self, live_service):
        snapshot = {"_id": "99", "title": "Gone"}
        future = live_service.synced_update("issues", "/issues/99", dict(snapshot), client_snapshot=snapshot)

        assert isinstance(future.exception(timeout=5), ConflictError)

    @pytest.mark.integration
    def test_server_error_envelope(self, live_service):
        envelope = live_service.request("DELETE", "issues", "/issues/404")

        assert envelope.success is False
        assert envelope.message == "Record not found"


class TestUnreachableServer:
    """Tests against a port with nothing listening."""

    @pytest.mark.integration
    def test_operation_is_buffered_and_replayed(self, mock_server):
        host, port = mock_server.server_address[:2]
        dead_config = AppConfig.from_base_url("http://127.0.0.1:9/api")
        dead_config.transport.timeout = 1.0
        dead_config.backoff = BackoffPolicy(max_attempts=0)
        svc = DataSyncService(dead_config)
        try:
            future = svc.synced_create("issues", "/issues", {"title": "A"})
            assert svc.wait_idle(timeout=10)
            assert not future.done()
            assert svc.outbox.count() == 1

            svc.gateway.base_url = f"http://{host}:{port}/api"
            svc.flush_outbox()

            assert future.result(timeout=5).data["title"] == "A"
            assert len(mock_server.store.list("issues")) == 1
        finally:
            svc.close()


class TestPolling:
    """Tests for connectivity polling through the health check."""

    @pytest.mark.integration
    @pytest.mark.slow
    def test_polling_tracks_server(self, live_service):
        live_service.set_online(False)
        live_service.start_connectivity_polling(interval=0.05)

        deadline = time.time() + 2
        while not live_service.online and time.time() < deadline:
            time.sleep(0.02)

        assert live_service.online is True
