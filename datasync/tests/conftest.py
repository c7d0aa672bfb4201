"""
Pytest configuration and shared fixtures for the data sync tests.
"""
import tempfile
import pytest
from typing import Any, Dict, List, Tuple
from urllib.parse import urlparse

from datasync.app.data_sync_service import DataSyncService
from datasync.config.app_config import (
    AppConfig, BackoffPolicy, ResourceType, SchedulerConfig, TransportConfig
)
from datasync.sync.cache_store import CacheStore
from datasync.sync.conflict_resolver import ConflictResolver
from datasync.sync.errors import NetworkError
from datasync.sync.notification_bus import NotificationBus
from datasync.sync.offline_outbox import OfflineOutbox
from datasync.sync.request_gateway import RequestGateway
from datasync.sync.sync_queue import SyncQueue
from datasync.transport.base import HttpResponse


TEST_BASE_URL = "http://api.test"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeBackend:
    """
    In-memory stand-in for the HTTP collaborator.

    Records live under their full path (e.g. "/issues/1"). A GET on a
    collection path lists the records below it. Scripted responses or
    exceptions registered with script() are served first, in order.
    """

    def __init__(self):
        self.records: Dict[str, Dict[str, Any]] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self.offline = False
        self._scripted: Dict[Tuple[str, str], List[Any]] = {}
        self._next_id = 1

    def seed(self, path: str, record: Dict[str, Any]) -> None:
        self.records[path] = dict(record)

    def script(self, method: str, path: str, *responses: Any) -> None:
        self._scripted.setdefault((method, path), []).extend(responses)

    def calls_for(self, method: str) -> List[Tuple[str, str, Any]]:
        return [c for c in self.calls if c[0] == method]

    @staticmethod
    def _ok(data: Any, status: int = 200) -> HttpResponse:
        return HttpResponse(status, {"success": True, "data": data})

    @staticmethod
    def _not_found() -> HttpResponse:
        return HttpResponse(404, {"success": False, "message": "Not found"})

    def __call__(self, method: str, url: str, body: Any = None) -> HttpResponse:
        path = urlparse(url).path
        self.calls.append((method, path, body))

        if self.offline:
            raise NetworkError("Network Error")

        scripted = self._scripted.get((method, path))
        if scripted:
            response = scripted.pop(0)
            if isinstance(response, BaseException):
                raise response
            return response

        if method == "GET":
            if path in self.records:
                return self._ok(self.records[path])
            if path.strip("/").count("/"):
                return self._not_found()
            children = [r for p, r in self.records.items() if p.startswith(path + "/")]
            return self._ok(children)

        if method == "POST":
            record_id = str(self._next_id)
            self._next_id += 1
            record = {**(body or {}), "_id": record_id}
            self.records[f"{path}/{record_id}"] = record
            return self._ok(record, status=201)

        if method in ("PUT", "PATCH"):
            if path not in self.records:
                return self._not_found()
            self.records[path].update(body or {})
            return self._ok(self.records[path])

        if method == "DELETE":
            if self.records.pop(path, None) is None:
                return self._not_found()
            return self._ok(None)

        return HttpResponse(405, {"success": False, "message": "Method not allowed"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def bus():
    return NotificationBus()


@pytest.fixture
def cache(clock):
    return CacheStore(ttl=300.0, clock=clock)


@pytest.fixture
def resolver():
    return ConflictResolver()


@pytest.fixture
def gateway(backend):
    return RequestGateway(backend, base_url=TEST_BASE_URL)


@pytest.fixture
def outbox():
    """Create an in-memory outbox for testing."""
    box = OfflineOutbox(":memory:")
    yield box
    box.close()


@pytest.fixture
def sync_queue(gateway, resolver, cache, bus, outbox):
    """Create a sync queue with a running worker thread."""
    queue = SyncQueue(gateway, resolver, cache, bus, outbox=outbox)
    yield queue
    queue.close()


@pytest.fixture
def make_queue(gateway, resolver, cache, bus, outbox):
    """Build extra sync queues on the shared fixtures, closed after the test."""
    queues = []

    def build(**kwargs):
        kwargs.setdefault("outbox", outbox)
        queue = SyncQueue(gateway, resolver, cache, bus, **kwargs)
        queues.append(queue)
        return queue

    yield build
    for queue in queues:
        queue.close()


@pytest.fixture
def recorder(bus):
    """Collect every event published on the given topics."""
    events = []

    def record(*topics):
        for topic in topics:
            bus.subscribe(topic, events.append)
        return events

    return record


@pytest.fixture
def test_app_config():
    """Create a test application configuration."""
    return AppConfig(
        transport=TransportConfig(base_url=TEST_BASE_URL),
        scheduler=SchedulerConfig(
            interval=3600.0,
            throttle_delay=0.0,
            resources=[
                ResourceType(name="categories", endpoint="/categories", priority=2),
                ResourceType(name="issues", endpoint="/issues", priority=1),
            ]
        ),
        backoff=BackoffPolicy(max_attempts=0)
    )


@pytest.fixture
def service(test_app_config, backend):
    """Create a DataSyncService wired to the fake backend."""
    svc = DataSyncService(test_app_config, http_call=backend)
    yield svc
    svc.close()


@pytest.fixture
def temp_outbox_path():
    """Temporary file path for a file-backed outbox."""
    import os
    import uuid
    temp_dir = tempfile.gettempdir()
    temp_path = os.path.join(temp_dir, f"test_outbox_{uuid.uuid4().hex}.db")

    yield temp_path

    # Cleanup
    try:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
    except (OSError, FileNotFoundError):
        pass
