"""
Mock REST API server for local development and testing.

Serves in-memory record collections so the sync engine can run without a
real backend. Responses are wrapped as ``{success, data, message}``
envelopes.

Usage:
    python -m datasync.mock_api.server

Endpoints:
    GET    /health, /api/health     - Health check
    GET    /api/<resource>          - List records
    POST   /api/<resource>          - Create a record
    GET    /api/<resource>/<id>     - Get one record
    PUT    /api/<resource>/<id>     - Replace fields of a record
    PATCH  /api/<resource>/<id>     - Same as PUT
    DELETE /api/<resource>/<id>     - Delete a record
"""

import json
import logging
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class RecordStore:
    """Thread-safe in-memory record collections keyed by resource name."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def list(self, resource: str) -> list:
        with self._lock:
            return list(self._collections.get(resource, {}).values())

    def get(self, resource: str, record_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self._collections.get(resource, {}).get(record_id)

    def create(self, resource: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record_id = str(self._next_id)
            self._next_id += 1
            record = {**data, "_id": record_id, "updatedAt": self._now()}
            self._collections.setdefault(resource, {})[record_id] = record
            return record

    def put(self, resource: str, record_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert or replace a record under a known id."""
        with self._lock:
            record = {**data, "_id": record_id, "updatedAt": data.get("updatedAt") or self._now()}
            self._collections.setdefault(resource, {})[record_id] = record
            return record

    def update(self, resource: str, record_id: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        with self._lock:
            existing = self._collections.get(resource, {}).get(record_id)
            if existing is None:
                return None
            existing.update({k: v for k, v in data.items() if k != "_id"})
            existing["updatedAt"] = self._now()
            return existing

    def delete(self, resource: str, record_id: str) -> bool:
        with self._lock:
            return self._collections.get(resource, {}).pop(record_id, None) is not None


class MockAPIHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the mock REST API."""

    @property
    def store(self) -> RecordStore:
        return self.server.store

    def _send_json_response(self, status_code: int, data: dict):
        """Send a JSON response."""
        body = json.dumps(data).encode('utf-8')
        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def _send_error(self, status_code: int, message: str):
        self._send_json_response(status_code, {'success': False, 'message': message})

    def _route(self) -> Tuple[Optional[str], Optional[str]]:
        """Split the path into (resource, record id)."""
        parts = [p for p in urlparse(self.path).path.split('/') if p]
        if parts and parts[0] == 'api':
            parts = parts[1:]
        if not parts or len(parts) > 2:
            return None, None
        return parts[0], parts[1] if len(parts) == 2 else None

    def _read_json(self) -> Optional[Dict[str, Any]]:
        content_length = int(self.headers.get('Content-Length', 0))
        if not content_length:
            return {}
        try:
            data = json.loads(self.rfile.read(content_length).decode('utf-8'))
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON: {e}")
            return None
        return data if isinstance(data, dict) else None

    def do_GET(self):
        """Handle GET requests."""
        resource, record_id = self._route()
        if resource == 'health' and record_id is None:
            self._send_json_response(200, {'status': 'healthy'})
        elif resource is None:
            self._send_error(404, 'Not found')
        elif record_id is None:
            self._send_json_response(200, {'success': True, 'data': self.store.list(resource)})
        else:
            record = self.store.get(resource, record_id)
            if record is None:
                self._send_error(404, 'Record not found')
            else:
                self._send_json_response(200, {'success': True, 'data': record})

    def do_POST(self):
        """Handle POST requests."""
        resource, record_id = self._route()
        if resource is None or record_id is not None:
            self._send_error(404, 'Not found')
            return

        data = self._read_json()
        if data is None:
            self._send_error(400, 'Invalid JSON')
            return

        record = self.store.create(resource, data)
        logger.info(f"Created {resource}/{record['_id']}")
        self._send_json_response(201, {'success': True, 'data': record})

    def do_PUT(self):
        """Handle PUT requests."""
        resource, record_id = self._route()
        if resource is None or record_id is None:
            self._send_error(404, 'Not found')
            return

        data = self._read_json()
        if data is None:
            self._send_error(400, 'Invalid JSON')
            return

        record = self.store.update(resource, record_id, data)
        if record is None:
            self._send_error(404, 'Record not found')
        else:
            logger.info(f"Updated {resource}/{record_id}")
            self._send_json_response(200, {'success': True, 'data': record})

    do_PATCH = do_PUT

    def do_DELETE(self):
        """Handle DELETE requests."""
        resource, record_id = self._route()
        if resource is None or record_id is None:
            self._send_error(404, 'Not found')
        elif not self.store.delete(resource, record_id):
            self._send_error(404, 'Record not found')
        else:
            logger.info(f"Deleted {resource}/{record_id}")
            self._send_json_response(200, {'success': True, 'data': None, 'message': 'Deleted'})

    def log_message(self, format, *args):
        """Override to use Python logging instead of stderr."""
        logger.debug(f"{self.address_string()} - {format % args}")


def create_server(host: str = '127.0.0.1', port: int = 5000) -> ThreadingHTTPServer:
    """
    Create the mock API server without starting it.

    Port 0 binds an ephemeral port; read it back from ``server_address``.
    """
    httpd = ThreadingHTTPServer((host, port), MockAPIHandler)
    httpd.store = RecordStore()
    return httpd


def run_server(host: str = '0.0.0.0', port: int = 5000):
    """Run the mock API server."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )
    httpd = create_server(host, port)
    logger.info(f"Mock REST API server running on http://{host}:{port}/api")
    try:
        httpd.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
        httpd.shutdown()


if __name__ == '__main__':
    run_server()
