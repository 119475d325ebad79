"""
Reference Time Server

Serves the reference node's clock to watchdog nodes.

Endpoints:
- /api/timestamp - {"timestamp": "2024-05-01T12:00:00.123Z"}
- /health        - basic liveness, plus supervisor status when this process
                   also runs the watchdog

Usage:
    from autoreboot.api.time_server import TimeServer

    server = TimeServer(port=51823)
    server.start()
"""

import json
import logging
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, Optional

from ..constants import NetworkConstants, Timeouts
from ..timestamps import format_timestamp

logger = logging.getLogger(__name__)


StatusProvider = Callable[[], Dict[str, Any]]


class TimeRequestHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the timestamp endpoint."""

    server_version = "sync-autoreboot"

    def __init__(
        self,
        *args,
        clock: Callable[[], float] = time.time,
        status_provider: Optional[StatusProvider] = None,
        started_at: float = 0.0,
        **kwargs,
    ):
        self.clock = clock
        self.status_provider = status_provider
        self.started_at = started_at
        super().__init__(*args, **kwargs)

    def log_message(self, format: str, *args) -> None:
        """Route access logs through logging instead of stderr."""
        logger.debug(f"{self.address_string()} - {format % args}")

    def _client_ip(self) -> str:
        forwarded = self.headers.get('X-Forwarded-For')
        if forwarded:
            return forwarded.split(',')[0].strip()
        if self.client_address:
            return self.client_address[0]
        return "unknown"

    def _send_json_response(self, status_code: int, data: Dict[str, Any]) -> None:
        body = json.dumps(data, default=str).encode('utf-8')
        self.send_response(status_code)
        self.send_header('Content-Type', 'application/json')
        self.send_header('Content-Length', str(len(body)))
        self.send_header('Cache-Control', 'no-cache, no-store')
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        """Handle GET requests."""
        path = self.path.split('?', 1)[0]
        if path == NetworkConstants.TIMESTAMP_PATH:
            self._handle_timestamp()
        elif path == NetworkConstants.HEALTH_PATH:
            self._handle_health()
        else:
            self._send_json_response(404, {'error': 'not found'})

    def _handle_timestamp(self) -> None:
        now = format_timestamp(self.clock())
        logger.info(f"Timestamp requested from {self._client_ip()}: {now}")
        self._send_json_response(200, {'timestamp': now})

    def _handle_health(self) -> None:
        data: Dict[str, Any] = {
            'status': 'ok',
            'timestamp': format_timestamp(self.clock()),
            'uptime_seconds': round(time.time() - self.started_at, 3),
        }
        if self.status_provider:
            try:
                data['watchdog'] = self.status_provider()
            except Exception as e:
                logger.error(f"Status provider failed: {e}")
                data['status'] = 'degraded'
                data['watchdog_error'] = str(e)
        self._send_json_response(200, data)


class TimeServer:
    """Threaded HTTP server exposing the reference time."""

    def __init__(
        self,
        host: str = NetworkConstants.DEFAULT_BIND_HOST,
        port: int = NetworkConstants.DEFAULT_PORT,
        clock: Callable[[], float] = time.time,
        status_provider: Optional[StatusProvider] = None,
    ):
        self.host = host
        self.port = port
        self.clock = clock
        self.status_provider = status_provider
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._started_at = 0.0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def bound_port(self) -> int:
        """Actual port, useful when started with port 0."""
        if self._server:
            return self._server.server_address[1]
        return self.port

    def start(self) -> None:
        """
        Start serving in a background thread.

        Raises:
            OSError: the address cannot be bound
        """
        if self._running:
            return

        self._started_at = time.time()

        def handler_factory(*args, **kwargs):
            return TimeRequestHandler(
                *args,
                clock=self.clock,
                status_provider=self.status_provider,
                started_at=self._started_at,
                **kwargs,
            )

        self._server = ThreadingHTTPServer((self.host, self.port), handler_factory)
        self._server.daemon_threads = True
        self._running = True

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="time-server",
            daemon=True,
        )
        self._thread.start()

        logger.info(f"Timestamp server listening on {self.host}:{self.bound_port}")

    def stop(self) -> None:
        """Stop the server."""
        if not self._running:
            return

        self._running = False
        if self._server:
            self._server.shutdown()
            self._server.server_close()
        if self._thread:
            self._thread.join(timeout=Timeouts.THREAD_JOIN_SHORT)
        logger.info("Timestamp server stopped")
