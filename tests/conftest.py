from __future__ import annotations

import socket
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest


class InFlightTracker:
    """Counts concurrent requests to /delay on the local server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0
        self.total = 0

    def reset(self) -> None:
        with self._lock:
            self.current = 0
            self.peak = 0
            self.total = 0

    def enter(self) -> None:
        with self._lock:
            self.current += 1
            self.total += 1
            self.peak = max(self.peak, self.current)

    def leave(self) -> None:
        with self._lock:
            self.current -= 1


class _Handler(BaseHTTPRequestHandler):
    seen_user_agents: list[str] = []
    in_flight = InFlightTracker()

    def log_message(self, format: str, *args) -> None:  # noqa: A002
        return

    def do_GET(self) -> None:  # noqa: N802
        type(self).seen_user_agents.append(str(self.headers.get("User-Agent") or ""))

        if self.path == "/slow":
            time.sleep(2.0)

        if self.path == "/delay":
            tracker = type(self).in_flight
            tracker.enter()
            try:
                time.sleep(0.3)
            finally:
                tracker.leave()

        if self.path == "/redirect":
            self.send_response(302)
            self.send_header("Location", "/ok")
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        routes: dict[str, tuple[int, str]] = {
            "/ok": (200, "<!doctype html><html><body><h1>Everything is fine</h1></body></html>"),
            "/large": (200, "x" * 256 * 1024),
            "/slow": (200, "late"),
            "/delay": (200, "done"),
            "/bad_gateway": (502, "Bad Gateway"),
            "/server_error": (500, "Internal Server Error"),
        }
        status, body = routes.get(self.path, (404, "Not Found"))
        body_bytes = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(body_bytes)))
        self.end_headers()
        try:
            self.wfile.write(body_bytes)
        except (BrokenPipeError, ConnectionResetError):
            pass


@pytest.fixture(scope="session")
def local_server_base_url() -> str:
    httpd = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    httpd.daemon_threads = True
    host, port = httpd.server_address
    thread = threading.Thread(target=httpd.serve_forever, daemon=True)
    thread.start()

    try:
        yield f"http://{host}:{port}"
    finally:
        httpd.shutdown()
        thread.join(timeout=5)
        httpd.server_close()


@pytest.fixture()
def seen_user_agents() -> list[str]:
    _Handler.seen_user_agents.clear()
    return _Handler.seen_user_agents


@pytest.fixture()
def in_flight() -> InFlightTracker:
    _Handler.in_flight.reset()
    return _Handler.in_flight


@pytest.fixture()
def refused_url() -> str:
    # Grab a free port and release it so nothing is listening there.
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return f"http://127.0.0.1:{port}/"
