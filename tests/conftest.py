"""Pytest configuration and fixtures for httpchain tests.

This file provides:
- Mock-transport helpers: an httpbin-style echo handler and response factories
- PortReservation: Race-free port allocation for the test server
- MockServer: Subprocess management for the integration echo server
"""

from __future__ import annotations

import json
import socket
import subprocess
import sys
import time
from pathlib import Path
from typing import Any, Generator, Iterator

import httpx
import pytest

from httpchain.response import Response

# Project root for fixture paths
PROJECT_ROOT = Path(__file__).parent.parent
MOCK_SERVER_MODULE = "tests.integration.mock_server"


# =============================================================================
# Mock Transport Helpers
# =============================================================================


def echo_handler(request: httpx.Request) -> httpx.Response:
    """Echo the request back as JSON, in the shape httpbin uses.

    args and form are dicts of lists so repeated keys keep their order.
    """
    body = request.read()
    content_type = request.headers.get("content-type", "")

    form: dict[str, list[str]] = {}
    body_json: Any = None
    if content_type.startswith("application/x-www-form-urlencoded"):
        for key, value in httpx.QueryParams(body.decode("utf-8")).multi_items():
            form.setdefault(key, []).append(value)
    elif content_type.startswith("application/json") and body:
        body_json = json.loads(body)

    args: dict[str, list[str]] = {}
    for key, value in request.url.params.multi_items():
        args.setdefault(key, []).append(value)

    return httpx.Response(
        200,
        json={
            "method": request.method,
            "url": str(request.url),
            "args": args,
            "headers": dict(request.headers),
            "form": form,
            "json": body_json,
            "data": body.decode("utf-8", errors="replace"),
        },
    )


class CountingTransport(httpx.MockTransport):
    """MockTransport that records every request it handles."""

    def __init__(self, handler: Any = echo_handler) -> None:
        super().__init__(handler)
        self.requests: list[httpx.Request] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return super().handle_request(request)


class OnceStream(httpx.SyncByteStream):
    """Byte stream that fails if iterated more than once."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.reads = 0

    def __iter__(self) -> Iterator[bytes]:
        self.reads += 1
        if self.reads > 1:
            raise AssertionError("response stream read twice")
        yield self._data


def make_http_response(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
    url: str = "http://example.com/get",
    stream: httpx.SyncByteStream | None = None,
) -> httpx.Response:
    """Create an unread httpx response, as a streaming send would return it."""
    return httpx.Response(
        status_code,
        headers=headers or {},
        stream=stream if stream is not None else httpx.ByteStream(content),
        request=httpx.Request("GET", url),
    )


def make_response(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
    url: str = "http://example.com/get",
) -> Response:
    """Create a Response for testing decoders.

    Prefer this over constructing Response directly - the body is left unread
    so raw() exercises the streaming path.
    """
    return Response(make_http_response(status_code, content, headers, url))


@pytest.fixture
def echo_transport() -> CountingTransport:
    """Transport that echoes requests and counts them."""
    return CountingTransport()


# =============================================================================
# Integration Server
# =============================================================================


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    The socket stays open until just before the server starts, so no other
    process can grab the port in between.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port for server use.

        Safe to call multiple times - subsequent calls are no-ops.
        """
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def wait_for_server_ready(host: str, port: int, timeout: float = 10.0) -> bool:
    """Block until server accepts TCP connections, or timeout expires."""
    start = time.time()
    while time.time() - start < timeout:
        try:
            with socket.create_connection((host, port), timeout=1.0):
                return True
        except OSError:
            time.sleep(0.1)
    return False


class MockServer:
    """Manages the echo server subprocess for integration tests.

    Runs tests/integration/mock_server.py as a subprocess.
    """

    def __init__(self, reservation: PortReservation) -> None:
        self._reservation = reservation
        self.port = reservation.port
        self.host = "127.0.0.1"
        self.base_url = f"http://{self.host}:{self.port}"
        self._process: subprocess.Popen | None = None

    def start(self) -> None:
        """Start the server subprocess.

        Raises:
            RuntimeError: If server fails to start within 10 seconds.
        """
        self._reservation.release()

        self._process = subprocess.Popen(
            [
                sys.executable, "-m", MOCK_SERVER_MODULE,
                "--host", self.host,
                "--port", str(self.port),
            ],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=PROJECT_ROOT,
        )

        if not wait_for_server_ready(self.host, self.port):
            stderr = ""
            if self._process and self._process.stderr:
                stderr = self._process.stderr.read().decode(errors="replace")
            self.stop()
            raise RuntimeError(
                f"MockServer failed to start on port {self.port}. stderr: {stderr or '(empty)'}"
            )

    def stop(self) -> None:
        """Stop the server with SIGTERM, escalating to SIGKILL after 5s.

        Safe to call multiple times or if server was never started.
        """
        if self._process:
            self._process.terminate()
            try:
                self._process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                self._process.kill()
                try:
                    self._process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    pass  # Unkillable, nothing more we can do
            self._process = None

    def __enter__(self) -> MockServer:
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.stop()


@pytest.fixture(scope="session")
def echo_server() -> Generator[MockServer, None, None]:
    """Start the echo server once per test session.

    Example:
        def test_get(echo_server):
            res = httpchain.get(echo_server.base_url + "/get").end()
    """
    with MockServer(PortReservation()) as server:
        yield server


# =============================================================================
# Pytest Hooks
# =============================================================================


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Tag tests as unit or integration based on their directory.

    Enables running subsets via:
        pytest -m integration  # only integration tests
        pytest -m unit         # only unit tests
    """
    for item in items:
        test_path = Path(item.fspath)
        if "integration" in test_path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
