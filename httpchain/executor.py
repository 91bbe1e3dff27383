"""Executor - Sends an assembled request through httpx under a deadline.

Without a timeout the request runs on the caller's thread. With a timeout it
runs on a single worker thread while the caller waits for whichever comes
first: the response or the deadline. When the deadline wins, the caller gets
RequestTimeoutError immediately and the in-flight attempt is cancelled by
closing the client that owns its connections; a response that still arrives
afterwards is closed and never reaches the builder.

httpx errors are mapped onto the httpchain taxonomy:
    httpx.TooManyRedirects  -> TooManyRedirectsError
    httpx.TimeoutException  -> RequestTimeoutError
    httpx.RequestError      -> TransportError
"""

from __future__ import annotations

import logging
import ssl
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import Any

import httpx

from httpchain.errors import (
    ConfigError,
    ProxyError,
    RequestTimeoutError,
    TooManyRedirectsError,
    TransportError,
)
from httpchain.models import ClientConfig
from httpchain.response import Response

logger = logging.getLogger(__name__)

# socks5 and socks5h require the httpx[socks] extra
PROXY_SCHEMES = frozenset({"http", "https", "socks5", "socks5h"})


class ExecutionState(str, Enum):
    """Lifecycle of a builder's single request."""

    IDLE = "idle"
    ASSEMBLING = "assembling"
    IN_FLIGHT = "in_flight"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.TIMED_OUT)


def parse_proxy(addr: str) -> httpx.URL:
    """Validate a proxy address. Raises ProxyError for anything httpx can't dial."""
    try:
        url = httpx.URL(addr)
    except (httpx.InvalidURL, TypeError) as e:
        raise ProxyError(f"Invalid proxy URL {addr!r}: {e}") from e

    if url.scheme not in PROXY_SCHEMES:
        raise ProxyError(
            f"Unsupported proxy scheme {url.scheme!r} in {addr!r} "
            f"(expected one of {', '.join(sorted(PROXY_SCHEMES))})"
        )
    if not url.host:
        raise ProxyError(f"Proxy URL {addr!r} has no host")
    return url


def build_client_kwargs(
    config: ClientConfig,
    *,
    timeout: float | None,
    max_redirects: int,
    proxy: httpx.URL | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, Any]:
    """Build kwargs for httpx.Client including redirect, proxy and TLS configuration.

    Args:
        config: Client configuration with optional TLS settings.
        timeout: Native httpx timeout in seconds (None disables it).
        max_redirects: Redirects allowed before TooManyRedirects is raised.
        proxy: Validated proxy URL, if any.
        transport: Custom transport. A custom transport handles its own
                   proxying, so proxy is not passed alongside it.

    Returns:
        Dictionary of kwargs for httpx.Client constructor.
    """
    kwargs: dict[str, Any] = {
        "timeout": httpx.Timeout(timeout),
        "follow_redirects": True,
        "max_redirects": max_redirects,
    }

    if transport is not None:
        kwargs["transport"] = transport
        if proxy is not None:
            logger.debug("Custom transport in use; proxy %s is not applied", proxy)
    elif proxy is not None:
        kwargs["proxy"] = str(proxy)

    # Client certificate, CA bundle and ciphers all need a custom SSL context
    if config.cert or config.ca_bundle or config.ciphers:
        ssl_context = ssl.create_default_context()

        if config.ciphers:
            try:
                ssl_context.set_ciphers(config.ciphers)
            except ssl.SSLError as e:
                raise ConfigError(f"Invalid cipher string '{config.ciphers}': {e}") from e

        try:
            if config.ca_bundle:
                ssl_context.load_verify_locations(config.ca_bundle)
            elif not config.verify_ssl:
                ssl_context.check_hostname = False
                ssl_context.verify_mode = ssl.CERT_NONE

            if config.cert and config.key:
                ssl_context.load_cert_chain(config.cert, config.key, config.key_password)
        except OSError as e:
            raise ConfigError(f"Cannot load TLS files: {e}") from e

        kwargs["verify"] = ssl_context
    elif not config.verify_ssl:
        kwargs["verify"] = False
    # else: use httpx default (True)

    return kwargs


def _close_late_response(future: Future) -> None:
    """Done-callback for an abandoned attempt: release whatever it produced."""
    if future.cancelled() or future.exception() is not None:
        return
    future.result().close()


class Executor:
    """Executes one assembled request and wraps the result.

    Usage:
        executor = Executor(client_kwargs, timeout=5.0)
        response = executor.execute(request)
    """

    def __init__(self, client_kwargs: dict[str, Any], timeout: float | None = None) -> None:
        self._client_kwargs = client_kwargs
        self._timeout = timeout

    def execute(self, request: httpx.Request) -> Response:
        """Send the request and return the wrapped response.

        The returned Response owns the client and closes it with the body.

        Raises:
            RequestTimeoutError: If the timeout elapses first.
            TooManyRedirectsError: If the redirect cap is exceeded.
            TransportError: On connection, TLS, DNS or protocol failure.
        """
        client = httpx.Client(**self._client_kwargs)
        try:
            if self._timeout is None:
                http_response = self._send(client, request)
            else:
                http_response = self._send_with_deadline(client, request, self._timeout)
        except BaseException:
            client.close()
            raise

        return Response(http_response, client)

    def _send_with_deadline(
        self,
        client: httpx.Client,
        request: httpx.Request,
        timeout: float,
    ) -> httpx.Response:
        """Race the transport call against the deadline."""
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="httpchain")
        try:
            future = pool.submit(self._send, client, request)
            done, _ = wait([future], timeout=timeout)
            if future in done:
                return future.result()

            logger.warning(
                "%s %s timed out after %.3fs; cancelling in-flight request",
                request.method, request.url, timeout,
            )
            future.add_done_callback(_close_late_response)
            future.cancel()
            # Closing the pool drops the connection the worker is using
            client.close()
            raise RequestTimeoutError(f"{request.method} {request.url} timed out after {timeout}s")
        finally:
            pool.shutdown(wait=False)

    def _send(self, client: httpx.Client, request: httpx.Request) -> httpx.Response:
        """Send the request in streaming mode so the body is read once, later."""
        logger.debug("Sending %s %s", request.method, request.url)
        try:
            start_time = time.perf_counter()
            http_response = client.send(request, stream=True)
            elapsed_ms = (time.perf_counter() - start_time) * 1000

        except httpx.TooManyRedirects as e:
            raise TooManyRedirectsError(
                f"{request.method} {request.url} exceeded max redirects "
                f"({self._client_kwargs.get('max_redirects')}): {e}"
            ) from e
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{request.method} {request.url} request timeout: {e}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{request.method} {request.url} request error: {e}") from e
        except httpx.InvalidURL as e:
            raise TransportError(f"{request.method} {request.url} invalid request: {e}") from e

        logger.debug(
            "%s %s -> %d in %.1fms (%d redirects)",
            request.method, http_response.url, http_response.status_code,
            elapsed_ms, len(http_response.history),
        )
        return http_response
