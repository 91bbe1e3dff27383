"""RequestBuilder - Fluent request configuration, assembly and execution.

A builder is created per request, configured through chained calls, executed
once, and then read-only:

    data = (
        httpchain.post("https://example.com/api/items")
        .set("X-Request-Id", "abc")
        .send({"name": "widget"})
        .timeout(5)
        .json()
    )

Configuration errors (bad URL, unmarshalable body, missing attachment,
conflicting bodies) do not raise from the chained call. The first one is
recorded on the builder, later configuration calls become no-ops, and the
error is raised by build_request()/end()/text()/json().

After execution every configuration call is a no-op, and execution calls
return the cached response or re-raise the cached error without touching
the transport again.

A builder is single-owner: it must not be configured from several threads.
"""

from __future__ import annotations

import base64
import functools
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

import httpx
from pydantic import BaseModel

from httpchain.body import (
    UNSET,
    Body,
    FilePart,
    MultipartBody,
    check_transition,
    resolve,
    with_fields,
    with_file,
    with_raw,
)
from httpchain.errors import (
    ConfigError,
    EncodingError,
    FileOpenError,
    HttpChainError,
    InvalidURLError,
    MissingMethodError,
    MissingURLError,
    RequestTimeoutError,
    TransportError,
)
from httpchain.executor import ExecutionState, Executor, build_client_kwargs, parse_proxy
from httpchain.headers import (
    HeaderValues,
    QueryValues,
    ValueOrValues,
    as_values,
    resolve_content_type,
)
from httpchain.models import ClientConfig, Cookie
from httpchain.response import Response

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _chainable(method: F) -> F:
    """Make a configuration method fluent.

    The wrapped method may raise HttpChainError; the error is recorded as the
    builder's deferred error instead of propagating. Once an error is recorded,
    or the request has been executed, the method does nothing.
    """

    @functools.wraps(method)
    def wrapper(self: RequestBuilder, *args: Any, **kwargs: Any) -> RequestBuilder:
        if self._state is not ExecutionState.IDLE:
            logger.debug("Ignoring %s(): request already executed", method.__name__)
            return self
        if self._error is not None:
            return self
        try:
            method(self, *args, **kwargs)
        except HttpChainError as e:
            logger.debug("%s() failed, deferring error: %s", method.__name__, e)
            self._error = e
        return self

    return wrapper  # type: ignore[return-value]


def _parse_url(url: str | httpx.URL) -> httpx.URL:
    """Parse an absolute http(s) URL."""
    try:
        parsed = httpx.URL(url)
    except (httpx.InvalidURL, TypeError) as e:
        raise InvalidURLError(f"Invalid URL {url!r}: {e}") from e

    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise InvalidURLError(f"Invalid URL {url!r}: expected an absolute http or https URL")
    return parsed


def _seconds(value: float | timedelta) -> float:
    if isinstance(value, timedelta):
        return value.total_seconds()
    return float(value)


def _marshal(value: Any) -> bytes:
    """Encode a body value: strings and bytes verbatim, everything else as JSON."""
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, BaseModel):
        return value.model_dump_json().encode("utf-8")
    try:
        return json.dumps(value, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(f"Cannot marshal {type(value).__name__} body to JSON: {e}") from e


def _basic_auth_header(name: str, password: str) -> str:
    token = base64.b64encode(f"{name}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


class RequestBuilder:
    """Accumulates request configuration and executes it once.

    Args:
        config: Defaults for headers, timeout, redirects, proxy and TLS.
        transport: httpx transport used to send the request. Defaults to
                   httpx's HTTP transport; pass httpx.MockTransport in tests.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config or ClientConfig()
        self._transport = transport

        self._method: str | None = None
        self._url: httpx.URL | None = None
        self._headers = HeaderValues(self._config.headers)
        self._query = QueryValues()
        self._body: Body = UNSET
        self._basic_auth: tuple[str, str] | None = None
        self._cookies: list[Cookie] = []
        self._timeout = self._config.timeout
        self._max_redirects = self._config.max_redirects
        self._proxy: httpx.URL | None = None

        self._error: HttpChainError | None = None
        self._state = ExecutionState.IDLE
        self._response: Response | None = None

        if self._config.user_agent:
            self._headers.set("User-Agent", self._config.user_agent)
        if self._config.proxy:
            self.proxy(self._config.proxy)

    def __repr__(self) -> str:
        return f"<RequestBuilder {self._method or '?'} {self._url or '?'} [{self._state.value}]>"

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def method(self) -> str | None:
        return self._method

    @property
    def url(self) -> httpx.URL | None:
        return self._url

    @property
    def headers(self) -> HeaderValues:
        return self._headers

    @property
    def query_values(self) -> QueryValues:
        return self._query

    @property
    def body(self) -> Body:
        return self._body

    @property
    def cookies(self) -> list[Cookie]:
        return list(self._cookies)

    @property
    def error(self) -> HttpChainError | None:
        """The deferred configuration error, or the execution error once failed."""
        return self._error

    @property
    def state(self) -> ExecutionState:
        return self._state

    # -------------------------------------------------------------------------
    # Method and URL
    # -------------------------------------------------------------------------

    @_chainable
    def to(self, method: str, url: str | httpx.URL) -> None:
        """Set the method and URL. The query is reset to the URL's own query string."""
        parsed = _parse_url(url)
        self._method = method.upper()
        self._url = parsed.copy_with(params=None)
        self._query = QueryValues(parsed)

    def get(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("GET", url)

    def post(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("POST", url)

    def put(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("PUT", url)

    def patch(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("PATCH", url)

    def delete(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("DELETE", url)

    def head(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("HEAD", url)

    def options(self, url: str | httpx.URL) -> RequestBuilder:
        return self.to("OPTIONS", url)

    # -------------------------------------------------------------------------
    # Headers and query
    # -------------------------------------------------------------------------

    @_chainable
    def set(self, key: str, value: str) -> None:
        """Set header key to value, replacing existing values."""
        self._headers.set(key, value)

    @_chainable
    def add(self, key: str, value: str) -> None:
        """Append value to header key."""
        self._headers.add(key, value)

    @_chainable
    def header(self, headers: Mapping[str, ValueOrValues]) -> None:
        """Set every header in the mapping, each replacing existing values for its key."""
        self._headers.merge(headers)

    @_chainable
    def type(self, content_type: str) -> None:
        """Set Content-Type. Shorthands like "json" or "form" are expanded."""
        self._headers.set("Content-Type", resolve_content_type(content_type))

    @_chainable
    def accept(self, content_type: str) -> None:
        """Set Accept. Shorthands like "json" or "text" are expanded."""
        self._headers.set("Accept", resolve_content_type(content_type))

    @_chainable
    def query(self, values: Mapping[str, ValueOrValues]) -> None:
        """Append query parameters; existing values for the same key are kept."""
        self._query.extend(values)

    # -------------------------------------------------------------------------
    # Body
    # -------------------------------------------------------------------------

    @_chainable
    def send(self, value: Any) -> None:
        """Send value as a JSON body.

        A str or bytes value is sent verbatim as already-encoded JSON; a
        pydantic model or any json-serializable value is marshaled.
        """
        check_transition(self._body, "raw")
        self._body = with_raw(self._body, _marshal(value))
        self._headers.set("Content-Type", "application/json")

    @_chainable
    def field(self, values: Mapping[str, ValueOrValues]) -> None:
        """Add form fields, sent URL-encoded or as multipart fields with attachments."""
        pairs = [(key, item) for key, value in values.items() for item in as_values(value)]
        self._body = with_fields(self._body, pairs)
        self._headers.set("Content-Type", "application/x-www-form-urlencoded")

    @_chainable
    def attach(self, field_name: str, path: str | Path, file_name: str | None = None) -> None:
        """Attach a file as a multipart part. file_name defaults to the path's basename."""
        check_transition(self._body, "multipart")
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise FileOpenError(f"Cannot open attachment {path}: {e}") from e

        part = FilePart(field_name=field_name, file_name=file_name or path.name, content=content)
        self._body = with_file(self._body, part)

    # -------------------------------------------------------------------------
    # Cookies and auth
    # -------------------------------------------------------------------------

    @_chainable
    def cookie(self, cookie: Cookie | str, value: str | None = None, **attributes: Any) -> None:
        """Add a cookie, as a Cookie or as name, value and optional attributes."""
        if not isinstance(cookie, Cookie):
            if value is None:
                raise ConfigError(f"Cookie {cookie!r} needs a value")
            cookie = Cookie(name=cookie, value=value, attributes=attributes)
        self._cookies.append(cookie)

    @_chainable
    def cookie_jar(self, jar: httpx.Cookies | Any) -> None:
        """Add every cookie in the jar that matches the request URL.

        jar may be an httpx.Cookies, an http.cookiejar.CookieJar or a dict.
        The URL must be set first.
        """
        if self._url is None:
            raise MissingURLError()

        probe = httpx.Request("GET", self._url)
        httpx.Cookies(jar).set_cookie_header(probe)
        header = probe.headers.get("cookie")
        if not header:
            return
        for pair in header.split("; "):
            name, _, value = pair.partition("=")
            self._cookies.append(Cookie(name=name, value=value))

    @_chainable
    def auth(self, name: str, password: str) -> None:
        """Use HTTP Basic Authentication. Credentials are only base64-encoded."""
        self._basic_auth = (name, password)

    # -------------------------------------------------------------------------
    # Transport policy
    # -------------------------------------------------------------------------

    @_chainable
    def timeout(self, timeout: float | timedelta | None) -> None:
        """Limit the whole request to timeout (seconds or timedelta); None removes the limit."""
        if timeout is None:
            self._timeout = None
            return
        seconds = _seconds(timeout)
        if seconds <= 0:
            raise ConfigError(f"timeout must be positive, got {timeout!r}")
        self._timeout = seconds

    @_chainable
    def redirects(self, count: int) -> None:
        """Fail with TooManyRedirectsError once count redirects have been followed."""
        if count < 0:
            raise ConfigError(f"redirects must be >= 0, got {count}")
        self._max_redirects = count

    @_chainable
    def proxy(self, addr: str) -> None:
        """Route the request through an http, https, socks5 or socks5h proxy."""
        self._proxy = parse_proxy(addr)

    # -------------------------------------------------------------------------
    # Assembly
    # -------------------------------------------------------------------------

    def build_request(self) -> httpx.Request:
        """Assemble the transport-ready request without sending it.

        Raises:
            HttpChainError: The deferred configuration error, if any.
            MissingURLError: If no URL was set.
            MissingMethodError: If no method was set.
            EncodingError: If a header value can't be encoded.
        """
        if self._error is not None:
            raise self._error
        if self._url is None:
            raise MissingURLError()
        if not self._method:
            raise MissingMethodError()

        headers = self._headers.copy()
        body_kwargs = resolve(self._body)

        if isinstance(self._body, MultipartBody):
            # httpx writes the boundary into its own Content-Type
            headers.remove("Content-Type")

        if self._basic_auth is not None:
            headers.set("Authorization", _basic_auth_header(*self._basic_auth))

        if self._cookies:
            # Cookie headers set explicitly come first, then cookies in insertion order
            pairs = headers.get_all("Cookie") + [cookie.to_pair() for cookie in self._cookies]
            headers.set("Cookie", "; ".join(pairs))

        url = self._url.copy_with(params=self._query.multi_items())

        try:
            return httpx.Request(self._method, url, headers=headers.multi_items(), **body_kwargs)
        except UnicodeEncodeError as e:
            raise EncodingError(
                f"Non-ASCII character {e.object[e.start:e.end]!r} in request headers"
            ) from e

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def end(self) -> Response:
        """Execute the request and return the response.

        A non-2xx status is not an error here. The first call executes; later
        calls return the same Response or re-raise the same error.

        Raises:
            HttpChainError: Deferred configuration error, MissingURLError,
                            MissingMethodError, TransportError,
                            TooManyRedirectsError or RequestTimeoutError.
                            Any other failure is wrapped in TransportError.
        """
        if self._state.is_terminal:
            if self._response is not None:
                return self._response
            assert self._error is not None
            raise self._error

        self._state = ExecutionState.ASSEMBLING
        try:
            request = self.build_request()
            executor = Executor(
                build_client_kwargs(
                    self._config,
                    timeout=self._timeout,
                    max_redirects=self._max_redirects,
                    proxy=self._proxy,
                    transport=self._transport,
                ),
                timeout=self._timeout,
            )
            self._state = ExecutionState.IN_FLIGHT
            self._response = executor.execute(request)
        except RequestTimeoutError as e:
            self._state = ExecutionState.TIMED_OUT
            self._error = e
            raise
        except HttpChainError as e:
            self._state = ExecutionState.FAILED
            self._error = e
            raise
        except Exception as e:
            logger.debug(
                "%s %s failed with unexpected %s", self._method, self._url, type(e).__name__
            )
            error = TransportError(f"{self._method} {self._url} failed: {e!r}")
            self._state = ExecutionState.FAILED
            self._error = error
            raise error from e

        self._state = ExecutionState.COMPLETED
        return self._response

    def text(self) -> str:
        """Execute the request and return the body as text. See Response.text()."""
        return self.end().text()

    def json(self, shape: Any = None) -> Any:
        """Execute the request and return the decoded JSON body. See Response.json()."""
        return self.end().json(shape)


def new(
    config: ClientConfig | None = None,
    transport: httpx.BaseTransport | None = None,
) -> RequestBuilder:
    """Create a fresh builder."""
    return RequestBuilder(config=config, transport=transport)


def get(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    """Start a GET request; kwargs are passed to new()."""
    return new(**kwargs).get(url)


def post(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).post(url)


def put(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).put(url)


def patch(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).patch(url)


def delete(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).delete(url)


def head(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).head(url)


def options(url: str | httpx.URL, **kwargs: Any) -> RequestBuilder:
    return new(**kwargs).options(url)
