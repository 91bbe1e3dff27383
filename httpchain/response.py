"""Response Decoder - Wraps an executed response with cached decoders.

The body is drained from the underlying stream at most once (raw), then
decompressed at most once (content). text() and json() build on content().

Decompression is layered because servers mislabel encodings:
    1. The declared Content-Encoding (gzip or raw deflate)
    2. zlib-framed data, if step 1 fails
    3. DecodeError
"""

from __future__ import annotations

import codecs
import gzip
import logging
import zlib
from typing import Any, Callable

import httpx
from pydantic import TypeAdapter, ValidationError

from httpchain.errors import (
    DecodeError,
    InvalidURLError,
    NotJSONError,
    RequestTimeoutError,
    StatusNotOkError,
    TransportError,
    UnmarshalError,
)

logger = logging.getLogger(__name__)

_REDIRECT_STATUSES = frozenset({301, 302, 303, 307})


def _inflate_raw(data: bytes) -> bytes:
    """Decompress a raw DEFLATE stream (no zlib header), as HTTP "deflate" specifies."""
    return zlib.decompress(data, -zlib.MAX_WBITS)


_DECOMPRESSORS: dict[str, Callable[[bytes], bytes]] = {
    "gzip": gzip.decompress,
    "x-gzip": gzip.decompress,
    "deflate": _inflate_raw,
}


class Response:
    """The response of an executed request.

    Owns the underlying httpx response (and the client it came from, when
    given) exclusively. Close it, or read the body, to release the connection.

    Usage:
        res = httpchain.get("https://example.com/api").end()
        if res.ok:
            data = res.json()
    """

    def __init__(self, response: httpx.Response, client: httpx.Client | None = None) -> None:
        self._response = response
        self._client = client
        self._raw: bytes | None = None
        self._content: bytes | None = None
        # True when httpx already read (and decoded) the body before we got it
        self._decoded_upstream = False

    def __enter__(self) -> "Response":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"<Response [{self.status_line}]>"

    @property
    def http_response(self) -> httpx.Response:
        """The underlying httpx response."""
        return self._response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def ok(self) -> bool:
        """Whether the status code is less than 400."""
        return self.status_code < 400

    @property
    def status_line(self) -> str:
        """Status code and reason phrase, e.g. "418 I'm a teapot"."""
        return f"{self.status_code} {self.reason()}".strip()

    def reason(self) -> str:
        """Reason phrase for the status code ("" if unknown)."""
        return httpx.codes.get_reason_phrase(self.status_code)

    def url(self) -> httpx.URL:
        """URL of the final request.

        For a redirect status (301, 302, 303, 307) the Location header is
        resolved against the request URL.
        """
        url = self._response.request.url
        if self.status_code in _REDIRECT_STATUSES:
            location = self.headers.get("location")
            if location is None:
                raise InvalidURLError(f"{self.status_line} response has no Location header")
            try:
                return url.join(location)
            except httpx.InvalidURL as e:
                raise InvalidURLError(f"Invalid Location header {location!r}: {e}") from e
        return url

    def raw(self) -> bytes:
        """The body bytes as received, without content decoding.

        The stream is drained and closed on the first call; later calls
        return the cached bytes.

        If httpx had already read the body before this Response was created
        (for example a response built with content=... by a mock transport),
        httpx has applied its own Content-Encoding decoding. raw() then returns
        those decoded bytes, and content() returns them unchanged.
        """
        if self._raw is not None:
            return self._raw

        if self._response.is_stream_consumed:
            self._raw = self._response.content
            self._decoded_upstream = True
            self.close()
            return self._raw

        try:
            self._raw = b"".join(self._response.iter_raw())
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"timed out reading response body: {e}") from e
        except (httpx.TransportError, httpx.StreamError) as e:
            raise TransportError(f"failed reading response body: {e}") from e
        finally:
            self.close()

        return self._raw

    def content(self) -> bytes:
        """The body with Content-Encoding removed (gzip, deflate, zlib fallback)."""
        if self._content is not None:
            return self._content

        raw = self.raw()
        encoding = self.headers.get("content-encoding", "").strip().lower()
        decompress = _DECOMPRESSORS.get(encoding)

        if decompress is None or self._decoded_upstream or not raw:
            self._content = raw
            return raw

        try:
            self._content = decompress(raw)
        except (OSError, EOFError, zlib.error) as e:
            # Some servers send zlib-wrapped data labelled gzip or deflate
            logger.debug("%s decoding failed (%s), retrying as zlib", encoding, e)
            try:
                self._content = zlib.decompress(raw)
            except zlib.error as zlib_err:
                raise DecodeError(
                    f"Cannot decode {encoding!r} response body: {e}; zlib fallback: {zlib_err}"
                ) from zlib_err

        return self._content

    def text(self) -> str:
        """The body decoded as text using the response charset (default UTF-8).

        Raises:
            StatusNotOkError: If the status is >= 400. The text is on ``.value``.
        """
        text = self._decode_text(self.content())
        if not self.ok:
            raise StatusNotOkError(self, text)
        return text

    def json(self, shape: Any = None) -> Any:
        """The body decoded as JSON.

        Args:
            shape: Any type pydantic can validate (a BaseModel subclass,
                   list[int], a TypedDict, ...). Defaults to dict[str, Any].

        Raises:
            NotJSONError: If Content-Type is not application/json.
            UnmarshalError: If the body doesn't parse into shape.
            StatusNotOkError: If the status is >= 400. The decoded value is on
                              ``.value``.
        """
        content = self.content()

        content_type = self.headers.get("content-type", "")
        if not content_type.lower().startswith("application/json"):
            message = self._decode_text(content) if content else self.status_line
            raise NotJSONError(message)

        adapter = TypeAdapter(shape if shape is not None else dict[str, Any])
        try:
            value = adapter.validate_json(content)
        except ValidationError as e:
            raise UnmarshalError(f"Cannot decode JSON response body: {e}") from e

        if not self.ok:
            raise StatusNotOkError(self, value)
        return value

    def close(self) -> None:
        """Close the response stream and the client that owns the connection."""
        try:
            self._response.close()
        finally:
            if self._client is not None:
                self._client.close()
                self._client = None

    def _decode_text(self, content: bytes) -> str:
        charset = self._response.charset_encoding
        if charset:
            try:
                codecs.lookup(charset)
            except LookupError:
                charset = None
        return content.decode(charset or "utf-8", errors="replace")


def get_path(value: Any, *branch: str) -> Any:
    """Look up a nested key path in decoded JSON; None when any step is missing.

    get_path({"json": {"k1": "v1"}}, "json", "k1") -> "v1"
    """
    if not branch:
        return None
    for key in branch:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def get_index(value: Any, index: int) -> Any:
    """Index into a decoded JSON array; None when not a list or out of range."""
    if isinstance(value, list) and 0 <= index < len(value):
        return value[index]
    return None
