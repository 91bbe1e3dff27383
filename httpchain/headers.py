"""Header and query-string accumulators.

Header keys are case-insensitive and stored in canonical form (X-Test-Key).
"set" replaces all values for a key, "add" appends. Query values only ever
append, since repeated query parameters are legal and ordered.
"""

from __future__ import annotations

from typing import Iterator, Mapping, Sequence, Union

import httpx

# A single value or a list of values, as accepted by header() / query() / field().
# Numbers and booleans are sent as their str() form.
Scalar = Union[str, int, float, bool]
ValueOrValues = Union[Scalar, Sequence[Scalar]]

# Shorthands accepted by RequestBuilder.type() and RequestBuilder.accept()
CONTENT_TYPE_ALIASES: dict[str, str] = {
    "html": "text/html",
    "json": "application/json",
    "xml": "application/xml",
    "text": "text/plain",
    "urlencoded": "application/x-www-form-urlencoded",
    "form": "application/x-www-form-urlencoded",
    "form-data": "application/x-www-form-urlencoded",
    "multipart": "multipart/form-data",
}


def resolve_content_type(value: str) -> str:
    """Expand a content-type shorthand; unknown values pass through unchanged."""
    return CONTENT_TYPE_ALIASES.get(value.lower(), value)


def canonical_key(key: str) -> str:
    """Canonicalize a header key: "x-test-key" -> "X-Test-Key"."""
    return "-".join(part[:1].upper() + part[1:].lower() for part in key.split("-"))


def as_values(value: ValueOrValues) -> list[str]:
    """Normalize a single value or a sequence of values to a list of strings."""
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(v) for v in value]
    return [str(value)]


class HeaderValues:
    """Ordered, case-insensitive mapping of header keys to value lists."""

    def __init__(self, initial: Mapping[str, ValueOrValues] | None = None) -> None:
        self._values: dict[str, list[str]] = {}
        if initial:
            self.merge(initial)

    def set(self, key: str, value: str) -> None:
        """Replace any existing values for key with the single value."""
        self._values[canonical_key(key)] = [value]

    def add(self, key: str, value: str) -> None:
        """Append value to the existing values for key."""
        self._values.setdefault(canonical_key(key), []).append(value)

    def merge(self, headers: Mapping[str, ValueOrValues]) -> None:
        """Replace values per key: an incoming key fully replaces the old list."""
        for key, value in headers.items():
            self._values[canonical_key(key)] = as_values(value)

    def copy(self) -> "HeaderValues":
        clone = HeaderValues()
        clone._values = {key: list(values) for key, values in self._values.items()}
        return clone

    def remove(self, key: str) -> None:
        self._values.pop(canonical_key(key), None)

    def get(self, key: str, default: str | None = None) -> str | None:
        """First value for key, or default."""
        values = self._values.get(canonical_key(key))
        return values[0] if values else default

    def get_all(self, key: str) -> list[str]:
        return list(self._values.get(canonical_key(key), []))

    def multi_items(self) -> list[tuple[str, str]]:
        """Flatten to (key, value) pairs, preserving per-key order."""
        return [(key, value) for key, values in self._values.items() for value in values]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and canonical_key(key) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"HeaderValues({self._values!r})"


class QueryValues:
    """Append-only, ordered mapping of query keys to value lists."""

    def __init__(self, url: httpx.URL | None = None) -> None:
        self._values: dict[str, list[str]] = {}
        if url is not None:
            for key, value in url.params.multi_items():
                self.add(key, value)

    def add(self, key: str, value: str) -> None:
        self._values.setdefault(key, []).append(value)

    def extend(self, values: Mapping[str, ValueOrValues]) -> None:
        for key, value in values.items():
            for item in as_values(value):
                self.add(key, item)

    def multi_items(self) -> list[tuple[str, str]]:
        return [(key, value) for key, values in self._values.items() for value in values]

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"QueryValues({self._values!r})"
