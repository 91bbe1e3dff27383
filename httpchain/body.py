"""Body Selector - Decides which single body representation goes on the wire.

The request body is a tagged variant: Unset, RawBody, FormBody or
MultipartBody. Transitions return a new variant or raise BodyConflictError,
so a failed call never changes the current body.

Allowed transitions:
    Unset     -> RawBody | FormBody | MultipartBody
    FormBody  -> FormBody (more fields) | MultipartBody (fields carried over)
    MultipartBody -> MultipartBody (more fields or files)
    RawBody   -> nothing
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Union

from httpchain.errors import BodyConflictError

FormPairs = tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class Unset:
    kind = "unset"


@dataclass(frozen=True)
class RawBody:
    """Explicit payload, sent verbatim."""

    content: bytes
    kind = "raw"


@dataclass(frozen=True)
class FormBody:
    """URL-encoded form fields, in insertion order."""

    fields: FormPairs = ()
    kind = "form"


@dataclass(frozen=True)
class FilePart:
    """One file attachment, read fully when attached."""

    field_name: str
    file_name: str
    content: bytes


@dataclass(frozen=True)
class MultipartBody:
    """multipart/form-data body: form fields followed by file parts."""

    fields: FormPairs = ()
    files: tuple[FilePart, ...] = ()
    kind = "multipart"


Body = Union[Unset, RawBody, FormBody, MultipartBody]

UNSET = Unset()


def check_transition(body: Body, kind: str) -> None:
    """Raise BodyConflictError unless a body of the given kind may follow body.

    kind is "raw", "form" or "multipart". Callers check before doing any work
    (marshaling, file reads) so a conflict is reported ahead of other errors.
    """
    if kind == "raw" and not isinstance(body, Unset):
        raise BodyConflictError(f"request body has already been set ({body.kind})")
    if kind in ("form", "multipart") and isinstance(body, RawBody):
        raise BodyConflictError(f"cannot add {kind} data: a raw request body has already been set")


def with_raw(body: Body, content: bytes) -> RawBody:
    """Set an explicit payload. Only allowed while no body of any kind exists."""
    check_transition(body, "raw")
    return RawBody(content=content)


def with_fields(body: Body, pairs: Iterable[tuple[str, str]]) -> FormBody | MultipartBody:
    """Append form fields. Fields join a multipart body if one is in effect."""
    check_transition(body, "form")
    pairs = tuple(pairs)
    if isinstance(body, MultipartBody):
        return MultipartBody(fields=body.fields + pairs, files=body.files)
    if isinstance(body, FormBody):
        return FormBody(fields=body.fields + pairs)
    return FormBody(fields=pairs)


def with_file(body: Body, part: FilePart) -> MultipartBody:
    """Add a file part, switching the body to multipart."""
    check_transition(body, "multipart")
    if isinstance(body, MultipartBody):
        return MultipartBody(fields=body.fields, files=body.files + (part,))
    if isinstance(body, FormBody):
        return MultipartBody(fields=body.fields, files=(part,))
    return MultipartBody(files=(part,))


def _group(pairs: FormPairs) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)
    return grouped


def resolve(body: Body) -> dict[str, Any]:
    """Resolve the final wire body as keyword arguments for httpx.Request.

    Multipart wins over form fields; form fields are URL-encoded; a raw body is
    sent as-is; an unset body sends nothing. For multipart, httpx generates the
    boundary and the matching Content-Type header.
    """
    if isinstance(body, MultipartBody):
        return {
            "data": _group(body.fields),
            "files": [(part.field_name, (part.file_name, part.content)) for part in body.files],
        }
    if isinstance(body, FormBody):
        return {"data": _group(body.fields)}
    if isinstance(body, RawBody):
        return {"content": body.content}
    return {}
