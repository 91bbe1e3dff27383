"""httpchain - Fluent HTTP request builder on top of httpx."""

from httpchain.body import FilePart, FormBody, MultipartBody, RawBody, Unset
from httpchain.builder import (
    RequestBuilder,
    delete,
    get,
    head,
    new,
    options,
    patch,
    post,
    put,
)
from httpchain.config_loader import load_client_config
from httpchain.errors import (
    BodyConflictError,
    ConfigError,
    DecodeError,
    EncodingError,
    FileOpenError,
    HttpChainError,
    InvalidURLError,
    MissingMethodError,
    MissingURLError,
    NotJSONError,
    ProxyError,
    RequestTimeoutError,
    StatusNotOkError,
    TooManyRedirectsError,
    TransportError,
    UnmarshalError,
)
from httpchain.executor import ExecutionState
from httpchain.models import ClientConfig, Cookie
from httpchain.response import Response, get_index, get_path

__version__ = "0.1.0"

__all__ = [
    "BodyConflictError",
    "ClientConfig",
    "ConfigError",
    "Cookie",
    "DecodeError",
    "EncodingError",
    "ExecutionState",
    "FileOpenError",
    "FilePart",
    "FormBody",
    "HttpChainError",
    "InvalidURLError",
    "MissingMethodError",
    "MissingURLError",
    "MultipartBody",
    "NotJSONError",
    "ProxyError",
    "RawBody",
    "RequestBuilder",
    "RequestTimeoutError",
    "Response",
    "StatusNotOkError",
    "TooManyRedirectsError",
    "TransportError",
    "UnmarshalError",
    "Unset",
    "delete",
    "get",
    "get_index",
    "get_path",
    "head",
    "load_client_config",
    "new",
    "options",
    "patch",
    "post",
    "put",
]
