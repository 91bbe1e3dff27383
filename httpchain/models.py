"""Data models for httpchain.

Configuration uses Pydantic v2, matching the YAML loaded by config_loader.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Matches net/http's default policy of stopping after 10 redirects
DEFAULT_MAX_REDIRECTS = 10


class ClientConfig(BaseModel):
    """Defaults applied to every builder created with this config.

    Chained calls override timeout, redirects and proxy; config headers seed
    the builder's headers before any chained header call.
    """

    model_config = ConfigDict(extra="forbid")

    timeout: float | None = Field(
        default=None, description="Request timeout in seconds (None = no client-imposed timeout)"
    )
    max_redirects: int = Field(
        default=DEFAULT_MAX_REDIRECTS, description="Maximum redirects to follow"
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Headers sent with every request (supports ${ENV_VAR} substitution)",
    )
    user_agent: str | None = Field(default=None, description="User-Agent header value")
    proxy: str | None = Field(default=None, description="Proxy URL (http, https, socks5)")
    verify_ssl: bool = Field(default=True, description="Verify server certificates")
    ca_bundle: str | None = Field(default=None, description="Path to CA bundle file")
    cert: str | None = Field(default=None, description="Client certificate path (mTLS)")
    key: str | None = Field(default=None, description="Client private key path (mTLS)")
    key_password: str | None = Field(default=None, description="Password for the client key")
    ciphers: str | None = Field(default=None, description="OpenSSL cipher string")

    @field_validator("timeout")
    @classmethod
    def check_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("max_redirects")
    @classmethod
    def check_max_redirects(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_redirects must be >= 0")
        return v

    @model_validator(mode="after")
    def check_cert_pair(self) -> Self:
        if (self.cert is None) != (self.key is None):
            raise ValueError("cert and key must be given together")
        return self


@dataclass(frozen=True)
class Cookie:
    """A cookie attached to the request.

    Only name and value are sent; attributes (path, domain, ...) are kept
    for the caller's inspection.
    """

    name: str
    value: str
    attributes: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def to_pair(self) -> str:
        return f"{self.name}={self.value}"
