"""Tests for httpchain.models.

Tests cover:
- ClientConfig defaults and validation (timeout, redirects, cert/key pairing)
- Cookie pairs and equality
"""

import pytest
from pydantic import ValidationError

from httpchain.models import DEFAULT_MAX_REDIRECTS, ClientConfig, Cookie


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig()
        assert config.timeout is None
        assert config.max_redirects == DEFAULT_MAX_REDIRECTS == 10
        assert config.headers == {}
        assert config.verify_ssl is True
        assert config.proxy is None

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(timeout_seconds=5)

    @pytest.mark.parametrize("timeout", [0, -1.5])
    def test_timeout_must_be_positive(self, timeout: float) -> None:
        with pytest.raises(ValidationError, match="timeout must be positive"):
            ClientConfig(timeout=timeout)

    def test_zero_redirects_allowed(self) -> None:
        assert ClientConfig(max_redirects=0).max_redirects == 0

    def test_negative_redirects_rejected(self) -> None:
        with pytest.raises(ValidationError, match="max_redirects must be >= 0"):
            ClientConfig(max_redirects=-1)

    def test_cert_requires_key(self) -> None:
        with pytest.raises(ValidationError, match="cert and key must be given together"):
            ClientConfig(cert="/tmp/client.pem")

    def test_key_requires_cert(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(key="/tmp/client.key")

    def test_cert_and_key_together(self) -> None:
        config = ClientConfig(cert="/tmp/client.pem", key="/tmp/client.key")
        assert config.cert == "/tmp/client.pem"


class TestCookie:
    def test_to_pair(self) -> None:
        assert Cookie(name="session", value="abc").to_pair() == "session=abc"

    def test_attributes_ignored_for_equality(self) -> None:
        assert Cookie("k", "v", {"path": "/"}) == Cookie("k", "v")

    def test_hashable(self) -> None:
        assert len({Cookie("k", "v", {"path": "/"}), Cookie("k", "v")}) == 1
