"""Unit tests for ClientConfig.

Tests configuration defaults, environment loading and validation.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
import pytest_check as check
from pydantic import ValidationError

from llm_gateway_client.config import ClientConfig, get_client_config


class TestClientConfig:
    """Tests for ClientConfig validation."""

    def test_valid_config_with_all_fields(self, tmp_path: Path) -> None:
        """Config accepts valid values for all fields."""
        config = ClientConfig(
            base_url="https://gateway.example.com",
            retry_backoff=1.0,
            request_timeout=30,
            session_file=tmp_path / "s.json",
            reveal_duration=1.5,
        )

        check.equal(config.base_url, "https://gateway.example.com")
        check.equal(config.retry_backoff, 1.0)
        check.equal(config.request_timeout, 30)
        check.equal(config.session_file, tmp_path / "s.json")
        check.equal(config.reveal_duration, 1.5)

    def test_config_with_default_values(self) -> None:
        """Config uses sensible defaults for fixed fields."""
        config = ClientConfig(base_url="http://localhost:8000")

        check.equal(config.api_prefix, "/api")
        check.equal(config.cache_prefix, "swr:")
        check.equal(config.reveal_duration, 2.0)
        assert config.reveal_interval == pytest.approx(1 / 60)

    def test_config_strips_trailing_slash(self) -> None:
        """Base URL is normalized without trailing slash."""
        config = ClientConfig(base_url="  http://localhost:8000/  ")

        assert config.base_url == "http://localhost:8000"

    def test_config_rejects_non_http_url(self) -> None:
        """Config rejects base URLs without an http(s) scheme."""
        with pytest.raises(ValidationError) as exc_info:
            ClientConfig(base_url="localhost:8000")

        assert "GATEWAY_BASE_URL" in str(exc_info.value)

    def test_config_fails_with_negative_backoff(self) -> None:
        """Config rejects a negative retry backoff."""
        with pytest.raises(ValidationError) as exc_info:
            ClientConfig(retry_backoff=-0.1)

        assert "retry_backoff" in str(exc_info.value).lower()

    def test_config_fails_with_zero_timeout(self) -> None:
        """Config rejects a non-positive timeout."""
        with pytest.raises(ValidationError) as exc_info:
            ClientConfig(request_timeout=0)

        assert "request_timeout" in str(exc_info.value).lower()


class TestGetClientConfig:
    """Tests for get_client_config factory function."""

    def test_get_config_from_environment(self, tmp_path: Path) -> None:
        """get_client_config loads values from environment variables."""
        env = {
            "GATEWAY_BASE_URL": "https://llm.internal",
            "GATEWAY_RETRY_BACKOFF": "0.5",
            "GATEWAY_TIMEOUT": "15",
            "GATEWAY_SESSION_FILE": str(tmp_path / "env-session.json"),
        }
        with patch.dict("os.environ", env):
            config = get_client_config()

        assert config.base_url == "https://llm.internal"
        assert config.retry_backoff == 0.5
        assert config.request_timeout == 15
        assert config.session_file == tmp_path / "env-session.json"

    def test_get_config_fails_with_bad_env_url(self) -> None:
        """get_client_config raises when the environment URL is invalid."""
        with (
            patch.dict("os.environ", {"GATEWAY_BASE_URL": "ftp://nope"}),
            pytest.raises(ValidationError),
        ):
            get_client_config()
