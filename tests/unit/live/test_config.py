"""
Unit tests for live bar feed configuration.
"""

from pathlib import Path

import pytest

from barfeed.data.live.config import (
    AUTH_HOSTS,
    DEFAULT_TICKERS,
    STREAM_HOSTS,
    AuthConfig,
    Environment,
    FeedConfig,
    StreamConfig,
)
from barfeed.data.live.errors import ConfigurationError


class TestAuthConfig:
    """Tests for AuthConfig."""

    def test_defaults(self) -> None:
        config = AuthConfig(client_id="key", client_secret="secret")
        assert config.redirect_uri == "http://localhost:1234/"
        assert config.refresh_interval_s == 600
        assert config.retry_interval_s == 120

    def test_secret_not_in_repr(self) -> None:
        config = AuthConfig(client_id="key", client_secret="super-secret")
        assert "super-secret" not in repr(config)

    def test_missing_client_id(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AuthConfig(client_id="", client_secret="secret")
        assert "client_id must be set" in str(exc_info.value)

    def test_invalid_redirect_uri(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AuthConfig(client_id="key", client_secret="secret", redirect_uri="localhost:1234")
        assert exc_info.value.field == "redirect_uri"

    def test_invalid_interval(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            AuthConfig(client_id="key", client_secret="secret", retry_interval_s=0)
        assert "retry_interval_s must be positive" in str(exc_info.value)

    def test_token_url(self) -> None:
        config = AuthConfig(client_id="key", client_secret="secret", host="https://h/v2")
        assert config.token_url == "https://h/v2/security/authorize"


class TestStreamConfig:
    """Tests for StreamConfig."""

    def test_defaults(self) -> None:
        config = StreamConfig()
        assert config.idle_timeout_s == 90.0
        assert config.reconnect_delay_s == 1.0
        assert config.max_consecutive_timeouts == 100
        assert config.log_dir == Path("logs")

    def test_bar_chart_query(self) -> None:
        config = StreamConfig(interval=5, unit="daily", bars_back=10)
        assert config.bar_chart_query() == {"interval": "5", "unit": "daily", "barsback": "10"}

    def test_invalid_idle_timeout(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            StreamConfig(idle_timeout_s=0)
        assert "idle_timeout_s must be positive" in str(exc_info.value)

    def test_invalid_reconnect_delay(self) -> None:
        with pytest.raises(ConfigurationError):
            StreamConfig(reconnect_delay_s=-1.0)

    def test_invalid_timeout_limit(self) -> None:
        with pytest.raises(ConfigurationError):
            StreamConfig(max_consecutive_timeouts=-1)

    def test_unbounded_timeouts(self) -> None:
        assert StreamConfig(max_consecutive_timeouts=None).max_consecutive_timeouts is None


class TestFeedConfig:
    """Tests for FeedConfig."""

    @pytest.fixture
    def auth(self) -> AuthConfig:
        return AuthConfig(client_id="key", client_secret="secret")

    def test_hosts_resolved_from_environment(self, auth: AuthConfig) -> None:
        config = FeedConfig(auth=auth, environment=Environment.SIMULATION)
        assert config.auth.host == AUTH_HOSTS[Environment.SIMULATION]
        assert config.stream.host == STREAM_HOSTS[Environment.SIMULATION]

    def test_explicit_hosts_kept(self) -> None:
        config = FeedConfig(
            auth=AuthConfig(client_id="key", client_secret="secret", host="http://auth"),
            stream=StreamConfig(host="http://stream"),
        )
        assert config.auth.host == "http://auth"
        assert config.stream.host == "http://stream"

    def test_default_tickers(self, auth: AuthConfig) -> None:
        config = FeedConfig(auth=auth)
        assert config.tickers == DEFAULT_TICKERS
        assert len(config.tickers) == 23

    def test_empty_tickers(self, auth: AuthConfig) -> None:
        with pytest.raises(ConfigurationError):
            FeedConfig(auth=auth, tickers=())

    def test_blank_ticker(self, auth: AuthConfig) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FeedConfig(auth=auth, tickers=("ESZ24", "   "))
        assert "non-empty" in str(exc_info.value)

    def test_duplicate_tickers(self, auth: AuthConfig) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            FeedConfig(auth=auth, tickers=("ESZ24", "NQZ24", "ESZ24"))
        assert "Duplicate tickers: ESZ24" in str(exc_info.value)

    def test_immutable(self, auth: AuthConfig) -> None:
        config = FeedConfig(auth=auth)
        with pytest.raises(AttributeError):
            config.tickers = ("ESZ24",)  # type: ignore
