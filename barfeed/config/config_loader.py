"""
Purpose:
    - Loads the feed TOML file
    - Resolves OAuth client credentials through a SecretsProvider
    - Builds the validated FeedConfig

Layout:
    [general]  environment, tickers, settings_path
    [auth]     redirect_uri, scope, audience, *_s timings
    [stream]   interval, unit, bars_back, *_s timings, max_consecutive_timeouts, log_dir
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Optional

from barfeed.adapters.env_provider import EnvSecretsProvider
from barfeed.data.live.config import (
    DEFAULT_TICKERS,
    AuthConfig,
    Environment,
    FeedConfig,
    StreamConfig,
)
from barfeed.data.live.errors import ConfigurationError
from barfeed.ports.secrets_provider import SecretsProvider

UNBOUNDED = "unbounded"


class ConfigLoader:
    """
    Config-loader; loading toml file.
    """

    def __init__(self, base_dir: str = ".", secrets: Optional[SecretsProvider] = None) -> None:
        self._base_dir = base_dir
        self._secrets = secrets or EnvSecretsProvider()

    def _resolve(self, raw: str | Path) -> Path:
        path = Path(raw)
        if not path.is_absolute():
            path = Path(self._base_dir) / path
        return path

    def load(self, file_name: str) -> dict[str, Any]:
        path = self._resolve(file_name)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("rb") as f:
            return tomllib.load(f)

    def load_feed_config(
        self,
        file_name: Optional[str] = None,
        tickers: Optional[list[str]] = None,
    ) -> FeedConfig:
        """
        Build the FeedConfig; without a file every section takes its defaults.

        Args:
            file_name: TOML file, relative to base_dir
            tickers: Overrides the configured ticker list when non-empty
        """
        data = self.load(file_name) if file_name else {}

        general_data = data.get("general", {})
        env_raw = general_data.get("environment", Environment.LIVE.value)
        try:
            environment = Environment(str(env_raw).lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown environment: {env_raw}", field="environment", value=env_raw
            ) from None

        ticker_list = tickers or general_data.get("tickers") or list(DEFAULT_TICKERS)

        auth_data = data.get("auth", {})
        auth_cfg = AuthConfig(
            client_id=auth_data.get("client_id") or self._secrets.get("client_id"),
            client_secret=self._secrets.get("client_secret"),
            redirect_uri=auth_data.get("redirect_uri", "http://localhost:1234/"),
            host=auth_data.get("host", ""),
            scope=auth_data.get("scope"),
            audience=auth_data.get("audience"),
            request_timeout_s=auth_data.get("request_timeout_s", 30.0),
            refresh_interval_s=auth_data.get("refresh_interval_s", 10 * 60),
            retry_interval_s=auth_data.get("retry_interval_s", 2 * 60),
        )

        stream_data = data.get("stream", {})
        stream_cfg = StreamConfig(
            host=stream_data.get("host", ""),
            interval=stream_data.get("interval", 1),
            unit=stream_data.get("unit", "minute"),
            bars_back=stream_data.get("bars_back", 1),
            idle_timeout_s=stream_data.get("idle_timeout_s", 90.0),
            connect_timeout_s=stream_data.get("connect_timeout_s", 30.0),
            reconnect_delay_s=stream_data.get("reconnect_delay_s", 1.0),
            max_consecutive_timeouts=self._parse_timeout_limit(
                stream_data.get("max_consecutive_timeouts", 100)
            ),
            log_dir=self._resolve(stream_data.get("log_dir", "logs")),
        )

        return FeedConfig(
            auth=auth_cfg,
            environment=environment,
            tickers=tuple(ticker_list),
            stream=stream_cfg,
            settings_path=self._resolve(general_data.get("settings_path", "settings.json")),
        )

    @staticmethod
    def _parse_timeout_limit(raw: Any) -> Optional[int]:
        # TOML has no null; "unbounded" disables the give-up path
        if isinstance(raw, str) and raw.lower() == UNBOUNDED:
            return None
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ConfigurationError(
                "max_consecutive_timeouts must be an integer or 'unbounded'",
                field="max_consecutive_timeouts",
                value=raw,
            )
        return raw
