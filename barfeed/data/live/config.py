"""
Configuration types for the live bar feed.

Provides immutable, validated configuration dataclasses for the auth and
streaming components.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional

from barfeed.data.live.errors import ConfigurationError


class Environment(str, Enum):
    """TradeStation API environments."""

    SIMULATION = "simulation"
    LIVE = "live"


# v2 hosts serve the OAuth endpoints
AUTH_HOSTS: dict[Environment, str] = {
    Environment.SIMULATION: "https://sim.api.tradestation.com/v2",
    Environment.LIVE: "https://api.tradestation.com/v2",
}

# v3 hosts serve market data streams
STREAM_HOSTS: dict[Environment, str] = {
    Environment.SIMULATION: "https://sim.api.tradestation.com/v3",
    Environment.LIVE: "https://api.tradestation.com/v3",
}

DEFAULT_TICKERS: tuple[str, ...] = (
    "ESZ24", "EMDZ24", "NQZ24", "YMZ24", "MESZ24",
    "GCZ24", "HGZ24", "PLZ24",
    "CLX24", "HOZ24", "RBZ24", "NGX24",
    "FCX24", "LHV24",
    "USZ24", "TYZ24",
    "SX24", "SMZ24", "WZ24", "KWZ24",
    "FDAXZ24", "FSMIZ24", "FGBLZ24",
)  # fmt: skip


@dataclass(frozen=True)
class AuthConfig:
    """Configuration for the OAuth client and refresh scheduler."""

    client_id: str
    client_secret: str = field(repr=False)
    redirect_uri: str = "http://localhost:1234/"

    # Resolved from FeedConfig.environment when left empty
    host: str = ""

    # Optional authorize-endpoint parameters
    scope: Optional[str] = None
    audience: Optional[str] = None

    request_timeout_s: float = 30.0
    refresh_interval_s: float = 10 * 60  # After a successful refresh
    retry_interval_s: float = 2 * 60  # After a failed refresh

    def __post_init__(self) -> None:
        if not self.client_id:
            raise ConfigurationError("client_id must be set", field="client_id")
        if not self.client_secret:
            raise ConfigurationError("client_secret must be set", field="client_secret")
        if not self.redirect_uri.startswith(("http://", "https://")):
            raise ConfigurationError(
                "redirect_uri must be an http(s) URL",
                field="redirect_uri",
                value=self.redirect_uri,
            )
        for name in ("request_timeout_s", "refresh_interval_s", "retry_interval_s"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(f"{name} must be positive", field=name, value=value)

    @property
    def token_url(self) -> str:
        return f"{self.host}/security/authorize"


@dataclass(frozen=True)
class StreamConfig:
    """Configuration shared by all bar-chart stream sessions."""

    # Resolved from FeedConfig.environment when left empty
    host: str = ""

    # Bar-chart request parameters
    interval: int = 1
    unit: str = "minute"
    bars_back: int = 1

    # Connection behavior
    idle_timeout_s: float = 90.0  # No line (heartbeat or bar) within this -> timeout
    connect_timeout_s: float = 30.0
    reconnect_delay_s: float = 1.0

    # None disables the give-up path
    max_consecutive_timeouts: Optional[int] = 100

    log_dir: Path = field(default_factory=lambda: Path("logs"))

    def __post_init__(self) -> None:
        if self.interval <= 0:
            raise ConfigurationError(
                "interval must be positive", field="interval", value=self.interval
            )
        if self.bars_back < 0:
            raise ConfigurationError(
                "bars_back must be non-negative", field="bars_back", value=self.bars_back
            )
        if self.idle_timeout_s <= 0:
            raise ConfigurationError(
                "idle_timeout_s must be positive",
                field="idle_timeout_s",
                value=self.idle_timeout_s,
            )
        if self.connect_timeout_s <= 0:
            raise ConfigurationError(
                "connect_timeout_s must be positive",
                field="connect_timeout_s",
                value=self.connect_timeout_s,
            )
        if self.reconnect_delay_s < 0:
            raise ConfigurationError(
                "reconnect_delay_s must be non-negative",
                field="reconnect_delay_s",
                value=self.reconnect_delay_s,
            )
        if self.max_consecutive_timeouts is not None and self.max_consecutive_timeouts < 0:
            raise ConfigurationError(
                "max_consecutive_timeouts must be non-negative",
                field="max_consecutive_timeouts",
                value=self.max_consecutive_timeouts,
            )

    def bar_chart_query(self) -> dict[str, str]:
        return {
            "interval": str(self.interval),
            "unit": self.unit,
            "barsback": str(self.bars_back),
        }


@dataclass(frozen=True)
class FeedConfig:
    """
    Immutable top-level configuration for the feed process.

    Example:
        config = FeedConfig(
            environment=Environment.LIVE,
            tickers=("ESZ24", "NQZ24"),
            auth=AuthConfig(client_id="key", client_secret="secret"),
        )
    """

    auth: AuthConfig
    environment: Environment = Environment.LIVE
    tickers: tuple[str, ...] = DEFAULT_TICKERS
    stream: StreamConfig = field(default_factory=StreamConfig)
    settings_path: Path = field(default_factory=lambda: Path("settings.json"))

    def __post_init__(self) -> None:
        if not self.tickers:
            raise ConfigurationError("At least one ticker must be configured", field="tickers")
        if any(not t or not t.strip() for t in self.tickers):
            raise ConfigurationError("Tickers must be non-empty", field="tickers")
        duplicates = sorted({t for t in self.tickers if self.tickers.count(t) > 1})
        if duplicates:
            raise ConfigurationError(
                f"Duplicate tickers: {', '.join(duplicates)}",
                field="tickers",
                value=duplicates,
            )

        # Need to use object.__setattr__ for frozen dataclass
        if not self.auth.host:
            object.__setattr__(
                self, "auth", replace(self.auth, host=AUTH_HOSTS[self.environment])
            )
        if not self.stream.host:
            object.__setattr__(
                self, "stream", replace(self.stream, host=STREAM_HOSTS[self.environment])
            )
