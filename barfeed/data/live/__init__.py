"""
Live Bar Feed Module.

This module streams realtime bars for many futures instruments from the
TradeStation market-data API, one long-lived HTTP stream per instrument,
sharing a single OAuth credential that is refreshed in the background.

Components:
- SessionSupervisor: Launches and stops one session per instrument
- StreamSession: Per-instrument connection loop and reconnect state machine
- classify_line: Line classification (error, heartbeat, data)
- BarHandler: Parsing/normalizing bar payloads

Usage:
    from barfeed.data.live import SessionSupervisor, StreamConfig

    supervisor = SessionSupervisor(tickers, StreamConfig(), token_store, on_bar=handle_bar)
    supervisor.start_all()
    ...
    await supervisor.stop()
"""

from barfeed.data.live.config import AuthConfig, Environment, FeedConfig, StreamConfig
from barfeed.data.live.errors import (
    AuthRefreshError,
    ConfigurationError,
    ConnectionError,
    FatalStartupError,
    FatalStreamError,
    LiveFeedError,
    MessageParseError,
)
from barfeed.data.live.handlers import BarHandler
from barfeed.data.live.router import classify_line
from barfeed.data.live.session import StreamSession
from barfeed.data.live.supervisor import SessionSupervisor
from barfeed.data.live.types import (
    FeedSystemHealth,
    LineType,
    ReadOutcome,
    ReadResult,
    SessionHealth,
    SessionState,
    SessionStats,
)

__all__ = [
    # Main entry point
    "SessionSupervisor",
    "StreamSession",
    "FeedConfig",
    "AuthConfig",
    "StreamConfig",
    "Environment",
    "BarHandler",
    "classify_line",
    # Types
    "SessionState",
    "LineType",
    "ReadOutcome",
    "ReadResult",
    "SessionStats",
    "SessionHealth",
    "FeedSystemHealth",
    # Errors
    "LiveFeedError",
    "ConfigurationError",
    "ConnectionError",
    "MessageParseError",
    "FatalStartupError",
    "AuthRefreshError",
    "FatalStreamError",
]
