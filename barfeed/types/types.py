from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from urllib.parse import quote

from barfeed.core.utility import is_zero
from barfeed.types.aliases import Symbol, UnixMillis

# --- Instruments ---


@dataclass(frozen=True, slots=True)
class Ticker:
    """Instrument identifier used for the stream URL and as the session key."""

    symbol: Symbol

    def __post_init__(self) -> None:
        if not self.symbol or not self.symbol.strip():
            raise ValueError("Ticker symbol must be non-empty. It is required for stream requests.")

    @property
    def url_symbol(self) -> str:
        """Symbol encoded for use as a URL path segment."""
        return quote(self.symbol, safe="")

    def __str__(self) -> str:
        return self.symbol


# --- Market data ---


@dataclass(frozen=True, slots=True, kw_only=True)
class StreamingBar:
    """
    One bar from the bar-chart stream.

    Example payload:
        {"High": "218.32", "Low": "212.42", "Open": "214.02", "Close": "216.39",
         "TimeStamp": "2020-11-04T21:00:00Z", "TotalVolume": "42311777",
         "DownTicks": 231021, "DownVolume": 19575455, "OpenInterest": "0",
         "IsRealtime": false, "IsEndOfHistory": false, "TotalTicks": 460552,
         "UnchangedTicks": 0, "UnchangedVolume": 0, "UpTicks": 229531,
         "UpVolume": 22736321, "Epoch": 1604523600000, "BarStatus": "Closed"}
    """

    symbol: Symbol
    open: float
    high: float
    low: float
    close: float
    timestamp: Optional[datetime]
    epoch: Optional[UnixMillis]
    total_volume: int
    up_volume: int
    down_volume: int
    unchanged_volume: int
    total_ticks: int
    up_ticks: int
    down_ticks: int
    unchanged_ticks: int
    open_interest: int
    is_realtime: bool
    is_end_of_history: bool
    bar_status: Optional[str]
    ts_recv: UnixMillis  # Local receive timestamp (Unix ms)

    @property
    def is_suspect(self) -> bool:
        """All of OHLC indistinguishable from zero: likely bogus data, still emitted."""
        return (
            is_zero(self.open)
            and is_zero(self.high)
            and is_zero(self.low)
            and is_zero(self.close)
        )

    def __str__(self) -> str:
        return (
            f"{self.symbol} {self.timestamp} O={self.open} H={self.high} "
            f"L={self.low} C={self.close} V={self.total_volume} "
            f"realtime={self.is_realtime} status={self.bar_status}"
        )
