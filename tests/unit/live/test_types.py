"""
Unit tests for live feed types.
"""

from datetime import datetime, timedelta, timezone

import pytest

from barfeed.data.live.types import (
    FeedSystemHealth,
    ReadOutcome,
    ReadResult,
    SessionHealth,
    SessionState,
)
from barfeed.types.types import StreamingBar, Ticker


def _bar(**overrides) -> StreamingBar:
    fields = dict(
        symbol="ESZ24",
        open=1.0,
        high=2.0,
        low=0.5,
        close=1.5,
        timestamp=None,
        epoch=None,
        total_volume=0,
        up_volume=0,
        down_volume=0,
        unchanged_volume=0,
        total_ticks=0,
        up_ticks=0,
        down_ticks=0,
        unchanged_ticks=0,
        open_interest=0,
        is_realtime=True,
        is_end_of_history=False,
        bar_status="Open",
        ts_recv=0,
    )
    fields.update(overrides)
    return StreamingBar(**fields)


class TestTicker:
    """Tests for Ticker."""

    def test_empty_symbol_rejected(self) -> None:
        with pytest.raises(ValueError):
            Ticker("  ")

    def test_url_symbol(self) -> None:
        assert Ticker("ESZ24").url_symbol == "ESZ24"
        assert Ticker("@ES").url_symbol == "%40ES"

    def test_immutable(self) -> None:
        ticker = Ticker("ESZ24")
        with pytest.raises(AttributeError):
            ticker.symbol = "NQZ24"  # type: ignore


class TestStreamingBar:
    """Tests for the suspect-data flag."""

    def test_normal_bar(self) -> None:
        assert not _bar().is_suspect

    def test_all_zero_is_suspect(self) -> None:
        assert _bar(open=0.0, high=0.0, low=0.0, close=0.0).is_suspect

    def test_within_epsilon_is_suspect(self) -> None:
        assert _bar(open=0.00001, high=-0.00005, low=0.0, close=0.00009).is_suspect

    def test_one_nonzero_field_is_not_suspect(self) -> None:
        assert not _bar(open=0.0, high=0.0, low=0.0, close=0.0001).is_suspect


class TestReadResult:
    """Tests for ReadResult constructors."""

    def test_ok(self) -> None:
        result = ReadResult.ok("line")
        assert result.outcome == ReadOutcome.OK
        assert result.line == "line"
        assert result.cause is None

    def test_fault(self) -> None:
        cause = TimeoutError()
        result = ReadResult.fault(ReadOutcome.TIMEOUT, cause)
        assert result.outcome == ReadOutcome.TIMEOUT
        assert result.cause is cause


class TestHealth:
    """Tests for health snapshots."""

    def test_terminal_states(self) -> None:
        assert SessionState.STOPPED.is_terminal
        assert SessionState.FAILED.is_terminal
        assert not SessionState.RECONNECTING.is_terminal

    def test_seconds_since_line(self) -> None:
        health = SessionHealth(
            symbol="ESZ24",
            state=SessionState.STREAMING,
            last_line_at=datetime.now(timezone.utc) - timedelta(seconds=30),
        )
        assert health.seconds_since_line is not None
        assert 29 <= health.seconds_since_line < 60

    def test_system_health(self) -> None:
        system = FeedSystemHealth(
            sessions=[
                SessionHealth(symbol="ESZ24", state=SessionState.STREAMING),
                SessionHealth(symbol="NQZ24", state=SessionState.FAILED),
                SessionHealth(symbol="CLX24", state=SessionState.RECONNECTING),
            ]
        )
        assert not system.is_healthy
        assert system.failed_sessions == ["NQZ24"]
        assert system.unhealthy_sessions == ["NQZ24", "CLX24"]

    def test_empty_system_is_not_healthy(self) -> None:
        assert not FeedSystemHealth().is_healthy
