"""
Shared types, enums, and data structures for the live bar feed.

This module contains types that are used across multiple components
of the live feed system.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class SessionState(str, Enum):
    """State machine for a single instrument's stream session."""

    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.STOPPED, SessionState.FAILED)


class LineType(str, Enum):
    """Classification of one raw line read from the stream."""

    END_OF_STREAM = "end_of_stream"
    ERROR = "error"
    HEARTBEAT = "heartbeat"
    DATA = "data"


class ReadOutcome(str, Enum):
    """Tag of a single read attempt on the stream."""

    OK = "ok"
    END_OF_STREAM = "end_of_stream"
    TIMEOUT = "timeout"
    CONNECTION_FAULT = "connection_fault"
    PROTOCOL_FAULT = "protocol_fault"
    CANCELLED = "cancelled"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ReadResult:
    """Tagged result of reading one line (or opening the stream)."""

    outcome: ReadOutcome
    line: Optional[str] = None
    cause: Optional[BaseException] = None

    @classmethod
    def ok(cls, line: str) -> ReadResult:
        return cls(ReadOutcome.OK, line=line)

    @classmethod
    def fault(cls, outcome: ReadOutcome, cause: BaseException) -> ReadResult:
        return cls(outcome, cause=cause)


@dataclass
class SessionStats:
    """Counters for one stream session."""

    connection_attempts: int = 0
    reconnects: int = 0
    lines_received: int = 0
    heartbeats: int = 0
    bars: int = 0
    suspect_bars: int = 0
    malformed_lines: int = 0
    error_lines: int = 0
    timeouts: int = 0
    consecutive_timeouts: int = 0
    last_line: Optional[str] = None


@dataclass
class SessionHealth:
    """Health snapshot for a single stream session."""

    symbol: str
    state: SessionState
    connected_since: Optional[datetime] = None
    last_line_at: Optional[datetime] = None
    stats: SessionStats = field(default_factory=SessionStats)
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    @property
    def is_healthy(self) -> bool:
        return self.state == SessionState.STREAMING

    @property
    def seconds_since_line(self) -> Optional[float]:
        """Seconds since last line, or None if no lines yet."""
        if self.last_line_at is None:
            return None
        now = datetime.now(timezone.utc)
        return (now - self.last_line_at).total_seconds()


@dataclass
class FeedSystemHealth:
    """Aggregate health status for all sessions."""

    sessions: list[SessionHealth] = field(default_factory=list)
    started_at: Optional[datetime] = None

    @property
    def is_healthy(self) -> bool:
        return bool(self.sessions) and all(s.is_healthy for s in self.sessions)

    @property
    def failed_sessions(self) -> list[str]:
        return [s.symbol for s in self.sessions if s.state == SessionState.FAILED]

    @property
    def unhealthy_sessions(self) -> list[str]:
        return [s.symbol for s in self.sessions if not s.is_healthy]
