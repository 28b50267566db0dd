"""
Session Supervisor - Top-level orchestration of stream sessions.

Launches one StreamSession per ticker, all sharing a single cancellation
event and a single TokenStore. Sessions are isolated from each other:
a session that fails, or dies on an unexpected error, is logged and
reported through its completed signal while the others keep streaming.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from barfeed.adapters.session_log import SessionLogFactory
from barfeed.auth.token_store import TokenStore
from barfeed.data.live.config import StreamConfig
from barfeed.data.live.errors import ConfigurationError
from barfeed.data.live.session import StreamOpener, StreamSession
from barfeed.data.live.types import FeedSystemHealth, SessionState, SessionStats
from barfeed.types.types import StreamingBar, Ticker

logger = logging.getLogger(__name__)


class SessionSupervisor:
    """
    Runs one stream session per instrument.

    Usage:
        supervisor = SessionSupervisor(tickers, config.stream, store, on_bar=handle_bar)
        supervisor.start_all()
        await supervisor.started("ESZ24")
        ...
        await supervisor.stop()
    """

    def __init__(
        self,
        tickers: Iterable[Ticker],
        config: StreamConfig,
        store: TokenStore,
        on_bar: Optional[Callable[[StreamingBar], Awaitable[None]]] = None,
        telemetry_factory: Optional[SessionLogFactory] = None,
        opener_factory: Optional[Callable[[Ticker], StreamOpener]] = None,
        name: str = "supervisor",
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            tickers: Instruments to stream, one session each
            config: Stream configuration shared by all sessions
            store: Shared credential store
            on_bar: Async callback for every parsed bar from any session
            telemetry_factory: Creates the session log for a symbol
            opener_factory: Creates the transport for a ticker (tests)
            name: Name for logging purposes
        """
        self._tickers = list(tickers)
        self._config = config
        self._store = store
        self._on_bar = on_bar
        self._telemetry_factory = telemetry_factory
        self._opener_factory = opener_factory
        self._name = name

        self._validate_tickers()

        self._cancel = asyncio.Event()
        self._sessions: dict[str, StreamSession] = {}
        self._started_at: Optional[datetime] = None

    def _validate_tickers(self) -> None:
        if not self._tickers:
            raise ConfigurationError("No tickers configured", field="tickers")

        seen: set[str] = set()
        for ticker in self._tickers:
            if ticker.symbol in seen:
                raise ConfigurationError(
                    f"Duplicate ticker: {ticker.symbol}",
                    field="tickers",
                    value=ticker.symbol,
                )
            seen.add(ticker.symbol)

    @property
    def symbols(self) -> list[str]:
        return [t.symbol for t in self._tickers]

    @property
    def is_running(self) -> bool:
        return bool(self._sessions) and not self._cancel.is_set()

    @property
    def sessions(self) -> dict[str, StreamSession]:
        return dict(self._sessions)

    def start_all(self) -> dict[str, asyncio.Future[None]]:
        """
        Launch one session task per ticker.

        Returns:
            Symbol -> "streaming started" future
        """
        if self._sessions:
            logger.warning(f"[{self._name}] Sessions already started")
            return {symbol: s.started for symbol, s in self._sessions.items()}

        self._cancel.clear()
        self._started_at = datetime.now(timezone.utc)

        for ticker in self._tickers:
            session = StreamSession(
                ticker=ticker,
                config=self._config,
                store=self._store,
                on_bar=self._on_bar,
                telemetry=self._telemetry_factory(ticker.symbol) if self._telemetry_factory else None,
                opener=self._opener_factory(ticker) if self._opener_factory else None,
            )
            session.start(self._cancel)
            task = session.task
            assert task is not None
            task.add_done_callback(self._on_session_done)
            self._sessions[ticker.symbol] = session

        logger.info(f"[{self._name}] Started {len(self._sessions)} stream sessions")
        return {symbol: s.started for symbol, s in self._sessions.items()}

    def _on_session_done(self, task: asyncio.Task[SessionState]) -> None:
        """Log how a session task ended; never propagates."""
        name = task.get_name()
        if task.cancelled():
            logger.info(f"[{self._name}] Session {name} cancelled")
            return

        error = task.exception()
        if error is not None:
            logger.error(f"[{self._name}] Session {name} terminated: {error!r}")
        else:
            logger.info(f"[{self._name}] Session {name} finished: {task.result().value}")

    def _get(self, symbol: str) -> StreamSession:
        try:
            return self._sessions[symbol]
        except KeyError:
            raise KeyError(f"No session for symbol: {symbol}") from None

    def started(self, symbol: str) -> asyncio.Future[None]:
        """The "streaming started" signal of one session."""
        return self._get(symbol).started

    def completed(self, symbol: str) -> asyncio.Future[SessionState]:
        """The "streaming completed" signal of one session."""
        return self._get(symbol).completed

    async def wait(self) -> dict[str, SessionState | BaseException]:
        """
        Wait until every session has completed.

        Returns:
            Symbol -> final state, or the error that ended the session
        """
        symbols = list(self._sessions)
        results = await asyncio.gather(
            *(self._sessions[s].completed for s in symbols),
            return_exceptions=True,
        )
        return dict(zip(symbols, results))

    async def stop_session(self, symbol: str, timeout_s: float = 10.0) -> SessionState:
        """Stop one session; its siblings keep streaming."""
        session = self._get(symbol)
        logger.info(f"[{self._name}] Stopping session {symbol}")
        session.request_stop()

        task = session.task
        if task is not None and not task.done():
            _, pending = await asyncio.wait([task], timeout=timeout_s)
            if pending:
                logger.warning(f"[{self._name}] Session {task.get_name()} did not stop in time")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        return session.state

    async def stop(self, timeout_s: float = 10.0) -> None:
        """Signal cancellation to every session and wait for them to finish."""
        if not self._sessions:
            return

        logger.info(f"[{self._name}] Stopping {len(self._sessions)} stream sessions...")
        self._cancel.set()

        tasks = [s.task for s in self._sessions.values() if s.task is not None]
        _, pending = await asyncio.wait(tasks, timeout=timeout_s)

        for task in pending:
            logger.warning(f"[{self._name}] Session {task.get_name()} did not stop in time")
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        # Retrieve outcomes so asyncio does not report them as unhandled
        for session in self._sessions.values():
            if session.completed.done() and not session.completed.cancelled():
                session.completed.exception()

        logger.info(f"[{self._name}] All stream sessions stopped")

    def get_health(self) -> FeedSystemHealth:
        """Get aggregate health status."""
        return FeedSystemHealth(
            sessions=[s.get_health() for s in self._sessions.values()],
            started_at=self._started_at,
        )

    def get_stats(self) -> dict[str, SessionStats]:
        return {symbol: s.stats for symbol, s in self._sessions.items()}
