"""
Stream session for a single instrument.

Owns one long-lived HTTP bar-chart stream and keeps it alive:
- Builds the request with the current bearer token from the TokenStore
- Reads lines strictly in arrival order and classifies them
- Tags every read (ok, end of stream, timeout, connection/protocol fault)
  and applies one reconnect policy per tag
- Fixed-delay reconnection, bounded by a consecutive-timeout limit
- Appends every line and state transition to the session log

State Machine:
    [CONNECTING] --> [STREAMING] --> [RECONNECTING] --backoff--> [CONNECTING]
         |                |                |
         +----------------+----------------+--> [STOPPED] (cancelled)
                          +-------------------> [FAILED]  (too many timeouts)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Awaitable, Callable, Mapping, Optional, Protocol, TypeVar
from urllib.parse import urlencode

import aiohttp

from barfeed.adapters.session_log import NullTelemetry
from barfeed.auth.token_store import TokenStore
from barfeed.data.live.config import StreamConfig
from barfeed.data.live.errors import ConnectionError, FatalStreamError, MessageParseError
from barfeed.data.live.handlers import BarHandler
from barfeed.data.live.router import classify_line
from barfeed.data.live.types import (
    LineType,
    ReadOutcome,
    ReadResult,
    SessionHealth,
    SessionState,
    SessionStats,
)
from barfeed.ports.telemetry import Telemetry
from barfeed.types.types import StreamingBar, Ticker

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LineSource(Protocol):
    async def readline(self) -> bytes: ...


class StreamOpener(Protocol):
    def open(
        self, url: str, headers: Mapping[str, str]
    ) -> AbstractAsyncContextManager[LineSource]: ...

    async def close(self) -> None: ...


class AiohttpStreamOpener:
    """Opens bar-chart streams on a private aiohttp session."""

    def __init__(self, config: StreamConfig) -> None:
        self._config = config
        self._session: Optional[aiohttp.ClientSession] = None

    @asynccontextmanager
    async def open(self, url: str, headers: Mapping[str, str]) -> AsyncIterator[LineSource]:
        if self._session is None or self._session.closed:
            # sock_read bounds the wait for every chunk: the idle timeout
            timeout = aiohttp.ClientTimeout(
                total=None,
                sock_connect=self._config.connect_timeout_s,
                sock_read=self._config.idle_timeout_s,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)

        async with self._session.get(url, headers=headers) as response:
            response.raise_for_status()
            yield response.content

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None


def classify_fault(error: BaseException) -> ReadResult:
    """Tag an exception raised while opening or reading the stream."""
    # TimeoutError before OSError/ClientError: aiohttp read timeouts are both
    if isinstance(error, asyncio.TimeoutError):
        return ReadResult.fault(ReadOutcome.TIMEOUT, error)
    if isinstance(error, (aiohttp.ClientResponseError, aiohttp.ClientPayloadError)):
        return ReadResult.fault(ReadOutcome.PROTOCOL_FAULT, error)
    if isinstance(error, (aiohttp.ClientError, OSError)):
        return ReadResult.fault(ReadOutcome.CONNECTION_FAULT, error)
    return ReadResult.fault(ReadOutcome.OTHER, error)


class StreamSession:
    """
    Streams one instrument's bars until cancelled or failed.

    Usage:
        session = StreamSession(Ticker("ESZ24"), config, token_store, on_bar=handle_bar)
        started = session.start(cancel_event)
        await started            # first heartbeat or bar arrived
        await session.completed  # STOPPED, or raises FatalStreamError
    """

    def __init__(
        self,
        ticker: Ticker,
        config: StreamConfig,
        store: TokenStore,
        on_bar: Optional[Callable[[StreamingBar], Awaitable[None]]] = None,
        on_state_change: Optional[Callable[[SessionState], Awaitable[None]]] = None,
        telemetry: Optional[Telemetry] = None,
        opener: Optional[StreamOpener] = None,
        name: Optional[str] = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            ticker: Instrument to stream
            config: Stream configuration
            store: Credential source; read on every connection attempt
            on_bar: Async callback for every parsed bar (suspect bars included)
            on_state_change: Optional async callback for state transitions
            telemetry: Append-only session log sink
            opener: Transport; defaults to an aiohttp opener owned by the session
            name: Name for logging purposes
        """
        self._ticker = ticker
        self._config = config
        self._store = store
        self._on_bar = on_bar
        self._on_state_change = on_state_change
        self._telemetry: Telemetry = telemetry or NullTelemetry()
        self._owns_opener = opener is None
        self._opener: StreamOpener = opener or AiohttpStreamOpener(config)
        self._name = name or f"RTS {ticker.symbol}"
        self._handler = BarHandler(ticker.symbol)

        # State
        self._state = SessionState.CONNECTING
        self._stats = SessionStats()
        self._cancel = asyncio.Event()
        self._shared_cancel: Optional[asyncio.Event] = None
        self._task: Optional[asyncio.Task[SessionState]] = None

        # Signals (created on the running loop)
        self._started: Optional[asyncio.Future[None]] = None
        self._completed: Optional[asyncio.Future[SessionState]] = None

        # Timing
        self._connected_at: Optional[datetime] = None
        self._last_line_at: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_error_at: Optional[datetime] = None

    @property
    def ticker(self) -> Ticker:
        return self._ticker

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def stats(self) -> SessionStats:
        return self._stats

    @property
    def task(self) -> Optional[asyncio.Task[SessionState]]:
        return self._task

    @property
    def started(self) -> asyncio.Future[None]:
        """Resolves once, on the first heartbeat or bar after connecting."""
        self._ensure_signals()
        assert self._started is not None
        return self._started

    @property
    def completed(self) -> asyncio.Future[SessionState]:
        """Resolves with STOPPED, or with the error that ended the session."""
        self._ensure_signals()
        assert self._completed is not None
        return self._completed

    @property
    def url(self) -> str:
        query = urlencode(self._config.bar_chart_query())
        return (
            f"{self._config.host}/marketdata/stream/barcharts/"
            f"{self._ticker.url_symbol}?{query}"
        )

    def _ensure_signals(self) -> None:
        if self._started is None or self._completed is None:
            loop = asyncio.get_running_loop()
            self._started = loop.create_future()
            self._completed = loop.create_future()

    def start(self, cancel: Optional[asyncio.Event] = None) -> asyncio.Future[None]:
        """
        Launch the session task.

        Returns:
            The "streaming started" future
        """
        if self._task is not None:
            return self.started
        self._ensure_signals()
        self._task = asyncio.create_task(self.run(cancel), name=self._name)
        return self.started

    def request_stop(self) -> None:
        """Ask this session alone to stop; an in-flight read or backoff is interrupted."""
        self._cancel.set()

    @property
    def cancel_requested(self) -> bool:
        """True once this session or the group it belongs to was asked to stop."""
        return any(event.is_set() for event in self._cancel_events())

    def _cancel_events(self) -> list[asyncio.Event]:
        if self._shared_cancel is None:
            return [self._cancel]
        return [self._cancel, self._shared_cancel]

    async def run(self, cancel: Optional[asyncio.Event] = None) -> SessionState:
        """
        Run the reconnect loop until cancelled or failed.

        Args:
            cancel: Group cancellation event shared with sibling sessions

        Raises:
            Exception: Any fault that is not a known transient stream fault
        """
        if cancel is not None:
            self._shared_cancel = cancel
        self._ensure_signals()

        try:
            while not self.cancel_requested:
                await self._set_state(SessionState.CONNECTING)
                result = await self._stream_once()

                if result.outcome is ReadOutcome.CANCELLED:
                    break
                if not await self._on_disconnect(result):
                    return self._state

                await self._set_state(SessionState.RECONNECTING)
                if self.cancel_requested:
                    break
                if await self._backoff():
                    break
                self._stats.reconnects += 1

            await self._stop()
            return self._state

        except asyncio.CancelledError:
            await self._stop()
            raise
        except Exception as e:
            logger.error(f"[{self._name}] Unexpected error, session terminated: {e}", exc_info=True)
            self._record_error(e)
            self._telemetry.log("session_terminated", error=str(e), error_type=type(e).__name__)
            await self._set_state(SessionState.FAILED)
            self._resolve_completed(error=e)
            raise
        finally:
            if self._owns_opener:
                await self._opener.close()

    async def _set_state(self, new_state: SessionState) -> None:
        """Update state, log it and notify listener."""
        old_state = self._state
        self._state = new_state

        if old_state != new_state:
            logger.debug(f"[{self._name}] State: {old_state.value} -> {new_state.value}")
            self._telemetry.log("state_changed", old=old_state.value, new=new_state.value)
            if self._on_state_change:
                try:
                    await self._on_state_change(new_state)
                except Exception as e:
                    logger.warning(f"[{self._name}] State change callback error: {e}")

    async def _stop(self) -> None:
        logger.info(f"[{self._name}] Stopped")
        await self._set_state(SessionState.STOPPED)
        self._resolve_completed(state=SessionState.STOPPED)

    def _resolve_completed(
        self,
        state: Optional[SessionState] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        if self._completed is None or self._completed.done():
            return
        if error is not None:
            self._completed.set_exception(error)
        else:
            self._completed.set_result(state or self._state)

    def _mark_started(self) -> None:
        if self._started is not None and not self._started.done():
            self._started.set_result(None)

    def _record_error(self, error: BaseException) -> None:
        self._last_error = f"{type(error).__name__}: {error}"
        self._last_error_at = datetime.now(timezone.utc)

    def _build_headers(self) -> dict[str, str]:
        access_token = self._store.read().access_token
        if not access_token:
            logger.warning(f"[{self._name}] No access token available for stream request")
        return {"Authorization": f"Bearer {access_token}"}

    async def _until_cancelled(self, aw: Awaitable[T]) -> tuple[bool, Optional[T]]:
        """
        Await `aw` unless a cancel event fires first.

        Returns:
            (cancelled, result); exceptions raised by `aw` propagate
        """
        work = asyncio.ensure_future(aw)
        waiters = [asyncio.ensure_future(event.wait()) for event in self._cancel_events()]
        try:
            done, _ = await asyncio.wait({work, *waiters}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            for waiter in waiters:
                waiter.cancel()

        if work in done:
            return False, work.result()

        work.cancel()
        await asyncio.gather(work, return_exceptions=True)
        return True, None

    async def _stream_once(self) -> ReadResult:
        """
        Open the stream and process lines until it ends.

        Returns:
            The result that ended this connection
        """
        url = self.url
        headers = self._build_headers()
        self._stats.connection_attempts += 1

        logger.info(f"[{self._name}] Streaming bars for {self._ticker.symbol}")
        self._telemetry.log("request", url=url, authorization=headers["Authorization"])

        async with AsyncExitStack() as stack:
            try:
                cancelled, source = await self._until_cancelled(
                    stack.enter_async_context(self._opener.open(url, headers))
                )
            except Exception as e:
                return classify_fault(e)
            if cancelled or source is None:
                return ReadResult(ReadOutcome.CANCELLED)

            self._connected_at = datetime.now(timezone.utc)
            await self._set_state(SessionState.STREAMING)

            while True:
                result = await self._read_line(source)
                if result.outcome is not ReadOutcome.OK:
                    return result
                assert result.line is not None
                if not await self._handle_line(result.line):
                    return ReadResult(ReadOutcome.PROTOCOL_FAULT, line=result.line)

    async def _read_line(self, source: LineSource) -> ReadResult:
        try:
            cancelled, raw = await self._until_cancelled(source.readline())
        except Exception as e:
            return classify_fault(e)
        if cancelled:
            return ReadResult(ReadOutcome.CANCELLED)
        if not raw:
            return ReadResult(ReadOutcome.END_OF_STREAM)
        return ReadResult.ok(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    async def _handle_line(self, line: str) -> bool:
        """
        Classify and process one line.

        Returns:
            False if the line demands a reconnect
        """
        now = datetime.now(timezone.utc)
        self._last_line_at = now
        self._stats.lines_received += 1
        self._stats.last_line = line
        self._telemetry.log("line", line=line)

        match classify_line(line):
            case LineType.ERROR:
                self._stats.error_lines += 1
                logger.warning(f"[{self._name}] Server error line, reconnecting: {line}")
                return False

            case LineType.HEARTBEAT:
                self._stats.heartbeats += 1
                self._stats.consecutive_timeouts = 0
                self._mark_started()
                return True

            case _:
                try:
                    bar = self._handler.parse(line, recv_ts=int(now.timestamp() * 1000))
                except MessageParseError as e:
                    self._stats.malformed_lines += 1
                    logger.warning(f"[{self._name}] Bogus line: {line!r}: {e}")
                    self._telemetry.log("malformed_line", error=str(e))
                    return True

                self._stats.consecutive_timeouts = 0
                self._stats.bars += 1
                self._mark_started()

                if bar.is_suspect:
                    self._stats.suspect_bars += 1
                    logger.warning(f"[{self._name}] Potentially bogus data. Bar: {bar}")
                    self._telemetry.log("suspect_bar", bar=str(bar))

                await self._emit(bar)
                return True

    async def _emit(self, bar: StreamingBar) -> None:
        if self._on_bar is None:
            return
        try:
            await self._on_bar(bar)
        except Exception as e:
            logger.error(f"[{self._name}] Bar callback error: {e}", exc_info=True)

    async def _on_disconnect(self, result: ReadResult) -> bool:
        """
        Apply the reconnect policy for the result that ended a connection.

        Returns:
            False if the session must end (FAILED)

        Raises:
            Exception: The cause of an OTHER result, unchanged
        """
        if result.cause is not None:
            self._record_error(result.cause)

        match result.outcome:
            case ReadOutcome.END_OF_STREAM:
                logger.info(f"[{self._name}] Stream ended, reconnecting...")

            case ReadOutcome.PROTOCOL_FAULT:
                logger.warning(
                    f"[{self._name}] Protocol fault, reconnecting: {result.cause or result.line}"
                )

            case ReadOutcome.CONNECTION_FAULT:
                error = ConnectionError(
                    f"Connection lost: {result.cause!r}",
                    url=self.url,
                    reconnect_attempt=self._stats.reconnects + 1,
                    component="StreamSession",
                )
                self._record_error(error)
                logger.warning(f"[{self._name}] {error}, retrying...")

            case ReadOutcome.TIMEOUT:
                self._stats.timeouts += 1
                self._stats.consecutive_timeouts += 1
                limit = self._config.max_consecutive_timeouts
                if limit is not None and self._stats.consecutive_timeouts > limit:
                    await self._fail(limit)
                    return False
                logger.warning(
                    f"[{self._name}] No data for {self._config.idle_timeout_s:.0f}s "
                    f"({self._stats.consecutive_timeouts} in a row), reconnecting..."
                )

            case ReadOutcome.OTHER:
                assert result.cause is not None
                raise result.cause

        self._telemetry.log("disconnected", outcome=result.outcome.value, error=self._last_error)
        return True

    async def _fail(self, limit: int) -> None:
        error = FatalStreamError(
            f"Timeout more than {limit} times, give up",
            symbol=self._ticker.symbol,
            consecutive_timeouts=self._stats.consecutive_timeouts,
            component="StreamSession",
        )
        logger.error(f"[{self._name}] Fatal error: {error}")
        self._record_error(error)
        self._telemetry.log("fatal_error", error=str(error))
        await self._set_state(SessionState.FAILED)
        self._resolve_completed(error=error)

    async def _backoff(self) -> bool:
        """
        Wait the fixed reconnect delay.

        Returns:
            True if cancellation was requested meanwhile
        """
        cancelled, _ = await self._until_cancelled(asyncio.sleep(self._config.reconnect_delay_s))
        return cancelled or self.cancel_requested

    def get_health(self) -> SessionHealth:
        """Get current session health snapshot."""
        return SessionHealth(
            symbol=self._ticker.symbol,
            state=self._state,
            connected_since=self._connected_at,
            last_line_at=self._last_line_at,
            stats=self._stats,
            last_error=self._last_error,
            last_error_at=self._last_error_at,
        )
