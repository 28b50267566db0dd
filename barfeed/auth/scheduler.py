"""
Background refresh of the bearer token.

A cancellable loop: sleep for the delay chosen by the last outcome, refresh,
repeat. Success re-arms at the normal interval, failure at the short one.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from barfeed.auth.client import AuthClient
from barfeed.auth.token_store import TokenStore
from barfeed.data.live.errors import AuthRefreshError

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """
    Keeps the TokenStore's access token fresh for the process lifetime.

    Disarmed until bootstrap has loaded a refresh-capable credential.

    Usage:
        scheduler = RefreshScheduler(auth_client, token_store)
        scheduler.start()
        # ... later ...
        await scheduler.stop()
    """

    def __init__(
        self,
        auth: AuthClient,
        store: TokenStore,
        refresh_interval_s: Optional[float] = None,
        retry_interval_s: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "token_refresh",
    ) -> None:
        self._auth = auth
        self._store = store
        self._refresh_interval_s = (
            refresh_interval_s
            if refresh_interval_s is not None
            else auth.config.refresh_interval_s
        )
        self._retry_interval_s = (
            retry_interval_s if retry_interval_s is not None else auth.config.retry_interval_s
        )
        self._sleep = sleep
        self._name = name

        self._next_delay_s = self._refresh_interval_s
        self._task: Optional[asyncio.Task[None]] = None

        self.refresh_count = 0
        self.failure_count = 0
        self.last_refresh_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    @property
    def next_delay_s(self) -> float:
        """Delay before the next refresh attempt."""
        return self._next_delay_s

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> bool:
        """
        Run one refresh attempt and choose the next delay.

        Returns:
            True if the store now carries a fresh access token
        """
        current = self._store.read()
        try:
            refreshed = await self._auth.refresh_via_refresh_token(current)
        except AuthRefreshError as e:
            self.failure_count += 1
            self.last_error = str(e)
            self._next_delay_s = self._retry_interval_s
            logger.warning(
                f"[{self._name}] Token refresh failed, retrying in {self._next_delay_s:.0f}s: {e}"
            )
            return False

        self._store.update_all(current.with_refresh(refreshed))
        self.refresh_count += 1
        self.last_refresh_at = datetime.now(timezone.utc)
        self._next_delay_s = self._refresh_interval_s
        logger.info(
            f"[{self._name}] Token refreshed, next refresh in {self._next_delay_s:.0f}s"
        )
        return True

    async def run(self) -> None:
        """Refresh forever; returns only through cancellation."""
        while True:
            await self._sleep(self._next_delay_s)
            await self.tick()

    def start(self, initial_delay_s: Optional[float] = None) -> asyncio.Task[None]:
        """Arm the scheduler as a background task."""
        if not self._store.is_ready:
            raise RuntimeError("Cannot arm token refresh before a credential is loaded")
        if self.is_running:
            assert self._task is not None
            return self._task

        if initial_delay_s is not None:
            self._next_delay_s = initial_delay_s
        self._task = asyncio.create_task(self.run(), name=self._name)
        logger.debug(f"[{self._name}] Armed, first refresh in {self._next_delay_s:.0f}s")
        return self._task

    async def stop(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
