"""
Unit tests for the startup credential policy.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import orjson
import pytest

from barfeed.auth.bootstrap import bootstrap_credentials, read_cached_credential
from barfeed.auth.token_store import Credential, RefreshedToken, TokenStore
from barfeed.data.live.errors import AuthRefreshError, FatalStartupError


class MemorySettings:
    def __init__(self, value: Optional[str] = None) -> None:
        self.value = value
        self.saves: list[str] = []

    def get_setting(self) -> Optional[str]:
        return self.value

    def save_setting(self, value: str) -> None:
        self.saves.append(value)
        self.value = value


CACHED = '{"access_token":null,"expires_in":null,"refresh_token":"cached-r","token_type":"AccessToken","userid":"alice"}'

ACQUIRED = Credential(
    access_token="fresh-a",
    expires_in="1200",
    refresh_token="fresh-r",
    token_type="AccessToken",
    userid="alice",
)


@pytest.fixture
def auth() -> MagicMock:
    client = MagicMock()
    client.refresh_via_refresh_token = AsyncMock(return_value=RefreshedToken("refreshed-a", "1200"))
    client.acquire_via_authorization_code = AsyncMock(return_value=ACQUIRED)
    return client


class TestReadCache:
    """Tests for reading the cached credential."""

    def test_empty(self) -> None:
        assert read_cached_credential(MemorySettings()) is None

    def test_without_refresh_token(self) -> None:
        assert read_cached_credential(MemorySettings('{"userid":"alice"}')) is None

    def test_volatile_fields_dropped(self) -> None:
        blob = '{"access_token":"stale","expires_in":"5","refresh_token":"r"}'
        cached = read_cached_credential(MemorySettings(blob))
        assert cached is not None
        assert cached.access_token is None
        assert cached.expires_in is None
        assert cached.refresh_token == "r"

    def test_corrupt(self) -> None:
        with pytest.raises(FatalStartupError):
            read_cached_credential(MemorySettings("not json at all"))


class TestBootstrap:
    """Tests for bootstrap_credentials."""

    @pytest.mark.asyncio
    async def test_cached_refresh_succeeds(self, auth: MagicMock) -> None:
        settings = MemorySettings(CACHED)
        store = TokenStore()

        credential = await bootstrap_credentials(auth, store, settings)

        assert credential.access_token == "refreshed-a"
        assert credential.refresh_token == "cached-r"
        assert store.read() == credential
        auth.acquire_via_authorization_code.assert_not_awaited()
        assert settings.saves == []

    @pytest.mark.asyncio
    async def test_cached_refresh_fails_falls_back(self, auth: MagicMock) -> None:
        auth.refresh_via_refresh_token.side_effect = AuthRefreshError("revoked", status=401)
        settings = MemorySettings(CACHED)
        store = TokenStore()

        credential = await bootstrap_credentials(auth, store, settings)

        assert credential == ACQUIRED
        assert store.read().access_token == "fresh-a"
        auth.acquire_via_authorization_code.assert_awaited_once()
        assert len(settings.saves) == 1

    @pytest.mark.asyncio
    async def test_no_cache_acquires_and_saves(self, auth: MagicMock) -> None:
        settings = MemorySettings()
        store = TokenStore()

        await bootstrap_credentials(auth, store, settings)

        auth.refresh_via_refresh_token.assert_not_awaited()
        assert store.is_ready
        saved = orjson.loads(settings.saves[0])
        assert saved["refresh_token"] == "fresh-r"
        assert saved["access_token"] is None
        assert saved["expires_in"] is None

    @pytest.mark.asyncio
    async def test_acquire_failure_is_fatal(self, auth: MagicMock) -> None:
        auth.acquire_via_authorization_code.side_effect = FatalStartupError("denied")
        settings = MemorySettings()
        store = TokenStore()

        with pytest.raises(FatalStartupError):
            await bootstrap_credentials(auth, store, settings)

        assert not store.is_ready
        assert settings.saves == []
