import pytest

from barfeed.auth.token_store import Credential, TokenStore
from barfeed.data.live.config import StreamConfig


@pytest.fixture
def stream_config() -> StreamConfig:
    return StreamConfig(
        host="https://sim.api.tradestation.com/v3",
        reconnect_delay_s=0.0,
        max_consecutive_timeouts=10,
    )


@pytest.fixture
def token_store() -> TokenStore:
    return TokenStore(
        Credential(
            access_token="access-1",
            expires_in="1200",
            refresh_token="refresh-1",
            token_type="Bearer",
            userid="user",
        )
    )
