"""
Startup credential policy.

Runs once, before any stream session starts:
1. Read the cached credential (only the long-lived fields are cached).
2. If there is one, refresh it immediately.
3. If there is none, or the refresh fails, run the interactive
   authorization-code flow and cache the result.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from barfeed.auth.client import AuthClient
from barfeed.auth.token_store import Credential, TokenStore
from barfeed.data.live.errors import AuthRefreshError, FatalStartupError
from barfeed.ports.settings_store import SettingsStore

logger = logging.getLogger(__name__)


def read_cached_credential(settings: SettingsStore) -> Optional[Credential]:
    """
    Load the cached credential with access_token and expires_in cleared.

    Raises:
        FatalStartupError: If the cache exists but cannot be deserialized
    """
    blob = settings.get_setting()
    if not blob:
        return None
    try:
        cached = Credential.from_response(blob)
    except ValidationError as e:
        raise FatalStartupError(
            f"Cached credential is unreadable: {e}", component="bootstrap"
        ) from e
    if not cached.refresh_token:
        return None
    return cached.for_cache()


def save_credential(settings: SettingsStore, credential: Credential) -> None:
    settings.save_setting(credential.for_cache().model_dump_json())


async def bootstrap_credentials(
    auth: AuthClient,
    store: TokenStore,
    settings: SettingsStore,
) -> Credential:
    """
    Guarantee the TokenStore holds a usable credential.

    Raises:
        FatalStartupError: If no usable credential can be obtained
    """
    cached = read_cached_credential(settings)

    if cached is not None:
        logger.info("Found cached credential, refreshing access token")
        try:
            refreshed = await auth.refresh_via_refresh_token(cached)
        except AuthRefreshError as e:
            logger.warning(f"Cached refresh token rejected, re-authorizing: {e}")
        else:
            credential = cached.with_refresh(refreshed)
            store.update_all(credential)
            return credential
    else:
        logger.info("No cached credential, starting authorization")

    credential = await auth.acquire_via_authorization_code()
    save_credential(settings, credential)
    store.update_all(credential)
    return credential
