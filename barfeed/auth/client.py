"""
OAuth client for the TradeStation token endpoint.

Two exchanges share one endpoint (`{host}/security/authorize`, form-encoded):
- authorization code -> full Credential (startup only; failures are fatal)
- refresh token -> new access token + expiry (background; failures are retried)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import urlencode

import aiohttp
from pydantic import ValidationError

from barfeed.auth.redirect_listener import AuthorizationCodeProvider
from barfeed.auth.token_store import Credential, RefreshedToken
from barfeed.data.live.config import AuthConfig
from barfeed.data.live.errors import AuthRefreshError, FatalStartupError

logger = logging.getLogger(__name__)


class AuthClient:
    """
    Performs the OAuth exchanges against the broker.

    Usage:
        client = AuthClient(config, code_provider=LoopbackCodeProvider(config.redirect_uri))
        credential = await client.acquire_via_authorization_code()
        refreshed = await client.refresh_via_refresh_token(credential)
    """

    def __init__(
        self,
        config: AuthConfig,
        code_provider: Optional[AuthorizationCodeProvider] = None,
        name: str = "auth",
    ) -> None:
        self._config = config
        self._code_provider = code_provider
        self._name = name

    @property
    def config(self) -> AuthConfig:
        return self._config

    def authorize_url(self) -> str:
        """Browser URL of the authorize endpoint."""
        params = {
            "client_id": self._config.client_id,
            "response_type": "code",
            "redirect_uri": self._config.redirect_uri,
        }
        if self._config.audience:
            params["audience"] = self._config.audience
        if self._config.scope:
            params["scope"] = self._config.scope
        return f"{self._config.host}/authorize?{urlencode(params)}"

    async def acquire_via_authorization_code(self) -> Credential:
        """
        Run the interactive flow: obtain a code, then exchange it.

        Raises:
            FatalStartupError: If no code is delivered or the exchange fails
        """
        if self._code_provider is None:
            raise FatalStartupError(
                "No authorization code provider configured",
                component="AuthClient",
            )

        logger.info(f"[{self._name}] Starting authorization-code flow")
        code = await self._code_provider.obtain_code(self.authorize_url())
        return await self.exchange_code(code)

    async def exchange_code(self, code: str) -> Credential:
        """
        Exchange a one-time authorization code for a Credential.

        Raises:
            FatalStartupError: On non-2xx, transport errors, timeouts or an unparsable body
        """
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": self._config.client_id,
            "redirect_uri": self._config.redirect_uri,
            "client_secret": self._config.client_secret,
        }

        try:
            status, body = await self._post_form(form)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FatalStartupError(
                f"Authorization code exchange failed: {e}",
                component="AuthClient",
            ) from e

        if not 200 <= status < 300:
            logger.error(f"[{self._name}] Authorization code exchange rejected: status={status}")
            raise FatalStartupError(
                "Authorization code exchange rejected",
                status=status,
                component="AuthClient",
            )

        try:
            credential = Credential.from_response(body)
        except ValidationError as e:
            raise FatalStartupError(
                f"Unparsable token response: {e}",
                status=status,
                component="AuthClient",
            ) from e

        if not credential.access_token or not credential.refresh_token:
            raise FatalStartupError(
                "Token response lacks access_token or refresh_token",
                status=status,
                component="AuthClient",
            )

        logger.info(f"[{self._name}] Authorization code exchanged (userid={credential.userid})")
        return credential

    async def refresh_via_refresh_token(self, current: Credential) -> RefreshedToken:
        """
        Exchange the refresh token for a new access token.

        The refresh token itself is never replaced by this path.

        Raises:
            AuthRefreshError: On any failure; the caller must leave the TokenStore untouched
        """
        if not current.refresh_token:
            raise AuthRefreshError("No refresh token available", component="AuthClient")

        form = {
            "grant_type": "refresh_token",
            "client_id": self._config.client_id,
            "client_secret": self._config.client_secret,
            "refresh_token": current.refresh_token,
            "response_type": "token",
        }

        try:
            status, body = await self._post_form(form)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise AuthRefreshError(f"Refresh request failed: {e}", component="AuthClient") from e

        if not 200 <= status < 300:
            raise AuthRefreshError("Refresh rejected", status=status, component="AuthClient")

        try:
            renewed = Credential.from_response(body)
        except ValidationError as e:
            raise AuthRefreshError(
                f"Unparsable refresh response: {e}", status=status, component="AuthClient"
            ) from e

        if not renewed.access_token:
            raise AuthRefreshError(
                "Refresh response lacks access_token", status=status, component="AuthClient"
            )

        logger.debug(f"[{self._name}] Access token refreshed (expires_in={renewed.expires_in})")
        return RefreshedToken(access_token=renewed.access_token, expires_in=renewed.expires_in)

    async def _post_form(self, form: dict[str, str]) -> tuple[int, str]:
        """POST a form-encoded body to the token endpoint; return (status, body)."""
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout_s)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self._config.token_url, data=form) as response:
                return response.status, await response.text()
