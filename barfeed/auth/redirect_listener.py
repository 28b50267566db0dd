"""
Loopback listener for the OAuth authorization-code redirect.

Opens the authorize URL in the user's browser and serves `redirect_uri`
until the broker redirects back with a one-time ``code`` query parameter.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from typing import Callable, Optional, Protocol
from urllib.parse import urlparse

from aiohttp import web

from barfeed.data.live.errors import FatalStartupError

logger = logging.getLogger(__name__)

CLOSE_WINDOW_HTML = "<html><body><script>window.open('','_self').close();</script></body></html>"


class AuthorizationCodeProvider(Protocol):
    async def obtain_code(self, authorize_url: str) -> str: ...

    """
    Deliver a one-time authorization code for `authorize_url`.
    Raises FatalStartupError when no code can be obtained.
    """


class LoopbackCodeProvider:
    """
    Captures the authorization code on a local aiohttp server.

    The listener is started before the browser is opened so the redirect
    cannot arrive before anyone is listening.
    """

    def __init__(
        self,
        redirect_uri: str,
        timeout_s: Optional[float] = None,
        open_browser: Callable[[str], object] = webbrowser.open,
    ) -> None:
        parsed = urlparse(redirect_uri)
        self._host = parsed.hostname or "localhost"
        self._port = parsed.port or 80
        self._path = parsed.path or "/"
        self._timeout_s = timeout_s
        self._open_browser = open_browser
        self._code: Optional[asyncio.Future[str]] = None

    async def obtain_code(self, authorize_url: str) -> str:
        self._code = asyncio.get_running_loop().create_future()

        app = web.Application()
        app.router.add_get(self._path, self._handle_redirect)
        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)

        try:
            await site.start()
            logger.info(f"Waiting for OAuth redirect on {self._host}:{self._port}{self._path}")
            self._open_browser(authorize_url)
            return await asyncio.wait_for(self._code, timeout=self._timeout_s)
        except asyncio.TimeoutError as e:
            raise FatalStartupError(
                "Timed out waiting for the authorization code",
                component="LoopbackCodeProvider",
            ) from e
        except OSError as e:
            raise FatalStartupError(
                f"Cannot listen on {self._host}:{self._port}: {e}",
                component="LoopbackCodeProvider",
            ) from e
        finally:
            await runner.cleanup()

    async def _handle_redirect(self, request: web.Request) -> web.Response:
        code = request.query.get("code")
        if self._code is not None and not self._code.done():
            if code:
                self._code.set_result(code)
            else:
                error = request.query.get("error", "missing code parameter")
                self._code.set_exception(
                    FatalStartupError(
                        f"Authorization redirect carried no code: {error}",
                        component="LoopbackCodeProvider",
                    )
                )
        return web.Response(text=CLOSE_WINDOW_HTML, content_type="text/html")
