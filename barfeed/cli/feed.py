"""
CLI entrypoint streaming realtime bars for a list of futures instruments.

Usage: barfeed --config configs/feed.toml --ticker ESZ24 --ticker NQZ24

Options:
  --config FILE         Feed TOML file; defaults apply when omitted
  --ticker TEXT         Instrument to stream; repeatable, overrides the config list
  --log-level TEXT      Root log level (default: INFO)

Client credentials come from BARFEED_SECRET_CLIENT_ID / BARFEED_SECRET_CLIENT_SECRET.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from barfeed.adapters.env_provider import MissingSecretError
from barfeed.adapters.session_log import session_log_factory
from barfeed.adapters.settings_store import FileSettingsStore
from barfeed.auth.bootstrap import bootstrap_credentials
from barfeed.auth.client import AuthClient
from barfeed.auth.redirect_listener import LoopbackCodeProvider
from barfeed.auth.scheduler import RefreshScheduler
from barfeed.auth.token_store import TokenStore
from barfeed.config.config_loader import ConfigLoader
from barfeed.data.live.config import FeedConfig
from barfeed.data.live.errors import ConfigurationError, FatalStartupError
from barfeed.data.live.supervisor import SessionSupervisor
from barfeed.types.types import StreamingBar, Ticker

logger = logging.getLogger("barfeed")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="barfeed", description="Stream realtime bars")
    parser.add_argument(
        "--config",
        help="Feed TOML file. Defaults apply when omitted.",
    )
    parser.add_argument(
        "--ticker",
        dest="tickers",
        action="append",
        help="Instrument symbol, e.g. ESZ24. Repeat for several.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Root log level.",
    )
    return parser.parse_args(argv)


async def _print_bar(bar: StreamingBar) -> None:
    logger.info(str(bar))


async def _run_feed(config: FeedConfig) -> None:
    store = TokenStore()
    supervisor = SessionSupervisor(
        tickers=[Ticker(t) for t in config.tickers],
        config=config.stream,
        store=store,
        on_bar=_print_bar,
        telemetry_factory=session_log_factory(config.stream.log_dir),
    )
    auth = AuthClient(
        config.auth,
        code_provider=LoopbackCodeProvider(config.auth.redirect_uri),
    )
    settings = FileSettingsStore(config.settings_path)

    await bootstrap_credentials(auth, store, settings)

    scheduler = RefreshScheduler(auth, store)
    scheduler.start()

    supervisor.start_all()
    try:
        results = await supervisor.wait()
        for symbol, outcome in results.items():
            logger.info(f"{symbol}: {outcome!r}")
    finally:
        await supervisor.stop()
        await scheduler.stop()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    loader = ConfigLoader()
    try:
        config = loader.load_feed_config(args.config, tickers=args.tickers)
    except (FileNotFoundError, MissingSecretError, ConfigurationError) as exc:
        print(f"[!] {exc}")
        return 1

    try:
        asyncio.run(_run_feed(config))
    except KeyboardInterrupt:
        print("Interrupted by user.")
        return 130
    except (FatalStartupError, ConfigurationError) as exc:
        print(f"[!] Startup failed: {exc}")
        return 1

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
