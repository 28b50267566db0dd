from unittest.mock import AsyncMock, MagicMock

import pytest

from barfeed.cli import feed
from barfeed.data.live.config import FeedConfig
from barfeed.data.live.errors import ConfigurationError, FatalStartupError


@pytest.fixture
def secrets(monkeypatch):
    monkeypatch.setenv("BARFEED_SECRET_CLIENT_ID", "client-key")
    monkeypatch.setenv("BARFEED_SECRET_CLIENT_SECRET", "client-secret")


def test_parse_args_repeatable_ticker():
    args = feed._parse_args(["--ticker", "ESZ24", "--ticker", "NQZ24", "--log-level", "DEBUG"])
    assert args.tickers == ["ESZ24", "NQZ24"]
    assert args.log_level == "DEBUG"
    assert args.config is None


def test_main_runs_feed_with_tickers(monkeypatch, secrets):
    run_feed = AsyncMock()
    monkeypatch.setattr(feed, "_run_feed", run_feed)

    assert feed.main(["--ticker", "ESZ24"]) == 0

    config = run_feed.await_args.args[0]
    assert isinstance(config, FeedConfig)
    assert config.tickers == ("ESZ24",)


def test_main_missing_secrets(monkeypatch, capsys):
    monkeypatch.delenv("BARFEED_SECRET_CLIENT_ID", raising=False)
    monkeypatch.delenv("BARFEED_SECRET_CLIENT_SECRET", raising=False)
    monkeypatch.setattr(feed, "_run_feed", AsyncMock())

    assert feed.main([]) == 1
    assert "[!]" in capsys.readouterr().out


def test_main_missing_config_file(tmp_path, secrets, capsys):
    assert feed.main(["--config", str(tmp_path / "absent.toml")]) == 1
    assert "Config file not found" in capsys.readouterr().out


def test_main_startup_failure(monkeypatch, secrets, capsys):
    monkeypatch.setattr(
        feed, "_run_feed", AsyncMock(side_effect=FatalStartupError("no credential"))
    )

    assert feed.main([]) == 1
    assert "Startup failed" in capsys.readouterr().out



@pytest.mark.parametrize(
    "tickers, message",
    [
        (["ESZ24", "ESZ24"], "Duplicate tickers"),
        (["ESZ24", "   "], "non-empty"),
    ],
)
def test_main_rejects_bad_tickers_before_login(monkeypatch, secrets, capsys, tickers, message):
    bootstrap = AsyncMock()
    monkeypatch.setattr(feed, "bootstrap_credentials", bootstrap)
    argv = [arg for t in tickers for arg in ("--ticker", t)]

    assert feed.main(argv) == 1

    out = capsys.readouterr().out
    assert "[!]" in out
    assert message in out
    bootstrap.assert_not_awaited()


def test_supervisor_built_before_login(monkeypatch, secrets, capsys):
    bootstrap = AsyncMock()
    monkeypatch.setattr(feed, "bootstrap_credentials", bootstrap)
    monkeypatch.setattr(
        feed, "SessionSupervisor", MagicMock(side_effect=ConfigurationError("No tickers configured"))
    )

    assert feed.main(["--ticker", "ESZ24"]) == 1

    assert "[!] Startup failed: No tickers configured" in capsys.readouterr().out
    bootstrap.assert_not_awaited()
