"""JSON Lines session log adapter.

Implements the Telemetry port for stream sessions: every received line and
every state transition is appended, one JSON object per line, to a
per-instrument file. Secret-looking fields are redacted before writing.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping

import orjson

from barfeed.ports.telemetry import Telemetry

_BEARER = re.compile(r"(Bearer\s+)\S+", re.IGNORECASE)
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")

SessionLogFactory = Callable[[str], Telemetry]


class SessionLog:
    _REDACTION_TOKEN = "***REDACTED***"
    _DEFAULT_SECRET_KEYS = frozenset(
        {
            "access_token",
            "refresh_token",
            "client_secret",
            "authorization",
            "secret",
            "token",
        }
    )

    def __init__(
        self,
        session: str,
        sink_path: Path,
        secret_keys: Iterable[str] = _DEFAULT_SECRET_KEYS,
    ) -> None:
        self._session = str(session)
        self._sink_path = sink_path if isinstance(sink_path, Path) else Path(sink_path)
        self._secret_keys = frozenset(secret_keys)
        self._sink_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def sink_path(self) -> Path:
        return self._sink_path

    def log(self, event: str, **fields: Any) -> None:
        sanitized_fields, redacted = self._sanitize_fields(fields)

        record: dict[str, Any] = {
            "event": event,
            "ts_utc": datetime.now(timezone.utc).isoformat(),
            "session": self._session,
            **sanitized_fields,
        }
        if redacted:
            record["redacted_fields"] = sorted(redacted)

        self._write_record(record)

    def _sanitize_fields(self, fields: Mapping[str, Any]) -> tuple[dict[str, Any], set[str]]:
        sanitized: dict[str, Any] = {}
        redacted: set[str] = set()
        for key, value in fields.items():
            if key in self._secret_keys:
                sanitized[key] = self._REDACTION_TOKEN
                redacted.add(key)
            elif isinstance(value, str):
                sanitized[key] = _BEARER.sub(rf"\g<1>{self._REDACTION_TOKEN}", value)
            else:
                sanitized[key] = value

        return sanitized, redacted

    def _write_record(self, record: Mapping[str, Any]) -> None:
        payload = orjson.dumps(record, option=orjson.OPT_SORT_KEYS, default=str)
        with self._sink_path.open("ab") as handle:
            handle.write(payload + b"\n")


def session_log_factory(log_dir: Path) -> SessionLogFactory:
    """Return a factory creating `{log_dir}/{symbol}.events.jsonl` sinks."""

    def factory(symbol: str) -> Telemetry:
        return SessionLog(
            session=symbol,
            sink_path=log_dir / f"{_UNSAFE_FILENAME_CHARS.sub('_', symbol)}.events.jsonl",
        )

    return factory


class NullTelemetry:
    """Discards every event."""

    def log(self, event: str, **fields: Any) -> None:
        return None

