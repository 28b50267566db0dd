"""Telemetry Port Interface.

Contract: Append structured events to a per-session, append-only sink.
"""
from __future__ import annotations
from typing import Protocol, Any

class Telemetry(Protocol):
    def log(self, event: str, **fields: Any) -> None: ...
