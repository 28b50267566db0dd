"""
Bar parsing for the bar-chart stream.

Turns one JSON line into a normalized StreamingBar. Numeric fields arrive
either as JSON numbers or as strings ("218.32"); missing counters default
to zero.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

import orjson

from barfeed.data.live.errors import MessageParseError
from barfeed.types.types import StreamingBar


def _safe_float(value: Any, field_name: str) -> float:
    """Safely convert a value to float."""
    if value is None:
        return 0.0
    try:
        if isinstance(value, float):
            return value
        return float(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid float value for {field_name}: {value}",
            expected_type="float",
        ) from e


def _safe_int(value: Any, field_name: str) -> int:
    """Safely convert a value to int."""
    if value is None:
        return 0
    try:
        return int(value)
    except (ValueError, TypeError) as e:
        raise MessageParseError(
            f"Invalid integer value for {field_name}: {value}",
            expected_type="int",
        ) from e


def _safe_bool(value: Any, field_name: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("true", "false"):
        return value.lower() == "true"
    raise MessageParseError(
        f"Invalid boolean value for {field_name}: {value}",
        expected_type="bool",
    )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError as e:
        raise MessageParseError(
            f"Invalid timestamp: {value}",
            expected_type="datetime",
        ) from e


class BarHandler:
    """
    Parses bar lines for one instrument.

    Tracks no state beyond the symbol; counters live with the session.
    """

    def __init__(self, symbol: str) -> None:
        self._symbol = symbol

    def parse(self, line: str, recv_ts: int) -> StreamingBar:
        """
        Parse a raw line into a StreamingBar.

        Raises:
            MessageParseError: If the line is not a JSON object or a field has the wrong type
        """
        try:
            data = orjson.loads(line)
        except orjson.JSONDecodeError as e:
            raise MessageParseError(
                f"Invalid JSON: {e}", raw_data=line, expected_type="bar"
            ) from e

        if not isinstance(data, dict):
            raise MessageParseError(
                f"Expected a JSON object, got {type(data).__name__}",
                raw_data=line,
                expected_type="bar",
            )

        epoch = data.get("Epoch")
        return StreamingBar(
            symbol=self._symbol,
            open=_safe_float(data.get("Open"), "Open"),
            high=_safe_float(data.get("High"), "High"),
            low=_safe_float(data.get("Low"), "Low"),
            close=_safe_float(data.get("Close"), "Close"),
            timestamp=_parse_timestamp(data.get("TimeStamp")),
            epoch=_safe_int(epoch, "Epoch") if epoch is not None else None,
            total_volume=_safe_int(data.get("TotalVolume"), "TotalVolume"),
            up_volume=_safe_int(data.get("UpVolume"), "UpVolume"),
            down_volume=_safe_int(data.get("DownVolume"), "DownVolume"),
            unchanged_volume=_safe_int(data.get("UnchangedVolume"), "UnchangedVolume"),
            total_ticks=_safe_int(data.get("TotalTicks"), "TotalTicks"),
            up_ticks=_safe_int(data.get("UpTicks"), "UpTicks"),
            down_ticks=_safe_int(data.get("DownTicks"), "DownTicks"),
            unchanged_ticks=_safe_int(data.get("UnchangedTicks"), "UnchangedTicks"),
            open_interest=_safe_int(data.get("OpenInterest"), "OpenInterest"),
            is_realtime=_safe_bool(data.get("IsRealtime"), "IsRealtime"),
            is_end_of_history=_safe_bool(data.get("IsEndOfHistory"), "IsEndOfHistory"),
            bar_status=data.get("BarStatus"),
            ts_recv=recv_ts,
        )
