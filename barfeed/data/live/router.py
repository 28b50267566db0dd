"""
Line classification for the bar-chart stream.

The stream body is newline-delimited: heartbeat objects, bar objects, or
plain-text lines starting with ``ERROR``. Classification only looks at the
prefix; parsing is left to the handlers.
"""

from __future__ import annotations

from typing import Optional

from barfeed.data.live.types import LineType

ERROR_PREFIX = "ERROR"
HEARTBEAT_PREFIX = '{"Heartbeat":'


def classify_line(line: Optional[str]) -> LineType:
    """
    Classify one raw line.

    Args:
        line: Decoded line without the trailing newline, or None at end of stream
    """
    if line is None:
        return LineType.END_OF_STREAM
    if line.startswith(ERROR_PREFIX):
        return LineType.ERROR
    if line.startswith(HEARTBEAT_PREFIX):
        return LineType.HEARTBEAT
    return LineType.DATA
