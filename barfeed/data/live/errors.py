"""
Custom exceptions for the live bar feed.

Exception hierarchy:
- LiveFeedError (base)
  - ConfigurationError: Invalid configuration
  - FatalStartupError: No usable credential, the process cannot proceed
  - AuthRefreshError: Refresh-token exchange failed (retried by the scheduler)
  - ConnectionError: HTTP stream could not be opened or was lost
  - MessageParseError: Invalid/malformed stream line
  - FatalStreamError: A session gave up after too many consecutive timeouts
"""

from __future__ import annotations

from typing import Any, Optional


class LiveFeedError(Exception):
    """Base exception for all live feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ConfigurationError(LiveFeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.field = field
        self.value = value
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        super().__init__(message, component=component, details=details)


class FatalStartupError(LiveFeedError):
    """Raised when no usable credential could be obtained at startup."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status = status
        details = details or {}
        if status is not None:
            details["status"] = status
        super().__init__(message, component=component, details=details)


class AuthRefreshError(LiveFeedError):
    """Raised when the refresh-token exchange fails."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status = status
        details = details or {}
        if status is not None:
            details["status"] = status
        super().__init__(message, component=component, details=details)


class ConnectionError(LiveFeedError):
    """Raised when the HTTP stream fails or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        reconnect_attempt: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        self.reconnect_attempt = reconnect_attempt
        details = details or {}
        if url:
            details["url"] = url
        details["reconnect_attempt"] = reconnect_attempt
        super().__init__(message, component=component, details=details)


class MessageParseError(LiveFeedError):
    """Raised when a stream line cannot be parsed."""

    def __init__(
        self,
        message: str,
        *,
        raw_data: Optional[str] = None,
        expected_type: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw_data = raw_data
        self.expected_type = expected_type
        details = details or {}
        if expected_type:
            details["expected_type"] = expected_type
        # Don't include raw_data in details to avoid log spam
        super().__init__(message, component=component, details=details)


class FatalStreamError(LiveFeedError):
    """Raised (through the completion signal) when a session gives up."""

    def __init__(
        self,
        message: str,
        *,
        symbol: Optional[str] = None,
        consecutive_timeouts: int = 0,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.symbol = symbol
        self.consecutive_timeouts = consecutive_timeouts
        details = details or {}
        if symbol:
            details["symbol"] = symbol
        details["consecutive_timeouts"] = consecutive_timeouts
        super().__init__(message, component=component, details=details)
