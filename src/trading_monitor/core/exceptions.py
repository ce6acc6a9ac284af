from __future__ import annotations

from typing import Any, Mapping


class TradingMonitorError(Exception):
    """Base error for the trading monitor."""


class ConfigError(TradingMonitorError):
    pass


class ValidationError(TradingMonitorError):
    """A payload is missing a field needed to identify the record."""

    def __init__(self, reason: str, payload: Mapping[str, Any] | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.payload: dict[str, Any] = dict(payload or {})


class PersistenceError(TradingMonitorError):
    pass
