from __future__ import annotations

from typing import Optional


class SignalBridgeError(Exception):
    """Base class for errors raised by the signal bridge."""


class TransientSourceError(SignalBridgeError):
    """A message source call failed in a way that is worth retrying."""

    def __init__(self, message: str, *, channel_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.channel_id = channel_id


class ValidationError(SignalBridgeError):
    """A message parsed into a signal that is not economically consistent."""


class MappingError(SignalBridgeError):
    """Symbol mapping rejected a parsed symbol (excluded or not allowed)."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"Symbol {symbol} {reason}")
        self.symbol = symbol
        self.reason = reason


class WriteTimeoutError(SignalBridgeError):
    """The EA file lock could not be acquired in time; the write was abandoned."""


class FatalExhaustionError(SignalBridgeError):
    """Reconnection attempts were exhausted and monitoring was stopped."""
