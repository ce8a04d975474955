"""Error taxonomy for the Mini-TFD SDK.

Every condition the session reports to the UI is one of these classes.
The message is ``str(error)``; the classification is ``error.kind``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(Enum):
    """Classification attached to every reported error."""
    TRANSPORT = "transport"
    DECODE = "decode"
    NOT_RESPONDING = "not_responding"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    CONFIGURATION = "configuration"


class TfdError(RuntimeError):
    """Base class for all SDK errors."""
    kind = ErrorKind.TRANSPORT


class TransportError(TfdError):
    """Open, write or close on the transport failed."""
    kind = ErrorKind.TRANSPORT


class ProtocolDecodeWarning(TfdError):
    """Malformed numeric field in an inbound line. Logged, never surfaced."""
    kind = ErrorKind.DECODE


class DeviceNotRespondingError(TfdError):
    """No recognised line arrived within the liveness timeout."""
    kind = ErrorKind.NOT_RESPONDING


class ReconnectExhaustedError(TfdError):
    """Automatic reconnection gave up; a manual connect is required."""
    kind = ErrorKind.RECONNECT_EXHAUSTED


class ConfigurationError(TfdError, ValueError):
    """Invalid configuration. Never sent over the wire."""
    kind = ErrorKind.CONFIGURATION


class UnknownModeError(ConfigurationError):
    """Raised when a haptic mode has no encoding."""

    def __init__(self, mode: Any):
        super().__init__(f"Unknown haptic mode: {mode!r}")
        self.mode = mode
