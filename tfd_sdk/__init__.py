"""Mini-TFD SDK - serial device session for the haptic knob and steering wheel."""

from .errors import (
    ConfigurationError,
    DeviceNotRespondingError,
    ErrorKind,
    ProtocolDecodeWarning,
    ReconnectExhaustedError,
    TfdError,
    TransportError,
    UnknownModeError,
)
from .models import (
    GENERIC,
    KNOB,
    STEERING_WHEEL,
    DeviceProfile,
    EndstopStyle,
    HapticConfig,
    HapticMode,
    PollStrategy,
    PortInfo,
    SessionPhase,
    SessionState,
    TelemetrySample,
)
from .protocol import CommandEncoder, ResponseDecoder
from .session import DevicePreferences, DeviceSession
from .transport import SerialTransport, Transport

__all__ = [
    "CommandEncoder",
    "ConfigurationError",
    "DeviceNotRespondingError",
    "DevicePreferences",
    "DeviceProfile",
    "DeviceSession",
    "EndstopStyle",
    "ErrorKind",
    "GENERIC",
    "HapticConfig",
    "HapticMode",
    "KNOB",
    "PollStrategy",
    "PortInfo",
    "ProtocolDecodeWarning",
    "ReconnectExhaustedError",
    "ResponseDecoder",
    "STEERING_WHEEL",
    "SerialTransport",
    "SessionPhase",
    "SessionState",
    "TelemetrySample",
    "TfdError",
    "Transport",
    "TransportError",
    "UnknownModeError",
]
