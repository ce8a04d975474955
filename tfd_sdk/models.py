"""Immutable data models for the Mini-TFD haptic controller.

All models are frozen dataclasses so they can be handed between the UI,
the session dispatcher and transport threads without copying.
These models serve as the contract between transport, protocol, session and
application layers.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from .errors import ConfigurationError, UnknownModeError


class HapticMode(Enum):
    """Haptic behaviours understood by the firmware."""
    NONE = "none"
    SOFT_DETENTS = "soft-detents"
    MEDIUM_DETENTS = "medium-detents"
    ROUGH_DETENTS = "rough-detents"
    CLOCKWISE = "clockwise"
    COUNTERCLOCKWISE = "counterclockwise"
    INCREASED_TORQUE = "increased-torque"
    LOCK = "lock"
    ENDSTOPS = "endstops"
    CENTER_DETENT = "center-detent"
    PROPORTIONAL_CONTROL = "proportional-control"
    INERTIAL_CONTROL = "inertial-control"
    LATCH = "latch"

    @classmethod
    def parse(cls, value: Any) -> HapticMode:
        """Coerce a mode or its wire spelling, raising UnknownModeError."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownModeError(value) from None


class EndstopStyle(Enum):
    """Feel applied between the endstops."""
    NONE = "none"
    PROPORTIONAL = "proportional"
    SOFT = "soft"
    MEDIUM = "medium"
    ROUGH = "rough"
    CENTER = "center"


class PollStrategy(Enum):
    """How the poller asks for telemetry."""
    COMBINED = "combined"      # get all
    SEQUENTIAL = "sequential"  # get angle, get vel, get torque


@dataclass(frozen=True)
class HapticConfig:
    """Desired device behaviour.

    Attributes:
        mode: Haptic mode
        torque: Constant torque magnitude (increased-torque)
        stiffness: Proportional gain or inertia factor
        target_angle: Setpoint in degrees (proportional-control)
        endstop_turns: Lock-to-lock travel in revolutions
        endstop_mode: Feel between the endstops
        is_sticky: Latch at the endstop boundary (endstops only)
    """
    mode: HapticMode = HapticMode.NONE
    torque: float = 0.2
    stiffness: float = 0.8
    target_angle: float = 0.0
    endstop_turns: float = 2.5
    endstop_mode: EndstopStyle = EndstopStyle.NONE
    is_sticky: bool = False

    @property
    def endstop_min_angle(self) -> float:
        return -180.0 * self.endstop_turns

    @property
    def endstop_max_angle(self) -> float:
        return 180.0 * self.endstop_turns

    def update(self, **changes: Any) -> HapticConfig:
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dict using wire spellings."""
        return {
            "mode": self.mode.value,
            "torque": self.torque,
            "stiffness": self.stiffness,
            "targetAngle": self.target_angle,
            "endstopTurns": self.endstop_turns,
            "endstopMinAngle": self.endstop_min_angle,
            "endstopMaxAngle": self.endstop_max_angle,
            "endstopMode": self.endstop_mode.value,
            "isSticky": self.is_sticky,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> HapticConfig:
        """Load from a dict as produced by ``to_dict``.

        Missing keys fall back to defaults. Derived endstop angles are ignored.
        """
        defaults = cls()
        try:
            endstop_mode = EndstopStyle(data.get("endstopMode", defaults.endstop_mode.value))
        except ValueError:
            raise ConfigurationError(f"Unknown endstop mode: {data.get('endstopMode')!r}") from None
        return cls(
            mode=HapticMode.parse(data.get("mode", defaults.mode.value)),
            torque=float(data.get("torque", defaults.torque)),
            stiffness=float(data.get("stiffness", defaults.stiffness)),
            target_angle=float(data.get("targetAngle", defaults.target_angle)),
            endstop_turns=float(data.get("endstopTurns", defaults.endstop_turns)),
            endstop_mode=endstop_mode,
            is_sticky=bool(data.get("isSticky", defaults.is_sticky)),
        )


@dataclass(frozen=True)
class TelemetrySample:
    """Device-reported readings. Any field may be absent.

    Attributes:
        angle: Shaft angle in degrees
        velocity: Angular velocity in degrees per second
        torque: Motor torque in Nm
    """
    angle: Optional[float] = None
    velocity: Optional[float] = None
    torque: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return self.angle is None and self.velocity is None and self.torque is None

    def merge(self, other: TelemetrySample) -> TelemetrySample:
        """Return a sample where fields present in ``other`` win."""
        return TelemetrySample(
            angle=other.angle if other.angle is not None else self.angle,
            velocity=other.velocity if other.velocity is not None else self.velocity,
            torque=other.torque if other.torque is not None else self.torque,
        )


class SessionPhase(Enum):
    """Connection lifecycle phase.

    CONNECTED covers both the grace period (``responding`` False) and the
    responsive state. DEGRADED means a liveness judgment failed.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DEGRADED = "degraded"
    RECONNECTING = "reconnecting"


def channel_open(phase: SessionPhase, reconnect_exhausted: bool = False) -> bool:
    """Whether a session in ``phase`` holds an open transport."""
    if reconnect_exhausted:
        return False
    return phase in (SessionPhase.CONNECTED, SessionPhase.DEGRADED)


@dataclass(frozen=True)
class SessionState:
    """Immutable snapshot of a device session."""
    phase: SessionPhase = SessionPhase.DISCONNECTED
    port: Optional[str] = None
    baudrate: Optional[int] = None
    responding: bool = False
    last_valid_response_at: Optional[float] = None
    reconnect_attempts: int = 0
    reconnect_exhausted: bool = False
    polling: bool = True
    poll_interval_ms: int = 30
    telemetry: TelemetrySample = field(default_factory=TelemetrySample)

    @property
    def is_open(self) -> bool:
        """Whether the transport is open.

        True for CONNECTED and DEGRADED, except after reconnection gave up
        (DEGRADED with the transport closed).
        """
        return channel_open(self.phase, self.reconnect_exhausted)


@dataclass(frozen=True)
class DeviceProfile:
    """Capability descriptor for one device type.

    Attributes:
        name: Device type identifier
        modes: Haptic modes the device supports
        poll_strategy: Telemetry query style used by the poller
    """
    name: str
    modes: FrozenSet[HapticMode]
    poll_strategy: PollStrategy = PollStrategy.COMBINED

    def supports(self, mode: HapticMode) -> bool:
        return mode in self.modes

    def sanitize(self, config: HapticConfig) -> HapticConfig:
        """Fall back to mode ``none`` when the config's mode is unsupported."""
        if self.supports(config.mode):
            return config
        return config.update(mode=HapticMode.NONE)


KNOB = DeviceProfile(
    name="knob",
    modes=frozenset({
        HapticMode.NONE,
        HapticMode.CENTER_DETENT,
        HapticMode.ROUGH_DETENTS,
        HapticMode.MEDIUM_DETENTS,
        HapticMode.SOFT_DETENTS,
        HapticMode.CLOCKWISE,
        HapticMode.COUNTERCLOCKWISE,
        HapticMode.INCREASED_TORQUE,
        HapticMode.LOCK,
        HapticMode.ENDSTOPS,
        HapticMode.PROPORTIONAL_CONTROL,
        HapticMode.LATCH,
    }),
)

STEERING_WHEEL = DeviceProfile(
    name="steering-wheel",
    modes=frozenset({
        HapticMode.NONE,
        HapticMode.CENTER_DETENT,
        HapticMode.INCREASED_TORQUE,
        HapticMode.ENDSTOPS,
        HapticMode.PROPORTIONAL_CONTROL,
        HapticMode.INERTIAL_CONTROL,
    }),
)

GENERIC = DeviceProfile(name="generic", modes=frozenset(HapticMode))


@dataclass(frozen=True)
class PortInfo:
    """One serial port as reported by the transport.

    Attributes:
        path: Port name to open (e.g. 'COM3', '/dev/ttyACM0')
        manufacturer: USB manufacturer string, if available
        product_id: USB product id as a hex string, if available
        vendor_id: USB vendor id as a hex string, if available
        serial_number: USB serial string, if available
        friendly_name: Human-readable description, if available
    """
    path: str
    manufacturer: Optional[str] = None
    product_id: Optional[str] = None
    vendor_id: Optional[str] = None
    serial_number: Optional[str] = None
    friendly_name: Optional[str] = None

    @property
    def device_id(self) -> Optional[str]:
        """Stable identifier used to remember the preferred device.

        Prefers the USB serial number; falls back to vendor:product.
        """
        if self.serial_number:
            return self.serial_number
        if self.product_id:
            return f"{self.vendor_id or ''}:{self.product_id}"
        return None
