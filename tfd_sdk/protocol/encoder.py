"""Command encoder for the Mini-TFD line protocol.

Converts haptic configurations and queries to newline-terminated ASCII lines.
Pure functions with no side effects.
"""
from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import List

from ..errors import ConfigurationError, UnknownModeError
from ..models import EndstopStyle, HapticConfig, HapticMode

ZERO_COMMAND = "set zero\n"

_ONE_DECIMAL = Decimal("0.1")

# Modes whose line carries no parameters
_FIXED_MODE_LINES = {
    HapticMode.NONE: "set normal\n",
    HapticMode.SOFT_DETENTS: "set detent:ultra\n",
    HapticMode.MEDIUM_DETENTS: "set detent:fine\n",
    HapticMode.ROUGH_DETENTS: "set detent:coarse\n",
    HapticMode.CLOCKWISE: "set cw\n",
    HapticMode.COUNTERCLOCKWISE: "set ccw\n",
    HapticMode.LOCK: "set constant:1.0\n",
    HapticMode.CENTER_DETENT: "set detent:center\n",
    HapticMode.LATCH: "set latch\n",
}

_ENDSTOP_COMMANDS = {
    EndstopStyle.NONE: "endstops",
    EndstopStyle.PROPORTIONAL: "endstops-proportional",
    EndstopStyle.SOFT: "endstops-ultra",
    EndstopStyle.MEDIUM: "endstops-fine",
    EndstopStyle.ROUGH: "endstops-coarse",
    EndstopStyle.CENTER: "endstops-center",
}


class Query(Enum):
    """Telemetry requests. Values are the wire lines."""
    ALL = "get all\n"
    ANGLE = "get angle\n"
    VELOCITY = "get vel\n"
    TORQUE = "get torque\n"


class CommandEncoder:
    """Encoder for the Mini-TFD command protocol.

    Every method returns complete lines including the trailing newline.
    """

    @staticmethod
    def encode_config(config: HapticConfig) -> List[str]:
        """Encode a configuration as the ordered lines to transmit.

        The mode line comes first; ``endstops`` is followed by the sticky line.

        Raises:
            UnknownModeError: If the mode has no encoding
            ConfigurationError: If a numeric parameter is not finite

        Examples:
            >>> CommandEncoder.encode_config(HapticConfig(mode=HapticMode.CLOCKWISE))
            ['set cw\\n']
            >>> CommandEncoder.encode_config(HapticConfig(
            ...     mode=HapticMode.ENDSTOPS, endstop_turns=2.0,
            ...     endstop_mode=EndstopStyle.SOFT, is_sticky=True))
            ['set endstops-ultra:2.0\\n', 'set sticky:on\\n']
        """
        mode = HapticMode.parse(config.mode)
        lines = [CommandEncoder.encode_mode(config)]
        if mode is HapticMode.ENDSTOPS:
            lines.append(CommandEncoder.encode_sticky(config.is_sticky))
        return lines

    @staticmethod
    def encode_mode(config: HapticConfig) -> str:
        """Encode only the primary mode line."""
        mode = HapticMode.parse(config.mode)
        fmt = CommandEncoder.format_decimal

        fixed = _FIXED_MODE_LINES.get(mode)
        if fixed is not None:
            return fixed

        if mode is HapticMode.INCREASED_TORQUE:
            return f"set constant:{fmt(config.torque)}\n"
        if mode is HapticMode.PROPORTIONAL_CONTROL:
            return f"set proportional:{fmt(config.target_angle)},{fmt(config.stiffness)}\n"
        if mode is HapticMode.INERTIAL_CONTROL:
            return f"set inertial:{fmt(config.stiffness)}\n"
        if mode is HapticMode.ENDSTOPS:
            command = _ENDSTOP_COMMANDS.get(config.endstop_mode)
            if command is None:
                raise ConfigurationError(f"Unknown endstop mode: {config.endstop_mode!r}")
            return f"set {command}:{fmt(config.endstop_turns)}\n"

        raise UnknownModeError(mode)

    @staticmethod
    def encode_sticky(is_sticky: bool) -> str:
        return "set sticky:on\n" if is_sticky else "set sticky:off\n"

    @staticmethod
    def encode_query(query: Query) -> str:
        return query.value

    @staticmethod
    def encode_zero() -> str:
        """Zero the encoder position. Used for both reset and calibrate."""
        return ZERO_COMMAND

    @staticmethod
    def format_decimal(value: float) -> str:
        """Format with one decimal place, rounding halves away from zero.

        Rounds the shortest decimal representation of ``value``, so 0.35
        becomes '0.4' even though its binary value is slightly below 0.35.

        Raises:
            ConfigurationError: If value is NaN or infinite
        """
        value = float(value)
        if not math.isfinite(value):
            raise ConfigurationError(f"Parameter must be finite, got {value}")
        try:
            rounded = Decimal(repr(value)).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ConfigurationError(f"Parameter out of range: {value}") from None
        if rounded.is_zero():
            return "0.0"
        return format(rounded, "f")
