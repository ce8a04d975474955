"""Response decoder for Mini-TFD serial communication.

Parses inbound lines into telemetry samples and acknowledgements.
Never raises on malformed input.
"""
from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple

from ..errors import ProtocolDecodeWarning
from ..models import TelemetrySample

logger = logging.getLogger(__name__)

ACK = "OK"

_COMBINED = re.compile(r"^ANGLE:([^,]*),VEL:([^,]*),TORQUE:(.*)$")
_SINGLE = re.compile(r"^(ANGLE|VEL|TORQUE):(.*)$")

_FIELD_NAMES = {"ANGLE": "angle", "VEL": "velocity", "TORQUE": "torque"}


class LineKind(Enum):
    """Shape of an inbound line."""
    COMBINED = "combined"
    SINGLE = "single"
    ACK = "ack"
    UNRECOGNIZED = "unrecognized"


@dataclass
class DecodedLine:
    """A classified inbound line.

    Attributes:
        kind: Shape the line matched
        sample: Parsed readings (empty for ACK and unrecognized lines)
        warnings: Decode warnings for fields that failed to parse
        raw: The trimmed line
    """
    kind: LineKind
    sample: TelemetrySample = field(default_factory=TelemetrySample)
    warnings: List[ProtocolDecodeWarning] = field(default_factory=list)
    raw: str = ""

    @property
    def is_heartbeat(self) -> bool:
        """Whether the line proves the device is alive.

        Any recognised shape counts, even if its numeric payload was bad.
        """
        return self.kind is not LineKind.UNRECOGNIZED


class ResponseDecoder:
    """Decoder for the Mini-TFD response protocol.

    Handles four line shapes:
    - ANGLE:<f>,VEL:<f>,TORQUE:<f> - Full telemetry
    - ANGLE:<f> / VEL:<f> / TORQUE:<f> - One reading
    - OK - Command acknowledgement
    - anything else - Unrecognised
    """

    @staticmethod
    def decode(line: str) -> DecodedLine:
        """Decode a single line.

        Args:
            line: Raw line from serial (with or without newline)

        Returns:
            DecodedLine describing the line

        Examples:
            >>> decoded = ResponseDecoder.decode("ANGLE:12.50,VEL:-3.20,TORQUE:0.75")
            >>> decoded.kind
            <LineKind.COMBINED: 'combined'>
            >>> decoded.sample
            TelemetrySample(angle=12.5, velocity=-3.2, torque=0.75)
        """
        try:
            return ResponseDecoder._decode(line)
        except Exception as e:
            logger.warning(f"Failed to decode line {line!r}: {e}")
            return DecodedLine(kind=LineKind.UNRECOGNIZED, raw=str(line))

    @staticmethod
    def _decode(line: str) -> DecodedLine:
        line = line.strip()

        if line == ACK:
            return DecodedLine(kind=LineKind.ACK, raw=line)

        warnings: List[ProtocolDecodeWarning] = []

        match = _COMBINED.match(line)
        if match:
            angle = ResponseDecoder._parse_field("ANGLE", match.group(1), warnings)
            velocity = ResponseDecoder._parse_field("VEL", match.group(2), warnings)
            torque = ResponseDecoder._parse_field("TORQUE", match.group(3), warnings)
            return DecodedLine(
                kind=LineKind.COMBINED,
                sample=TelemetrySample(angle=angle, velocity=velocity, torque=torque),
                warnings=warnings,
                raw=line,
            )

        match = _SINGLE.match(line)
        if match:
            name, payload = match.groups()
            value = ResponseDecoder._parse_field(name, payload, warnings)
            sample = TelemetrySample(**{_FIELD_NAMES[name]: value})
            return DecodedLine(kind=LineKind.SINGLE, sample=sample, warnings=warnings, raw=line)

        if line:
            logger.debug(f"Unrecognized line: {line!r}")
        return DecodedLine(kind=LineKind.UNRECOGNIZED, raw=line)

    @staticmethod
    def _parse_field(
        name: str,
        payload: str,
        warnings: List[ProtocolDecodeWarning],
    ) -> Optional[float]:
        """Parse one numeric field, recording a warning instead of NaN."""
        value, error = _to_finite_float(payload)
        if error is None:
            return value
        warning = ProtocolDecodeWarning(f"Non-numeric {name} value: {payload!r}")
        warnings.append(warning)
        logger.warning(str(warning))
        return None


def _to_finite_float(payload: str) -> Tuple[Optional[float], Optional[str]]:
    try:
        value = float(payload.strip())
    except ValueError as e:
        return None, str(e)
    if not math.isfinite(value):
        return None, "not finite"
    return value, None
