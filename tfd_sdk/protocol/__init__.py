"""Protocol layer for serial communication with the Mini-TFD firmware."""

from .decoder import ACK, DecodedLine, LineKind, ResponseDecoder
from .encoder import ZERO_COMMAND, CommandEncoder, Query
from .telemetry import TelemetryAccumulator

__all__ = [
    "ACK",
    "CommandEncoder",
    "DecodedLine",
    "LineKind",
    "Query",
    "ResponseDecoder",
    "TelemetryAccumulator",
    "ZERO_COMMAND",
]
