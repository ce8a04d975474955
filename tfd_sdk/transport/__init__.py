"""Transport layer for Mini-TFD communication."""

from .base import Transport
from .buffer import LineBuffer
from .ports import choose_port, compatible_ports, find_port, list_serial_ports
from .serial import STANDARD_BAUD_RATES, SerialTransport, validate_baudrate

__all__ = [
    "LineBuffer",
    "STANDARD_BAUD_RATES",
    "SerialTransport",
    "Transport",
    "choose_port",
    "compatible_ports",
    "find_port",
    "list_serial_ports",
    "validate_baudrate",
]
