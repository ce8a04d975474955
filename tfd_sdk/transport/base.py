"""Abstract base class for the transport layer.

The Transport interface is the narrow seam between the device session and
whatever carries the bytes: a serial port, a simulator, or a test double.
Implementations are injected into the session at construction time.

Key principles:
- Line-oriented: one command or one response per line
- Failures raise TransportError, they are never returned as flags
- Pub/sub for inbound lines, errors and unsolicited disconnects
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List

from .._callbacks import CallbackList
from ..models import PortInfo


class Transport(ABC):
    """Abstract line transport for Mini-TFD communication.

    Transports are responsible for:
    1. Enumerating candidate ports
    2. Opening and closing one channel at a time
    3. Writing command lines
    4. Publishing inbound lines, errors and disconnects to subscribers

    Transports should NOT interpret lines. Subclasses call
    ``_emit_line``, ``_emit_error`` and ``_emit_disconnect`` from whatever
    thread receives the data.
    """

    def __init__(self):
        self._line_callbacks: CallbackList[Callable[[str], None]] = CallbackList("line")
        self._error_callbacks: CallbackList[Callable[[str], None]] = CallbackList("error")
        self._disconnect_callbacks: CallbackList[Callable[[], None]] = CallbackList("disconnect")

    @abstractmethod
    def list_ports(self) -> List[PortInfo]:
        """Enumerate available ports.

        Raises:
            TransportError: If enumeration fails
        """
        pass

    @abstractmethod
    def open(self, port: str, baudrate: int) -> None:
        """Open ``port`` at ``baudrate`` (8N1).

        Raises:
            TransportError: If the port cannot be opened
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the channel.

        Should be safe to call multiple times.

        Raises:
            TransportError: If closing fails
        """
        pass

    @abstractmethod
    def write_line(self, text: str) -> None:
        """Write one line. A trailing newline is added if missing.

        Raises:
            TransportError: If not open or the write fails
        """
        pass

    @abstractmethod
    def is_open(self) -> bool:
        pass

    def subscribe_lines(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Subscribe to inbound lines (trimmed, without newline).

        Returns:
            Unsubscribe function
        """
        return self._line_callbacks.subscribe(callback)

    def subscribe_errors(self, callback: Callable[[str], None]) -> Callable[[], None]:
        """Subscribe to asynchronous error messages."""
        return self._error_callbacks.subscribe(callback)

    def subscribe_disconnect(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Subscribe to unsolicited disconnects (device unplugged)."""
        return self._disconnect_callbacks.subscribe(callback)

    def _emit_line(self, line: str) -> None:
        self._line_callbacks.notify(line)

    def _emit_error(self, message: str) -> None:
        self._error_callbacks.notify(message)

    def _emit_disconnect(self) -> None:
        self._disconnect_callbacks.notify()
