"""Serial transport for the Mini-TFD controller.

Implements the Transport interface on top of pyserial.

This module handles:
- Serial port open/close (8 data bits, no parity, 1 stop bit)
- Background reading and line splitting
- Serialised line writes
- Detecting unplugged devices

Note: This is a LINE layer. It does not interpret lines; the session's
decoder does.
"""
from __future__ import annotations

import logging
import threading
from typing import List, Optional

import serial

from ..errors import ConfigurationError, TransportError
from ..models import PortInfo
from .base import Transport
from .buffer import LineBuffer
from .ports import list_serial_ports

logger = logging.getLogger(__name__)

READ_TIMEOUT = 0.1  # seconds
READ_CHUNK_SIZE = 4096  # bytes

STANDARD_BAUD_RATES = (9600, 19200, 38400, 57600, 115200, 230400, 460800, 921600)


def validate_baudrate(baudrate: int) -> int:
    """Check a user-supplied baud rate.

    Raises:
        ConfigurationError: If not one of STANDARD_BAUD_RATES
    """
    if baudrate not in STANDARD_BAUD_RATES:
        raise ConfigurationError(
            f"Unsupported baud rate {baudrate!r}, expected one of "
            f"{', '.join(str(rate) for rate in STANDARD_BAUD_RATES)}"
        )
    return int(baudrate)


class SerialTransport(Transport):
    """pyserial-backed line transport.

    Responsibilities:
    - Open/close the serial port
    - Read bytes on a background thread and publish complete lines
    - Write command lines, one writer at a time
    - Report read failures as error + disconnect events

    Example:
        >>> transport = SerialTransport()
        >>> transport.subscribe_lines(print)
        <function>
        >>> transport.open("/dev/ttyACM0", 115200)
        >>> transport.write_line("get all")
        >>> transport.close()
    """

    def __init__(self,
                 timeout: float = READ_TIMEOUT,
                 chunk_size: int = READ_CHUNK_SIZE):
        """Initialize serial transport.

        Args:
            timeout: Read timeout in seconds
            chunk_size: Maximum bytes to read per chunk (default 4KB)
        """
        super().__init__()
        self._timeout = timeout
        self._chunk_size = chunk_size

        self._serial: Optional[serial.Serial] = None
        self._port: Optional[str] = None
        self._buffer = LineBuffer()

        self._active = False
        self._reader_thread: Optional[threading.Thread] = None

        self._write_lock = threading.Lock()
        self._state_lock = threading.Lock()

    def list_ports(self) -> List[PortInfo]:
        return list_serial_ports()

    def open(self, port: str, baudrate: int) -> None:
        """Open the serial port and start the reader thread.

        Raises:
            TransportError: If the port cannot be opened
        """
        if self.is_open():
            logger.warning(f"Already open on {self._port}, closing first")
            self.close()

        try:
            handle = serial.Serial(
                port=port,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._timeout,
            )
            handle.reset_input_buffer()
            handle.reset_output_buffer()
        except serial.SerialException as e:
            logger.error(f"Failed to open {port}: {e}")
            raise TransportError(f"Failed to open {port}: {e}") from e
        except (OSError, ValueError) as e:
            logger.error(f"Unexpected error opening {port}: {e}")
            raise TransportError(f"Failed to open {port}: {e}") from e

        with self._state_lock:
            self._serial = handle
            self._port = port
            self._buffer.clear()
            self._active = True
        self._start_reader_thread()

        logger.info(f"Opened {port} @ {baudrate} baud")

    def close(self) -> None:
        """Stop the reader thread and close the port."""
        with self._state_lock:
            handle = self._serial
            self._active = False
            self._serial = None

        if handle is None:
            return

        reader = self._reader_thread
        if reader and reader.is_alive() and reader is not threading.current_thread():
            reader.join(timeout=1.0)
        self._reader_thread = None

        try:
            handle.close()
        except Exception as e:
            logger.error(f"Error closing serial port: {e}")
            raise TransportError(f"Failed to close {self._port}: {e}") from e

        logger.info(f"Closed {self._port}")

    def is_open(self) -> bool:
        return self._active and self._serial is not None

    def write_line(self, text: str) -> None:
        """Write one ASCII line.

        Raises:
            TransportError: If not open or the write fails
        """
        if not text.endswith("\n"):
            text += "\n"

        handle = self._serial
        if not self.is_open() or handle is None:
            raise TransportError("Cannot write, port is not open")

        try:
            data = text.encode("ascii")
        except UnicodeEncodeError as e:
            raise TransportError(f"Command is not ASCII: {text!r}") from e

        with self._write_lock:
            try:
                handle.write(data)
                handle.flush()
            except serial.SerialException as e:
                logger.error(f"Write error: {e}")
                raise TransportError(f"Write failed: {e}") from e
            except (OSError, ValueError) as e:
                logger.error(f"Unexpected write error: {e}")
                raise TransportError(f"Write failed: {e}") from e

    # Internal methods

    def _start_reader_thread(self) -> None:
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            daemon=True,
            name="SerialTransportReader"
        )
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        """Read chunks, split lines and publish them."""
        logger.debug("Reader thread started")
        handle = self._serial

        while self._active and handle is not None:
            try:
                chunk = handle.read(self._chunk_size)
            except (serial.SerialException, OSError, TypeError) as e:
                # pyserial raises TypeError when the handle is closed mid-read
                if self._active:
                    logger.error(f"Serial read error: {e}")
                    self._handle_error(e)
                break

            for line in self._buffer.feed(chunk):
                self._emit_line(line)

        logger.debug("Reader thread exiting")

    def _handle_error(self, error: Exception) -> None:
        """Handle a fatal read error (e.g. device unplugged).

        Does not join threads to avoid deadlock when called from the reader.
        """
        logger.warning(f"Handling connection error: {error}")
        with self._state_lock:
            handle = self._serial
            self._active = False
            self._serial = None

        if handle is not None:
            try:
                handle.close()
            except Exception as e:
                logger.debug(f"Ignoring close error after failure: {e}")

        self._emit_error(str(error))
        self._emit_disconnect()
