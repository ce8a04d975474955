"""Line buffer for the serial transport.

Collects raw byte chunks and splits them into newline-terminated lines.
"""
import logging
import threading
from typing import List

logger = logging.getLogger(__name__)

MAX_LINE_BUFFER = 64 * 1024  # 64KB


class LineBuffer:
    """Thread-safe byte buffer that yields complete lines.

    A partial line stays buffered until its newline arrives. If the partial
    line grows past ``max_size`` (a device streaming without newlines), the
    oldest bytes are dropped.
    """

    def __init__(self, max_size: int = MAX_LINE_BUFFER):
        """Initialize buffer.

        Args:
            max_size: Maximum buffered bytes. If exceeded, oldest data is dropped.
        """
        self._max_size = max_size
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._overflow_count = 0

    def feed(self, data: bytes) -> List[str]:
        """Append a chunk and return every line it completes.

        Lines are decoded as UTF-8 (undecodable bytes dropped), stripped of
        surrounding whitespace and ``\\r``. Empty lines are skipped.
        """
        if not data:
            return []

        with self._lock:
            self._buffer.extend(data)

            lines = []
            while True:
                idx = self._buffer.find(b"\n")
                if idx == -1:
                    break
                raw = bytes(self._buffer[:idx])
                del self._buffer[:idx + 1]
                line = raw.decode("utf-8", errors="ignore").strip()
                if line:
                    lines.append(line)

            if len(self._buffer) > self._max_size:
                drop_count = len(self._buffer) - self._max_size
                del self._buffer[:drop_count]
                self._overflow_count += 1
                if self._overflow_count % 100 == 1:  # Log periodically
                    logger.warning(f"Line buffer overflow: Dropped {drop_count} bytes without newline.")

            return lines

    @property
    def size(self) -> int:
        """Number of bytes waiting for a newline."""
        with self._lock:
            return len(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()
