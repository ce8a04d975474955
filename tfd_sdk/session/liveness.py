"""Liveness tracking for the device session.

The device has no keep-alive of its own. It is considered alive while
recognised lines keep arriving; a single countdown is re-armed on every one.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from .timers import TimerSet

logger = logging.getLogger(__name__)

GRACE_PERIOD = 2.0  # seconds
LIVENESS_TIMEOUT = 2.0  # seconds

GRACE_TIMER = "grace"
LIVENESS_TIMER = "liveness"


class LivenessLoss(Enum):
    """Why the monitor declared the device unresponsive."""
    PROBE_WRITE_FAILED = "probe_write_failed"
    PROBE_UNANSWERED = "probe_unanswered"
    RESPONSIVENESS_LOST = "responsiveness_lost"


class LivenessMonitor:
    """Answers "is the device currently responding?".

    Lifecycle per open transport:
    1. ``start()`` - not responding, grace period armed
    2. grace elapses - ``probe`` is called to send a liveness query
    3. every ``record()`` re-arms the countdown
    4. countdown expiry - ``on_loss`` is called

    Reconnection is requested at most once per loss of responsiveness: the
    "has attempted" flag is set when a reconnect is requested and cleared only
    when the device becomes responsive again.
    """

    def __init__(
        self,
        timers: TimerSet,
        probe: Callable[[], bool],
        on_loss: Callable[[LivenessLoss, bool], None],
        grace_period: float = GRACE_PERIOD,
        timeout: float = LIVENESS_TIMEOUT,
    ):
        """Initialize liveness monitor.

        Args:
            timers: Timer set shared with the session
            probe: Sends the liveness query; returns False if the write failed
            on_loss: Called with the loss reason and whether to reconnect
            grace_period: Seconds after open before the first judgment
            timeout: Seconds without a recognised line before declaring loss
        """
        self._timers = timers
        self._probe = probe
        self._on_loss = on_loss
        self._grace_period = grace_period
        self._timeout = timeout

        self._responding = False
        self._in_grace = False
        self._seen_response = False
        self._has_attempted_reconnect = False
        self._last_valid_response_at: Optional[float] = None

    @property
    def responding(self) -> bool:
        return self._responding

    @property
    def in_grace(self) -> bool:
        return self._in_grace

    @property
    def last_valid_response_at(self) -> Optional[float]:
        return self._last_valid_response_at

    @property
    def has_attempted_reconnect(self) -> bool:
        return self._has_attempted_reconnect

    def start(self) -> None:
        """Begin watching a freshly opened transport."""
        self._timers.cancel(LIVENESS_TIMER)
        self._responding = False
        self._seen_response = False
        self._in_grace = True
        self._timers.arm(GRACE_TIMER, self._grace_period, self._on_grace_elapsed)

    def record(self) -> bool:
        """Note a recognised line.

        Returns:
            True if the device just became responsive
        """
        self._last_valid_response_at = self._timers.scheduler.now()
        became_responsive = not self._responding
        self._responding = True
        self._seen_response = True
        if became_responsive:
            self._has_attempted_reconnect = False
            logger.info("Device is responding")
        self._timers.arm(LIVENESS_TIMER, self._timeout, self._on_timeout)
        return became_responsive

    def stop(self) -> None:
        """Cancel pending judgments. Bookkeeping is kept."""
        self._timers.cancel(GRACE_TIMER)
        self._timers.cancel(LIVENESS_TIMER)
        self._responding = False
        self._in_grace = False

    def reset(self) -> None:
        """Stop and forget everything, including the reconnect guard."""
        self.stop()
        self._seen_response = False
        self._has_attempted_reconnect = False
        self._last_valid_response_at = None

    def _on_grace_elapsed(self) -> None:
        self._in_grace = False
        if not self._probe():
            self._responding = False
            self._on_loss(LivenessLoss.PROBE_WRITE_FAILED, False)
            return
        # A device that already answered during grace keeps its countdown
        if not self._timers.is_armed(LIVENESS_TIMER):
            self._timers.arm(LIVENESS_TIMER, self._timeout, self._on_timeout)

    def _on_timeout(self) -> None:
        self._responding = False
        if not self._seen_response:
            logger.warning("Device did not answer the liveness probe")
            self._on_loss(LivenessLoss.PROBE_UNANSWERED, False)
            return

        should_reconnect = not self._has_attempted_reconnect
        if should_reconnect:
            self._has_attempted_reconnect = True
        logger.warning("Device stopped responding")
        self._on_loss(LivenessLoss.RESPONSIVENESS_LOST, should_reconnect)
