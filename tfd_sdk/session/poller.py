"""Periodic telemetry requests."""
from __future__ import annotations

import logging
from typing import Callable, Tuple

from ..errors import ConfigurationError, TransportError
from ..models import PollStrategy
from ..protocol import CommandEncoder, Query
from .timers import TimerSet

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_MS = 30
MIN_POLL_INTERVAL_MS = 50
MAX_POLL_INTERVAL_MS = 5000

POLL_TIMER = "poll"

_QUERIES = {
    PollStrategy.COMBINED: (Query.ALL,),
    PollStrategy.SEQUENTIAL: (Query.ANGLE, Query.VELOCITY, Query.TORQUE),
}


def validate_poll_interval(interval_ms: int) -> int:
    """Check a user-supplied interval.

    Raises:
        ConfigurationError: If outside MIN_POLL_INTERVAL_MS..MAX_POLL_INTERVAL_MS
    """
    if not MIN_POLL_INTERVAL_MS <= interval_ms <= MAX_POLL_INTERVAL_MS:
        raise ConfigurationError(
            f"Poll interval must be between {MIN_POLL_INTERVAL_MS} and "
            f"{MAX_POLL_INTERVAL_MS} ms, got {interval_ms}"
        )
    return int(interval_ms)


class Poller:
    """Fire-and-forget telemetry polling.

    Each tick writes the queries for the current strategy without waiting
    for answers; responses are matched by shape in the decoder, so an
    unanswered tick never blocks the next one. Write failures are logged and
    absorbed.
    """

    def __init__(
        self,
        timers: TimerSet,
        send: Callable[[str], None],
        strategy: PollStrategy = PollStrategy.COMBINED,
        interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
    ):
        self._timers = timers
        self._send = send
        self._strategy = strategy
        self._interval_ms = interval_ms
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def queries(self) -> Tuple[Query, ...]:
        return _QUERIES[self._strategy]

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.debug(f"Polling every {self._interval_ms}ms ({self._strategy.value})")
        self._schedule()

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._timers.cancel(POLL_TIMER)
        logger.debug("Polling stopped")

    def set_interval(self, interval_ms: int) -> None:
        """Change the interval, restarting the cycle if running."""
        if interval_ms == self._interval_ms:
            return
        self._interval_ms = interval_ms
        if self._running:
            self._schedule()

    def set_strategy(self, strategy: PollStrategy) -> None:
        self._strategy = strategy

    def _schedule(self) -> None:
        self._timers.arm(POLL_TIMER, self._interval_ms / 1000.0, self._tick)

    def _tick(self) -> None:
        if not self._running:
            return
        for query in self.queries:
            try:
                self._send(CommandEncoder.encode_query(query))
            except TransportError as e:
                logger.warning(f"Poll request {query.name} failed: {e}")
                break
        self._schedule()
