"""Timer scheduling for the device session.

Timer expiries are never handled on the scheduler thread. They are posted to
the session's event queue so every handler runs on one logical task.
"""
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

Post = Callable[..., None]


class TimerHandle(ABC):
    @abstractmethod
    def cancel(self) -> None:
        pass


class Scheduler(ABC):
    """Clock plus one-shot timers."""

    @abstractmethod
    def now(self) -> float:
        """Monotonic time in seconds."""
        pass

    @abstractmethod
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run ``callback`` once after ``delay`` seconds, on any thread."""
        pass


class _ScheduledCall(TimerHandle):
    def __init__(self, callback: Callable[[], None]):
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ThreadingScheduler(Scheduler):
    """Wall-clock scheduler with one worker thread for all timers.

    Pending calls sit in a heap ordered by due time. Cancelled calls stay in
    the heap and are skipped when they reach the top.
    """

    def __init__(self):
        self._pending: List[Tuple[float, int, _ScheduledCall]] = []
        self._seq = itertools.count()
        self._condition = threading.Condition()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        call = _ScheduledCall(callback)
        with self._condition:
            heapq.heappush(self._pending, (self.now() + max(0.0, delay), next(self._seq), call))
            if not self._running:
                self._start()
            self._condition.notify()
        return call

    def stop(self) -> None:
        """Stop the worker thread and drop every pending call."""
        with self._condition:
            self._running = False
            self._pending.clear()
            self._condition.notify()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)
        self._thread = None

    def _start(self) -> None:
        self._running = True
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="TimerScheduler"
        )
        self._thread.start()

    def _run(self) -> None:
        while True:
            with self._condition:
                call = self._next_due()
                if call is None:
                    if not self._running:
                        return
                    continue
            try:
                call.callback()
            except Exception as e:
                logger.error(f"Error in timer callback: {e}")

    def _next_due(self) -> Optional[_ScheduledCall]:
        # Called with the condition held; waits at most until the head is due
        while self._pending and self._pending[0][2].cancelled:
            heapq.heappop(self._pending)
        if not self._running:
            return None
        if not self._pending:
            self._condition.wait()
            return None
        due = self._pending[0][0]
        remaining = due - self.now()
        if remaining > 0:
            self._condition.wait(remaining)
            return None
        return heapq.heappop(self._pending)[2]


class TimerSet:
    """Named one-shot timers with cancel-and-replace semantics.

    Arming a name cancels the timer previously armed under it. Each arm gets
    a fresh token; an expiry whose token is no longer current (cancelled,
    replaced, or cleared by ``cancel_all``) is dropped when it reaches the
    event queue, so late callbacks cannot act on superseded state.
    """

    def __init__(self, scheduler: Scheduler, post: Post):
        """
        Args:
            scheduler: Clock and timer source
            post: Function that queues ``(handler, *args)`` on the session loop
        """
        self._scheduler = scheduler
        self._post = post
        self._timers: Dict[str, Tuple[int, TimerHandle]] = {}
        self._next_token = 0
        self._lock = threading.Lock()

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    def arm(self, name: str, delay: float, handler: Callable[[], None]) -> None:
        """(Re)arm timer ``name`` to run ``handler`` on the session loop."""
        with self._lock:
            self._next_token += 1
            token = self._next_token
            previous = self._timers.pop(name, None)
            if previous is not None:
                previous[1].cancel()

            def expire():
                self._post(self._fire, name, token, handler)

            handle = self._scheduler.call_later(delay, expire)
            self._timers[name] = (token, handle)
        logger.debug(f"Timer {name} armed for {delay:.3f}s")

    def cancel(self, name: str) -> None:
        with self._lock:
            entry = self._timers.pop(name, None)
        if entry is not None:
            entry[1].cancel()
            logger.debug(f"Timer {name} cancelled")

    def cancel_all(self) -> None:
        with self._lock:
            entries = list(self._timers.values())
            self._timers.clear()
        for _, handle in entries:
            handle.cancel()

    def is_armed(self, name: str) -> bool:
        with self._lock:
            return name in self._timers

    def _fire(self, name: str, token: int, handler: Callable[[], None]) -> None:
        with self._lock:
            entry = self._timers.get(name)
            if entry is None or entry[0] != token:
                logger.debug(f"Dropping stale expiry of timer {name}")
                return
            del self._timers[name]
        handler()
