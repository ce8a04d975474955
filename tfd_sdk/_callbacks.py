"""Thread-safe subscriber list shared by transports and sessions."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Generic, List, TypeVar

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., None])


class CallbackList(Generic[F]):
    """Subscribers for one event type.

    Exceptions raised by a subscriber are logged and never reach the caller
    or the other subscribers.
    """

    def __init__(self, name: str):
        self._name = name
        self._callbacks: List[F] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: F) -> Callable[[], None]:
        """Add a subscriber.

        Returns:
            Unsubscribe function (call to remove subscription)
        """
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def notify(self, *args) -> None:
        with self._lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(*args)
            except Exception as e:
                logger.error(f"Error in {self._name} callback: {e}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
