"""Device session: lifecycle, liveness, reconnection and polling."""

from .liveness import GRACE_PERIOD, LIVENESS_TIMEOUT, LivenessLoss, LivenessMonitor
from .poller import (
    DEFAULT_POLL_INTERVAL_MS,
    MAX_POLL_INTERVAL_MS,
    MIN_POLL_INTERVAL_MS,
    Poller,
    validate_poll_interval,
)
from .preferences import DEFAULT_PREFERENCES_PATH, LAST_DEVICE_KEY, DevicePreferences
from .session import DEFAULT_BAUDRATE, MAX_RECONNECT_ATTEMPTS, RECONNECT_DELAY, DeviceSession
from .timers import Scheduler, ThreadingScheduler, TimerHandle, TimerSet

__all__ = [
    "DEFAULT_BAUDRATE",
    "DEFAULT_POLL_INTERVAL_MS",
    "DEFAULT_PREFERENCES_PATH",
    "DevicePreferences",
    "DeviceSession",
    "GRACE_PERIOD",
    "LAST_DEVICE_KEY",
    "LIVENESS_TIMEOUT",
    "LivenessLoss",
    "LivenessMonitor",
    "MAX_POLL_INTERVAL_MS",
    "MAX_RECONNECT_ATTEMPTS",
    "MIN_POLL_INTERVAL_MS",
    "Poller",
    "RECONNECT_DELAY",
    "Scheduler",
    "ThreadingScheduler",
    "TimerHandle",
    "TimerSet",
    "validate_poll_interval",
]
