"""Device session for the Mini-TFD haptic controller.

The DeviceSession owns the connection lifecycle and ties the transport,
encoder, decoder, liveness monitor and poller together.

Every input is an event on one queue:
- user commands (connect, apply_config, ...)
- inbound lines, transport errors and disconnects (reader thread)
- timer expiries (grace, liveness, reconnect backoff, poll)

Events run one at a time, either on the dispatcher thread started by
``start()`` or synchronously through ``process_pending()``. No handler ever
touches session state from another thread.

Example:
    >>> session = DeviceSession(SerialTransport(), profile=KNOB)
    >>> session.subscribe_phase(lambda phase, detail: print(phase, detail))
    >>> session.subscribe_telemetry(lambda sample: print(sample.angle))
    >>> session.start()
    >>> session.connect("COM3")
    >>> session.apply_config(HapticConfig(mode=HapticMode.SOFT_DETENTS))
    >>> session.close()
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional, Tuple

from .._callbacks import CallbackList
from ..errors import (
    ConfigurationError,
    DeviceNotRespondingError,
    ReconnectExhaustedError,
    TfdError,
    TransportError,
    UnknownModeError,
)
from ..models import (
    GENERIC,
    DeviceProfile,
    HapticConfig,
    HapticMode,
    SessionPhase,
    SessionState,
    TelemetrySample,
    channel_open,
)
from ..protocol import CommandEncoder, Query, ResponseDecoder, TelemetryAccumulator
from ..transport import Transport, choose_port, compatible_ports, find_port, validate_baudrate
from .liveness import GRACE_PERIOD, LIVENESS_TIMEOUT, LivenessLoss, LivenessMonitor
from .poller import DEFAULT_POLL_INTERVAL_MS, Poller, validate_poll_interval
from .preferences import DevicePreferences
from .timers import Scheduler, ThreadingScheduler, TimerSet

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200
RECONNECT_DELAY = 1.0  # seconds
MAX_RECONNECT_ATTEMPTS = 3

RECONNECT_TIMER = "reconnect"

NOT_CONNECTED = "Not connected to device"

_TRANSITIONS = {
    SessionPhase.DISCONNECTED: {SessionPhase.CONNECTING},
    SessionPhase.CONNECTING: {SessionPhase.CONNECTED, SessionPhase.DISCONNECTED},
    SessionPhase.CONNECTED: {
        SessionPhase.DEGRADED,
        SessionPhase.CONNECTING,
        SessionPhase.DISCONNECTED,
    },
    SessionPhase.DEGRADED: {
        SessionPhase.CONNECTED,
        SessionPhase.RECONNECTING,
        SessionPhase.CONNECTING,
        SessionPhase.DISCONNECTED,
    },
    SessionPhase.RECONNECTING: {
        SessionPhase.CONNECTED,
        SessionPhase.DEGRADED,
        SessionPhase.DISCONNECTED,
    },
}

_BUSY = (SessionPhase.CONNECTING, SessionPhase.RECONNECTING)

_LOSS_MESSAGES = {
    LivenessLoss.PROBE_WRITE_FAILED: "Device not responding: liveness probe could not be sent",
    LivenessLoss.PROBE_UNANSWERED: "Device not responding",
    LivenessLoss.RESPONSIVENESS_LOST: "Device stopped responding.",
}

Event = Tuple[Callable[..., None], tuple]


class DeviceSession:
    """One logical session with a Mini-TFD device.

    Public methods only queue work and return immediately; outcomes are
    reported through the phase, telemetry and error subscriptions.
    Argument validation that needs no session state (poll interval range,
    baud rate) raises ConfigurationError directly.
    """

    def __init__(
        self,
        transport: Transport,
        scheduler: Optional[Scheduler] = None,
        profile: DeviceProfile = GENERIC,
        preferences: Optional[DevicePreferences] = None,
        *,
        auto_connect_fallback: bool = False,
        grace_period: float = GRACE_PERIOD,
        liveness_timeout: float = LIVENESS_TIMEOUT,
        reconnect_delay: float = RECONNECT_DELAY,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        polling: bool = True,
    ):
        """Initialize device session.

        Args:
            transport: Line transport (SerialTransport or a test double)
            scheduler: Clock and timers (default: one wall clock timer thread)
            profile: Capability descriptor for the attached device type
            preferences: Where the last connected device is remembered
                (default: in memory only)
            auto_connect_fallback: Let auto_connect() pick the first
                compatible port when the remembered device is absent
            grace_period: Seconds after open before liveness is judged
            liveness_timeout: Seconds of silence before the device is
                considered unresponsive
            reconnect_delay: Seconds between reconnect attempts
            max_reconnect_attempts: Reopen failures before giving up
            poll_interval_ms: Telemetry poll interval
            polling: Whether to poll while connected
        """
        self._transport = transport
        self._profile = profile
        self._preferences = preferences if preferences is not None else DevicePreferences(None)
        self._auto_connect_fallback = auto_connect_fallback
        self._reconnect_delay = reconnect_delay
        self._max_reconnect_attempts = max_reconnect_attempts

        self._queue: queue.Queue[Optional[Event]] = queue.Queue()
        self._running = False
        self._thread: Optional[threading.Thread] = None

        self._own_scheduler = ThreadingScheduler() if scheduler is None else None
        self._timers = TimerSet(scheduler or self._own_scheduler, self._post)
        self._liveness = LivenessMonitor(
            self._timers,
            probe=self._send_probe,
            on_loss=self._on_liveness_lost,
            grace_period=grace_period,
            timeout=liveness_timeout,
        )
        self._poller = Poller(self._timers, self._transport.write_line, profile.poll_strategy, poll_interval_ms)
        self._telemetry = TelemetryAccumulator()

        self._phase = SessionPhase.DISCONNECTED
        self._detail: Optional[str] = None
        self._port: Optional[str] = None
        self._baudrate: Optional[int] = None
        self._reconnect_attempts = 0
        self._reconnect_exhausted = False
        self._polling = polling
        self._config: Optional[HapticConfig] = None

        self._telemetry_callbacks: CallbackList[Callable[[TelemetrySample], None]] = CallbackList("telemetry")
        self._phase_callbacks: CallbackList[Callable[[SessionPhase, Optional[str]], None]] = CallbackList("phase")
        self._error_callbacks: CallbackList[Callable[[TfdError], None]] = CallbackList("error")

        self._unsubscribers = [
            transport.subscribe_lines(lambda line: self._post(self._handle_line, line)),
            transport.subscribe_errors(lambda message: self._post(self._handle_transport_error, message)),
            transport.subscribe_disconnect(lambda: self._post(self._handle_transport_disconnect)),
        ]

    # Dispatcher

    def start(self) -> None:
        """Run queued events on a background dispatcher thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._dispatch_loop,
            daemon=True,
            name="DeviceSession"
        )
        self._thread.start()
        logger.debug("Session dispatcher started")

    def close(self) -> None:
        """Disconnect, stop the dispatcher and detach from the transport."""
        self._post(self._handle_disconnect)
        thread = self._thread
        if self._running:
            self._running = False
            self._queue.put(None)
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=1.0)
        self._thread = None
        self.process_pending()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        if self._own_scheduler is not None:
            self._own_scheduler.stop()
        logger.debug("Session closed")

    def process_pending(self) -> None:
        """Run all queued events synchronously on the calling thread.

        Useful for testing or embedding in a foreign event loop.
        """
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                break
            if event is not None:
                self._execute(event)

    def __enter__(self) -> DeviceSession:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _post(self, handler: Callable[..., None], *args) -> None:
        self._queue.put((handler, args))

    def _dispatch_loop(self) -> None:
        while self._running:
            try:
                event = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if event is not None:
                self._execute(event)

    def _execute(self, event: Event) -> None:
        handler, args = event
        try:
            handler(*args)
        except Exception as e:
            logger.error(f"Error in session handler {getattr(handler, '__name__', handler)}: {e}")

    # Subscriptions

    def subscribe_telemetry(self, callback: Callable[[TelemetrySample], None]) -> Callable[[], None]:
        """Subscribe to merged telemetry snapshots.

        Returns:
            Unsubscribe function
        """
        return self._telemetry_callbacks.subscribe(callback)

    def subscribe_phase(
        self,
        callback: Callable[[SessionPhase, Optional[str]], None],
    ) -> Callable[[], None]:
        """Subscribe to phase changes.

        The callback receives the phase and a short detail such as
        ``"grace"``, ``"responding"`` or ``"attempt 2/3"``.
        """
        return self._phase_callbacks.subscribe(callback)

    def subscribe_errors(self, callback: Callable[[TfdError], None]) -> Callable[[], None]:
        """Subscribe to user-visible errors."""
        return self._error_callbacks.subscribe(callback)

    # State

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def profile(self) -> DeviceProfile:
        return self._profile

    @property
    def config(self) -> Optional[HapticConfig]:
        """Last configuration applied successfully."""
        return self._config

    @property
    def state(self) -> SessionState:
        """Immutable snapshot of the session."""
        return SessionState(
            phase=self._phase,
            port=self._port,
            baudrate=self._baudrate,
            responding=self._liveness.responding,
            last_valid_response_at=self._liveness.last_valid_response_at,
            reconnect_attempts=self._reconnect_attempts,
            reconnect_exhausted=self._reconnect_exhausted,
            polling=self._polling,
            poll_interval_ms=self._poller.interval_ms,
            telemetry=self._telemetry.snapshot(),
        )

    # Commands

    def connect(self, port: Optional[str] = None, baudrate: Optional[int] = None) -> None:
        """Open ``port`` (default: the last used one) at ``baudrate``.

        Raises:
            ConfigurationError: If ``baudrate`` is not a standard rate
        """
        if baudrate is not None:
            baudrate = validate_baudrate(baudrate)
        self._post(self._handle_connect, port, baudrate)

    def disconnect(self) -> None:
        self._post(self._handle_disconnect)

    def reconnect(self) -> None:
        """Close and reopen the current port with bounded retries."""
        self._post(self._handle_reconnect)

    def auto_connect(self) -> None:
        """Connect to the remembered device if it is plugged in."""
        self._post(self._handle_auto_connect)

    def apply_config(self, config: HapticConfig) -> None:
        self._post(self._handle_apply_config, config)

    def set_polling(self, enabled: bool, interval_ms: Optional[int] = None) -> None:
        """Enable or disable polling, optionally changing the interval.

        Raises:
            ConfigurationError: If ``interval_ms`` is out of range
        """
        if interval_ms is not None:
            interval_ms = validate_poll_interval(interval_ms)
        self._post(self._handle_set_polling, enabled, interval_ms)

    def set_profile(self, profile: DeviceProfile) -> None:
        self._post(self._handle_set_profile, profile)

    def request_angle(self) -> None:
        self._post(self._handle_write, CommandEncoder.encode_query(Query.ANGLE))

    def request_velocity(self) -> None:
        self._post(self._handle_write, CommandEncoder.encode_query(Query.VELOCITY))

    def request_torque(self) -> None:
        self._post(self._handle_write, CommandEncoder.encode_query(Query.TORQUE))

    def request_all(self) -> None:
        self._post(self._handle_write, CommandEncoder.encode_query(Query.ALL))

    def reset(self) -> None:
        """Zero the device's angle reference."""
        self._post(self._handle_write, CommandEncoder.encode_zero())

    def calibrate(self) -> None:
        """Same wire command as ``reset()``; the firmware has one zeroing routine."""
        self._post(self._handle_write, CommandEncoder.encode_zero())

    # Command handlers

    def _handle_connect(self, port: Optional[str], baudrate: Optional[int]) -> None:
        if self._phase in _BUSY:
            logger.warning(f"Connect ignored while {self._phase.value}")
            return

        port = port or self._port
        if not port:
            self._report(ConfigurationError("Please select a port first"))
            return
        if baudrate is None:
            baudrate = self._baudrate or DEFAULT_BAUDRATE

        self._stop_activity()
        self._liveness.reset()
        self._telemetry.reset()
        self._reconnect_attempts = 0
        self._reconnect_exhausted = False
        close_error = self._close_transport()
        if close_error is not None:
            logger.warning(f"Ignoring close failure before connect: {close_error}")

        self._port = port
        self._baudrate = baudrate
        self._set_phase(SessionPhase.CONNECTING, port)
        logger.info(f"Connecting to {port} @ {baudrate} baud")

        try:
            self._transport.open(port, baudrate)
        except TransportError as e:
            logger.error(f"Connection to {port} failed: {e}")
            self._set_phase(SessionPhase.DISCONNECTED)
            self._report(e)
            return

        self._on_opened()
        self._remember_device(port)

    def _handle_disconnect(self) -> None:
        was_connected = self._phase is not SessionPhase.DISCONNECTED

        self._timers.cancel_all()
        self._poller.stop()
        self._liveness.reset()
        self._telemetry.reset()
        self._reconnect_attempts = 0
        self._reconnect_exhausted = False
        close_error = self._close_transport()

        if was_connected:
            self._set_phase(SessionPhase.DISCONNECTED)
            logger.info(f"Disconnected from {self._port}")
        if close_error is not None:
            self._report(close_error)

    def _handle_reconnect(self) -> None:
        if self._phase in _BUSY:
            logger.warning(f"Reconnect ignored while {self._phase.value}")
            return
        if self._phase is SessionPhase.DISCONNECTED or not self._port:
            logger.warning("Reconnect ignored: no connection to restore")
            return
        if self._phase is SessionPhase.CONNECTED:
            self._set_phase(SessionPhase.DEGRADED, "reconnect requested")
        self._begin_reconnect()

    def _handle_auto_connect(self) -> None:
        if self._phase in _BUSY:
            logger.warning(f"Auto-connect ignored while {self._phase.value}")
            return
        if self._phase is not SessionPhase.DISCONNECTED:
            self._handle_disconnect()

        try:
            ports = self._transport.list_ports()
        except TransportError as e:
            self._report(e)
            return
        if not ports:
            self._report(TransportError("No serial ports found."))
            return

        candidates = compatible_ports(ports)
        if not candidates:
            self._report(TransportError("No compatible devices with Product ID found."))
            return

        preferred = self._preferences.get_last_device_id()
        chosen = choose_port(candidates, preferred, fallback_to_first=self._auto_connect_fallback)
        if chosen is None:
            self._report(ConfigurationError("Remembered device not found, please select a port"))
            return

        logger.info(f"Auto-connecting to {chosen.path}")
        self._handle_connect(chosen.path, None)

    def _handle_apply_config(self, config: HapticConfig) -> None:
        if not self._is_open() or not self._transport.is_open():
            self._report(TransportError(NOT_CONNECTED))
            return
        try:
            mode = HapticMode.parse(config.mode)
        except UnknownModeError as e:
            self._report(e)
            return
        if not self._profile.supports(mode):
            self._report(ConfigurationError(
                f"Mode {mode.value} is not supported by {self._profile.name}"
            ))
            return

        config = config.update(mode=mode)
        try:
            lines = CommandEncoder.encode_config(config)
        except ConfigurationError as e:
            self._report(e)
            return

        for line in lines:
            try:
                self._transport.write_line(line)
            except TransportError as e:
                logger.error(f"Failed to apply {mode.value}: {e}")
                self._report(e)
                return

        self._config = config
        self._telemetry.set_config(config)
        logger.info(f"Applied mode {mode.value}")

    def _handle_set_polling(self, enabled: bool, interval_ms: Optional[int]) -> None:
        self._polling = enabled
        if interval_ms is not None:
            self._poller.set_interval(interval_ms)
        self._sync_poller()

    def _handle_set_profile(self, profile: DeviceProfile) -> None:
        self._profile = profile
        self._poller.set_strategy(profile.poll_strategy)
        if self._config is not None:
            sanitized = profile.sanitize(self._config)
            if sanitized != self._config:
                logger.info(f"Mode {self._config.mode.value} not supported by {profile.name}, using none")
                self._config = sanitized
                self._telemetry.set_config(sanitized)

    def _handle_write(self, command: str) -> None:
        if not self._transport.is_open():
            self._report(TransportError(NOT_CONNECTED))
            return
        try:
            self._transport.write_line(command)
        except TransportError as e:
            self._report(e)

    # Transport events

    def _handle_line(self, line: str) -> None:
        if not self._is_open():
            return

        decoded = ResponseDecoder.decode(line)
        if decoded.is_heartbeat and self._liveness.record():
            self._set_phase(SessionPhase.CONNECTED, "responding")

        if self._telemetry.apply(decoded.sample):
            self._telemetry_callbacks.notify(self._telemetry.snapshot())

    def _handle_transport_error(self, message: str) -> None:
        self._report(TransportError(message))

    def _handle_transport_disconnect(self) -> None:
        if not self._is_open():
            return
        logger.warning(f"Device on {self._port} disconnected")
        self._timers.cancel_all()
        self._poller.stop()
        self._liveness.reset()
        self._reconnect_attempts = 0
        close_error = self._close_transport()
        if close_error is not None:
            logger.warning(f"Ignoring close failure after disconnect: {close_error}")
        self._set_phase(SessionPhase.DISCONNECTED)
        self._report(TransportError("Device disconnected"))

    # Liveness and reconnection

    def _send_probe(self) -> bool:
        try:
            self._transport.write_line(CommandEncoder.encode_query(Query.ALL))
        except TransportError as e:
            logger.error(f"Liveness probe failed: {e}")
            return False
        return True

    def _on_liveness_lost(self, reason: LivenessLoss, should_reconnect: bool) -> None:
        self._set_phase(SessionPhase.DEGRADED, "not responding")
        self._report(DeviceNotRespondingError(_LOSS_MESSAGES[reason]))
        if should_reconnect:
            self._begin_reconnect()

    def _begin_reconnect(self) -> None:
        self._reconnect_attempts = 0
        self._reconnect_exhausted = False
        self._set_phase(SessionPhase.RECONNECTING, self._attempt_label(1))
        self._stop_activity()
        close_error = self._close_transport()
        if close_error is not None:
            logger.warning(f"Ignoring close failure before reconnect: {close_error}")
        self._timers.arm(RECONNECT_TIMER, self._reconnect_delay, self._attempt_reopen)

    def _attempt_reopen(self) -> None:
        if self._phase is not SessionPhase.RECONNECTING:
            return

        attempt = self._reconnect_attempts + 1
        logger.info(f"Reconnect attempt {attempt}/{self._max_reconnect_attempts} to {self._port}")
        try:
            self._transport.open(self._port, self._baudrate or DEFAULT_BAUDRATE)
        except TransportError as e:
            self._reconnect_attempts = attempt
            logger.warning(f"Reconnect attempt {attempt} failed: {e}")
            if attempt >= self._max_reconnect_attempts:
                self._reconnect_exhausted = True
                self._set_phase(SessionPhase.DEGRADED, "reconnect exhausted")
                self._report(ReconnectExhaustedError(
                    f"Failed to reconnect to {self._port} after {attempt} attempts"
                ))
                return
            self._set_phase(SessionPhase.RECONNECTING, self._attempt_label(attempt + 1))
            self._timers.arm(RECONNECT_TIMER, self._reconnect_delay, self._attempt_reopen)
            return

        logger.info(f"Reconnected to {self._port}")
        self._reconnect_attempts = 0
        self._on_opened()

    def _attempt_label(self, attempt: int) -> str:
        return f"attempt {attempt}/{self._max_reconnect_attempts}"

    # Helpers

    def _is_open(self) -> bool:
        return channel_open(self._phase, self._reconnect_exhausted)

    def _on_opened(self) -> None:
        self._set_phase(SessionPhase.CONNECTED, "grace")
        self._liveness.start()
        self._sync_poller()

    def _stop_activity(self) -> None:
        self._timers.cancel(RECONNECT_TIMER)
        self._poller.stop()
        self._liveness.stop()

    def _sync_poller(self) -> None:
        if self._polling and self._is_open():
            self._poller.start()
        else:
            self._poller.stop()

    def _close_transport(self) -> Optional[TransportError]:
        if not self._transport.is_open():
            return None
        try:
            self._transport.close()
        except TransportError as e:
            logger.error(f"Failed to close transport: {e}")
            return e
        return None

    def _remember_device(self, port: str) -> None:
        try:
            info = find_port(self._transport.list_ports(), port)
        except TransportError as e:
            logger.warning(f"Could not look up device id for {port}: {e}")
            return
        if info is not None and info.device_id:
            self._preferences.set_last_device_id(info.device_id)

    def _set_phase(self, phase: SessionPhase, detail: Optional[str] = None) -> None:
        if phase is self._phase:
            if detail == self._detail:
                return
        elif phase not in _TRANSITIONS[self._phase]:
            raise RuntimeError(f"Illegal phase transition {self._phase.value} -> {phase.value}")

        logger.debug(f"Phase {self._phase.value} -> {phase.value} ({detail})")
        self._phase = phase
        self._detail = detail
        self._phase_callbacks.notify(phase, detail)

    def _report(self, error: TfdError) -> None:
        self._error_callbacks.notify(error)
