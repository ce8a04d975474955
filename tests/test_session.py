"""Tests for DeviceSession lifecycle, liveness and reconnection."""
import threading
import unittest

from fakes import FakeTransport, ManualScheduler, run_for

from tfd_sdk.errors import (
    ConfigurationError,
    DeviceNotRespondingError,
    ErrorKind,
    ReconnectExhaustedError,
    TransportError,
    UnknownModeError,
)
from tfd_sdk.models import (
    GENERIC,
    STEERING_WHEEL,
    DeviceProfile,
    EndstopStyle,
    HapticConfig,
    HapticMode,
    PollStrategy,
    SessionPhase,
    TelemetrySample,
)
from tfd_sdk.session import DevicePreferences, DeviceSession

CONNECTED = SessionPhase.CONNECTED
CONNECTING = SessionPhase.CONNECTING
DEGRADED = SessionPhase.DEGRADED
DISCONNECTED = SessionPhase.DISCONNECTED
RECONNECTING = SessionPhase.RECONNECTING


class SessionTestCase(unittest.TestCase):
    """Session wired to a fake transport and a manual clock."""

    def setUp(self):
        self.transport = FakeTransport()
        self.scheduler = ManualScheduler()
        self.preferences = DevicePreferences(None)
        self.session = self.make_session()

    def make_session(self, **kwargs):
        kwargs.setdefault("polling", False)
        kwargs.setdefault("preferences", self.preferences)
        session = DeviceSession(self.transport, self.scheduler, **kwargs)
        self.phases = []
        self.errors = []
        self.samples = []
        session.subscribe_phase(lambda phase, detail: self.phases.append((phase, detail)))
        session.subscribe_errors(self.errors.append)
        session.subscribe_telemetry(self.samples.append)
        return session

    def run_for(self, seconds):
        run_for(self.session, self.scheduler, seconds)

    def connect(self, port="COM3", baudrate=None):
        self.session.connect(port, baudrate)
        self.session.process_pending()

    def feed(self, *lines):
        for line in lines:
            self.transport.feed_line(line)
        self.session.process_pending()

    def error_kinds(self):
        return [error.kind for error in self.errors]

    def phase_names(self):
        return [phase for phase, _ in self.phases]


class TestConnect(SessionTestCase):

    def test_connect_opens_port_at_default_baudrate(self):
        self.connect()

        self.assertEqual(self.transport.open_calls, [("COM3", 115200)])
        self.assertEqual(self.phases, [(CONNECTING, "COM3"), (CONNECTED, "grace")])
        state = self.session.state
        self.assertEqual(state.port, "COM3")
        self.assertEqual(state.baudrate, 115200)
        self.assertFalse(state.responding)
        self.assertTrue(state.is_open)

    def test_connect_with_explicit_baudrate(self):
        self.connect("COM4", 9600)
        self.assertEqual(self.transport.open_calls, [("COM4", 9600)])

    def test_connect_without_port_is_configuration_error(self):
        self.connect(port=None)

        self.assertEqual(self.transport.open_calls, [])
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], ConfigurationError)
        self.assertEqual(str(self.errors[0]), "Please select a port first")
        self.assertEqual(self.session.phase, DISCONNECTED)

    def test_nonstandard_baudrate_rejected(self):
        with self.assertRaises(ConfigurationError):
            self.session.connect("COM3", 12345)
        with self.assertRaises(ConfigurationError):
            self.session.connect("COM3", 0)
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls, [])
        self.assertEqual(self.session.phase, DISCONNECTED)

    def test_connect_reuses_last_port(self):
        self.connect("COM4", 57600)
        self.session.disconnect()
        self.session.connect()
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls[-1], ("COM4", 57600))

    def test_open_failure_returns_to_disconnected(self):
        self.transport.fail_open = True
        self.connect()

        self.assertEqual(self.phase_names(), [CONNECTING, DISCONNECTED])
        self.assertEqual(self.error_kinds(), [ErrorKind.TRANSPORT])
        self.assertIn("port busy", str(self.errors[0]))

    def test_connect_remembers_device_id(self):
        self.connect("COM4")
        self.assertEqual(self.preferences.get_last_device_id(), "TFD-0002")

    def test_connect_while_connected_closes_previous_channel(self):
        self.connect("COM3")
        self.connect("COM4")

        self.assertEqual(self.transport.close_calls, 1)
        self.assertEqual(self.transport.open_calls, [("COM3", 115200), ("COM4", 115200)])
        self.assertEqual(self.session.phase, CONNECTED)


class TestLiveness(SessionTestCase):

    def test_no_error_during_grace_period(self):
        self.connect()
        self.run_for(1.99)

        self.assertEqual(self.errors, [])
        self.assertEqual(self.transport.written, [])
        self.assertEqual(self.session.phase, CONNECTED)

    def test_probe_sent_when_grace_elapses(self):
        self.connect()
        self.run_for(2.0)

        self.assertEqual(self.transport.written, ["get all\n"])
        self.assertEqual(self.errors, [])

    def test_probe_answered_marks_device_responding(self):
        self.connect()
        self.run_for(2.0)
        self.scheduler.set_time(2.5)
        self.feed("OK")

        state = self.session.state
        self.assertTrue(state.responding)
        self.assertEqual(state.last_valid_response_at, 2.5)
        self.assertEqual(self.phases[-1], (CONNECTED, "responding"))

    def test_unanswered_probe_degrades_without_reconnect(self):
        self.connect()
        self.run_for(4.1)

        self.assertEqual(self.session.phase, DEGRADED)
        self.assertEqual(self.error_kinds(), [ErrorKind.NOT_RESPONDING])
        self.assertEqual(len(self.transport.open_calls), 1)
        self.assertTrue(self.transport.is_open())

    def test_probe_write_failure_degrades_without_reconnect(self):
        self.connect()
        self.transport.fail_write = True
        self.run_for(2.0)

        self.assertEqual(self.session.phase, DEGRADED)
        self.assertIsInstance(self.errors[0], DeviceNotRespondingError)
        self.assertEqual(len(self.transport.open_calls), 1)

    def test_heartbeat_during_grace_counts(self):
        self.connect()
        self.scheduler.set_time(0.5)
        self.feed("ANGLE:1.0")

        self.assertTrue(self.session.state.responding)
        self.assertEqual(self.session.phase, CONNECTED)

    def test_malformed_known_line_is_heartbeat(self):
        self.connect()
        self.feed("VEL:abc")

        self.assertTrue(self.session.state.responding)
        self.assertIsNone(self.session.state.telemetry.velocity)
        self.assertEqual(self.errors, [])

    def test_unrecognized_line_is_not_heartbeat(self):
        self.connect()
        self.feed("hello")

        self.assertFalse(self.session.state.responding)
        self.assertIsNone(self.session.state.last_valid_response_at)

    def test_heartbeats_keep_device_alive(self):
        self.connect()
        for _ in range(10):
            self.feed("OK")
            self.run_for(1.5)

        self.assertEqual(self.errors, [])
        self.assertEqual(self.session.phase, CONNECTED)

    def test_recovery_from_degraded(self):
        self.connect()
        self.run_for(4.1)
        self.assertEqual(self.session.phase, DEGRADED)

        self.feed("OK")

        self.assertEqual(self.session.phase, CONNECTED)
        self.assertEqual(self.phases[-1], (CONNECTED, "responding"))


class TestReconnect(SessionTestCase):

    def test_responsiveness_loss_triggers_reconnect_once(self):
        self.connect()
        self.feed("OK")
        self.run_for(2.0)

        self.assertEqual(self.session.phase, RECONNECTING)
        self.assertEqual(self.error_kinds(), [ErrorKind.NOT_RESPONDING])
        self.assertEqual(str(self.errors[0]), "Device stopped responding.")
        self.assertFalse(self.transport.is_open())

        # Reopen succeeds but the device stays silent
        self.run_for(10.0)

        self.assertEqual(len(self.transport.open_calls), 2)
        self.assertEqual(self.session.phase, DEGRADED)
        self.assertEqual(self.error_kinds(), [ErrorKind.NOT_RESPONDING, ErrorKind.NOT_RESPONDING])

    def test_reconnect_reopens_last_port_after_delay(self):
        self.connect("COM4", 57600)
        self.feed("OK")
        self.run_for(2.0)
        self.run_for(0.9)
        self.assertEqual(len(self.transport.open_calls), 1)

        self.run_for(0.1)

        self.assertEqual(self.transport.open_calls[-1], ("COM4", 57600))
        self.assertEqual(self.phases[-1], (CONNECTED, "grace"))
        self.assertEqual(self.session.state.reconnect_attempts, 0)

    def test_recovered_device_may_reconnect_again(self):
        self.connect()
        self.feed("OK")
        self.run_for(3.0)  # lost at 2.0, reopened at 3.0
        self.feed("OK")
        self.run_for(2.0)  # lost again

        self.assertEqual(self.session.phase, RECONNECTING)
        self.run_for(1.0)
        self.assertEqual(len(self.transport.open_calls), 3)

    def test_three_failures_exhaust_reconnect(self):
        self.connect()
        self.feed("OK")
        self.transport.fail_open = True
        self.run_for(10.0)

        self.assertEqual(len(self.transport.open_calls), 4)
        self.assertIsInstance(self.errors[-1], ReconnectExhaustedError)
        state = self.session.state
        self.assertEqual(state.phase, DEGRADED)
        self.assertTrue(state.reconnect_exhausted)
        self.assertEqual(state.reconnect_attempts, 3)
        self.assertFalse(state.is_open)
        self.assertIsNone(self.scheduler.next_due())

        details = [detail for phase, detail in self.phases if phase is RECONNECTING]
        self.assertEqual(details, ["attempt 1/3", "attempt 2/3", "attempt 3/3"])
        self.assertEqual(self.phases[-1], (DEGRADED, "reconnect exhausted"))

        self.run_for(30.0)
        self.assertEqual(len(self.transport.open_calls), 4)

    def test_manual_connect_after_exhaustion(self):
        self.connect()
        self.feed("OK")
        self.transport.fail_open = True
        self.run_for(10.0)

        self.transport.fail_open = False
        self.connect()

        state = self.session.state
        self.assertEqual(state.phase, CONNECTED)
        self.assertFalse(state.reconnect_exhausted)
        self.assertEqual(state.reconnect_attempts, 0)

    def test_reconnect_succeeds_on_second_attempt(self):
        self.connect()
        self.feed("OK")
        self.transport.open_failures = 1
        self.run_for(4.0)

        self.assertEqual(len(self.transport.open_calls), 3)
        self.assertEqual(self.session.phase, CONNECTED)
        self.assertEqual(self.session.state.reconnect_attempts, 0)
        self.assertNotIn(ErrorKind.RECONNECT_EXHAUSTED, self.error_kinds())

    def test_connect_refused_while_reconnecting(self):
        self.connect()
        self.feed("OK")
        self.run_for(2.0)

        with self.assertLogs("tfd_sdk.session.session", level="WARNING"):
            self.connect("COM4")

        self.assertEqual(self.session.phase, RECONNECTING)
        self.assertEqual(len(self.transport.open_calls), 1)

    def test_manual_reconnect(self):
        self.connect()
        self.session.reconnect()
        self.session.process_pending()

        self.assertEqual(self.phase_names()[-2:], [DEGRADED, RECONNECTING])
        self.run_for(1.0)
        self.assertEqual(self.session.phase, CONNECTED)

    def test_reconnect_ignored_when_disconnected(self):
        with self.assertLogs("tfd_sdk.session.session", level="WARNING"):
            self.session.reconnect()
            self.session.process_pending()
        self.assertEqual(self.transport.open_calls, [])

    def test_lines_after_reconnect_close_are_ignored(self):
        self.connect()
        self.feed("OK")
        self.run_for(2.0)
        self.feed("ANGLE:10.0")

        self.assertEqual(self.session.phase, RECONNECTING)
        self.assertEqual(self.samples, [])


class TestDisconnect(SessionTestCase):

    def test_disconnect_twice(self):
        self.connect()
        self.session.disconnect()
        self.session.process_pending()
        self.session.disconnect()
        self.session.process_pending()

        self.assertEqual(self.session.phase, DISCONNECTED)
        self.assertEqual(self.phase_names().count(DISCONNECTED), 1)
        self.assertFalse(self.transport.is_open())

    def test_disconnect_keeps_last_port(self):
        self.connect("COM4", 9600)
        self.session.disconnect()
        self.session.process_pending()

        state = self.session.state
        self.assertEqual(state.port, "COM4")
        self.assertEqual(state.baudrate, 9600)

    def test_disconnect_cancels_timers(self):
        self.connect()
        self.feed("OK")
        self.session.disconnect()
        self.run_for(10.0)

        self.assertEqual(self.errors, [])
        self.assertEqual(self.transport.written, [])
        self.assertIsNone(self.scheduler.next_due())

    def test_disconnect_clears_bookkeeping(self):
        self.connect()
        self.feed("ANGLE:1.0,VEL:2.0,TORQUE:0.1")
        self.session.disconnect()
        self.session.process_pending()

        state = self.session.state
        self.assertFalse(state.responding)
        self.assertIsNone(state.last_valid_response_at)
        self.assertTrue(state.telemetry.is_empty)

    def test_disconnect_during_reconnect_stops_retries(self):
        self.connect()
        self.feed("OK")
        self.run_for(2.0)
        self.session.disconnect()
        self.run_for(10.0)

        self.assertEqual(self.session.phase, DISCONNECTED)
        self.assertEqual(len(self.transport.open_calls), 1)

    def test_close_failure_is_reported(self):
        self.connect()
        self.transport.fail_close = True
        self.session.disconnect()
        self.session.process_pending()

        self.assertEqual(self.session.phase, DISCONNECTED)
        self.assertEqual(self.error_kinds(), [ErrorKind.TRANSPORT])

    def test_device_unplugged(self):
        self.connect()
        self.transport.drop()
        self.session.process_pending()

        self.assertEqual(self.session.phase, DISCONNECTED)
        self.assertEqual([str(e) for e in self.errors], ["Device disconnected"])
        self.assertIsNone(self.scheduler.next_due())

    def test_transport_error_surfaces_without_phase_change(self):
        self.connect()
        self.transport.report_error("framing error")
        self.session.process_pending()

        self.assertEqual(self.session.phase, CONNECTED)
        self.assertEqual(self.error_kinds(), [ErrorKind.TRANSPORT])
        self.assertEqual(str(self.errors[0]), "framing error")


class TestApplyConfig(SessionTestCase):

    def test_apply_requires_connection(self):
        self.session.apply_config(HapticConfig(mode=HapticMode.CLOCKWISE))
        self.session.process_pending()

        self.assertIsInstance(self.errors[0], TransportError)
        self.assertEqual(str(self.errors[0]), "Not connected to device")

    def test_apply_writes_lines_in_order(self):
        self.connect()
        self.session.apply_config(HapticConfig(
            mode=HapticMode.ENDSTOPS,
            endstop_mode=EndstopStyle.ROUGH,
            endstop_turns=1.25,
        ))
        self.session.process_pending()

        self.assertEqual(self.transport.written, ["set endstops-coarse:1.3\n", "set sticky:off\n"])
        self.assertEqual(self.session.config.mode, HapticMode.ENDSTOPS)

    def test_unsupported_mode_rejected_by_profile(self):
        self.session = self.make_session(profile=STEERING_WHEEL)
        self.connect()
        self.session.apply_config(HapticConfig(mode=HapticMode.LATCH))
        self.session.process_pending()

        self.assertIsInstance(self.errors[0], ConfigurationError)
        self.assertEqual(self.transport.written, [])
        self.assertIsNone(self.session.config)

    def test_wire_spelling_mode_is_applied(self):
        self.connect()
        self.session.apply_config(HapticConfig(
            mode="endstops",
            endstop_turns=2.0,
            endstop_mode=EndstopStyle.SOFT,
            is_sticky=True,
        ))
        self.feed("ANGLE:900.0")

        self.assertEqual(self.errors, [])
        self.assertEqual(self.transport.written, ["set endstops-ultra:2.0\n", "set sticky:on\n"])
        self.assertIs(self.session.config.mode, HapticMode.ENDSTOPS)
        self.assertEqual(self.samples[-1].angle, 360.0)

    def test_unknown_mode_reported(self):
        self.connect()
        self.session.apply_config(HapticConfig(mode="warp-drive"))
        self.session.process_pending()

        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], UnknownModeError)
        self.assertEqual(self.errors[0].kind, ErrorKind.CONFIGURATION)
        self.assertEqual(self.transport.written, [])
        self.assertIsNone(self.session.config)

    def test_non_finite_parameter_rejected(self):
        self.connect()
        self.session.apply_config(HapticConfig(mode=HapticMode.INCREASED_TORQUE, torque=float("nan")))
        self.session.process_pending()

        self.assertEqual(self.error_kinds(), [ErrorKind.CONFIGURATION])
        self.assertEqual(self.transport.written, [])

    def test_write_failure_aborts_and_reports_once(self):
        self.connect()
        self.transport.fail_write = True
        self.session.apply_config(HapticConfig(mode=HapticMode.ENDSTOPS))
        self.session.process_pending()

        self.assertEqual(self.error_kinds(), [ErrorKind.TRANSPORT])
        self.assertIsNone(self.session.config)

    def test_endstop_config_clamps_angle(self):
        self.connect()
        self.session.apply_config(HapticConfig(mode=HapticMode.ENDSTOPS, endstop_turns=1.0))
        self.feed("ANGLE:500.0")

        self.assertEqual(self.samples[-1].angle, 180.0)

    def test_set_profile_sanitizes_config(self):
        self.connect()
        self.session.apply_config(HapticConfig(mode=HapticMode.LATCH))
        self.session.set_profile(STEERING_WHEEL)
        self.session.process_pending()

        self.assertEqual(self.session.config.mode, HapticMode.NONE)
        self.assertIs(self.session.profile, STEERING_WHEEL)


class TestCommands(SessionTestCase):

    def test_zero_commands(self):
        self.connect()
        self.session.reset()
        self.session.calibrate()
        self.session.process_pending()

        self.assertEqual(self.transport.written, ["set zero\n", "set zero\n"])

    def test_single_queries(self):
        self.connect()
        self.session.request_angle()
        self.session.request_velocity()
        self.session.request_torque()
        self.session.request_all()
        self.session.process_pending()

        self.assertEqual(
            self.transport.written,
            ["get angle\n", "get vel\n", "get torque\n", "get all\n"],
        )

    def test_command_when_disconnected(self):
        self.session.reset()
        self.session.process_pending()
        self.assertEqual([str(e) for e in self.errors], ["Not connected to device"])


class TestTelemetry(SessionTestCase):

    def test_combined_line(self):
        self.connect()
        self.feed("ANGLE:12.50,VEL:-3.20,TORQUE:0.75")

        self.assertEqual(self.samples, [TelemetrySample(angle=12.5, velocity=-3.2, torque=0.75)])

    def test_partial_lines_merge(self):
        self.connect()
        self.feed("ANGLE:12.50,VEL:-3.20,TORQUE:0.75", "VEL:abc", "VEL:1.0")

        self.assertEqual(len(self.samples), 2)
        self.assertEqual(self.samples[-1], TelemetrySample(angle=12.5, velocity=1.0, torque=0.75))
        self.assertEqual(self.session.state.telemetry, self.samples[-1])

    def test_ack_produces_no_telemetry(self):
        self.connect()
        self.feed("OK")
        self.assertEqual(self.samples, [])


class TestPolling(SessionTestCase):

    def test_combined_polling(self):
        self.session = self.make_session(polling=True)
        self.connect()
        self.run_for(0.1)

        self.assertEqual(self.transport.written, ["get all\n"] * 3)
        self.assertTrue(self.session.state.polling)

    def test_sequential_polling(self):
        profile = DeviceProfile("sequential", GENERIC.modes, PollStrategy.SEQUENTIAL)
        self.session = self.make_session(polling=True, profile=profile)
        self.connect()
        self.run_for(0.04)

        self.assertEqual(self.transport.written, ["get angle\n", "get vel\n", "get torque\n"])

    def test_enable_polling_with_interval(self):
        self.connect()
        self.session.set_polling(True, 100)
        self.run_for(0.35)

        self.assertEqual(len(self.transport.written), 3)
        self.assertEqual(self.session.state.poll_interval_ms, 100)

    def test_disable_polling_stops_immediately(self):
        self.session = self.make_session(polling=True)
        self.connect()
        self.run_for(0.1)
        self.session.set_polling(False)
        self.session.process_pending()
        self.run_for(1.0)

        self.assertEqual(len(self.transport.written), 3)
        self.assertFalse(self.session.state.polling)

    def test_interval_out_of_range(self):
        with self.assertRaises(ConfigurationError):
            self.session.set_polling(True, 10)
        with self.assertRaises(ConfigurationError):
            self.session.set_polling(True, 6000)

    def test_poll_write_failures_are_absorbed(self):
        self.session = self.make_session(polling=True)
        self.connect()
        self.transport.fail_write = True
        with self.assertLogs("tfd_sdk.session.poller", level="WARNING"):
            self.run_for(0.1)

        self.assertEqual(self.errors, [])
        self.assertEqual(self.session.phase, CONNECTED)

    def test_polling_stops_on_disconnect(self):
        self.session = self.make_session(polling=True)
        self.connect()
        self.session.disconnect()
        self.run_for(1.0)

        self.assertEqual(self.transport.written, [])


class TestAutoConnect(SessionTestCase):

    def test_connects_to_remembered_device(self):
        self.preferences.set_last_device_id("TFD-0002")
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls, [("COM4", 115200)])
        self.assertEqual(self.session.phase, CONNECTED)

    def test_no_remembered_device_requires_manual_choice(self):
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls, [])
        self.assertEqual(self.error_kinds(), [ErrorKind.CONFIGURATION])
        self.assertEqual(self.session.phase, DISCONNECTED)

    def test_fallback_to_first_compatible_port(self):
        self.session = self.make_session(auto_connect_fallback=True)
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls, [("COM3", 115200)])
        self.assertEqual(self.preferences.get_last_device_id(), "TFD-0001")

    def test_no_ports(self):
        self.transport.ports = []
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual([str(e) for e in self.errors], ["No serial ports found."])

    def test_no_compatible_ports(self):
        self.transport.ports = [self.transport.ports[0]]
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual([str(e) for e in self.errors], ["No compatible devices with Product ID found."])

    def test_listing_failure(self):
        self.transport.fail_list = True
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual(self.error_kinds(), [ErrorKind.TRANSPORT])

    def test_auto_connect_replaces_open_connection(self):
        self.preferences.set_last_device_id("TFD-0001")
        self.connect("COM4")
        self.preferences.set_last_device_id("TFD-0001")
        self.session.auto_connect()
        self.session.process_pending()

        self.assertEqual(self.transport.open_calls[-1], ("COM3", 115200))
        self.assertIn(DISCONNECTED, self.phase_names())


class TestEndToEnd(SessionTestCase):

    def test_connect_probe_and_configure(self):
        self.connect("COM3", 115200)
        self.run_for(2.0)
        self.assertEqual(self.transport.written, ["get all\n"])

        self.feed("OK")
        self.assertEqual(self.session.phase, CONNECTED)
        self.assertTrue(self.session.state.responding)

        self.session.apply_config(HapticConfig(
            mode=HapticMode.ENDSTOPS,
            endstop_mode=EndstopStyle.SOFT,
            endstop_turns=2.0,
            is_sticky=True,
        ))
        self.session.process_pending()

        self.assertEqual(
            self.transport.written[-2:],
            ["set endstops-ultra:2.0\n", "set sticky:on\n"],
        )
        self.assertEqual(self.errors, [])
        self.assertEqual(self.phase_names(), [CONNECTING, CONNECTED, CONNECTED])


class TestDispatcher(SessionTestCase):

    def test_background_dispatcher(self):
        connected = threading.Event()
        self.session.subscribe_phase(
            lambda phase, detail: connected.set() if phase is CONNECTED else None
        )
        with self.session:
            self.session.connect("COM3")
            self.assertTrue(connected.wait(timeout=2.0))

        self.assertEqual(self.session.phase, DISCONNECTED)
        self.assertFalse(self.transport.is_open())

    def test_close_detaches_from_transport(self):
        self.connect()
        self.session.close()
        self.feed("ANGLE:1.0")

        self.assertEqual(self.samples, [])
        self.assertEqual(len(self.transport._line_callbacks), 0)

    def test_subscriber_errors_do_not_break_session(self):
        def broken(phase, detail):
            raise RuntimeError("boom")

        self.session.subscribe_phase(broken)
        self.connect()

        self.assertEqual(self.session.phase, CONNECTED)

    def test_unsubscribe(self):
        received = []
        unsubscribe = self.session.subscribe_errors(received.append)
        unsubscribe()
        self.session.reset()
        self.session.process_pending()

        self.assertEqual(received, [])
        self.assertEqual(len(self.errors), 1)


if __name__ == "__main__":
    unittest.main()
