#!/usr/bin/env python3
"""
Interactive Mini-TFD Session Script.

Connects to a knob or steering wheel, prints live telemetry and cycles
through a few haptic modes.

Usage:
    python examples/live_session.py            # auto-connect to remembered device
    python examples/live_session.py COM3       # explicit port
"""

import sys
import time
import logging
from pathlib import Path

# Add SDK to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tfd_sdk import (
    KNOB,
    DevicePreferences,
    DeviceSession,
    EndstopStyle,
    HapticConfig,
    HapticMode,
    SerialTransport,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)

DEMO_CONFIGS = [
    HapticConfig(mode=HapticMode.SOFT_DETENTS),
    HapticConfig(mode=HapticMode.CENTER_DETENT),
    HapticConfig(mode=HapticMode.INCREASED_TORQUE, torque=0.35),
    HapticConfig(mode=HapticMode.ENDSTOPS, endstop_turns=1.0, endstop_mode=EndstopStyle.MEDIUM, is_sticky=True),
    HapticConfig(mode=HapticMode.NONE),
]


def print_telemetry(sample):
    angle = f"{sample.angle:8.1f}" if sample.angle is not None else "       ?"
    velocity = f"{sample.velocity:8.1f}" if sample.velocity is not None else "       ?"
    torque = f"{sample.torque:6.2f}" if sample.torque is not None else "     ?"
    print(f"\rAngle: {angle} deg | Vel: {velocity} deg/s | Torque: {torque} Nm", end="")
    sys.stdout.flush()


def main():
    port = sys.argv[1] if len(sys.argv) > 1 else None

    session = DeviceSession(SerialTransport(), profile=KNOB, preferences=DevicePreferences())
    session.subscribe_phase(lambda phase, detail: print(f"\n[{phase.value}] {detail or ''}"))
    session.subscribe_errors(lambda error: print(f"\n[{error.kind.value}] {error}"))
    session.subscribe_telemetry(print_telemetry)

    with session:
        if port:
            print(f"Connecting to {port}...")
            session.connect(port)
        else:
            print("Auto-connecting to remembered device...")
            session.auto_connect()

        try:
            time.sleep(3.0)
            if not session.state.is_open:
                print("\nNot connected. Pass a port, e.g. COM3 or /dev/ttyACM0")
                return

            for config in DEMO_CONFIGS:
                print(f"\n\nApplying {config.mode.value}...")
                session.apply_config(config)
                time.sleep(5.0)

        except KeyboardInterrupt:
            print("\nStopping...")

    print("\nDone.")


if __name__ == "__main__":
    main()
