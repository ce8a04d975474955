"""Accumulates decoded samples into the session's current telemetry.

Maintains mutable readings internally but produces immutable snapshots.
"""
from __future__ import annotations

from typing import Optional

from ..models import HapticConfig, HapticMode, TelemetrySample


class TelemetryAccumulator:
    """Merges partial samples and produces TelemetrySample snapshots.

    Partial lines such as ``VEL:1.0`` only replace the field they carry.
    While the active mode is ``endstops`` the angle is clamped to the
    configured travel.
    """

    def __init__(self):
        self._angle: Optional[float] = None
        self._velocity: Optional[float] = None
        self._torque: Optional[float] = None
        self._config: Optional[HapticConfig] = None

    def set_config(self, config: Optional[HapticConfig]) -> None:
        """Set the applied configuration used for angle clamping."""
        self._config = config

    def apply(self, sample: TelemetrySample) -> bool:
        """Merge a sample into the current readings.

        Returns:
            True if any field was updated
        """
        if sample.is_empty:
            return False
        if sample.angle is not None:
            self._angle = self._clamp_angle(sample.angle)
        if sample.velocity is not None:
            self._velocity = sample.velocity
        if sample.torque is not None:
            self._torque = sample.torque
        return True

    def snapshot(self) -> TelemetrySample:
        return TelemetrySample(angle=self._angle, velocity=self._velocity, torque=self._torque)

    def reset(self) -> None:
        """Forget all readings. The applied configuration is kept."""
        self._angle = None
        self._velocity = None
        self._torque = None

    def _clamp_angle(self, angle: float) -> float:
        config = self._config
        if config is None or config.mode is not HapticMode.ENDSTOPS:
            return angle
        return max(config.endstop_min_angle, min(config.endstop_max_angle, angle))
