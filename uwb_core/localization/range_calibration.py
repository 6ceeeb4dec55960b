"""
Range calibration statistics.

Supports antenna-delay calibration of a single anchor: place the tag at a
known distance, feed the measured ranges in, and read back the average, the
relative error and which way to move the antenna delay.
"""

from collections import deque
from dataclasses import dataclass
from typing import List, Optional

# |error| below this is good enough
TOLERANCE_PERCENT = 5.0
# |error| above this warrants a coarse delay step
COARSE_ERROR_PERCENT = 10.0

# Readings kept in the rolling window
DEFAULT_WINDOW = 20

FINE_DELAY_STEP = 10
COARSE_DELAY_STEP = 50


@dataclass
class DelayAdjustment:
    """
    Suggested antenna-delay change.

    Attributes:
        direction: "increase" or "decrease"
        step: Suggested magnitude of the change (delay units)
    """

    direction: str
    step: int

    @property
    def signed_step(self) -> int:
        return self.step if self.direction == "increase" else -self.step


class RangeCalibrator:
    """
    Rolling statistics of range readings against a known target distance.

    Usage:
        calibrator = RangeCalibrator(target_distance_cm=750)

        for d in readings:
            calibrator.add_reading(d)

        print(f"avg={calibrator.average:.1f} err={calibrator.error_percent:.2f}%")
        adjustment = calibrator.suggest_adjustment()
        if adjustment is not None:
            delay += adjustment.signed_step
            calibrator.clear()   # old readings were taken with the old delay
    """

    def __init__(self, target_distance_cm: float = 750.0, max_readings: int = DEFAULT_WINDOW):
        """
        Initialize calibrator.

        Args:
            target_distance_cm: True tag-to-anchor distance (cm)
            max_readings: Size of the rolling window
        """
        if target_distance_cm <= 0:
            raise ValueError(f"Target distance must be positive: {target_distance_cm}")
        if max_readings <= 0:
            raise ValueError(f"max_readings must be positive: {max_readings}")

        self.target_distance_cm = float(target_distance_cm)
        self._readings = deque(maxlen=max_readings)

    @property
    def readings(self) -> List[float]:
        return list(self._readings)

    @property
    def num_readings(self) -> int:
        return len(self._readings)

    def add_reading(self, distance_cm: float) -> bool:
        """
        Add one measured range.

        Returns:
            True if accepted, False for a "no reading" value (<= 0)
        """
        if distance_cm <= 0:
            return False
        self._readings.append(float(distance_cm))
        return True

    @property
    def average(self) -> float:
        """Mean of the window, 0.0 without readings."""
        if not self._readings:
            return 0.0
        return sum(self._readings) / len(self._readings)

    @property
    def error_percent(self) -> float:
        """Relative error of the average vs. the target, in percent."""
        if not self._readings:
            return 0.0
        return (self.average - self.target_distance_cm) / self.target_distance_cm * 100.0

    def reading_error_percent(self, distance_cm: float) -> float:
        """Relative error of a single reading, in percent."""
        return (distance_cm - self.target_distance_cm) / self.target_distance_cm * 100.0

    @property
    def is_within_tolerance(self) -> bool:
        return bool(self._readings) and abs(self.error_percent) < TOLERANCE_PERCENT

    def suggest_adjustment(self) -> Optional[DelayAdjustment]:
        """
        Suggest an antenna-delay change.

        Returns:
            DelayAdjustment, or None without readings or when within tolerance
        """
        if not self._readings or self.is_within_tolerance:
            return None

        error = self.error_percent
        direction = "decrease" if error > 0 else "increase"
        step = COARSE_DELAY_STEP if abs(error) > COARSE_ERROR_PERCENT else FINE_DELAY_STEP
        return DelayAdjustment(direction=direction, step=step)

    def set_target(self, target_distance_cm: float):
        if target_distance_cm <= 0:
            raise ValueError(f"Target distance must be positive: {target_distance_cm}")
        self.target_distance_cm = float(target_distance_cm)

    def clear(self):
        self._readings.clear()
