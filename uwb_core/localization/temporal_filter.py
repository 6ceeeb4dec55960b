"""
Temporal Filter (per-axis scalar Kalman).

Smooths raw multilateration output into a stable position. X and Y are
filtered independently (ranging errors treated as uncorrelated across
axes) with a static position model:

    predict:  P += q
    gain:     k = P / (P + r)
    update:   est += k * (z - est);  P = (1 - k) * P

Larger q tracks faster but noisier; larger r is smoother but laggier.
Invalid raw estimates leave the state untouched (no update, no decay).
"""

import math
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from uwb_core.proto.position_estimate import PositionEstimate
from uwb_core.localization.anchor_layout import AnchorLayout
from uwb_core.metrics import get_metrics

DEFAULT_PROCESS_NOISE = 0.01
DEFAULT_MEASUREMENT_NOISE = 1.0
DEFAULT_INITIAL_ERROR_COV = 100.0


@dataclass(frozen=True)
class FilterState:
    """
    Filter state of one tracked tag.

    Attributes:
        estimate_x: Filtered X (cm)
        estimate_y: Filtered Y (cm)
        error_cov_x: Error covariance on X
        error_cov_y: Error covariance on Y
        process_noise: q
        measurement_noise: r
        initial_x: Startup X, restored by reset
        initial_y: Startup Y, restored by reset
        initial_error_cov: Startup covariance, restored by reset
        num_updates: Valid measurements folded in since startup/reset
    """

    estimate_x: float
    estimate_y: float
    error_cov_x: float
    error_cov_y: float
    process_noise: float = DEFAULT_PROCESS_NOISE
    measurement_noise: float = DEFAULT_MEASUREMENT_NOISE
    initial_x: float = 0.0
    initial_y: float = 0.0
    initial_error_cov: float = DEFAULT_INITIAL_ERROR_COV
    num_updates: int = 0

    def __post_init__(self):
        """Validate filter parameters."""
        if self.process_noise < 0:
            raise ValueError(f"Process noise cannot be negative: {self.process_noise}")

        if self.measurement_noise <= 0:
            raise ValueError(f"Measurement noise must be positive: {self.measurement_noise}")

        if self.error_cov_x < 0 or self.error_cov_y < 0:
            raise ValueError("Error covariance cannot be negative")

    @property
    def position(self) -> Tuple[float, float]:
        """Filtered (x, y) in cm."""
        return (self.estimate_x, self.estimate_y)

    @classmethod
    def initial(
        cls,
        x: float,
        y: float,
        error_cov: float = DEFAULT_INITIAL_ERROR_COV,
        process_noise: float = DEFAULT_PROCESS_NOISE,
        measurement_noise: float = DEFAULT_MEASUREMENT_NOISE,
    ) -> 'FilterState':
        """Startup state at (x, y) with a large covariance."""
        return cls(
            estimate_x=float(x),
            estimate_y=float(y),
            error_cov_x=float(error_cov),
            error_cov_y=float(error_cov),
            process_noise=float(process_noise),
            measurement_noise=float(measurement_noise),
            initial_x=float(x),
            initial_y=float(y),
            initial_error_cov=float(error_cov),
        )


def _update_axis(estimate: float, error_cov: float, measurement: float,
                 q: float, r: float) -> Tuple[float, float]:
    error_cov = error_cov + q
    k = error_cov / (error_cov + r)
    estimate = estimate + k * (measurement - estimate)
    error_cov = (1.0 - k) * error_cov
    return estimate, error_cov


def update_filter_state(state: FilterState, raw: PositionEstimate) -> FilterState:
    """
    Fold one raw estimate into the filter state.

    Args:
        state: Current filter state
        raw: Raw estimate from the position estimator

    Returns:
        New FilterState, or the same state when raw is not valid
    """
    if not raw.valid:
        return state

    q = state.process_noise
    r = state.measurement_noise

    est_x, cov_x = _update_axis(state.estimate_x, state.error_cov_x, raw.x, q, r)
    est_y, cov_y = _update_axis(state.estimate_y, state.error_cov_y, raw.y, q, r)

    return replace(
        state,
        estimate_x=est_x,
        estimate_y=est_y,
        error_cov_x=cov_x,
        error_cov_y=cov_y,
        num_updates=state.num_updates + 1,
    )


def reset_filter_state(state: FilterState) -> FilterState:
    """Re-initialize estimate and covariance to their startup values."""
    return replace(
        state,
        estimate_x=state.initial_x,
        estimate_y=state.initial_y,
        error_cov_x=state.initial_error_cov,
        error_cov_y=state.initial_error_cov,
        num_updates=0,
    )


@dataclass
class TemporalFilterConfig:
    """
    Configuration for the temporal filter.

    Attributes:
        process_noise: q, added to the covariance every update
        measurement_noise: r, assumed variance of raw estimates
        initial_error_cov: Covariance at startup/reset
        initial_position: Startup (x, y); None = center of the layout bounds
    """

    process_noise: float = DEFAULT_PROCESS_NOISE
    measurement_noise: float = DEFAULT_MEASUREMENT_NOISE
    initial_error_cov: float = DEFAULT_INITIAL_ERROR_COV
    initial_position: Optional[Tuple[float, float]] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.process_noise < 0:
            raise ValueError(f"Process noise cannot be negative: {self.process_noise}")

        if self.measurement_noise <= 0:
            raise ValueError(f"Measurement noise must be positive: {self.measurement_noise}")

        if self.initial_error_cov < 0:
            raise ValueError(f"Initial error covariance cannot be negative: {self.initial_error_cov}")


class TemporalFilter:
    """
    Per-tag holder of a FilterState.

    Usage:
        filt = TemporalFilter("T1", layout, config)

        estimate = estimator.estimate(layout, samples)
        state = filt.update(estimate)       # unchanged if not estimate.valid

        x, y = filt.position

        # tag known to have jumped (e.g. layout changed)
        filt.reset()
    """

    def __init__(
        self,
        tag_id: str,
        layout: AnchorLayout,
        config: Optional[TemporalFilterConfig] = None,
    ):
        """
        Initialize temporal filter.

        Args:
            tag_id: Tag ID
            layout: Anchor layout (for the default start point)
            config: Filter configuration (uses defaults if None)
        """
        self.tag_id = tag_id
        self.config = config or TemporalFilterConfig()
        self.metrics = get_metrics()

        self._state = self._startup_state(layout)

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def position(self) -> Tuple[float, float]:
        return self._state.position

    def update(self, raw: PositionEstimate) -> FilterState:
        """
        Update with a raw estimate.

        Args:
            raw: PositionEstimate from the estimator

        Returns:
            Current FilterState (unchanged if raw is not valid)
        """
        if not raw.valid:
            return self._state

        prev_x, prev_y = self._state.position
        self._state = update_filter_state(self._state, raw)

        self.metrics.increment('filter_updates')
        self.metrics.record_histogram(
            'filter_innovation_cm', math.hypot(raw.x - prev_x, raw.y - prev_y)
        )

        return self._state

    def reset(self, layout: Optional[AnchorLayout] = None):
        """
        Reset to startup estimate/covariance.

        Args:
            layout: New layout; recomputes the start point when the config
                does not pin one
        """
        if layout is not None:
            self._state = self._startup_state(layout)
        else:
            self._state = reset_filter_state(self._state)
        self.metrics.increment('filter_resets')

    def set_noise(self, process_noise: float, measurement_noise: float):
        """Change q and r, keeping the current estimate and covariance."""
        self._state = replace(
            self._state,
            process_noise=process_noise,
            measurement_noise=measurement_noise,
        )
        self.config.process_noise = process_noise
        self.config.measurement_noise = measurement_noise

    def _startup_state(self, layout: AnchorLayout) -> FilterState:
        if self.config.initial_position is not None:
            x0, y0 = self.config.initial_position
        else:
            x0, y0 = layout.centroid_of_bounds()

        return FilterState.initial(
            x0,
            y0,
            error_cov=self.config.initial_error_cov,
            process_noise=self.config.process_noise,
            measurement_noise=self.config.measurement_noise,
        )
