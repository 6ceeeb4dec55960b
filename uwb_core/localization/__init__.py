"""
Localization Module: Anchor layout, multilateration, smoothing.

Key classes:
- AnchorLayout / BoundaryRect: fixed anchor positions and acceptance area
- ConsistencyChecker: triangle-inequality quality down-weighting
- PositionEstimator: multi-triplet closed-form 2D multilateration
- TemporalFilter: per-axis scalar Kalman smoothing
- TagPositioningPipeline / MultiTagTracker: per-tag estimation cycle
- RangeCalibrator: antenna-delay calibration statistics
"""

from .anchor_layout import (
    AnchorLayout,
    BoundaryRect,
    DEFAULT_ANCHOR_POSITIONS,
    MIN_ANCHORS,
    MAX_ANCHORS,
)
from .consistency_checker import (
    ConsistencyChecker,
    ConsistencyConfig,
    ConsistencyReport,
    create_default_checker,
)
from .position_estimator import (
    PositionEstimator,
    EstimatorConfig,
    create_default_estimator,
)
from .temporal_filter import (
    FilterState,
    TemporalFilter,
    TemporalFilterConfig,
    update_filter_state,
    reset_filter_state,
)
from .positioning_pipeline import (
    TagPositioningPipeline,
    MultiTagTracker,
    PipelineConfig,
    PositionHandlers,
    CycleResult,
    create_default_pipeline,
)
from .range_calibration import (
    RangeCalibrator,
    DelayAdjustment,
)

__all__ = [
    # Layout
    'AnchorLayout',
    'BoundaryRect',
    'DEFAULT_ANCHOR_POSITIONS',
    'MIN_ANCHORS',
    'MAX_ANCHORS',
    # Consistency
    'ConsistencyChecker',
    'ConsistencyConfig',
    'ConsistencyReport',
    'create_default_checker',
    # Estimator
    'PositionEstimator',
    'EstimatorConfig',
    'create_default_estimator',
    # Filter
    'FilterState',
    'TemporalFilter',
    'TemporalFilterConfig',
    'update_filter_state',
    'reset_filter_state',
    # Pipeline
    'TagPositioningPipeline',
    'MultiTagTracker',
    'PipelineConfig',
    'PositionHandlers',
    'CycleResult',
    'create_default_pipeline',
    # Calibration
    'RangeCalibrator',
    'DelayAdjustment',
]
