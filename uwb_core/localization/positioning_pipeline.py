"""
Tag Positioning Pipeline.

Runs one estimation cycle per ranging response:

    samples -> reset quality -> consistency check -> multi-triplet
    estimator -> temporal filter -> handlers

Usage:
    pipeline = TagPositioningPipeline("T1", layout)

    result = pipeline.process(batch.samples)

    if result.updated:
        print(f"Smoothed: ({result.smoothed_x:.1f}, {result.smoothed_y:.1f})")
    else:
        print(f"Rejected ({result.raw.status.name}), holding last position")

Several tags are handled by MultiTagTracker, which keeps one pipeline (and
one filter state) per tag and serializes cycles of the same tag.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from uwb_core.proto.distance_sample import DistanceSample, DistanceBatch
from uwb_core.proto.position_estimate import PositionEstimate
from uwb_core.proto.range_report import RangeReport
from uwb_core.localization.anchor_layout import AnchorLayout, BoundaryRect
from uwb_core.localization.consistency_checker import (
    ConsistencyChecker,
    ConsistencyConfig,
)
from uwb_core.localization.position_estimator import PositionEstimator, EstimatorConfig
from uwb_core.localization.temporal_filter import (
    FilterState,
    TemporalFilter,
    TemporalFilterConfig,
)
from uwb_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class PositionHandlers:
    """
    Caller-supplied callbacks, all optional.

    Attributes:
        on_distance_update: (tag_id, anchor_index, distance) for each reading
        on_position_update: (tag_id, x, y) with the smoothed position
        on_estimate_rejected: (tag_id, estimate) when a cycle is rejected
    """

    on_distance_update: Optional[Callable[[str, int, float], None]] = None
    on_position_update: Optional[Callable[[str, float, float], None]] = None
    on_estimate_rejected: Optional[Callable[[str, PositionEstimate], None]] = None


@dataclass
class PipelineConfig:
    """
    Configuration for the positioning pipeline.

    Attributes:
        estimator_config: PositionEstimator configuration
        consistency_config: ConsistencyChecker configuration
        filter_config: TemporalFilter configuration
        enable_consistency_check: Run the triangle-inequality pass
    """

    estimator_config: Optional[EstimatorConfig] = None
    consistency_config: Optional[ConsistencyConfig] = None
    filter_config: Optional[TemporalFilterConfig] = None
    enable_consistency_check: bool = True


@dataclass
class CycleResult:
    """
    Outcome of one estimation cycle.

    Attributes:
        tag_id: Tag ID
        raw: Raw estimate (may be invalid)
        state: Filter state after the cycle
        qualities: Quality weight per anchor index after the consistency pass
        violations: Anchor pairs that broke the triangle inequality
    """

    tag_id: str
    raw: PositionEstimate
    state: FilterState
    qualities: Dict[int, float] = field(default_factory=dict)
    violations: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def updated(self) -> bool:
        """True if the smoothed position moved this cycle."""
        return self.raw.valid

    @property
    def smoothed_x(self) -> float:
        return self.state.estimate_x

    @property
    def smoothed_y(self) -> float:
        return self.state.estimate_y


class TagPositioningPipeline:
    """
    Consistency check, estimator and temporal filter for one tag.

    Features:
    - Quality reset at the start of every cycle
    - Triangle-inequality down-weighting (optional)
    - Weighted or plain triplet averaging
    - Filter holds the last position on rejected cycles
    """

    def __init__(
        self,
        tag_id: str,
        layout: AnchorLayout,
        config: Optional[PipelineConfig] = None,
        handlers: Optional[PositionHandlers] = None,
    ):
        """
        Initialize positioning pipeline.

        Args:
            tag_id: Tag ID for this pipeline
            layout: Anchor layout (not modified)
            config: Pipeline configuration (uses defaults if None)
            handlers: Optional callbacks
        """
        self.tag_id = tag_id
        self.layout = layout
        self.config = config or PipelineConfig()
        self.handlers = handlers or PositionHandlers()
        self.metrics = get_metrics()

        # Per-tag copies so reconfiguring one tag never leaks into another
        self.checker = ConsistencyChecker(
            replace(self.config.consistency_config or ConsistencyConfig())
        )
        self.estimator = PositionEstimator(
            replace(self.config.estimator_config or EstimatorConfig())
        )
        self.filter = TemporalFilter(
            tag_id, layout, replace(self.config.filter_config or TemporalFilterConfig())
        )

    @property
    def state(self) -> FilterState:
        return self.filter.state

    @property
    def position(self) -> Tuple[float, float]:
        """Smoothed (x, y) in cm."""
        return self.filter.position

    def process(self, samples: Sequence[DistanceSample]) -> CycleResult:
        """
        Run one estimation cycle.

        Args:
            samples: Distance samples of one ranging response

        Returns:
            CycleResult with raw estimate, filter state and qualities
        """
        self.metrics.increment('ranging_cycles')

        # Quality belongs to this distance vector only
        samples = [s.with_quality(1.0) for s in samples]

        if self.handlers.on_distance_update is not None:
            for sample in samples:
                if sample.is_usable:
                    self.handlers.on_distance_update(self.tag_id, sample.anchor_index, sample.distance)

        violations: List[Tuple[int, int]] = []
        if self.config.enable_consistency_check:
            report = self.checker.check(self.layout, samples)
            samples = report.samples
            violations = report.violations

        raw = self.estimator.estimate(self.layout, samples)
        state = self.filter.update(raw)

        if raw.valid:
            if self.handlers.on_position_update is not None:
                self.handlers.on_position_update(self.tag_id, state.estimate_x, state.estimate_y)
        else:
            logger.debug("Tag %s cycle rejected: %s", self.tag_id, raw.status.name)
            if self.handlers.on_estimate_rejected is not None:
                self.handlers.on_estimate_rejected(self.tag_id, raw)

        return CycleResult(
            tag_id=self.tag_id,
            raw=raw,
            state=state,
            qualities={s.anchor_index: s.quality for s in samples if s.is_usable},
            violations=violations,
        )

    def process_batch(self, batch: DistanceBatch) -> CycleResult:
        """Run one cycle from a DistanceBatch."""
        return self.process(batch.samples)

    def set_layout(self, layout: AnchorLayout):
        """Switch to a new layout and reset the filter."""
        self.layout = layout
        self.filter.reset(layout)

    def set_noise(self, process_noise: float, measurement_noise: float):
        self.filter.set_noise(process_noise, measurement_noise)

    def set_boundary(self, boundary: Optional[BoundaryRect]):
        self.estimator.config.boundary = boundary

    def set_weighted(self, weighted: bool):
        self.estimator.config.use_quality_weights = weighted

    def reset(self):
        """Reset filter to its startup state."""
        self.filter.reset()


class MultiTagTracker:
    """
    Independent positioning pipelines for several tags over one layout.

    Usage:
        tracker = MultiTagTracker(AnchorLayout.default(), max_tags=8)

        report = parse_line(line)
        result = tracker.process_report(report)

        tracker.set_anchor_position(3, 400, 0)   # resets every filter

    Notes:
        - Tag IDs are opaque strings; pipelines are created on first use
        - Cycles of the same tag are serialized with a per-tag lock,
          different tags may run in parallel
        - The per-tag lock is reentrant, so a handler may call set_* or
          reset from inside a cycle; the reconfiguration then applies to
          the next cycle and the current CycleResult keeps the old state
        - The layout is never mutated in place; reconfiguration installs a
          new layout so in-flight cycles keep a consistent one
    """

    def __init__(
        self,
        layout: Optional[AnchorLayout] = None,
        config: Optional[PipelineConfig] = None,
        handlers: Optional[PositionHandlers] = None,
        max_tags: Optional[int] = None,
    ):
        """
        Initialize tracker.

        Args:
            layout: Anchor layout (default 4-anchor rectangle)
            config: Pipeline configuration template for every tag
            handlers: Callbacks shared by every tag
            max_tags: Maximum number of tracked tags (None = unlimited)
        """
        self.layout = layout or AnchorLayout.default()
        self.config = config or PipelineConfig()
        self.handlers = handlers or PositionHandlers()
        self.max_tags = max_tags
        self.metrics = get_metrics()

        self._pipelines: Dict[str, TagPositioningPipeline] = {}
        self._tag_locks: Dict[str, threading.RLock] = {}
        self._registry_lock = threading.RLock()

    @property
    def tag_ids(self) -> List[str]:
        with self._registry_lock:
            return list(self._pipelines)

    def get_pipeline(self, tag_id: str) -> Optional[TagPositioningPipeline]:
        """
        Get or create the pipeline of a tag.

        Returns:
            Pipeline, or None when max_tags is reached
        """
        with self._registry_lock:
            pipeline = self._pipelines.get(tag_id)
            if pipeline is None:
                if self.max_tags is not None and len(self._pipelines) >= self.max_tags:
                    self.metrics.increment_drop('tag_limit')
                    logger.warning("Tag limit %d reached, ignoring tag %s", self.max_tags, tag_id)
                    return None

                pipeline = TagPositioningPipeline(tag_id, self.layout, self.config, self.handlers)
                self._pipelines[tag_id] = pipeline
                self._tag_locks[tag_id] = threading.RLock()
                logger.info("Tracking new tag %s", tag_id)

            return pipeline

    def process(self, tag_id: str, samples: Sequence[DistanceSample]) -> Optional[CycleResult]:
        """
        Run one cycle for a tag.

        Returns:
            CycleResult, or None if the tag cannot be tracked
        """
        pipeline = self.get_pipeline(tag_id)
        if pipeline is None:
            return None

        with self._tag_locks[tag_id]:
            return pipeline.process(samples)

    def process_batch(self, batch: DistanceBatch) -> Optional[CycleResult]:
        return self.process(batch.tag_id, batch.samples)

    def process_report(self, report: RangeReport) -> Optional[CycleResult]:
        return self.process_batch(report.to_batch())

    def get_position(self, tag_id: str) -> Optional[Tuple[float, float]]:
        """Smoothed position of a tag, or None if it is not tracked."""
        with self._registry_lock:
            pipeline = self._pipelines.get(tag_id)
        if pipeline is None:
            return None
        return pipeline.position

    def reset(self, tag_id: Optional[str] = None):
        """Reset one tag's filter, or every filter when tag_id is None."""
        for tid, pipeline in self._locked_pipelines(tag_id):
            pipeline.reset()

    # Configuration surface ---------------------------------------------------

    def set_anchor_position(self, index: int, x: float, y: float):
        layout = AnchorLayout(self.layout.positions)
        layout.set_anchor_position(index, x, y)
        self._install_layout(layout)

    def set_anchor_positions(self, positions: Sequence[Tuple[float, float]]):
        self._install_layout(AnchorLayout(positions))

    def set_anchor_count(self, count: int):
        layout = AnchorLayout(self.layout.positions)
        layout.set_anchor_count(count)
        self._install_layout(layout)

    def set_noise(self, process_noise: float, measurement_noise: float):
        """Change filter noise for every tag and reset the filters."""
        filter_config = replace(
            self.config.filter_config or TemporalFilterConfig(),
            process_noise=process_noise,
            measurement_noise=measurement_noise,
        )
        with self._registry_lock:
            self.config.filter_config = filter_config
            for tid, pipeline in self._locked_pipelines():
                pipeline.set_noise(process_noise, measurement_noise)
                pipeline.reset()

    def set_boundary(self, boundary: Optional[BoundaryRect]):
        """Set an explicit boundary rectangle (None = derive from layout)."""
        estimator_config = replace(
            self.config.estimator_config or EstimatorConfig(), boundary=boundary
        )
        with self._registry_lock:
            self.config.estimator_config = estimator_config
            for tid, pipeline in self._locked_pipelines():
                pipeline.set_boundary(boundary)
                pipeline.reset()

    def _install_layout(self, layout: AnchorLayout):
        with self._registry_lock:
            self.layout = layout
            for tid, pipeline in self._locked_pipelines():
                pipeline.set_layout(layout)
        logger.info("Anchor layout updated: %s", layout)

    def _locked_pipelines(self, tag_id: Optional[str] = None):
        """Yield (tag_id, pipeline) while holding that tag's lock."""
        with self._registry_lock:
            if tag_id is None:
                items = list(self._pipelines.items())
            elif tag_id in self._pipelines:
                items = [(tag_id, self._pipelines[tag_id])]
            else:
                items = []

        for tid, pipeline in items:
            with self._tag_locks[tid]:
                yield tid, pipeline


def create_default_pipeline(tag_id: str, layout: Optional[AnchorLayout] = None) -> TagPositioningPipeline:
    """
    Create positioning pipeline with default configuration.

    Args:
        tag_id: Tag ID
        layout: Anchor layout (default 4-anchor rectangle)

    Returns:
        Configured TagPositioningPipeline
    """
    config = PipelineConfig(
        estimator_config=EstimatorConfig(use_quality_weights=True),
        consistency_config=ConsistencyConfig(penalty=0.5),
        filter_config=TemporalFilterConfig(),
        enable_consistency_check=True,
    )

    return TagPositioningPipeline(tag_id, layout or AnchorLayout.default(), config)
