"""
Multi-Triplet Position Estimator (2D Multilateration).

Closed-form, non-iterative position solve from range measurements to
fixed anchors. Every triplet of usable anchors is solved with the
linearized circle-intersection equations; the non-degenerate solutions
are combined by a (quality-weighted) mean and checked against the
boundary rectangle.

Failure is reported as data (PositionEstimate.valid == False), never as an
exception: an occluded anchor or a tag near the wall are normal states.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import numpy as np

from uwb_core.proto.distance_sample import DistanceSample
from uwb_core.proto.position_estimate import (
    PositionEstimate,
    EstimateStatus,
    create_invalid,
)
from uwb_core.localization.anchor_layout import AnchorLayout, BoundaryRect, MIN_ANCHORS
from uwb_core.localization.geometry import (
    DEFAULT_DET_THRESHOLD,
    iter_triplets,
    solve_triplet,
)
from uwb_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class EstimatorConfig:
    """
    Configuration for the position estimator.

    Attributes:
        det_threshold: Triplets with |determinant| <= this are discarded
        use_quality_weights: Weight triplets by the product of anchor qualities
            (False = plain mean of triplet solutions)
        reject_out_of_bounds: Reject estimates outside the boundary rectangle
        boundary: Explicit boundary rectangle (None = derived from the layout)
    """

    det_threshold: float = DEFAULT_DET_THRESHOLD
    use_quality_weights: bool = True
    reject_out_of_bounds: bool = True
    boundary: Optional[BoundaryRect] = None

    def __post_init__(self):
        """Validate configuration."""
        if self.det_threshold < 0:
            raise ValueError(f"Determinant threshold cannot be negative: {self.det_threshold}")


class PositionEstimator:
    """
    Estimate a 2D tag position from all anchor triplets.

    Usage:
        estimator = PositionEstimator()

        samples = checker.annotate(layout, batch.samples)
        estimate = estimator.estimate(layout, samples)

        if estimate.valid:
            print(f"Tag at ({estimate.x:.1f}, {estimate.y:.1f}) cm")

    Algorithm:
    1. Keep samples with distance > 0 for anchors in the layout
    2. For each triplet (i, j, k): subtract circle i from j and j from k,
       solve the 2x2 system with Cramer's rule, skip it if singular
    3. Weight = product of the three qualities (or 1.0 unweighted)
    4. Weighted mean over the valid triplets
    5. Reject if outside the boundary rectangle
    """

    def __init__(self, config: Optional[EstimatorConfig] = None):
        """
        Initialize position estimator.

        Args:
            config: Estimator configuration (uses defaults if None)
        """
        self.config = config or EstimatorConfig()
        self.metrics = get_metrics()

    def estimate(
        self,
        layout: AnchorLayout,
        samples: Sequence[DistanceSample],
    ) -> PositionEstimate:
        """
        Compute the position for one ranging cycle.

        Args:
            layout: Anchor layout
            samples: Distance samples (quality already annotated)

        Returns:
            PositionEstimate; valid is False for INSUFFICIENT_ANCHORS,
            DEGENERATE_GEOMETRY or OUT_OF_BOUNDS
        """
        self.metrics.increment('position_estimates')

        usable = self._usable_samples(layout, samples)
        anchor_indices = sorted(usable)

        if len(usable) < MIN_ANCHORS:
            self.metrics.increment_drop('insufficient_anchors')
            logger.debug("Only %d usable anchors, need %d", len(usable), MIN_ANCHORS)
            return create_invalid(
                EstimateStatus.INSUFFICIENT_ANCHORS,
                anchor_indices=anchor_indices,
            )

        candidates: List[tuple] = []
        weights: List[float] = []

        for i, j, k in iter_triplets(anchor_indices):
            solution = solve_triplet(
                (layout.position(i), layout.position(j), layout.position(k)),
                (usable[i].distance, usable[j].distance, usable[k].distance),
                self.config.det_threshold,
            )
            if solution is None:
                continue

            if self.config.use_quality_weights:
                weight = usable[i].quality * usable[j].quality * usable[k].quality
            else:
                weight = 1.0

            candidates.append(solution)
            weights.append(weight)

        total_weight = float(sum(weights))

        if not candidates or total_weight <= 0.0:
            self.metrics.increment_drop('degenerate_geometry')
            logger.debug("No solvable triplet among anchors %s", anchor_indices)
            return create_invalid(
                EstimateStatus.DEGENERATE_GEOMETRY,
                anchor_indices=anchor_indices,
                num_triplets_used=len(candidates),
            )

        points = np.asarray(candidates, dtype=np.float64)
        x, y = np.average(points, axis=0, weights=np.asarray(weights, dtype=np.float64))
        x, y = float(x), float(y)

        self.metrics.record_histogram('estimator_triplets_used', len(candidates))

        if self.config.reject_out_of_bounds:
            boundary = self.config.boundary or layout.bounding_rect()
            if not boundary.contains(x, y):
                self.metrics.increment_drop('out_of_bounds')
                logger.debug("Estimate (%.1f, %.1f) outside %s", x, y, boundary)
                return create_invalid(
                    EstimateStatus.OUT_OF_BOUNDS,
                    x=x,
                    y=y,
                    anchor_indices=anchor_indices,
                    num_triplets_used=len(candidates),
                    total_weight=total_weight,
                )

        return PositionEstimate(
            x=x,
            y=y,
            status=EstimateStatus.OK,
            num_triplets_used=len(candidates),
            anchor_indices=anchor_indices,
            total_weight=total_weight,
        )

    def _usable_samples(
        self,
        layout: AnchorLayout,
        samples: Sequence[DistanceSample],
    ) -> Dict[int, DistanceSample]:
        """Usable samples by anchor index; a later duplicate replaces an earlier one."""
        usable: Dict[int, DistanceSample] = {}
        for sample in samples:
            if not sample.is_usable:
                continue
            if sample.anchor_index >= layout.count:
                self.metrics.increment_drop('unknown_anchor')
                continue
            usable[sample.anchor_index] = sample
        return usable


def create_default_estimator(weighted: bool = True) -> PositionEstimator:
    """
    Create position estimator with default configuration.

    Args:
        weighted: Use quality-weighted averaging (False = plain mean)

    Returns:
        Configured PositionEstimator instance
    """
    config = EstimatorConfig(
        det_threshold=DEFAULT_DET_THRESHOLD,
        use_quality_weights=weighted,
        reject_out_of_bounds=True,
    )

    return PositionEstimator(config)
