"""
Triangle-Inequality Consistency Checker.

For every pair of usable anchors, the two tag-to-anchor distances and the
known anchor-to-anchor baseline must be able to form a triangle. A pair that
cannot usually means multipath on one or both anchors; both get their
quality weight halved. Samples are never rejected, only down-weighted, so a
cycle cannot lose anchors below the 3 needed to solve.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from uwb_core.proto.distance_sample import DistanceSample
from uwb_core.localization.anchor_layout import AnchorLayout
from uwb_core.localization.geometry import iter_pairs, triangle_inequality_holds
from uwb_core.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class ConsistencyConfig:
    """
    Configuration for the consistency checker.

    Attributes:
        penalty: Quality multiplier applied to both anchors of a violating pair
    """

    penalty: float = 0.5

    def __post_init__(self):
        """Validate configuration."""
        if not 0.0 <= self.penalty <= 1.0:
            raise ValueError(f"Penalty must be in [0,1]: {self.penalty}")


@dataclass
class ConsistencyReport:
    """
    Result of one consistency pass.

    Attributes:
        samples: Annotated copies of the input samples (same order)
        violations: Anchor index pairs (p, q) that broke the triangle inequality
    """

    samples: List[DistanceSample]
    violations: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def qualities(self) -> Dict[int, float]:
        """Quality weight per anchor index."""
        return {s.anchor_index: s.quality for s in self.samples}

    @property
    def num_violations(self) -> int:
        return len(self.violations)


class ConsistencyChecker:
    """
    Down-weight anchors implicated in triangle-inequality violations.

    Usage:
        checker = ConsistencyChecker()

        report = checker.check(layout, samples)
        samples = report.samples          # quality annotated

        # or just the samples
        samples = checker.annotate(layout, samples)

    Notes:
        - Penalties stack: an anchor in two violating pairs ends at 0.25
        - Input samples are not modified; annotated copies are returned
        - Samples without a reading, or for anchors outside the layout,
          pass through untouched
    """

    def __init__(self, config: Optional[ConsistencyConfig] = None):
        """
        Initialize consistency checker.

        Args:
            config: Checker configuration (uses defaults if None)
        """
        self.config = config or ConsistencyConfig()
        self.metrics = get_metrics()

    def annotate(
        self,
        layout: AnchorLayout,
        samples: Sequence[DistanceSample],
    ) -> List[DistanceSample]:
        """
        Return samples with quality lowered for inconsistent anchors.

        Args:
            layout: Anchor layout
            samples: Samples of the current cycle

        Returns:
            Annotated copies, same order as the input
        """
        return self.check(layout, samples).samples

    def check(
        self,
        layout: AnchorLayout,
        samples: Sequence[DistanceSample],
    ) -> ConsistencyReport:
        """
        Run the triangle-inequality check over all usable anchor pairs.

        Args:
            layout: Anchor layout
            samples: Samples of the current cycle

        Returns:
            ConsistencyReport with annotated samples and violating pairs
        """
        # Last sample per anchor wins, as in the estimator
        usable: Dict[int, DistanceSample] = {}
        for sample in samples:
            if sample.is_usable and sample.anchor_index < layout.count:
                usable[sample.anchor_index] = sample

        factors: Dict[int, float] = {index: 1.0 for index in usable}
        violations: List[Tuple[int, int]] = []

        for p, q in iter_pairs(list(usable)):
            baseline = layout.anchor_distance(p, q)
            if not triangle_inequality_holds(usable[p].distance, usable[q].distance, baseline):
                factors[p] *= self.config.penalty
                factors[q] *= self.config.penalty
                violations.append((p, q))

                logger.debug(
                    "Triangle violation anchors %d/%d: d=%.1f, %.1f baseline=%.1f",
                    p, q, usable[p].distance, usable[q].distance, baseline,
                )

        annotated = []
        for sample in samples:
            if usable.get(sample.anchor_index) is sample:
                annotated.append(sample.with_quality(sample.quality * factors[sample.anchor_index]))
            else:
                annotated.append(sample.with_quality(sample.quality))

        if violations:
            self.metrics.increment('triangle_violations', len(violations))

        for factor in factors.values():
            self.metrics.record_histogram('anchor_quality', factor)

        return ConsistencyReport(samples=annotated, violations=violations)


def create_default_checker() -> ConsistencyChecker:
    """
    Create consistency checker with the default halving penalty.

    Returns:
        Configured ConsistencyChecker instance
    """
    return ConsistencyChecker(ConsistencyConfig(penalty=0.5))
