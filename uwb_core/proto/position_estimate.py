"""
Position Estimate Output Schema.

Defines the output of one estimation cycle. Failed cycles are data, not
exceptions: missing or inconsistent ranging is the normal operating state
of RF ranging hardware.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Tuple


class EstimateStatus(IntEnum):
    """Outcome of one estimation cycle."""

    OK = 0                      # Valid position
    INSUFFICIENT_ANCHORS = 1    # Fewer than 3 usable anchors
    DEGENERATE_GEOMETRY = 2     # Every triplet was singular
    OUT_OF_BOUNDS = 3           # Averaged result outside boundary rectangle


@dataclass
class PositionEstimate:
    """
    Raw 2D position estimate from multilateration.

    Attributes:
        x: X position in cm (layout frame)
        y: Y position in cm (layout frame)
        status: Outcome of the cycle
        num_triplets_used: Number of non-degenerate triplets averaged
        anchor_indices: Usable anchors that took part in the cycle
        total_weight: Sum of triplet weights

    Notes:
        - For OUT_OF_BOUNDS, x/y hold the rejected solution (diagnostics only)
        - For the other failures, x/y are 0
    """

    x: float
    y: float
    status: EstimateStatus = EstimateStatus.OK
    num_triplets_used: int = 0
    anchor_indices: List[int] = field(default_factory=list)
    total_weight: float = 0.0

    def __post_init__(self):
        """Validate position estimate."""
        if self.num_triplets_used < 0:
            raise ValueError(f"Triplet count cannot be negative: {self.num_triplets_used}")

        if self.total_weight < 0:
            raise ValueError(f"Total weight cannot be negative: {self.total_weight}")

    @property
    def valid(self) -> bool:
        """Check if this is a usable position."""
        return self.status == EstimateStatus.OK

    @property
    def position(self) -> Tuple[float, float]:
        """Get (x, y) in cm."""
        return (self.x, self.y)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'x': self.x,
            'y': self.y,
            'valid': self.valid,
            'status': self.status.name,
            'num_triplets_used': self.num_triplets_used,
            'anchor_indices': list(self.anchor_indices),
            'total_weight': self.total_weight,
        }


def create_invalid(
    status: EstimateStatus,
    x: float = 0.0,
    y: float = 0.0,
    anchor_indices: List[int] = None,
    num_triplets_used: int = 0,
    total_weight: float = 0.0,
) -> PositionEstimate:
    """
    Create a rejected position estimate.

    Args:
        status: Failure status (must not be OK)
        x: Rejected X (kept for OUT_OF_BOUNDS diagnostics)
        y: Rejected Y
        anchor_indices: Usable anchors of the cycle
        num_triplets_used: Triplets that were solved
        total_weight: Sum of triplet weights

    Returns:
        PositionEstimate with valid == False
    """
    if status == EstimateStatus.OK:
        raise ValueError("create_invalid needs a failure status")

    return PositionEstimate(
        x=x,
        y=y,
        status=status,
        num_triplets_used=num_triplets_used,
        anchor_indices=list(anchor_indices or []),
        total_weight=total_weight,
    )
