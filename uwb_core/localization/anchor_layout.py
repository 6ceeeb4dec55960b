"""
Anchor layout and boundary rectangle.

Static configuration of up to 10 fixed anchors in a shared 2D frame (cm).
The layout is owned by the caller and read-only to the estimator, the
consistency checker and the temporal filter.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from uwb_core.proto.distance_sample import MAX_ANCHORS
from uwb_core.localization.geometry import Point, distance_2d, iter_triplets, triangle_area

logger = logging.getLogger(__name__)

MIN_ANCHORS = 3

# Default rectangular layout (cm)
DEFAULT_ANCHOR_POSITIONS: List[Point] = [
    (0.0, 0.0),
    (0.0, 600.0),
    (380.0, 600.0),
    (380.0, 0.0),
]


@dataclass
class BoundaryRect:
    """
    Axis-aligned rectangle that accepted positions must fall into.

    Attributes:
        min_x: Left edge (cm)
        min_y: Bottom edge (cm)
        max_x: Right edge (cm)
        max_y: Top edge (cm)
    """

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def __post_init__(self):
        """Validate rectangle."""
        if self.max_x < self.min_x or self.max_y < self.min_y:
            raise ValueError(
                f"Inverted boundary rectangle: ({self.min_x}, {self.min_y}) -> "
                f"({self.max_x}, {self.max_y})"
            )

    def contains(self, x: float, y: float) -> bool:
        """Check if (x, y) lies inside the rectangle (edges included)."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y

    @property
    def center(self) -> Point:
        """Center of the rectangle."""
        return ((self.min_x + self.max_x) / 2.0, (self.min_y + self.max_y) / 2.0)


class AnchorLayout:
    """
    Positions of the fixed anchors.

    Usage:
        layout = AnchorLayout([(0, 0), (0, 600), (380, 600), (380, 0)])
        layout.set_anchor_position(3, 400, 0)

        d = layout.anchor_distance(0, 2)
        rect = layout.bounding_rect()

    Notes:
        - The index of a position is the anchor's identity
        - Collinear anchors are accepted; the estimator drops the singular
          triplets they produce
    """

    def __init__(self, positions: Optional[Sequence[Point]] = None):
        """
        Initialize anchor layout.

        Args:
            positions: Anchor (x, y) positions in cm (default: 4-anchor rectangle)
        """
        self._positions: List[Point] = []
        self._distance_cache: Dict[Tuple[int, int], float] = {}
        self.set_anchor_positions(
            positions if positions is not None else DEFAULT_ANCHOR_POSITIONS
        )

    @classmethod
    def default(cls) -> 'AnchorLayout':
        """Default 4-anchor rectangle (380 x 600 cm)."""
        return cls(DEFAULT_ANCHOR_POSITIONS)

    @property
    def count(self) -> int:
        """Number of configured anchors."""
        return len(self._positions)

    @property
    def positions(self) -> List[Point]:
        """Copy of the anchor positions."""
        return list(self._positions)

    def position(self, index: int) -> Point:
        """Position of one anchor."""
        self._check_index(index)
        return self._positions[index]

    def __len__(self) -> int:
        return self.count

    def __repr__(self) -> str:
        return f"AnchorLayout({self._positions!r})"

    # Configuration ----------------------------------------------------------

    def set_anchor_positions(self, positions: Sequence[Point]):
        """
        Replace every anchor position.

        Args:
            positions: Sequence of (x, y) in cm, 3 to 10 entries

        Raises:
            ValueError: If the anchor count is out of range
        """
        positions = [(float(x), float(y)) for x, y in positions]
        self._check_count(len(positions))

        self._positions = positions
        self._on_changed()

    def set_anchor_position(self, index: int, x: float, y: float):
        """
        Move a single anchor.

        Args:
            index: Anchor index (0..count-1)
            x: X in cm
            y: Y in cm
        """
        self._check_index(index)
        self._positions[index] = (float(x), float(y))
        self._on_changed()

        logger.debug("Anchor %d set to (%.1f, %.1f)", index, x, y)

    def set_anchor_count(self, count: int):
        """
        Change the number of anchors.

        Growing adds anchors at (0, 0); shrinking drops the highest indices.
        """
        self._check_count(count)

        if count > len(self._positions):
            self._positions.extend([(0.0, 0.0)] * (count - len(self._positions)))
        else:
            del self._positions[count:]
        self._on_changed()

    # Geometry ---------------------------------------------------------------

    def anchor_distance(self, p: int, q: int) -> float:
        """
        Euclidean distance between anchors p and q (cached).

        Args:
            p: First anchor index
            q: Second anchor index
        """
        key = (p, q) if p <= q else (q, p)
        cached = self._distance_cache.get(key)
        if cached is None:
            self._check_index(p)
            self._check_index(q)
            cached = distance_2d(self._positions[p], self._positions[q])
            self._distance_cache[key] = cached
        return cached

    def bounding_rect(self) -> BoundaryRect:
        """
        Default boundary rectangle derived from anchor extremes.

        The lower edges include the origin, so the usual layout with an
        anchor at (0, 0) rejects x < 0, y < 0, x > max anchor x, y > max anchor y.
        """
        xs = [p[0] for p in self._positions]
        ys = [p[1] for p in self._positions]
        return BoundaryRect(
            min_x=min(0.0, min(xs)),
            min_y=min(0.0, min(ys)),
            max_x=max(xs),
            max_y=max(ys),
        )

    def centroid_of_bounds(self) -> Point:
        """Center of the bounding rectangle."""
        return self.bounding_rect().center

    def is_degenerate(self) -> bool:
        """True if every anchor triplet is collinear (no 2D solve possible)."""
        return all(
            triangle_area(self._positions[i], self._positions[j], self._positions[k]) <= 1e-9
            for i, j, k in iter_triplets(range(self.count))
        )

    # Internal ---------------------------------------------------------------

    def _on_changed(self):
        self._distance_cache.clear()
        if self.is_degenerate():
            logger.warning("All %d anchors are collinear; 2D positioning will fail", self.count)

    def _check_count(self, count: int):
        if not MIN_ANCHORS <= count <= MAX_ANCHORS:
            raise ValueError(
                f"Anchor count must be in [{MIN_ANCHORS}, {MAX_ANCHORS}]: {count}"
            )

    def _check_index(self, index: int):
        if not 0 <= index < len(self._positions):
            raise ValueError(f"Anchor index out of range: {index}")
