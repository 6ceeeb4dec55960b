"""
Shared 2D geometry helpers for multilateration.

All inputs are in cm; arithmetic is float64 throughout because the squared
distance terms cancel heavily.
"""

import math
from itertools import combinations
from typing import Iterator, Optional, Sequence, Tuple

Point = Tuple[float, float]

# Absolute tolerance on the 2x2 determinant. Its magnitude scales with the
# square of anchor separation in cm, so this is a tuning knob.
DEFAULT_DET_THRESHOLD = 1e-6


def distance_2d(p1: Point, p2: Point) -> float:
    """Euclidean distance between two 2D points."""
    return math.hypot(p1[0] - p2[0], p1[1] - p2[1])


def radical_line(p: Point, q: Point, d_p: float, d_q: float) -> Tuple[float, float, float]:
    """
    Linear equation A*x + B*y = C obtained by subtracting the range circle
    around p from the range circle around q.

    Args:
        p: Anchor p position
        q: Anchor q position
        d_p: Measured distance to p
        d_q: Measured distance to q

    Returns:
        (A, B, C)
    """
    x_p, y_p = float(p[0]), float(p[1])
    x_q, y_q = float(q[0]), float(q[1])
    d_p, d_q = float(d_p), float(d_q)

    a = 2.0 * (x_q - x_p)
    b = 2.0 * (y_q - y_p)
    c = d_p * d_p - d_q * d_q - x_p * x_p + x_q * x_q - y_p * y_p + y_q * y_q
    return a, b, c


def solve_2x2(
    line1: Tuple[float, float, float],
    line2: Tuple[float, float, float],
    det_threshold: float = DEFAULT_DET_THRESHOLD,
) -> Optional[Point]:
    """
    Solve two linear equations with Cramer's rule.

    Returns:
        (x, y), or None when |det| <= det_threshold
    """
    a1, b1, c1 = line1
    a2, b2, c2 = line2

    den = a1 * b2 - b1 * a2
    if abs(den) <= det_threshold:
        return None

    x = (c1 * b2 - c2 * b1) / den
    y = (a1 * c2 - c1 * a2) / den
    return x, y


def solve_triplet(
    anchors: Sequence[Point],
    distances: Sequence[float],
    det_threshold: float = DEFAULT_DET_THRESHOLD,
) -> Optional[Point]:
    """
    Closed-form 2D position from three anchors (i, j, k).

    Uses the radical lines of pairs (i, j) and (j, k).

    Args:
        anchors: Three anchor positions
        distances: Three measured distances, same order
        det_threshold: Degeneracy tolerance

    Returns:
        (x, y), or None for a degenerate (effectively collinear) triplet
    """
    (p_i, p_j, p_k) = anchors
    (d_i, d_j, d_k) = distances

    line_ij = radical_line(p_i, p_j, d_i, d_j)
    line_jk = radical_line(p_j, p_k, d_j, d_k)
    return solve_2x2(line_ij, line_jk, det_threshold)


def iter_triplets(indices: Sequence[int]) -> Iterator[Tuple[int, int, int]]:
    """All unordered triplets i < j < k of the given indices, C(n, 3) in total."""
    return combinations(sorted(indices), 3)


def iter_pairs(indices: Sequence[int]) -> Iterator[Tuple[int, int]]:
    """All unordered pairs p < q of the given indices."""
    return combinations(sorted(indices), 2)


def triangle_inequality_holds(d_p: float, d_q: float, baseline: float) -> bool:
    """
    Check that two tag-to-anchor distances and the anchor-to-anchor baseline
    can form a triangle (strict inequalities).
    """
    return (
        d_p + d_q > baseline and
        d_p + baseline > d_q and
        d_q + baseline > d_p
    )


def triangle_area(p0: Point, p1: Point, p2: Point) -> float:
    """Area of the triangle spanned by three points (cross product)."""
    return 0.5 * abs((p1[0] - p0[0]) * (p2[1] - p0[1]) -
                     (p2[0] - p0[0]) * (p1[1] - p0[1]))
