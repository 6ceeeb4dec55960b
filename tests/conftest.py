"""
Pytest configuration and shared fixtures for the UWB positioning tests.

Provides reusable anchor layouts, exact-distance helpers and a clean
metrics collector for every test.
"""

import sys
import math
from pathlib import Path
from typing import List, Sequence, Tuple

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from uwb_core.proto import DistanceSample
from uwb_core.localization import AnchorLayout
from uwb_core.metrics import reset_metrics


# =============================================================================
# Anchor Configuration Fixtures
# =============================================================================


@pytest.fixture
def rect_anchor_positions() -> List[Tuple[float, float]]:
    """
    Default rectangular room layout (cm).

    A0 (0,0), A1 (0,600), A2 (380,600), A3 (380,0).
    """
    return [
        (0.0, 0.0),
        (0.0, 600.0),
        (380.0, 600.0),
        (380.0, 0.0),
    ]


@pytest.fixture
def default_layout(rect_anchor_positions) -> AnchorLayout:
    """AnchorLayout built from the rectangular room."""
    return AnchorLayout(rect_anchor_positions)


@pytest.fixture
def collinear_layout() -> AnchorLayout:
    """Four anchors on the line y = 0."""
    return AnchorLayout([(0.0, 0.0), (100.0, 0.0), (250.0, 0.0), (380.0, 0.0)])


@pytest.fixture(autouse=True)
def clean_metrics():
    """Fresh global metrics collector for every test."""
    reset_metrics()
    yield
    reset_metrics()


# =============================================================================
# Helper Functions
# =============================================================================


def calculate_distance_2d(
    p1: Tuple[float, float], p2: Tuple[float, float]
) -> float:
    """
    Calculate Euclidean distance between two 2D points.

    Args:
        p1: First point (x, y).
        p2: Second point (x, y).

    Returns:
        Distance in the same units as input.
    """
    return math.sqrt((p1[0] - p2[0]) ** 2 + (p1[1] - p2[1]) ** 2)


def exact_distances(
    anchors: Sequence[Tuple[float, float]], tag: Tuple[float, float]
) -> List[float]:
    """Exact tag-to-anchor distances, one per anchor."""
    return [calculate_distance_2d(anchor, tag) for anchor in anchors]


def make_samples(distances: Sequence[float]) -> List[DistanceSample]:
    """DistanceSample list with anchor index = list position."""
    return [DistanceSample(anchor_index=i, distance=d) for i, d in enumerate(distances)]
