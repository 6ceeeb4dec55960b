"""
Protocol Module: Value types and line codecs.

- DistanceSample / DistanceBatch: per-cycle ranging input
- PositionEstimate: raw estimator output
- RangeReport: decoded JSON / AT range lines
"""

from .distance_sample import (
    DistanceSample,
    DistanceBatch,
)
from .position_estimate import (
    PositionEstimate,
    EstimateStatus,
    create_invalid,
)
from .range_report import (
    RangeReport,
    RangeParseError,
    parse_line,
    parse_json_line,
    parse_at_line,
)

__all__ = [
    'DistanceSample',
    'DistanceBatch',
    'PositionEstimate',
    'EstimateStatus',
    'create_invalid',
    'RangeReport',
    'RangeParseError',
    'parse_line',
    'parse_json_line',
    'parse_at_line',
]
