"""
UWB Indoor Positioning Core Package.

2D tag positioning from UWB ranges to fixed anchors: multi-triplet
multilateration, triangle-inequality quality weighting and per-axis
Kalman smoothing.

Package structure:
- proto: Distance samples, position estimates, range line codecs
- localization: Anchor layout, consistency checker, estimator, filter, pipeline
- metrics: Diagnostics, counters, histograms
"""

__version__ = "0.1.0"
