"""
UWB positioning runtime configuration
"""

# Anchor layout (cm)
ANCHOR_CONFIG = {
    "positions": [
        (0.0, 0.0),       # A0
        (0.0, 600.0),     # A1
        (380.0, 600.0),   # A2
        (380.0, 0.0),     # A3
    ],
    "boundary": None,     # (min_x, min_y, max_x, max_y) or None = from anchors
}

# Position estimator
LOCALIZATION_CONFIG = {
    "det_threshold": 1e-6,            # triplet degeneracy tolerance
    "use_quality_weights": True,      # False = plain mean of triplets
    "reject_out_of_bounds": True,
    "max_tags": 8,                    # tag IDs beyond this are ignored
}

# Triangle-inequality check
CONSISTENCY_CONFIG = {
    "enabled": True,
    "penalty": 0.5,
}

# Temporal filter
FILTER_CONFIG = {
    "process_noise": 0.01,
    "measurement_noise": 1.0,
    "initial_error_cov": 100.0,
}

# Input / output
OUTPUT_CONFIG = {
    "input_format": "auto",           # json | at | auto
    "distance_scale": 1.0,            # multiplier applied to parsed distances
    "print_rejected": False,          # also print rejected cycles
}

# Logging
LOGGING_CONFIG = {
    "level": "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
