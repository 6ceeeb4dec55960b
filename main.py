"""
UWB positioning replay tool.

Reads range lines (JSON or AT+RANGE_CDS_ALL responses) from a file or stdin,
runs them through the per-tag positioning pipeline and prints one line per
cycle with the raw and smoothed position.
"""

import sys
import signal
import logging
import argparse
from typing import List, Optional, TextIO, Tuple

import config
from uwb_core.proto import RangeParseError, parse_line
from uwb_core.localization import (
    AnchorLayout,
    BoundaryRect,
    ConsistencyConfig,
    CycleResult,
    EstimatorConfig,
    MAX_ANCHORS,
    MIN_ANCHORS,
    MultiTagTracker,
    PipelineConfig,
    TemporalFilterConfig,
)
from uwb_core.metrics import get_metrics

logging.basicConfig(
    level=getattr(logging, config.LOGGING_CONFIG["level"]),
    format=config.LOGGING_CONFIG["format"]
)
logger = logging.getLogger(__name__)


class UWBPositioningReplay:
    """Feed range lines through a MultiTagTracker."""

    def __init__(self, out: Optional[TextIO] = None):
        """Build the tracker from the config module."""
        self.out = out if out is not None else sys.stdout
        self.running = False
        self.metrics = get_metrics()

        self.line_count = 0
        self.cycle_count = 0
        self.success_count = 0

        self.tracker = self._build_tracker()

        logger.info("Positioning replay initialized with %d anchors", self.tracker.layout.count)

    def _build_tracker(self) -> MultiTagTracker:
        boundary = config.ANCHOR_CONFIG.get("boundary")

        pipeline_config = PipelineConfig(
            estimator_config=EstimatorConfig(
                det_threshold=config.LOCALIZATION_CONFIG["det_threshold"],
                use_quality_weights=config.LOCALIZATION_CONFIG["use_quality_weights"],
                reject_out_of_bounds=config.LOCALIZATION_CONFIG["reject_out_of_bounds"],
                boundary=BoundaryRect(*boundary) if boundary else None,
            ),
            consistency_config=ConsistencyConfig(
                penalty=config.CONSISTENCY_CONFIG["penalty"],
            ),
            filter_config=TemporalFilterConfig(
                process_noise=config.FILTER_CONFIG["process_noise"],
                measurement_noise=config.FILTER_CONFIG["measurement_noise"],
                initial_error_cov=config.FILTER_CONFIG["initial_error_cov"],
            ),
            enable_consistency_check=config.CONSISTENCY_CONFIG["enabled"],
        )

        return MultiTagTracker(
            layout=AnchorLayout(config.ANCHOR_CONFIG["positions"]),
            config=pipeline_config,
            max_tags=config.LOCALIZATION_CONFIG["max_tags"],
        )

    def _signal_handler(self, signum, frame):
        logger.info("Received signal %s, stopping...", signum)
        self.running = False

    def process_line(self, line: str) -> Optional[CycleResult]:
        """
        Parse one line and run a cycle for its tag.

        Returns:
            CycleResult, or None for blank/unparseable lines and untracked tags
        """
        if not line.strip():
            return None

        self.line_count += 1
        self.metrics.increment('lines_in')

        try:
            report = parse_line(
                line,
                fmt=config.OUTPUT_CONFIG["input_format"],
                scale=config.OUTPUT_CONFIG["distance_scale"],
            )
        except RangeParseError as e:
            self.metrics.increment('parse_errors')
            self.metrics.increment_drop('parse_error')
            logger.warning("Skipping line %d: %s", self.line_count, e)
            return None

        result = self.tracker.process_report(report)
        if result is None:
            return None

        self.cycle_count += 1
        if result.updated:
            self.success_count += 1

        self._print_result(result)
        return result

    def _print_result(self, result: CycleResult):
        if result.updated:
            self.out.write(
                f"tag={result.tag_id} raw=({result.raw.x:.1f}, {result.raw.y:.1f}) "
                f"smoothed=({result.smoothed_x:.1f}, {result.smoothed_y:.1f}) "
                f"triplets={result.raw.num_triplets_used}\n"
            )
        elif config.OUTPUT_CONFIG["print_rejected"]:
            self.out.write(
                f"tag={result.tag_id} rejected={result.raw.status.name} "
                f"holding=({result.smoothed_x:.1f}, {result.smoothed_y:.1f})\n"
            )

    def run(self, stream: TextIO):
        """Process every line of the stream until EOF or a stop signal."""
        previous_int = signal.signal(signal.SIGINT, self._signal_handler)
        previous_term = signal.signal(signal.SIGTERM, self._signal_handler)

        self.running = True
        logger.info("Reading range lines...")

        try:
            for line in stream:
                if not self.running:
                    break
                self.process_line(line)
        finally:
            self.running = False
            signal.signal(signal.SIGINT, previous_int)
            signal.signal(signal.SIGTERM, previous_term)

        self._print_statistics()

    def _print_statistics(self):
        success_rate = (self.success_count / self.cycle_count * 100) if self.cycle_count > 0 else 0
        logger.info(
            "Lines=%d cycles=%d positioned=%d (%.1f%%)",
            self.line_count, self.cycle_count, self.success_count, success_rate,
        )


def parse_anchors(text: str) -> List[Tuple[float, float]]:
    """
    Parse 'x,y;x,y;...' into anchor positions (argparse type).

    Raises:
        argparse.ArgumentTypeError: On a malformed pair or an anchor count
            outside [MIN_ANCHORS, MAX_ANCHORS]
    """
    anchors = []
    for pair in text.split(";"):
        pair = pair.strip()
        if not pair:
            continue
        try:
            x, y = (float(v) for v in pair.split(","))
        except ValueError:
            raise argparse.ArgumentTypeError(f"bad anchor position '{pair}', expected x,y")
        anchors.append((x, y))

    if not MIN_ANCHORS <= len(anchors) <= MAX_ANCHORS:
        raise argparse.ArgumentTypeError(
            f"need {MIN_ANCHORS} to {MAX_ANCHORS} anchors, got {len(anchors)}"
        )
    return anchors


def main(argv: Optional[List[str]] = None):
    """Command line entry point."""
    parser = argparse.ArgumentParser(description='UWB 2D positioning replay')
    parser.add_argument('input', nargs='?', default=None,
                        help='File with range lines (default: stdin)')
    parser.add_argument('--format', '-f', choices=['auto', 'json', 'at'], default=None,
                        help='Range line format')
    parser.add_argument('--scale', type=float, default=None,
                        help='Distance multiplier (e.g. 100 for meters -> cm)')
    parser.add_argument('--anchors', '-a', type=parse_anchors, default=None,
                        help="Anchor positions in cm: 'x,y;x,y;...'")
    parser.add_argument('--process-noise', type=float, default=None,
                        help='Kalman process noise q')
    parser.add_argument('--measurement-noise', type=float, default=None,
                        help='Kalman measurement noise r')
    parser.add_argument('--unweighted', action='store_true',
                        help='Plain mean of triplet solutions')
    parser.add_argument('--show-rejected', action='store_true',
                        help='Print rejected cycles too')
    parser.add_argument('--summary', '-s', action='store_true',
                        help='Print metrics summary at the end')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')

    args = parser.parse_args(argv)

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.format:
        config.OUTPUT_CONFIG["input_format"] = args.format
    if args.scale is not None:
        config.OUTPUT_CONFIG["distance_scale"] = args.scale
    if args.anchors:
        config.ANCHOR_CONFIG["positions"] = args.anchors
    if args.process_noise is not None:
        config.FILTER_CONFIG["process_noise"] = args.process_noise
    if args.measurement_noise is not None:
        config.FILTER_CONFIG["measurement_noise"] = args.measurement_noise
    if args.unweighted:
        config.LOCALIZATION_CONFIG["use_quality_weights"] = False
    if args.show_rejected:
        config.OUTPUT_CONFIG["print_rejected"] = True

    replay = UWBPositioningReplay()

    if args.input:
        with open(args.input, 'r', encoding='utf-8') as stream:
            replay.run(stream)
    else:
        replay.run(sys.stdin)

    if args.summary:
        get_metrics().print_summary()


if __name__ == "__main__":
    main()
