"""
Unit tests for the per-tag positioning pipeline and the multi-tag tracker.

Tests cover:
- Full cycle: consistency check -> estimator -> filter
- Quality reset at the start of every cycle
- Handler callbacks (distance, position, rejection)
- Independent per-tag filter state and tag limit
- Reconfiguration resets filters
- Concurrent cycles on different tags
"""

import threading

import pytest

from uwb_core.proto import DistanceSample, DistanceBatch, EstimateStatus, RangeReport
from uwb_core.localization import (
    BoundaryRect,
    EstimatorConfig,
    MultiTagTracker,
    PipelineConfig,
    PositionHandlers,
    TagPositioningPipeline,
    create_default_pipeline,
)
from uwb_core.metrics import get_metrics

from conftest import exact_distances, make_samples


class TestTagPositioningPipeline:
    """Tests for one tag's estimation cycle."""

    def test_valid_cycle_updates_filter(self, default_layout, rect_anchor_positions):
        """Test a valid cycle moves the smoothed position toward the raw one."""
        pipeline = create_default_pipeline("T1", default_layout)
        samples = make_samples(exact_distances(rect_anchor_positions, (100.0, 150.0)))

        result = pipeline.process(samples)

        assert result.updated
        assert result.raw.x == pytest.approx(100.0, abs=0.01)
        # First measurement is trusted heavily (P0 = 100)
        assert result.smoothed_x == pytest.approx(100.0, abs=2.0)
        assert result.smoothed_y == pytest.approx(150.0, abs=2.0)
        assert result.qualities == {0: 1.0, 1: 1.0, 2: 1.0, 3: 1.0}

    def test_rejected_cycle_holds_position(self, default_layout, rect_anchor_positions):
        """Test an insufficient cycle keeps the last filtered position."""
        pipeline = TagPositioningPipeline("T1", default_layout)
        pipeline.process(make_samples(exact_distances(rect_anchor_positions, (100.0, 150.0))))
        before = pipeline.state

        result = pipeline.process(make_samples([120.0, 0.0, 0.0, 300.0]))

        assert not result.updated
        assert result.raw.status == EstimateStatus.INSUFFICIENT_ANCHORS
        assert pipeline.state == before

    def test_quality_reset_each_cycle(self, default_layout, rect_anchor_positions):
        """Test stale low qualities from the caller do not carry over."""
        pipeline = TagPositioningPipeline("T1", default_layout)
        samples = [
            DistanceSample(anchor_index=i, distance=d, quality=0.1)
            for i, d in enumerate(exact_distances(rect_anchor_positions, (190.0, 80.0)))
        ]

        result = pipeline.process(samples)

        assert result.qualities == {0: 1.0, 1: 1.0, 2: 1.0, 3: 1.0}
        assert result.raw.total_weight == pytest.approx(4.0)

    def test_consistency_annotations_reported(self, default_layout):
        """Test violating anchors show up in qualities and violations."""
        pipeline = TagPositioningPipeline("T1", default_layout)

        result = pipeline.process(make_samples([100.0, 650.0, 650.0, 100.0]))

        assert result.violations == [(0, 3)]
        assert result.qualities[0] == 0.5
        assert result.qualities[3] == 0.5

    def test_consistency_check_can_be_disabled(self, default_layout):
        pipeline = TagPositioningPipeline(
            "T1", default_layout, PipelineConfig(enable_consistency_check=False)
        )

        result = pipeline.process(make_samples([100.0, 650.0, 650.0, 100.0]))

        assert result.violations == []
        assert result.qualities[0] == 1.0

    def test_handlers_called(self, default_layout, rect_anchor_positions):
        """Test distance, position and rejection callbacks."""
        distances_seen = []
        positions_seen = []
        rejected_seen = []

        handlers = PositionHandlers(
            on_distance_update=lambda tag, i, d: distances_seen.append((tag, i, d)),
            on_position_update=lambda tag, x, y: positions_seen.append((tag, x, y)),
            on_estimate_rejected=lambda tag, est: rejected_seen.append((tag, est.status)),
        )
        pipeline = TagPositioningPipeline("T7", default_layout, handlers=handlers)

        distances = exact_distances(rect_anchor_positions, (190.0, 80.0))
        distances[2] = 0.0
        pipeline.process(make_samples(distances))
        pipeline.process(make_samples([0.0, 0.0, 0.0, 250.0]))

        assert [i for _, i, _ in distances_seen] == [0, 1, 3, 3]
        assert len(positions_seen) == 1
        assert positions_seen[0][0] == "T7"
        assert rejected_seen == [("T7", EstimateStatus.INSUFFICIENT_ANCHORS)]

    def test_process_batch(self, default_layout, rect_anchor_positions):
        pipeline = TagPositioningPipeline("T1", default_layout)
        batch = DistanceBatch.from_distances("T1", exact_distances(rect_anchor_positions, (190.0, 80.0)))

        result = pipeline.process_batch(batch)

        assert result.updated
        assert get_metrics().get_counter('ranging_cycles') == 1

    def test_converges_over_cycles(self, default_layout, rect_anchor_positions):
        pipeline = TagPositioningPipeline("T1", default_layout)
        samples = make_samples(exact_distances(rect_anchor_positions, (250.0, 420.0)))

        for _ in range(25):
            result = pipeline.process(samples)

        assert result.smoothed_x == pytest.approx(250.0, abs=0.05)
        assert result.smoothed_y == pytest.approx(420.0, abs=0.05)


class TestMultiTagTracker:
    """Tests for multi-tag tracking and the configuration surface."""

    def test_tags_are_independent(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)

        tracker.process("0", make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0))))
        tracker.process("1", make_samples(exact_distances(rect_anchor_positions, (300.0, 500.0))))

        x0, y0 = tracker.get_position("0")
        x1, y1 = tracker.get_position("1")

        assert x0 < 100.0 and y0 < 100.0
        assert x1 > 250.0 and y1 > 450.0
        assert sorted(tracker.tag_ids) == ["0", "1"]
        assert tracker.get_position("unknown") is None

    def test_tag_limit(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout, max_tags=1)
        samples = make_samples(exact_distances(rect_anchor_positions, (190.0, 80.0)))

        assert tracker.process("0", samples) is not None
        assert tracker.process("1", samples) is None
        assert get_metrics().get_drop_count('tag_limit') == 1

    def test_process_report(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)
        report = RangeReport(tag_id="3", distances=exact_distances(rect_anchor_positions, (190.0, 80.0)))

        result = tracker.process_report(report)

        assert result.tag_id == "3"
        assert result.updated

    def test_set_anchor_position_resets_filters(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)
        tracker.process("0", make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0))))

        tracker.set_anchor_position(3, 400.0, 0.0)

        # New bounds: x in [0, 400], y in [0, 600]
        assert tracker.get_position("0") == (200.0, 300.0)
        assert tracker.layout.position(3) == (400.0, 0.0)
        # Original layout object is left alone
        assert default_layout.position(3) == (380.0, 0.0)

    def test_set_anchor_positions_bulk(self, default_layout):
        tracker = MultiTagTracker(default_layout)

        tracker.set_anchor_positions([(0.0, 0.0), (0.0, 300.0), (300.0, 0.0)])

        assert tracker.layout.count == 3

    def test_set_anchor_count(self, default_layout):
        tracker = MultiTagTracker(default_layout)

        tracker.set_anchor_count(3)

        assert tracker.layout.count == 3
        with pytest.raises(ValueError):
            tracker.set_anchor_count(2)

    def test_set_noise_resets_filters(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)
        tracker.process("0", make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0))))

        tracker.set_noise(0.5, 2.0)

        state = tracker.get_pipeline("0").state
        assert state.process_noise == 0.5
        assert state.measurement_noise == 2.0
        assert state.position == (190.0, 300.0)
        assert state.error_cov_x == 100.0

        # Tags created later pick the new noise up as well
        assert tracker.get_pipeline("9").state.process_noise == 0.5

    def test_set_boundary(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)
        samples = make_samples(exact_distances(rect_anchor_positions, (-5.0, 300.0)))

        assert not tracker.process("0", samples).updated

        tracker.set_boundary(BoundaryRect(-50.0, -50.0, 430.0, 650.0))

        assert tracker.process("0", samples).updated

    def test_reset_single_tag(self, default_layout, rect_anchor_positions):
        tracker = MultiTagTracker(default_layout)
        samples = make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0)))
        tracker.process("0", samples)
        tracker.process("1", samples)

        tracker.reset("0")

        assert tracker.get_position("0") == (190.0, 300.0)
        assert tracker.get_position("1") != (190.0, 300.0)

    def test_concurrent_tags(self, default_layout, rect_anchor_positions):
        """Test parallel cycles on different tags do not interfere."""
        tracker = MultiTagTracker(
            default_layout, PipelineConfig(estimator_config=EstimatorConfig())
        )
        targets = {str(i): (40.0 + 30.0 * i, 60.0 + 50.0 * i) for i in range(6)}
        errors = []

        def worker(tag_id):
            samples = make_samples(exact_distances(rect_anchor_positions, targets[tag_id]))
            try:
                for _ in range(40):
                    tracker.process(tag_id, samples)
            except Exception as e:  # pragma: no cover
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(tid,)) for tid in targets]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        for tag_id, (tx, ty) in targets.items():
            x, y = tracker.get_position(tag_id)
            assert x == pytest.approx(tx, abs=0.05)
            assert y == pytest.approx(ty, abs=0.05)

    def test_set_noise_rejects_negative(self, default_layout, rect_anchor_positions):
        """Test invalid noise raises ValueError and leaves every filter as it was."""
        tracker = MultiTagTracker(default_layout)
        tracker.process("0", make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0))))
        before = tracker.get_pipeline("0").state

        with pytest.raises(ValueError):
            tracker.set_noise(-1.0, 1.0)

        assert tracker.get_pipeline("0").state == before
        assert tracker.get_pipeline("9").state.process_noise == 0.01

    def test_handler_may_reconfigure_tracker(self, default_layout, rect_anchor_positions):
        """Test a position handler can reset its own tag mid-cycle."""
        def on_position(tag_id, x, y):
            tracker.set_noise(0.5, 2.0)

        tracker = MultiTagTracker(
            default_layout, handlers=PositionHandlers(on_position_update=on_position)
        )
        samples = make_samples(exact_distances(rect_anchor_positions, (50.0, 60.0)))
        results = []

        worker = threading.Thread(target=lambda: results.append(tracker.process("0", samples)))
        worker.start()
        worker.join(timeout=5.0)

        assert not worker.is_alive()
        assert results[0].updated
        # Reset took effect after the cycle's own update
        assert tracker.get_position("0") == (190.0, 300.0)
        assert tracker.get_pipeline("0").state.process_noise == 0.5
