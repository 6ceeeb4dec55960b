"""
Tests for the positioning replay command line tool.
"""

import argparse
import io
import json

import pytest

import config
import main
from uwb_core.metrics import get_metrics

from conftest import exact_distances


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Let main() mutate throwaway copies of the config dicts."""
    for name in ("ANCHOR_CONFIG", "LOCALIZATION_CONFIG", "CONSISTENCY_CONFIG",
                 "FILTER_CONFIG", "OUTPUT_CONFIG"):
        monkeypatch.setattr(config, name, dict(getattr(config, name)))


def json_line(tag_id, distances):
    return json.dumps({"id": tag_id, "range": distances}) + "\n"


class TestReplay:
    """Tests for UWBPositioningReplay."""

    def test_process_valid_line(self, rect_anchor_positions):
        out = io.StringIO()
        replay = main.UWBPositioningReplay(out=out)

        result = replay.process_line(json_line(0, exact_distances(rect_anchor_positions, (120.0, 200.0))))

        assert result.updated
        assert result.raw.x == pytest.approx(120.0, abs=0.01)
        assert out.getvalue().startswith("tag=0 raw=(120.0, 200.0)")
        assert get_metrics().get_counter('lines_in') == 1

    def test_parse_error_is_counted(self, caplog):
        replay = main.UWBPositioningReplay(out=io.StringIO())

        assert replay.process_line("garbage\n") is None

        assert get_metrics().get_counter('parse_errors') == 1
        assert get_metrics().get_drop_count('parse_error') == 1
        assert "Skipping line 1" in caplog.text

    def test_blank_line_ignored(self):
        replay = main.UWBPositioningReplay(out=io.StringIO())

        assert replay.process_line("   \n") is None
        assert replay.line_count == 0

    def test_rejected_cycle_printed_on_request(self):
        config.OUTPUT_CONFIG["print_rejected"] = True
        out = io.StringIO()
        replay = main.UWBPositioningReplay(out=out)

        replay.process_line(json_line(1, [100.0, 0.0, 0.0, 0.0]))

        assert "rejected=INSUFFICIENT_ANCHORS" in out.getvalue()
        assert replay.success_count == 0
        assert replay.cycle_count == 1

    def test_run_stream(self, rect_anchor_positions):
        out = io.StringIO()
        replay = main.UWBPositioningReplay(out=out)
        distances = exact_distances(rect_anchor_positions, (120.0, 200.0))
        stream = io.StringIO(json_line(0, distances) * 3 + "oops\n")

        replay.run(stream)

        assert replay.line_count == 4
        assert replay.success_count == 3
        assert len(out.getvalue().splitlines()) == 3


class TestCommandLine:
    """Tests for argument handling."""

    def test_parse_anchors(self):
        assert main.parse_anchors("0,0; 0,600;380,600;") == [
            (0.0, 0.0), (0.0, 600.0), (380.0, 600.0),
        ]

    @pytest.mark.parametrize("text", ["0,0;0,600;380", "0,0;0,600;x,y", "0,0;0,600", "1,2,3;0,0;5,5"])
    def test_parse_anchors_rejects_bad_input(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            main.parse_anchors(text)

    def test_bad_anchors_give_usage_error(self, capsys):
        """Test a malformed --anchors exits through argparse, no traceback."""
        with pytest.raises(SystemExit) as exc_info:
            main.main(["--anchors", "0,0;0,600;oops"])

        assert exc_info.value.code == 2
        assert "bad anchor position 'oops'" in capsys.readouterr().err

    def test_main_with_file(self, tmp_path, capsys):
        anchors = [(0.0, 0.0), (0.0, 3.0), (4.0, 3.0), (4.0, 0.0)]
        distances_m = exact_distances(anchors, (1.0, 2.0))
        path = tmp_path / "ranges.txt"
        path.write_text(
            "+RANGE_CDS_ALL:5," + ",".join(
                f"AN{i},{d:.6f}" for i, d in enumerate(distances_m)
            ) + "\n"
        )

        main.main([
            str(path),
            "--format", "at",
            "--scale", "100",
            "--anchors", "0,0;0,300;400,300;400,0",
            "--unweighted",
        ])

        captured = capsys.readouterr()
        assert "tag=5 raw=(100.0, 200.0)" in captured.out
        assert config.LOCALIZATION_CONFIG["use_quality_weights"] is False
