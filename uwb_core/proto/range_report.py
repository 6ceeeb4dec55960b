"""
Range report line codec.

Turns one text line from a UWB tag into a flat per-anchor distance array.
Two formats are understood:

- JSON lines, as forwarded by the tag firmware over serial:
      {"id": 3, "range": [512.0, 230.5, 0, 401.2]}
- AT command responses from the UWB module:
      +RANGE_CDS_ALL:7,AN0,1.23,AN1,2.34,AN2,3.45,AN3,4.56

A distance of 0 (or negative) is the "no reading" sentinel and is passed
through unchanged; non-finite values are mapped to it.
"""

import json
import logging
import math
import re
from dataclasses import dataclass, field
from typing import List

from uwb_core.proto.distance_sample import DistanceBatch, MAX_ANCHORS

logger = logging.getLogger(__name__)

AT_RANGE_PREFIX = "+RANGE_CDS_ALL:"

_ANCHOR_LABEL = re.compile(r"^AN(\d+)$", re.IGNORECASE)


class RangeParseError(ValueError):
    """Raised when a range line cannot be decoded."""


@dataclass
class RangeReport:
    """
    Decoded ranging response for one tag.

    Attributes:
        tag_id: Tag identifier (as a string)
        distances: Distance per anchor index in cm (<= 0 for missing)
    """

    tag_id: str
    distances: List[float] = field(default_factory=list)

    @property
    def num_valid(self) -> int:
        """Number of anchors with a reading."""
        return sum(1 for d in self.distances if d > 0)

    def to_batch(self) -> DistanceBatch:
        """Convert to a DistanceBatch for the positioning pipeline."""
        return DistanceBatch.from_distances(self.tag_id, self.distances)


def _to_distance(value, scale: float) -> float:
    """Convert one raw value to a distance, mapping junk to the sentinel."""
    try:
        distance = float(value)
    except (TypeError, ValueError):
        raise RangeParseError(f"Distance is not a number: {value!r}")

    if not math.isfinite(distance):
        return 0.0

    return distance * scale


def parse_json_line(line: str, scale: float = 1.0) -> RangeReport:
    """
    Parse a JSON range line.

    Args:
        line: Text line, e.g. '{"id": 0, "range": [120, 340, 0, 510]}'
        scale: Multiplier applied to every distance (unit conversion)

    Returns:
        RangeReport

    Raises:
        RangeParseError: If the line is not a JSON object with "id" and "range"
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise RangeParseError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise RangeParseError("JSON range line must be an object")

    if "id" not in data or "range" not in data:
        raise RangeParseError("JSON range line needs 'id' and 'range'")

    ranges = data["range"]
    if not isinstance(ranges, list):
        raise RangeParseError("'range' must be a list")

    if len(ranges) > MAX_ANCHORS:
        raise RangeParseError(f"Too many ranges: {len(ranges)} > {MAX_ANCHORS}")

    distances = [_to_distance(value, scale) for value in ranges]

    return RangeReport(tag_id=str(data["id"]), distances=distances)


def parse_at_line(line: str, scale: float = 1.0) -> RangeReport:
    """
    Parse an AT+RANGE_CDS_ALL response line.

    Args:
        line: Text line, e.g. '+RANGE_CDS_ALL:7,AN0,1.23,AN1,2.34'
        scale: Multiplier applied to every distance (e.g. 100 for m -> cm)

    Returns:
        RangeReport with distances indexed by the AN<n> labels; anchors that
        are not listed get 0 (no reading)

    Raises:
        RangeParseError: If the prefix, tag field or label/value pairs are malformed,
            or a label names an anchor index beyond MAX_ANCHORS - 1
    """
    start = line.find(AT_RANGE_PREFIX)
    if start < 0:
        raise RangeParseError(f"Missing {AT_RANGE_PREFIX} prefix")

    body = line[start + len(AT_RANGE_PREFIX):].strip()
    fields = [f.strip() for f in body.split(",") if f.strip()]

    if not fields:
        raise RangeParseError("Empty AT range response")

    tag_id = fields[0]
    pairs = fields[1:]

    if len(pairs) % 2 != 0:
        raise RangeParseError(f"Unpaired anchor field in: {body!r}")

    by_index = {}
    for label, value in zip(pairs[0::2], pairs[1::2]):
        match = _ANCHOR_LABEL.match(label)
        if match is None:
            raise RangeParseError(f"Bad anchor label: {label!r}")

        index = int(match.group(1))
        if index >= MAX_ANCHORS:
            raise RangeParseError(f"Anchor index {index} out of range (max {MAX_ANCHORS - 1})")
        by_index[index] = _to_distance(value, scale)

    distances = [0.0] * (max(by_index) + 1 if by_index else 0)
    for index, distance in by_index.items():
        distances[index] = distance

    return RangeReport(tag_id=tag_id, distances=distances)


def parse_line(line: str, fmt: str = "auto", scale: float = 1.0) -> RangeReport:
    """
    Parse a range line in the given format.

    Args:
        line: Text line
        fmt: "json", "at" or "auto" (detect from content)
        scale: Distance multiplier

    Returns:
        RangeReport

    Raises:
        RangeParseError: On malformed input or unknown format
    """
    text = line.strip()
    if not text:
        raise RangeParseError("Empty line")

    if fmt == "auto":
        if text.startswith("{"):
            fmt = "json"
        elif AT_RANGE_PREFIX in text:
            fmt = "at"
        else:
            raise RangeParseError(f"Unrecognized range line: {text[:40]!r}")

    if fmt == "json":
        return parse_json_line(text, scale)
    if fmt == "at":
        return parse_at_line(text, scale)

    raise RangeParseError(f"Unknown format: {fmt}")
