"""
Distance Sample Message Schema.

One range measurement from an anchor to the tag, as produced by the range
line parser. A batch holds every sample of one ranging response.
"""

from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence

# Largest supported anchor count; valid anchor indices are 0..MAX_ANCHORS-1
MAX_ANCHORS = 10


@dataclass
class DistanceSample:
    """
    UWB range measurement from one anchor.

    Attributes:
        anchor_index: Index of the anchor in the AnchorLayout
        distance: Measured distance in cm (<= 0 means no reading)
        quality: Multiplicative confidence weight in [0, 1]

    Notes:
        - quality is a property of the current distance vector, not of the
          anchor; it starts at 1.0 every cycle and only the consistency
          checker lowers it
    """

    anchor_index: int
    distance: float
    quality: float = 1.0

    def __post_init__(self):
        """Validate sample after initialization."""
        if self.anchor_index < 0:
            raise ValueError(f"Anchor index cannot be negative: {self.anchor_index}")

        if not 0.0 <= self.quality <= 1.0:
            raise ValueError(f"Quality must be in [0,1]: {self.quality}")

    @property
    def is_usable(self) -> bool:
        """Check if this sample carries a reading."""
        return self.distance > 0

    def with_quality(self, quality: float) -> 'DistanceSample':
        """Copy of this sample with a different quality weight."""
        return replace(self, quality=quality)


@dataclass
class DistanceBatch:
    """
    All distance samples of one ranging response for one tag.

    Attributes:
        tag_id: Tag the response belongs to
        samples: List of DistanceSample
    """

    tag_id: str
    samples: List[DistanceSample] = field(default_factory=list)

    @classmethod
    def from_distances(cls, tag_id: str, distances: Sequence[float]) -> 'DistanceBatch':
        """
        Build a batch from a flat distance array (index = anchor index).

        Args:
            tag_id: Tag ID
            distances: Distances in cm, <= 0 for missing readings

        Returns:
            DistanceBatch with one sample per entry
        """
        samples = [
            DistanceSample(anchor_index=i, distance=float(d))
            for i, d in enumerate(distances)
        ]
        return cls(tag_id=tag_id, samples=samples)

    def get_sample(self, anchor_index: int) -> Optional[DistanceSample]:
        """
        Get sample from a specific anchor.

        Args:
            anchor_index: Anchor index to find

        Returns:
            DistanceSample if found, None otherwise
        """
        for sample in self.samples:
            if sample.anchor_index == anchor_index:
                return sample
        return None

    def usable_samples(self) -> List[DistanceSample]:
        """Get all samples that carry a reading."""
        return [s for s in self.samples if s.is_usable]

    @property
    def num_usable(self) -> int:
        """Number of usable samples in batch."""
        return len(self.usable_samples())

    @property
    def anchor_indices(self) -> List[int]:
        """Anchor indices present in this batch."""
        return [s.anchor_index for s in self.samples]

    def with_reset_quality(self) -> 'DistanceBatch':
        """Copy of this batch with every quality weight back at 1.0."""
        return DistanceBatch(
            tag_id=self.tag_id,
            samples=[s.with_quality(1.0) for s in self.samples],
        )
