"""Weighted merging of independently recorded timelines.

Timelines from different producers sample the movie at different
offsets and carry different trust. Merging buckets every point by its
merge key (offset rounded to ``precision`` decimals) and takes the
weighted mean of the scores in each bucket, where each point carries
the weight of its timeline's source kind.

Example:
    >>> from timeline.merge import merge_weighted
    >>> raw = merge_weighted([live_timeline, nlp_timeline])
    >>> [(p.offset, round(p.score, 2)) for p in raw]
    [(50.0, 5.75)]
"""

from dataclasses import dataclass
from typing import Iterable, Mapping

from .schema import SourceKind, Timeline, TimelinePoint, aggregation_weight
from .utils import offset_key


@dataclass
class _Bucket:
    weighted_sum: float = 0.0
    weight_sum: float = 0.0
    low: float = float("inf")
    high: float = float("-inf")

    def add(self, score: float, weight: float) -> None:
        self.weighted_sum += score * weight
        self.weight_sum += weight
        self.low = min(self.low, score)
        self.high = max(self.high, score)

    @property
    def mean(self) -> float:
        # Floating-point drift must not push the mean outside its inputs.
        return min(max(self.weighted_sum / self.weight_sum, self.low), self.high)


def merge_weighted(
    timelines: Iterable[Timeline],
    weights: Mapping[SourceKind, float] | None = None,
    precision: int = 1,
) -> list[TimelinePoint]:
    """Merge timelines into one sequence of weighted-mean points.

    Args:
        timelines: Input timelines. They are read, never modified.
        weights: Per-source-kind weights. Defaults to the standard table;
            kinds missing from it fall back to the default weight.
        precision: Decimal places of the offset merge key.

    Returns:
        Points ordered by offset, one per distinct merge key, whose score
        is ``sum(score * weight) / sum(weight)`` over the bucket.
    """
    buckets: dict[float, _Bucket] = {}

    for timeline in timelines:
        weight = aggregation_weight(timeline.source_kind, weights)
        for point in timeline.points:
            bucket = buckets.setdefault(offset_key(point.offset, precision), _Bucket())
            bucket.add(point.score, weight)

    return [
        TimelinePoint(offset=key, score=buckets[key].mean)
        for key in sorted(buckets)
    ]
