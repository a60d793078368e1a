"""Utility functions for timeline operations."""

from typing import Iterable

from .schema import TimelinePoint


def offset_key(offset: float, precision: int = 1) -> float:
    """Round an offset to its merge key.

    Half-way values round away from zero so that keys agree with the
    values the web client records (``Math.round(t * 10) / 10``).

    Args:
        offset: Offset in percent of runtime.
        precision: Number of decimal places kept.

    Returns:
        Rounded offset.

    Examples:
        >>> offset_key(12.34)
        12.3
        >>> offset_key(12.25)
        12.3
    """
    scale = 10 ** precision
    return int(offset * scale + 0.5) / scale


def normalize_points(
    points: Iterable[TimelinePoint],
    precision: int = 1,
) -> list[TimelinePoint]:
    """Merge duplicate offsets and sort a producer's captured points.

    Points sharing a merge key collapse into one, keeping the last
    captured score. The result has unique, strictly increasing offsets.

    Args:
        points: Captured points in capture order.
        precision: Decimal places of the merge key.

    Returns:
        New list of points ordered by offset.

    Examples:
        >>> pts = [TimelinePoint(10.0, 4.0), TimelinePoint(5.0, 6.0), TimelinePoint(10.02, 7.0)]
        >>> [(p.offset, p.score) for p in normalize_points(pts)]
        [(5.0, 6.0), (10.0, 7.0)]
    """
    by_key: dict[float, float] = {}
    for point in points:
        by_key[offset_key(point.offset, precision)] = point.score
    return [TimelinePoint(offset=key, score=by_key[key]) for key in sorted(by_key)]
