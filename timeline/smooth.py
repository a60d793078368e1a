"""Moving-average smoothing for consensus timelines.

The raw consensus produced by the weighted merge is jittery wherever
sources disagree or sample at different offsets. A centered moving
average with a fixed window evens it out while keeping every offset.

Boundary handling clamps the window to the sequence instead of padding
or wrapping, so the first and last points average over fewer
neighbours.

Example:
    >>> from timeline.smooth import SmoothingConfig, smooth_moving_average
    >>> smoothed = smooth_moving_average(points, SmoothingConfig(window_size=5))
"""

import math
from dataclasses import dataclass

import numpy as np

from .schema import TimelinePoint


@dataclass
class SmoothingConfig:
    """Configuration for consensus smoothing.

    Attributes:
        window_size: Number of points in the centered window. Sequences
            shorter than this are returned unchanged. Default 5.
    """

    window_size: int = 5

    def __post_init__(self) -> None:
        """Validate configuration on initialization."""
        self.validate()

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if self.window_size < 1:
            raise ValueError(
                f"window_size must be >= 1, got {self.window_size}"
            )

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {"method": "moving_average", "window_size": self.window_size}


def window_bounds(index: int, length: int, window_size: int) -> tuple[int, int]:
    """Return the clamped half-open window ``[start, end)`` around ``index``.

    Examples:
        >>> window_bounds(0, 10, 5)
        (0, 3)
        >>> window_bounds(5, 10, 5)
        (3, 8)
        >>> window_bounds(9, 10, 5)
        (7, 10)
    """
    start = max(0, index - window_size // 2)
    end = min(length, index + math.ceil(window_size / 2))
    return start, end


def smooth_moving_average(
    points: list[TimelinePoint],
    config: SmoothingConfig | None = None,
) -> list[TimelinePoint]:
    """Apply a centered moving average to a timeline.

    Args:
        points: Points ordered by offset.
        config: Smoothing configuration. Defaults to a window of 5.

    Returns:
        New list of points with the same offsets and smoothed scores.
        If there are fewer points than the window size, the input
        points are returned unchanged.
    """
    if config is None:
        config = SmoothingConfig()

    n = len(points)
    if n < config.window_size:
        return list(points)

    scores = np.fromiter((p.score for p in points), dtype=np.float64, count=n)

    result = []
    for i, point in enumerate(points):
        start, end = window_bounds(i, n, config.window_size)
        window = scores[start:end]
        result.append(
            TimelinePoint(
                offset=point.offset,
                score=float(np.clip(window.mean(), window.min(), window.max())),
            )
        )

    return result
