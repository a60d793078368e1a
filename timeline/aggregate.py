"""Consensus aggregation of emotion timelines.

This module computes the single consensus timeline of a movie from all
of its eligible input timelines:

1. Fetch public, approved live-reaction, manual-review and NLP timelines.
2. Merge them by offset with source-kind weighting (``merge_weighted``).
3. Smooth the merged sequence with a centered moving average.
4. Upsert the result as the movie's ``consensus`` timeline.

Each invocation is stateless. Concurrent runs for the same movie are
last-write-wins; the consensus is a deterministic function of its
inputs, so the most recent write reflects its own read.

Example:
    >>> from timeline.aggregate import AggregationConfig, aggregate_movie
    >>> result = aggregate_movie(store, movie_id, AggregationConfig())
    >>> result.graphs_used, result.points_aggregated
    (2, 3)
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .merge import merge_weighted
from .schema import (
    AGGREGATION_WEIGHTS,
    INPUT_SOURCE_KINDS,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
)
from .smooth import SmoothingConfig, smooth_moving_average

if TYPE_CHECKING:
    from storage.base import TimelineStore


logger = logging.getLogger(__name__)


@dataclass
class AggregationConfig:
    """Configuration for consensus aggregation.

    Attributes:
        window_size: Moving-average window. Default 5.
        offset_precision: Decimal places of the offset merge key. Default 1.
        weights: Per-source-kind weights. Kinds missing here fall back to
            the default weight.
    """

    window_size: int = 5
    offset_precision: int = 1
    weights: dict[SourceKind, float] = field(
        default_factory=lambda: dict(AGGREGATION_WEIGHTS)
    )

    def __post_init__(self) -> None:
        """Validate configuration on initialization."""
        self.validate()

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            ValueError: If any parameter is invalid.
        """
        if self.window_size < 1:
            raise ValueError(f"window_size must be >= 1, got {self.window_size}")

        if self.offset_precision < 0:
            raise ValueError(
                f"offset_precision must be >= 0, got {self.offset_precision}"
            )

        for kind, weight in self.weights.items():
            if SourceKind(kind) is SourceKind.CONSENSUS:
                raise ValueError("consensus timelines cannot carry an aggregation weight")
            if not 0 < weight <= 1:
                raise ValueError(f"weight for {kind} must be in (0, 1], got {weight}")

    @property
    def smoothing(self) -> SmoothingConfig:
        return SmoothingConfig(window_size=self.window_size)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "window_size": self.window_size,
            "offset_precision": self.offset_precision,
            "weights": {SourceKind(k).value: v for k, v in self.weights.items()},
        }


class AggregationStatus(str, Enum):
    """Outcome of a single-movie aggregation."""

    AGGREGATED = "aggregated"
    EMPTY = "empty"


@dataclass
class AggregationResult:
    """Result of aggregating one movie.

    Attributes:
        movie_id: Movie that was aggregated.
        status: ``AGGREGATED`` when a consensus was written, ``EMPTY``
            when no eligible input existed and nothing was written.
        graphs_used: Number of input timelines merged.
        points_aggregated: Number of merged points (before smoothing,
            which keeps the count).
        consensus: The written consensus timeline, if any.
        created: True if the consensus row was inserted rather than updated.
    """

    movie_id: str
    status: AggregationStatus
    graphs_used: int = 0
    points_aggregated: int = 0
    consensus: Timeline | None = None
    created: bool = False

    @property
    def is_empty(self) -> bool:
        return self.status is AggregationStatus.EMPTY


@dataclass
class BatchFailure:
    """A movie whose aggregation raised during a batch run."""

    movie_id: str
    error: str


@dataclass
class BatchResult:
    """Result of aggregating every movie.

    Attributes:
        total: Number of movies attempted.
        success_count: Movies aggregated without error, including those
            with nothing to aggregate.
        results: Per-movie results of the successful runs.
        failures: Movies that failed.
    """

    total: int
    success_count: int
    results: list[AggregationResult] = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "successCount": self.success_count,
            "total": self.total,
            "failures": [{"movieId": f.movie_id, "error": f.error} for f in self.failures],
        }


def compute_consensus(
    timelines: list[Timeline],
    config: AggregationConfig | None = None,
) -> tuple[list[TimelinePoint], list[TimelinePoint]]:
    """Compute the raw and smoothed consensus of a set of timelines.

    Pure function of its inputs: the same timelines always yield the
    same points in the same order.

    Args:
        timelines: Eligible input timelines.
        config: Aggregation configuration.

    Returns:
        Tuple of (raw merged points, smoothed points).
    """
    if config is None:
        config = AggregationConfig()

    raw = merge_weighted(timelines, config.weights, config.offset_precision)
    smoothed = smooth_moving_average(raw, config.smoothing)
    return raw, smoothed


def aggregate_movie(
    store: "TimelineStore",
    movie_id: str,
    config: AggregationConfig | None = None,
) -> AggregationResult:
    """Recompute and upsert the consensus timeline of one movie.

    If the movie has no eligible timeline, nothing is written and any
    existing consensus is left as it was.

    Args:
        store: Storage backend.
        movie_id: Movie to aggregate.
        config: Aggregation configuration.

    Returns:
        AggregationResult describing what was done.

    Raises:
        StorageError: If reading inputs or writing the consensus fails.
    """
    if config is None:
        config = AggregationConfig()

    logger.info("Starting aggregation: movie_id=%s", movie_id)

    # Summation order is fixed so repeated runs give bit-identical scores.
    timelines = sorted(
        (
            t for t in store.fetch_eligible_timelines(movie_id, INPUT_SOURCE_KINDS)
            if t.is_eligible and t.movie_id == movie_id
        ),
        key=lambda t: (t.created_at or "", t.id or ""),
    )

    if not timelines:
        logger.info("No graphs to aggregate: movie_id=%s", movie_id)
        return AggregationResult(movie_id=movie_id, status=AggregationStatus.EMPTY)

    logger.info(
        "Aggregating graphs: movie_id=%s graphs=%d",
        movie_id,
        len(timelines),
    )

    raw, smoothed = compute_consensus(timelines, config)

    existing = store.get_consensus(movie_id)
    if existing is not None and existing.id is not None:
        consensus = store.update_timeline_points(existing.id, smoothed)
        created = False
        logger.info("Updated consensus graph: movie_id=%s id=%s", movie_id, existing.id)
    else:
        consensus = store.insert_timeline(
            Timeline(
                movie_id=movie_id,
                source_kind=SourceKind.CONSENSUS,
                points=smoothed,
                user_id=None,
                is_public=True,
                moderation_status=ModerationStatus.APPROVED,
            )
        )
        created = True
        logger.info("Created consensus graph: movie_id=%s id=%s", movie_id, consensus.id)

    return AggregationResult(
        movie_id=movie_id,
        status=AggregationStatus.AGGREGATED,
        graphs_used=len(timelines),
        points_aggregated=len(raw),
        consensus=consensus,
        created=created,
    )


def aggregate_all(
    store: "TimelineStore",
    config: AggregationConfig | None = None,
    max_workers: int = 1,
    on_progress: Callable[[str, AggregationResult | BatchFailure], None] | None = None,
) -> BatchResult:
    """Aggregate every movie, isolating per-movie failures.

    A movie whose aggregation raises is logged and excluded from the
    success count; the remaining movies are still aggregated. Movies
    touch disjoint rows, so with ``max_workers > 1`` they run on a
    thread pool with the same isolation.

    Args:
        store: Storage backend.
        config: Aggregation configuration.
        max_workers: Number of movies aggregated concurrently.
        on_progress: Called with each movie id and its outcome as it finishes.

    Returns:
        BatchResult with success and total counts.

    Raises:
        StorageError: If the movie list itself cannot be read.
    """
    if config is None:
        config = AggregationConfig()
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    movie_ids = store.list_movie_ids()
    logger.info(
        "Starting batch aggregation: movies=%d max_workers=%d",
        len(movie_ids),
        max_workers,
    )

    outcomes: dict[str, AggregationResult | BatchFailure] = {}

    if max_workers == 1:
        for movie_id in movie_ids:
            outcomes[movie_id] = _aggregate_isolated(store, movie_id, config)
            if on_progress is not None:
                on_progress(movie_id, outcomes[movie_id])
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {
                executor.submit(_aggregate_isolated, store, movie_id, config): movie_id
                for movie_id in movie_ids
            }
            for future in as_completed(futures):
                movie_id = futures[future]
                outcomes[movie_id] = future.result()
                if on_progress is not None:
                    on_progress(movie_id, outcomes[movie_id])

    results: list[AggregationResult] = []
    failures: list[BatchFailure] = []
    for movie_id in movie_ids:
        outcome = outcomes[movie_id]
        if isinstance(outcome, BatchFailure):
            failures.append(outcome)
        else:
            results.append(outcome)

    logger.info(
        "Batch aggregation complete: succeeded=%d total=%d",
        len(results),
        len(movie_ids),
    )

    return BatchResult(
        total=len(movie_ids),
        success_count=len(results),
        results=results,
        failures=failures,
    )


def _aggregate_isolated(
    store: "TimelineStore",
    movie_id: str,
    config: AggregationConfig,
) -> AggregationResult | BatchFailure:
    """Run one movie's aggregation, turning any error into a BatchFailure."""
    try:
        return aggregate_movie(store, movie_id, config)
    except Exception as exc:
        logger.error(
            "Aggregation failed: movie_id=%s error=%s",
            movie_id,
            exc,
            exc_info=True,
        )
        return BatchFailure(movie_id=movie_id, error=str(exc) or type(exc).__name__)


def weights_from_mapping(mapping: Mapping[str, float]) -> dict[SourceKind, float]:
    """Build a weight table from string keys (e.g. from settings).

    Raises:
        ValueError: If a key is not a known source kind.
    """
    return {SourceKind(key): float(value) for key, value in mapping.items()}
