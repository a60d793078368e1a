"""Timeline module for movie emotion timelines.

This module provides:
- The shared timeline data model (points, timelines, source kinds, weights)
- Producers: live-reaction sampling, section-rating expansion, and the
  language-model output adapter
- Weighted merging and moving-average smoothing
- Consensus aggregation per movie and across all movies

Example:
    >>> from timeline import aggregate_movie
    >>> result = aggregate_movie(store, movie_id)
    >>> for point in result.consensus.points:
    ...     print(f"{point.offset:5.1f}%: {point.score:.2f}")

Section Review Example:
    >>> from timeline import expand_section_ratings
    >>> points = expand_section_ratings(
    ...     {"opening": 5, "rising_action": 6, "climax": 9,
    ...      "falling_action": 7, "resolution": 8}
    ... )
"""

from .aggregate import (
    AggregationConfig,
    AggregationResult,
    AggregationStatus,
    BatchFailure,
    BatchResult,
    aggregate_all,
    aggregate_movie,
    compute_consensus,
    weights_from_mapping,
)
from .errors import (
    ModelOutputError,
    ReviewLinkError,
    ReviewTimelineMissingError,
    SessionStateError,
    TimelineError,
    TimelineValidationError,
)
from .live import LiveReactionSampler, SamplerState, complete_session
from .merge import merge_weighted
from .nlp import analyze_review, parse_model_output, strip_code_fences
from .schema import (
    AGGREGATION_WEIGHTS,
    DEFAULT_AGGREGATION_WEIGHT,
    INPUT_SOURCE_KINDS,
    LiveSession,
    ManualReview,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
    aggregation_weight,
)
from .sections import (
    SECTION_NAMES,
    SECTION_RANGES,
    expand_section_ratings,
    overall_rating,
    regenerate_review_timeline,
    submit_manual_review,
)
from .smooth import SmoothingConfig, smooth_moving_average
from .utils import normalize_points, offset_key


__all__ = [
    # Aggregation
    "aggregate_movie",
    "aggregate_all",
    "compute_consensus",
    "AggregationConfig",
    "AggregationResult",
    "AggregationStatus",
    "BatchFailure",
    "BatchResult",
    "weights_from_mapping",
    # Merging and smoothing
    "merge_weighted",
    "SmoothingConfig",
    "smooth_moving_average",
    # Producers
    "LiveReactionSampler",
    "SamplerState",
    "complete_session",
    "SECTION_NAMES",
    "SECTION_RANGES",
    "expand_section_ratings",
    "overall_rating",
    "submit_manual_review",
    "regenerate_review_timeline",
    "analyze_review",
    "parse_model_output",
    "strip_code_fences",
    # Schema
    "TimelinePoint",
    "Timeline",
    "LiveSession",
    "ManualReview",
    "SourceKind",
    "ModerationStatus",
    "AGGREGATION_WEIGHTS",
    "DEFAULT_AGGREGATION_WEIGHT",
    "INPUT_SOURCE_KINDS",
    "aggregation_weight",
    # Errors
    "TimelineError",
    "TimelineValidationError",
    "ModelOutputError",
    "SessionStateError",
    "ReviewLinkError",
    "ReviewTimelineMissingError",
    # Utils
    "offset_key",
    "normalize_points",
]
