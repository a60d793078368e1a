"""Section-rating reviews.

Viewers who did not track a movie live rate five fixed story sections
instead. The ratings are expanded into a plottable step-function
timeline: each section contributes points at a fixed stride across its
offset range, all carrying the section's rating unchanged.

Section ranges (percent of runtime):
    - opening: [0, 20)
    - rising_action: [20, 50)
    - climax: [50, 70)
    - falling_action: [70, 90)
    - resolution: [90, 100]

Example:
    >>> ratings = {"opening": 4, "rising_action": 6, "climax": 9,
    ...            "falling_action": 7, "resolution": 8}
    >>> points = expand_section_ratings(ratings)
    >>> len(points), points[0].offset, points[-1].offset
    (21, 0.0, 100.0)
    >>> overall_rating(ratings)
    6.8
"""

import logging
from typing import TYPE_CHECKING, Mapping

from .errors import ReviewLinkError, ReviewTimelineMissingError, TimelineValidationError
from .schema import (
    OFFSET_MAX,
    SCORE_MAX,
    SCORE_MIN,
    ManualReview,
    ModerationStatus,
    SourceKind,
    Timeline,
    TimelinePoint,
)

if TYPE_CHECKING:
    from storage.base import TimelineStore


logger = logging.getLogger(__name__)


SECTION_RANGES: dict[str, tuple[float, float]] = {
    "opening": (0.0, 20.0),
    "rising_action": (20.0, 50.0),
    "climax": (50.0, 70.0),
    "falling_action": (70.0, 90.0),
    "resolution": (90.0, 100.0),
}

SECTION_NAMES: tuple[str, ...] = tuple(SECTION_RANGES)

DEFAULT_STRIDE = 5.0


def validate_section_ratings(ratings: Mapping[str, float]) -> dict[str, float]:
    """Check that exactly the five sections are rated, each in [0, 10].

    Returns:
        Ratings as floats in section order.

    Raises:
        TimelineValidationError: If a section is missing or unknown, or a
            rating is out of range.
    """
    missing = [name for name in SECTION_NAMES if name not in ratings]
    unknown = sorted(set(ratings) - set(SECTION_NAMES))
    if missing or unknown:
        raise TimelineValidationError(
            "section ratings must cover exactly: " + ", ".join(SECTION_NAMES),
            code="INVALID_SECTIONS",
            details={"missing": missing, "unknown": unknown},
        )

    validated: dict[str, float] = {}
    for name in SECTION_NAMES:
        value = ratings[name]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise TimelineValidationError(
                f"rating for {name} must be a number",
                code="INVALID_SECTIONS",
                details={"section": name},
            )
        if not SCORE_MIN <= value <= SCORE_MAX:
            raise TimelineValidationError(
                f"rating for {name} must be in [{SCORE_MIN:g}, {SCORE_MAX:g}], got {value}",
                code="OUT_OF_RANGE",
                details={"section": name, "rating": value},
            )
        validated[name] = float(value)
    return validated


def expand_section_ratings(
    ratings: Mapping[str, float],
    stride: float = DEFAULT_STRIDE,
) -> list[TimelinePoint]:
    """Expand section ratings into a piecewise-constant timeline.

    Each section emits points at ``start, start + stride, ...`` while
    below its end; the last section also emits its end (100), so the
    whole [0, 100] range is covered with no gap wider than ``stride``
    and no offset appears twice.

    Args:
        ratings: Rating per section name.
        stride: Distance between consecutive points.

    Returns:
        Points ordered by offset.
    """
    if stride <= 0:
        raise ValueError(f"stride must be > 0, got {stride}")

    validated = validate_section_ratings(ratings)
    points: list[TimelinePoint] = []

    for name, (start, end) in SECTION_RANGES.items():
        rating = validated[name]
        step = 0
        offset = start
        while offset < end or (end == OFFSET_MAX and offset == end):
            points.append(TimelinePoint(offset=offset, score=rating))
            step += 1
            offset = round(start + step * stride, 6)

    return points


def overall_rating(ratings: Mapping[str, float]) -> float:
    """Return the arithmetic mean of the five section ratings."""
    validated = validate_section_ratings(ratings)
    return sum(validated.values()) / len(validated)


def _insert_review_timeline(
    store: "TimelineStore",
    review: ManualReview,
    points: list[TimelinePoint],
) -> Timeline:
    try:
        return store.insert_timeline(
            Timeline(
                movie_id=review.movie_id,
                source_kind=SourceKind.MANUAL_REVIEW,
                points=points,
                user_id=review.user_id,
                is_public=review.is_public,
                moderation_status=review.moderation_status,
            )
        )
    except Exception as exc:
        logger.error(
            "Review stored without timeline: review_id=%s error=%s",
            review.id,
            exc,
        )
        raise ReviewTimelineMissingError(
            "Review was saved but its emotion timeline could not be stored; retry timeline generation",
            review_id=review.id,
            details={"cause": str(exc)},
        ) from exc


def _link_review_timeline(
    store: "TimelineStore",
    review: ManualReview,
    timeline: Timeline,
) -> None:
    try:
        store.link_review_graph(review.id, timeline.id)
    except Exception as exc:
        logger.error(
            "Review timeline stored but not linked: review_id=%s graph_id=%s error=%s",
            review.id,
            timeline.id,
            exc,
        )
        raise ReviewLinkError(
            "Review timeline was saved but could not be linked to the review; retry with its graph id",
            review_id=review.id,
            graph_id=timeline.id,
            details={"cause": str(exc)},
        ) from exc
    review.graph_id = timeline.id


def _check_review_timeline(review: ManualReview, timeline: Timeline) -> None:
    if (
        timeline.source_kind is not SourceKind.MANUAL_REVIEW
        or timeline.movie_id != review.movie_id
        or timeline.user_id != review.user_id
    ):
        raise TimelineValidationError(
            "Timeline does not belong to this review",
            code="GRAPH_MISMATCH",
            details={"review_id": review.id, "graph_id": timeline.id},
        )


def submit_manual_review(
    store: "TimelineStore",
    movie_id: str,
    user_id: str,
    ratings: Mapping[str, float],
    review_text: str | None = None,
    is_public: bool = True,
    moderation_status: ModerationStatus = ModerationStatus.PENDING,
    stride: float = DEFAULT_STRIDE,
) -> tuple[ManualReview, Timeline]:
    """Store a section-rated review and its expanded timeline.

    The review row is written first, then the timeline, then the link
    between them. A failed timeline write raises
    ``ReviewTimelineMissingError``; a failed link raises
    ``ReviewLinkError`` carrying the stored timeline's id. Either way the
    review is kept and ``regenerate_review_timeline`` completes it.

    Args:
        store: Storage backend.
        movie_id: Reviewed movie.
        user_id: Reviewer.
        ratings: Rating per section name.
        review_text: Free-text commentary.
        is_public: Visibility of both the review and its timeline.
        moderation_status: Initial moderation state of both rows.
        stride: Expansion stride.

    Returns:
        Tuple of (stored review, stored timeline).

    Raises:
        TimelineValidationError: If the ratings are invalid (nothing written).
        ReviewTimelineMissingError: If the timeline write failed after
            the review was stored.
        ReviewLinkError: If the timeline was stored but not linked.
    """
    validated = validate_section_ratings(ratings)
    points = expand_section_ratings(validated, stride)

    review = store.insert_review(
        ManualReview(
            movie_id=movie_id,
            user_id=user_id,
            section_ratings=validated,
            overall_rating=overall_rating(validated),
            review_text=review_text,
            is_public=is_public,
            moderation_status=moderation_status,
        )
    )

    timeline = _insert_review_timeline(store, review, points)
    _link_review_timeline(store, review, timeline)

    logger.info(
        "Manual review stored: review_id=%s graph_id=%s overall=%.2f",
        review.id,
        timeline.id,
        review.overall_rating,
    )
    return review, timeline


def regenerate_review_timeline(
    store: "TimelineStore",
    review_id: str,
    stride: float = DEFAULT_STRIDE,
    graph_id: str | None = None,
) -> tuple[ManualReview, Timeline | None]:
    """Complete a stored review that has no linked timeline.

    With ``graph_id`` (from a ``ReviewLinkError``) the already stored
    timeline is linked and nothing new is written. Otherwise the timeline
    is rebuilt from the stored section ratings.

    Idempotent: a review that already links a timeline is returned
    unchanged with ``None`` as the timeline.

    Raises:
        NotFoundError: If the review or ``graph_id`` does not exist.
        TimelineValidationError: If ``graph_id`` is not this review's timeline.
        ReviewTimelineMissingError: If the rebuilt timeline cannot be stored.
        ReviewLinkError: If the timeline cannot be linked.
    """
    review = store.get_review(review_id)
    if review.graph_id is not None:
        logger.info(
            "Review already has a timeline: review_id=%s graph_id=%s",
            review_id,
            review.graph_id,
        )
        return review, None

    if graph_id is not None:
        timeline = store.get_timeline(graph_id)
        _check_review_timeline(review, timeline)
        _link_review_timeline(store, review, timeline)
        logger.info("Review timeline linked: review_id=%s graph_id=%s", review_id, timeline.id)
        return review, timeline

    points = expand_section_ratings(review.section_ratings, stride)
    timeline = _insert_review_timeline(store, review, points)
    _link_review_timeline(store, review, timeline)
    logger.info("Review timeline regenerated: review_id=%s graph_id=%s", review_id, timeline.id)
    return review, timeline
