"""Adapter for language-model review timelines.

The language model is asked to return a JSON array of
``{"t_offset": ..., "score": ...}`` objects, but it often wraps the
array in Markdown code fences. This module strips the fences, parses
and validates the array, and persists it as an ``nlp_analysis``
timeline. Malformed output is a hard failure; nothing is guessed.

Example:
    >>> parse_model_output('```json\\n[{"t_offset": 50, "score": 7}]\\n```')
    [TimelinePoint(offset=50.0, score=7.0)]
"""

import json
import logging
import re
from typing import TYPE_CHECKING, Protocol

from .errors import ModelOutputError, TimelineValidationError
from .schema import ModerationStatus, SourceKind, Timeline, TimelinePoint
from .utils import normalize_points

if TYPE_CHECKING:
    from storage.base import TimelineStore


logger = logging.getLogger(__name__)


_FENCE_JSON = re.compile(r"```json\n?")
_FENCE = re.compile(r"```\n?")


class ReviewAnalyzer(Protocol):
    """Anything that turns review text into raw model output."""

    def analyze_review(self, review_text: str, runtime_minutes: float) -> str: ...


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers and surrounding whitespace.

    Examples:
        >>> strip_code_fences('```json\\n[1]\\n```')
        '[1]'
    """
    return _FENCE.sub("", _FENCE_JSON.sub("", text)).strip()


def parse_model_output(text: str, precision: int = 1) -> list[TimelinePoint]:
    """Parse raw model output into timeline points.

    Args:
        text: Raw completion text.
        precision: Decimal places of the duplicate-offset merge key.

    Returns:
        Points sorted by offset with duplicate offsets merged.

    Raises:
        ModelOutputError: If the text is not a non-empty JSON array of
            in-range ``{t_offset, score}`` objects.
    """
    cleaned = strip_code_fences(text or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ModelOutputError(
            "Failed to parse AI response as JSON",
            code="UNPARSEABLE",
            details={"error": str(exc), "excerpt": cleaned[:200]},
        ) from exc

    if not isinstance(data, list):
        raise ModelOutputError(
            "Invalid graph data format from AI: expected an array",
            code="NOT_AN_ARRAY",
            details={"type": type(data).__name__},
        )
    if not data:
        raise ModelOutputError(
            "Invalid graph data format from AI: empty array",
            code="EMPTY_OUTPUT",
        )

    points: list[TimelinePoint] = []
    for index, item in enumerate(data):
        try:
            points.append(TimelinePoint.from_dict(item))
        except TimelineValidationError as exc:
            raise ModelOutputError(
                f"Invalid data point at index {index}: {exc.message}",
                code="INVALID_POINT",
                details={"index": index, **exc.details},
            ) from exc

    return normalize_points(points, precision)


def analyze_review(
    store: "TimelineStore",
    analyzer: ReviewAnalyzer,
    movie_id: str,
    review_text: str,
    runtime_minutes: float,
) -> Timeline:
    """Run review analysis and persist the resulting timeline.

    The timeline is system-attributed (no user), public and approved.

    Args:
        store: Storage backend.
        analyzer: Language-model client.
        movie_id: Movie the review is about.
        review_text: Review text.
        runtime_minutes: Movie runtime in minutes.

    Returns:
        The persisted timeline.

    Raises:
        TimelineValidationError: If the inputs are invalid.
        UpstreamError: If the model call fails.
        ModelOutputError: If the model output is malformed.
        StorageError: If persistence fails.
    """
    if not review_text or not review_text.strip():
        raise TimelineValidationError(
            "reviewText must not be empty",
            code="INVALID_INPUT",
        )
    if runtime_minutes <= 0:
        raise TimelineValidationError(
            f"runtime must be positive, got {runtime_minutes}",
            code="INVALID_INPUT",
            details={"runtime": runtime_minutes},
        )

    logger.info(
        "Processing NLP review: movie_id=%s runtime_minutes=%g",
        movie_id,
        runtime_minutes,
    )

    output = analyzer.analyze_review(review_text, runtime_minutes)
    points = parse_model_output(output)

    timeline = store.insert_timeline(
        Timeline(
            movie_id=movie_id,
            source_kind=SourceKind.NLP_ANALYSIS,
            points=points,
            user_id=None,
            is_public=True,
            moderation_status=ModerationStatus.APPROVED,
        )
    )

    logger.info(
        "NLP timeline stored: movie_id=%s graph_id=%s points=%d",
        movie_id,
        timeline.id,
        len(points),
    )
    return timeline
