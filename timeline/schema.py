"""Schema definitions for emotion timelines.

This module defines the data structures shared by every producer and
consumer of emotion data: points, timelines, live-reaction sessions and
manual review records, together with the source-kind weighting table
used by aggregation.

Rows coming from storage are parsed with ``from_row`` / ``from_dict``,
which fail closed on any schema violation.

Example:
    >>> from timeline.schema import SourceKind, Timeline, TimelinePoint
    >>> timeline = Timeline(
    ...     movie_id="m-1",
    ...     source_kind=SourceKind.LIVE_REACTION,
    ...     points=[TimelinePoint(0.0, 5.0), TimelinePoint(50.0, 8.0)],
    ...     user_id="u-1",
    ... )
    >>> timeline.to_row()["graph_data"]
    [{'t_offset': 0.0, 'score': 5.0}, {'t_offset': 50.0, 'score': 8.0}]
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from .errors import TimelineValidationError


OFFSET_MIN = 0.0
OFFSET_MAX = 100.0
SCORE_MIN = 0.0
SCORE_MAX = 10.0
NEUTRAL_SCORE = 5.0


class SourceKind(str, Enum):
    """Producer category of a timeline."""

    LIVE_REACTION = "live_reaction"
    MANUAL_REVIEW = "manual_review"
    NLP_ANALYSIS = "nlp_analysis"
    CONSENSUS = "consensus"

    @property
    def is_aggregation_input(self) -> bool:
        """Whether timelines of this kind feed the consensus."""
        return self is not SourceKind.CONSENSUS


class ModerationStatus(str, Enum):
    """Moderation state of a timeline or review."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# Consensus is never an aggregation input.
AGGREGATION_WEIGHTS: dict[SourceKind, float] = {
    SourceKind.LIVE_REACTION: 1.0,
    SourceKind.MANUAL_REVIEW: 0.8,
    SourceKind.NLP_ANALYSIS: 0.6,
}

DEFAULT_AGGREGATION_WEIGHT = 0.5

INPUT_SOURCE_KINDS: tuple[SourceKind, ...] = tuple(
    kind for kind in SourceKind if kind.is_aggregation_input
)


def aggregation_weight(
    source_kind: SourceKind | str,
    weights: Mapping[SourceKind, float] | None = None,
) -> float:
    """Look up the aggregation weight for a source kind.

    Kinds missing from the table get ``DEFAULT_AGGREGATION_WEIGHT``
    instead of raising, so a newly introduced kind can be aggregated
    before the table is updated.

    Args:
        source_kind: Source kind (enum member or its string value).
        weights: Weight table. Defaults to ``AGGREGATION_WEIGHTS``.

    Returns:
        Weight in (0, 1].
    """
    table = AGGREGATION_WEIGHTS if weights is None else weights
    try:
        kind = SourceKind(source_kind)
    except ValueError:
        return DEFAULT_AGGREGATION_WEIGHT
    return table.get(kind, DEFAULT_AGGREGATION_WEIGHT)


def _require_number(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TimelineValidationError(
            f"{name} must be a number, got {type(value).__name__}",
            code="INVALID_POINT",
            details={name: repr(value)},
        )
    number = float(value)
    if not math.isfinite(number):
        raise TimelineValidationError(
            f"{name} must be finite, got {number}",
            code="INVALID_POINT",
            details={name: repr(value)},
        )
    return number


@dataclass(frozen=True)
class TimelinePoint:
    """A single emotion measurement.

    Attributes:
        offset: Position in the movie as percent of runtime, [0, 100].
        score: Emotional intensity, [0, 10] (0 very negative, 5 neutral,
            10 very positive).
    """

    offset: float
    score: float

    def __post_init__(self) -> None:
        """Validate ranges; out-of-range values are rejected, never clamped."""
        offset = _require_number(self.offset, "offset")
        score = _require_number(self.score, "score")

        if not OFFSET_MIN <= offset <= OFFSET_MAX:
            raise TimelineValidationError(
                f"offset must be in [{OFFSET_MIN:g}, {OFFSET_MAX:g}], got {offset}",
                code="OUT_OF_RANGE",
                details={"offset": offset},
            )
        if not SCORE_MIN <= score <= SCORE_MAX:
            raise TimelineValidationError(
                f"score must be in [{SCORE_MIN:g}, {SCORE_MAX:g}], got {score}",
                code="OUT_OF_RANGE",
                details={"score": score},
            )

        object.__setattr__(self, "offset", offset)
        object.__setattr__(self, "score", score)

    @classmethod
    def from_dict(cls, data: Any) -> "TimelinePoint":
        """Parse a stored ``{t_offset, score}`` object.

        Raises:
            TimelineValidationError: If the object is malformed or out of range.
        """
        if not isinstance(data, Mapping):
            raise TimelineValidationError(
                f"point must be an object, got {type(data).__name__}",
                code="INVALID_POINT",
            )
        missing = [key for key in ("t_offset", "score") if key not in data]
        if missing:
            raise TimelineValidationError(
                f"point is missing field(s): {', '.join(missing)}",
                code="INVALID_POINT",
                details={"missing": missing},
            )
        return cls(offset=data["t_offset"], score=data["score"])

    def to_dict(self) -> dict[str, float]:
        """Convert to the stored ``{t_offset, score}`` form."""
        return {"t_offset": self.offset, "score": self.score}


def points_from_json(data: Any) -> list[TimelinePoint]:
    """Parse a stored ``graph_data`` array into points."""
    if not isinstance(data, list):
        raise TimelineValidationError(
            f"graph_data must be an array, got {type(data).__name__}",
            code="INVALID_ROW",
        )
    return [TimelinePoint.from_dict(item) for item in data]


def points_to_json(points: list[TimelinePoint]) -> list[dict[str, float]]:
    """Serialize points to the stored ``graph_data`` array."""
    return [point.to_dict() for point in points]


def _require_field(row: Mapping[str, Any], key: str) -> Any:
    if row.get(key) is None:
        raise TimelineValidationError(
            f"row is missing required field '{key}'",
            code="INVALID_ROW",
            details={"field": key, "id": row.get("id")},
        )
    return row[key]


def _parse_enum(enum_cls: type[Enum], value: Any, field_name: str) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        raise TimelineValidationError(
            f"unknown {field_name}: {value!r}",
            code="INVALID_ROW",
            details={field_name: value},
        ) from None


@dataclass
class Timeline:
    """An ordered emotion timeline for one movie from one source.

    Attributes:
        movie_id: Movie identifier.
        source_kind: Producer category.
        points: Points ordered by offset.
        user_id: Owning user, or None for system-attributed timelines.
        is_public: Visibility flag.
        moderation_status: Moderation state.
        id: Storage identifier, None until persisted.
        created_at: ISO-8601 creation timestamp from storage.
        updated_at: ISO-8601 update timestamp from storage.
    """

    movie_id: str
    source_kind: SourceKind
    points: list[TimelinePoint] = field(default_factory=list)
    user_id: str | None = None
    is_public: bool = True
    moderation_status: ModerationStatus = ModerationStatus.APPROVED
    id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def is_eligible(self) -> bool:
        """Whether this timeline may feed a consensus aggregation."""
        return (
            self.source_kind.is_aggregation_input
            and self.is_public
            and self.moderation_status is ModerationStatus.APPROVED
        )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Timeline":
        """Parse an ``emotion_graphs`` row.

        Raises:
            TimelineValidationError: If the row does not match the shape.
        """
        return cls(
            id=row.get("id"),
            movie_id=_require_field(row, "movie_id"),
            user_id=row.get("user_id"),
            source_kind=_parse_enum(SourceKind, _require_field(row, "source_type"), "source_type"),
            points=points_from_json(row.get("graph_data")),
            is_public=bool(row.get("is_public", False)),
            moderation_status=_parse_enum(
                ModerationStatus,
                row.get("moderation_status") or ModerationStatus.PENDING.value,
                "moderation_status",
            ),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_row(self) -> dict[str, Any]:
        """Convert to an ``emotion_graphs`` row for insertion."""
        row: dict[str, Any] = {
            "movie_id": self.movie_id,
            "user_id": self.user_id,
            "source_type": self.source_kind.value,
            "graph_data": points_to_json(self.points),
            "is_public": self.is_public,
            "moderation_status": self.moderation_status.value,
        }
        if self.id is not None:
            row["id"] = self.id
        return row


@dataclass
class LiveSession:
    """A live-reaction capture session (``live_reaction_sessions`` row)."""

    movie_id: str
    user_id: str
    id: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    is_completed: bool = False
    session_data: list[TimelinePoint] = field(default_factory=list)
    graph_id: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "LiveSession":
        return cls(
            id=row.get("id"),
            movie_id=_require_field(row, "movie_id"),
            user_id=_require_field(row, "user_id"),
            started_at=row.get("started_at"),
            completed_at=row.get("completed_at"),
            is_completed=bool(row.get("is_completed", False)),
            session_data=points_from_json(row.get("session_data") or []),
            graph_id=row.get("graph_id"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "movie_id": self.movie_id,
            "user_id": self.user_id,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "is_completed": self.is_completed,
            "session_data": points_to_json(self.session_data),
            "graph_id": self.graph_id,
        }


@dataclass
class ManualReview:
    """A section-rated review (``manual_reviews`` row)."""

    movie_id: str
    user_id: str
    section_ratings: dict[str, float]
    overall_rating: float
    review_text: str | None = None
    is_public: bool = True
    moderation_status: ModerationStatus = ModerationStatus.PENDING
    id: str | None = None
    graph_id: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ManualReview":
        ratings = row.get("section_ratings")
        if not isinstance(ratings, Mapping):
            raise TimelineValidationError(
                "section_ratings must be an object",
                code="INVALID_ROW",
                details={"id": row.get("id")},
            )
        return cls(
            id=row.get("id"),
            movie_id=_require_field(row, "movie_id"),
            user_id=_require_field(row, "user_id"),
            section_ratings={str(k): _require_number(v, str(k)) for k, v in ratings.items()},
            overall_rating=float(row.get("overall_rating") or 0.0),
            review_text=row.get("review_text"),
            is_public=bool(row.get("is_public", False)),
            moderation_status=_parse_enum(
                ModerationStatus,
                row.get("moderation_status") or ModerationStatus.PENDING.value,
                "moderation_status",
            ),
            graph_id=row.get("graph_id"),
            created_at=row.get("created_at"),
        )

    def to_row(self) -> dict[str, Any]:
        row: dict[str, Any] = {
            "movie_id": self.movie_id,
            "user_id": self.user_id,
            "section_ratings": dict(self.section_ratings),
            "overall_rating": self.overall_rating,
            "review_text": self.review_text,
            "is_public": self.is_public,
            "moderation_status": self.moderation_status.value,
        }
        if self.graph_id is not None:
            row["graph_id"] = self.graph_id
        return row
