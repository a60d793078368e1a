"""Tests for timeline.sections module (section-rated reviews)."""

from dataclasses import replace

import pytest

from conftest import MOVIE_ID, USER_ID, make_points, make_timeline
from storage.errors import StorageError
from storage.memory import InMemoryStore
from timeline.aggregate import aggregate_movie
from timeline.errors import ReviewLinkError, ReviewTimelineMissingError, TimelineValidationError
from timeline.schema import ModerationStatus, SourceKind
from timeline.sections import (
    SECTION_RANGES,
    expand_section_ratings,
    overall_rating,
    regenerate_review_timeline,
    submit_manual_review,
)


RATINGS = {
    "opening": 4,
    "rising_action": 6,
    "climax": 9,
    "falling_action": 7,
    "resolution": 8,
}


class FlakyInsertStore(InMemoryStore):
    """In-memory store whose first timeline insert fails."""

    def __init__(self) -> None:
        super().__init__()
        self.failures_left = 1

    def insert_timeline(self, timeline):
        if self.failures_left:
            self.failures_left -= 1
            raise StorageError("timeout")
        return super().insert_timeline(timeline)


class FlakyLinkStore(InMemoryStore):
    """In-memory store whose first review link fails."""

    def __init__(self) -> None:
        super().__init__()
        self.failures_left = 1

    def link_review_graph(self, review_id, graph_id):
        if self.failures_left:
            self.failures_left -= 1
            raise StorageError("connection reset")
        return super().link_review_graph(review_id, graph_id)


class TestExpandSectionRatings:
    """Tests for expand_section_ratings."""

    def test_covers_full_range(self):
        """Test that points start at 0 and end at 100."""
        points = expand_section_ratings(RATINGS)
        assert points[0].offset == 0.0
        assert points[-1].offset == 100.0

    def test_point_count_and_uniqueness(self):
        """Test 21 points at stride 5 with no repeated offset."""
        offsets = [p.offset for p in expand_section_ratings(RATINGS)]
        assert len(offsets) == 21
        assert len(set(offsets)) == 21
        assert offsets == sorted(offsets)

    def test_no_gap_wider_than_stride(self):
        """Test that consecutive offsets are at most one stride apart."""
        offsets = [p.offset for p in expand_section_ratings(RATINGS, stride=5)]
        gaps = [b - a for a, b in zip(offsets, offsets[1:])]
        assert max(gaps) <= 5.0

    def test_scores_equal_section_rating(self):
        """Test that every point carries its section's rating exactly."""
        for point in expand_section_ratings(RATINGS):
            section = next(
                name
                for name, (start, end) in SECTION_RANGES.items()
                if start <= point.offset < end or (end == 100 and point.offset == 100)
            )
            assert point.score == RATINGS[section]

    def test_section_boundaries(self):
        """Test that boundary offsets belong to the later section."""
        by_offset = {p.offset: p.score for p in expand_section_ratings(RATINGS)}
        assert by_offset[15.0] == 4.0
        assert by_offset[20.0] == 6.0
        assert by_offset[50.0] == 9.0
        assert by_offset[90.0] == 8.0

    def test_custom_stride(self):
        """Test a coarser stride still reaches 100."""
        points = expand_section_ratings(RATINGS, stride=10)
        assert [p.offset for p in points] == [float(x) for x in range(0, 101, 10)]

    def test_missing_section_rejected(self):
        """Test that all five sections are required."""
        ratings = dict(RATINGS)
        del ratings["climax"]
        with pytest.raises(TimelineValidationError) as exc_info:
            expand_section_ratings(ratings)
        assert exc_info.value.details["missing"] == ["climax"]

    def test_unknown_section_rejected(self):
        """Test that an extra section name is rejected."""
        with pytest.raises(TimelineValidationError) as exc_info:
            expand_section_ratings({**RATINGS, "epilogue": 5})
        assert exc_info.value.details["unknown"] == ["epilogue"]

    def test_out_of_range_rating_rejected(self):
        """Test that a rating above 10 is rejected, not clamped."""
        with pytest.raises(TimelineValidationError) as exc_info:
            expand_section_ratings({**RATINGS, "climax": 11})
        assert exc_info.value.code == "OUT_OF_RANGE"

    def test_invalid_stride(self):
        """Test that a non-positive stride raises."""
        with pytest.raises(ValueError):
            expand_section_ratings(RATINGS, stride=0)


class TestOverallRating:
    """Tests for overall_rating."""

    def test_mean_of_sections(self):
        """Test that the overall rating is the arithmetic mean."""
        assert overall_rating(RATINGS) == pytest.approx(6.8)


class TestSubmitManualReview:
    """Tests for submit_manual_review."""

    def test_stores_review_and_timeline(self, store):
        """Test that the review links the stored manual-review timeline."""
        review, timeline = submit_manual_review(store, MOVIE_ID, USER_ID, RATINGS)

        assert review.graph_id == timeline.id
        assert store.get_review(review.id).graph_id == timeline.id
        assert timeline.source_kind is SourceKind.MANUAL_REVIEW
        assert timeline.user_id == USER_ID
        assert len(timeline.points) == 21
        assert review.overall_rating == pytest.approx(6.8)

    def test_pending_by_default(self, store):
        """Test that new reviews await moderation and are not aggregated."""
        _, timeline = submit_manual_review(store, MOVIE_ID, USER_ID, RATINGS)

        assert timeline.moderation_status is ModerationStatus.PENDING
        assert not timeline.is_eligible

    def test_visibility_and_status_follow_review(self, store):
        """Test that the timeline copies the review's flags."""
        _, timeline = submit_manual_review(
            store,
            MOVIE_ID,
            USER_ID,
            RATINGS,
            is_public=False,
            moderation_status=ModerationStatus.APPROVED,
        )
        assert not timeline.is_public
        assert timeline.moderation_status is ModerationStatus.APPROVED

    def test_invalid_ratings_write_nothing(self, store):
        """Test that rejected ratings leave no review behind."""
        with pytest.raises(TimelineValidationError):
            submit_manual_review(store, MOVIE_ID, USER_ID, {**RATINGS, "climax": -1})
        assert store.all_timelines() == []

    def test_timeline_failure_is_reported(self):
        """Test that a failed timeline write raises with the review id."""
        flaky = FlakyInsertStore()

        with pytest.raises(ReviewTimelineMissingError) as exc_info:
            submit_manual_review(flaky, MOVIE_ID, USER_ID, RATINGS)

        review_id = exc_info.value.review_id
        assert flaky.get_review(review_id).graph_id is None
        assert exc_info.value.code == "REVIEW_TIMELINE_MISSING"

    def test_link_failure_carries_graph_id(self):
        """Test that a failed link is reported with the stored timeline id."""
        flaky = FlakyLinkStore()

        with pytest.raises(ReviewLinkError) as exc_info:
            submit_manual_review(flaky, MOVIE_ID, USER_ID, RATINGS)

        error = exc_info.value
        assert error.code == "REVIEW_LINK_FAILED"
        assert not isinstance(error, ReviewTimelineMissingError)
        assert flaky.get_timeline(error.graph_id).source_kind is SourceKind.MANUAL_REVIEW
        assert error.details["graph_id"] == error.graph_id
        assert flaky.get_review(error.review_id).graph_id is None


class TestRegenerateReviewTimeline:
    """Tests for regenerate_review_timeline."""

    def test_recovers_missing_timeline(self):
        """Test that regeneration creates and links the timeline."""
        flaky = FlakyInsertStore()
        with pytest.raises(ReviewTimelineMissingError) as exc_info:
            submit_manual_review(flaky, MOVIE_ID, USER_ID, RATINGS)

        review, timeline = regenerate_review_timeline(flaky, exc_info.value.review_id)

        assert timeline is not None
        assert review.graph_id == timeline.id
        assert flaky.get_review(review.id).graph_id == timeline.id

    def test_idempotent(self, store):
        """Test that a linked review is left alone."""
        review, timeline = submit_manual_review(store, MOVIE_ID, USER_ID, RATINGS)

        again, new_timeline = regenerate_review_timeline(store, review.id)

        assert new_timeline is None
        assert again.graph_id == timeline.id
        assert len(store.all_timelines()) == 1

    def test_relinks_stored_timeline(self):
        """Test that a failed link is completed without a second timeline."""
        flaky = FlakyLinkStore()
        with pytest.raises(ReviewLinkError) as exc_info:
            submit_manual_review(
                flaky,
                MOVIE_ID,
                USER_ID,
                RATINGS,
                moderation_status=ModerationStatus.APPROVED,
            )
        error = exc_info.value

        review, timeline = regenerate_review_timeline(
            flaky, error.review_id, graph_id=error.graph_id
        )

        assert timeline.id == error.graph_id
        assert review.graph_id == error.graph_id
        assert flaky.get_review(error.review_id).graph_id == error.graph_id
        manual = [t for t in flaky.all_timelines() if t.source_kind is SourceKind.MANUAL_REVIEW]
        assert len(manual) == 1
        assert aggregate_movie(flaky, MOVIE_ID).graphs_used == 1

    def test_foreign_timeline_rejected(self, store):
        """Test that only the review's own manual-review timeline can be linked."""
        review, _ = submit_manual_review(store, MOVIE_ID, USER_ID, RATINGS)
        orphan = store.insert_review(replace(review, id=None, graph_id=None))
        live = store.insert_timeline(
            make_timeline(SourceKind.LIVE_REACTION, make_points((0, 5), (100, 6)))
        )

        with pytest.raises(TimelineValidationError) as exc_info:
            regenerate_review_timeline(store, orphan.id, graph_id=live.id)

        assert exc_info.value.code == "GRAPH_MISMATCH"
        assert store.get_review(orphan.id).graph_id is None
