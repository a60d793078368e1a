"""Tests for timeline.aggregate module (consensus aggregation)."""

import pytest

from conftest import MOVIE_ID, OTHER_MOVIE_ID, make_points, make_timeline
from storage.errors import StorageError
from storage.memory import InMemoryStore
from timeline.aggregate import (
    AggregationConfig,
    AggregationStatus,
    aggregate_all,
    aggregate_movie,
    compute_consensus,
    weights_from_mapping,
)
from timeline.schema import ModerationStatus, SourceKind


THIRD_MOVIE_ID = "5c8e1f2a-7b3d-4e9f-a0c1-d2e3f4a5b6c7"


class FailingStore(InMemoryStore):
    """In-memory store whose reads fail for chosen movies."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    def fetch_eligible_timelines(self, movie_id, kinds=None):
        if movie_id in self.failing:
            raise StorageError("connection reset", details={"movie_id": movie_id})
        if kinds is None:
            return super().fetch_eligible_timelines(movie_id)
        return super().fetch_eligible_timelines(movie_id, kinds)


class TestAggregationConfig:
    """Tests for AggregationConfig dataclass."""

    def test_default_config(self):
        """Test default configuration values."""
        config = AggregationConfig()
        assert config.window_size == 5
        assert config.offset_precision == 1
        assert config.weights[SourceKind.MANUAL_REVIEW] == 0.8

    def test_consensus_weight_rejected(self):
        """Test that consensus cannot be weighted."""
        with pytest.raises(ValueError, match="consensus"):
            AggregationConfig(weights={SourceKind.CONSENSUS: 1.0})

    @pytest.mark.parametrize("weight", [0.0, -0.2, 1.5])
    def test_weight_out_of_range_rejected(self, weight):
        """Test that weights outside (0, 1] are rejected."""
        with pytest.raises(ValueError, match="must be in"):
            AggregationConfig(weights={SourceKind.LIVE_REACTION: weight})

    def test_weights_from_mapping(self):
        """Test building a weight table from string keys."""
        weights = weights_from_mapping({"live_reaction": 1, "nlp_analysis": 0.4})
        assert weights == {SourceKind.LIVE_REACTION: 1.0, SourceKind.NLP_ANALYSIS: 0.4}

    def test_weights_from_mapping_unknown_key(self):
        """Test that an unknown kind in configuration is an error."""
        with pytest.raises(ValueError):
            weights_from_mapping({"poll": 0.3})


class TestAggregateMovie:
    """Tests for aggregate_movie."""

    def test_end_to_end_scenario(self, scenario_store):
        """Test live plus manual timelines yield the expected consensus."""
        result = aggregate_movie(scenario_store, MOVIE_ID)

        assert result.status is AggregationStatus.AGGREGATED
        assert result.graphs_used == 2
        assert result.points_aggregated == 3
        assert result.created

        consensus = scenario_store.get_consensus(MOVIE_ID)
        assert consensus is not None
        assert consensus.source_kind is SourceKind.CONSENSUS
        assert consensus.user_id is None
        assert consensus.is_public
        assert consensus.moderation_status is ModerationStatus.APPROVED
        assert [p.offset for p in consensus.points] == [0.0, 50.0, 100.0]
        scores = [p.score for p in consensus.points]
        assert scores == pytest.approx([4.888888888888889, 7.111111111111111, 6.0])

    def test_weighted_mean_live_and_nlp(self, store):
        """Test the raw score of a live 8 and an NLP 2 at one offset is 5.75."""
        store.insert_timeline(make_timeline(SourceKind.LIVE_REACTION, make_points((50, 8))))
        store.insert_timeline(
            make_timeline(SourceKind.NLP_ANALYSIS, make_points((50, 2)), user_id=None)
        )

        aggregate_movie(store, MOVIE_ID)

        assert store.get_consensus(MOVIE_ID).points[0].score == pytest.approx(5.75)

    def test_second_run_updates_in_place(self, scenario_store):
        """Test that re-aggregating updates the single consensus row."""
        first = aggregate_movie(scenario_store, MOVIE_ID)
        second = aggregate_movie(scenario_store, MOVIE_ID)

        assert not second.created
        assert second.consensus.id == first.consensus.id
        consensus_rows = [
            t for t in scenario_store.all_timelines() if t.source_kind is SourceKind.CONSENSUS
        ]
        assert len(consensus_rows) == 1

    def test_deterministic(self, scenario_store):
        """Test that repeated runs produce bit-identical consensus points."""
        first = aggregate_movie(scenario_store, MOVIE_ID).consensus.points
        second = aggregate_movie(scenario_store, MOVIE_ID).consensus.points

        assert first == second

    def test_consensus_is_not_an_input(self, scenario_store):
        """Test that an existing consensus never feeds the next run."""
        aggregate_movie(scenario_store, MOVIE_ID)
        result = aggregate_movie(scenario_store, MOVIE_ID)

        assert result.graphs_used == 2

    def test_empty_input_writes_nothing(self, store):
        """Test that a movie without eligible timelines returns EMPTY."""
        result = aggregate_movie(store, MOVIE_ID)

        assert result.status is AggregationStatus.EMPTY
        assert result.is_empty
        assert store.get_consensus(MOVIE_ID) is None

    def test_empty_input_keeps_existing_consensus(self, scenario_store):
        """Test that an existing consensus is left unchanged when inputs vanish."""
        aggregate_movie(scenario_store, MOVIE_ID)
        before = scenario_store.get_consensus(MOVIE_ID)

        for timeline in scenario_store.all_timelines():
            if timeline.source_kind is not SourceKind.CONSENSUS:
                scenario_store.set_moderation_status(timeline.id, ModerationStatus.REJECTED)

        result = aggregate_movie(scenario_store, MOVIE_ID)

        assert result.is_empty
        assert scenario_store.get_consensus(MOVIE_ID) == before

    def test_ineligible_timelines_excluded(self, store):
        """Test that private or unapproved timelines are ignored."""
        store.insert_timeline(make_timeline(SourceKind.LIVE_REACTION, make_points((50, 8))))
        store.insert_timeline(
            make_timeline(SourceKind.LIVE_REACTION, make_points((50, 0)), is_public=False)
        )
        store.insert_timeline(
            make_timeline(
                SourceKind.MANUAL_REVIEW,
                make_points((50, 0)),
                moderation_status=ModerationStatus.PENDING,
            )
        )

        result = aggregate_movie(store, MOVIE_ID)

        assert result.graphs_used == 1
        assert store.get_consensus(MOVIE_ID).points[0].score == 8.0

    def test_other_movies_excluded(self, scenario_store):
        """Test that another movie's timelines do not leak in."""
        scenario_store.insert_timeline(
            make_timeline(SourceKind.LIVE_REACTION, make_points((50, 0)), movie_id=OTHER_MOVIE_ID)
        )

        result = aggregate_movie(scenario_store, MOVIE_ID)

        assert result.graphs_used == 2

    def test_smoothing_applied_to_long_sequences(self, store):
        """Test that ten merged points are smoothed with a clamped window."""
        scores = [0, 3, 6, 9, 1, 2, 3, 4, 5, 6]
        store.insert_timeline(
            make_timeline(
                SourceKind.LIVE_REACTION,
                make_points(*[(i * 10, s) for i, s in enumerate(scores)]),
            )
        )

        result = aggregate_movie(store, MOVIE_ID)

        assert result.points_aggregated == 10
        consensus = store.get_consensus(MOVIE_ID)
        assert consensus.points[0].score == pytest.approx(3.0)
        assert consensus.points[5].score == pytest.approx((9 + 1 + 2 + 3 + 4) / 5)

    def test_storage_error_propagates(self):
        """Test that a read failure for a single movie is raised."""
        failing = FailingStore({MOVIE_ID})
        with pytest.raises(StorageError):
            aggregate_movie(failing, MOVIE_ID)


class TestComputeConsensus:
    """Tests for compute_consensus."""

    def test_returns_raw_and_smoothed(self):
        """Test that short sequences have identical raw and smoothed output."""
        timelines = [make_timeline(SourceKind.LIVE_REACTION, make_points((0, 4), (100, 6)))]
        raw, smoothed = compute_consensus(timelines)
        assert raw == smoothed


class TestAggregateAll:
    """Tests for aggregate_all batch mode."""

    def seed(self, store):
        for movie_id in (MOVIE_ID, OTHER_MOVIE_ID, THIRD_MOVIE_ID):
            store.insert_timeline(
                make_timeline(SourceKind.LIVE_REACTION, make_points((50, 7)), movie_id=movie_id)
            )

    def test_partial_failure_is_isolated(self):
        """Test that the second movie failing leaves the other two aggregated."""
        store = FailingStore({OTHER_MOVIE_ID})
        self.seed(store)

        batch = aggregate_all(store)

        assert batch.total == 3
        assert batch.success_count == 2
        assert [f.movie_id for f in batch.failures] == [OTHER_MOVIE_ID]
        assert "connection reset" in batch.failures[0].error
        assert store.get_consensus(MOVIE_ID) is not None
        assert store.get_consensus(OTHER_MOVIE_ID) is None
        assert store.get_consensus(THIRD_MOVIE_ID) is not None

    def test_partial_failure_with_thread_pool(self):
        """Test failure isolation holds with concurrent workers."""
        store = FailingStore({OTHER_MOVIE_ID})
        self.seed(store)

        batch = aggregate_all(store, max_workers=3)

        assert batch.success_count == 2
        assert batch.total == 3
        assert store.get_consensus(THIRD_MOVIE_ID) is not None

    def test_empty_movies_count_as_success(self, store):
        """Test that movies with nothing to aggregate are successes."""
        store.add_movie(OTHER_MOVIE_ID)

        batch = aggregate_all(store)

        assert batch.success_count == 2
        assert all(r.is_empty for r in batch.results)

    def test_progress_callback(self):
        """Test that every movie is reported exactly once."""
        store = FailingStore({OTHER_MOVIE_ID})
        self.seed(store)
        seen = []

        aggregate_all(store, on_progress=lambda movie_id, outcome: seen.append(movie_id))

        assert sorted(seen) == sorted([MOVIE_ID, OTHER_MOVIE_ID, THIRD_MOVIE_ID])

    def test_to_dict(self):
        """Test the camelCase batch summary."""
        store = FailingStore({OTHER_MOVIE_ID})
        self.seed(store)

        summary = aggregate_all(store).to_dict()

        assert summary["successCount"] == 2
        assert summary["total"] == 3
        assert summary["failures"][0]["movieId"] == OTHER_MOVIE_ID

    def test_invalid_worker_count(self, store):
        """Test that zero workers is rejected."""
        with pytest.raises(ValueError, match="max_workers"):
            aggregate_all(store, max_workers=0)
