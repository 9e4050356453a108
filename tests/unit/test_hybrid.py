"""Unit tests for the hybrid retrieval merger."""

import math

import pytest

from workmem.storage.hybrid import (
    KeywordHit,
    VectorHit,
    bm25_rank_to_score,
    build_fts_query,
    compute_recency_boost,
    merge_hybrid_results,
)

NOW = 1_750_000_000.0
HOUR = 3600.0
DAY = 24 * HOUR


def vector_hit(hit_id: str, score: float, updated_at=None, snippet="vector snippet") -> VectorHit:
    return VectorHit(
        id=hit_id,
        path=f"memory/{hit_id}.md",
        start_line=1,
        end_line=10,
        snippet=snippet,
        source="memory",
        vector_score=score,
        updated_at=updated_at,
    )


def keyword_hit(hit_id: str, score: float, updated_at=None, snippet="keyword snippet") -> KeywordHit:
    return KeywordHit(
        id=hit_id,
        path=f"memory/{hit_id}.md",
        start_line=1,
        end_line=10,
        snippet=snippet,
        source="memory",
        text_score=score,
        updated_at=updated_at,
    )


class TestRecencyBoost:
    """Tests for compute_recency_boost."""

    @pytest.mark.parametrize("age_hours", [0, 1, 12, 23.9, 24])
    def test_first_day_is_full(self, age_hours):
        assert compute_recency_boost(NOW - age_hours * HOUR, NOW) == 1.0

    def test_breakpoints(self):
        assert compute_recency_boost(NOW - 7 * DAY, NOW) == pytest.approx(0.85)
        assert compute_recency_boost(NOW - 30 * DAY, NOW) == pytest.approx(0.6)
        assert compute_recency_boost(NOW - 90 * DAY, NOW) == pytest.approx(0.3)

    def test_long_tail_floor(self):
        assert compute_recency_boost(NOW - 3650 * DAY, NOW) == pytest.approx(0.1)

    def test_non_increasing(self):
        ages = [h * HOUR for h in range(0, 24 * 400, 7)]
        boosts = [compute_recency_boost(NOW - age, NOW) for age in ages]
        assert all(a >= b for a, b in zip(boosts, boosts[1:]))

    def test_missing_timestamp_is_neutral(self):
        assert compute_recency_boost(None, NOW) == 0.5
        assert compute_recency_boost(0, NOW) == 0.5
        assert compute_recency_boost(float("nan"), NOW) == 0.5

    def test_future_timestamp_is_full(self):
        assert compute_recency_boost(NOW + DAY, NOW) == 1.0


class TestQueryHelpers:
    """Tests for build_fts_query and bm25_rank_to_score."""

    def test_build_fts_query(self):
        assert build_fts_query("deploy the staging-server") == '"deploy" AND "the" AND "staging" AND "server"'

    def test_build_fts_query_without_tokens(self):
        assert build_fts_query("!!! ---") is None
        assert build_fts_query("") is None

    def test_bm25_rank(self):
        assert bm25_rank_to_score(0) == 1.0
        assert bm25_rank_to_score(1) == 0.5
        assert bm25_rank_to_score(-5) == 1.0

    def test_bm25_malformed_rank(self):
        expected = 1.0 / 1000.0
        assert bm25_rank_to_score(math.nan) == pytest.approx(expected)
        assert bm25_rank_to_score(math.inf) == pytest.approx(expected)
        assert bm25_rank_to_score("bogus") == pytest.approx(expected)


class TestMergeHybridResults:
    """Tests for merge_hybrid_results."""

    def test_union_by_id(self):
        results = merge_hybrid_results(
            [vector_hit("a", 0.9), vector_hit("b", 0.5)],
            [keyword_hit("b", 0.8), keyword_hit("c", 0.4)],
            now=NOW,
        )
        assert sorted(r.id for r in results) == ["a", "b", "c"]

    def test_keyword_snippet_wins(self):
        results = merge_hybrid_results(
            [vector_hit("a", 0.9, snippet="from vector")],
            [keyword_hit("a", 0.5, snippet="from keyword")],
            now=NOW,
        )
        assert results[0].snippet == "from keyword"

    def test_later_updated_at_kept(self):
        results = merge_hybrid_results(
            [vector_hit("a", 0.9, updated_at=NOW - 10 * DAY)],
            [keyword_hit("a", 0.5, updated_at=NOW - DAY)],
            now=NOW,
        )
        assert results[0].updated_at == NOW - DAY

    def test_score_formula(self):
        """Weights 0.7/0.3/0.15 normalize to sum to 1."""
        results = merge_hybrid_results(
            [vector_hit("a", 1.0, updated_at=NOW)],
            [keyword_hit("a", 1.0)],
            now=NOW,
        )
        assert results[0].score == pytest.approx(1.0)

    def test_weights_normalized_regardless_of_magnitude(self):
        small = merge_hybrid_results([vector_hit("a", 0.6)], [keyword_hit("a", 0.2)], 0.7, 0.3, 0.15, now=NOW)
        large = merge_hybrid_results([vector_hit("a", 0.6)], [keyword_hit("a", 0.2)], 70, 30, 15, now=NOW)
        assert small[0].score == pytest.approx(large[0].score)

    def test_zero_weights_fall_back(self):
        results = merge_hybrid_results([vector_hit("a", 0.6)], [keyword_hit("a", 0.2)], 0, 0, 0, now=NOW)
        assert results[0].score == pytest.approx(0.4)

    def test_sorted_descending(self):
        vector = [vector_hit(f"v{i}", (i * 37 % 11) / 10, updated_at=NOW - i * 5 * DAY) for i in range(12)]
        keyword = [keyword_hit(f"k{i}", (i * 53 % 7) / 7) for i in range(9)]
        keyword += [keyword_hit("v3", 0.9), keyword_hit("v7", 0.1)]

        results = merge_hybrid_results(vector, keyword, now=NOW)

        scores = [r.score for r in results]
        assert scores == sorted(scores, reverse=True)
        assert len(results) == 21

    def test_non_finite_scores_sink(self):
        vector = [
            vector_hit("a", 0.1, updated_at=NOW),
            vector_hit("b", float("nan"), updated_at=NOW),
            vector_hit("c", 0.9, updated_at=NOW),
            vector_hit("d", 0.5, updated_at=NOW),
        ]
        keyword = [keyword_hit("e", float("inf"), updated_at=NOW)]

        results = merge_hybrid_results(vector, keyword, now=NOW)

        scores = [r.score for r in results]
        assert all(math.isfinite(s) for s in scores)
        assert scores == sorted(scores, reverse=True)
        assert [r.id for r in results][:3] == ["c", "d", "a"]

    def test_recency_breaks_ties(self):
        results = merge_hybrid_results(
            [vector_hit("old", 0.5, updated_at=NOW - 200 * DAY), vector_hit("new", 0.5, updated_at=NOW)],
            [],
            now=NOW,
        )
        assert [r.id for r in results] == ["new", "old"]

    def test_accepts_dicts(self):
        results = merge_hybrid_results(
            [{"id": "a", "path": "p.md", "start_line": 3, "end_line": 4, "snippet": "s",
              "source": "memory", "vector_score": 0.5}],
            [{"id": "b", "path": "q.md", "start_line": 1, "end_line": 2, "snippet": "t",
              "source": "sessions", "text_score": 0.5}],
            now=NOW,
        )
        by_id = {r.id: r for r in results}
        assert by_id["a"].start_line == 3
        assert by_id["b"].source == "sessions"

    def test_empty_inputs(self):
        assert merge_hybrid_results([], [], now=NOW) == []
