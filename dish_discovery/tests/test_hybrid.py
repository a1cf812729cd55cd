from __future__ import annotations

import numpy as np
import pytest

from dish_discovery.catalog.models import SearchFilters, SemanticRow, TrigramRow
from dish_discovery.search.hybrid import (
    analyze_query_weights,
    apply_precision_demotion,
    exact_match_boost,
    fuse_candidates,
    merge_scores,
    run_hybrid_search,
)
from dish_discovery.search.models import HybridCandidate, SearchWeights

DISH_WEIGHTS = SearchWeights(semantic=0.4, trigram=0.6, profile="dish")


def _row(cls, dish_id: str, name: str, score: float):
    return cls(
        restaurant_id="r-1",
        restaurant_name="Testaurant",
        dish_id=dish_id,
        dish_name=name,
        similarity_score=score,
    )


def _candidate(dish_id: str, name: str, score: float) -> HybridCandidate:
    return HybridCandidate(
        dish_id=dish_id, dish_name=name, restaurant_id="r-1", restaurant_name="Testaurant",
        final_score=score,
    )


# ── Query weights ────────────────────────────────────────────────────────


class TestQueryWeights:
    def test_vibe(self):
        weights = analyze_query_weights("something spicy and warming")
        assert (weights.semantic, weights.trigram, weights.profile) == (0.7, 0.3, "vibe")

    def test_short_dish_name(self):
        weights = analyze_query_weights("butter chicken")
        assert (weights.semantic, weights.trigram, weights.profile) == (0.4, 0.6, "dish")

    def test_long_query_with_dish_word(self):
        assert analyze_query_weights("the best biryani served in the whole town").profile == "dish"

    def test_balanced(self):
        weights = analyze_query_weights("a warm bowl of lentils for a cold evening")
        assert (weights.semantic, weights.trigram, weights.profile) == (0.55, 0.45, "balanced")

    def test_weights_sum_to_one(self):
        for query in ("something light", "naan", "a warm bowl of lentils for a cold evening"):
            weights = analyze_query_weights(query)
            assert weights.semantic + weights.trigram == pytest.approx(1.0)


# ── Score fusion ─────────────────────────────────────────────────────────


class TestMergeScores:
    def test_both_signals_weighted(self):
        score, source = merge_scores(0.8, 0.5, DISH_WEIGHTS)
        assert score == pytest.approx(0.62)
        assert source == "both"

    def test_single_signal_used_as_is(self):
        score, source = merge_scores(None, 0.5, DISH_WEIGHTS, boost=0.15)
        assert score == pytest.approx(0.65)
        assert source == "trigram"

    def test_capped_at_one(self):
        score, source = merge_scores(0.9, None, DISH_WEIGHTS, boost=0.15)
        assert score == 1.0
        assert source == "semantic"

    def test_no_signal(self):
        assert merge_scores(None, 0.0, DISH_WEIGHTS) == (0.0, "trigram")

    def test_exact_match_boost(self):
        assert exact_match_boost("Butter Chicken", "butter chicken") == pytest.approx(0.15)
        assert exact_match_boost("Chicken Biryani", "butter chicken") == pytest.approx(0.075)
        assert exact_match_boost("Naan", "a b") == 0.0


def test_fuse_candidates_merges_by_dish_id():
    semantic = [_row(SemanticRow, "d-1", "Butter Chicken", 0.8)]
    trigram = [
        _row(TrigramRow, "d-1", "Butter Chicken", 0.5),
        _row(TrigramRow, "d-2", "Chicken Biryani", 0.4),
    ]

    fused = fuse_candidates(semantic, trigram, "butter chicken", DISH_WEIGHTS)

    assert [c.dish_id for c in fused] == ["d-1", "d-2"]
    assert fused[0].source == "both"
    assert fused[0].semantic_score == 0.8
    assert fused[0].trigram_score == 0.5
    assert fused[0].final_score == pytest.approx(0.77)
    assert fused[1].source == "trigram"
    assert fused[1].final_score == pytest.approx(0.475)


# ── Precision demotion ───────────────────────────────────────────────────


class TestPrecisionDemotion:
    def test_demotes_missing_token(self):
        candidates = [_candidate("d-2", "Chicken Biryani", 0.9), _candidate("d-1", "Butter Chicken", 0.5)]

        result = apply_precision_demotion(candidates, "butter chicken")

        assert [c.dish_id for c in result] == ["d-1", "d-2"]
        assert result[1].final_score == pytest.approx(0.27)

    def test_never_drops(self):
        candidates = [_candidate("d-2", "Chicken Biryani", 0.9)]
        assert len(apply_precision_demotion(candidates, "butter chicken")) == 1

    def test_vibe_query_untouched(self):
        candidates = [_candidate("d-2", "Chicken Biryani", 0.9)]
        result = apply_precision_demotion(candidates, "something like butter chicken")
        assert result[0].final_score == 0.9

    def test_single_word_untouched(self):
        candidates = [_candidate("d-2", "Chicken Biryani", 0.9)]
        assert apply_precision_demotion(candidates, "pizza")[0].final_score == 0.9


# ── Parallel retrieval ───────────────────────────────────────────────────


class _FakeStore:
    semantic_enabled = True

    def __init__(self, semantic_error: Exception | None = None):
        self.semantic_error = semantic_error
        self.fuzzy_queries: list[str] = []

    def semantic_search(self, embedding, filters):
        if self.semantic_error:
            raise self.semantic_error
        return [_row(SemanticRow, "d-1", "Butter Chicken", 0.9)]

    def fuzzy_search(self, text, filters):
        self.fuzzy_queries.append(text)
        score = 0.3 if text == "butter chicken" else 0.6
        return [_row(TrigramRow, "d-1", "Butter Chicken", score)]


def _embed(text: str) -> np.ndarray:
    return np.ones(4)


def test_hybrid_search_survives_semantic_failure():
    store = _FakeStore(semantic_error=RuntimeError("vector index down"))

    result = run_hybrid_search("butter chicken", store, SearchFilters(), _embed)

    assert [c.dish_id for c in result] == ["d-1"]
    assert result[0].source == "trigram"


def test_hybrid_search_keeps_best_translated_trigram_score():
    store = _FakeStore()

    result = run_hybrid_search("butter chicken", store, SearchFilters(), _embed, translate=lambda q: "smörkyckling")

    assert store.fuzzy_queries == ["butter chicken", "smörkyckling"]
    assert result[0].trigram_score == 0.6
    assert result[0].source == "both"


def test_hybrid_search_translation_failure_uses_original():
    store = _FakeStore()

    def broken(query):
        raise TimeoutError("llm")

    result = run_hybrid_search("butter chicken", store, SearchFilters(), _embed, translate=broken)

    assert store.fuzzy_queries == ["butter chicken"]
    assert result[0].trigram_score == 0.3


def test_hybrid_search_empty_query():
    assert run_hybrid_search("  ", _FakeStore(), SearchFilters(), _embed) == []
