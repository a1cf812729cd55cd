from __future__ import annotations

from datetime import datetime, timezone

import numpy as np
import pandas as pd

from dish_discovery.catalog.lookup import build_profile, compute_open_status, find_best_restaurant
from dish_discovery.catalog.models import SearchFilters
from dish_discovery.catalog.store import DATA_DIR, FrameDishStore

INDIAN_BITES_HOURS = {"wednesday": "11:00-22:00", "sunday": "closed"}


# ── Opening hours ────────────────────────────────────────────────────────


class TestOpenStatus:
    def test_open(self):
        assert compute_open_status(INDIAN_BITES_HOURS, now=datetime(2026, 10, 14, 12, 0)) == (True, "11:00-22:00")

    def test_before_opening(self):
        assert compute_open_status(INDIAN_BITES_HOURS, now=datetime(2026, 10, 14, 10, 59)) == (False, "11:00-22:00")

    def test_closed_day(self):
        assert compute_open_status(INDIAN_BITES_HOURS, now=datetime(2026, 10, 18, 12, 0)) == (False, "Closed today")

    def test_short_day_keys(self):
        is_open, hours = compute_open_status({"wed": "11:30-21:30"}, now=datetime(2026, 10, 14, 12, 0))
        assert is_open is True
        assert hours == "11:30-21:30"

    def test_past_midnight(self):
        hours = {"wednesday": "18:00-02:00"}
        assert compute_open_status(hours, now=datetime(2026, 10, 14, 23, 30))[0] is True
        assert compute_open_status(hours, now=datetime(2026, 10, 14, 3, 0))[0] is False

    def test_aware_time_converted_to_restaurant_zone(self):
        # 09:30 UTC is 11:30 in Stockholm (summer time)
        now = datetime(2026, 10, 14, 9, 30, tzinfo=timezone.utc)
        assert compute_open_status(INDIAN_BITES_HOURS, "Europe/Stockholm", now)[0] is True

    def test_missing_day(self):
        assert compute_open_status({}, now=datetime(2026, 10, 14, 12, 0)) == (False, None)

    def test_unparseable_hours(self):
        result = compute_open_status({"wednesday": "by appointment"}, now=datetime(2026, 10, 14, 12, 0))
        assert result == (False, "by appointment")


# ── Restaurant lookup ────────────────────────────────────────────────────


class TestFindRestaurant:
    def test_exact_name(self, store):
        assert find_best_restaurant(store, "indian bites").id == "r-indian-bites"

    def test_partial_name(self, store):
        assert find_best_restaurant(store, "Masala").id == "r-masala-zone"

    def test_typo(self, store):
        assert find_best_restaurant(store, "tavolno").id == "r-tavolino"

    def test_city_falls_back_to_any_city(self, store):
        assert find_best_restaurant(store, "masala zone", city="Göteborg").id == "r-masala-zone"

    def test_hidden_restaurant_not_found(self, store):
        assert find_best_restaurant(store, "hidden kitchen") is None

    def test_shared_generic_word_is_not_a_match(self, store):
        # "kitchen" alone pulls Green Leaf Kitchen over the trigram threshold
        assert [r.id for r in store.lookup_restaurant_by_name("hidden kitchen")] == ["r-green-leaf"]
        assert find_best_restaurant(store, "hidden kitchen") is None
        assert find_best_restaurant(store, "green leef kitchen").id == "r-green-leaf"

    def test_empty_name(self, store):
        assert find_best_restaurant(store, "  ") is None


def test_build_profile(store):
    record = store.get_restaurant("r-indian-bites")

    profile = build_profile(store, record, now=datetime(2026, 10, 14, 12, 0))

    assert profile.name == "Indian Bites"
    assert profile.is_open_now is True
    assert profile.today_hours == "11:00-22:00"
    assert [d.id for d in profile.menu_preview] == ["d-101", "d-102", "d-103"]
    assert profile.phone == "+46 8 123 45 67"


# ── Store ────────────────────────────────────────────────────────────────


class TestFrameStore:
    def test_hidden_restaurant_fetchable_by_id(self, store):
        assert store.get_restaurant("r-hidden-kitchen").name == "Hidden Kitchen"
        assert store.get_restaurant("r-missing") is None

    def test_menu_with_tags(self, store):
        menu = store.fetch_menu("r-tavolino")
        assert [d.name for d in menu][:2] == ["Margherita (VE)", "Pizza Pepperoni"]
        assert menu[0].tags == ["Vegetarian", "Gluten", "Milk"]

    def test_resolve_tag_ids_by_name_or_slug(self, store):
        assert store.resolve_tag_ids(["Halal"]) == ["t-halal"]
        assert store.resolve_tag_ids(["gluten-free"]) == ["t-gluten-free"]
        assert store.resolve_tag_ids([]) == []

    def test_city_filter(self, store):
        rows = store.fuzzy_search("butter chicken", SearchFilters(city="göteborg"))
        assert "d-501" in {r.dish_id for r in rows}
        assert {r.restaurant_city for r in rows} == {"Göteborg"}

    def test_tag_search_scores_one(self, store):
        rows = store.tag_search(SearchFilters(tag_groups=[["t-satvik"]]))
        assert [(r.dish_id, r.similarity_score, r.source) for r in rows] == [("d-504", 1.0, "tag")]

    def test_semantic_disabled_without_embeddings(self, store):
        assert store.semantic_enabled is False
        assert store.semantic_search(np.ones(384), SearchFilters()) == []

    def test_semantic_search_with_embeddings(self, tmp_path):
        n_dishes = len(pd.read_csv(DATA_DIR / "dishes.csv"))
        vectors = np.zeros((n_dishes, 3), dtype=np.float32)
        vectors[:, 0] = 1.0
        vectors[0] = [0.0, 1.0, 0.0]  # d-101
        path = tmp_path / "emb.npy"
        np.save(path, vectors)

        store = FrameDishStore.from_directory(DATA_DIR, embeddings_path=path)
        rows = store.semantic_search(np.array([0.0, 1.0, 0.0]), SearchFilters(limit=3))

        assert store.semantic_enabled is True
        assert rows[0].dish_id == "d-101"
        assert rows[0].similarity_score == 1.0
        assert rows[1].similarity_score == 0.5
