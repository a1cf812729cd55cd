from __future__ import annotations

from unittest.mock import MagicMock

import numpy as np

from dish_discovery.catalog.models import SearchFilters
from dish_discovery.catalog.supabase_store import SupabaseDishStore


def _row(dish_id, restaurant_id, score=0.5, **extra):
    return {
        "restaurant_id": restaurant_id, "restaurant_name": f"R{restaurant_id}",
        "dish_id": dish_id, "dish_name": f"Dish {dish_id}", "similarity_score": score, **extra,
    }


def _rpc_client(rows):
    client = MagicMock()
    client.rpc.return_value.execute.return_value.data = rows
    return client


# ── RPC retrievals ───────────────────────────────────────────────────────


def test_semantic_search_sends_embedding_and_filters():
    client = _rpc_client([_row(1, 10, 0.9)])
    store = SupabaseDishStore(client)

    rows = store.semantic_search(np.array([0.1, 0.2]), SearchFilters(city="Stockholm", tag_groups=[["t1", "t2"]]))

    name, params = client.rpc.call_args.args
    assert name == "search_public_dishes_semantic"
    assert params["query_embedding"] == [0.1, 0.2]
    assert params["target_city"] == "Stockholm"
    assert params["dietary_tag_ids"] == ["t1", "t2"]
    assert rows[0].dish_id == "1"
    assert rows[0].source == "semantic"


def test_fuzzy_search_scopes_to_restaurant():
    client = _rpc_client([_row(1, 10), _row(2, 20)])
    store = SupabaseDishStore(client)

    rows = store.fuzzy_search("pizza", SearchFilters(restaurant_id="20"))

    assert [r.dish_id for r in rows] == ["2"]
    assert client.rpc.call_args.args[1]["search_text"] == "pizza"


def test_tag_search_sends_one_id_per_group():
    client = _rpc_client([_row(1, 10)])
    store = SupabaseDishStore(client)

    store.tag_search(SearchFilters(tag_groups=[["t-vegetarian", "t-vegan"], ["t-halal"]]))

    assert client.rpc.call_args.args[1]["dietary_tag_ids"] == ["t-vegetarian", "t-halal"]


def test_tag_search_without_groups_skips_rpc():
    client = _rpc_client([])
    assert SupabaseDishStore(client).tag_search(SearchFilters()) == []
    client.rpc.assert_not_called()


def test_rpc_failure_is_empty():
    client = MagicMock()
    client.rpc.side_effect = RuntimeError("connection refused")

    assert SupabaseDishStore(client).fuzzy_search("pizza", SearchFilters()) == []


# ── Table reads ──────────────────────────────────────────────────────────


def test_fetch_tags_groups_by_dish():
    client = MagicMock()
    client.table.return_value.select.return_value.in_.return_value.execute.return_value.data = [
        {"dish_id": 1, "tags": {"id": 7, "name": "Halal", "slug": "halal", "type": "religious"}},
        {"dish_id": 1, "tags": None},
    ]

    tags = SupabaseDishStore(client).fetch_tags(["1", "2"])

    assert [t.slug for t in tags["1"]] == ["halal"]
    assert tags["2"] == []


def test_restaurant_lookup_falls_back_to_trigram_rpc():
    client = MagicMock()
    client.table.return_value.select.return_value.ilike.return_value.eq.return_value.execute.return_value.data = []
    client.rpc.return_value.execute.return_value.data = [
        {"id": 5, "name": "Tavolino", "similarity_score": 0.6},
        {"id": 6, "name": "Taverna", "similarity_score": 0.1},
    ]

    records = SupabaseDishStore(client).lookup_restaurant_by_name("tavolno")

    assert [r.id for r in records] == ["5"]
    assert client.rpc.call_args.args[0] == "search_restaurant_by_name"


def test_get_restaurant_failure_is_none():
    client = MagicMock()
    client.table.side_effect = RuntimeError("boom")

    assert SupabaseDishStore(client).get_restaurant("5") is None
