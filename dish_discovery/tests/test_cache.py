from __future__ import annotations

import pytest

from dish_discovery.search.cache import BoundedCache


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_miss_then_hit():
    cache = BoundedCache(max_size=4)
    assert cache.get("a") is None
    cache.set("a", "x")
    assert cache.get("a") == "x"
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 50.0


def test_evicts_least_recently_used():
    cache = BoundedCache(max_size=2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.get("a")  # "b" is now the oldest
    cache.set("c", 3)
    assert "b" not in cache
    assert "a" in cache and "c" in cache
    assert cache.stats()["evictions"] == 1
    assert len(cache) == 2


def test_ttl_expiry():
    clock = _Clock()
    cache = BoundedCache(max_size=4, ttl=60, clock=clock)
    cache.set("k", "v")
    clock.now += 59
    assert cache.get("k") == "v"
    clock.now += 1
    assert cache.get("k") is None
    assert "k" not in cache


def test_delete_and_clear():
    cache = BoundedCache(max_size=4)
    cache.set("a", 1)
    cache.delete("a")
    cache.delete("missing")
    assert cache.get("a") is None
    cache.set("b", 2)
    cache.clear()
    assert cache.stats() == {
        "size": 0, "max_size": 4, "hits": 0, "misses": 0, "evictions": 0, "hit_rate": 0.0,
    }


def test_instances_are_independent():
    first, second = BoundedCache(), BoundedCache()
    first.set("shared", 1)
    assert second.get("shared") is None


def test_rejects_zero_size():
    with pytest.raises(ValueError):
        BoundedCache(max_size=0)
