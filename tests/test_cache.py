import pytest

from block_store.cache import CacheSet, LRUCache


def test_lru_get_refreshes_recency():
    cache = LRUCache(2)
    cache.put(1, "a")
    cache.put(2, "b")

    assert cache.get(1) == "a"
    cache.put(3, "c")

    assert 2 not in cache
    assert cache.keys() == [1, 3]
    assert cache.evictions == 1


def test_lru_membership_is_not_an_access():
    cache = LRUCache(2)
    cache.put(1, "a")
    cache.put(2, "b")

    assert 1 in cache
    cache.put(3, "c")

    assert 1 not in cache


def test_lru_put_existing_key_replaces_and_refreshes():
    cache = LRUCache(2)
    cache.put(1, "a")
    cache.put(2, "b")
    cache.put(1, "z")
    cache.put(3, "c")

    assert cache.get(1) == "z"
    assert cache.get(2) is None
    assert len(cache) == 2


def test_lru_pop_and_clear():
    cache = LRUCache(3)
    cache.put(1, "a")
    assert cache.pop(1) == "a"
    assert cache.pop(1) is None

    cache.put(2, "b")
    cache.clear()
    assert len(cache) == 0


def test_cache_set_bounded():
    keys = CacheSet(2)
    keys.add(1)
    keys.add(2)
    keys.add(1)
    keys.add(3)

    assert list(keys) == [1, 3]
    keys.discard(1)
    keys.discard(42)
    assert list(keys) == [3]


@pytest.mark.parametrize("cls", [LRUCache, CacheSet])
def test_capacity_must_be_positive(cls):
    with pytest.raises(ValueError):
        cls(0)
