from caches import ExpiringCache


def test_oldest_entries_are_evicted_first() -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)

    assert "a" not in cache
    assert cache.snapshot() == {"b": 2, "c": 3}


def test_rewriting_a_key_makes_it_newest() -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(2)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)
    cache.set("c", 3)

    assert cache.get("a") == 10
    assert cache.get("b") is None
    assert len(cache) == 2


def test_entries_expire_after_ttl(clock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(10, 60, clock=clock)
    cache.set("a", 1)

    clock.advance(59)
    assert cache.get("a") == 1

    clock.advance(1)
    assert cache.get("a") is None
    assert cache.snapshot() == {}
    assert len(cache) == 1
    assert cache.purge_expired() == 1
    assert len(cache) == 0


def test_entries_without_ttl_never_expire(clock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(10, clock=clock)
    cache.set("a", 1)
    clock.advance(10**6)

    assert cache.get("a") == 1
    assert cache.purge_expired() == 0


def test_replace_all_drops_previous_entries(clock) -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(3, 60, clock=clock)
    cache.set("stale", 1)
    cache.replace_all({"a": 1, "b": 2, "c": 3, "d": 4})

    assert cache.snapshot() == {"b": 2, "c": 3, "d": 4}
    entry = cache.entry("b")
    assert entry is not None
    assert entry.stored_at == clock.now


def test_clear_empties_cache() -> None:
    cache: ExpiringCache[str, int] = ExpiringCache(3)
    cache.set("a", 1)
    cache.clear()

    assert len(cache) == 0
