from lumecine.cache import CacheEntry, TTLCache


class Clock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_get_returns_value_before_expiry():
    clock = Clock()
    cache = TTLCache(60, clock=clock)
    cache.set("k", "v")
    clock.now += 59.9
    assert cache.get("k") == "v"


def test_expired_entry_is_evicted_on_read():
    clock = Clock()
    cache = TTLCache(60, clock=clock)
    cache.set("k", "v")
    clock.now += 60
    assert cache.get("k") is None
    assert len(cache) == 0


def test_per_entry_ttl_overrides_default():
    clock = Clock()
    cache = TTLCache(60, clock=clock)
    cache.set("short", 1, ttl=5)
    cache.set("long", 2)
    clock.now += 10
    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_set_replaces_and_extends_entry():
    clock = Clock()
    cache = TTLCache(10, clock=clock)
    cache.set("k", "old")
    clock.now += 8
    cache.set("k", "new")
    clock.now += 8
    assert cache.get("k") == "new"


def test_sweep_removes_only_expired():
    clock = Clock()
    cache = TTLCache(10, clock=clock)
    cache.set("a", 1, ttl=1)
    cache.set("b", 2, ttl=1)
    cache.set("c", 3, ttl=100)
    clock.now += 2
    assert cache.sweep() == 2
    assert len(cache) == 1
    assert "c" in cache


def test_delete_and_clear():
    cache = TTLCache(10)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.delete("a")
    cache.delete("missing")
    assert "a" not in cache
    cache.clear()
    assert len(cache) == 0


def test_maxsize_evicts_least_recently_used():
    cache = TTLCache(100, maxsize=2)
    cache.set("a", 1)
    cache.set("b", 2)
    assert cache.get("a") == 1          # a is now most recent
    cache.set("c", 3)
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_falsy_values_are_cached():
    cache = TTLCache(10)
    cache.set("empty", [])
    assert cache.get("empty") == []


def test_cache_entry_validity_is_strict():
    entry = CacheEntry(data="x", expires_at=5.0)
    assert entry.is_valid(4.999)
    assert not entry.is_valid(5.0)
