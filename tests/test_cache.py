from app.cache import TTLCache, client_cache_key


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_client_cache_key_is_case_and_space_insensitive():
    assert client_cache_key("  Maria ", " 123 ") == client_cache_key("maria", "123")
    assert client_cache_key(None, None) == "_"


def test_entry_expires_after_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=300, clock=clock)
    cache.set_client("Maria", "123", {"name": "Maria"})

    clock.now += 299
    assert cache.get_client("maria", "123") == {"name": "Maria"}

    clock.now += 2
    assert cache.get_client("maria", "123") is None
    assert cache.stats()["clientCacheSize"] == 0


def test_dashboard_slot():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=60, clock=clock)
    assert cache.get_dashboard() is None

    cache.set_dashboard({"data": [], "meta": {}})
    assert cache.get_dashboard() == {"data": [], "meta": {}}

    cache.invalidate_dashboard()
    assert cache.get_dashboard() is None


def test_invalidate_and_clear():
    cache = TTLCache()
    cache.set_client("a", "1", 1)
    cache.set_client("b", "2", 2)
    cache.set_dashboard("d")

    cache.invalidate_client("A", "1")
    assert cache.get_client("a", "1") is None
    assert cache.get_client("b", "2") == 2

    cache.clear()
    assert cache.stats()["clientCacheSize"] == 0
    assert cache.stats()["dashboardCached"] is False


def test_stats_reports_ages():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=300, clock=clock)
    cache.set_client("old", "1", 1)
    clock.now += 10
    cache.set_client("new", "2", 2)
    clock.now += 5

    stats = cache.stats()
    assert stats["oldestClientAgeSeconds"] == 15
    assert stats["newestClientAgeSeconds"] == 5
    assert stats["ttlSeconds"] == 300
