from apps.coupons.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(30, clock=clock)
    cache.set("k", 1)
    clock.t = 29.9
    assert cache.get("k") == 1
    clock.t = 30.0
    assert cache.get("k") is None
    assert len(cache) == 0


def test_get_or_set_calls_factory_once_per_ttl():
    clock = FakeClock()
    cache = TTLCache(10, clock=clock)
    calls = []

    def load():
        calls.append(1)
        return len(calls)

    assert cache.get_or_set("k", load) == 1
    assert cache.get_or_set("k", load) == 1
    clock.t = 11
    assert cache.get_or_set("k", load) == 2


def test_cached_none_is_a_hit():
    cache = TTLCache(10, clock=FakeClock())
    calls = []
    cache.get_or_set("k", lambda: calls.append(1))
    cache.get_or_set("k", lambda: calls.append(1))
    assert calls == [1]


def test_invalidate_and_clear():
    cache = TTLCache(10, clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None and cache.get("b") == 2
    cache.clear()
    assert len(cache) == 0
