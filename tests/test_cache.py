from gatequeue.core.cache import DecisionCache


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_miss_then_hit() -> None:
    cache = DecisionCache()
    assert cache.get("k") is None
    cache.set("k", False)
    assert cache.get("k") is False
    assert (cache.hits, cache.misses) == (1, 1)


def test_entries_expire_after_ttl() -> None:
    clock = _Clock()
    cache = DecisionCache(ttl_seconds=10, clock=clock)
    cache.set("k", True)
    clock.now = 9.9
    assert cache.get("k") is True
    clock.now = 10
    assert cache.get("k") is None
    assert len(cache) == 0


def test_oldest_entry_evicted_at_maxsize() -> None:
    cache = DecisionCache(maxsize=2)
    cache.set("a", True)
    cache.set("b", True)
    cache.set("c", True)
    assert cache.get("a") is None
    assert cache.get("b") is True
    assert len(cache) == 2


def test_rewrite_refreshes_position() -> None:
    cache = DecisionCache(maxsize=2)
    cache.set("a", True)
    cache.set("b", True)
    cache.set("a", False)
    cache.set("c", True)
    assert cache.get("a") is False
    assert cache.get("b") is None


def test_clear() -> None:
    cache = DecisionCache()
    cache.set(("s", "o"), True)
    cache.clear()
    assert len(cache) == 0
    assert cache.get(("s", "o")) is None
