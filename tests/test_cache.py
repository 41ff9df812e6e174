import math
from datetime import timedelta

import pytest

from refresh_cache import (
    InvalidTTLError,
    KeyNotFoundError,
    LazyRefreshCache,
    RefreshCallbackError,
)
from refresh_cache.demo import DemoRefresher, build_demo_cache


def make_cache(refresher, clock, **kwargs):
    cache = LazyRefreshCache(refresher, time_func=clock.now, **kwargs)
    refresher.cache = cache
    return cache


def test_add_initialized_does_not_refresh_on_first_get(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "v", 10, is_value_initialized=True)

    assert cache.get("k") == "v"
    assert refresher.calls == []


def test_add_uninitialized_refreshes_exactly_once(refresher, clock):
    refresher.produce = lambda key, n: f"fresh-{n}"
    cache = make_cache(refresher, clock)
    cache.add("k", "placeholder", 10)

    assert cache.get("k") == "fresh-1"
    assert cache.get("k") == "fresh-1"
    assert refresher.calls == ["k"]


def test_add_uninitialized_backdates_created_at_by_ttl(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", 0, 5)

    entry = cache.peek("k")
    assert entry.created_at == clock.now() - 5
    assert entry.expires_at == clock.now()
    assert cache.is_stale("k")


def test_add_immediate_refreshes_on_every_get(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add_immediate("k", "v")

    for _ in range(5):
        cache.get("k")
    assert refresher.calls == ["k"] * 5


def test_add_once_never_refreshes_within_horizon(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add_once("k", "INITIAL_VALUE")

    for _ in range(100):
        assert cache.get("k") == "INITIAL_VALUE"
        clock.advance(60)
    assert refresher.calls == []


def test_add_once_uninitialized_refreshes_once(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add_once("k", "x", is_value_initialized=False)

    cache.get("k")
    clock.advance(3600)
    cache.get("k")
    assert refresher.calls == ["k"]


def test_add_once_uses_configured_never_ttl(refresher, clock):
    cache = make_cache(refresher, clock, never_ttl=timedelta(minutes=1))
    cache.add_once("k", "x")

    assert cache.peek("k").ttl == 60.0
    clock.advance(60)
    cache.get("k")
    assert refresher.calls == ["k"]


def test_set_then_get_returns_value_without_refresh(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "old", 10)
    cache.set("k", "new")

    assert cache.get("k") == "new"
    assert refresher.calls == []


def test_set_keeps_ttl(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "old", 7, is_value_initialized=True)
    clock.advance(3)
    cache.set("k", "new")

    entry = cache.peek("k")
    assert entry.ttl == 7
    assert entry.created_at == clock.now()


def test_entry_is_stale_exactly_at_expiry(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "v", 2, is_value_initialized=True)

    clock.advance(1.5)
    cache.get("k")
    assert refresher.calls == []

    clock.advance(0.5)
    cache.get("k")
    assert refresher.calls == ["k"]


def test_stale_check_advances_clock_even_without_set(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "v", 2)

    cache.get("k")
    cache.get("k")
    assert refresher.calls == ["k"]

    clock.advance(2)
    cache.get("k")
    assert refresher.calls == ["k", "k"]


def test_stale_check_without_advance_retries_until_set(refresher, clock):
    cache = make_cache(refresher, clock, advance_on_stale_check=False)
    cache.add("k", "v", 2)

    cache.get("k")
    cache.get("k")
    assert refresher.calls == ["k", "k"]

    refresher.produce = lambda key, n: n
    assert cache.get("k") == 3
    cache.get("k")
    assert len(refresher.calls) == 3


def test_missing_key_raises_key_not_found(refresher, clock):
    cache = make_cache(refresher, clock)

    with pytest.raises(KeyNotFoundError):
        cache.get("missing")
    with pytest.raises(KeyNotFoundError):
        cache.set("missing", 1)
    with pytest.raises(KeyNotFoundError):
        cache.peek("missing")
    assert refresher.calls == []


def test_key_not_found_is_a_key_error(refresher, clock):
    cache = make_cache(refresher, clock)
    with pytest.raises(KeyError):
        cache.get("missing")


def test_remove_evicts_entry_and_is_idempotent(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "v", 10, is_value_initialized=True)

    assert cache.remove("k") is True
    assert cache.remove("k") is False
    assert "k" not in cache
    with pytest.raises(KeyNotFoundError):
        cache.get("k")
    with pytest.raises(KeyNotFoundError):
        cache.set("k", "again")


def test_callback_removing_key_makes_get_raise(clock):
    cache = LazyRefreshCache(lambda key: cache.remove(key), time_func=clock.now)
    cache.add_immediate("k", "v")

    with pytest.raises(KeyNotFoundError):
        cache.get("k")
    assert len(cache) == 0


def test_callback_failure_surfaces_stale_value_and_keeps_entry_stale(clock):
    calls = []

    def failing(key):
        calls.append(key)
        raise ConnectionError("source down")

    cache = LazyRefreshCache(failing, time_func=clock.now)
    cache.add("k", "last-known", 5)

    with pytest.raises(RefreshCallbackError) as excinfo:
        cache.get("k")
    assert excinfo.value.key == "k"
    assert excinfo.value.stale_value == "last-known"
    assert isinstance(excinfo.value.__cause__, ConnectionError)

    with pytest.raises(RefreshCallbackError):
        cache.get("k")
    assert calls == ["k", "k"]
    assert cache.is_stale("k")


def test_no_callback_behaves_as_no_op_refresh(clock):
    cache = LazyRefreshCache(time_func=clock.now)
    cache.add("k", "v", 5)

    assert cache.get("k") == "v"
    assert not cache.is_stale("k")


@pytest.mark.parametrize("ttl", [-1, -0.5, math.nan, math.inf, "10", None, True, timedelta(seconds=-1)])
def test_invalid_ttl_is_rejected(refresher, clock, ttl):
    cache = make_cache(refresher, clock)

    with pytest.raises(InvalidTTLError):
        cache.add("k", "v", ttl)
    assert "k" not in cache


def test_invalid_never_ttl_is_rejected():
    with pytest.raises(InvalidTTLError):
        LazyRefreshCache(never_ttl=-5)


def test_timedelta_ttl_is_accepted(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("k", "v", timedelta(seconds=90), is_value_initialized=True)

    assert cache.peek("k").ttl == 90.0


def test_inspection_helpers(refresher, clock):
    cache = make_cache(refresher, clock)
    cache.add("a", 1, 10)
    cache.add_immediate("b", 2)

    assert sorted(cache.keys()) == ["a", "b"]
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0
    assert cache.keys() == []


def test_scenario_counter_key_refreshes_after_ttl(clock):
    cache = build_demo_cache(ttl_seconds=2, time_func=clock.now)

    assert cache.get("B") == 1
    assert cache.get("B") == 1
    clock.advance(3)
    assert cache.get("B") == 2


def test_scenario_toggle_key_alternates(clock):
    cache = build_demo_cache(time_func=clock.now)

    reads = [cache.get("A") for _ in range(6)]
    assert reads == [True, False, True, False, True, False]


def test_scenario_once_key_keeps_initial_value(clock):
    refresher = DemoRefresher()
    cache = LazyRefreshCache(refresher, time_func=clock.now)
    refresher.bind(cache)
    cache.add_once("C", "INITIAL_VALUE")

    for _ in range(99):
        assert cache.get("C") == "INITIAL_VALUE"
        clock.advance(1)
