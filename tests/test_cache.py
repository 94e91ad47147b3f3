from __future__ import annotations

from cinematifier.providers.cache import ResponseCache, make_cache_key


def test_cache_key_distinguishes_provider_and_prompt():
    base = make_cache_key("openai", "a prompt")
    assert base == make_cache_key("openai", "a prompt")
    assert base != make_cache_key("gemini", "a prompt")
    assert base != make_cache_key("openai", "a prompt.")
    long_prompt = "x" * 5000
    assert make_cache_key("openai", long_prompt) != make_cache_key("openai", long_prompt[:-1] + "y")


def test_get_and_set(clock):
    cache = ResponseCache(clock=clock)
    assert cache.get("k") is None
    cache.set("k", "value")
    assert cache.get("k") == "value"
    assert "k" in cache
    assert cache.hits == 1
    assert cache.misses == 1


def test_entries_expire_after_ttl(clock):
    cache = ResponseCache(ttl=60, clock=clock)
    cache.set("k", "value")
    clock.advance(60)
    assert cache.get("k") == "value"
    clock.advance(0.5)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_least_recently_used_entry_is_evicted(clock):
    cache = ResponseCache(max_entries=2, clock=clock)
    cache.set("a", "1")
    cache.set("b", "2")
    assert cache.get("a") == "1"
    cache.set("c", "3")
    assert "b" not in cache
    assert cache.get("a") == "1"
    assert cache.get("c") == "3"
    assert len(cache) == 2


def test_overwrite_refreshes_timestamp(clock):
    cache = ResponseCache(ttl=10, clock=clock)
    cache.set("k", "old")
    clock.advance(8)
    cache.set("k", "new")
    clock.advance(8)
    assert cache.get("k") == "new"
    cache.clear()
    assert len(cache) == 0
