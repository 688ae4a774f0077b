"""Tests for ai_gateway.services.response_cache"""

import pytest

from ai_gateway.services.data_structures import (
    GenerationOptions,
    GenerationResponse,
    ResponseMetadata,
    Usage,
)
from ai_gateway.services.response_cache import ResponseCacheService, fingerprint


def make_response(content: str = "hello") -> GenerationResponse:
    return GenerationResponse(
        content=content,
        model="gpt-4",
        provider="openai",
        usage=Usage(input_tokens=3, output_tokens=2),
        cost=0.0002,
        metadata=ResponseMetadata(request_id="req_1", quality=1.0),
    )


@pytest.fixture
def cache(clock):
    return ResponseCacheService(default_ttl_seconds=300, max_entries=3, clock=clock)


class TestFingerprint:
    def test_deterministic(self):
        options = GenerationOptions(temperature=0.5, max_tokens=100)
        assert fingerprint("gpt-4", "hi", options) == fingerprint("gpt-4", "hi", GenerationOptions(temperature=0.5, max_tokens=100))

    @pytest.mark.parametrize("changed", [
        {"temperature": 0.7},
        {"max_tokens": 101},
        {"top_p": 0.9},
        {"system_prompt": "be brief"},
        {"context": {"topic": "biology"}},
    ])
    def test_any_option_changes_key(self, changed):
        base = dict(temperature=0.5, max_tokens=100)
        assert fingerprint("gpt-4", "hi", GenerationOptions(**base)) != fingerprint(
            "gpt-4", "hi", GenerationOptions(**{**base, **changed})
        )

    def test_context_with_mixed_key_types(self):
        key = fingerprint("gpt-4", "hi", GenerationOptions(context={1: "a", "b": 2}))

        assert key == fingerprint("gpt-4", "hi", GenerationOptions(context={"b": 2, 1: "a"}))
        assert key != fingerprint("gpt-4", "hi", GenerationOptions(context={"1": "a", "b": 2}))

    def test_model_and_prompt_change_key(self):
        options = GenerationOptions()
        key = fingerprint("gpt-4", "hi", options)
        assert key != fingerprint("claude-3", "hi", options)
        assert key != fingerprint("gpt-4", "hi ", options)


class TestResponseCache:
    def test_miss_then_hit(self, cache):
        assert cache.lookup("k") is None

        response = make_response()
        cache.store("k", response)

        assert cache.lookup("k") is response
        assert cache.get_stats()["hits"] == 1
        assert cache.get_stats()["misses"] == 1

    def test_expires_at_ttl(self, cache, clock):
        cache.store("k", make_response())

        clock.advance(299)
        assert cache.lookup("k") is not None

        clock.advance(1)
        assert cache.lookup("k") is None
        # removal is lazy
        assert len(cache) == 1

    def test_custom_ttl(self, cache, clock):
        cache.store("k", make_response(), ttl=10)
        clock.advance(10)
        assert cache.lookup("k") is None

    def test_last_writer_wins(self, cache):
        cache.store("k", make_response("first"))
        cache.store("k", make_response("second"))

        assert cache.lookup("k").content == "second"
        assert len(cache) == 1

    def test_full_cache_evicts_oldest(self, cache, clock):
        for key in ("a", "b", "c"):
            cache.store(key, make_response(key))
            clock.advance(1)

        cache.store("d", make_response("d"))

        assert len(cache) == 3
        assert cache.lookup("a") is None
        assert cache.lookup("d").content == "d"
        assert cache.get_stats()["evictions"] == 1

    def test_full_cache_prefers_expired_entries(self, cache, clock):
        cache.store("a", make_response("a"), ttl=5)
        cache.store("b", make_response("b"))
        cache.store("c", make_response("c"))
        clock.advance(6)

        cache.store("d", make_response("d"))

        assert cache.lookup("b") is not None
        assert cache.lookup("c") is not None

    def test_sweep_expired(self, cache, clock):
        cache.store("a", make_response(), ttl=10)
        cache.store("b", make_response(), ttl=100)
        clock.advance(50)

        assert cache.sweep_expired() == 1
        assert len(cache) == 1

    def test_clear(self, cache):
        cache.store("a", make_response())
        cache.clear()
        assert len(cache) == 0

    def test_stats_hit_rate(self, cache):
        cache.store("a", make_response())
        cache.lookup("a")
        cache.lookup("a")
        cache.lookup("missing")

        stats = cache.get_stats()
        assert stats["entries"] == 1
        assert stats["hit_rate"] == pytest.approx(0.6667)
