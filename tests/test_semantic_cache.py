from __future__ import annotations

import logging

import pytest

from sieve.app.cache.service import SemanticCache
from sieve.app.retrieval.contracts import ScoredChunk


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_700_000_000.0

    def __call__(self) -> float:
        return self.now


def _chunks(label: str) -> list[ScoredChunk]:
    return [ScoredChunk(source_id=f"{label}.md", content=f"about {label}", similarity=0.8)]


def test_paraphrase_at_or_above_threshold_is_served() -> None:
    cache = SemanticCache()
    cache.store("a1", [1.0, 0.0], "What is the refund policy?", _chunks("refunds"))

    # cos([1, 0], [0.95, 0.31]) is roughly 0.951
    entry = cache.lookup("a1", [0.95, 0.31], 0.9)

    assert entry is not None
    assert entry.query_text == "What is the refund policy?"
    assert entry.result_chunks[0].source_id == "refunds.md"
    assert entry.hit_count == 1


def test_lookup_below_threshold_misses() -> None:
    cache = SemanticCache()
    cache.store("a1", [1.0, 0.0], "refunds", _chunks("refunds"))

    assert cache.lookup("a1", [0.6, 0.8], 0.9) is None


def test_lookup_returns_most_similar_entry() -> None:
    cache = SemanticCache()
    cache.store("a1", [1.0, 0.0], "near", _chunks("near"))
    cache.store("a1", [0.92, 0.39], "nearer", _chunks("nearer"))

    match = cache.lookup_match("a1", [0.93, 0.37], 0.5)

    assert match is not None
    assert match.entry.query_text == "nearer"
    assert match.similarity == pytest.approx(1.0, abs=1e-3)


def test_entries_are_isolated_per_assistant() -> None:
    cache = SemanticCache()
    cache.store("a1", [1.0, 0.0], "refunds", _chunks("refunds"))

    assert cache.lookup("a2", [1.0, 0.0], 0.9) is None
    assert cache.lookup("a1", [1.0, 0.0], 0.9) is not None


def test_lookup_on_empty_cache_is_a_miss() -> None:
    assert SemanticCache().lookup("a1", [1.0, 0.0], 0.0) is None


def test_capacity_evicts_least_recently_used(caplog) -> None:
    cache = SemanticCache(max_entries_per_assistant=2)
    cache.store("a1", [1.0, 0.0], "first", _chunks("first"))
    cache.store("a1", [0.0, 1.0], "second", _chunks("second"))
    assert cache.lookup("a1", [1.0, 0.0], 0.99) is not None

    with caplog.at_level(logging.INFO, logger="sieve.app.cache.service"):
        cache.store("a1", [-1.0, 0.0], "third", _chunks("third"))

    remaining = [entry.query_text for entry in cache.entries_for("a1")]
    assert remaining == ["first", "third"]
    assert any(
        "Semantic cache capacity enforced" in message for message in caplog.messages
    )


def test_idle_entries_expire() -> None:
    clock = _FakeClock()
    cache = SemanticCache(ttl_s=60.0, clock=clock)
    cache.store("a1", [1.0, 0.0], "refunds", _chunks("refunds"))

    clock.now += 61.0

    assert cache.lookup("a1", [1.0, 0.0], 0.9) is None
    assert cache.cleanup_expired() == 1
    assert cache.stats().total_entries == 0


def test_hits_refresh_idle_timer() -> None:
    clock = _FakeClock()
    cache = SemanticCache(ttl_s=60.0, clock=clock)
    cache.store("a1", [1.0, 0.0], "refunds", _chunks("refunds"))

    clock.now += 50.0
    assert cache.lookup("a1", [1.0, 0.0], 0.9) is not None
    clock.now += 50.0

    assert cache.lookup("a1", [1.0, 0.0], 0.9) is not None
    assert cache.cleanup_expired() == 0


def test_clear_assistant_and_stats() -> None:
    clock = _FakeClock()
    cache = SemanticCache(clock=clock)
    cache.store("a1", [1.0, 0.0], "one", _chunks("one"))
    clock.now += 5.0
    cache.store("a1", [0.0, 1.0], "two", _chunks("two"))
    cache.store("a2", [1.0, 0.0], "three", _chunks("three"))

    stats = cache.stats()
    assert stats.total_entries == 3
    assert stats.entries_by_assistant == {"a1": 2, "a2": 1}
    assert stats.oldest_entry_at == 1_700_000_000.0
    assert stats.newest_entry_at == 1_700_000_005.0

    assert cache.clear_assistant("a1") == 2
    assert cache.clear_assistant("a1") == 0
    assert cache.stats().entries_by_assistant == {"a2": 1}


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        SemanticCache(max_entries_per_assistant=0)
