from __future__ import annotations

import pytest

from sieve.core.config import (
    default_retrieval_config,
    load_app_config,
    resilience_policy,
)
from sieve.app.retrieval.contracts import RetrievalConfig


def test_load_app_config_uses_retrieval_defaults() -> None:
    config = load_app_config()

    retrieval = default_retrieval_config(config)
    assert retrieval == RetrievalConfig(
        vector_search_limit=20,
        enable_reranking=False,
        rerank_limit=5,
        min_similarity=0.3,
        cache_similarity_threshold=0.9,
        enable_cache=True,
    )
    assert config.embedding_backend == "deterministic"
    assert config.cache_max_entries_per_assistant == 1000
    assert config.cache_ttl_seconds == 30 * 24 * 60 * 60


def test_load_app_config_reads_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_VECTOR_SEARCH_LIMIT", "40")
    monkeypatch.setenv("RAG_ENABLE_RERANKING", "yes")
    monkeypatch.setenv("RAG_MIN_SIMILARITY", "0.45")
    monkeypatch.setenv("RAG_ENABLE_CACHE", "off")
    monkeypatch.setenv("CIRCUIT_FAILURE_THRESHOLD", "2")
    monkeypatch.setenv("RETRY_BASE_DELAY_S", "0.25")

    config = load_app_config()

    assert config.vector_search_limit == 40
    assert config.enable_reranking is True
    assert config.min_similarity == 0.45
    assert config.enable_cache is False
    policy = resilience_policy(config)
    assert policy.failure_threshold == 2
    assert policy.base_delay_s == 0.25


def test_invalid_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_RERANK_LIMIT", "-3")
    monkeypatch.setenv("RAG_VECTOR_SEARCH_LIMIT", "many")
    monkeypatch.setenv("RAG_ENABLE_CACHE", "maybe")
    monkeypatch.setenv("RAG_MIN_SIMILARITY", "-0.5")
    monkeypatch.setenv("RAG_CACHE_SIMILARITY_THRESHOLD", "1.7")

    config = load_app_config()

    assert config.rerank_limit == 5
    assert config.vector_search_limit == 20
    assert config.enable_cache is True
    assert config.min_similarity == 0.3
    assert config.cache_similarity_threshold == 1.0


def test_zero_resilience_values_fall_back_to_defaults(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("CIRCUIT_FAILURE_THRESHOLD", "0")
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "0")

    policy = resilience_policy(load_app_config())

    assert policy.failure_threshold == 5
    assert policy.max_retries == 3


def test_google_api_key_is_accepted_as_gemini_key(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("GOOGLE_API_KEY", "  google-key  ")

    assert load_app_config().gemini_api_key == "google-key"


def test_retrieval_config_rejects_out_of_range_values() -> None:
    with pytest.raises(ValueError):
        RetrievalConfig(min_similarity=1.5)
    with pytest.raises(ValueError):
        RetrievalConfig(rerank_limit=0)
