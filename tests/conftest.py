from __future__ import annotations

import pytest

RETRIEVAL_ENV_VARS = (
    "EMBEDDING_BACKEND",
    "EMBEDDING_DIMENSIONS",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "VECTOR_INDEX_BACKEND",
    "LIBSQL_URL",
    "LIBSQL_AUTH_TOKEN",
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "RERANK_BACKEND",
    "RAG_VECTOR_SEARCH_LIMIT",
    "RAG_ENABLE_RERANKING",
    "RAG_RERANK_LIMIT",
    "RAG_MIN_SIMILARITY",
    "RAG_CACHE_SIMILARITY_THRESHOLD",
    "RAG_ENABLE_CACHE",
    "CACHE_MAX_ENTRIES_PER_ASSISTANT",
    "CACHE_TTL_SECONDS",
    "CIRCUIT_FAILURE_THRESHOLD",
    "CIRCUIT_RESET_TIMEOUT_S",
    "RETRY_MAX_ATTEMPTS",
    "RETRY_BASE_DELAY_S",
    "RETRY_MAX_DELAY_S",
)


@pytest.fixture(autouse=True)
def isolate_retrieval_env(
    request: pytest.FixtureRequest, monkeypatch: pytest.MonkeyPatch
) -> None:
    if request.node.get_closest_marker("integration") is not None:
        return
    for name in RETRIEVAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
