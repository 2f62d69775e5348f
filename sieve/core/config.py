from __future__ import annotations

import os
from dataclasses import dataclass

from sieve.app.resilience.contracts import ResiliencePolicy
from sieve.app.retrieval.contracts import RetrievalConfig


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    gemini_api_key: str | None
    embedding_backend: str
    embedding_dimensions: int
    gemini_embedding_model: str
    local_embedding_model: str
    vector_index_backend: str
    libsql_url: str | None
    libsql_auth_token: str | None
    supabase_url: str | None
    supabase_anon_key: str | None
    remote_timeout_s: float
    rerank_backend: str
    rerank_model: str
    cross_encoder_model: str
    vector_search_limit: int
    enable_reranking: bool
    rerank_limit: int
    min_similarity: float
    cache_similarity_threshold: float
    enable_cache: bool
    cache_max_entries_per_assistant: int
    cache_ttl_seconds: float
    circuit_failure_threshold: int
    circuit_reset_timeout_s: float
    retry_max_attempts: int
    retry_base_delay_s: float
    retry_max_delay_s: float


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _read_str_env(name: str, default: str) -> str:
    return _read_optional_env(name) or default


def _read_bool_env(name: str, default: bool) -> bool:
    value = _read_optional_env(name)
    if value is None:
        return default
    normalized = value.lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _read_int_env(name: str, default: int) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float_env(
    name: str, default: float, *, upper: float | None = None
) -> float:
    """Non-negative float from env; values above ``upper`` are capped."""
    raw = _read_optional_env(name)
    try:
        parsed = float(raw) if raw is not None else default
    except ValueError:
        return default
    if parsed < 0:
        return default
    return min(parsed, upper) if upper is not None else parsed


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=_read_str_env("APP_NAME", "Sieve Retrieval Core"),
        app_version=_read_str_env("APP_VERSION", "0.1.0"),
        environment=_read_str_env("APP_ENV", "development"),
        gemini_api_key=_read_optional_env("GEMINI_API_KEY")
        or _read_optional_env("GOOGLE_API_KEY"),
        embedding_backend=_read_str_env("EMBEDDING_BACKEND", "deterministic"),
        embedding_dimensions=_read_int_env("EMBEDDING_DIMENSIONS", default=768),
        gemini_embedding_model=_read_str_env(
            "GEMINI_EMBEDDING_MODEL", "models/gemini-embedding-001"
        ),
        local_embedding_model=_read_str_env(
            "LOCAL_EMBEDDING_MODEL", "google/embeddinggemma-300m"
        ),
        vector_index_backend=_read_str_env("VECTOR_INDEX_BACKEND", "libsql"),
        libsql_url=_read_optional_env("LIBSQL_URL"),
        libsql_auth_token=_read_optional_env("LIBSQL_AUTH_TOKEN"),
        supabase_url=_read_optional_env("SUPABASE_URL"),
        supabase_anon_key=_read_optional_env("SUPABASE_ANON_KEY"),
        remote_timeout_s=_read_float_env("REMOTE_TIMEOUT_S", default=20.0),
        rerank_backend=_read_str_env("RERANK_BACKEND", "heuristic"),
        rerank_model=_read_str_env("RERANK_MODEL", "gemini-2.5-flash"),
        cross_encoder_model=_read_str_env(
            "CROSS_ENCODER_MODEL", "jinaai/jina-reranker-v2-base-multilingual"
        ),
        vector_search_limit=_read_int_env("RAG_VECTOR_SEARCH_LIMIT", default=20),
        enable_reranking=_read_bool_env("RAG_ENABLE_RERANKING", default=False),
        rerank_limit=_read_int_env("RAG_RERANK_LIMIT", default=5),
        min_similarity=_read_float_env("RAG_MIN_SIMILARITY", 0.3, upper=1.0),
        cache_similarity_threshold=_read_float_env(
            "RAG_CACHE_SIMILARITY_THRESHOLD", 0.9, upper=1.0
        ),
        enable_cache=_read_bool_env("RAG_ENABLE_CACHE", default=True),
        cache_max_entries_per_assistant=_read_int_env(
            "CACHE_MAX_ENTRIES_PER_ASSISTANT", default=1000
        ),
        cache_ttl_seconds=_read_float_env(
            "CACHE_TTL_SECONDS", default=30 * 24 * 60 * 60
        ),
        circuit_failure_threshold=_read_int_env(
            "CIRCUIT_FAILURE_THRESHOLD", default=5
        ),
        circuit_reset_timeout_s=_read_float_env(
            "CIRCUIT_RESET_TIMEOUT_S", default=30.0
        ),
        retry_max_attempts=_read_int_env("RETRY_MAX_ATTEMPTS", default=3),
        retry_base_delay_s=_read_float_env("RETRY_BASE_DELAY_S", default=1.0),
        retry_max_delay_s=_read_float_env("RETRY_MAX_DELAY_S", default=10.0),
    )


def default_retrieval_config(config: AppConfig) -> RetrievalConfig:
    return RetrievalConfig(
        vector_search_limit=config.vector_search_limit,
        enable_reranking=config.enable_reranking,
        rerank_limit=config.rerank_limit,
        min_similarity=config.min_similarity,
        cache_similarity_threshold=config.cache_similarity_threshold,
        enable_cache=config.enable_cache,
    )


def resilience_policy(config: AppConfig) -> ResiliencePolicy:
    return ResiliencePolicy(
        failure_threshold=config.circuit_failure_threshold,
        reset_timeout_s=config.circuit_reset_timeout_s,
        max_retries=config.retry_max_attempts,
        base_delay_s=config.retry_base_delay_s,
        max_delay_s=config.retry_max_delay_s,
    )
