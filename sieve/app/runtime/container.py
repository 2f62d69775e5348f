from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any

import httpx

from sieve.app.cache.service import SemanticCache
from sieve.app.orchestration.service import RagOrchestrator
from sieve.app.providers.registry import ProviderRegistry
from sieve.app.rerank.service import build_reranker
from sieve.app.resilience.service import Clock, ResilienceWrapper, Sleeper
from sieve.app.retrieval.contracts import RetrievalConfig
from sieve.app.retrieval.embeddings import (
    DeterministicEmbeddingProvider,
    build_embedding_provider,
)
from sieve.app.retrieval.libsql_index import LibsqlVectorIndex
from sieve.app.retrieval.local_store import LocalFallbackStore
from sieve.app.retrieval.null_index import NullVectorIndex
from sieve.app.retrieval.remote_store import RemoteVectorStore
from sieve.app.retrieval.supabase_index import SupabaseVectorIndex
from sieve.core.config import AppConfig, default_retrieval_config, resilience_policy

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SieveRuntime:
    config: AppConfig
    registry: ProviderRegistry
    cache: SemanticCache
    remote_store: RemoteVectorStore
    orchestrator: RagOrchestrator
    default_retrieval: RetrievalConfig


def _build_libsql_index(
    config: AppConfig, transport: httpx.AsyncBaseTransport | None
) -> LibsqlVectorIndex:
    if not config.libsql_url:
        raise ValueError("LIBSQL_URL is not configured")
    return LibsqlVectorIndex(
        url=config.libsql_url,
        auth_token=config.libsql_auth_token,
        timeout_s=config.remote_timeout_s,
        transport=transport,
    )


def _build_supabase_index(
    config: AppConfig, transport: httpx.AsyncBaseTransport | None
) -> SupabaseVectorIndex:
    if not config.supabase_url or not config.supabase_anon_key:
        raise ValueError("SUPABASE_URL or SUPABASE_ANON_KEY is not configured")
    return SupabaseVectorIndex(
        url=config.supabase_url,
        anon_key=config.supabase_anon_key,
        timeout_s=config.remote_timeout_s,
        transport=transport,
    )


def build_provider_registry(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    registry = ProviderRegistry()

    registry.register(
        "embedding:deterministic",
        lambda: DeterministicEmbeddingProvider(dimensions=config.embedding_dimensions),
    )
    if config.embedding_backend != "deterministic":
        registry.register(
            f"embedding:{config.embedding_backend}",
            lambda: build_embedding_provider(
                backend=config.embedding_backend,
                dimensions=config.embedding_dimensions,
                api_key=config.gemini_api_key,
                model=config.gemini_embedding_model,
                local_model=config.local_embedding_model,
            ),
        )

    registry.register("vector_index:none", NullVectorIndex)
    if config.vector_index_backend == "libsql":
        registry.register(
            "vector_index:libsql", lambda: _build_libsql_index(config, transport)
        )
    elif config.vector_index_backend == "supabase":
        registry.register(
            "vector_index:supabase", lambda: _build_supabase_index(config, transport)
        )

    registry.register(
        "reranker:heuristic",
        lambda: build_reranker(
            backend="heuristic",
            api_key=None,
            llm_model=config.rerank_model,
            cross_encoder_model=config.cross_encoder_model,
        ),
    )
    if config.rerank_backend != "heuristic":
        registry.register(
            f"reranker:{config.rerank_backend}",
            lambda: build_reranker(
                backend=config.rerank_backend,
                api_key=config.gemini_api_key,
                llm_model=config.rerank_model,
                cross_encoder_model=config.cross_encoder_model,
            ),
        )
    return registry


def _resolve_handle(registry: ProviderRegistry, kind: str, preferred: str) -> Any:
    entry = registry.resolve(f"{kind}:{preferred}")
    if entry is not None:
        return entry.handle
    fallback = {
        "embedding": "deterministic",
        "vector_index": "none",
        "reranker": "heuristic",
    }[kind]
    LOGGER.warning(
        "Configured provider unavailable; using fallback",
        extra={"kind": kind, "preferred": preferred, "fallback": fallback},
    )
    return registry.handle(f"{kind}:{fallback}")


def build_runtime(
    config: AppConfig,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    clock: Clock = time.monotonic,
    sleep: Sleeper = asyncio.sleep,
) -> SieveRuntime:
    registry = build_provider_registry(config, transport=transport)
    embedding_provider = _resolve_handle(registry, "embedding", config.embedding_backend)
    index = _resolve_handle(registry, "vector_index", config.vector_index_backend)
    reranker = _resolve_handle(registry, "reranker", config.rerank_backend)

    cache = SemanticCache(
        max_entries_per_assistant=config.cache_max_entries_per_assistant,
        ttl_s=config.cache_ttl_seconds,
    )
    remote_store = RemoteVectorStore(
        index,
        ResilienceWrapper(
            f"vector_index:{index.name}",
            resilience_policy(config),
            clock=clock,
            sleep=sleep,
        ),
    )
    orchestrator = RagOrchestrator(
        embedding_provider=embedding_provider,
        cache=cache,
        remote_store=remote_store,
        local_store=LocalFallbackStore(),
        reranker=reranker,
    )
    return SieveRuntime(
        config=config,
        registry=registry,
        cache=cache,
        remote_store=remote_store,
        orchestrator=orchestrator,
        default_retrieval=default_retrieval_config(config),
    )
