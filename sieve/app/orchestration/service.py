from __future__ import annotations

import logging
import time
from typing import Sequence
from uuid import uuid4

from sieve.app.cache.service import SemanticCache
from sieve.app.errors import EmbeddingGenerationError
from sieve.app.observability.contracts import StepTrace
from sieve.app.observability.service import (
    elapsed_ms_since,
    emit_retrieval_telemetry,
    step_trace,
)
from sieve.app.orchestration.contracts import MetricsRecorder, OrchestratorMetrics
from sieve.app.rerank.service import Reranker
from sieve.app.retrieval.contracts import (
    SOURCE_CACHE,
    SOURCE_EMPTY,
    SOURCE_LOCAL,
    SOURCE_REMOTE,
    Chunk,
    RetrievalConfig,
    RetrievalDiagnostics,
    RetrievalResult,
    ScoredChunk,
)
from sieve.app.retrieval.embeddings import EmbeddingProvider
from sieve.app.retrieval.local_store import LocalFallbackStore
from sieve.app.retrieval.remote_store import RemoteVectorStore

LOGGER = logging.getLogger(__name__)


class RagOrchestrator:
    """Turns a raw query into a bounded, ranked set of context chunks.

    The pipeline runs, in order: query embedding, semantic cache lookup,
    remote vector search, local fallback scoring, similarity threshold,
    optional reranking, cache store. Only a failed query embedding is raised
    to the caller; every other failure shrinks or reroutes the result and is
    reported through ``RetrievalResult.diagnostics``.
    """

    def __init__(
        self,
        *,
        embedding_provider: EmbeddingProvider,
        cache: SemanticCache,
        remote_store: RemoteVectorStore,
        local_store: LocalFallbackStore | None = None,
        reranker: Reranker | None = None,
    ) -> None:
        self._embedding_provider = embedding_provider
        self._cache = cache
        self._remote_store = remote_store
        self._local_store = local_store or LocalFallbackStore()
        self._reranker = reranker
        self._metrics = MetricsRecorder()

    def metrics(self) -> OrchestratorMetrics:
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        self._metrics.reset()

    async def retrieve(
        self,
        query: str,
        assistant_id: str,
        local_chunks: Sequence[Chunk],
        config: RetrievalConfig,
    ) -> RetrievalResult:
        started_at = time.perf_counter()
        request_id = uuid4().hex
        steps: list[StepTrace] = []

        query_embedding = await self._embed_query(query, steps)

        if config.enable_cache:
            lookup_started = time.perf_counter()
            match = self._cache.lookup_match(
                assistant_id, query_embedding, config.cache_similarity_threshold
            )
            steps.append(
                step_trace(
                    "cache_lookup",
                    lookup_started,
                    status="hit" if match else "miss",
                )
            )
            if match is not None:
                chunks = match.entry.result_chunks
                diagnostics = RetrievalDiagnostics(
                    source=SOURCE_CACHE,
                    total_candidates=len(chunks),
                    filtered_candidates=len(chunks),
                    final_results=len(chunks),
                    rerank_strategy="cached",
                    cache_similarity=match.similarity,
                    cached_query=match.entry.query_text,
                    steps=tuple(steps),
                )
                return self._finish(
                    chunks=chunks,
                    from_cache=True,
                    started_at=started_at,
                    diagnostics=diagnostics,
                    assistant_id=assistant_id,
                    request_id=request_id,
                )

        failures: list[str] = []

        remote_started = time.perf_counter()
        outcome = await self._remote_store.search_with_outcome(
            assistant_id, query_embedding, config.vector_search_limit
        )
        candidates = outcome.chunks
        if outcome.failure:
            failures.append(outcome.failure)
        steps.append(
            step_trace(
                "remote_search",
                remote_started,
                status="error" if outcome.failure else "ok",
                detail=outcome.failure or f"count={len(candidates)}",
            )
        )
        source = SOURCE_REMOTE

        if not candidates:
            local_started = time.perf_counter()
            candidates = self._local_store.search(
                local_chunks, query_embedding, config.vector_search_limit
            )
            source = SOURCE_LOCAL if candidates else SOURCE_EMPTY
            steps.append(
                step_trace(
                    "local_fallback",
                    local_started,
                    detail=f"count={len(candidates)}",
                )
            )

        filtered = [
            chunk for chunk in candidates if chunk.similarity > config.min_similarity
        ]
        ordered = sorted(filtered, key=lambda row: row.similarity, reverse=True)

        final, rerank_strategy, reranked = await self._rank(
            query, ordered, config, failures, steps
        )

        diagnostics = RetrievalDiagnostics(
            source=source,
            total_candidates=len(candidates),
            filtered_candidates=len(filtered),
            final_results=len(final),
            rerank_strategy=rerank_strategy,
            reranked=reranked,
            degraded=bool(failures),
            shared_search=outcome.shared,
            failures=tuple(failures),
            top_similarity=max(
                (chunk.similarity for chunk in candidates), default=None
            ),
            steps=tuple(steps),
        )

        # Rows of a joined search belong to another query.
        if config.enable_cache and not failures and not outcome.shared:
            self._cache.store(assistant_id, query_embedding, query, final)

        return self._finish(
            chunks=tuple(final),
            from_cache=False,
            started_at=started_at,
            diagnostics=diagnostics,
            assistant_id=assistant_id,
            request_id=request_id,
        )

    async def warmup(self, queries: Sequence[str]) -> int:
        warmed = 0
        for query in queries:
            try:
                await self._embedding_provider.embed(query, "query")
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning(
                    "Warmup embedding failed",
                    extra={"query": query},
                    exc_info=exc,
                )
                continue
            warmed += 1
        return warmed

    async def _embed_query(self, query: str, steps: list[StepTrace]) -> list[float]:
        embed_started = time.perf_counter()
        try:
            embedding = await self._embedding_provider.embed(query, "query")
        except Exception as exc:
            raise EmbeddingGenerationError(
                f"Query embedding failed ({exc.__class__.__name__})"
            ) from exc
        if not embedding:
            raise EmbeddingGenerationError("Query embedding was empty")
        steps.append(step_trace("embed", embed_started))
        return list(embedding)

    async def _rank(
        self,
        query: str,
        ordered: list[ScoredChunk],
        config: RetrievalConfig,
        failures: list[str],
        steps: list[StepTrace],
    ) -> tuple[list[ScoredChunk], str, bool]:
        if not config.enable_reranking or not ordered:
            return ordered[: config.rerank_limit], "similarity", False
        if self._reranker is None:
            failures.append("reranker:NotConfigured")
            return ordered[: config.rerank_limit], "similarity", False

        rerank_started = time.perf_counter()
        try:
            reranked = await self._reranker.rerank(query, ordered, config.rerank_limit)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Reranker unavailable; using similarity order",
                extra={"strategy": self._reranker.strategy},
                exc_info=exc,
            )
            failures.append(f"reranker:{exc.__class__.__name__}")
            steps.append(
                step_trace(
                    "rerank",
                    rerank_started,
                    status="error",
                    detail=exc.__class__.__name__,
                )
            )
            return ordered[: config.rerank_limit], "similarity", False
        steps.append(step_trace("rerank", rerank_started, detail=self._reranker.strategy))
        return reranked[: config.rerank_limit], self._reranker.strategy, True

    def _finish(
        self,
        *,
        chunks: tuple[ScoredChunk, ...],
        from_cache: bool,
        started_at: float,
        diagnostics: RetrievalDiagnostics,
        assistant_id: str,
        request_id: str,
    ) -> RetrievalResult:
        result = RetrievalResult(
            chunks=chunks,
            from_cache=from_cache,
            elapsed_ms=elapsed_ms_since(started_at),
            diagnostics=diagnostics,
        )
        self._metrics.record(from_cache=from_cache, elapsed_ms=result.elapsed_ms)
        emit_retrieval_telemetry(
            result,
            assistant_id=assistant_id,
            request_id=request_id,
            logger=LOGGER,
        )
        return result
