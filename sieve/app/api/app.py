from __future__ import annotations

import logging
from dataclasses import asdict, replace
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sieve.app.errors import EmbeddingGenerationError
from sieve.app.response.service import build_context_string
from sieve.app.retrieval.contracts import Chunk, RetrievalConfig, RetrievalResult
from sieve.app.runtime.container import SieveRuntime, build_runtime
from sieve.core.config import load_app_config

LOGGER = logging.getLogger(__name__)


class LocalChunkPayload(BaseModel):
    source_id: str = Field(min_length=1)
    content: str
    embedding: list[float] | None = None


class RetrievalOverrides(BaseModel):
    vector_search_limit: int | None = Field(default=None, gt=0)
    enable_reranking: bool | None = None
    rerank_limit: int | None = Field(default=None, gt=0)
    min_similarity: float | None = Field(default=None, ge=0.0, le=1.0)
    cache_similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    enable_cache: bool | None = None


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1)
    assistant_id: str = Field(min_length=1)
    local_chunks: list[LocalChunkPayload] = Field(default_factory=list)
    config: RetrievalOverrides | None = None


def _merge_config(
    base: RetrievalConfig, overrides: RetrievalOverrides | None
) -> RetrievalConfig:
    if overrides is None:
        return base
    changes = overrides.model_dump(exclude_none=True)
    return replace(base, **changes)


def _to_chunks(payloads: list[LocalChunkPayload]) -> list[Chunk]:
    return [
        Chunk(
            source_id=payload.source_id,
            content=payload.content,
            embedding=tuple(payload.embedding) if payload.embedding else None,
        )
        for payload in payloads
    ]


def _serialize_result(result: RetrievalResult) -> dict[str, Any]:
    return {
        "chunks": [
            {
                "source_id": chunk.source_id,
                "content": chunk.content,
                "similarity": chunk.similarity,
                "relevance_score": chunk.relevance_score,
            }
            for chunk in result.chunks
        ],
        "context": build_context_string(result.chunks),
        "from_cache": result.from_cache,
        "elapsed_ms": result.elapsed_ms,
        "diagnostics": asdict(result.diagnostics),
    }


def create_app(runtime: SieveRuntime | None = None) -> FastAPI:
    active = runtime or build_runtime(load_app_config())
    config = active.config

    app = FastAPI(title=config.app_name, version=config.app_version)
    app.state.runtime = active

    @app.get("/")
    async def root() -> JSONResponse:
        return JSONResponse(
            content={
                "name": config.app_name,
                "version": config.app_version,
                "environment": config.environment,
                "docs": "/docs",
            }
        )

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    @app.get("/ready")
    async def ready() -> JSONResponse:
        circuit = active.remote_store.circuit()
        return JSONResponse(
            content={
                "ready": True,
                "providers": active.registry.report(),
                "remote": {
                    "backend": active.remote_store.backend,
                    "circuit_state": circuit.state.value,
                    "failure_count": circuit.failure_count,
                },
            }
        )

    @app.post("/api/v1/retrieve")
    async def retrieve(payload: RetrieveRequest) -> JSONResponse:
        try:
            retrieval_config = _merge_config(active.default_retrieval, payload.config)
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        try:
            result = await active.orchestrator.retrieve(
                payload.query,
                payload.assistant_id,
                _to_chunks(payload.local_chunks),
                retrieval_config,
            )
        except EmbeddingGenerationError as exc:
            LOGGER.error(
                "Retrieval aborted: query embedding failed",
                extra={"assistant_id": payload.assistant_id},
                exc_info=exc,
            )
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return JSONResponse(content=_serialize_result(result))

    @app.get("/api/v1/cache/stats")
    async def cache_stats() -> JSONResponse:
        return JSONResponse(content=asdict(active.cache.stats()))

    @app.delete("/api/v1/cache/{assistant_id}")
    async def clear_cache(assistant_id: str) -> dict[str, Any]:
        return {
            "assistant_id": assistant_id,
            "deleted": active.cache.clear_assistant(assistant_id),
        }

    @app.post("/api/v1/cache/maintenance")
    async def cache_maintenance() -> JSONResponse:
        expired = active.cache.cleanup_expired()
        return JSONResponse(
            content={
                "expired_entries_deleted": expired,
                "cache_stats": asdict(active.cache.stats()),
            }
        )

    @app.get("/api/v1/metrics")
    async def metrics() -> JSONResponse:
        return JSONResponse(content=asdict(active.orchestrator.metrics()))

    return app
