from __future__ import annotations

from dataclasses import dataclass

from sieve.app.observability.contracts import StepTrace

SOURCE_CACHE = "cache"
SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"
SOURCE_EMPTY = "empty"


@dataclass(frozen=True)
class Chunk:
    source_id: str
    content: str
    embedding: tuple[float, ...] | None = None


@dataclass(frozen=True)
class ScoredChunk:
    source_id: str
    content: str
    similarity: float
    embedding: tuple[float, ...] | None = None
    relevance_score: float | None = None

    @property
    def ranking_score(self) -> float:
        if self.relevance_score is not None:
            return self.relevance_score
        return self.similarity

    @classmethod
    def from_chunk(cls, chunk: Chunk, similarity: float) -> ScoredChunk:
        return cls(
            source_id=chunk.source_id,
            content=chunk.content,
            similarity=similarity,
            embedding=chunk.embedding,
        )


@dataclass(frozen=True)
class RetrievalConfig:
    vector_search_limit: int = 20
    enable_reranking: bool = False
    rerank_limit: int = 5
    min_similarity: float = 0.3
    cache_similarity_threshold: float = 0.9
    enable_cache: bool = True

    def __post_init__(self) -> None:
        if self.vector_search_limit <= 0:
            raise ValueError("vector_search_limit must be positive")
        if self.rerank_limit <= 0:
            raise ValueError("rerank_limit must be positive")
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ValueError("min_similarity must be within [0, 1]")
        if not 0.0 <= self.cache_similarity_threshold <= 1.0:
            raise ValueError("cache_similarity_threshold must be within [0, 1]")


@dataclass(frozen=True)
class RetrievalDiagnostics:
    source: str
    total_candidates: int = 0
    filtered_candidates: int = 0
    final_results: int = 0
    rerank_strategy: str = "none"
    reranked: bool = False
    degraded: bool = False
    shared_search: bool = False
    failures: tuple[str, ...] = tuple()
    cache_similarity: float | None = None
    cached_query: str | None = None
    top_similarity: float | None = None
    steps: tuple[StepTrace, ...] = tuple()


@dataclass(frozen=True)
class RetrievalResult:
    chunks: tuple[ScoredChunk, ...]
    from_cache: bool
    elapsed_ms: int
    diagnostics: RetrievalDiagnostics
