from __future__ import annotations

from typing import Sequence

from sieve.app.retrieval.contracts import Chunk, ScoredChunk
from sieve.app.retrieval.scoring import clamp_unit, cosine_similarity


class LocalFallbackStore:
    """Scores caller-supplied chunks in memory when the remote tier is empty."""

    def search(
        self,
        chunks: Sequence[Chunk],
        query_embedding: Sequence[float],
        limit: int,
    ) -> list[ScoredChunk]:
        if limit <= 0:
            return []
        scored: list[ScoredChunk] = []
        for chunk in chunks:
            if not chunk.embedding:
                continue
            similarity = clamp_unit(cosine_similarity(query_embedding, chunk.embedding))
            scored.append(ScoredChunk.from_chunk(chunk, similarity))
        ranked = sorted(scored, key=lambda row: row.similarity, reverse=True)
        return ranked[:limit]
