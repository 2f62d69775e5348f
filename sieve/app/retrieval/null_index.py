from __future__ import annotations

from sieve.app.retrieval.contracts import ScoredChunk


class NullVectorIndex:
    """Stands in when no remote index is configured; every search is empty."""

    @property
    def name(self) -> str:
        return "none"

    async def query(
        self,
        *,
        assistant_id: str,
        query_embedding: list[float],
        limit: int,
    ) -> list[ScoredChunk]:
        return []
