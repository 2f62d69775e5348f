from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol, Sequence

from sieve.app.resilience.contracts import CircuitSnapshot
from sieve.app.resilience.service import ResilienceWrapper
from sieve.app.retrieval.contracts import ScoredChunk

LOGGER = logging.getLogger(__name__)


class VectorIndex(Protocol):
    @property
    def name(self) -> str: ...

    async def query(
        self,
        *,
        assistant_id: str,
        query_embedding: list[float],
        limit: int,
    ) -> list[ScoredChunk]: ...


@dataclass(frozen=True)
class RemoteSearchOutcome:
    chunks: list[ScoredChunk]
    failure: str | None = None
    # Rows came from a search started for another query of the same assistant.
    shared: bool = False


class RemoteVectorStore:
    """Shared vector index behind retries, a circuit breaker and single-flight.

    ``search`` never raises for dependency failures: an empty list means the
    caller should consult the next tier, not that the assistant has no data.
    """

    def __init__(self, index: VectorIndex, wrapper: ResilienceWrapper) -> None:
        self._index = index
        self._wrapper = wrapper

    @property
    def backend(self) -> str:
        return self._index.name

    def circuit(self) -> CircuitSnapshot:
        return self._wrapper.snapshot()

    async def search(
        self,
        assistant_id: str,
        query_embedding: Sequence[float],
        limit: int,
    ) -> list[ScoredChunk]:
        outcome = await self.search_with_outcome(assistant_id, query_embedding, limit)
        return outcome.chunks

    async def search_with_outcome(
        self,
        assistant_id: str,
        query_embedding: Sequence[float],
        limit: int,
    ) -> RemoteSearchOutcome:
        vector = list(query_embedding)

        async def _query() -> list[ScoredChunk]:
            return await self._index.query(
                assistant_id=assistant_id,
                query_embedding=vector,
                limit=limit,
            )

        try:
            chunks, shared = await self._wrapper.execute_shared(
                f"search:{assistant_id}", _query
            )
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "Remote vector search unavailable; returning empty tier",
                extra={
                    "backend": self._index.name,
                    "assistant_id": assistant_id,
                    "error_class": exc.__class__.__name__,
                },
            )
            return RemoteSearchOutcome([], f"remote:{exc.__class__.__name__}")
        ranked = sorted(chunks, key=lambda row: row.similarity, reverse=True)
        return RemoteSearchOutcome(ranked[:limit], shared=shared)
