from __future__ import annotations

from dataclasses import dataclass, field

from sieve.app.retrieval.contracts import ScoredChunk


@dataclass(frozen=True)
class CacheEntry:
    entry_id: str
    assistant_id: str
    query_text: str
    query_embedding: tuple[float, ...]
    result_chunks: tuple[ScoredChunk, ...]
    created_at: float
    last_access_at: float
    hit_count: int = 0


@dataclass(frozen=True)
class CacheMatch:
    entry: CacheEntry
    similarity: float


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    entries_by_assistant: dict[str, int] = field(default_factory=dict)
    oldest_entry_at: float | None = None
    newest_entry_at: float | None = None
