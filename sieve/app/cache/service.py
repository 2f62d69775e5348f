from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Callable, Sequence
from uuid import uuid4

from sieve.app.cache.contracts import CacheEntry, CacheMatch, CacheStats
from sieve.app.retrieval.contracts import ScoredChunk
from sieve.app.retrieval.scoring import cosine_similarity

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES_PER_ASSISTANT = 1000
DEFAULT_TTL_SECONDS = 30 * 24 * 60 * 60


class SemanticCache:
    """Approximate-match cache of retrieval results, partitioned by assistant.

    A lookup compares the incoming query embedding against every live entry
    of the assistant and serves the closest one when its cosine similarity
    reaches the caller's threshold. Entries are kept in access order, so the
    least recently used entry is evicted first once an assistant exceeds
    ``max_entries_per_assistant``. Entries idle for longer than ``ttl_s`` are
    ignored by lookups and dropped by ``cleanup_expired``.

    Neither ``lookup`` nor ``store`` awaits, so each call mutates the entry
    table atomically with respect to the event loop.
    """

    def __init__(
        self,
        *,
        max_entries_per_assistant: int = DEFAULT_MAX_ENTRIES_PER_ASSISTANT,
        ttl_s: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_entries_per_assistant <= 0:
            raise ValueError("max_entries_per_assistant must be positive")
        self._max_entries = max_entries_per_assistant
        self._ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, OrderedDict[str, CacheEntry]] = {}

    def lookup(
        self,
        assistant_id: str,
        query_embedding: Sequence[float],
        threshold: float,
    ) -> CacheEntry | None:
        match = self.lookup_match(assistant_id, query_embedding, threshold)
        return match.entry if match else None

    def lookup_match(
        self,
        assistant_id: str,
        query_embedding: Sequence[float],
        threshold: float,
    ) -> CacheMatch | None:
        entries = self._entries.get(assistant_id)
        if not entries:
            return None

        now = self._clock()
        best: CacheEntry | None = None
        best_similarity = 0.0
        for entry in entries.values():
            if self._is_expired(entry, now):
                continue
            similarity = cosine_similarity(query_embedding, entry.query_embedding)
            if similarity >= threshold and (best is None or similarity > best_similarity):
                best = entry
                best_similarity = similarity
        if best is None:
            return None

        touched = replace(best, hit_count=best.hit_count + 1, last_access_at=now)
        entries[best.entry_id] = touched
        entries.move_to_end(best.entry_id)
        LOGGER.debug(
            "Semantic cache hit",
            extra={
                "assistant_id": assistant_id,
                "similarity": round(best_similarity, 4),
                "cached_query": best.query_text,
            },
        )
        return CacheMatch(entry=touched, similarity=best_similarity)

    def store(
        self,
        assistant_id: str,
        query_embedding: Sequence[float],
        query_text: str,
        chunks: Sequence[ScoredChunk],
    ) -> CacheEntry:
        now = self._clock()
        entry = CacheEntry(
            entry_id=uuid4().hex,
            assistant_id=assistant_id,
            query_text=query_text,
            query_embedding=tuple(query_embedding),
            result_chunks=tuple(chunks),
            created_at=now,
            last_access_at=now,
        )
        entries = self._entries.setdefault(assistant_id, OrderedDict())
        entries[entry.entry_id] = entry
        evicted = 0
        while len(entries) > self._max_entries:
            entries.popitem(last=False)
            evicted += 1
        if evicted:
            LOGGER.info(
                "Semantic cache capacity enforced",
                extra={"assistant_id": assistant_id, "evicted": evicted},
            )
        return entry

    def clear_assistant(self, assistant_id: str) -> int:
        entries = self._entries.pop(assistant_id, None)
        return len(entries) if entries else 0

    def cleanup_expired(self) -> int:
        now = self._clock()
        removed = 0
        for assistant_id in list(self._entries):
            entries = self._entries[assistant_id]
            expired = [
                entry_id
                for entry_id, entry in entries.items()
                if self._is_expired(entry, now)
            ]
            for entry_id in expired:
                del entries[entry_id]
            removed += len(expired)
            if not entries:
                del self._entries[assistant_id]
        return removed

    def entries_for(self, assistant_id: str) -> tuple[CacheEntry, ...]:
        return tuple(self._entries.get(assistant_id, {}).values())

    def stats(self) -> CacheStats:
        counts = {
            assistant_id: len(entries)
            for assistant_id, entries in self._entries.items()
            if entries
        }
        created = [
            entry.created_at
            for entries in self._entries.values()
            for entry in entries.values()
        ]
        return CacheStats(
            total_entries=sum(counts.values()),
            entries_by_assistant=counts,
            oldest_entry_at=min(created) if created else None,
            newest_entry_at=max(created) if created else None,
        )

    def _is_expired(self, entry: CacheEntry, now: float) -> bool:
        return now - entry.last_access_at > self._ttl_s
