from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class OrchestratorMetrics:
    total_queries: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    hit_rate: float = 0.0
    average_query_ms: float = 0.0
    average_cache_hit_ms: float = 0.0
    average_full_retrieval_ms: float = 0.0


class MetricsRecorder:
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self._hits = 0
        self._misses = 0
        self._total_ms = 0
        self._hit_ms = 0
        self._miss_ms = 0

    def record(self, *, from_cache: bool, elapsed_ms: int) -> None:
        self._total_ms += elapsed_ms
        if from_cache:
            self._hits += 1
            self._hit_ms += elapsed_ms
        else:
            self._misses += 1
            self._miss_ms += elapsed_ms

    def snapshot(self) -> OrchestratorMetrics:
        total = self._hits + self._misses
        return OrchestratorMetrics(
            total_queries=total,
            cache_hits=self._hits,
            cache_misses=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            average_query_ms=self._total_ms / total if total else 0.0,
            average_cache_hit_ms=self._hit_ms / self._hits if self._hits else 0.0,
            average_full_retrieval_ms=(
                self._miss_ms / self._misses if self._misses else 0.0
            ),
        )
