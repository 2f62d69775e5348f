from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict
from typing import Any

from sieve.app.observability.contracts import StepTrace
from sieve.app.retrieval.contracts import RetrievalResult


def step_trace(
    step_name: str,
    started_at: float,
    *,
    status: str = "ok",
    detail: str | None = None,
) -> StepTrace:
    elapsed_ms = int((time.perf_counter() - started_at) * 1000)
    return StepTrace(
        step_name=step_name,
        latency_ms=max(elapsed_ms, 0),
        status=status,
        detail=detail,
    )


def elapsed_ms_since(started_at: float) -> int:
    return max(int((time.perf_counter() - started_at) * 1000), 0)


def emit_retrieval_telemetry(
    result: RetrievalResult,
    *,
    assistant_id: str,
    request_id: str,
    logger: logging.Logger | None = None,
) -> None:
    active_logger = logger or logging.getLogger(__name__)
    diagnostics = result.diagnostics
    payload: dict[str, Any] = {
        "request_id": request_id,
        "assistant_id": assistant_id,
        "from_cache": result.from_cache,
        "elapsed_ms": result.elapsed_ms,
        "source": diagnostics.source,
        "total_candidates": diagnostics.total_candidates,
        "filtered_candidates": diagnostics.filtered_candidates,
        "final_results": diagnostics.final_results,
        "rerank_strategy": diagnostics.rerank_strategy,
        "degraded": diagnostics.degraded,
        "shared_search": diagnostics.shared_search,
        "failures": list(diagnostics.failures),
        "steps": [asdict(step) for step in diagnostics.steps],
    }
    if diagnostics.cache_similarity is not None:
        payload["cache_similarity"] = round(diagnostics.cache_similarity, 6)
    active_logger.info("retrieval_event %s", json.dumps(payload, sort_keys=True))
