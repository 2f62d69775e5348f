from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StepTrace:
    step_name: str
    latency_ms: int
    status: str
    detail: str | None = None
