from __future__ import annotations

import json
from dataclasses import dataclass, field

import httpx

from sieve.app.retrieval.contracts import ScoredChunk
from sieve.app.retrieval.http_errors import (
    raise_for_dependency_status,
    transport_failure,
)
from sieve.app.retrieval.scoring import clamp_unit

BACKEND_NAME = "supabase"


def _vector_literal(values: list[float]) -> str:
    return "[" + ",".join(f"{value:.8f}" for value in values) + "]"


@dataclass(frozen=True)
class SupabaseVectorIndex:
    url: str
    anon_key: str
    timeout_s: float = 20.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, compare=False)

    @property
    def name(self) -> str:
        return BACKEND_NAME

    @property
    def _rpc_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1/rpc"

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.anon_key}",
            "Content-Type": "application/json",
        }

    async def query(
        self,
        *,
        assistant_id: str,
        query_embedding: list[float],
        limit: int,
    ) -> list[ScoredChunk]:
        payload = {
            "query_embedding": _vector_literal(query_embedding),
            "match_count": limit,
            "p_assistant_id": assistant_id,
        }
        endpoint = f"{self._rpc_url}/match_assistant_chunks"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s, transport=self.transport
            ) as client:
                response = await client.post(
                    endpoint,
                    headers=self._headers(),
                    content=json.dumps(payload),
                )
        except httpx.HTTPError as exc:
            raise transport_failure(exc, backend=BACKEND_NAME) from exc
        raise_for_dependency_status(response, backend=BACKEND_NAME)
        rows = response.json()
        if not isinstance(rows, list):
            return []

        hits: list[ScoredChunk] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            source = row.get("source") or row.get("file_name")
            content = row.get("content")
            similarity = row.get("similarity")
            if not isinstance(source, str) or not isinstance(content, str):
                continue
            if not isinstance(similarity, (int, float)):
                continue
            hits.append(
                ScoredChunk(
                    source_id=source,
                    content=content,
                    similarity=clamp_unit(float(similarity)),
                )
            )
        return hits
