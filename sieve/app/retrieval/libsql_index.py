from __future__ import annotations

import json
from typing import Any

import httpx

from sieve.app.errors import ResourceExhaustedError, TransientDependencyError
from sieve.app.retrieval.contracts import ScoredChunk
from sieve.app.retrieval.http_errors import (
    is_resource_exhausted_message,
    raise_for_dependency_status,
    transport_failure,
)
from sieve.app.retrieval.scoring import clamp_unit

BACKEND_NAME = "libsql"

SEARCH_SQL = (
    "SELECT file_name, content, "
    "1 - vector_distance_cos(embedding, vector(?)) AS similarity "
    "FROM rag_chunks "
    "WHERE assistant_id = ? "
    "ORDER BY similarity DESC "
    "LIMIT ?"
)


def _vector_literal(values: list[float]) -> str:
    return "[" + ",".join(f"{value:.8f}" for value in values) + "]"


def _http_base_url(url: str) -> str:
    if url.startswith("libsql://"):
        url = "https://" + url[len("libsql://") :]
    return url.rstrip("/")


def _cell_value(cell: Any) -> Any:
    if not isinstance(cell, dict):
        return cell
    cell_type = cell.get("type")
    value = cell.get("value")
    if cell_type == "null":
        return None
    if cell_type == "integer" and isinstance(value, str):
        return int(value)
    if cell_type == "float" and isinstance(value, (int, float, str)):
        return float(value)
    return value


class LibsqlVectorIndex:
    """Vector search over a libSQL ``rag_chunks`` table via the HTTP pipeline API."""

    def __init__(
        self,
        *,
        url: str,
        auth_token: str | None,
        timeout_s: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._pipeline_url = f"{_http_base_url(url)}/v2/pipeline"
        self._auth_token = auth_token
        self._timeout_s = timeout_s
        self._transport = transport

    @property
    def name(self) -> str:
        return BACKEND_NAME

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers

    def _payload(
        self, assistant_id: str, query_embedding: list[float], limit: int
    ) -> dict[str, Any]:
        return {
            "requests": [
                {
                    "type": "execute",
                    "stmt": {
                        "sql": SEARCH_SQL,
                        "args": [
                            {"type": "text", "value": _vector_literal(query_embedding)},
                            {"type": "text", "value": assistant_id},
                            {"type": "integer", "value": str(limit)},
                        ],
                    },
                },
                {"type": "close"},
            ]
        }

    async def query(
        self,
        *,
        assistant_id: str,
        query_embedding: list[float],
        limit: int,
    ) -> list[ScoredChunk]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport
            ) as client:
                response = await client.post(
                    self._pipeline_url,
                    headers=self._headers(),
                    content=json.dumps(
                        self._payload(assistant_id, query_embedding, limit)
                    ),
                )
        except httpx.HTTPError as exc:
            raise transport_failure(exc, backend=BACKEND_NAME) from exc
        raise_for_dependency_status(response, backend=BACKEND_NAME)
        return _parse_pipeline_rows(response.json())


def _parse_pipeline_rows(payload: Any) -> list[ScoredChunk]:
    if not isinstance(payload, dict):
        raise TransientDependencyError("libsql returned a malformed pipeline body")
    results = payload.get("results")
    if not isinstance(results, list) or not results:
        return []
    first = results[0]
    if not isinstance(first, dict):
        return []
    if first.get("type") == "error":
        error = first.get("error")
        message = ""
        if isinstance(error, dict):
            message = f"{error.get('code', '')} {error.get('message', '')}"
        if is_resource_exhausted_message(message):
            raise ResourceExhaustedError(f"libsql statement rejected: {message.strip()}")
        raise TransientDependencyError(f"libsql statement failed: {message.strip()}")

    result = first.get("response", {}).get("result", {})
    columns = [column.get("name") for column in result.get("cols", [])]
    chunks: list[ScoredChunk] = []
    for raw_row in result.get("rows", []):
        if not isinstance(raw_row, list):
            continue
        row = dict(zip(columns, (_cell_value(cell) for cell in raw_row)))
        file_name = row.get("file_name")
        content = row.get("content")
        similarity = row.get("similarity")
        if not isinstance(file_name, str) or not isinstance(content, str):
            continue
        if not isinstance(similarity, (int, float)):
            continue
        chunks.append(
            ScoredChunk(
                source_id=file_name,
                content=content,
                similarity=clamp_unit(float(similarity)),
            )
        )
    return chunks
