from __future__ import annotations

import json

import httpx
import pytest

from sieve.app.errors import ResourceExhaustedError, TransientDependencyError
from sieve.app.resilience.contracts import CircuitState, ResiliencePolicy
from sieve.app.resilience.service import ResilienceWrapper
from sieve.app.retrieval.libsql_index import SEARCH_SQL, LibsqlVectorIndex
from sieve.app.retrieval.null_index import NullVectorIndex
from sieve.app.retrieval.remote_store import RemoteVectorStore
from sieve.app.retrieval.supabase_index import SupabaseVectorIndex


def _libsql_body(rows: list[list[dict]]) -> dict:
    return {
        "results": [
            {
                "type": "ok",
                "response": {
                    "type": "execute",
                    "result": {
                        "cols": [
                            {"name": "file_name"},
                            {"name": "content"},
                            {"name": "similarity"},
                        ],
                        "rows": rows,
                    },
                },
            },
            {"type": "ok", "response": {"type": "close"}},
        ]
    }


def _text(value: str) -> dict:
    return {"type": "text", "value": value}


def _float(value: float) -> dict:
    return {"type": "float", "value": value}


async def _no_sleep(delay: float) -> None:
    return None


@pytest.mark.asyncio
async def test_libsql_index_posts_pipeline_and_parses_rows() -> None:
    captured: dict = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=_libsql_body(
                [
                    [_text("guide.md"), _text("Install steps"), _float(0.82)],
                    [_text("faq.md"), _text("Common questions"), _float(1.2)],
                    [{"type": "null"}, _text("orphan"), _float(0.5)],
                ]
            ),
        )

    index = LibsqlVectorIndex(
        url="libsql://demo-db.turso.io",
        auth_token="token-123",
        transport=httpx.MockTransport(_handler),
    )

    rows = await index.query(assistant_id="a1", query_embedding=[0.5, 0.25], limit=7)

    assert captured["url"] == "https://demo-db.turso.io/v2/pipeline"
    assert captured["auth"] == "Bearer token-123"
    statement = captured["body"]["requests"][0]["stmt"]
    assert statement["sql"] == SEARCH_SQL
    assert statement["args"][1] == {"type": "text", "value": "a1"}
    assert statement["args"][2] == {"type": "integer", "value": "7"}
    assert [(row.source_id, row.similarity) for row in rows] == [
        ("guide.md", 0.82),
        ("faq.md", 1.0),
    ]


@pytest.mark.asyncio
async def test_libsql_statement_error_raises_transient() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "type": "error",
                        "error": {"message": "no such table: rag_chunks"},
                    }
                ]
            },
        )

    index = LibsqlVectorIndex(
        url="https://demo-db.turso.io",
        auth_token=None,
        transport=httpx.MockTransport(_handler),
    )

    with pytest.raises(TransientDependencyError):
        await index.query(assistant_id="a1", query_embedding=[1.0], limit=3)


@pytest.mark.asyncio
async def test_libsql_http_429_raises_resource_exhausted() -> None:
    index = LibsqlVectorIndex(
        url="https://demo-db.turso.io",
        auth_token=None,
        transport=httpx.MockTransport(lambda request: httpx.Response(429)),
    )

    with pytest.raises(ResourceExhaustedError):
        await index.query(assistant_id="a1", query_embedding=[1.0], limit=3)


@pytest.mark.asyncio
async def test_libsql_transport_error_raises_transient() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    index = LibsqlVectorIndex(
        url="https://demo-db.turso.io",
        auth_token=None,
        transport=httpx.MockTransport(_handler),
    )

    with pytest.raises(TransientDependencyError):
        await index.query(assistant_id="a1", query_embedding=[1.0], limit=3)


@pytest.mark.asyncio
async def test_supabase_index_calls_rpc_and_parses_rows() -> None:
    captured: dict = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["apikey"] = request.headers.get("apikey")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json=[
                {"source": "notes.md", "content": "alpha", "similarity": 0.71},
                {"file_name": "guide.md", "content": "beta", "similarity": 0.44},
                {"source": "bad.md", "content": "gamma", "similarity": "high"},
            ],
        )

    index = SupabaseVectorIndex(
        url="https://project.supabase.co/",
        anon_key="anon",
        transport=httpx.MockTransport(_handler),
    )

    rows = await index.query(assistant_id="a1", query_embedding=[0.1, 0.2], limit=4)

    assert captured["path"] == "/rest/v1/rpc/match_assistant_chunks"
    assert captured["apikey"] == "anon"
    assert captured["body"]["match_count"] == 4
    assert captured["body"]["p_assistant_id"] == "a1"
    assert [row.source_id for row in rows] == ["notes.md", "guide.md"]


@pytest.mark.asyncio
async def test_supabase_server_error_raises_transient() -> None:
    index = SupabaseVectorIndex(
        url="https://project.supabase.co",
        anon_key="anon",
        transport=httpx.MockTransport(lambda request: httpx.Response(503, text="down")),
    )

    with pytest.raises(TransientDependencyError):
        await index.query(assistant_id="a1", query_embedding=[0.1], limit=4)


@pytest.mark.asyncio
async def test_remote_store_returns_empty_tier_when_index_is_exhausted() -> None:
    calls = 0

    def _handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(400, text='{"message": "RESOURCE_EXHAUSTED"}')

    index = LibsqlVectorIndex(
        url="https://demo-db.turso.io",
        auth_token=None,
        transport=httpx.MockTransport(_handler),
    )
    store = RemoteVectorStore(
        index,
        ResilienceWrapper("vector_index:libsql", ResiliencePolicy(), sleep=_no_sleep),
    )

    outcome = await store.search_with_outcome("a1", [1.0, 0.0], 5)

    assert outcome.chunks == []
    assert outcome.failure == "remote:ResourceExhaustedError"
    assert calls == 1
    assert store.circuit().state is CircuitState.CLOSED


@pytest.mark.asyncio
async def test_remote_store_sorts_and_truncates_index_rows() -> None:
    def _handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=_libsql_body(
                [
                    [_text("low.md"), _text("x"), _float(0.4)],
                    [_text("high.md"), _text("y"), _float(0.9)],
                    [_text("mid.md"), _text("z"), _float(0.6)],
                ]
            ),
        )

    store = RemoteVectorStore(
        LibsqlVectorIndex(
            url="https://demo-db.turso.io",
            auth_token=None,
            transport=httpx.MockTransport(_handler),
        ),
        ResilienceWrapper("vector_index:libsql", sleep=_no_sleep),
    )

    rows = await store.search("a1", [1.0, 0.0], 2)

    assert [row.source_id for row in rows] == ["high.md", "mid.md"]
    assert store.backend == "libsql"


@pytest.mark.asyncio
async def test_null_index_is_always_empty() -> None:
    index = NullVectorIndex()

    assert index.name == "none"
    assert await index.query(assistant_id="a1", query_embedding=[1.0], limit=5) == []
