# ruff: noqa: E402

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
import sys

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from scripts._env import load_dotenv_file
from sieve.app.runtime.container import build_runtime
from sieve.core.config import load_app_config


def _print_result(name: str, ok: bool, detail: str) -> bool:
    status = "OK" if ok else "FAIL"
    print(f"[{status}] {name}: {detail}")
    return ok


async def _check_index(assistant_id: str, query: str, limit: int) -> bool:
    runtime = build_runtime(load_app_config())
    for provider_id, status in runtime.registry.report().items():
        _print_result(provider_id, bool(status["ok"]), status["reason"] or "ready")

    if runtime.remote_store.backend == "none":
        return _print_result(
            "remote index",
            False,
            "VECTOR_INDEX_BACKEND is not configured with reachable credentials",
        )

    embedding_provider = runtime.registry.resolve(
        f"embedding:{runtime.config.embedding_backend}",
        "embedding:deterministic",
    )
    assert embedding_provider is not None
    vector = await embedding_provider.handle.embed(query, "query")
    outcome = await runtime.remote_store.search_with_outcome(assistant_id, vector, limit)
    if outcome.failure:
        return _print_result("remote search", False, outcome.failure)

    for chunk in outcome.chunks:
        print(f"  {chunk.similarity:.4f}  {chunk.source_id}  ({len(chunk.content)} chars)")
    return _print_result(
        "remote search",
        True,
        f"{len(outcome.chunks)} chunks for assistant {assistant_id}",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Check the configured vector index")
    parser.add_argument("assistant_id")
    parser.add_argument("--query", default="What is this assistant about?")
    parser.add_argument("--limit", type=int, default=5)
    args = parser.parse_args()

    load_dotenv_file()
    ok = asyncio.run(_check_index(args.assistant_id, args.query, args.limit))
    return 0 if ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
