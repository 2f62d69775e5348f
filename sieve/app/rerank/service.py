from __future__ import annotations

import asyncio
import json
import re
from dataclasses import replace
from typing import Any, Protocol, Sequence

from sieve.app.errors import RerankerUnavailableError
from sieve.app.retrieval.contracts import ScoredChunk
from sieve.app.retrieval.scoring import clamp_unit, overlap_score

DEFAULT_CROSS_ENCODER_MODEL = "jinaai/jina-reranker-v2-base-multilingual"
LLM_CANDIDATE_LIMIT = 12
LLM_CONTENT_CHARS = 900


class Reranker(Protocol):
    @property
    def strategy(self) -> str: ...

    async def rerank(
        self,
        query_text: str,
        candidates: Sequence[ScoredChunk],
        top_k: int,
    ) -> list[ScoredChunk]: ...


def _order_by_relevance(
    candidates: Sequence[ScoredChunk], scores: Sequence[float], top_k: int
) -> list[ScoredChunk]:
    scored = [
        replace(chunk, relevance_score=round(float(score), 6))
        for chunk, score in zip(candidates, scores)
    ]
    ranked = sorted(scored, key=lambda row: row.ranking_score, reverse=True)
    return ranked[:top_k]


def _normalize(values: Sequence[float]) -> list[float]:
    if not values:
        return []
    minimum = min(values)
    maximum = max(values)
    if maximum <= minimum:
        return [1.0 for _ in values]
    return [(value - minimum) / (maximum - minimum) for value in values]


class HeuristicReranker:
    """Blends min-max normalised vector similarity with lexical overlap."""

    strategy = "score_normalization_v2"

    def __init__(self, semantic_weight: float = 0.7) -> None:
        self._semantic_weight = semantic_weight

    async def rerank(
        self,
        query_text: str,
        candidates: Sequence[ScoredChunk],
        top_k: int,
    ) -> list[ScoredChunk]:
        if not candidates:
            return []
        semantic = _normalize([chunk.similarity for chunk in candidates])
        scores = [
            (self._semantic_weight * semantic_score)
            + ((1.0 - self._semantic_weight) * overlap_score(query_text, chunk.content))
            for chunk, semantic_score in zip(candidates, semantic)
        ]
        return _order_by_relevance(candidates, scores, top_k)


class CrossEncoderReranker:
    strategy = "cross_encoder_v1"

    def __init__(self, model_name: str = DEFAULT_CROSS_ENCODER_MODEL) -> None:
        self._model_name = model_name
        self._model: Any = None

    def _load_model(self) -> Any:
        if self._model is None:
            try:
                from sentence_transformers import CrossEncoder
            except ImportError as exc:
                raise RerankerUnavailableError(
                    "sentence-transformers is not installed"
                ) from exc
            try:
                self._model = CrossEncoder(self._model_name, trust_remote_code=True)
            except Exception as exc:  # noqa: BLE001
                raise RerankerUnavailableError(
                    f"Cross-encoder '{self._model_name}' failed to load"
                ) from exc
        return self._model

    def _predict(self, query_text: str, documents: list[str]) -> list[float]:
        model = self._load_model()
        pairs = [(query_text, document) for document in documents]
        # Single-label cross-encoders apply a sigmoid by default.
        scores = model.predict(pairs)
        return [clamp_unit(float(value)) for value in scores]

    async def rerank(
        self,
        query_text: str,
        candidates: Sequence[ScoredChunk],
        top_k: int,
    ) -> list[ScoredChunk]:
        if not candidates:
            return []
        documents = [chunk.content for chunk in candidates]
        try:
            scores = await asyncio.to_thread(self._predict, query_text, documents)
        except RerankerUnavailableError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise RerankerUnavailableError("Cross-encoder inference failed") from exc
        return _order_by_relevance(candidates, scores, top_k)


def _extract_json_payload(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        stripped = re.sub(r"^```(?:json)?", "", stripped).strip()
        stripped = re.sub(r"```$", "", stripped).strip()
    return stripped


class LlmReranker:
    strategy = "llm_rerank_v1"

    def __init__(self, *, api_key: str, model: str) -> None:
        from langchain_google_genai import ChatGoogleGenerativeAI

        self._client = ChatGoogleGenerativeAI(
            model=model,
            google_api_key=api_key,
            temperature=0.0,
            max_retries=1,
        )

    def _prompt(self, query_text: str, candidates: Sequence[ScoredChunk]) -> str:
        rows = [
            {
                "index": index,
                "source_id": chunk.source_id,
                "content": chunk.content[:LLM_CONTENT_CHARS],
            }
            for index, chunk in enumerate(candidates)
        ]
        return (
            "You are a retrieval reranker. Return a strict JSON array of rows with "
            "keys index and score (0-1). Keep only the provided indexes. "
            "Rank by usefulness for answering the query with grounded evidence. "
            f"Query: {query_text}\n"
            f"Candidates: {json.dumps(rows)}"
        )

    async def rerank(
        self,
        query_text: str,
        candidates: Sequence[ScoredChunk],
        top_k: int,
    ) -> list[ScoredChunk]:
        if not candidates:
            return []
        window = list(candidates[:LLM_CANDIDATE_LIMIT])
        try:
            response = await self._client.ainvoke(self._prompt(query_text, window))
            text = getattr(response, "text", None)
            if not isinstance(text, str):
                text = str(response.content)
            payload = json.loads(_extract_json_payload(text))
        except Exception as exc:  # noqa: BLE001
            raise RerankerUnavailableError("LLM reranker call failed") from exc
        if not isinstance(payload, list):
            raise RerankerUnavailableError("LLM reranker returned a non-list payload")

        score_by_index: dict[int, float] = {}
        for row in payload:
            if not isinstance(row, dict):
                continue
            index = row.get("index")
            score = row.get("score")
            if isinstance(index, int) and isinstance(score, (int, float)):
                if 0 <= index < len(window):
                    score_by_index[index] = clamp_unit(float(score))
        if not score_by_index:
            raise RerankerUnavailableError("LLM reranker returned no usable scores")
        scores = [score_by_index.get(index, 0.0) for index in range(len(window))]
        return _order_by_relevance(window, scores, top_k)


def build_reranker(
    *,
    backend: str,
    api_key: str | None,
    llm_model: str,
    cross_encoder_model: str,
) -> Reranker:
    if backend == "heuristic":
        return HeuristicReranker()
    if backend == "cross_encoder":
        return CrossEncoderReranker(cross_encoder_model)
    if backend == "llm":
        if not api_key:
            raise ValueError("llm rerank backend requires GEMINI_API_KEY")
        return LlmReranker(api_key=api_key, model=llm_model)
    raise ValueError(f"Unknown rerank backend: {backend}")
