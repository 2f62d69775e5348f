from __future__ import annotations

import asyncio
import hashlib
from typing import Literal

EmbeddingMode = Literal["query", "document"]

# Task prefixes expected by the EmbeddingGemma family of models.
GEMMA_PREFIXES: dict[str, str] = {
    "query": "task: search result | query: ",
    "document": "title: none | text: ",
}


class EmbeddingProvider:
    name = "base"

    async def embed(self, text: str, mode: EmbeddingMode = "query") -> list[float]:
        raise NotImplementedError

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [await self.embed(text, "document") for text in texts]


class DeterministicEmbeddingProvider(EmbeddingProvider):
    name = "deterministic"

    def __init__(self, dimensions: int) -> None:
        self._dimensions = dimensions

    def _hash_vector(self, text: str) -> list[float]:
        required_bytes = max(self._dimensions * 2, 64)
        digest_source = b""
        seed = text.encode("utf-8")
        while len(digest_source) < required_bytes:
            seed = hashlib.sha256(seed).digest()
            digest_source += seed
        return [value / 255.0 for value in digest_source[: self._dimensions]]

    async def embed(self, text: str, mode: EmbeddingMode = "query") -> list[float]:
        return self._hash_vector(text)


class GoogleGenerativeAIEmbeddingProvider(EmbeddingProvider):
    name = "google"

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        dimensions: int,
    ) -> None:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        self._document_embeddings = GoogleGenerativeAIEmbeddings(
            model=model,
            google_api_key=api_key,
            task_type="RETRIEVAL_DOCUMENT",
            output_dimensionality=dimensions,
        )
        self._query_embeddings = GoogleGenerativeAIEmbeddings(
            model=model,
            google_api_key=api_key,
            task_type="RETRIEVAL_QUERY",
            output_dimensionality=dimensions,
        )

    async def embed(self, text: str, mode: EmbeddingMode = "query") -> list[float]:
        if mode == "document":
            rows = await self._document_embeddings.aembed_documents([text])
            return [float(value) for value in rows[0]]
        return [float(value) for value in await self._query_embeddings.aembed_query(text)]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        rows = await self._document_embeddings.aembed_documents(texts)
        return [[float(value) for value in row] for row in rows]


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    name = "sentence_transformers"

    def __init__(self, *, model: str) -> None:
        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(model)

    def _encode(self, text: str, mode: EmbeddingMode) -> list[float]:
        vector = self._model.encode(
            GEMMA_PREFIXES[mode] + text,
            normalize_embeddings=True,
        )
        return [float(value) for value in vector]

    async def embed(self, text: str, mode: EmbeddingMode = "query") -> list[float]:
        return await asyncio.to_thread(self._encode, text, mode)


def build_embedding_provider(
    *,
    backend: str,
    dimensions: int,
    api_key: str | None,
    model: str,
    local_model: str,
) -> EmbeddingProvider:
    if backend == "google":
        if not api_key:
            raise ValueError("google embedding backend requires GEMINI_API_KEY")
        return GoogleGenerativeAIEmbeddingProvider(
            api_key=api_key,
            model=model,
            dimensions=dimensions,
        )
    if backend == "sentence_transformers":
        return SentenceTransformerEmbeddingProvider(model=local_model)
    if backend == "deterministic":
        return DeterministicEmbeddingProvider(dimensions=dimensions)
    raise ValueError(f"Unknown embedding backend: {backend}")
