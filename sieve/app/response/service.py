from __future__ import annotations

import logging
from typing import Sequence

from sieve.app.retrieval.contracts import ScoredChunk

LOGGER = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"


def build_context_string(chunks: Sequence[ScoredChunk]) -> str:
    if not chunks:
        return ""
    context = CONTEXT_SEPARATOR.join(
        f"From {chunk.source_id}:\n{chunk.content}" for chunk in chunks
    )
    LOGGER.debug(
        "Assembled prompt context",
        extra={"chunk_count": len(chunks), "character_count": len(context)},
    )
    return context
