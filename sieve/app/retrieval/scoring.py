from __future__ import annotations

import math
import re
from typing import Sequence


def cosine_similarity(left: Sequence[float], right: Sequence[float]) -> float:
    if not left or not right or len(left) != len(right):
        return 0.0
    dot_product = 0.0
    norm_left = 0.0
    norm_right = 0.0
    for a, b in zip(left, right):
        dot_product += a * b
        norm_left += a * a
        norm_right += b * b
    if norm_left == 0 or norm_right == 0:
        return 0.0
    return dot_product / (math.sqrt(norm_left) * math.sqrt(norm_right))


def clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def tokenize(text: str) -> set[str]:
    return set(re.findall(r"\w+", text.lower()))


def overlap_score(query: str, candidate: str) -> float:
    query_tokens = tokenize(query)
    if not query_tokens:
        return 0.0
    candidate_tokens = tokenize(candidate)
    hits = len(query_tokens.intersection(candidate_tokens))
    return hits / len(query_tokens)
