"""Pure vector utilities: cosine similarity, top-K ranking, averaging, normalization."""

from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Sequence
from typing import TypeVar

T = TypeVar("T")


def _embeddingOf(candidate: object) -> Sequence[float]:
    return getattr(candidate, "embedding", None) or []


def cosineSimilarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|). 0.0 for empty, mismatched, or zero-norm vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    denominator = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denominator == 0.0:
        return 0.0
    # Clamp float drift so identical vectors never exceed 1.0
    return max(-1.0, min(1.0, dot / denominator))


def rankBySimilarity(
    query: Sequence[float],
    candidates: Iterable[T],
    top_k: int = 5,
    min_similarity: float = 0.0,
    key: Callable[[T], Sequence[float]] = _embeddingOf,
) -> list[tuple[T, float]]:
    """Rank candidates by cosine similarity to `query`, best first.

    Candidates without an embedding are skipped, scores below `min_similarity`
    are dropped, and ties keep insertion order (sorted() is stable).
    """
    if not query or top_k <= 0:
        return []
    scored: list[tuple[T, float]] = []
    for candidate in candidates:
        embedding = key(candidate)
        if not embedding:
            continue
        score = cosineSimilarity(query, embedding)
        if score >= min_similarity:
            scored.append((candidate, score))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:top_k]


def average(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise mean. Empty if no vectors or dimensions disagree."""
    if not vectors:
        return []
    size = len(vectors[0])
    if any(len(v) != size for v in vectors):
        return []
    count = len(vectors)
    return [sum(v[i] for v in vectors) / count for i in range(size)]


def normalize(vector: Sequence[float]) -> list[float]:
    """Scale to unit length; zero vectors are returned unchanged."""
    magnitude = math.sqrt(sum(x * x for x in vector))
    if magnitude == 0.0:
        return list(vector)
    return [x / magnitude for x in vector]
