"""
Similarity scoring - cosine distance and top-K ranking.
"""

import heapq
import math
from typing import Iterable, List, Tuple, TypeVar


T = TypeVar("T")


def cosine_similarity(vec_a: List[float], vec_b: List[float]) -> float:
    """
    Compute cosine similarity between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Cosine similarity score between -1 and 1 (0.0 if either is a zero vector)

    Raises:
        ValueError: If vectors have different dimensions or are empty
    """
    if not vec_a or not vec_b:
        raise ValueError("Vectors cannot be empty")

    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector dimensions must match: {len(vec_a)} != {len(vec_b)}")

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    # Clamp float drift so identical vectors score exactly 1.0 at most
    return max(-1.0, min(1.0, dot_product / (magnitude_a * magnitude_b)))


def cosine_distance(vec_a: List[float], vec_b: List[float]) -> float:
    """Cosine distance, ``1 - similarity``; 0.0 means same direction."""
    return 1.0 - cosine_similarity(vec_a, vec_b)


def top_k_nearest(
    query: List[float],
    candidates: Iterable[Tuple[str, List[float], T]],
    k: int,
) -> List[Tuple[float, str, T]]:
    """
    Rank candidates by cosine distance to ``query``.

    Args:
        query: Query vector
        candidates: ``(key, vector, payload)`` triples
        k: Maximum number of results

    Returns:
        Up to k ``(distance, key, payload)`` triples, most similar first;
        ties are broken by key so the order is deterministic
    """
    if k <= 0:
        return []

    scored = (
        (cosine_distance(query, vector), key, payload)
        for key, vector, payload in candidates
    )
    return heapq.nsmallest(k, scored, key=lambda item: (item[0], item[1]))
