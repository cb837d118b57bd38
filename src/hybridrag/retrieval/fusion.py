"""Reciprocal Rank Fusion.

Combines rankings whose raw scores live on incomparable scales (cosine
similarity vs. an unbounded keyword score) by looking only at rank
positions: a chunk at 0-based rank ``r`` earns ``1 / (k + r + 1)`` from
that ranking, and nothing from a ranking it is absent from.
"""

from __future__ import annotations

from collections.abc import Hashable, Mapping, Sequence
from typing import TypeVar

DEFAULT_RRF_K = 60

K = TypeVar("K", bound=Hashable)


def fusion_formula(k: int = DEFAULT_RRF_K) -> str:
    """Display string for the trace, e.g. ``RRF(k=60)``."""
    return f"RRF(k={k})"


FUSION_FORMULA = fusion_formula()


def rrf_contribution(rank: int, k: int = DEFAULT_RRF_K) -> float:
    """Score contributed by one ranking for a 0-based ``rank``."""
    if rank < 0:
        raise ValueError(f"rank must be >= 0, got {rank}")
    return 1.0 / (k + rank + 1)


def rank_descending(scores: Mapping[K, float], order: Mapping[K, int]) -> list[K]:
    """Keys sorted by score, highest first; ties keep ``order`` ascending."""
    return sorted(scores, key=lambda key: (-scores[key], order[key]))


def reciprocal_rank_fusion(
    rankings: Sequence[Sequence[K]],
    k: int = DEFAULT_RRF_K,
) -> dict[K, float]:
    """Sum RRF contributions of every key across ``rankings``.

    Keys absent from all rankings do not appear in the result.
    """
    fused: dict[K, float] = {}
    for ranking in rankings:
        for rank, key in enumerate(ranking):
            fused[key] = fused.get(key, 0.0) + rrf_contribution(rank, k)
    return fused
