"""Vector similarity."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``.

    Returns 0.0 instead of raising when either vector has zero norm or the
    two differ in length.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1.0, 1.0].
    """
    if len(a) != len(b) or len(a) == 0:
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0.0:
        return 0.0

    score = float(np.dot(va, vb) / denom)
    # Clamp rounding noise for (anti)parallel vectors
    return max(-1.0, min(1.0, score))
