"""Hybrid retrieval — vector and keyword scoring fused with RRF."""

from hybridrag.retrieval.engine import RetrievalEngine
from hybridrag.retrieval.fusion import (
    FUSION_FORMULA,
    fusion_formula,
    reciprocal_rank_fusion,
    rrf_contribution,
)
from hybridrag.retrieval.keyword import KeywordMatch, KeywordScorer
from hybridrag.retrieval.schemas import (
    RetrievalMetrics,
    RetrievalMode,
    RetrievalRequest,
    RetrievalResult,
    RetrievedChunk,
    ScoredChunkCandidate,
)
from hybridrag.retrieval.similarity import cosine_similarity
from hybridrag.retrieval.trace import RagTiming, RagTokenBreakdown, RagTrace

__all__ = [
    "FUSION_FORMULA",
    "KeywordMatch",
    "KeywordScorer",
    "RagTiming",
    "RagTokenBreakdown",
    "RagTrace",
    "RetrievalEngine",
    "RetrievalMetrics",
    "RetrievalMode",
    "RetrievalRequest",
    "RetrievalResult",
    "RetrievedChunk",
    "ScoredChunkCandidate",
    "cosine_similarity",
    "fusion_formula",
    "reciprocal_rank_fusion",
    "rrf_contribution",
]
