"""Data models for retrieval operations."""

from __future__ import annotations

from dataclasses import FrozenInstanceError, dataclass, field, replace
from enum import StrEnum

from hybridrag.chunking.schemas import Chunk
from hybridrag.errors import InvalidRequestError

CONTEXT_SEPARATOR = "\n\n---\n\n"


class RetrievalMode(StrEnum):
    VECTOR = "vector"
    KEYWORD = "keyword"
    HYBRID = "hybrid"

    @property
    def uses_vectors(self) -> bool:
        return self is not RetrievalMode.KEYWORD

    @property
    def uses_keywords(self) -> bool:
        return self is not RetrievalMode.VECTOR


@dataclass(frozen=True)
class RetrievalRequest:
    """Input to a single retrieval."""

    query: str
    mode: RetrievalMode = RetrievalMode.HYBRID
    top_k: int = 5
    min_similarity: float = 0.7

    def __post_init__(self) -> None:
        if self.top_k < 0:
            raise InvalidRequestError(f"top_k must be >= 0, got {self.top_k}")
        # Accept plain strings such as "hybrid"
        try:
            mode = RetrievalMode(self.mode)
        except ValueError as exc:
            raise InvalidRequestError(f"Unknown retrieval mode: {self.mode!r}") from exc
        object.__setattr__(self, "mode", mode)


@dataclass
class ScoredChunkCandidate:
    """One scanned chunk with every score computed for it.

    ``rank`` stays 0 until the final sort; selected candidates get 1-based
    ranks and ``included=True``. ``vector_scored`` is False for chunks the
    vector scan skipped because they have no embedding.
    """

    chunk: Chunk
    source_name: str = ""
    vector_score: float = 0.0
    keyword_score: float = 0.0
    fused_score: float = 0.0
    matched_terms: tuple[str, ...] = ()
    token_count: int = 0
    included: bool = False
    rank: int = 0
    vector_scored: bool = False
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: object) -> None:
        if getattr(self, "_frozen", False):
            raise FrozenInstanceError(f"candidate is read-only; cannot set '{name}'")
        super().__setattr__(name, value)

    @property
    def chunk_id(self) -> int:
        return self.chunk.id

    def preview(self, max_chars: int = 200) -> str:
        text = " ".join(self.chunk.content.split())
        if len(text) <= max_chars:
            return text
        return text[:max_chars].rstrip() + "..."

    def frozen_copy(self) -> ScoredChunkCandidate:
        """Return a read-only copy for a finalized trace."""
        copy = replace(self)
        object.__setattr__(copy, "_frozen", True)
        return copy


@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk selected into the context, with its scores."""

    chunk_id: int
    document_id: int
    document_name: str
    content: str
    chunk_index: int
    vector_score: float
    keyword_score: float
    fused_score: float
    matched_terms: tuple[str, ...] = ()
    rank: int = 0

    @classmethod
    def from_candidate(cls, candidate: ScoredChunkCandidate) -> RetrievedChunk:
        chunk = candidate.chunk
        return cls(
            chunk_id=chunk.id,
            document_id=chunk.document_id,
            document_name=candidate.source_name,
            content=chunk.content,
            chunk_index=chunk.chunk_index,
            vector_score=candidate.vector_score,
            keyword_score=candidate.keyword_score,
            fused_score=candidate.fused_score,
            matched_terms=tuple(candidate.matched_terms),
            rank=candidate.rank,
        )


@dataclass
class RetrievalMetrics:
    """Counts and timings for one retrieval."""

    mode: RetrievalMode = RetrievalMode.HYBRID
    top_k: int = 0
    min_similarity: float = 0.0
    embedding_time_ms: float = 0.0
    retrieval_time_ms: float = 0.0
    total_time_ms: float = 0.0
    total_chunks_searched: int = 0
    vector_matches: int = 0
    keyword_matches: int = 0
    final_results: int = 0


@dataclass
class RetrievalResult:
    """Ordered selection of chunks for the prompt builder."""

    query: str
    chunks: list[RetrievedChunk] = field(default_factory=list)
    metrics: RetrievalMetrics = field(default_factory=RetrievalMetrics)

    @property
    def combined_context(self) -> str:
        return CONTEXT_SEPARATOR.join(c.content for c in self.chunks)
