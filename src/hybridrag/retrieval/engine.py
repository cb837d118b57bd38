"""Retrieval engine: embed → vector/keyword scan → RRF → select.

The engine scans every stored chunk. Vector and keyword rankings are
fused by rank (Reciprocal Rank Fusion), so their raw scores never need to
share a scale. Every scanned chunk ends up in the trace, selected or not.
"""

from __future__ import annotations

import logging
from typing import assert_never

from hybridrag.chunking.schemas import Chunk
from hybridrag.documents.store import ChunkStore
from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.errors import QueryEmbeddingError, RagError
from hybridrag.retrieval.fusion import (
    DEFAULT_RRF_K,
    fusion_formula,
    rank_descending,
    reciprocal_rank_fusion,
)
from hybridrag.retrieval.keyword import KeywordScorer
from hybridrag.retrieval.schemas import (
    RetrievalMetrics,
    RetrievalMode,
    RetrievalRequest,
    RetrievalResult,
    RetrievedChunk,
    ScoredChunkCandidate,
)
from hybridrag.retrieval.similarity import cosine_similarity
from hybridrag.retrieval.trace import RagTokenBreakdown, RagTrace
from hybridrag.tokens import EstimationTokenCounter, TokenCounter

logger = logging.getLogger(__name__)

STAGE_EMBEDDING = "embedding"
STAGE_VECTOR_SCAN = "vector_scan"
STAGE_KEYWORD_SCAN = "keyword_scan"
STAGE_FUSION = "fusion"
STAGE_SELECTION = "selection"


class RetrievalEngine:
    """Hybrid retriever over a ``ChunkStore``."""

    def __init__(
        self,
        store: ChunkStore,
        embedding_provider: EmbeddingProvider | None = None,
        keyword_scorer: KeywordScorer | None = None,
        token_counter: TokenCounter | None = None,
        rrf_k: int = DEFAULT_RRF_K,
        context_budget_tokens: int = 3000,
    ):
        if rrf_k < 0:
            raise ValueError(f"rrf_k must be >= 0, got {rrf_k}")
        self.store = store
        self.embedding_provider = embedding_provider
        self.keyword_scorer = keyword_scorer or KeywordScorer()
        self.token_counter = token_counter or EstimationTokenCounter()
        self.rrf_k = rrf_k
        self.context_budget_tokens = context_budget_tokens

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        mode: RetrievalMode | str = RetrievalMode.HYBRID,
        top_k: int = 5,
        min_similarity: float = 0.7,
    ) -> tuple[RetrievalResult, RagTrace]:
        """Run one retrieval.

        The returned trace is not finalized, so the prompt builder can still
        call ``record_prompt`` on it before ``finalize``.

        Args:
            query: The search query.
            mode: Vector, keyword or hybrid.
            top_k: Maximum number of chunks to select.
            min_similarity: Vector-similarity gate (ignored in keyword mode).

        Returns:
            The selected chunks and the populated ``RagTrace``.

        Raises:
            QueryEmbeddingError: The query could not be embedded.
        """
        request = RetrievalRequest(query, mode, top_k, min_similarity)
        trace = self._new_trace(request.query, request.mode)
        try:
            result = await self._run(request, trace)
        except RagError as exc:
            trace.error = str(exc)
            raise
        return result, trace

    async def retrieve_context(
        self,
        query: str,
        mode: RetrievalMode | str = RetrievalMode.HYBRID,
        top_k: int = 5,
        min_similarity: float = 0.7,
    ) -> tuple[RetrievalResult, RagTrace]:
        """Like ``retrieve`` but never raises a ``RagError``.

        On failure the result is empty and the reason is in ``trace.error``.
        """
        trace = self._new_trace(query, mode)
        try:
            request = RetrievalRequest(query, mode, top_k, min_similarity)
            result = await self._run(request, trace)
        except RagError as exc:
            logger.warning("Retrieval failed, continuing without context: %s", exc)
            trace.error = str(exc)
            result = RetrievalResult(
                query=query,
                metrics=RetrievalMetrics(
                    mode=trace.retrieval_mode, top_k=top_k, min_similarity=min_similarity,
                ),
            )
        return result, trace

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _new_trace(self, query: str, mode: RetrievalMode | str) -> RagTrace:
        provider = self.embedding_provider
        # An unknown mode is reported through the request; trace it as hybrid
        retrieval_mode = mode if mode in set(RetrievalMode) else RetrievalMode.HYBRID
        return RagTrace(
            query=query,
            retrieval_mode=RetrievalMode(retrieval_mode),
            fusion_formula=fusion_formula(self.rrf_k),
            model=provider.model_name if provider else None,
            provider=provider.provider_name() if provider else None,
        )

    async def _run(self, request: RetrievalRequest, trace: RagTrace) -> RetrievalResult:
        # Snapshot; chunks ingested after this point join the next query
        chunks = self.store.all_chunks()
        names = {d.id: d.filename for d in self.store.get_documents()}
        order = {c.id: i for i, c in enumerate(chunks)}
        candidates = {
            c.id: ScoredChunkCandidate(
                chunk=c,
                source_name=names.get(c.document_id, ""),
                token_count=self.token_counter.count(c.content),
            )
            for c in chunks
        }

        scan = (request.query, chunks, candidates, order, trace)
        rankings: list[list[int]]
        match request.mode:
            case RetrievalMode.VECTOR:
                rankings = [await self._vector_ranking(*scan)]
            case RetrievalMode.KEYWORD:
                rankings = [self._keyword_ranking(*scan)]
            case RetrievalMode.HYBRID:
                rankings = [await self._vector_ranking(*scan), self._keyword_ranking(*scan)]
            case _:
                assert_never(request.mode)

        with trace.measure(STAGE_FUSION):
            fused = reciprocal_rank_fusion(rankings, self.rrf_k)
            for chunk_id, score in fused.items():
                candidates[chunk_id].fused_score = score

        with trace.measure(STAGE_SELECTION):
            ordered = sorted(
                candidates.values(),
                key=lambda c: (-c.fused_score, order[c.chunk_id]),
            )
            selected = self._select(ordered, request)

        trace.candidates = ordered
        context_chunks = [RetrievedChunk.from_candidate(c) for c in selected]
        result = RetrievalResult(query=request.query, chunks=context_chunks)
        trace.tokens = RagTokenBreakdown(
            context_tokens=self.token_counter.count(result.combined_context),
            context_budget=self.context_budget_tokens,
            is_approximate=self.token_counter.is_approximate,
            counter_name=self.token_counter.name,
        )
        result.metrics = self._metrics(request, ordered, selected, trace)

        logger.info(
            "Retrieved %d/%d chunks (mode=%s, top_k=%d, min_similarity=%.2f, %.1fms)",
            len(selected),
            len(ordered),
            request.mode,
            request.top_k,
            request.min_similarity,
            trace.total_time_ms,
        )
        return result

    async def _vector_ranking(
        self,
        query: str,
        chunks: list[Chunk],
        candidates: dict[int, ScoredChunkCandidate],
        order: dict[int, int],
        trace: RagTrace,
    ) -> list[int]:
        """Embed the query and rank embedded chunks by cosine similarity."""
        provider = self.embedding_provider
        if provider is None:
            raise QueryEmbeddingError("No embedding provider configured for vector retrieval")

        with trace.measure(STAGE_EMBEDDING):
            try:
                query_vector = await provider.embed(query, is_query=True)
            except Exception as exc:
                raise QueryEmbeddingError(f"Failed to embed query: {exc}") from exc
        if not query_vector:
            raise QueryEmbeddingError("Embedding provider returned an empty query vector")

        scores: dict[int, float] = {}
        with trace.measure(STAGE_VECTOR_SCAN):
            missing = mismatched = 0
            for chunk in chunks:
                if not chunk.has_embedding:
                    missing += 1
                    continue
                if len(chunk.embedding) != len(query_vector):
                    mismatched += 1
                score = cosine_similarity(query_vector, chunk.embedding)
                candidates[chunk.id].vector_score = score
                candidates[chunk.id].vector_scored = True
                scores[chunk.id] = score

        if missing:
            logger.warning("%d chunks have no embedding; skipped from vector ranking", missing)
        if mismatched:
            logger.warning(
                "%d chunk embeddings differ in length from the query vector (%d); scored 0",
                mismatched,
                len(query_vector),
            )
        return rank_descending(scores, order)

    def _keyword_ranking(
        self,
        query: str,
        chunks: list[Chunk],
        candidates: dict[int, ScoredChunkCandidate],
        order: dict[int, int],
        trace: RagTrace,
    ) -> list[int]:
        """Rank chunks containing at least one query term by keyword score."""
        scores: dict[int, float] = {}
        with trace.measure(STAGE_KEYWORD_SCAN):
            terms = self.keyword_scorer.query_terms(query)
            for chunk in chunks:
                match = self.keyword_scorer.score_terms(terms, chunk.content)
                candidate = candidates[chunk.id]
                candidate.keyword_score = match.score
                candidate.matched_terms = tuple(match.matched_terms)
                if match.score > 0:
                    scores[chunk.id] = match.score
        return rank_descending(scores, order)

    @staticmethod
    def _select(
        ordered: list[ScoredChunkCandidate],
        request: RetrievalRequest,
    ) -> list[ScoredChunkCandidate]:
        """Mark the first ``top_k`` candidates that pass the gates."""
        selected: list[ScoredChunkCandidate] = []
        for candidate in ordered:
            if len(selected) >= request.top_k:
                break
            # Unranked everywhere: nothing relevant about it
            if candidate.fused_score <= 0:
                continue
            # Chunks still waiting for an embedding pass on their keyword rank
            if (
                request.mode.uses_vectors
                and candidate.vector_scored
                and candidate.vector_score < request.min_similarity
            ):
                continue
            candidate.included = True
            candidate.rank = len(selected) + 1
            selected.append(candidate)
        return selected

    @staticmethod
    def _metrics(
        request: RetrievalRequest,
        ordered: list[ScoredChunkCandidate],
        selected: list[ScoredChunkCandidate],
        trace: RagTrace,
    ) -> RetrievalMetrics:
        def elapsed(*names: str) -> float:
            return sum(t.elapsed_ms for t in trace.timings if t.name in names)

        return RetrievalMetrics(
            mode=request.mode,
            top_k=request.top_k,
            min_similarity=request.min_similarity,
            embedding_time_ms=elapsed(STAGE_EMBEDDING),
            retrieval_time_ms=elapsed(
                STAGE_VECTOR_SCAN, STAGE_KEYWORD_SCAN, STAGE_FUSION, STAGE_SELECTION,
            ),
            total_time_ms=trace.total_time_ms,
            total_chunks_searched=len(ordered),
            vector_matches=(
                sum(
                    1 for c in ordered
                    if c.vector_scored and c.vector_score >= request.min_similarity
                )
                if request.mode.uses_vectors else 0
            ),
            keyword_matches=sum(1 for c in ordered if c.keyword_score > 0),
            final_results=len(selected),
        )
