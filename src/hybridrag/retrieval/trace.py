"""Flight recorder for a single retrieval.

A ``RagTrace`` is created when a query starts, written to by each
pipeline stage, and frozen with ``finalize()`` once the response is
produced. It keeps every scanned candidate, not just the selected ones.
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime

from hybridrag.retrieval.fusion import FUSION_FORMULA
from hybridrag.retrieval.schemas import RetrievalMode, ScoredChunkCandidate
from hybridrag.tokens import EstimationTokenCounter, TokenCounter


@dataclass(frozen=True)
class RagTiming:
    """Elapsed time of one pipeline stage."""

    name: str
    elapsed_ms: float

    def __str__(self) -> str:
        return f"{self.name}: {self.elapsed_ms:.1f}ms"


@dataclass(frozen=True)
class RagTokenBreakdown:
    """Token usage of the prompt, split by part.

    Immutable; ``RagTrace.record_prompt`` replaces it with a new instance.
    """

    system_tokens: int = 0
    user_tokens: int = 0
    context_tokens: int = 0
    history_tokens: int = 0
    total_prompt_tokens: int = 0
    completion_tokens: int = 0
    context_budget: int = 3000
    is_approximate: bool = True
    counter_name: str = ""

    @property
    def context_usage_percent(self) -> float:
        if self.context_budget <= 0:
            return 0.0
        return round(100.0 * self.context_tokens / self.context_budget, 1)

    @property
    def context_share_percent(self) -> float:
        if self.total_prompt_tokens <= 0:
            return 0.0
        return round(100.0 * self.context_tokens / self.total_prompt_tokens, 1)


class TraceFinalizedError(AttributeError):
    """Raised when writing to a finalized trace."""


class RagTrace:
    """Diagnostic record of one query through the pipeline."""

    def __init__(
        self,
        query: str,
        retrieval_mode: RetrievalMode = RetrievalMode.HYBRID,
        fusion_formula: str = FUSION_FORMULA,
        model: str | None = None,
        provider: str | None = None,
    ):
        self.query = query
        self.utc = datetime.now(UTC)
        self.retrieval_mode = retrieval_mode
        self.fusion_formula = fusion_formula
        self.model = model
        self.provider = provider
        self.candidates: list[ScoredChunkCandidate] = []
        self.timings: list[RagTiming] = []
        self.tokens: RagTokenBreakdown | None = None
        self.prompt_preview: str | None = None
        self.error: str | None = None
        self._finalized = False

    def __setattr__(self, name: str, value: object) -> None:
        if getattr(self, "_finalized", False):
            raise TraceFinalizedError(f"RagTrace is finalized; cannot set '{name}'")
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return (
            f"RagTrace(query={self.query!r}, mode={self.retrieval_mode}, "
            f"candidates={self.total_candidates}, included={self.included_chunks}, "
            f"total_time_ms={self.total_time_ms:.1f})"
        )

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def total_time_ms(self) -> float:
        return sum(t.elapsed_ms for t in self.timings)

    @property
    def included_chunks(self) -> int:
        return sum(1 for c in self.candidates if c.included)

    @property
    def total_candidates(self) -> int:
        return len(self.candidates)

    @property
    def is_finalized(self) -> bool:
        return self._finalized

    def timing(self, name: str) -> RagTiming | None:
        return next((t for t in self.timings if t.name == name), None)

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    @contextmanager
    def measure(self, name: str) -> Iterator[None]:
        """Time the enclosed block and append it as a stage timing.

        The timing is recorded even if the block raises.
        """
        self._check_writable()
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = (time.perf_counter() - start) * 1000.0
            self.timings.append(RagTiming(name, elapsed))

    def add_timing(self, name: str, elapsed_ms: float) -> None:
        self._check_writable()
        self.timings.append(RagTiming(name, elapsed_ms))

    def record_prompt(
        self,
        system: str,
        user: str,
        history: list[str] | None = None,
        counter: TokenCounter | None = None,
        prompt_preview: str | None = None,
    ) -> RagTokenBreakdown:
        """Complete the token breakdown once the prompt has been built.

        Context tokens and budget already recorded by the engine are kept.
        """
        counter = counter or EstimationTokenCounter()
        previous = self.tokens or RagTokenBreakdown()
        system_tokens = counter.count(system)
        user_tokens = counter.count(user)
        history_tokens = sum(counter.count(h) for h in history or [])
        context_tokens = previous.context_tokens

        self.tokens = RagTokenBreakdown(
            system_tokens=system_tokens,
            user_tokens=user_tokens,
            context_tokens=context_tokens,
            history_tokens=history_tokens,
            total_prompt_tokens=system_tokens + user_tokens + context_tokens + history_tokens,
            completion_tokens=previous.completion_tokens,
            context_budget=previous.context_budget,
            is_approximate=counter.is_approximate,
            counter_name=counter.name,
        )
        if prompt_preview is not None:
            self.prompt_preview = prompt_preview
        return self.tokens

    def finalize(self) -> RagTrace:
        """Freeze the trace; later writes raise ``TraceFinalizedError``."""
        if not self._finalized:
            # Candidates and timings become immutable sequences of read-only items
            super().__setattr__("candidates", tuple(c.frozen_copy() for c in self.candidates))
            super().__setattr__("timings", tuple(self.timings))
            super().__setattr__("_finalized", True)
        return self

    def _check_writable(self) -> None:
        if self._finalized:
            raise TraceFinalizedError("RagTrace is finalized")
