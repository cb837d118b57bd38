"""Abstract base class for all chunkers."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseChunker(ABC):
    """Interface for document chunking strategies."""

    @abstractmethod
    def chunk(self, text: str) -> list[str]:
        """Split text into chunk texts.

        Args:
            text: Full document text.

        Returns:
            Chunk texts in document order. Deterministic for a given input.
        """

    @classmethod
    def strategy_name(cls) -> str:
        """Return human-readable strategy name."""
        return cls.__name__
