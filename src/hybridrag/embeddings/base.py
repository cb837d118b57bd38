"""Abstract base class for embedding providers."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Sequence


class EmbeddingProvider(ABC):
    """Interface for text embedding models, local or remote."""

    @abstractmethod
    async def initialize(self, model_id: str) -> None:
        """Prepare the provider for ``model_id``.

        Raises:
            ConfigurationError: The model is unknown or its files are missing.
        """

    @abstractmethod
    async def embed(self, text: str, is_query: bool = False) -> list[float]:
        """Embed a single text.

        Args:
            text: The text to embed.
            is_query: ``True`` for search queries, ``False`` for passages.

        Returns:
            Embedding vector of length ``dimensions()``.
        """

    @abstractmethod
    def dimensions(self) -> int:
        """Return the embedding dimensionality, 0 if uninitialized."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether ``embed`` can be called right now."""

    async def embed_many(
        self,
        texts: Sequence[str],
        is_query: bool = False,
        max_concurrency: int = 4,
    ) -> list[list[float]]:
        """Embed several texts with at most ``max_concurrency`` calls in flight.

        Returns vectors in input order. The first failure propagates.
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def _one(text: str) -> list[float]:
            async with semaphore:
                return await self.embed(text, is_query=is_query)

        return list(await asyncio.gather(*(_one(t) for t in texts)))

    async def aclose(self) -> None:
        """Release provider resources (optional)."""

    @property
    def model_name(self) -> str:
        return ""

    @classmethod
    def provider_name(cls) -> str:
        """Return human-readable provider name."""
        return cls.__name__
