"""Data models for chunks."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Chunk:
    """A single retrievable piece of a document.

    The embedding is absent until computed; attaching one produces a new
    ``Chunk`` rather than mutating this one.
    """

    id: int
    document_id: int
    chunk_index: int
    content: str
    embedding: tuple[float, ...] | None = None

    @property
    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def with_embedding(self, embedding: list[float] | tuple[float, ...]) -> Chunk:
        return replace(self, embedding=tuple(float(x) for x in embedding))
