"""Data models for the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


@dataclass
class IngestResult:
    """Result of ingesting one document."""

    source: str
    document_id: int | None = None
    chunks_created: int = 0
    warnings: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class EmbeddingRunResult:
    """Outcome of one ``generate_embeddings`` pass."""

    total: int = 0
    embedded: int = 0
    failed: int = 0


class IngestionEventKind(StrEnum):
    QUEUED = "queued"
    PROGRESS = "progress"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class IngestionEvent:
    """A message from the background ingestion queue."""

    kind: IngestionEventKind
    file_name: str
    status: str = ""
    pending: int = 0
    document_id: int | None = None
    chunk_count: int = 0
    duration_s: float = 0.0
    error: str | None = None
    will_retry: bool = False
