"""Data models for uploaded documents."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime


@dataclass(frozen=True)
class Document:
    """An uploaded document. Immutable once stored; owns its chunks."""

    id: int
    filename: str
    content: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class LoadResult:
    """Result of loading a single document file.

    Attributes:
        text: Full extracted text, not yet cleaned.
        source_path: Filesystem path or identifier.
        format: File extension used (txt, md, pdf, ...).
        page_count: Number of pages for paged formats.
        char_count: Length of ``text``.
        warnings: Non-fatal issues encountered during loading.
    """

    text: str
    source_path: str | None = None
    format: str = ""
    page_count: int | None = None
    char_count: int = 0
    warnings: list[str] = field(default_factory=list)
