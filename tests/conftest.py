"""Shared fixtures for tests — synthetic documents, no network calls."""

from __future__ import annotations

import hashlib
import textwrap
from pathlib import Path

import pytest

from hybridrag.documents.store import InMemoryChunkStore
from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.embeddings.factory import clear_cache
from hybridrag.errors import EmbeddingTransportError

# ---------------------------------------------------------------------------
# Mock embedding provider
# ---------------------------------------------------------------------------

DIM = 8


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic provider: fixed vectors by text, hash vectors otherwise."""

    def __init__(self, vectors: dict[str, list[float]] | None = None, dim: int = DIM):
        self.vectors = vectors or {}
        self._dim = dim
        self.calls: list[tuple[str, bool]] = []
        self.fail_on: set[str] = set()
        self.initialized_with: str | None = None

    async def initialize(self, model_id: str) -> None:
        self.initialized_with = model_id

    async def embed(self, text: str, is_query: bool = False) -> list[float]:
        self.calls.append((text, is_query))
        if text in self.fail_on:
            raise EmbeddingTransportError(f"boom: {text[:20]}")
        if text in self.vectors:
            return list(self.vectors[text])
        digest = hashlib.sha256(text.encode()).digest()
        return [digest[i] / 255.0 + 0.01 for i in range(self._dim)]

    def dimensions(self) -> int:
        return self._dim

    def is_available(self) -> bool:
        return True

    @property
    def model_name(self) -> str:
        return "fake-model"


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture(autouse=True)
def _clear_provider_cache():
    clear_cache()
    yield
    clear_cache()


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryChunkStore:
    return InMemoryChunkStore()


@pytest.fixture
def models_dir(tmp_path: Path) -> Path:
    d = tmp_path / "models"
    d.mkdir()
    return d


# ---------------------------------------------------------------------------
# Synthetic document content
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_txt_content() -> str:
    return textwrap.dedent("""\
        Quarterly Operations Review

        Revenue for the quarter reached 94.9 million, up six percent compared with
        the same period last year. The services segment set a new record, driven by
        subscriptions and support contracts signed during the spring campaign.

        Risk Factors

        Currency fluctuations remain a concern: the strong dollar reduced reported
        international revenue by roughly three percentage points. Supplier delays
        for specialised components could affect availability in the holiday season.

        Outlook

        Management expects continued growth in subscriptions and plans to expand the
        support organisation in two new regions before the end of the fiscal year.
    """)


@pytest.fixture
def sample_txt_file(tmp_path: Path, sample_txt_content: str) -> Path:
    p = tmp_path / "operations_review.txt"
    p.write_text(sample_txt_content, encoding="utf-8")
    return p


@pytest.fixture
def long_text() -> str:
    """Many medium paragraphs, several times ``MAX_CHUNK_CHARS`` in total."""
    paragraphs = []
    for i in range(30):
        paragraphs.append(
            f"Paragraph {i} discusses topic number {i} in some depth. "
            "It contains several sentences so that the chunker has something to pack. "
            "Each sentence adds a little more context about the subject at hand. "
            "The final sentence closes the paragraph cleanly."
        )
    return "\n\n".join(paragraphs)
