"""Ingestion pipeline — file → load → clean → chunk → store → embed.

Chunking runs on worker threads. Embedding is a separate pass over every
chunk still lacking a vector, so a failed or interrupted run can simply be
repeated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from hybridrag.chunking.base import BaseChunker
from hybridrag.chunking.paragraph_chunker import ParagraphChunker
from hybridrag.documents.loader import DocumentLoader, clean_text, load_document_text
from hybridrag.documents.store import ChunkStore
from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.errors import EmbeddingNotInitializedError, RagError
from hybridrag.pipeline.schemas import EmbeddingRunResult, IngestResult

logger = logging.getLogger(__name__)

EmbeddingProgress = Callable[[int, int], None]


class IngestPipeline:
    """Orchestrates document ingestion and chunk embedding."""

    def __init__(
        self,
        store: ChunkStore,
        embedding_provider: EmbeddingProvider | None = None,
        chunker: BaseChunker | None = None,
        loader: DocumentLoader | None = None,
        max_concurrency: int = 4,
    ):
        self.store = store
        self.embedding_provider = embedding_provider
        self.chunker = chunker or ParagraphChunker()
        self.loader = loader or DocumentLoader()
        self.max_concurrency = max(1, max_concurrency)

    async def add_document(self, path: str | Path) -> IngestResult:
        """Load, clean, chunk and store one file.

        Raises:
            FileNotFoundError: ``path`` does not exist.
            ValueError: Unsupported file type or no readable text.
        """
        path = Path(path)
        text = await asyncio.to_thread(load_document_text, path, self.loader)
        result = await self.ingest_text(path.name, text)
        result.source = str(path)
        return result

    async def ingest_text(self, filename: str, text: str) -> IngestResult:
        """Store ``text`` as a document and chunk it (no file loading step)."""
        cleaned = clean_text(text)
        if not cleaned:
            raise ValueError(f"Document is empty or contains no readable text: {filename}")

        document = self.store.add_document(filename, cleaned)
        chunk_texts = await asyncio.to_thread(self.chunker.chunk, cleaned)
        chunks = self.store.save(document.id, chunk_texts)

        warnings: list[str] = []
        if not chunks:
            warnings.append("Chunker produced zero chunks (document shorter than the minimum)")

        logger.info("Ingested %s: document %d → %d chunks", filename, document.id, len(chunks))
        return IngestResult(
            source=filename,
            document_id=document.id,
            chunks_created=len(chunks),
            warnings=warnings,
        )

    async def add_documents(self, paths: Iterable[str | Path]) -> list[IngestResult]:
        """Ingest several files concurrently.

        A file that cannot be read is reported in its ``IngestResult.error``
        and does not stop the others.
        """

        async def _one(path: str | Path) -> IngestResult:
            try:
                return await self.add_document(path)
            except (OSError, ValueError) as exc:
                logger.warning("Skipping %s: %s", path, exc)
                return IngestResult(source=str(path), error=str(exc))

        return list(await asyncio.gather(*(_one(p) for p in paths)))

    async def generate_embeddings(
        self,
        progress: EmbeddingProgress | None = None,
    ) -> EmbeddingRunResult:
        """Embed every stored chunk that has no embedding yet.

        At most ``max_concurrency`` embedding calls run at once. A chunk that
        fails to embed is logged and left for the next run.

        Raises:
            EmbeddingNotInitializedError: No usable embedding provider.
        """
        provider = self.embedding_provider
        if provider is None or not provider.is_available():
            raise EmbeddingNotInitializedError("No embedding provider is ready")

        pending = self.store.chunks_without_embedding()
        result = EmbeddingRunResult(total=len(pending))
        if not pending:
            return result

        semaphore = asyncio.Semaphore(self.max_concurrency)
        done = 0

        async def _embed(chunk_id: int, content: str) -> None:
            nonlocal done
            async with semaphore:
                try:
                    vector = await provider.embed(content, is_query=False)
                except RagError as exc:
                    result.failed += 1
                    logger.warning("Failed to embed chunk %d: %s", chunk_id, exc)
                else:
                    if vector:
                        self.store.set_embedding(chunk_id, vector)
                        result.embedded += 1
                    else:
                        result.failed += 1
                        logger.warning("Empty embedding for chunk %d", chunk_id)
                done += 1
                if progress is not None:
                    progress(done, result.total)

        await asyncio.gather(*(_embed(c.id, c.content) for c in pending))
        logger.info(
            "Embedded %d/%d chunks (%d failed) with %s",
            result.embedded,
            result.total,
            result.failed,
            provider.model_name or provider.provider_name(),
        )
        return result
