"""Document and chunk persistence."""

from __future__ import annotations

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from hybridrag.chunking.schemas import Chunk
from hybridrag.documents.schemas import Document

logger = logging.getLogger(__name__)

STORE_FORMAT_VERSION = 1


class ChunkStore(ABC):
    """Interface for document/chunk storage backends.

    Deleting a document deletes its chunks. Embeddings are attached by
    replacing a chunk by id.
    """

    @abstractmethod
    def add_document(self, filename: str, content: str) -> Document:
        """Store a new document and return it with its assigned id."""

    @abstractmethod
    def save(self, document_id: int, chunk_texts: Sequence[str]) -> list[Chunk]:
        """Store the chunks of ``document_id``, replacing any previous set.

        Returns:
            The stored chunks, ordered by ``chunk_index``.
        """

    @abstractmethod
    def load_chunks(self, document_id: int) -> list[Chunk]:
        """Return the chunks of one document, embeddings included."""

    @abstractmethod
    def all_chunks(self) -> list[Chunk]:
        """Snapshot of every chunk, ordered by document then index."""

    @abstractmethod
    def set_embedding(self, chunk_id: int, embedding: Sequence[float]) -> Chunk:
        """Attach an embedding to a chunk (replace-by-id)."""

    @abstractmethod
    def get_documents(self) -> list[Document]:
        """Return all documents, oldest first."""

    @abstractmethod
    def delete_document(self, document_id: int) -> int:
        """Delete a document and its chunks.

        Returns:
            Number of chunks deleted. 0 if the document did not exist.
        """

    def get_document(self, document_id: int) -> Document | None:
        return next((d for d in self.get_documents() if d.id == document_id), None)

    def chunks_without_embedding(self) -> list[Chunk]:
        return [c for c in self.all_chunks() if not c.has_embedding]

    def count(self) -> int:
        """Return the number of stored chunks."""
        return len(self.all_chunks())

    def save_to(self, path: str | Path) -> None:
        """Persist the store to disk (optional)."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support save_to()")

    def load_from(self, path: str | Path) -> None:
        """Load the store from disk (optional)."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support load_from()")

    @classmethod
    def store_name(cls) -> str:
        """Return human-readable store name."""
        return cls.__name__


class InMemoryChunkStore(ChunkStore):
    """Thread-safe in-process store with optional JSON persistence."""

    def __init__(self):
        self._lock = threading.RLock()
        self._documents: dict[int, Document] = {}
        self._chunks: dict[int, Chunk] = {}
        self._next_document_id = 1
        self._next_chunk_id = 1

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_document(self, filename: str, content: str) -> Document:
        with self._lock:
            doc = Document(id=self._next_document_id, filename=filename, content=content)
            self._documents[doc.id] = doc
            self._next_document_id += 1
        logger.debug("Stored document %d (%s, %d chars)", doc.id, filename, len(content))
        return doc

    def save(self, document_id: int, chunk_texts: Sequence[str]) -> list[Chunk]:
        with self._lock:
            if document_id not in self._documents:
                raise KeyError(f"Unknown document id: {document_id}")
            self._drop_chunks(document_id)

            stored: list[Chunk] = []
            for index, text in enumerate(chunk_texts):
                chunk = Chunk(
                    id=self._next_chunk_id,
                    document_id=document_id,
                    chunk_index=index,
                    content=text,
                )
                self._chunks[chunk.id] = chunk
                self._next_chunk_id += 1
                stored.append(chunk)

        logger.info("Saved %d chunks for document %d", len(stored), document_id)
        return stored

    def load_chunks(self, document_id: int) -> list[Chunk]:
        with self._lock:
            chunks = [c for c in self._chunks.values() if c.document_id == document_id]
        return sorted(chunks, key=lambda c: c.chunk_index)

    def all_chunks(self) -> list[Chunk]:
        with self._lock:
            chunks = list(self._chunks.values())
        return sorted(chunks, key=lambda c: (c.document_id, c.chunk_index))

    def set_embedding(self, chunk_id: int, embedding: Sequence[float]) -> Chunk:
        with self._lock:
            try:
                chunk = self._chunks[chunk_id]
            except KeyError:
                raise KeyError(f"Unknown chunk id: {chunk_id}") from None
            updated = chunk.with_embedding(embedding)
            self._chunks[chunk_id] = updated
        return updated

    def get_documents(self) -> list[Document]:
        with self._lock:
            return sorted(self._documents.values(), key=lambda d: d.id)

    def get_document(self, document_id: int) -> Document | None:
        with self._lock:
            return self._documents.get(document_id)

    def delete_document(self, document_id: int) -> int:
        with self._lock:
            if self._documents.pop(document_id, None) is None:
                return 0
            deleted = self._drop_chunks(document_id)
        logger.info("Deleted document %d (%d chunks)", document_id, deleted)
        return deleted

    def count(self) -> int:
        with self._lock:
            return len(self._chunks)

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()
            self._chunks.clear()
            self._next_document_id = 1
            self._next_chunk_id = 1

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_to(self, path: str | Path) -> None:
        """Write the store as JSON. The file is replaced atomically."""
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)

        with self._lock:
            payload = {
                "version": STORE_FORMAT_VERSION,
                "next_document_id": self._next_document_id,
                "next_chunk_id": self._next_chunk_id,
                "documents": [
                    {
                        "id": d.id,
                        "filename": d.filename,
                        "content": d.content,
                        "created_at": d.created_at.isoformat(),
                    }
                    for d in self._documents.values()
                ],
                "chunks": [
                    {
                        "id": c.id,
                        "document_id": c.document_id,
                        "chunk_index": c.chunk_index,
                        "content": c.content,
                        "embedding": list(c.embedding) if c.embedding else None,
                    }
                    for c in self._chunks.values()
                ],
            }

        tmp = p.with_name(p.name + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False)
        os.replace(tmp, p)
        logger.info(
            "InMemoryChunkStore saved to %s (%d documents, %d chunks)",
            p, len(payload["documents"]), len(payload["chunks"]),
        )

    def load_from(self, path: str | Path) -> None:
        """Replace the store contents with those saved at ``path``."""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)

        version = data.get("version")
        if version != STORE_FORMAT_VERSION:
            raise ValueError(f"Unsupported store format version: {version}")

        documents = {
            d["id"]: Document(
                id=d["id"],
                filename=d["filename"],
                content=d["content"],
                created_at=datetime.fromisoformat(d["created_at"]),
            )
            for d in data["documents"]
        }
        chunks = {
            c["id"]: Chunk(
                id=c["id"],
                document_id=c["document_id"],
                chunk_index=c["chunk_index"],
                content=c["content"],
                embedding=tuple(c["embedding"]) if c.get("embedding") else None,
            )
            for c in data["chunks"]
        }

        with self._lock:
            self._documents = documents
            self._chunks = chunks
            self._next_document_id = data.get("next_document_id", max(documents, default=0) + 1)
            self._next_chunk_id = data.get("next_chunk_id", max(chunks, default=0) + 1)
        logger.info(
            "InMemoryChunkStore loaded from %s (%d documents, %d chunks)",
            path, len(documents), len(chunks),
        )

    @classmethod
    def open(cls, path: str | Path) -> InMemoryChunkStore:
        """Load ``path`` if it exists, otherwise return an empty store."""
        store = cls()
        if Path(path).is_file():
            store.load_from(path)
        return store

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _drop_chunks(self, document_id: int) -> int:
        stale = [cid for cid, c in self._chunks.items() if c.document_id == document_id]
        for cid in stale:
            del self._chunks[cid]
        return len(stale)
