"""Document loading, cleanup and storage."""

from hybridrag.documents.loader import DocumentLoader, clean_text, load_document_text
from hybridrag.documents.schemas import Document, LoadResult
from hybridrag.documents.store import ChunkStore, InMemoryChunkStore

__all__ = [
    "ChunkStore",
    "Document",
    "DocumentLoader",
    "InMemoryChunkStore",
    "LoadResult",
    "clean_text",
    "load_document_text",
]
