"""Document chunking."""

from hybridrag.chunking.base import BaseChunker
from hybridrag.chunking.paragraph_chunker import ParagraphChunker, chunk_text
from hybridrag.chunking.schemas import Chunk

__all__ = ["BaseChunker", "Chunk", "ParagraphChunker", "chunk_text"]
