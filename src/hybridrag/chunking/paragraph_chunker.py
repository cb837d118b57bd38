"""Paragraph-first character chunker with overlap.

Splits on blank lines, greedily packs paragraphs up to ``max_chars`` and
seeds each new chunk with the word-aligned tail of the previous one.
Paragraphs longer than ``max_chars`` are packed sentence by sentence, and
sentences longer than that are hard-split.

Residual content shorter than ``min_chars`` at the end of input is
dropped rather than emitted or merged into the previous chunk.
"""

from __future__ import annotations

import logging
import re

from hybridrag.chunking.base import BaseChunker

logger = logging.getLogger(__name__)

MIN_CHUNK_CHARS = 100
MAX_CHUNK_CHARS = 1500
OVERLAP_CHARS = 200

_PARAGRAPH_SPLIT = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

_PARAGRAPH_SEP = "\n\n"
_SENTENCE_SEP = " "


def split_paragraphs(text: str) -> list[str]:
    """Split on blank lines; runs of blank lines count as one boundary."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return [p.strip() for p in _PARAGRAPH_SPLIT.split(text) if p.strip()]


def split_sentences(text: str) -> list[str]:
    """Split at sentence-ending punctuation and newlines."""
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s.strip()]


def hard_split(text: str, max_chars: int) -> list[str]:
    """Cut ``text`` into pieces of at most ``max_chars``.

    Prefers the last space at or before the budget; falls back to a plain
    character cut for unbroken runs.
    """
    pieces: list[str] = []
    rest = text
    while len(rest) > max_chars:
        cut = rest.rfind(" ", 0, max_chars + 1)
        if cut <= 0:
            cut = max_chars
        pieces.append(rest[:cut].strip())
        rest = rest[cut:].strip()
    if rest:
        pieces.append(rest)
    return pieces


def overlap_tail(text: str, max_chars: int) -> str:
    """Return at most ``max_chars`` trailing characters, starting on a word."""
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text.strip()

    tail = text[-max_chars:]
    # Drop the partial word at the cut
    if not text[-max_chars - 1].isspace():
        space = tail.find(" ")
        if space == -1:
            return ""
        tail = tail[space + 1:]
    return tail.strip()


class ParagraphChunker(BaseChunker):
    """Character-budget chunker respecting paragraph and sentence boundaries."""

    def __init__(
        self,
        min_chars: int = MIN_CHUNK_CHARS,
        max_chars: int = MAX_CHUNK_CHARS,
        overlap_chars: int = OVERLAP_CHARS,
    ):
        if min_chars <= 0 or max_chars < min_chars:
            raise ValueError(
                f"Invalid chunk bounds: min_chars={min_chars}, max_chars={max_chars}"
            )
        if not 0 <= overlap_chars < max_chars:
            raise ValueError(f"overlap_chars must be in [0, {max_chars}), got {overlap_chars}")

        self.min_chars = min_chars
        self.max_chars = max_chars
        self.overlap_chars = overlap_chars

    def chunk(self, text: str) -> list[str]:
        chunks: list[str] = []
        current = ""

        for para in split_paragraphs(text):
            if len(para) <= self.max_chars:
                current = self._append(chunks, current, para, _PARAGRAPH_SEP)
                continue

            # Close before the oversized paragraph, then pack its sentences
            pieces = [
                piece
                for sentence in split_sentences(para)
                for piece in hard_split(sentence, self.max_chars)
            ]
            if self._would_overflow(current, len(para), _PARAGRAPH_SEP):
                current = self._close(chunks, current, len(pieces[0]), _SENTENCE_SEP)
            for piece in pieces:
                current = self._append(chunks, current, piece, _SENTENCE_SEP)

        tail = current.strip()
        if len(tail) >= self.min_chars:
            chunks.append(tail)
        elif tail:
            logger.debug("Dropped %d-char residue below min_chars=%d", len(tail), self.min_chars)

        logger.info("ParagraphChunker produced %d chunks from %d chars", len(chunks), len(text))
        return chunks

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    def _would_overflow(self, current: str, incoming: int, sep: str) -> bool:
        return (
            len(current) + incoming + len(sep) > self.max_chars
            and len(current.strip()) >= self.min_chars
        )

    def _append(self, chunks: list[str], current: str, piece: str, sep: str) -> str:
        if self._would_overflow(current, len(piece), sep):
            current = self._close(chunks, current, len(piece), sep)
        return current + piece + sep

    def _close(self, chunks: list[str], current: str, next_len: int, sep: str) -> str:
        """Emit ``current`` and return the overlap seed for the next chunk."""
        closed = current.strip()
        chunks.append(closed)

        # Shrink the overlap so seed + next piece still fits in max_chars
        budget = min(self.overlap_chars, self.max_chars - next_len - len(sep) - 1)
        seed = overlap_tail(closed, budget)
        return f"{seed} " if seed else ""


def chunk_text(
    text: str,
    min_chars: int = MIN_CHUNK_CHARS,
    max_chars: int = MAX_CHUNK_CHARS,
    overlap_chars: int = OVERLAP_CHARS,
) -> list[str]:
    """Chunk ``text`` with the given policy. Pure and deterministic."""
    return ParagraphChunker(min_chars, max_chars, overlap_chars).chunk(text)
