"""Document loader for plain-text formats plus optional PDF and DOCX.

Supports both filesystem paths and in-memory bytes. PDF and DOCX need the
``pdf`` / ``docx`` extras and are imported only when used.
"""

from __future__ import annotations

import io
import logging
import re
from pathlib import Path

from hybridrag.documents.schemas import LoadResult

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = frozenset({".txt", ".md", ".markdown", ".csv", ".json", ".xml", ".html", ".htm"})
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | {".pdf", ".docx"}

_NEWLINES = re.compile(r"\r\n|\r")
_HORIZONTAL_SPACE = re.compile(r"[ \t]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


def clean_text(text: str) -> str:
    """Normalise newlines, collapse horizontal whitespace and blank-line runs."""
    text = _NEWLINES.sub("\n", text)
    text = _HORIZONTAL_SPACE.sub(" ", text)
    text = _BLANK_RUNS.sub("\n\n", text)
    return text.strip()


class DocumentLoader:
    """Load documents into a ``LoadResult``."""

    def __init__(self, supported_extensions: frozenset[str] | set[str] | None = None):
        self.supported_extensions = frozenset(
            e.lower() for e in (supported_extensions or SUPPORTED_EXTENSIONS)
        )

    def load_file(self, path: str | Path) -> LoadResult:
        """Load a document from a filesystem path."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        ext = self._check_extension(path.name)
        result = self._dispatch(path.read_bytes(), ext)
        result.source_path = str(path)
        return result

    def load_bytes(self, data: bytes, filename: str) -> LoadResult:
        """Load a document from in-memory bytes."""
        ext = self._check_extension(filename)
        result = self._dispatch(data, ext)
        result.source_path = filename
        return result

    # ------------------------------------------------------------------
    # Private dispatch
    # ------------------------------------------------------------------

    def _check_extension(self, filename: str) -> str:
        ext = Path(filename).suffix.lower()
        if ext not in self.supported_extensions:
            raise ValueError(
                f"Unsupported file type: '{ext}'. "
                f"Supported: {sorted(self.supported_extensions)}"
            )
        return ext

    def _dispatch(self, data: bytes, ext: str) -> LoadResult:
        if ext == ".pdf":
            result = self._load_pdf(data)
        elif ext == ".docx":
            result = self._load_docx(data)
        else:
            result = self._load_text(data)
        result.format = ext.lstrip(".")
        result.char_count = len(result.text)
        return result

    # ------------------------------------------------------------------
    # Format-specific loaders
    # ------------------------------------------------------------------

    @staticmethod
    def _load_text(data: bytes) -> LoadResult:
        try:
            return LoadResult(text=data.decode("utf-8-sig"))
        except UnicodeDecodeError:
            # latin-1 maps every byte, so this always succeeds
            return LoadResult(
                text=data.decode("latin-1"),
                warnings=["Not valid UTF-8; decoded as latin-1"],
            )

    @staticmethod
    def _load_pdf(data: bytes) -> LoadResult:
        try:
            import pdfplumber
        except ImportError as exc:
            raise ImportError("pdfplumber required: pip install hybrid-rag-engine[pdf]") from exc

        warnings: list[str] = []
        page_texts: list[str] = []
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                for page in pdf.pages:
                    page_texts.append(page.extract_text() or "")
        except Exception as exc:
            warnings.append(f"PDF extraction error: {exc}")
            return LoadResult(text="", warnings=warnings)

        text = "\n\n".join(page_texts)
        if not text.strip():
            warnings.append("PDF contains no extractable text (may be scanned/image-only)")
        return LoadResult(text=text, page_count=len(page_texts), warnings=warnings)

    @staticmethod
    def _load_docx(data: bytes) -> LoadResult:
        try:
            from docx import Document as DocxDocument
        except ImportError as exc:
            raise ImportError(
                "python-docx required: pip install hybrid-rag-engine[docx]"
            ) from exc

        try:
            doc = DocxDocument(io.BytesIO(data))
        except Exception as exc:
            return LoadResult(text="", warnings=[f"DOCX extraction error: {exc}"])

        paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
        return LoadResult(text="\n\n".join(paragraphs), page_count=1)


def load_document_text(path: str | Path, loader: DocumentLoader | None = None) -> str:
    """Read ``path`` and return its cleaned text.

    Raises:
        FileNotFoundError: ``path`` does not exist.
        ValueError: Unsupported extension, or no readable text.
    """
    result = (loader or DocumentLoader()).load_file(path)
    for warning in result.warnings:
        logger.warning("%s: %s", path, warning)

    text = clean_text(result.text)
    if not text:
        raise ValueError(f"File is empty or contains no readable text: {path}")
    return text
