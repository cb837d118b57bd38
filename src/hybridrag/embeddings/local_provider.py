"""On-device embedding provider backed by sentence-transformers.

Loads a catalog model from the local model directory. It never downloads
anything: fetching artifacts is ``ModelDownloadService``'s job, and a
missing file is a configuration error.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.embeddings.catalog import EmbeddingModelDescriptor, get_model, model_path
from hybridrag.embeddings.prefix import prepare_e5_text
from hybridrag.errors import (
    EmbeddingError,
    EmbeddingNotInitializedError,
    MissingArtifactError,
    ModelLoadError,
)

logger = logging.getLogger(__name__)

ModelLoader = Callable[[Path, str | None], Any]


def load_sentence_transformer(path: Path, device: str | None = None) -> Any:
    """Build a ``SentenceTransformer`` from a local model directory."""
    try:
        from sentence_transformers import SentenceTransformer
    except ImportError as exc:
        raise ImportError(
            "sentence-transformers required: pip install hybrid-rag-engine[local]"
        ) from exc

    return SentenceTransformer(str(path), device=device, local_files_only=True)


class LocalEmbeddingProvider(EmbeddingProvider):
    """Embed text locally with a downloaded E5 model."""

    def __init__(
        self,
        models_dir: str | Path | None = None,
        device: str | None = None,
        task_instruction: str | None = None,
        loader: ModelLoader = load_sentence_transformer,
    ):
        self._models_dir = models_dir
        self._device = device
        self._task_instruction = task_instruction
        self._loader = loader
        self._model: Any = None
        self._descriptor: EmbeddingModelDescriptor | None = None
        self._load_error: str | None = None
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initialize(self, model_id: str) -> None:
        async with self._init_lock:
            if self._descriptor is not None and self._descriptor.id == model_id:
                return

            self.close()
            descriptor = get_model(model_id)
            directory = model_path(model_id, self._models_dir)
            for name in descriptor.required_files:
                if not (directory / name).is_file():
                    raise MissingArtifactError(model_id, str(directory / name))

            try:
                self._model = await asyncio.to_thread(self._loader, directory, self._device)
            except Exception as exc:
                self._load_error = f"{model_id}: {exc}"
                logger.warning("Failed to load local model %s: %s", model_id, exc)
                raise ModelLoadError(f"Failed to load model {model_id}: {exc}") from exc

            self._descriptor = descriptor
            self._load_error = None
            logger.info("Loaded local model %s (dim=%d)", model_id, descriptor.dimensions)

    async def embed(self, text: str, is_query: bool = False) -> list[float]:
        if self._model is None or self._descriptor is None:
            if self._load_error:
                raise ModelLoadError(f"Local model failed to load ({self._load_error})")
            raise EmbeddingNotInitializedError("Local embedding model not initialized")

        prepared = self.prepare_text(text, is_query)
        try:
            vectors = await asyncio.to_thread(
                self._model.encode,
                [prepared],
                normalize_embeddings=True,
                show_progress_bar=False,
            )
        except Exception as exc:
            raise EmbeddingError(f"Local inference failed: {exc}") from exc
        if len(vectors) == 0:
            return []
        return [float(x) for x in vectors[0]]

    def prepare_text(self, text: str, is_query: bool) -> str:
        """Apply the active model's E5 prefix rules."""
        if self._descriptor is None:
            return text
        return prepare_e5_text(text, is_query, self._descriptor, task=self._task_instruction)

    def dimensions(self) -> int:
        return self._descriptor.dimensions if self._descriptor else 0

    def is_available(self) -> bool:
        return self._model is not None and self._descriptor is not None

    @property
    def model_name(self) -> str:
        return self._descriptor.id if self._descriptor else ""

    def close(self) -> None:
        """Release the loaded model and reset to the uninitialized state."""
        if self._model is not None:
            logger.debug("Releasing local model %s", self.model_name)
        self._model = None
        self._descriptor = None
        self._load_error = None

    async def aclose(self) -> None:
        self.close()
