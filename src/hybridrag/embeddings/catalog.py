"""Static catalog of local embedding models and their on-disk layout.

Each model lives in ``<models dir>/<model id>/`` holding exactly its
``required_files``.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

from hybridrag.config import ModelStorageSettings
from hybridrag.errors import UnknownModelError

_E5_LANGUAGES = (
    "pl", "en", "de", "fr", "es", "it", "pt", "nl", "ru", "zh", "ja", "ko", "+90 more",
)

# Weights, tokenizer, and the config sentence-transformers needs to build the model
_E5_FILES = ("model.safetensors", "tokenizer.json", "config.json")


@dataclass(frozen=True)
class EmbeddingModelDescriptor:
    """Immutable description of a downloadable embedding model."""

    id: str
    display_name: str
    description: str
    dimensions: int
    size_bytes: int
    required_files: tuple[str, ...]
    source_repo: str
    languages: tuple[str, ...]
    quality_rating: int
    ram_required: str
    inference_speed: str
    recommended_for: str
    is_instruct: bool = False
    default_task_instruction: str | None = None

    @property
    def is_e5(self) -> bool:
        return "e5" in self.id


_MODELS: dict[str, EmbeddingModelDescriptor] = {
    "multilingual-e5-large": EmbeddingModelDescriptor(
        id="multilingual-e5-large",
        display_name="Multilingual E5 Large",
        description=(
            "Highest quality. XLM-RoBERTa-large backbone, 24 transformer layers. "
            "Strong on Polish and other Slavic languages. query:/passage: "
            "prefixes are added automatically."
        ),
        dimensions=1024,
        size_bytes=2_240_000_000,
        required_files=_E5_FILES,
        source_repo="intfloat/multilingual-e5-large",
        languages=_E5_LANGUAGES,
        quality_rating=5,
        ram_required="4-6 GB RAM",
        inference_speed="~150-300ms/text",
        recommended_for="Production, high-precision search, multilingual documents",
    ),
    "multilingual-e5-large-instruct": EmbeddingModelDescriptor(
        id="multilingual-e5-large-instruct",
        display_name="Multilingual E5 Large Instruct",
        description=(
            "Instruction-tuned E5 Large. Queries carry a task instruction, "
            "passages are embedded as-is."
        ),
        dimensions=1024,
        size_bytes=2_240_000_000,
        required_files=_E5_FILES,
        source_repo="intfloat/multilingual-e5-large-instruct",
        languages=_E5_LANGUAGES,
        quality_rating=5,
        ram_required="4-6 GB RAM",
        inference_speed="~150-300ms/text",
        recommended_for="Task-specific retrieval with custom instructions",
        is_instruct=True,
        default_task_instruction=(
            "Given a web search query, retrieve relevant passages that answer the query"
        ),
    ),
    "multilingual-e5-base": EmbeddingModelDescriptor(
        id="multilingual-e5-base",
        display_name="Multilingual E5 Base",
        description=(
            "Very good quality at a reasonable size. XLM-RoBERTa-base backbone, "
            "12 transformer layers."
        ),
        dimensions=768,
        size_bytes=1_110_000_000,
        required_files=_E5_FILES,
        source_repo="intfloat/multilingual-e5-base",
        languages=_E5_LANGUAGES,
        quality_rating=4,
        ram_required="2-3 GB RAM",
        inference_speed="~80-150ms/text",
        recommended_for="Most workloads, balance of quality and speed",
    ),
    "multilingual-e5-small": EmbeddingModelDescriptor(
        id="multilingual-e5-small",
        display_name="Multilingual E5 Small",
        description=(
            "Light and fast. Only 12 small transformer layers, suited to weaker "
            "hardware or bulk embedding."
        ),
        dimensions=384,
        size_bytes=471_000_000,
        required_files=_E5_FILES,
        source_repo="intfloat/multilingual-e5-small",
        languages=_E5_LANGUAGES,
        quality_rating=3,
        ram_required="1-2 GB RAM",
        inference_speed="~30-60ms/text",
        recommended_for="Weaker hardware, quick prototypes, large text volumes",
    ),
}

EMBEDDING_MODELS = MappingProxyType(_MODELS)


def get_model(model_id: str) -> EmbeddingModelDescriptor:
    """Look up a catalog entry; raises ``UnknownModelError``."""
    try:
        return EMBEDDING_MODELS[model_id]
    except KeyError:
        raise UnknownModelError(model_id) from None


def find_model(model_id: str) -> EmbeddingModelDescriptor | None:
    return EMBEDDING_MODELS.get(model_id)


def available_models() -> list[str]:
    """Model ids ordered by quality, best first."""
    return sorted(EMBEDDING_MODELS, key=lambda m: -EMBEDDING_MODELS[m].quality_rating)


def models_dir(base: str | Path | None = None) -> Path:
    return Path(base).expanduser() if base else ModelStorageSettings().resolved_path()


def model_path(model_id: str, base: str | Path | None = None) -> Path:
    """Directory holding the artifacts for ``model_id``."""
    return models_dir(base) / model_id
