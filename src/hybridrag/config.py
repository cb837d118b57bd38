"""Application settings loaded from YAML with environment variable overrides."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

DEFAULT_MODELS_DIR = Path.home() / ".local" / "share" / "hybridrag" / "models"

# ---------------------------------------------------------------------------
# Settings sections
# ---------------------------------------------------------------------------


class ChunkingSettings(BaseModel):
    # Sized for E5 embeddings (max 512 tokens ~ 2000 chars)
    min_chars: int = 100
    max_chars: int = 1500
    overlap_chars: int = 200


class RetrievalSettings(BaseModel):
    top_k: int = 5
    min_similarity: float = 0.7
    mode: str = "hybrid"
    rrf_k: int = 60
    context_budget_tokens: int = 3000
    preview_chars: int = 200
    token_counter: str = "estimate"


class EmbeddingSettings(BaseModel):
    provider: str = "remote"
    model: str = "multilingual-e5-large"
    remote_model: str = "text-embedding-3-small"
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str | None = None
    timeout: float = 60.0
    max_concurrency: int = 4

    def resolved_api_key(self) -> str | None:
        return (
            self.api_key
            or os.getenv("RAG_EMBEDDING_API_KEY")
            or os.getenv("OPENAI_API_KEY")
        )


class ModelStorageSettings(BaseModel):
    path: str | None = None
    hub_url: str = "https://huggingface.co"
    verify_sizes: bool = False

    def resolved_path(self) -> Path:
        """Explicit path, then ``RAG_MODELS_DIR``, then the per-user default."""
        raw = self.path or os.getenv("RAG_MODELS_DIR")
        return Path(raw).expanduser() if raw else DEFAULT_MODELS_DIR


class IngestionSettings(BaseModel):
    supported_formats: list[str] = Field(
        default_factory=lambda: [
            ".txt", ".md", ".markdown", ".csv", ".json", ".xml", ".html", ".htm",
        ]
    )
    max_retries: int = 2
    queue_size: int = 100


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseModel):
    chunking: ChunkingSettings = Field(default_factory=ChunkingSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    models: ModelStorageSettings = Field(default_factory=ModelStorageSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)


def _find_settings_file() -> Path | None:
    """Walk up from cwd looking for settings.yaml."""
    profile = os.getenv("RAG_PROFILE", "")
    names = [f"settings-{profile}.yaml", "settings.yaml"] if profile else ["settings.yaml"]

    cwd = Path.cwd()
    for parent in [cwd, *cwd.parents]:
        for name in names:
            candidate = parent / name
            if candidate.exists():
                return candidate
    return None


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from YAML file, falling back to defaults."""
    path = Path(path) if path else _find_settings_file()
    if path is None:
        return Settings()

    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}

    return Settings(**raw)
