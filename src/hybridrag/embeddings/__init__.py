"""Embedding providers — local (sentence-transformers) and remote (HTTP)."""

from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.embeddings.catalog import (
    EMBEDDING_MODELS,
    EmbeddingModelDescriptor,
    get_model,
    model_path,
)
from hybridrag.embeddings.factory import available_providers, get_embedding_provider
from hybridrag.embeddings.prefix import prepare_e5_text

__all__ = [
    "EMBEDDING_MODELS",
    "EmbeddingModelDescriptor",
    "EmbeddingProvider",
    "available_providers",
    "get_embedding_provider",
    "get_model",
    "model_path",
    "prepare_e5_text",
]
