"""Embedding provider factory — registry, lazy import, singleton cache."""

from __future__ import annotations

import importlib
import logging

from hybridrag.config import EmbeddingSettings, ModelStorageSettings
from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.status import StatusBoard

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Provider registry: (provider_key, module_path, class_name)
# ---------------------------------------------------------------------------

_PROVIDER_REGISTRY: list[tuple[str, str, str]] = [
    ("local", "hybridrag.embeddings.local_provider", "LocalEmbeddingProvider"),
    ("remote", "hybridrag.embeddings.remote_provider", "RemoteEmbeddingProvider"),
]

# Singleton cache
_provider_cache: dict[str, EmbeddingProvider] = {}


def get_embedding_provider(
    provider: str = "remote",
    **kwargs,
) -> EmbeddingProvider:
    """Get an embedding provider by name.

    Args:
        provider: One of ``local``, ``remote``.
        **kwargs: Passed to the provider constructor.

    Returns:
        An ``EmbeddingProvider`` instance (not yet initialized).
    """
    key = provider.lower()

    if not kwargs and key in _provider_cache:
        return _provider_cache[key]

    for reg_key, module_path, cls_name in _PROVIDER_REGISTRY:
        if reg_key == key:
            mod = importlib.import_module(module_path)
            cls = getattr(mod, cls_name)
            instance = cls(**kwargs)
            logger.debug("Created %s embedding provider (%s)", key, cls_name)
            if not kwargs:
                _provider_cache[key] = instance
            return instance

    available = [k for k, _, _ in _PROVIDER_REGISTRY]
    raise ValueError(f"Unknown embedding provider '{provider}'. Available: {available}")


async def provider_from_settings(
    embedding: EmbeddingSettings,
    models: ModelStorageSettings,
    status: StatusBoard | None = None,
) -> EmbeddingProvider:
    """Build and initialize the provider selected in settings."""
    if embedding.provider.lower() == "local":
        provider = get_embedding_provider("local", models_dir=models.resolved_path())
        await provider.initialize(embedding.model)
    else:
        provider = get_embedding_provider(
            embedding.provider,
            api_key=embedding.resolved_api_key(),
            base_url=embedding.base_url,
            timeout=embedding.timeout,
            status=status,
        )
        await provider.initialize(embedding.remote_model)
    return provider


def available_providers() -> list[str]:
    """Return names of registered embedding providers."""
    return [k for k, _, _ in _PROVIDER_REGISTRY]


def clear_cache() -> None:
    """Clear singleton cache (for testing)."""
    _provider_cache.clear()
