"""Error taxonomy for the retrieval engine.

Configuration errors need operator action and are never retried.
Download errors are transient and retryable by the caller. Embedding
errors distinguish "no model loaded" from "model failed to load".
"""

from __future__ import annotations


class RagError(Exception):
    """Base class for all hybridrag errors."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class ConfigurationError(RagError):
    """Something the operator has to fix (unknown model, missing files)."""


class UnknownModelError(ConfigurationError, ValueError):
    """Model id is not in the embedding model catalog."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")


class MissingArtifactError(ConfigurationError, FileNotFoundError):
    """A required model artifact is not present on disk."""

    def __init__(self, model_id: str, path: str):
        self.model_id = model_id
        self.path = path
        super().__init__(f"Model file not found for {model_id}: {path}")


# ---------------------------------------------------------------------------
# Embeddings
# ---------------------------------------------------------------------------


class EmbeddingError(RagError):
    """Base class for embedding failures."""


class EmbeddingNotInitializedError(EmbeddingError, RuntimeError):
    """Embedding requested before a model was loaded."""


class ModelLoadError(EmbeddingError):
    """Model artifacts exist but the runtime failed to load them."""


class EmbeddingTransportError(EmbeddingError):
    """Remote embedding endpoint could not be reached or returned garbage."""


# ---------------------------------------------------------------------------
# Downloads / retrieval
# ---------------------------------------------------------------------------


class DownloadError(RagError):
    """Transient failure while fetching model artifacts."""


class QueryEmbeddingError(RagError):
    """The query text could not be embedded; retrieval is aborted."""


class InvalidRequestError(RagError, ValueError):
    """Retrieval parameters are out of range or the mode is unknown."""


class DownloadCancelledError(DownloadError):
    """A download was cancelled before it completed."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Download of {model_id} was cancelled")
