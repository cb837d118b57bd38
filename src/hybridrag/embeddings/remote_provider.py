"""Remote embedding provider for OpenAI-compatible ``/embeddings`` endpoints.

Works with OpenAI, OpenRouter and any server speaking the same protocol.
``initialize`` only records the model name; failures surface on ``embed``
as ``EmbeddingTransportError``.
"""

from __future__ import annotations

import logging

import httpx

from hybridrag.embeddings.base import EmbeddingProvider
from hybridrag.errors import EmbeddingNotInitializedError, EmbeddingTransportError
from hybridrag.status import StatusBoard

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "text-embedding-3-small"
DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

_DIMENSION_MAP = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class RemoteEmbeddingProvider(EmbeddingProvider):
    """Embed text via an HTTP embeddings API."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str | None = None,
        timeout: float = 60.0,
        task_field: str | None = None,
        status: StatusBoard | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.task_field = task_field
        self._api_key = api_key
        self._model: str | None = model
        self._dimensions = _DIMENSION_MAP.get(model, 0) if model else 0
        self._status = status
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=headers,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def initialize(self, model_id: str) -> None:
        self._model = model_id
        self._dimensions = _DIMENSION_MAP.get(model_id, 0)
        logger.info("Remote embeddings configured: %s at %s", model_id, self.base_url)

    async def embed(self, text: str, is_query: bool = False) -> list[float]:
        if not self._model:
            raise EmbeddingNotInitializedError("Remote embedding model not configured")

        payload: dict[str, object] = {"model": self._model, "input": text}
        if self.task_field:
            payload[self.task_field] = "query" if is_query else "passage"

        if self._status is not None:
            self._status.increment_network_calls()

        try:
            resp = await self._client.post("/embeddings", json=payload)
            resp.raise_for_status()
            vector = resp.json()["data"][0]["embedding"]
        except httpx.HTTPError as exc:
            raise EmbeddingTransportError(f"Embedding request failed: {exc}") from exc
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise EmbeddingTransportError(f"Malformed embedding response: {exc}") from exc

        embedding = [float(x) for x in vector]
        # Dimensionality of unmapped models is learned from the first response
        if not self._dimensions:
            self._dimensions = len(embedding)
        return embedding

    def dimensions(self) -> int:
        return self._dimensions

    def is_available(self) -> bool:
        return bool(self._model and self._api_key)

    @property
    def model_name(self) -> str:
        return self._model or ""

    async def aclose(self) -> None:
        await self._client.aclose()
