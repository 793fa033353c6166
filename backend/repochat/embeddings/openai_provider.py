"""OpenAI embedding provider.

Calls ``client.embeddings.create`` on the official SDK.  The default model,
``text-embedding-3-small``, produces 1536-dimensional vectors.  A custom
``base_url`` lets the same class target OpenAI-compatible gateways.
"""
import logging
from typing import Optional

from .provider import SEARCH_DOCUMENT, EmbeddingProvider, check_vectors

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "text-embedding-3-small"
DEFAULT_DIM      = 1536


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API.

    Args:
        api_key:         OpenAI API key.
        model_id:        Embedding model name.
        dim:             Expected vector dimensionality.
        base_url:        Optional API base URL (OpenAI-compatible gateways).
        timeout_seconds: Per-request timeout passed to the SDK client.
    """

    def __init__(
        self,
        api_key: str,
        model_id: str = DEFAULT_MODEL_ID,
        dim: int = DEFAULT_DIM,
        base_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._api_key  = api_key
        self._model_id = model_id
        self._dim      = dim
        self._base_url = base_url
        self._timeout  = timeout_seconds
        self._client: Optional[object] = None

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dim(self) -> int:
        return self._dim

    def _get_client(self) -> object:
        """Return a cached OpenAI client.

        Retries are disabled: retry policy belongs to the caller so partial
        ingestion failures stay visible.
        """
        if self._client is None:
            try:
                import openai
            except ImportError as exc:
                raise ImportError(
                    "openai is required for OpenAIEmbeddingProvider. "
                    "Install it with: pip install openai"
                ) from exc

            kwargs: dict = {
                "api_key": self._api_key,
                "timeout": self._timeout,
                "max_retries": 0,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = openai.OpenAI(**kwargs)

        return self._client

    def embed(self, texts: list[str], input_type: str = SEARCH_DOCUMENT) -> list[list[float]]:
        """Embed a batch of texts with the configured OpenAI model.

        ``input_type`` is accepted for interface compatibility; OpenAI
        embeddings are symmetric.
        """
        client = self._get_client()

        logger.debug(
            "[embeddings/openai] invoking model=%s texts=%d",
            self._model_id,
            len(texts),
        )
        response = client.embeddings.create(model=self._model_id, input=texts)

        data = sorted(response.data, key=lambda item: item.index)
        vectors = [list(item.embedding) for item in data]
        check_vectors(texts, vectors, self.dim)
        return vectors
