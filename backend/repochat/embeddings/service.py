"""EmbeddingService — one logical embed call per text.

Wraps an :class:`EmbeddingProvider`, validates the returned vector against
the deployment dimensionality, and turns every provider failure into an
:class:`~repochat.errors.EmbeddingServiceError`.  No retries happen here:
retry policy belongs to the caller so partial-batch failures stay visible.
"""
import logging

from repochat.config import AppConfig
from repochat.errors import EmbeddingServiceError, ProviderNotAvailableError

from .bedrock import BedrockEmbeddingProvider
from .openai_provider import OpenAIEmbeddingProvider
from .provider import SEARCH_DOCUMENT, EmbeddingProvider, check_vectors

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Maps a single text to a ``dim``-length vector.

    Args:
        provider: Concrete embedding provider to use.
    """

    def __init__(self, provider: EmbeddingProvider) -> None:
        self._provider = provider

    @property
    def model_id(self) -> str:
        return self._provider.model_id

    @property
    def dim(self) -> int:
        return self._provider.dim

    def embed(self, text: str, input_type: str = SEARCH_DOCUMENT) -> list[float]:
        """Embed one text.

        Args:
            text: The string to embed.
            input_type: ``"search_document"`` for indexing,
                        ``"search_query"`` for queries.

        Returns:
            A float vector of length ``self.dim``.

        Raises:
            EmbeddingServiceError: On any provider failure or malformed response.
        """
        logger.debug(
            "[EmbeddingService] embedding %d chars via provider=%s model=%s input_type=%s",
            len(text),
            type(self._provider).__name__,
            self._provider.model_id,
            input_type,
        )
        try:
            vectors = self._provider.embed([text], input_type=input_type)
        except Exception as exc:
            logger.error("[EmbeddingService] provider call failed: %s", exc)
            raise EmbeddingServiceError(str(exc)) from exc

        try:
            check_vectors([text], vectors or [], self.dim)
        except ValueError as exc:
            raise EmbeddingServiceError(str(exc)) from exc
        return [float(v) for v in vectors[0]]


def create_embedding_provider(config: AppConfig) -> EmbeddingProvider:
    """Build the embedding provider selected in configuration.

    Raises:
        ProviderNotAvailableError: When the selected backend has no credentials.
    """
    emb_cfg = config.embedding
    secrets = config.secrets

    if emb_cfg.provider == "openai":
        if not secrets.openai.api_key:
            raise ProviderNotAvailableError("OpenAI API key not configured for embeddings")
        return OpenAIEmbeddingProvider(
            api_key=secrets.openai.api_key,
            model_id=emb_cfg.model,
            dim=emb_cfg.dim,
            base_url=secrets.openai.base_url,
            timeout_seconds=emb_cfg.request_timeout_seconds,
        )

    return BedrockEmbeddingProvider(
        model_id=emb_cfg.model,
        dim=emb_cfg.dim,
        aws_access_key_id=secrets.aws.access_key_id,
        aws_secret_access_key=secrets.aws.secret_access_key,
        aws_session_token=secrets.aws.session_token,
        region_name=secrets.aws.region,
        timeout_seconds=emb_cfg.request_timeout_seconds,
    )
