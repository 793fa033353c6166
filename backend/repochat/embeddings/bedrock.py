"""AWS Bedrock embedding provider (Cohere Embed).

Request body::

    {"texts": ["..."], "input_type": "search_document", "truncate": "END"}

Both the flat (``{"embeddings": [[...]]}``) and the nested Cohere v4
(``{"embeddings": {"float": [[...]]}}``) response formats are accepted.
"""
import json
import logging
from typing import Optional

from .provider import SEARCH_DOCUMENT, EmbeddingProvider, check_vectors

logger = logging.getLogger(__name__)

DEFAULT_MODEL_ID = "cohere.embed-multilingual-v3"
DEFAULT_DIM      = 1024
DEFAULT_REGION   = "us-east-1"

# Bedrock validates text length before Cohere sees it, so the
# ``"truncate": "END"`` flag cannot help with oversized inputs.
_COHERE_BEDROCK_MAX_CHARS = 2048


class BedrockEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by AWS Bedrock (Cohere Embed models).

    Args:
        model_id:              Bedrock model ID for the embedding model.
        dim:                   Expected vector dimensionality.
        aws_access_key_id:     AWS access key.  ``None`` → default credential chain.
        aws_secret_access_key: AWS secret access key.
        aws_session_token:     Optional temporary-credential session token.
        region_name:           AWS region.  Defaults to ``us-east-1``.
        timeout_seconds:       Read timeout for each ``invoke_model`` call.
    """

    def __init__(
        self,
        model_id: str = DEFAULT_MODEL_ID,
        dim: int = DEFAULT_DIM,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        aws_session_token: Optional[str] = None,
        region_name: Optional[str] = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._model_id      = model_id
        self._dim           = dim
        self._access_key    = aws_access_key_id
        self._secret_key    = aws_secret_access_key
        self._session_token = aws_session_token
        self._region        = region_name or DEFAULT_REGION
        self._timeout       = timeout_seconds
        self._client: Optional[object] = None

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def dim(self) -> int:
        return self._dim

    def _get_client(self) -> object:
        """Return a cached boto3 bedrock-runtime client without automatic retries."""
        if self._client is None:
            try:
                import boto3
                from botocore.config import Config
            except ImportError as exc:
                raise ImportError(
                    "boto3 is required for BedrockEmbeddingProvider. "
                    "Install it with: pip install boto3"
                ) from exc

            kwargs: dict = {
                "region_name": self._region,
                "config": Config(
                    read_timeout=self._timeout,
                    retries={"max_attempts": 0},
                ),
            }
            if self._access_key and self._secret_key:
                kwargs["aws_access_key_id"]     = self._access_key
                kwargs["aws_secret_access_key"] = self._secret_key
            if self._session_token:
                kwargs["aws_session_token"] = self._session_token

            self._client = boto3.client("bedrock-runtime", **kwargs)

        return self._client

    def embed(self, texts: list[str], input_type: str = SEARCH_DOCUMENT) -> list[list[float]]:
        """Embed a batch of texts using the configured Cohere model on Bedrock.

        Raises:
            ValueError: If the provider returns an unexpected response shape.
            Exception:  On Bedrock API errors (network, auth, throttle, …).
        """
        client = self._get_client()

        truncated: list[str] = []
        for text in texts:
            if len(text) > _COHERE_BEDROCK_MAX_CHARS:
                logger.warning(
                    "[embeddings/bedrock] Truncating text from %d to %d chars",
                    len(text), _COHERE_BEDROCK_MAX_CHARS,
                )
                text = text[:_COHERE_BEDROCK_MAX_CHARS]
            truncated.append(text)

        request_body = json.dumps(
            {"texts": truncated, "input_type": input_type, "truncate": "END"}
        )

        logger.debug(
            "[embeddings/bedrock] invoking model=%s texts=%d",
            self._model_id,
            len(texts),
        )
        response = client.invoke_model(
            modelId=self._model_id,
            body=request_body,
            contentType="application/json",
            accept="application/json",
        )
        data = json.loads(response["body"].read())

        raw = data.get("embeddings")
        if raw is None:
            raise ValueError(
                f"Unexpected Bedrock response — 'embeddings' key missing: {list(data.keys())}"
            )
        if isinstance(raw, dict):
            if "float" not in raw:
                raise ValueError(
                    f"Unexpected nested embeddings format, keys: {list(raw.keys())}"
                )
            vectors = raw["float"]
        else:
            vectors = raw

        check_vectors(texts, vectors, self.dim)
        return vectors
