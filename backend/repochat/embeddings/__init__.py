"""Repochat embedding pipeline.

Maps text to fixed-dimensionality vectors via a remote embedding model.
OpenAI is the default backend; Bedrock (Cohere Embed) is also supported
through the same provider abstraction.
"""
from .provider import SEARCH_DOCUMENT, SEARCH_QUERY, EmbeddingProvider, check_vectors
from .openai_provider import OpenAIEmbeddingProvider
from .bedrock import BedrockEmbeddingProvider
from .service import EmbeddingService, create_embedding_provider

__all__ = [
    "SEARCH_DOCUMENT",
    "SEARCH_QUERY",
    "EmbeddingProvider",
    "check_vectors",
    "OpenAIEmbeddingProvider",
    "BedrockEmbeddingProvider",
    "EmbeddingService",
    "create_embedding_provider",
]
