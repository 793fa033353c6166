"""Exception hierarchy for the ingestion and question-answering pipeline.

Every error carries an HTTP status code so the router layer can translate
it into a JSON response without a per-exception mapping table.
"""
from typing import List, Optional


class RagError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class InvalidInputError(RagError):
    """Raised when a query or ingestion request is rejected before any remote call."""

    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class ConfigError(InvalidInputError):
    """Raised for malformed chunking configuration (e.g. overlap >= chunk size)."""


class ProviderNotAvailableError(RagError):
    """Raised when no embedding or language-model backend is configured."""

    def __init__(self, message: str = "No AI provider available"):
        super().__init__(message, status_code=503)


class EmbeddingServiceError(RagError):
    """Raised when an embedding call fails (rate limit, network, bad response)."""

    def __init__(self, message: str):
        super().__init__(f"Embedding failed: {message}", status_code=502)


class VectorDimensionError(RagError):
    """Raised when a vector does not match the store dimensionality."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            status_code=500,
        )


class ChunkIngestionError(RagError):
    """Raised when embedding or persisting a single chunk fails.

    Rows for the chunks before ``chunk_index`` stay persisted and are listed
    in ``stored_ids``; the original failure is chained as ``__cause__``.
    """

    def __init__(
        self,
        chunk_index: int,
        content: str,
        cause: Exception,
        stored_ids: Optional[List[str]] = None,
    ):
        self.chunk_index = chunk_index
        self.content = content
        self.stored_ids = list(stored_ids or [])
        status_code = cause.status_code if isinstance(cause, RagError) else 502
        preview = content[:80].replace("\n", " ")
        super().__init__(
            f"Ingestion failed at chunk {chunk_index} ({preview!r}): {cause}",
            status_code=status_code,
        )


class NoContentError(RagError):
    """Raised when chunking a document yields nothing to index."""

    def __init__(self, message: str = "Document produced no content to index"):
        super().__init__(message, status_code=422)


class NoMatchError(RagError):
    """Raised when a search returns no hit above the similarity threshold.

    Attributes:
        scoped: Whether the search was restricted to explicit collections.
        index_empty: Whether nothing at all has been indexed yet.
    """

    def __init__(self, scoped: bool, index_empty: bool = False, message: Optional[str] = None):
        self.scoped = scoped
        self.index_empty = index_empty
        if message is None:
            if index_empty:
                message = "No documents have been indexed yet. Index a repository before asking questions."
            elif scoped:
                message = "No relevant context found in the selected repositories"
            else:
                message = "No relevant context found in indexed repositories"
        super().__init__(message, status_code=404)


class GenerationStreamError(RagError):
    """Raised when the language model fails while streaming an answer."""

    def __init__(self, message: str):
        super().__init__(f"Answer generation failed: {message}", status_code=502)
