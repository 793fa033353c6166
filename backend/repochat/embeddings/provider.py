"""Embedding back-end contract.

A provider turns a batch of texts into vectors of one fixed width.  Indexing
and querying pass different input types because asymmetric models (Cohere
Embed) encode stored passages and incoming questions differently; symmetric
models (OpenAI) ignore the hint.
"""
from abc import ABC, abstractmethod
from typing import Sequence

SEARCH_DOCUMENT = "search_document"
SEARCH_QUERY = "search_query"


def check_vectors(
    texts: Sequence[str],
    vectors: Sequence[Sequence[float]],
    dim: int,
) -> None:
    """Raise ``ValueError`` unless *vectors* holds one ``dim``-wide vector per text."""
    if len(vectors) != len(texts):
        raise ValueError(f"Provider returned {len(vectors)} vectors for {len(texts)} texts")
    for vector in vectors:
        if len(vector) != dim:
            raise ValueError(f"expected {dim}-dimensional vector, got {len(vector)}")


class EmbeddingProvider(ABC):
    """Batch text → vector back-end.

    ``embed()`` runs on FastAPI's threadpool, so concurrent calls must be safe.
    """

    @property
    @abstractmethod
    def model_id(self) -> str:
        """Model name, for logs."""

    @property
    @abstractmethod
    def dim(self) -> int:
        """Width of every vector this provider returns."""

    @abstractmethod
    def embed(self, texts: list[str], input_type: str = SEARCH_DOCUMENT) -> list[list[float]]:
        """Return one vector per text, in input order.

        Raises whatever the back-end raises; the service layer wraps it.
        """
