"""Shared test fixtures and configuration for backend tests.

The fakes below stand in for the remote embedding and chat models so the
pipeline can be exercised end to end without network access.
"""
import hashlib
from typing import Iterator, Optional, Sequence

import pytest
from fastapi.testclient import TestClient

from repochat.ai_provider.base import AIProvider
from repochat.embeddings.provider import EmbeddingProvider
from repochat.embeddings.service import EmbeddingService
from repochat.main import app
from repochat.rag.indexer import RagIndexer
from repochat.rag.vector_store import FaissVectorStore

DIM = 4


def hash_vector(text: str, dim: int = DIM) -> list[float]:
    """Deterministic, strictly positive pseudo-embedding for *text*."""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [digest[i] / 255.0 + 0.01 for i in range(dim)]


class FakeEmbeddingProvider(EmbeddingProvider):
    """Text → vector fake.

    Args:
        vectors: Explicit vectors for specific texts; other texts are hashed.
        fail_on: Texts whose embedding call raises.
    """

    def __init__(self, dim: int = DIM, vectors: Optional[dict] = None, fail_on: Sequence[str] = ()):
        self._dim = dim
        self.vectors = dict(vectors or {})
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str]] = []

    @property
    def model_id(self) -> str:
        return "fake-embed"

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, texts: list[str], input_type: str = "search_document") -> list[list[float]]:
        vectors = []
        for text in texts:
            self.calls.append((text, input_type))
            if text in self.fail_on:
                raise RuntimeError("rate limit exceeded")
            vectors.append(self.vectors.get(text) or hash_vector(text, self._dim))
        return vectors


class FakeAIProvider(AIProvider):
    """Prompt → fragment stream fake.

    Args:
        fragments:  Fragments yielded by ``stream_model``.
        reply:      Text returned by ``call_model``.
        fail_after: Raise after this many fragments (None → never).
        call_error: Exception raised by ``call_model``.
    """

    def __init__(
        self,
        fragments: Sequence[str] = ("Hello", ", ", "world"),
        reply: str = "",
        fail_after: Optional[int] = None,
        call_error: Optional[Exception] = None,
    ):
        self.fragments = list(fragments)
        self.reply = reply
        self.fail_after = fail_after
        self.call_error = call_error
        self.prompts: list[str] = []
        self.call_prompts: list[str] = []
        self.pulled = 0
        self.closed = False

    def health_check(self) -> bool:
        return True

    def call_model(self, prompt, max_tokens=2048, system=None, temperature=None) -> str:
        self.call_prompts.append(prompt)
        if self.call_error is not None:
            raise self.call_error
        return self.reply

    def stream_model(self, prompt, max_tokens=2048, system=None, temperature=None) -> Iterator[str]:
        self.prompts.append(prompt)
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i >= self.fail_after:
                    raise RuntimeError("model overloaded")
                self.pulled += 1
                yield fragment
            if self.fail_after is not None and self.fail_after >= len(self.fragments):
                raise RuntimeError("model overloaded")
        finally:
            self.closed = True


@pytest.fixture
def api_client():
    """Provide a TestClient for the main FastAPI app (lifespan not run)."""
    return TestClient(app)


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def store() -> FaissVectorStore:
    return FaissVectorStore(dim=DIM)


@pytest.fixture
def indexer(store: FaissVectorStore, fake_embedder: FakeEmbeddingProvider) -> RagIndexer:
    return RagIndexer(store, EmbeddingService(fake_embedder))
