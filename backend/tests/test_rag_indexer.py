"""Tests for RagIndexer: sequential put, ingestion, deletes and search."""
from unittest.mock import patch

import pytest

from repochat.embeddings.service import EmbeddingService
from repochat.errors import (
    ChunkIngestionError,
    ConfigError,
    EmbeddingServiceError,
    NoContentError,
)
from repochat.rag.chunker import Chunk
from repochat.rag.indexer import RagIndexer
from repochat.rag.vector_store import FaissVectorStore

from conftest import DIM, FakeEmbeddingProvider

THREE_PARAGRAPHS = "alpha\n\nbeta\n\ngamma"


def _chunks(*contents: str) -> list[Chunk]:
    return [
        Chunk(content=c, ordinal=i, total_in_collection=len(contents), metadata={"chunk_index": i})
        for i, c in enumerate(contents)
    ]


# ---------------------------------------------------------------------------
# put
# ---------------------------------------------------------------------------

class TestPut:
    def test_stores_chunks_in_order(self, indexer: RagIndexer, store: FaissVectorStore):
        ids = indexer.put("repo-a", _chunks("zero", "one", "two"))
        assert len(ids) == 3
        assert [store.get(i).content for i in ids] == ["zero", "one", "two"]
        assert all(store.get(i).collection_id == "repo-a" for i in ids)

    def test_embeds_as_documents(self, indexer: RagIndexer, fake_embedder: FakeEmbeddingProvider):
        indexer.put("repo-a", _chunks("zero"))
        assert fake_embedder.calls == [("zero", "search_document")]

    def test_partial_ingestion_isolation(self, indexer: RagIndexer, store: FaissVectorStore,
                                         fake_embedder: FakeEmbeddingProvider):
        fake_embedder.fail_on = {"chunk two"}
        with pytest.raises(ChunkIngestionError) as exc_info:
            indexer.put("repo-a", _chunks("chunk zero", "chunk one", "chunk two"))

        err = exc_info.value
        assert err.chunk_index == 2
        assert err.content == "chunk two"
        assert isinstance(err.__cause__, EmbeddingServiceError)
        assert err.status_code == 502
        assert "chunk 2" in err.message

        stored = sorted(d.content for d in store.list_collection("repo-a"))
        assert stored == ["chunk one", "chunk zero"]

    def test_stops_at_first_failure(self, indexer: RagIndexer, fake_embedder: FakeEmbeddingProvider):
        fake_embedder.fail_on = {"b"}
        with pytest.raises(ChunkIngestionError):
            indexer.put("repo-a", _chunks("a", "b", "c"))
        assert [text for text, _ in fake_embedder.calls] == ["a", "b"]

    def test_extra_metadata_merged(self, indexer: RagIndexer, store: FaissVectorStore):
        ids = indexer.put("repo-a", _chunks("zero"), extra_metadata={"source_name": "demo"})
        assert store.get(ids[0]).metadata == {"source_name": "demo", "chunk_index": 0}


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------

class TestIngest:
    def test_returns_count_and_ids(self, indexer: RagIndexer, store: FaissVectorStore):
        result = indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert result.chunk_count == 3
        assert len(result.document_ids) == 3
        assert store.count("repo-a") == 3

    def test_source_labels_stored(self, indexer: RagIndexer, store: FaissVectorStore):
        result = indexer.ingest(
            "repo-a", "hello world",
            collection_name="acme/widgets", collection_url="https://github.com/acme/widgets",
        )
        meta = store.get(result.document_ids[0]).metadata
        assert meta["source_name"] == "acme/widgets"
        assert meta["source_url"] == "https://github.com/acme/widgets"
        assert meta["chunk_index"] == 0
        assert meta["total_chunks"] == 1

    def test_no_content_raises_before_writes(self, indexer: RagIndexer, store: FaissVectorStore,
                                             fake_embedder: FakeEmbeddingProvider):
        with pytest.raises(NoContentError) as exc_info:
            indexer.ingest("repo-a", "   \n\n  ")
        assert exc_info.value.status_code == 422
        assert store.size == 0
        assert fake_embedder.calls == []

    def test_invalid_chunk_config(self, indexer: RagIndexer):
        with pytest.raises(ConfigError):
            indexer.ingest("repo-a", "some text", chunk_size=10, chunk_overlap=10)

    def test_failure_keeps_partial_rows_by_default(self, indexer: RagIndexer, store: FaissVectorStore,
                                                   fake_embedder: FakeEmbeddingProvider):
        fake_embedder.fail_on = {"gamma"}
        with pytest.raises(ChunkIngestionError) as exc_info:
            indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert exc_info.value.chunk_index == 2
        assert store.count("repo-a") == 2

    def test_rollback_on_failure(self, indexer: RagIndexer, store: FaissVectorStore,
                                 fake_embedder: FakeEmbeddingProvider):
        indexer.ingest("repo-b", "unrelated text")
        fake_embedder.fail_on = {"gamma"}
        with pytest.raises(ChunkIngestionError):
            indexer.ingest(
                "repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0,
                rollback_on_failure=True,
            )
        assert store.count("repo-a") == 0
        assert store.count("repo-b") == 1

    def test_rollback_keeps_earlier_ingestions(self, indexer: RagIndexer, store: FaissVectorStore,
                                               fake_embedder: FakeEmbeddingProvider):
        first = indexer.ingest("repo-a", "First document about alpha.")
        fake_embedder.fail_on = {"gamma"}
        with pytest.raises(ChunkIngestionError) as exc_info:
            indexer.ingest(
                "repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0,
                rollback_on_failure=True,
            )
        assert len(exc_info.value.stored_ids) == 2
        remaining = [d.id for d in indexer.list_documents("repo-a")]
        assert remaining == first.document_ids

    def test_save_failure_keeps_chunk_error(self, tmp_path, fake_embedder: FakeEmbeddingProvider):
        store = FaissVectorStore(dim=DIM, data_dir=tmp_path)
        indexer = RagIndexer(store, EmbeddingService(fake_embedder))
        fake_embedder.fail_on = {"gamma"}
        with patch.object(store, "save", side_effect=RuntimeError("write_index failed")):
            with pytest.raises(ChunkIngestionError) as exc_info:
                indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert exc_info.value.chunk_index == 2
        assert store.count("repo-a") == 2

    def test_rollback_default_from_constructor(self, store: FaissVectorStore):
        embedder = FakeEmbeddingProvider(fail_on={"gamma"})
        indexer = RagIndexer(store, EmbeddingService(embedder), rollback_on_failure=True)
        with pytest.raises(ChunkIngestionError):
            indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert store.count("repo-a") == 0

    def test_persists_after_ingest(self, tmp_path, fake_embedder: FakeEmbeddingProvider):
        store = FaissVectorStore(dim=DIM, data_dir=tmp_path)
        indexer = RagIndexer(store, EmbeddingService(fake_embedder))
        indexer.ingest("repo-a", "hello world")
        assert (tmp_path / "index.faiss").exists()
        assert (tmp_path / "documents.json").exists()

        reloaded = FaissVectorStore(dim=DIM, data_dir=tmp_path)
        assert reloaded.load() is True
        assert reloaded.count("repo-a") == 1


# ---------------------------------------------------------------------------
# Deletes, listing and search
# ---------------------------------------------------------------------------

class TestIndexerReads:
    def test_dimension_mismatch_rejected(self, store: FaissVectorStore):
        with pytest.raises(ValueError):
            RagIndexer(store, EmbeddingService(FakeEmbeddingProvider(dim=8)))

    def test_search_embeds_as_query(self, indexer: RagIndexer, fake_embedder: FakeEmbeddingProvider):
        indexer.ingest("repo-a", "hello world")
        fake_embedder.calls.clear()
        hits = indexer.search("hello world", limit=5)
        assert fake_embedder.calls == [("hello world", "search_query")]
        assert hits[0].content == "hello world"
        assert hits[0].similarity == pytest.approx(1.0, abs=1e-5)

    def test_search_embedding_failure(self, indexer: RagIndexer, fake_embedder: FakeEmbeddingProvider):
        fake_embedder.fail_on = {"boom"}
        with pytest.raises(EmbeddingServiceError):
            indexer.search("boom")

    def test_delete_document(self, indexer: RagIndexer):
        result = indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert indexer.delete_document(result.document_ids[0]) == 1
        assert indexer.delete_document(result.document_ids[0]) == 0
        assert len(indexer.list_documents("repo-a")) == 2

    def test_delete_collection(self, indexer: RagIndexer):
        indexer.ingest("repo-a", THREE_PARAGRAPHS, chunk_size=8, chunk_overlap=0)
        assert indexer.delete_collection("repo-a") == 3
        assert indexer.delete_collection("repo-a") == 0
        assert indexer.list_documents("repo-a") == []

    def test_is_empty(self, indexer: RagIndexer):
        assert indexer.is_empty() is True
        indexer.ingest("repo-a", "hello world")
        assert indexer.is_empty() is False
        assert indexer.is_empty(["repo-a"]) is False
        assert indexer.is_empty(["repo-z"]) is True
