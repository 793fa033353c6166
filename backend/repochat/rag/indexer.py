"""Ingestion and retrieval over the shared FAISS vector store.

``RagIndexer`` is the write path (chunk → embed → persist, one chunk at a
time) and the read path (embed query → collection-scoped search) of the
pipeline.  Embedding goes through the injected ``EmbeddingService`` so tests
can substitute a deterministic fake.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from repochat.embeddings.provider import SEARCH_DOCUMENT, SEARCH_QUERY
from repochat.embeddings.service import EmbeddingService
from repochat.errors import ChunkIngestionError, NoContentError

from .chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE, Chunk, split_text
from .vector_store import FaissVectorStore, IndexedDocument, SearchHit

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of a successful ingestion."""

    chunk_count: int
    document_ids: List[str] = field(default_factory=list)


class RagIndexer:
    """Writes chunks into the vector store and searches it.

    Args:
        store:               The shared vector store.
        embedding_service:   Text → vector service (dimension must match the store).
        rollback_on_failure: Default for :meth:`ingest` when the caller does not say.
    """

    def __init__(
        self,
        store: FaissVectorStore,
        embedding_service: EmbeddingService,
        rollback_on_failure: bool = False,
    ) -> None:
        if embedding_service.dim != store.dim:
            raise ValueError(
                f"Embedding dim {embedding_service.dim} does not match store dim {store.dim}"
            )
        self._store = store
        self._embeddings = embedding_service
        self._rollback_on_failure = rollback_on_failure

    @property
    def store(self) -> FaissVectorStore:
        return self._store

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(
        self,
        collection_id: str,
        chunks: Sequence[Chunk],
        extra_metadata: Optional[dict] = None,
    ) -> List[str]:
        """Embed and persist *chunks* in order, one chunk at a time.

        Stops at the first failing chunk.  Rows for the chunks before it stay
        in the store and are listed on the error; callers wanting
        all-or-nothing remove them (see :meth:`ingest`).

        Returns:
            Ids of the new rows, in chunk order.

        Raises:
            ChunkIngestionError: Identifying the failing chunk, with the
                embedding or store error chained as ``__cause__``.
        """
        ids: List[str] = []
        try:
            for position, chunk in enumerate(chunks):
                try:
                    vector = self._embeddings.embed(chunk.content, input_type=SEARCH_DOCUMENT)
                    document = IndexedDocument(
                        id=str(uuid.uuid4()),
                        collection_id=collection_id,
                        content=chunk.content,
                        metadata={**(extra_metadata or {}), **chunk.metadata},
                    )
                    self._store.add(document, vector)
                except Exception as exc:
                    logger.error(
                        "[RagIndexer] Chunk %d of collection=%s failed: %s",
                        position, collection_id, exc,
                    )
                    raise ChunkIngestionError(
                        position, chunk.content, exc, stored_ids=ids,
                    ) from exc
                ids.append(document.id)
        finally:
            if ids:
                self._persist()

        logger.info("[RagIndexer] Stored %d chunks for collection=%s", len(ids), collection_id)
        return ids

    def ingest(
        self,
        collection_id: str,
        raw_text: str,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        collection_name: Optional[str] = None,
        collection_url: Optional[str] = None,
        rollback_on_failure: Optional[bool] = None,
    ) -> IngestResult:
        """Chunk *raw_text* and store every chunk under *collection_id*.

        Raises:
            ConfigError: For an invalid chunk size / overlap pair.
            NoContentError: If chunking yields nothing (no rows are written).
            ChunkIngestionError: If a chunk fails; with ``rollback_on_failure``
                the rows written by this call are removed before the error
                propagates; earlier ingestions into the collection are kept.
        """
        chunks = split_text(raw_text or "", chunk_size=chunk_size, overlap=chunk_overlap)
        if not chunks:
            logger.warning("[RagIndexer] collection=%s produced no chunks", collection_id)
            raise NoContentError()

        logger.info(
            "[RagIndexer] Ingesting collection=%s chars=%d chunks=%d",
            collection_id, len(raw_text), len(chunks),
        )

        source: dict = {}
        if collection_name:
            source["source_name"] = collection_name
        if collection_url:
            source["source_url"] = collection_url

        try:
            ids = self.put(collection_id, chunks, extra_metadata=source)
        except ChunkIngestionError as exc:
            if rollback_on_failure is None:
                rollback_on_failure = self._rollback_on_failure
            if rollback_on_failure and exc.stored_ids:
                removed = self._store.remove(exc.stored_ids)
                if removed:
                    self._persist()
                logger.warning(
                    "[RagIndexer] Rolled back collection=%s (%d rows of this ingestion removed)",
                    collection_id, removed,
                )
            raise

        return IngestResult(chunk_count=len(ids), document_ids=ids)

    def delete_document(self, document_id: str) -> int:
        """Delete one row; unknown ids are a no-op."""
        removed = self._store.remove([document_id])
        if removed:
            self._persist()
        return removed

    def delete_collection(self, collection_id: str) -> int:
        """Delete every row of a collection; unknown collections are a no-op."""
        removed = self._store.remove_collection(collection_id)
        if removed:
            logger.info(
                "[RagIndexer] Deleted collection=%s rows=%d", collection_id, removed,
            )
            self._persist()
        return removed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        query_text: str,
        collection_ids: Optional[List[str]] = None,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> List[SearchHit]:
        """Embed *query_text* and search the store.

        Raises:
            EmbeddingServiceError: If the query cannot be embedded.
        """
        vector = self._embeddings.embed(query_text, input_type=SEARCH_QUERY)
        hits = self._store.search(
            vector, collection_ids=collection_ids, limit=limit, threshold=threshold,
        )
        logger.debug(
            "[RagIndexer] search collections=%s limit=%d threshold=%.2f -> %d hits",
            collection_ids or "all", limit, threshold, len(hits),
        )
        return hits

    def list_documents(self, collection_id: str) -> List[IndexedDocument]:
        return self._store.list_collection(collection_id)

    def is_empty(self, collection_ids: Optional[List[str]] = None) -> bool:
        """True when nothing is indexed (in *collection_ids*, if given)."""
        if not collection_ids:
            return self._store.size == 0
        return all(self._store.count(cid) == 0 for cid in collection_ids)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _persist(self) -> None:
        if not self._store.persistent:
            return
        try:
            self._store.save()
        except (OSError, RuntimeError) as exc:
            logger.error("[RagIndexer] Failed to persist store: %s", exc)
