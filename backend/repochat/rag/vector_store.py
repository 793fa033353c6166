"""FAISS-based vector store for document chunk embeddings.

Uses ``IndexFlatIP`` on L2-normalised vectors, so the inner product of a
query and a row is their cosine similarity (``1 - cosine distance``).
Brute-force search is exact and fast enough for the expected scale.
Persistence uses ``faiss.write_index`` + a JSON row sidecar.

Thread safety: every operation holds ``_lock`` while it touches the index
or the row table, so a reader never observes a row whose vector and
content are not both present.  Rows are immutable once added; a correction
is a delete followed by a new insert.
"""
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from repochat.errors import VectorDimensionError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rows and hits
# ---------------------------------------------------------------------------

@dataclass
class IndexedDocument:
    """A stored row: one embedded chunk tagged with its collection."""

    id: str
    collection_id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "IndexedDocument":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


@dataclass
class SearchHit:
    """An ephemeral search result; ``similarity`` is derived, never stored."""

    document_id: str
    collection_id: str
    content: str
    metadata: Dict[str, Any]
    similarity: float


# ---------------------------------------------------------------------------
# FAISS vector store
# ---------------------------------------------------------------------------

class FaissVectorStore:
    """Collection-scoped wrapper around a FAISS ``IndexFlatIP`` index.

    Args:
        dim:      Vector dimensionality; every row must match it.
        data_dir: Optional directory for persistence (``save`` / ``load``).
    """

    def __init__(self, dim: int, data_dir: Optional[Path] = None) -> None:
        import faiss

        self._dim = dim
        self._data_dir = Path(data_dir) if data_dir else None
        self._index = faiss.IndexFlatIP(dim)
        self._rows: Dict[str, IndexedDocument] = {}
        self._id_map: List[str] = []  # position → document id
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def dim(self) -> int:
        return self._dim

    @property
    def size(self) -> int:
        return self._index.ntotal

    @property
    def persistent(self) -> bool:
        return self._data_dir is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, document: IndexedDocument, vector: List[float]) -> None:
        """Insert one row.

        The vector is L2-normalised before insertion so that inner-product
        search produces cosine similarity scores.

        Raises:
            VectorDimensionError: If ``len(vector) != dim``.
            ValueError: If a row with the same id already exists.
        """
        vec = self._prepare(vector)
        if not document.created_at:
            document.created_at = time.time()
        with self._lock:
            if document.id in self._rows:
                raise ValueError(f"Document {document.id} already stored")
            self._index.add(vec)
            self._id_map.append(document.id)
            self._rows[document.id] = document

    def remove(self, document_ids: Iterable[str]) -> int:
        """Remove rows by id.  Unknown ids are ignored.

        Returns:
            Number of rows actually removed.
        """
        to_remove = set(document_ids)
        with self._lock:
            return self._rebuild_without(to_remove)

    def remove_collection(self, collection_id: str) -> int:
        """Remove every row of *collection_id* in one locked step.

        Returns:
            Number of rows removed (0 for an unknown collection).
        """
        with self._lock:
            doomed = {
                doc_id for doc_id, doc in self._rows.items()
                if doc.collection_id == collection_id
            }
            return self._rebuild_without(doomed)

    def clear(self) -> None:
        """Reset the index and all rows."""
        import faiss

        with self._lock:
            self._index = faiss.IndexFlatIP(self._dim)
            self._rows.clear()
            self._id_map.clear()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> Optional[IndexedDocument]:
        with self._lock:
            return self._rows.get(document_id)

    def count(self, collection_id: Optional[str] = None) -> int:
        """Number of rows, optionally restricted to one collection."""
        with self._lock:
            if collection_id is None:
                return len(self._id_map)
            return sum(1 for doc in self._rows.values() if doc.collection_id == collection_id)

    def list_collection(self, collection_id: str) -> List[IndexedDocument]:
        """Return the rows of *collection_id*, newest first."""
        with self._lock:
            rows = [
                (self._rows[doc_id], pos)
                for pos, doc_id in enumerate(self._id_map)
                if self._rows[doc_id].collection_id == collection_id
            ]
        rows.sort(key=lambda item: (item[0].created_at, item[1]), reverse=True)
        return [doc for doc, _ in rows]

    def search(
        self,
        query_vector: List[float],
        collection_ids: Optional[List[str]] = None,
        limit: int = 5,
        threshold: float = 0.0,
    ) -> List[SearchHit]:
        """Rank rows by cosine similarity to *query_vector*.

        Every candidate row (optionally restricted to *collection_ids*) is
        ranked, the top ``limit`` are kept, and only then are hits below
        ``threshold`` dropped.  Similarity is clamped to ``[0, 1]`` before
        the comparison.  Equal similarities keep insertion order.

        Args:
            query_vector:   Query embedding (will be L2-normalised).
            collection_ids: Collections to search; ``None`` or empty means all.
            limit:          Size of the top-k window.
            threshold:      Minimum similarity of a returned hit.

        Returns:
            Hits sorted by non-increasing similarity.

        Raises:
            VectorDimensionError: If the query vector has the wrong length.
        """
        vec = self._prepare(query_vector)
        wanted = set(collection_ids) if collection_ids else None

        with self._lock:
            total = self._index.ntotal
            if total == 0 or limit <= 0:
                return []
            scores, positions = self._index.search(vec, total)
            ranked = []
            for score, pos in zip(scores[0], positions[0]):
                if pos < 0:
                    continue
                doc = self._rows[self._id_map[pos]]
                if wanted is not None and doc.collection_id not in wanted:
                    continue
                ranked.append((float(score), int(pos), doc))

        ranked.sort(key=lambda item: (-item[0], item[1]))

        hits: List[SearchHit] = []
        for score, _, doc in ranked[:limit]:
            similarity = min(max(score, 0.0), 1.0)
            if similarity < threshold:
                continue
            hits.append(SearchHit(
                document_id=doc.id,
                collection_id=doc.collection_id,
                content=doc.content,
                metadata=dict(doc.metadata),
                similarity=similarity,
            ))
        return hits

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the index and rows to ``data_dir``."""
        import faiss

        if self._data_dir is None:
            raise ValueError("No data_dir configured for persistence")

        self._data_dir.mkdir(parents=True, exist_ok=True)
        index_path = self._data_dir / "index.faiss"
        rows_path = self._data_dir / "documents.json"

        with self._lock:
            faiss.write_index(self._index, str(index_path))
            payload = {
                "dim": self._dim,
                "id_map": self._id_map,
                "documents": {k: v.to_dict() for k, v in self._rows.items()},
            }
            tmp_path = rows_path.with_suffix(".json.tmp")
            tmp_path.write_text(json.dumps(payload), encoding="utf-8")
            tmp_path.replace(rows_path)

        logger.info(
            "[FaissVectorStore] Saved %d vectors to %s", self._index.ntotal, index_path
        )

    def load(self) -> bool:
        """Load a previously saved index.  Returns True on success."""
        import faiss

        if self._data_dir is None:
            return False

        index_path = self._data_dir / "index.faiss"
        rows_path = self._data_dir / "documents.json"
        if not index_path.exists() or not rows_path.exists():
            return False

        try:
            loaded_index = faiss.read_index(str(index_path))
            payload = json.loads(rows_path.read_text(encoding="utf-8"))
        except (OSError, RuntimeError, ValueError) as exc:
            logger.warning("[FaissVectorStore] Failed to load index: %s", exc)
            return False

        if loaded_index.d != self._dim:
            logger.warning(
                "[FaissVectorStore] Ignoring persisted index: dim %d != configured %d",
                loaded_index.d, self._dim,
            )
            return False

        with self._lock:
            self._index = loaded_index
            self._id_map = list(payload["id_map"])
            self._rows = {
                k: IndexedDocument.from_dict(v) for k, v in payload["documents"].items()
            }

        logger.info(
            "[FaissVectorStore] Loaded %d vectors from %s", self._index.ntotal, index_path
        )
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _prepare(self, vector: List[float]) -> np.ndarray:
        """Validate the dimensionality and return a normalised ``(1, dim)`` array."""
        if len(vector) != self._dim:
            raise VectorDimensionError(self._dim, len(vector))
        return self._normalise(np.array([vector], dtype=np.float32))

    def _rebuild_without(self, doomed: set) -> int:
        """Rebuild the index without *doomed* ids.  Caller holds ``_lock``."""
        import faiss

        keep = [pos for pos, doc_id in enumerate(self._id_map) if doc_id not in doomed]
        removed = len(self._id_map) - len(keep)
        if removed == 0:
            return 0

        if keep:
            all_vecs = self._index.reconstruct_n(0, self._index.ntotal)
            kept_vecs = np.ascontiguousarray(all_vecs[keep], dtype=np.float32)
        else:
            kept_vecs = np.empty((0, self._dim), dtype=np.float32)

        index = faiss.IndexFlatIP(self._dim)
        if kept_vecs.shape[0] > 0:
            index.add(kept_vecs)

        for doc_id in doomed:
            self._rows.pop(doc_id, None)
        self._id_map = [self._id_map[pos] for pos in keep]
        self._index = index
        return removed

    @staticmethod
    def _normalise(vecs: np.ndarray) -> np.ndarray:
        """L2-normalise each row in-place and return the array."""
        import faiss

        faiss.normalize_L2(vecs)
        return vecs
