"""RAG router — repository ingestion and question-answering endpoints.

Endpoints:
    POST   /rag/ingest                          — Chunk, embed and store a document
    POST   /rag/chat                            — Grounded answer as a server-sent-event stream
    POST   /rag/search                          — Raw similarity search (diagnostics)
    GET    /rag/collections/{collection_id}/documents — Stored chunks, newest first
    DELETE /rag/collections/{collection_id}     — Delete every chunk of a collection
    DELETE /rag/documents/{document_id}         — Delete one chunk
"""
import asyncio
import logging
import threading
from typing import AsyncIterator, Iterator, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from repochat.errors import RagError

from .indexer import RagIndexer
from .orchestrator import RagOrchestrator
from .schemas import (
    ChatRequest,
    DeleteResponse,
    DocumentItem,
    DocumentListResponse,
    IngestRequest,
    IngestResponse,
    SearchRequest,
    SearchResponse,
    SearchResultItem,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rag", tags=["rag"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}

# ---------------------------------------------------------------------------
# Singleton pipeline management
# ---------------------------------------------------------------------------

_indexer: Optional[RagIndexer] = None
_orchestrator: Optional[RagOrchestrator] = None


def get_indexer() -> Optional[RagIndexer]:
    """Return the global RagIndexer, or None if not configured."""
    return _indexer


def set_indexer(indexer: Optional[RagIndexer]) -> None:
    """Set (or clear) the global RagIndexer."""
    global _indexer
    _indexer = indexer


def get_orchestrator() -> Optional[RagOrchestrator]:
    """Return the global RagOrchestrator, or None if not configured."""
    return _orchestrator


def set_orchestrator(orchestrator: Optional[RagOrchestrator]) -> None:
    """Set (or clear) the global RagOrchestrator."""
    global _orchestrator
    _orchestrator = orchestrator


def _not_configured(component: str) -> JSONResponse:
    return JSONResponse({"error": f"RAG {component} not configured"}, status_code=503)


def _error_response(exc: RagError) -> JSONResponse:
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/ingest", response_model=IngestResponse)
async def ingest_document(request: IngestRequest) -> IngestResponse | JSONResponse:
    """Chunk a document and index every chunk under its collection."""
    logger.info(
        "[rag/ingest] Received: collection=%s chars=%d",
        request.collection_id, len(request.text),
    )
    indexer = get_indexer()
    if indexer is None:
        logger.warning("[rag/ingest] Indexer not configured, returning 503")
        return _not_configured("indexer")

    try:
        result = await run_in_threadpool(
            indexer.ingest,
            request.collection_id,
            request.text,
            chunk_size=request.chunk_size,
            chunk_overlap=request.chunk_overlap,
            collection_name=request.collection_name,
            collection_url=request.collection_url,
        )
    except RagError as exc:
        logger.warning("[rag/ingest] Rejected: %s", exc.message)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("[rag/ingest] Ingestion failed: %s", exc)
        return JSONResponse({"error": f"Ingestion failed: {exc}"}, status_code=500)

    logger.info(
        "[rag/ingest] Success: collection=%s chunks=%d",
        request.collection_id, result.chunk_count,
    )
    return IngestResponse(chunk_count=result.chunk_count, document_ids=result.document_ids)


@router.post("/chat")
async def chat(body: ChatRequest, request: Request):
    """Answer a question from indexed context, streamed as SSE frames.

    Errors detected before streaming (bad input, embedding failure, no
    match) are returned as a JSON error with the matching status code.
    """
    orchestrator = get_orchestrator()
    if orchestrator is None:
        logger.warning("[rag/chat] Orchestrator not configured, returning 503")
        return _not_configured("pipeline")

    try:
        prepared = await run_in_threadpool(
            orchestrator.prepare, body.message, body.collection_ids,
        )
    except RagError as exc:
        logger.info("[rag/chat] %s (%d)", exc.message, exc.status_code)
        return _error_response(exc)
    except Exception as exc:
        logger.exception("[rag/chat] Failed before streaming: %s", exc)
        return JSONResponse({"error": "Failed to generate response"}, status_code=500)

    return StreamingResponse(
        _relay_events(request, prepared.events()),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


_STREAM_END = object()


def _next_frame(events: Iterator[str], lock: threading.Lock):
    with lock:
        return next(events, _STREAM_END)


def _close_events(events: Iterator[str], lock: threading.Lock) -> None:
    # Blocks until any in-flight _next_frame returns.
    close = getattr(events, "close", None)
    if close is not None:
        with lock:
            close()


async def _relay_events(request: Request, events: Iterator[str]) -> AsyncIterator[str]:
    """Forward frames from the blocking event iterator to the client.

    A client disconnect stops the relay and closes *events*, which in turn
    closes the model stream.  The close runs in the threadpool after any
    in-flight step returns, and is shielded from the relay's cancellation.
    """
    step_lock = threading.Lock()
    try:
        while True:
            frame = await run_in_threadpool(_next_frame, events, step_lock)
            if frame is _STREAM_END:
                break
            if await request.is_disconnected():
                logger.info("[rag/chat] Client disconnected, cancelling stream")
                break
            yield frame
    finally:
        await asyncio.shield(run_in_threadpool(_close_events, events, step_lock))


@router.post("/search", response_model=SearchResponse)
async def search_documents(request: SearchRequest) -> SearchResponse | JSONResponse:
    """Raw similarity search over the indexed chunks."""
    indexer = get_indexer()
    if indexer is None:
        return _not_configured("indexer")

    try:
        hits = await run_in_threadpool(
            indexer.search,
            request.query,
            collection_ids=request.collection_ids,
            limit=request.limit,
            threshold=request.threshold,
        )
    except RagError as exc:
        return _error_response(exc)
    except Exception as exc:
        logger.exception("[rag/search] Search failed: %s", exc)
        return JSONResponse({"error": f"Search failed: {exc}"}, status_code=500)

    return SearchResponse(
        results=[
            SearchResultItem(
                document_id=hit.document_id,
                collection_id=hit.collection_id,
                content=hit.content,
                similarity=hit.similarity,
                metadata=hit.metadata,
            )
            for hit in hits
        ],
        query=request.query,
    )


@router.get("/collections/{collection_id}/documents", response_model=DocumentListResponse)
async def list_documents(collection_id: str) -> DocumentListResponse | JSONResponse:
    """List a collection's stored chunks, newest first."""
    indexer = get_indexer()
    if indexer is None:
        return _not_configured("indexer")

    documents = indexer.list_documents(collection_id)
    return DocumentListResponse(
        collection_id=collection_id,
        documents=[DocumentItem(**doc.to_dict()) for doc in documents],
    )


@router.delete("/collections/{collection_id}", response_model=DeleteResponse)
async def delete_collection(collection_id: str) -> DeleteResponse | JSONResponse:
    """Delete every chunk of a collection.  Unknown collections delete nothing."""
    indexer = get_indexer()
    if indexer is None:
        return _not_configured("indexer")

    removed = await run_in_threadpool(indexer.delete_collection, collection_id)
    logger.info("[rag/delete] collection=%s removed=%d", collection_id, removed)
    return DeleteResponse(deleted=removed)


@router.delete("/documents/{document_id}", response_model=DeleteResponse)
async def delete_document(document_id: str) -> DeleteResponse | JSONResponse:
    """Delete one chunk.  Unknown ids delete nothing."""
    indexer = get_indexer()
    if indexer is None:
        return _not_configured("indexer")

    removed = await run_in_threadpool(indexer.delete_document, document_id)
    return DeleteResponse(deleted=removed)
