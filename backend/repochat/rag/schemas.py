"""Pydantic schemas for the RAG (repository question answering) API."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .chunker import DEFAULT_CHUNK_OVERLAP, DEFAULT_CHUNK_SIZE


class IngestRequest(BaseModel):
    """Request body for POST /rag/ingest."""

    collection_id: str = Field(..., min_length=1, description="Collection (repository) identifier")
    text: str = Field(..., description="Raw document text to chunk and index")
    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, description="Max characters per chunk")
    chunk_overlap: int = Field(
        default=DEFAULT_CHUNK_OVERLAP, description="Characters shared between chunks"
    )
    collection_name: Optional[str] = Field(
        default=None, description="Human-readable source name used in citations"
    )
    collection_url: Optional[str] = Field(default=None, description="Source URL used in citations")


class IngestResponse(BaseModel):
    """Response for POST /rag/ingest."""

    chunk_count: int
    document_ids: List[str]


class ChatRequest(BaseModel):
    """Request body for POST /rag/chat.

    ``message`` is validated by the orchestrator so a missing or blank
    message yields the pipeline's own 400 error.
    """

    message: Optional[Any] = Field(default=None, description="User question, any language")
    collection_ids: Optional[List[str]] = Field(
        default=None, description="Collections to search; empty or absent means all"
    )


class SearchRequest(BaseModel):
    """Request body for POST /rag/search."""

    query: str = Field(..., min_length=1, description="Natural language query")
    collection_ids: Optional[List[str]] = Field(default=None)
    limit: int = Field(default=5, ge=1, le=50, description="Top-k window")
    threshold: float = Field(default=0.0, ge=0.0, le=1.0, description="Minimum similarity")


class SearchResultItem(BaseModel):
    """A single search result."""

    document_id: str
    collection_id: str
    content: str
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)


class SearchResponse(BaseModel):
    """Response for POST /rag/search."""

    results: List[SearchResultItem]
    query: str


class DocumentItem(BaseModel):
    """A stored chunk row as listed for a collection."""

    id: str
    collection_id: str
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: float


class DocumentListResponse(BaseModel):
    collection_id: str
    documents: List[DocumentItem]


class DeleteResponse(BaseModel):
    deleted: int
