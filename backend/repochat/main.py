"""Repochat Backend Application.

This is the main entry point for the Repochat backend service.  Repochat
indexes repository text into a vector store and answers questions about it
with a language model, streaming the answer as server-sent events.

Modules:
    - rag: chunking, vector store, translation, orchestration and the /rag API
    - embeddings: text → vector providers (OpenAI, Bedrock)
    - ai_provider: streaming chat-model providers (OpenAI, Anthropic, Bedrock)
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from repochat.ai_provider.base import AIProvider
from repochat.ai_provider.resolver import create_ai_provider
from repochat.config import AppConfig, get_config
from repochat.embeddings.service import EmbeddingService, create_embedding_provider
from repochat.rag.generator import AnswerGenerator
from repochat.rag.indexer import RagIndexer
from repochat.rag.orchestrator import RagOrchestrator
from repochat.rag.router import router as rag_router, set_indexer, set_orchestrator
from repochat.rag.translation import LanguageBridge
from repochat.rag.vector_store import FaissVectorStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
# botocore.auth logs the full SigV4 canonical request, including
# x-amz-security-token.  urllib3/httpx/httpcore log every connection.
for _noisy in (
    "botocore",
    "boto3",
    "urllib3",
    "urllib3.connectionpool",
    "httpx",
    "httpcore",
    "openai",
    "anthropic",
    "faiss",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def build_indexer(config: AppConfig) -> Optional[RagIndexer]:
    """Create the embedding service, load the store and wrap both in an indexer."""
    emb_cfg = config.embedding
    rag_cfg = config.rag
    try:
        provider = create_embedding_provider(config)
    except Exception as exc:
        logger.warning("Failed to initialise embedding provider: %s", exc)
        return None

    embedding_service = EmbeddingService(provider)
    store = FaissVectorStore(dim=emb_cfg.dim, data_dir=rag_cfg.data_dir)
    loaded = store.load()
    logger.info(
        "Vector store ready: data_dir=%s dim=%d loaded=%s size=%d",
        rag_cfg.data_dir, emb_cfg.dim, loaded, store.size,
    )
    logger.info(
        "Embedding service ready: provider=%s model=%s dim=%d",
        emb_cfg.provider, emb_cfg.model, emb_cfg.dim,
    )
    return RagIndexer(
        store,
        embedding_service,
        rollback_on_failure=rag_cfg.rollback_on_failure,
    )


def build_orchestrator(config: AppConfig, indexer: RagIndexer) -> Optional[RagOrchestrator]:
    """Create the chat providers and wire the question-answering pipeline."""
    llm_cfg = config.llm
    rag_cfg = config.rag
    try:
        chat_provider = create_ai_provider(config)
    except Exception as exc:
        logger.warning("Failed to initialise AI provider: %s", exc)
        return None

    translation_provider: Optional[AIProvider] = None
    if rag_cfg.translation_enabled:
        if llm_cfg.translation_model and llm_cfg.translation_model != llm_cfg.model:
            try:
                translation_provider = create_ai_provider(config, model=llm_cfg.translation_model)
            except Exception as exc:
                logger.warning("Translation provider unavailable, queries pass through: %s", exc)
        else:
            translation_provider = chat_provider

    bridge = LanguageBridge(
        translation_provider,
        enabled=rag_cfg.translation_enabled,
        temperature=llm_cfg.translation_temperature,
    )
    generator = AnswerGenerator(
        chat_provider,
        max_tokens=llm_cfg.max_tokens,
        temperature=llm_cfg.temperature,
    )
    return RagOrchestrator(
        indexer,
        bridge,
        generator,
        limit=rag_cfg.search_limit,
        scoped_threshold=rag_cfg.scoped_threshold,
        global_threshold=rag_cfg.global_threshold,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.server.log_level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.server.log_level.upper())

    if config.rag.enabled:
        indexer = build_indexer(config)
        set_indexer(indexer)
        if indexer is not None:
            orchestrator = build_orchestrator(config, indexer)
            set_orchestrator(orchestrator)
            logger.info("RAG pipeline ready: chat=%s", orchestrator is not None)
        else:
            logger.info("No embedding service available; RAG endpoints disabled.")
    else:
        logger.info("RAG disabled in config.")

    yield  # Application runs here

    # Shutdown
    set_orchestrator(None)
    set_indexer(None)
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Repochat API",
    description="Question answering over indexed repositories",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(rag_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
