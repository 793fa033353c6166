"""Query orchestration: translate → embed → search → generate → stream.

A query moves through a fixed state machine::

    RECEIVED → TRANSLATING → SEARCHING → NO_MATCH
                                       → GENERATING → STREAMING → DONE

``ERROR`` is reachable from every non-terminal state.  Everything up to
``GENERATING`` runs eagerly in :meth:`RagOrchestrator.prepare`, so invalid
input, embedding failures and empty searches surface as a single typed
error before any event is sent.  :meth:`PreparedAnswer.events` then yields
the server-sent-event frames; failures after that point are folded into the
stream as an ``error`` event followed by ``done``.
"""
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, List, Optional

from repochat.errors import InvalidInputError, NoMatchError, RagError

from .generator import AnswerGenerator
from .indexer import RagIndexer
from .prompts import ANSWER_SUFFIX, build_rag_prompt
from .translation import LanguageBridge, wrap_for_response_language
from .vector_store import SearchHit

logger = logging.getLogger(__name__)


class QueryState(str, Enum):
    RECEIVED = "received"
    TRANSLATING = "translating"
    SEARCHING = "searching"
    NO_MATCH = "no_match"
    GENERATING = "generating"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"


_TRANSITIONS: dict[QueryState, set[QueryState]] = {
    QueryState.RECEIVED: {QueryState.TRANSLATING},
    QueryState.TRANSLATING: {QueryState.SEARCHING},
    QueryState.SEARCHING: {QueryState.NO_MATCH, QueryState.GENERATING},
    QueryState.GENERATING: {QueryState.STREAMING},
    QueryState.STREAMING: {QueryState.DONE},
    QueryState.NO_MATCH: set(),
    QueryState.DONE: set(),
    QueryState.ERROR: set(),
}

TERMINAL_STATES = frozenset({QueryState.NO_MATCH, QueryState.DONE, QueryState.ERROR})


class QueryRun:
    """State holder for one query; rejects transitions the machine does not allow."""

    def __init__(self) -> None:
        self.state = QueryState.RECEIVED

    @property
    def finished(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: QueryState) -> None:
        allowed = _TRANSITIONS[self.state]
        if new_state == QueryState.ERROR and not self.finished:
            allowed = allowed | {QueryState.ERROR}
        if new_state not in allowed:
            raise RuntimeError(f"Invalid query transition {self.state.value} -> {new_state.value}")
        logger.debug("[RagOrchestrator] %s -> %s", self.state.value, new_state.value)
        self.state = new_state


# ---------------------------------------------------------------------------
# Event framing
# ---------------------------------------------------------------------------

def format_event(event_type: str, data: Any = None) -> str:
    """Encode one SSE frame: ``data: {"type":...,"data":...}\\n\\n``.

    ``done`` frames carry no ``data`` key.
    """
    payload: dict = {"type": event_type}
    if data is not None:
        payload["data"] = data
    return "data: " + json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n\n"


# ---------------------------------------------------------------------------
# Prepared answers
# ---------------------------------------------------------------------------

@dataclass
class QueryContext:
    original_text: str
    original_language: str
    was_translated: bool
    english_text: str


class PreparedAnswer:
    """A query that found context and is ready to stream its answer."""

    def __init__(
        self,
        context: QueryContext,
        hits: List[SearchHit],
        prompt: str,
        generator: AnswerGenerator,
        run: QueryRun,
    ) -> None:
        self.context = context
        self.hits = hits
        self.prompt = prompt
        self._generator = generator
        self._run = run

    @property
    def state(self) -> QueryState:
        return self._run.state

    def events(self) -> Iterator[str]:
        """Yield the SSE frames: metadata, content*, [error], done.

        Closing the iterator early is treated as cancellation: the model
        stream is closed and no further fragments are requested.
        """
        fragments = self._generator.stream(self.prompt)
        sent = 0
        try:
            yield format_event("metadata", {
                "originalLanguage": self.context.original_language,
                "wasTranslated": self.context.was_translated,
            })
            self._run.advance(QueryState.STREAMING)
            try:
                for fragment in fragments:
                    sent += 1
                    yield format_event("content", fragment)
            except Exception as exc:
                message = exc.message if isinstance(exc, RagError) else str(exc)
                logger.error(
                    "[RagOrchestrator] Stream failed after %d fragments: %s", sent, message,
                )
                yield format_event("error", message)
            self._run.advance(QueryState.DONE)
            yield format_event("done")
        except GeneratorExit:
            if not self._run.finished:
                logger.info("[RagOrchestrator] Client went away after %d fragments", sent)
                self._run.advance(QueryState.ERROR)
            raise
        finally:
            close = getattr(fragments, "close", None)
            if close is not None:
                close()


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RagOrchestrator:
    """Runs the question-answering pipeline for one query at a time.

    Queries share nothing but the indexer's vector store, so one
    orchestrator serves concurrent requests.

    Args:
        indexer:          Search side of the vector store.
        bridge:           Language detection / translation.
        generator:        Streaming answer generator.
        limit:            Top-k window for the context search.
        scoped_threshold: Minimum similarity when collections are named.
        global_threshold: Minimum similarity when searching everything.
    """

    def __init__(
        self,
        indexer: RagIndexer,
        bridge: LanguageBridge,
        generator: AnswerGenerator,
        limit: int = 5,
        scoped_threshold: float = 0.3,
        global_threshold: float = 0.1,
    ) -> None:
        self._indexer = indexer
        self._bridge = bridge
        self._generator = generator
        self._limit = limit
        self._scoped_threshold = scoped_threshold
        self._global_threshold = global_threshold

    def prepare(self, query: Any, collection_ids: Optional[List[str]] = None) -> PreparedAnswer:
        """Validate, translate and search; build the prompt for streaming.

        Raises:
            InvalidInputError: Empty or non-string query.
            EmbeddingServiceError: The English query could not be embedded.
            NoMatchError: No hit reached the similarity threshold.
        """
        run = QueryRun()
        if not isinstance(query, str) or not query.strip():
            run.advance(QueryState.ERROR)
            raise InvalidInputError("Message is required")

        run.advance(QueryState.TRANSLATING)
        translation = self._bridge.detect_and_translate_to_english(query)
        context = QueryContext(
            original_text=query,
            original_language=translation.language_code,
            was_translated=translation.was_translated,
            english_text=translation.english_text,
        )

        run.advance(QueryState.SEARCHING)
        scoped = bool(collection_ids)
        threshold = self._scoped_threshold if scoped else self._global_threshold
        try:
            hits = self._indexer.search(
                context.english_text,
                collection_ids=collection_ids if scoped else None,
                limit=self._limit,
                threshold=threshold,
            )
        except RagError:
            run.advance(QueryState.ERROR)
            raise

        if not hits:
            run.advance(QueryState.NO_MATCH)
            index_empty = not scoped and self._indexer.is_empty()
            logger.info(
                "[RagOrchestrator] No match: scoped=%s threshold=%.2f index_empty=%s",
                scoped, threshold, index_empty,
            )
            raise NoMatchError(scoped=scoped, index_empty=index_empty)

        run.advance(QueryState.GENERATING)
        prompt = build_rag_prompt(context.english_text, hits, translated=context.was_translated)
        prompt = wrap_for_response_language(prompt, context.original_language) + ANSWER_SUFFIX
        logger.info(
            "[RagOrchestrator] %d hits (top=%.3f) language=%s translated=%s",
            len(hits), hits[0].similarity, context.original_language, context.was_translated,
        )
        return PreparedAnswer(context, hits, prompt, self._generator, run)

    def answer(self, query: Any, collection_ids: Optional[List[str]] = None) -> Iterator[str]:
        """Convenience wrapper: :meth:`prepare` then stream the frames."""
        return self.prepare(query, collection_ids).events()
