"""Tests for the query state machine and SSE event stream."""
import json
import math

import pytest

from repochat.embeddings.service import EmbeddingService
from repochat.errors import EmbeddingServiceError, InvalidInputError, NoMatchError
from repochat.rag.generator import AnswerGenerator
from repochat.rag.indexer import RagIndexer
from repochat.rag.orchestrator import (
    QueryRun,
    QueryState,
    RagOrchestrator,
    format_event,
)
from repochat.rag.translation import LanguageBridge
from repochat.rag.vector_store import FaissVectorStore, IndexedDocument

from conftest import DIM, FakeAIProvider, FakeEmbeddingProvider

QUESTION = "What does X do?"
QUERY_VECTOR = [1.0, 0.0, 0.0, 0.0]
MATCH_VECTOR = [0.42, math.sqrt(1 - 0.42 ** 2), 0.0, 0.0]


def _parse(frames) -> list[dict]:
    """Decode SSE frames into their JSON payloads."""
    events = []
    for frame in frames:
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        events.append(json.loads(frame[len("data: "):]))
    return events


def _build(
    chat: FakeAIProvider = None,
    translator: FakeAIProvider = None,
    scoped_threshold: float = 0.3,
    global_threshold: float = 0.1,
    embedder: FakeEmbeddingProvider = None,
    populate: bool = True,
):
    """Orchestrator over a store holding one chunk at similarity 0.42 to QUESTION."""
    embedder = embedder or FakeEmbeddingProvider(vectors={QUESTION: QUERY_VECTOR})
    store = FaissVectorStore(dim=DIM)
    if populate:
        store.add(
            IndexedDocument(
                id="doc-x",
                collection_id="repo-x",
                content="X parses configuration files.",
                metadata={"source_name": "acme/x", "source_url": "https://github.com/acme/x"},
            ),
            MATCH_VECTOR,
        )
    indexer = RagIndexer(store, EmbeddingService(embedder))
    chat = chat or FakeAIProvider()
    orchestrator = RagOrchestrator(
        indexer,
        LanguageBridge(translator),
        AnswerGenerator(chat),
        scoped_threshold=scoped_threshold,
        global_threshold=global_threshold,
    )
    return orchestrator, chat


# ---------------------------------------------------------------------------
# Event framing
# ---------------------------------------------------------------------------

class TestFormatEvent:
    def test_content_frame(self):
        assert format_event("content", "hi") == 'data: {"type":"content","data":"hi"}\n\n'

    def test_done_frame_has_no_data(self):
        assert format_event("done") == 'data: {"type":"done"}\n\n'

    def test_metadata_frame(self):
        frame = format_event("metadata", {"originalLanguage": "zh", "wasTranslated": True})
        assert frame == 'data: {"type":"metadata","data":{"originalLanguage":"zh","wasTranslated":true}}\n\n'

    def test_non_ascii_kept(self):
        assert "你好" in format_event("content", "你好")


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

class TestQueryRun:
    def test_happy_path(self):
        run = QueryRun()
        for state in (QueryState.TRANSLATING, QueryState.SEARCHING, QueryState.GENERATING,
                      QueryState.STREAMING, QueryState.DONE):
            run.advance(state)
        assert run.finished

    def test_error_reachable_from_non_terminal_states(self):
        run = QueryRun()
        run.advance(QueryState.TRANSLATING)
        run.advance(QueryState.ERROR)
        assert run.state == QueryState.ERROR

    def test_terminal_states_reject_transitions(self):
        run = QueryRun()
        run.advance(QueryState.TRANSLATING)
        run.advance(QueryState.SEARCHING)
        run.advance(QueryState.NO_MATCH)
        with pytest.raises(RuntimeError):
            run.advance(QueryState.GENERATING)
        with pytest.raises(RuntimeError):
            run.advance(QueryState.ERROR)

    def test_cannot_skip_states(self):
        with pytest.raises(RuntimeError):
            QueryRun().advance(QueryState.SEARCHING)


# ---------------------------------------------------------------------------
# prepare: errors before streaming
# ---------------------------------------------------------------------------

class TestPrepare:
    @pytest.mark.parametrize("query", ["", "   ", None, 42])
    def test_invalid_input(self, query):
        orchestrator, chat = _build()
        with pytest.raises(InvalidInputError) as exc_info:
            orchestrator.prepare(query)
        assert exc_info.value.status_code == 400
        assert chat.prompts == []

    def test_match_above_scoped_threshold(self):
        orchestrator, _ = _build(scoped_threshold=0.3)
        prepared = orchestrator.prepare(QUESTION, ["repo-x"])
        assert len(prepared.hits) == 1
        assert prepared.hits[0].similarity == pytest.approx(0.42, abs=1e-5)
        assert prepared.state == QueryState.GENERATING

    def test_no_match_above_stricter_threshold(self):
        orchestrator, chat = _build(scoped_threshold=0.5)
        with pytest.raises(NoMatchError) as exc_info:
            orchestrator.prepare(QUESTION, ["repo-x"])
        assert exc_info.value.scoped is True
        assert exc_info.value.status_code == 404
        assert "selected repositories" in exc_info.value.message
        assert chat.prompts == []

    def test_global_search_uses_global_threshold(self):
        orchestrator, _ = _build(scoped_threshold=0.9, global_threshold=0.1)
        prepared = orchestrator.prepare(QUESTION)
        assert len(prepared.hits) == 1

    def test_empty_collection_list_is_global(self):
        orchestrator, _ = _build(scoped_threshold=0.9, global_threshold=0.1)
        assert len(orchestrator.prepare(QUESTION, []).hits) == 1

    def test_no_match_on_empty_index(self):
        orchestrator, _ = _build(populate=False)
        with pytest.raises(NoMatchError) as exc_info:
            orchestrator.prepare(QUESTION)
        assert exc_info.value.index_empty is True
        assert "No documents have been indexed" in exc_info.value.message

    def test_no_match_unscoped_with_content(self):
        orchestrator, _ = _build(global_threshold=0.5)
        with pytest.raises(NoMatchError) as exc_info:
            orchestrator.prepare(QUESTION)
        assert exc_info.value.index_empty is False
        assert exc_info.value.message == "No relevant context found in indexed repositories"

    def test_scope_excludes_other_collections(self):
        orchestrator, _ = _build()
        with pytest.raises(NoMatchError):
            orchestrator.prepare(QUESTION, ["repo-other"])

    def test_embedding_failure_aborts_query(self):
        embedder = FakeEmbeddingProvider(fail_on={QUESTION})
        orchestrator, chat = _build(embedder=embedder)
        with pytest.raises(EmbeddingServiceError):
            orchestrator.prepare(QUESTION)
        assert chat.prompts == []

    def test_prompt_is_grounded(self):
        orchestrator, _ = _build()
        prompt = orchestrator.prepare(QUESTION, ["repo-x"]).prompt
        assert "[1] (Source: acme/x - https://github.com/acme/x)" in prompt
        assert "X parses configuration files." in prompt
        assert f"User Question: {QUESTION}" in prompt
        assert "based solely on the provided context" in prompt
        assert "respond in" not in prompt
        assert prompt.endswith("Answer:")


# ---------------------------------------------------------------------------
# events: streaming
# ---------------------------------------------------------------------------

class TestEvents:
    def test_event_order(self):
        orchestrator, chat = _build(chat=FakeAIProvider(fragments=["X ", "parses ", "config."]))
        events = _parse(orchestrator.answer(QUESTION, ["repo-x"]))
        assert [e["type"] for e in events] == ["metadata", "content", "content", "content", "done"]
        assert events[0]["data"] == {"originalLanguage": "en", "wasTranslated": False}
        assert "".join(e["data"] for e in events if e["type"] == "content") == "X parses config."
        assert "data" not in events[-1]
        assert chat.closed is True

    def test_chinese_query(self):
        translator = FakeAIProvider(reply=(
            '{"language": "Chinese", "languageCode": "zh", "isEnglish": false, '
            f'"translatedText": "{QUESTION}"}}'
        ))
        chat = FakeAIProvider(fragments=["X 解析", "配置文件。"])
        orchestrator, _ = _build(chat=chat, translator=translator)

        prepared = orchestrator.prepare("X 是做什么的？", ["repo-x"])
        events = _parse(prepared.events())

        assert events[0] == {
            "type": "metadata",
            "data": {"originalLanguage": "zh", "wasTranslated": True},
        }
        assert [e["type"] for e in events[1:]] == ["content", "content", "done"]
        prompt = chat.prompts[0]
        assert f"User Question (in English): {QUESTION}" in prompt
        assert "You must respond in Chinese" in prompt
        assert prompt.endswith("Answer:")

    def test_translation_failure_is_silent(self):
        translator = FakeAIProvider(call_error=RuntimeError("service unavailable"))
        orchestrator, _ = _build(translator=translator)
        events = _parse(orchestrator.answer(QUESTION, ["repo-x"]))
        assert events[0]["data"] == {"originalLanguage": "en", "wasTranslated": False}
        assert events[-1]["type"] == "done"

    def test_stream_failure_emits_error_then_done(self):
        chat = FakeAIProvider(fragments=["partial ", "answer", "never"], fail_after=2)
        orchestrator, _ = _build(chat=chat)
        prepared = orchestrator.prepare(QUESTION, ["repo-x"])
        events = _parse(prepared.events())
        assert [e["type"] for e in events] == ["metadata", "content", "content", "error", "done"]
        assert "model overloaded" in events[3]["data"]
        assert prepared.state == QueryState.DONE

    def test_failure_before_first_fragment(self):
        chat = FakeAIProvider(fragments=["never"], fail_after=0)
        orchestrator, _ = _build(chat=chat)
        events = _parse(orchestrator.answer(QUESTION, ["repo-x"]))
        assert [e["type"] for e in events] == ["metadata", "error", "done"]

    def test_metadata_precedes_model_call(self):
        orchestrator, chat = _build()
        events = orchestrator.answer(QUESTION, ["repo-x"])
        first = next(events)
        assert json.loads(first[len("data: "):])["type"] == "metadata"
        assert chat.prompts == []
        events.close()

    def test_close_mid_stream_closes_model_stream(self):
        chat = FakeAIProvider(fragments=["a", "b", "c", "d"])
        orchestrator, _ = _build(chat=chat)
        prepared = orchestrator.prepare(QUESTION, ["repo-x"])
        events = prepared.events()
        next(events)  # metadata
        next(events)  # first content
        events.close()
        assert chat.closed is True
        assert chat.pulled == 1
        assert prepared.state == QueryState.ERROR

    def test_done_is_terminal(self):
        orchestrator, _ = _build()
        prepared = orchestrator.prepare(QUESTION, ["repo-x"])
        frames = list(prepared.events())
        assert _parse(frames)[-1] == {"type": "done"}
        assert prepared.state == QueryState.DONE
