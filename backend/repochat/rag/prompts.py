"""Prompt template for grounded answer generation.

Passages are numbered in retrieval order and tagged with their source
collection so the model can cite where each fact came from.
"""
from typing import List, Sequence

from .vector_store import SearchHit

# =============================================================================
# Grounded answer prompt
# =============================================================================

RAG_PROMPT = """You are a helpful AI assistant that answers questions based on the provided context from indexed GitHub repositories.

Context from repositories:
{context}

User Question{question_label}: {question}

Instructions:
- Answer the question based solely on the provided context
- If the context doesn't contain relevant information, say so plainly
- Be concise but thorough
- Reference specific parts of the context when relevant
- Cite the source repository of each fact you use; if multiple repositories are relevant, mention which ones"""

ANSWER_SUFFIX = "\n\nAnswer:"


def format_source(hit: SearchHit) -> str:
    """Label for a passage: ``name - url``, either part, or the collection id."""
    name = hit.metadata.get("source_name")
    url = hit.metadata.get("source_url")
    if name and url:
        return f"{name} - {url}"
    return name or url or hit.collection_id


def format_context(hits: Sequence[SearchHit]) -> str:
    passages: List[str] = []
    for i, hit in enumerate(hits, start=1):
        passages.append(f"[{i}] (Source: {format_source(hit)})\n{hit.content}")
    return "\n\n".join(passages)


def build_rag_prompt(question: str, hits: Sequence[SearchHit], translated: bool = False) -> str:
    """Build the grounded prompt, without the trailing ``Answer:`` cue.

    The response-language instruction is appended by the caller before
    :data:`ANSWER_SUFFIX`.
    """
    return RAG_PROMPT.format(
        context=format_context(hits),
        question_label=" (in English)" if translated else "",
        question=question,
    )
