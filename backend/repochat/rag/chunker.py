"""Hierarchical text chunking for the ingestion pipeline.

Splits a document into overlapping chunks suitable for embedding.  The
splitter prefers the coarsest separator that yields pieces no longer than
``chunk_size``: paragraphs, then lines, then sentences, then words, and only
as a last resort raw characters (the only level that may cut a word).

Chunks are character spans of the original text.  Each chunk's metadata
records ``start``/``end`` offsets and ``overlap``, the number of leading
characters it shares with its predecessor, so the document can be rebuilt
exactly with :func:`dechunk`.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from repochat.errors import ConfigError

logger = logging.getLogger(__name__)

SEPARATORS: Tuple[str, ...] = ("\n\n", "\n", ". ", " ", "")

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

Span = Tuple[int, int]


@dataclass(frozen=True)
class Chunk:
    """A single chunk of a document, ready for embedding.

    ``ordinal`` and ``total_in_collection`` are fixed at creation.
    """

    content: str
    ordinal: int
    total_in_collection: int
    metadata: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def split_text(
    text: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    overlap: int = DEFAULT_CHUNK_OVERLAP,
) -> List[Chunk]:
    """Split *text* into ordered, overlapping chunks.

    Steps:
    1. Cut the text into pieces no longer than ``chunk_size`` using the
       coarsest separator present, recursing into oversized pieces with the
       next finer separator.  Separators stay attached to the end of the
       piece they terminate, so pieces tile the text exactly.
    2. Greedily pack consecutive pieces into chunks of at most
       ``chunk_size`` characters.
    3. Start every chunk after the first ``overlap`` characters before the
       end of its predecessor, widened back to a word boundary when the size
       budget allows.  A following piece too long to fit beside the full
       overlap is first re-split with the next finer separator.

    Args:
        text:       Raw document text.
        chunk_size: Maximum characters per chunk.
        overlap:    Characters shared between consecutive chunks.

    Returns:
        Chunks in document order; empty for empty or whitespace-only text.

    Raises:
        ConfigError: If ``chunk_size <= 0`` or ``overlap`` is negative or
            not strictly smaller than ``chunk_size``.
    """
    if chunk_size <= 0:
        raise ConfigError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ConfigError(
            f"overlap must be >= 0 and smaller than chunk_size ({overlap} vs {chunk_size})"
        )

    if not text or not text.strip():
        return []

    pieces = _split_pieces(text, 0, len(text), SEPARATORS, chunk_size)
    spans = _pack_pieces(text, pieces, chunk_size, overlap)
    total = len(spans)

    logger.debug(
        "[chunker] %d chars -> %d pieces -> %d chunks (size=%d overlap=%d)",
        len(text), len(pieces), total, chunk_size, overlap,
    )

    return [
        Chunk(
            content=text[start:end],
            ordinal=index,
            total_in_collection=total,
            metadata={
                "chunk_index": index,
                "total_chunks": total,
                "start": start,
                "end": end,
                "overlap": shared,
            },
        )
        for index, (start, end, shared) in enumerate(spans)
    ]


def dechunk(chunks: Sequence[Chunk]) -> str:
    """Rebuild the original text by dropping each chunk's leading overlap."""
    return "".join(c.content[c.metadata.get("overlap", 0):] for c in chunks)


# ---------------------------------------------------------------------------
# Piece splitting
# ---------------------------------------------------------------------------

def _split_pieces(
    text: str,
    start: int,
    end: int,
    separators: Sequence[str],
    chunk_size: int,
) -> List[Span]:
    """Return spans tiling ``text[start:end]``, each at most ``chunk_size`` long."""
    if end - start <= chunk_size:
        return [(start, end)]

    for level, separator in enumerate(separators):
        if separator == "":
            return [(pos, min(pos + chunk_size, end)) for pos in range(start, end, chunk_size)]
        if text.find(separator, start, end) != -1:
            break
    else:
        # No separator matched and no raw-character level configured
        return [(pos, min(pos + chunk_size, end)) for pos in range(start, end, chunk_size)]

    finer = separators[level + 1:]
    pieces: List[Span] = []
    for piece_start, piece_end in _cut_after(text, start, end, separator):
        if piece_end - piece_start <= chunk_size:
            pieces.append((piece_start, piece_end))
        else:
            pieces.extend(_split_pieces(text, piece_start, piece_end, finer, chunk_size))
    return pieces


def _cut_after(text: str, start: int, end: int, separator: str) -> List[Span]:
    """Cut ``text[start:end]`` after every occurrence of *separator*."""
    spans: List[Span] = []
    pos = start
    while True:
        idx = text.find(separator, pos, end)
        if idx == -1:
            break
        cut = idx + len(separator)
        spans.append((pos, cut))
        pos = cut
    if pos < end:
        spans.append((pos, end))
    return spans


# ---------------------------------------------------------------------------
# Packing
# ---------------------------------------------------------------------------

def _pack_pieces(
    text: str,
    pieces: List[Span],
    chunk_size: int,
    overlap: int,
) -> List[Tuple[int, int, int]]:
    """Pack pieces into ``(start, end, shared_with_previous)`` chunk spans.

    Every chunk takes at least one piece its predecessor did not cover, so
    the loop always advances.
    """
    pieces = list(pieces)
    spans: List[Tuple[int, int, int]] = []
    i = 0
    while i < len(pieces):
        piece_start, piece_end = pieces[i]
        if spans:
            prev_start, prev_end, _ = spans[-1]
            wanted = min(overlap, prev_end - prev_start)
            if piece_end - piece_start > chunk_size - wanted:
                pieces[i:i + 1] = _split_pieces(
                    text, piece_start, piece_end, SEPARATORS, chunk_size - wanted,
                )
                piece_start, piece_end = pieces[i]
            chunk_start = _overlap_start(
                text, prev_start, prev_end, piece_end - piece_start, chunk_size, overlap,
            )
            shared = prev_end - chunk_start
        else:
            chunk_start = piece_start
            shared = 0

        chunk_end = piece_end
        i += 1
        while i < len(pieces) and pieces[i][1] - chunk_start <= chunk_size:
            chunk_end = pieces[i][1]
            i += 1

        spans.append((chunk_start, chunk_end, shared))
    return spans


def _overlap_start(
    text: str,
    prev_start: int,
    prev_end: int,
    next_len: int,
    chunk_size: int,
    overlap: int,
) -> int:
    """Pick where the next chunk starts inside its predecessor."""
    room = chunk_size - next_len
    budget = min(overlap, room, prev_end - prev_start)
    if budget <= 0:
        return prev_end

    start = prev_end - budget
    if start == prev_start or text[start - 1].isspace():
        return start

    # Widen back to the start of the word, never past the size budget.
    limit = max(prev_end - room, prev_start)
    for pos in range(start - 1, limit - 1, -1):
        if pos == prev_start or text[pos - 1].isspace():
            return pos
    return start
