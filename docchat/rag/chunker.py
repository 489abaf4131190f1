"""Text chunking with overlap for RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies. Chunk ends
are snapped to a nearby paragraph break, or failing that a sentence end, so
that chunks read as coherent passages.
"""
from dataclasses import dataclass
from typing import Iterator, List, Tuple

import structlog

from docchat import config

logger = structlog.get_logger()

PARAGRAPH_BREAK = "\n\n"
SENTENCE_END = ". "


@dataclass
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    if chunk_overlap < 0:
        raise ValueError(f"Overlap must not be negative, got {chunk_overlap}")
    if chunk_overlap >= chunk_size:
        raise ValueError(
            f"Overlap ({chunk_overlap}) must be less than chunk size ({chunk_size})"
        )


def _snap_end(
    text: str,
    start: int,
    end: int,
    paragraph_window: int,
    sentence_lookback: int,
    sentence_lookahead: int,
) -> int:
    """Move a proposed chunk end onto a nearby paragraph or sentence boundary.

    Searches never reach back to ``start`` itself, so the snapped end always
    lies after the chunk start.
    """
    paragraph = text.find(PARAGRAPH_BREAK, max(end - paragraph_window, start + 1))
    if paragraph != -1 and paragraph < end + paragraph_window:
        return paragraph

    sentence = text.find(SENTENCE_END, max(end - sentence_lookback, start + 1))
    if sentence != -1 and sentence < end + sentence_lookahead:
        return sentence + 1  # keep the period

    return end


def iter_spans(
    text: str,
    chunk_size: int,
    chunk_overlap: int,
    paragraph_window: int = None,
    sentence_lookback: int = None,
    sentence_lookahead: int = None,
) -> Iterator[Tuple[int, int]]:
    """Yield ``(start, end)`` offsets of successive overlapping chunks.

    Always yields at least one span, ``(0, 0)`` for empty text.
    """
    _validate(chunk_size, chunk_overlap)
    if paragraph_window is None:
        paragraph_window = config.PARAGRAPH_SNAP_WINDOW
    if sentence_lookback is None:
        sentence_lookback = config.SENTENCE_SNAP_LOOKBACK
    if sentence_lookahead is None:
        sentence_lookahead = config.SENTENCE_SNAP_LOOKAHEAD

    text_length = len(text)
    start = 0

    while True:
        end = start + chunk_size

        if end < text_length:
            end = _snap_end(
                text, start, end, paragraph_window, sentence_lookback, sentence_lookahead
            )

        end = min(end, text_length)
        yield start, end

        if end >= text_length:
            return

        # Move to next chunk with overlap; a span shorter than the overlap
        # would stall the walk, so continue from its end instead
        next_start = end - chunk_overlap
        if next_start <= start:
            next_start = end
        start = next_start


def split_text(text: str, chunk_size: int, chunk_overlap: int) -> List[str]:
    """Split text into overlapping chunks.

    Chunks are returned verbatim, including whitespace-only ones; dropping
    empty chunks is left to the caller.

    Args:
        text: Text to split
        chunk_size: Target characters per chunk
        chunk_overlap: Characters shared by consecutive chunks

    Returns:
        List of chunk strings, at least one

    Raises:
        ValueError: Unless chunk_size > chunk_overlap >= 0
    """
    return [text[start:end] for start, end in iter_spans(text, chunk_size, chunk_overlap)]


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)

        Raises:
            ValueError: Unless chunk_size > chunk_overlap >= 0
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        _validate(self.chunk_size, self.chunk_overlap)

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        chunks = [
            TextChunk(
                content=text[start:end],
                char_start=start,
                char_end=end,
                chunk_index=index,
            )
            for index, (start, end) in enumerate(
                iter_spans(text, self.chunk_size, self.chunk_overlap)
            )
        ]

        logger.info(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }
