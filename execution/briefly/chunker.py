"""
Document Chunker for Briefly CoPilot

Splits extracted document text into fixed-size, overlapping character
windows ready for embedding. Also provides a sentence-aware splitter used
when a contract is too large to review in a single model call.

Window arithmetic:
    step = max(1, chunk_size - max(0, overlap))
    windows start at 0, step, 2*step, ... and the final window always ends
    exactly at len(text).
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ChunkConfig:
    """Configuration for chunking parameters."""
    # Larger windows mean fewer embedding calls per document
    chunk_size: int = 3000
    overlap: int = 200


@dataclass
class TextChunk:
    """A bounded substring of a source document, ready for embedding."""
    chunk_index: int
    text: str
    metadata: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "chunk_index": self.chunk_index,
            "chunk_text": self.text,
            "metadata": self.metadata,
        }


def split_into_chunks(text: str, chunk_size: int = 3000, overlap: int = 200) -> list[str]:
    """
    Split text into overlapping fixed-size windows.

    Args:
        text: Source text
        chunk_size: Window length in characters
        overlap: Characters shared between consecutive windows (negative is treated as 0)

    Returns:
        List of window strings; empty list for empty text
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    chunks = []
    safe_overlap = max(0, overlap)
    step = max(1, chunk_size - safe_overlap)

    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            break
        start += step

    return chunks


def split_at_sentences(text: str, max_chars: int) -> list[str]:
    """
    Split text into pieces of at most max_chars, preferring sentence breaks.

    A piece ends just after the last ". " or blank line inside its window,
    but only when that break lies beyond 70% of the window; otherwise the
    piece is cut at max_chars. Pieces do not overlap, so joining them gives
    back the original text.
    """
    if max_chars <= 0:
        raise ValueError(f"max_chars must be positive, got {max_chars}")
    if len(text) <= max_chars:
        return [text]

    pieces = []
    start = 0
    while start < len(text):
        end = min(start + max_chars, len(text))

        if end < len(text):
            last_period = text.rfind(". ", start, end + 1)
            last_blank = text.rfind("\n\n", start, end + 1)
            break_point = max(last_period, last_blank)
            if break_point > start + max_chars * 0.7:
                end = break_point + 1

        pieces.append(text[start:end])
        start = end

    return pieces


class DocumentChunker:
    """Chunks document text into indexed windows with per-chunk metadata."""

    def __init__(self, config: Optional[ChunkConfig] = None):
        self.config = config or ChunkConfig()

    def chunk(self, text: str, filename: str = "") -> list[TextChunk]:
        """
        Chunk a document's text.

        Args:
            text: Extracted document text
            filename: Source filename, recorded in chunk metadata

        Returns:
            List of TextChunk objects in document order
        """
        windows = split_into_chunks(
            text,
            chunk_size=self.config.chunk_size,
            overlap=self.config.overlap,
        )
        logger.info(f"Split {filename or 'document'} ({len(text)} chars) into {len(windows)} chunks")

        return [
            TextChunk(
                chunk_index=i,
                text=window,
                metadata={"char_count": len(window), "filename": filename},
            )
            for i, window in enumerate(windows)
        ]
