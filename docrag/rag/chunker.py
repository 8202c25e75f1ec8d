"""Fixed-window text chunking for the RAG pipeline.

Windows are measured in codepoints (Python str indices), so a chunk boundary
never falls inside a multi-byte character.
"""
from dataclasses import dataclass
from typing import List

import structlog

from docrag import config
from docrag.errors import InvalidArgument, require_positive_int

logger = structlog.get_logger()


@dataclass(frozen=True)
class Chunk:
    """A contiguous slice of the source document with a stable id."""

    id: int
    text: str
    start_offset: int
    end_offset: int

    def __len__(self) -> int:
        return self.end_offset - self.start_offset


class TextChunker:
    """Codepoint-based fixed-size chunker with optional overlap."""

    def __init__(self, chunk_size: int = None, chunk_overlap: int = None):
        """Initialize the text chunker.

        Args:
            chunk_size: Window size in codepoints (default from config)
            chunk_overlap: Codepoints shared by consecutive windows (default from config)

        Raises:
            InvalidArgument: If the size is not positive or the overlap is out of range
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        require_positive_int("chunk_size", self.chunk_size)

        overlap = self.chunk_overlap
        if isinstance(overlap, bool) or not isinstance(overlap, int) or not 0 <= overlap < self.chunk_size:
            raise InvalidArgument(
                f"Overlap ({self.chunk_overlap}) must be in [0, chunk size ({self.chunk_size}))"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    @property
    def stride(self) -> int:
        return self.chunk_size - self.chunk_overlap

    def chunk_text(self, text: str) -> List[Chunk]:
        """Split text into fixed windows.

        The last window may be shorter than ``chunk_size``; it is never
        dropped or padded.

        Args:
            text: Text to chunk

        Returns:
            Chunks in increasing offset order, ids 0..N-1
        """
        if not text:
            return []

        text_length = len(text)
        chunks = []
        start = 0

        while True:
            end = min(start + self.chunk_size, text_length)
            chunks.append(
                Chunk(
                    id=len(chunks),
                    text=text[start:end],
                    start_offset=start,
                    end_offset=end,
                )
            )
            if end == text_length:
                break
            start += self.stride

        logger.info(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
        )

        return chunks

    def get_chunk_stats(self, chunks: List[Chunk]) -> dict:
        """Get statistics about a set of chunks."""
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.text) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk_text(text: str, size: int, overlap: int = 0) -> List[Chunk]:
    """Chunk text into ``size``-codepoint windows (convenience function)."""
    return TextChunker(chunk_size=size, chunk_overlap=overlap).chunk_text(text)
