"""Tests for fixed-window chunking."""
import math

import pytest

from docrag.errors import InvalidArgument
from docrag.rag.chunker import Chunk, TextChunker, chunk_text


def test_chunks_cover_document(sample_document):
    """Concatenating chunks in id order reproduces the document."""
    chunks = chunk_text(sample_document, 1024)
    assert "".join(c.text for c in chunks) == sample_document


def test_sample_document_chunk_sizes(sample_document):
    chunks = chunk_text(sample_document, 1024)

    assert [len(c.text) for c in chunks] == [1024, 1024, 152]
    assert [c.id for c in chunks] == [0, 1, 2]
    assert [(c.start_offset, c.end_offset) for c in chunks] == [(0, 1024), (1024, 2048), (2048, 2200)]


@pytest.mark.parametrize("length,size", [(1, 1), (1, 5), (10, 3), (99, 10), (100, 10), (1000, 1024)])
def test_chunk_count(length, size):
    text = "x" * length
    assert len(chunk_text(text, size)) == math.ceil(length / size)


def test_empty_text_yields_no_chunks():
    assert chunk_text("", 1024) == []


@pytest.mark.parametrize("size", [0, -1, True])
def test_non_positive_size_rejected(size):
    with pytest.raises(InvalidArgument):
        TextChunker(chunk_size=size)


def test_overlap_must_be_smaller_than_size():
    with pytest.raises(InvalidArgument):
        TextChunker(chunk_size=10, chunk_overlap=10)


def test_windows_are_codepoints_not_bytes():
    """Multi-byte characters are never split."""
    text = "héllo wörld 🙂🙃 ñandú 日本語"
    chunks = chunk_text(text, 3)

    assert "".join(c.text for c in chunks) == text
    assert all(len(c.text) <= 3 for c in chunks)
    for c in chunks:
        c.text.encode("utf-8")  # no lone surrogates


def test_chunking_is_deterministic():
    text = "The quick brown fox jumps over the lazy dog. " * 20
    assert chunk_text(text, 37) == chunk_text(text, 37)


def test_offsets_strictly_increase():
    chunks = chunk_text("abcdefghij" * 7, 9)
    for previous, current in zip(chunks, chunks[1:]):
        assert previous.start_offset < current.start_offset
        assert previous.end_offset == current.start_offset
    assert all(c.end_offset - c.start_offset <= 9 for c in chunks)


def test_overlapping_windows():
    chunks = chunk_text("abcdefghij", 4, overlap=2)

    assert [c.text for c in chunks] == ["abcd", "cdef", "efgh", "ghij"]
    assert [c.id for c in chunks] == [0, 1, 2, 3]


def test_chunk_stats():
    chunker = TextChunker(chunk_size=4)
    stats = chunker.get_chunk_stats(chunker.chunk_text("abcdefghij"))

    assert stats["chunk_count"] == 3
    assert stats["total_chars"] == 10
    assert stats["min_chunk_size"] == 2
    assert stats["max_chunk_size"] == 4


def test_chunk_is_immutable():
    chunk = Chunk(id=0, text="abc", start_offset=0, end_offset=3)
    with pytest.raises(AttributeError):
        chunk.text = "xyz"
    assert len(chunk) == 3
