"""Tests for the SQLite chunk table."""
from docrag.db import ChunkStore
from docrag.rag.chunker import chunk_text


def test_replace_and_load_chunks(tmp_path):
    store = ChunkStore(tmp_path / "nested" / "chunks.sqlite")
    store.init_database()

    store.replace_chunks(chunk_text("first version of the text", 7))
    chunks = chunk_text("ünïcode ✓ second", 4)
    store.replace_chunks(chunks)

    assert store.load_chunks() == chunks


def test_latest_index_metadata(tmp_path):
    store = ChunkStore(tmp_path / "chunks.sqlite")
    store.init_database()

    assert store.get_latest_index_metadata() is None

    store.insert_index_metadata("model-a", 384, 1024, 0, 10)
    row_id = store.insert_index_metadata("model-b", 768, 512, 0, 20, metadata={"metric": "cosine"})

    latest = store.get_latest_index_metadata()
    assert latest["id"] == row_id
    assert latest["embedding_model"] == "model-b"
    assert latest["embedding_dimension"] == 768
    assert latest["metadata"] == {"metric": "cosine"}
