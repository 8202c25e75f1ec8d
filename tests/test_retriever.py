"""Tests for retrieval and document-order context assembly."""
import pytest

from docrag.errors import InvalidArgument
from docrag.rag.chunker import chunk_text
from docrag.rag.retriever import Retriever
from docrag.rag.store_faiss import VectorIndex


async def build_retriever(embedder, text, size, index_type="flat"):
    chunks = chunk_text(text, size)
    index = VectorIndex(dimension=await embedder.get_dimension(), index_type=index_type)
    index.add_many(await embedder.embed([c.text for c in chunks]))
    return Retriever(index, embedder, chunks), chunks


@pytest.mark.asyncio
async def test_ranked_results_are_returned_in_document_order(axis_embedder, sample_document):
    retriever, _ = await build_retriever(axis_embedder, sample_document, 1024)

    ranked = await retriever.search("query", top_k=2)
    assert [r.chunk_id for r in ranked] == [2, 0]
    assert ranked[0].distance < ranked[1].distance

    chunks = await retriever.retrieve("query", top_k=2)
    assert [c.id for c in chunks] == [0, 2]


@pytest.mark.asyncio
async def test_retrieved_ids_strictly_increase(hash_embedder):
    text = "".join(f"Sentence {i} talks about topic {i % 7}. " for i in range(300))
    retriever, _ = await build_retriever(hash_embedder, text, 50, index_type="hnsw")

    for query in ["topic 3", "Sentence 120", "nothing in particular"]:
        ids = [c.id for c in await retriever.retrieve(query, top_k=8)]
        assert len(ids) == 8
        assert all(a < b for a, b in zip(ids, ids[1:]))


@pytest.mark.asyncio
async def test_k_larger_than_chunk_count_returns_everything(axis_embedder, sample_document):
    retriever, chunks = await build_retriever(axis_embedder, sample_document, 1024)

    assert await retriever.retrieve("query", top_k=50) == chunks


@pytest.mark.asyncio
async def test_empty_index_returns_nothing_without_embedding(hash_embedder):
    retriever = Retriever(VectorIndex(dimension=16, index_type="flat"), hash_embedder, [])

    assert await retriever.retrieve("anything", top_k=3) == []
    assert await retriever.retrieve_context("anything", top_k=3) == ""
    assert hash_embedder.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [0, -3, True])
async def test_invalid_k(hash_embedder, k):
    retriever = Retriever(VectorIndex(dimension=16, index_type="flat"), hash_embedder, [])

    with pytest.raises(InvalidArgument):
        await retriever.retrieve("anything", top_k=k)


@pytest.mark.asyncio
async def test_context_joins_chunks_in_document_order(axis_embedder, sample_document):
    retriever, _ = await build_retriever(axis_embedder, sample_document, 1024)

    context = await retriever.retrieve_context("query", top_k=2)

    assert context == f"...{'a' * 1024}...\n\n...{'c' * 152}..."


@pytest.mark.asyncio
async def test_label_without_chunk_is_skipped(axis_embedder, sample_document):
    chunks = chunk_text(sample_document, 1024)
    index = VectorIndex(dimension=3, index_type="flat")
    index.add_many(await axis_embedder.embed([c.text for c in chunks]))
    retriever = Retriever(index, axis_embedder, chunks[:2])

    assert [c.id for c in await retriever.retrieve("query", top_k=2)] == [0]


@pytest.mark.parametrize("top_k", [0, -1, True])
def test_invalid_default_top_k(hash_embedder, top_k):
    with pytest.raises(InvalidArgument):
        Retriever(VectorIndex(dimension=16, index_type="flat"), hash_embedder, [], top_k=top_k)
