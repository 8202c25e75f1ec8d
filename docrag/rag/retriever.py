"""Retriever for semantic search over an indexed document.

Handles:
- Query embedding generation
- Vector index search
- Label to chunk mapping
- Document-order context assembly
"""
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import structlog

from docrag import config
from docrag.errors import require_positive_int
from docrag.rag.chunker import Chunk
from docrag.rag.embedder import BaseEmbedder
from docrag.rag.prompt import PromptTemplate, format_context
from docrag.rag.store_faiss import VectorIndex

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetrievalResult:
    """A single retrieved chunk with its distance to the query."""

    chunk: Chunk
    distance: float

    @property
    def chunk_id(self) -> int:
        return self.chunk.id


class Retriever:
    """Semantic retriever for the RAG pipeline.

    Relevance decides which chunks are returned; ``retrieve`` then puts
    them back in document order so the generator sees snippets in the
    sequence they appear in the source.
    """

    def __init__(
        self,
        index: VectorIndex,
        embedder: BaseEmbedder,
        chunks: Sequence[Chunk],
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            index: Vector index whose labels are chunk ids
            embedder: Embedder used to build the index
            chunks: Chunk table for mapping labels back to text
            top_k: Default number of results (default from config)
        """
        self.index = index
        self.embedder = embedder
        self.chunks: Dict[int, Chunk] = {chunk.id: chunk for chunk in chunks}
        self.top_k = require_positive_int("top_k", config.RETRIEVAL_TOP_K if top_k is None else top_k)

        logger.debug(
            "retriever_initialized",
            chunk_count=len(self.chunks),
            top_k=self.top_k,
        )

    async def search(self, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Return the chunks closest to the query, closest first.

        Raises:
            InvalidArgument: If top_k is not a positive integer
            ModelError: If the query cannot be embedded
        """
        top_k = require_positive_int("top_k", self.top_k if top_k is None else top_k)

        if len(self.index) == 0:
            logger.warning("empty_index_no_results")
            return []

        query_embedding = await self.embedder.embed_one(query)
        neighbours = self.index.knn_query(query_embedding, top_k)

        results = []
        for label, distance in neighbours:
            chunk = self.chunks.get(label)
            if chunk is None:
                logger.warning("vector_label_without_chunk", label=label)
                continue
            results.append(RetrievalResult(chunk=chunk, distance=distance))

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_distance=results[0].distance if results else None,
        )

        return results

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[Chunk]:
        """Return the most relevant chunks in document order (ascending id)."""
        results = await self.search(query, top_k=top_k)
        return sorted((r.chunk for r in results), key=lambda chunk: chunk.id)

    async def retrieve_context(
        self,
        query: str,
        top_k: Optional[int] = None,
        template: PromptTemplate = PromptTemplate(),
    ) -> str:
        """Retrieve chunks and join them into a context string."""
        chunks = await self.retrieve(query, top_k=top_k)
        context = format_context(chunks, template)

        logger.debug(
            "context_formatted",
            num_chunks=len(chunks),
            total_chars=len(context),
        )

        return context
