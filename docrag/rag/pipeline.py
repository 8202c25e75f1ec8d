"""RAG pipeline: index a document, then answer questions against it.

Orchestrates:
- Text chunking
- Embedding generation
- Vector index construction (build-then-query)
- Retrieval, prompt assembly and generation
- Index and chunk table persistence
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from docrag.db import DB_FILENAME, ChunkStore
from docrag.errors import InvalidArgument, ModelError
from docrag.rag.chunker import Chunk, TextChunker
from docrag.rag.embedder import BaseEmbedder
from docrag.rag.generator import BaseGenerator, GenerationResult
from docrag.rag.prompt import PromptTemplate, assemble
from docrag.rag.retriever import RetrievalResult, Retriever
from docrag.rag.store_faiss import VectorIndex

logger = structlog.get_logger()


@dataclass
class Answer:
    """A generated answer with the material it was grounded on."""

    query: str
    chunks: List[Chunk]
    prompt: str
    generation: GenerationResult

    @property
    def text(self) -> str:
        return self.generation.text


class RAGPipeline:
    """Owns one vector index and its chunk table for a single document."""

    def __init__(
        self,
        embedder: BaseEmbedder,
        generator: Optional[BaseGenerator] = None,
        chunk_size: int = None,
        chunk_overlap: int = None,
        index_type: str = None,
        metric: str = None,
        capacity: int = None,
        top_k: int = None,
        template: PromptTemplate = PromptTemplate(),
    ):
        """Initialize the pipeline.

        Args:
            embedder: Embedding adapter, used for chunks and queries alike
            generator: Generation adapter (only needed for ``answer``)
            chunk_size: Chunk size in codepoints (default from config)
            chunk_overlap: Chunk overlap in codepoints (default from config)
            index_type: "flat" or "hnsw" (default from config)
            metric: Distance metric (default from config)
            capacity: Maximum number of vectors (default from config)
            top_k: Default number of chunks to retrieve (default from config)
            template: Prompt template for ``answer``
        """
        self.embedder = embedder
        self.generator = generator
        self.chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.index_type = index_type
        self.metric = metric
        self.capacity = capacity
        self.top_k = top_k
        self.template = template

        self.index: Optional[VectorIndex] = None
        self.chunks: List[Chunk] = []
        self._retriever: Optional[Retriever] = None

        self.stats = {
            "chunks_created": 0,
            "embeddings_generated": 0,
            "vectors_indexed": 0,
        }

        logger.info(
            "rag_pipeline_initialized",
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            index_type=index_type,
            metric=metric,
        )

    @property
    def retriever(self) -> Retriever:
        if self._retriever is None:
            raise RuntimeError("No index built. Call build() or load() first.")
        return self._retriever

    def _attach(self, index: VectorIndex, chunks: List[Chunk]) -> None:
        self.index = index
        self.chunks = chunks
        self._retriever = Retriever(index, self.embedder, chunks, top_k=self.top_k)

    async def build(self, text: str, rebuild: bool = False) -> Dict[str, Any]:
        """Chunk, embed and index a document.

        The new index is only attached once every chunk is inserted, so a
        failure part-way leaves the previous index in place.

        Args:
            text: Document text
            rebuild: Replace an existing non-empty index

        Returns:
            Dictionary with ingestion statistics

        Raises:
            InvalidArgument: If an index is already built and rebuild is False
            ModelError: If embedding fails
            CapacityExceeded: If the document has more chunks than the index capacity
        """
        if self.index is not None and len(self.index) > 0 and not rebuild:
            raise InvalidArgument("Index already built. Pass rebuild=True to replace it.")

        logger.info("build_started", text_length=len(text), rebuild=rebuild)

        chunks = self.chunker.chunk_text(text)
        dimension = await self.embedder.get_dimension()

        index = VectorIndex(
            dimension=dimension,
            metric=self.metric,
            capacity=self.capacity,
            index_type=self.index_type,
        )

        embeddings = await self.embedder.embed([chunk.text for chunk in chunks])
        if len(embeddings) != len(chunks):
            raise ModelError(
                "embedding",
                f"got {len(embeddings)} embeddings for {len(chunks)} chunks",
            )

        # Labels are assigned in insertion order and must equal chunk ids
        ordered = sorted(zip(chunks, embeddings), key=lambda pair: pair[0].id)
        labels = index.add_many([embedding for _, embedding in ordered])

        if labels != [chunk.id for chunk, _ in ordered]:
            raise RuntimeError("Vector labels diverged from chunk ids during indexing")

        self._attach(index, chunks)

        self.stats = {
            "chunks_created": len(chunks),
            "embeddings_generated": len(embeddings),
            "vectors_indexed": len(index),
        }

        logger.info("build_completed", stats=self.stats)

        return self.stats

    async def search(self, query: str, top_k: Optional[int] = None) -> List[RetrievalResult]:
        """Return scored chunks in relevance order."""
        return await self.retriever.search(query, top_k=top_k)

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[Chunk]:
        """Return the most relevant chunks in document order."""
        return await self.retriever.retrieve(query, top_k=top_k)

    async def answer(
        self,
        query: str,
        top_k: Optional[int] = None,
        max_new_tokens: Optional[int] = None,
    ) -> Answer:
        """Retrieve context for the query and generate a grounded answer.

        Raises:
            RuntimeError: If no index is built or no generator is configured
            PromptTooLong: If the assembled prompt does not fit the generator budget
            ModelError: If embedding or generation fails
        """
        if self.generator is None:
            raise RuntimeError("No generator configured for this pipeline.")

        chunks = await self.retrieve(query, top_k=top_k)
        prompt = assemble(chunks, query, self.template)
        generation = await self.generator.generate(prompt, max_new_tokens=max_new_tokens)

        logger.info(
            "answer_generated",
            query_length=len(query),
            chunk_ids=[chunk.id for chunk in chunks],
            answer_length=len(generation.text),
        )

        return Answer(query=query, chunks=chunks, prompt=prompt, generation=generation)

    def save(self, index_dir: Path) -> None:
        """Persist the index and chunk table to ``index_dir``."""
        if self.index is None:
            raise RuntimeError("No index to save. Build or load an index first.")

        index_dir = Path(index_dir)
        embedding_model = getattr(self.embedder, "model", None)

        self.index.metadata["embedding_model"] = embedding_model
        self.index.metadata["chunk_size"] = self.chunker.chunk_size
        self.index.metadata["chunk_overlap"] = self.chunker.chunk_overlap
        self.index.save(index_dir)

        store = ChunkStore(index_dir / DB_FILENAME)
        store.init_database()
        store.replace_chunks(self.chunks)
        store.insert_index_metadata(
            embedding_model=embedding_model,
            embedding_dimension=self.index.dimension,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            total_chunks=len(self.chunks),
            metadata={"metric": self.index.metric, "index_type": self.index.index_type},
        )

    @classmethod
    async def load(
        cls,
        index_dir: Path,
        embedder: BaseEmbedder,
        generator: Optional[BaseGenerator] = None,
        top_k: int = None,
        template: PromptTemplate = PromptTemplate(),
    ) -> "RAGPipeline":
        """Load a pipeline saved with ``save``.

        Raises:
            FileNotFoundError: If the index files don't exist
            DimensionMismatch: If the embedder's dimension differs from the stored index
            RuntimeError: If the index and chunk table disagree
        """
        index_dir = Path(index_dir)
        dimension = await embedder.get_dimension()
        index = VectorIndex.load(index_dir, expected_dimension=dimension)

        db_path = index_dir / DB_FILENAME
        if not db_path.exists():
            raise FileNotFoundError(f"Chunk database not found: {db_path}")
        chunks = ChunkStore(db_path).load_chunks()

        if [chunk.id for chunk in chunks] != list(range(len(index))):
            raise RuntimeError(
                f"Chunk table ({len(chunks)} rows) does not match index ({len(index)} vectors)"
            )

        pipeline = cls(
            embedder=embedder,
            generator=generator,
            chunk_size=index.metadata.get("chunk_size"),
            chunk_overlap=index.metadata.get("chunk_overlap"),
            index_type=index.index_type,
            metric=index.metric,
            capacity=index.capacity,
            top_k=top_k,
            template=template,
        )
        pipeline._attach(index, chunks)

        logger.info("pipeline_loaded", index_dir=str(index_dir), chunk_count=len(chunks))

        return pipeline
