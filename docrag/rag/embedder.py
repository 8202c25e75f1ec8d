"""Embedding adapters.

The rest of the pipeline only sees ``BaseEmbedder``: an ordered,
length-preserving ``embed`` plus ``embed_one`` and the declared dimension.
``OllamaEmbedder`` implements it on top of the Ollama ``/api/embed``
endpoint with bounded-concurrency batching.
"""
import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import structlog

from docrag import config
from docrag.errors import (
    DimensionMismatch,
    InvalidArgument,
    ModelError,
    require_non_negative_int,
    require_positive_int,
    require_positive_number,
)
from docrag.llm_client import OllamaClient, call_with_retries

logger = structlog.get_logger()

TRUNCATION_POLICIES = ("truncate", "reject")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class BaseEmbedder(ABC):
    """Abstract base class for embedding models."""

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input, ``result[i]`` belonging to ``texts[i]``
        """

    @abstractmethod
    async def get_dimension(self) -> int:
        """Return the dimension of the embedding vectors."""

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text; same as ``(await embed([text]))[0]``."""
        return (await self.embed([text]))[0]


class OllamaEmbedder(BaseEmbedder):
    """Embedder backed by an Ollama embedding model.

    Inputs longer than ``max_input_chars`` are either cut to that length
    (``truncation="truncate"``) or rejected with InvalidArgument
    (``truncation="reject"``). Cutting happens here, before the request, so
    the result does not depend on server-side truncation.
    """

    def __init__(
        self,
        client: Optional[OllamaClient] = None,
        model: str = None,
        dimension: Optional[int] = None,
        batch_size: int = None,
        max_concurrency: int = None,
        max_input_chars: int = None,
        truncation: str = None,
        timeout: float = None,
        max_retries: int = None,
    ):
        """Initialize the embedder.

        Args:
            client: Ollama client (a default one is created if not provided)
            model: Embedding model name (default from config)
            dimension: Expected vector dimension (detected on first call if not provided)
            batch_size: Texts per request (default from config)
            max_concurrency: Requests in flight at once (default from config)
            max_input_chars: Longest accepted input in codepoints (default from config)
            truncation: Over-length policy, "truncate" or "reject" (default from config)
            timeout: Per-request timeout in seconds (default from config)
            max_retries: Retries per request after the first attempt (default from config)

        Raises:
            InvalidArgument: If any numeric setting is out of range or the policy is unknown
        """
        self.client = client or OllamaClient()
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension
        self.batch_size = require_positive_int(
            "batch_size", config.EMBED_BATCH_SIZE if batch_size is None else batch_size
        )
        self.max_concurrency = require_positive_int(
            "max_concurrency",
            config.EMBED_MAX_CONCURRENCY if max_concurrency is None else max_concurrency,
        )
        self.max_input_chars = require_positive_int(
            "max_input_chars",
            config.EMBED_MAX_INPUT_CHARS if max_input_chars is None else max_input_chars,
        )
        self.truncation = config.EMBED_TRUNCATION if truncation is None else truncation
        self.timeout = require_positive_number(
            "timeout", config.MODEL_TIMEOUT if timeout is None else timeout
        )
        self.max_retries = require_non_negative_int(
            "max_retries", config.MODEL_MAX_RETRIES if max_retries is None else max_retries
        )

        if self.truncation not in TRUNCATION_POLICIES:
            raise InvalidArgument(
                f"Unknown truncation policy {self.truncation!r}, expected one of {TRUNCATION_POLICIES}"
            )

    def _prepare(self, text: str) -> str:
        if not isinstance(text, str):
            raise InvalidArgument(f"Embedding input must be str, got {type(text).__name__}")

        if len(text) <= self.max_input_chars:
            return text

        if self.truncation == "reject":
            raise InvalidArgument(
                f"Input of {len(text)} chars exceeds the embedder limit of {self.max_input_chars}"
            )

        logger.debug(
            "embedding_input_truncated",
            original_length=len(text),
            max_input_chars=self.max_input_chars,
        )
        return text[: self.max_input_chars]

    async def _embed_batch(self, batch_no: int, batch: List[str]) -> List[List[float]]:
        data = await call_with_retries(
            "embedding",
            lambda: self.client.embed(batch, model=self.model),
            timeout=self.timeout,
            max_retries=self.max_retries,
        )

        vectors = data.get("embeddings")
        if not isinstance(vectors, list):
            raise ModelError("embedding", "model response has no 'embeddings' list")
        if len(vectors) != len(batch):
            raise ModelError(
                "embedding",
                f"model returned {len(vectors)} vectors for {len(batch)} inputs",
            )

        for vector in vectors:
            if not isinstance(vector, list) or not all(_is_number(x) for x in vector):
                raise ModelError("embedding", "model returned a vector that is not a list of numbers")
            if not vector:
                raise ModelError("embedding", "model returned an empty vector")
            if not any(vector):
                raise ModelError("embedding", "model returned an all-zero vector")
            if self.dimension is None:
                self.dimension = len(vector)
                logger.info("embedding_dimension_detected", dimension=self.dimension, model=self.model)
            elif len(vector) != self.dimension:
                raise DimensionMismatch(self.dimension, len(vector))

        logger.debug("embedding_batch_completed", batch_no=batch_no, batch_size=len(batch))
        return vectors

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts in batches, at most ``max_concurrency`` requests at a time.

        Raises:
            InvalidArgument: If an input is not a string, or is over-length under "reject"
            ModelError: If the model is unreachable or returns malformed output
            DimensionMismatch: If the model returns vectors of the wrong dimension
        """
        prepared = [self._prepare(text) for text in texts]
        if not prepared:
            return []

        batches = [
            prepared[i : i + self.batch_size]
            for i in range(0, len(prepared), self.batch_size)
        ]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def run(batch_no: int, batch: List[str]) -> List[List[float]]:
            async with semaphore:
                return await self._embed_batch(batch_no, batch)

        tasks = [asyncio.ensure_future(run(i, batch)) for i, batch in enumerate(batches)]
        try:
            results = await asyncio.gather(*tasks)
        except Exception as e:
            for task in tasks:
                task.cancel()
            # collect the siblings so none is left with an unretrieved exception
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.error(
                "embedding_failed",
                model=self.model,
                text_count=len(prepared),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise

        # gather keeps submission order, so batch i lands at position i
        embeddings = [vector for batch in results for vector in batch]

        logger.info(
            "embeddings_generated",
            model=self.model,
            count=len(embeddings),
            batches=len(batches),
        )
        return embeddings

    async def get_dimension(self) -> int:
        """Return the embedding dimension, embedding a sample text if it is not known yet."""
        if self.dimension is None:
            logger.info("detecting_embedding_dimension", model=self.model)
            await self.embed_one("test")
        return self.dimension
