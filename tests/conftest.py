"""Pytest configuration, fixtures and model test doubles."""
import hashlib
from typing import Callable, List, Sequence

import httpx
import numpy as np
import pytest

from docrag.llm_client import OllamaClient
from docrag.rag.embedder import BaseEmbedder
from docrag.rag.generator import BaseGenerator, GenerationResult


class HashEmbedder(BaseEmbedder):
    """Deterministic embedder: each distinct text maps to a fixed random vector."""

    def __init__(self, dimension: int = 16):
        self.dimension = dimension
        self.model = "hash-embedder"
        self.calls: List[List[str]] = []

    def vector(self, text: str) -> List[float]:
        seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "little")
        return np.random.default_rng(seed).standard_normal(self.dimension).tolist()

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self.vector(text) for text in texts]

    async def get_dimension(self) -> int:
        return self.dimension


class FunctionEmbedder(BaseEmbedder):
    """Embedder whose vectors come from a plain function, for controlled rankings."""

    def __init__(self, fn: Callable[[str], List[float]], dimension: int):
        self.fn = fn
        self.dimension = dimension
        self.calls: List[List[str]] = []

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [list(self.fn(text)) for text in texts]

    async def get_dimension(self) -> int:
        return self.dimension


class ScriptedGenerator(BaseGenerator):
    """Generator that records prompts and returns a fixed reply."""

    def __init__(self, reply: str = "42"):
        self.reply = reply
        self.prompts: List[str] = []

    async def generate(self, prompt: str, max_new_tokens: int = None) -> GenerationResult:
        self.prompts.append(prompt)
        return GenerationResult(text=self.reply, input_tokens=len(prompt), output_tokens=1)


@pytest.fixture
def hash_embedder():
    return HashEmbedder(dimension=16)


@pytest.fixture
def scripted_generator():
    return ScriptedGenerator()


@pytest.fixture
def sample_document():
    """2200 codepoints: two full 1024 windows of 'a' and 'b', then 152 of 'c'."""
    return "a" * 1024 + "b" * 1024 + "c" * 152


@pytest.fixture
def axis_embedder():
    """Puts chunk 'a'/'b'/'c' on the x/y/z axes; queries starting with 'q' point mostly at z."""
    vectors = {
        "a": [1.0, 0.0, 0.0],
        "b": [0.0, 1.0, 0.0],
        "c": [0.0, 0.0, 1.0],
        "q": [0.6, 0.0, 0.8],
    }
    return FunctionEmbedder(lambda text: vectors[text[0]], dimension=3)


@pytest.fixture
def make_client():
    """Build an OllamaClient whose requests are answered by ``handler``."""

    def _make(handler) -> OllamaClient:
        return OllamaClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture
def make_hash_embedder():
    return HashEmbedder
