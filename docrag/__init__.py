"""Chunking, vector indexing and retrieval engine for retrieval-augmented generation."""

__version__ = "0.1.0"
