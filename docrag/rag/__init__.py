"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Fixed-window document chunking
- Embedding and generation adapters
- FAISS vector indexing (exact and HNSW)
- Retrieval and prompt assembly
- Build/query orchestration
"""
