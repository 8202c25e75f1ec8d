"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
INDEX_DIR = Path(os.getenv("INDEX_DIR", str(DATA_DIR / "index")))

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "gemma3:12b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-minilm:latest")  # 384 dims

# Chunking (codepoint-based, no tokenizer involved)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1024"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "0"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "4"))

# Vector index
INDEX_TYPE = os.getenv("INDEX_TYPE", "hnsw")          # hnsw | flat
INDEX_METRIC = os.getenv("INDEX_METRIC", "cosine")    # cosine | euclidean | inner_product
INDEX_CAPACITY = int(os.getenv("INDEX_CAPACITY", "1000000"))
HNSW_M = int(os.getenv("HNSW_M", "16"))
HNSW_EF_CONSTRUCTION = int(os.getenv("HNSW_EF_CONSTRUCTION", "200"))
HNSW_EF_SEARCH = int(os.getenv("HNSW_EF_SEARCH", "50"))

# Embedding adapter
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "16"))
EMBED_MAX_CONCURRENCY = int(os.getenv("EMBED_MAX_CONCURRENCY", "4"))
EMBED_MAX_INPUT_CHARS = int(os.getenv("EMBED_MAX_INPUT_CHARS", "2048"))  # ≈512 tokens
EMBED_TRUNCATION = os.getenv("EMBED_TRUNCATION", "truncate")  # truncate | reject

# Model calls
MODEL_TIMEOUT = float(os.getenv("MODEL_TIMEOUT", "60.0"))
MODEL_MAX_RETRIES = int(os.getenv("MODEL_MAX_RETRIES", "2"))

# Generation
MAX_SEQUENCE_LENGTH = int(os.getenv("MAX_SEQUENCE_LENGTH", "4096"))  # tokens
MAX_NEW_TOKENS = int(os.getenv("MAX_NEW_TOKENS", "256"))
CHARS_PER_TOKEN = float(os.getenv("CHARS_PER_TOKEN", "4.0"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
