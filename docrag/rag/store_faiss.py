"""FAISS vector index for semantic search.

Handles:
- Exact (flat) and approximate (HNSW) search strategies
- Cosine, euclidean and inner-product distances
- Capacity and dimension enforcement
- Index and metadata persistence

Labels are assigned by FAISS in insertion order starting at 0, so inserting
chunk embeddings in chunk-id order makes label == chunk id.

HNSW results are approximate: for large indexes the returned set may miss
some of the true k nearest vectors. Use ``index_type="flat"`` when exact
results are required.
"""
import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np
import structlog

from docrag import config
from docrag.errors import (
    CapacityExceeded,
    DimensionMismatch,
    InvalidArgument,
    require_positive_int,
)

logger = structlog.get_logger()

METRICS = ("cosine", "euclidean", "inner_product")
INDEX_TYPES = ("flat", "hnsw")

INDEX_FILENAME = "vectors.index"
METADATA_FILENAME = "metadata.json"


class VectorIndex:
    """Capacity-bounded FAISS index returning ``(label, distance)`` pairs.

    Distances are always "smaller is closer":

    - cosine: ``1 - cosine_similarity``, in [0, 2]
    - inner_product: ``1 - dot(a, b)``
    - euclidean: L2 distance (not squared)
    """

    def __init__(
        self,
        dimension: int,
        metric: str = None,
        capacity: int = None,
        index_type: str = None,
        hnsw_m: int = None,
        ef_construction: int = None,
        ef_search: int = None,
    ):
        """Initialize an empty index.

        Args:
            dimension: Embedding dimension
            metric: Distance metric (default from config)
            capacity: Maximum number of vectors (default from config)
            index_type: "flat" for exact search, "hnsw" for approximate (default from config)
            hnsw_m: HNSW graph degree (default from config)
            ef_construction: HNSW build-time beam width (default from config)
            ef_search: HNSW query-time beam width (default from config)

        Raises:
            InvalidArgument: If any setting is out of range
        """
        self.dimension = require_positive_int("dimension", dimension)
        self.metric = config.INDEX_METRIC if metric is None else metric
        self.capacity = require_positive_int(
            "capacity", config.INDEX_CAPACITY if capacity is None else capacity
        )
        self.index_type = config.INDEX_TYPE if index_type is None else index_type
        self.hnsw_m = require_positive_int("hnsw_m", config.HNSW_M if hnsw_m is None else hnsw_m)
        self.ef_construction = require_positive_int(
            "ef_construction",
            config.HNSW_EF_CONSTRUCTION if ef_construction is None else ef_construction,
        )
        self.ef_search = require_positive_int(
            "ef_search", config.HNSW_EF_SEARCH if ef_search is None else ef_search
        )

        if self.metric not in METRICS:
            raise InvalidArgument(f"Unknown metric {self.metric!r}, expected one of {METRICS}")
        if self.index_type not in INDEX_TYPES:
            raise InvalidArgument(f"Unknown index type {self.index_type!r}, expected one of {INDEX_TYPES}")

        self.metadata: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self.index = self._create_faiss_index()

        logger.info(
            "faiss_index_initialized",
            dimension=self.dimension,
            metric=self.metric,
            index_type=self.index_type,
            capacity=self.capacity,
        )

    def _faiss_metric(self) -> int:
        if self.metric == "euclidean":
            return faiss.METRIC_L2
        return faiss.METRIC_INNER_PRODUCT

    def _create_faiss_index(self) -> faiss.Index:
        metric = self._faiss_metric()

        if self.index_type == "flat":
            if metric == faiss.METRIC_L2:
                return faiss.IndexFlatL2(self.dimension)
            return faiss.IndexFlatIP(self.dimension)

        index = faiss.IndexHNSWFlat(self.dimension, self.hnsw_m, metric)
        index.hnsw.efConstruction = self.ef_construction
        index.hnsw.efSearch = self.ef_search
        return index

    def __len__(self) -> int:
        return self.index.ntotal

    def _as_matrix(self, embeddings: Sequence[Sequence[float]]) -> np.ndarray:
        """Validate embeddings and convert them to a float32 matrix in index space."""
        for embedding in embeddings:
            if len(embedding) != self.dimension:
                raise DimensionMismatch(self.dimension, len(embedding))

        vectors = np.array(embeddings, dtype=np.float32).reshape(len(embeddings), self.dimension)

        if not np.isfinite(vectors).all():
            raise InvalidArgument("Embeddings must contain only finite values")

        if self.metric == "cosine":
            norms = np.linalg.norm(vectors, axis=1, keepdims=True)
            if (norms == 0).any():
                raise InvalidArgument("Zero vectors have no direction under the cosine metric")
            vectors = vectors / norms

        return np.ascontiguousarray(vectors, dtype=np.float32)

    def _to_distances(self, raw: np.ndarray) -> np.ndarray:
        if self.metric == "euclidean":
            # IndexFlatL2 / HNSW-L2 report squared distances
            return np.sqrt(np.maximum(raw, 0.0))
        distances = 1.0 - raw
        if self.metric == "cosine":
            distances = np.clip(distances, 0.0, 2.0)
        return distances

    def add(self, embedding: Sequence[float]) -> int:
        """Insert one embedding and return its label."""
        return self.add_many([embedding])[0]

    def add_many(self, embeddings: Sequence[Sequence[float]]) -> List[int]:
        """Insert embeddings in order.

        The batch is validated as a whole before anything is inserted: a
        dimension mismatch or a capacity overflow leaves the index unchanged.

        Args:
            embeddings: Vectors to insert

        Returns:
            Labels assigned to the vectors, consecutive and in input order

        Raises:
            DimensionMismatch: If any vector has the wrong dimension
            CapacityExceeded: If the batch does not fit in the remaining capacity
            InvalidArgument: If a vector is non-finite, or zero under cosine
        """
        if len(embeddings) == 0:
            return []

        vectors = self._as_matrix(embeddings)

        with self._lock:
            start_label = self.index.ntotal

            if start_label + len(vectors) > self.capacity:
                logger.error(
                    "index_capacity_exceeded",
                    capacity=self.capacity,
                    current=start_label,
                    requested=len(vectors),
                )
                raise CapacityExceeded(self.capacity, start_label, len(vectors))

            self.index.add(vectors)

        labels = list(range(start_label, start_label + len(vectors)))

        logger.debug(
            "vectors_added",
            count=len(labels),
            total_vectors=self.index.ntotal,
        )

        return labels

    def knn_query(self, query_embedding: Sequence[float], k: int) -> List[Tuple[int, float]]:
        """Find the ``k`` nearest stored vectors.

        Args:
            query_embedding: Query vector
            k: Number of neighbours to return

        Returns:
            ``(label, distance)`` pairs, closest first, ``min(k, len(self))`` long

        Raises:
            InvalidArgument: If k is not a positive integer
            DimensionMismatch: If the query has the wrong dimension
        """
        require_positive_int("k", k)

        query = self._as_matrix([query_embedding])

        with self._lock:
            top_k = min(k, self.index.ntotal)
            if top_k == 0:
                return []

            if self.index_type == "hnsw":
                self.index.hnsw.efSearch = max(self.ef_search, top_k)

            raw, labels = self.index.search(query, top_k)

        distances = self._to_distances(raw[0])
        results = [
            (int(label), float(distance))
            for label, distance in zip(labels[0], distances)
            if label >= 0
        ]
        results.sort(key=lambda pair: (pair[1], pair[0]))

        logger.debug(
            "vector_search_completed",
            top_k=top_k,
            results_found=len(results),
        )

        return results

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the index."""
        return {
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "metric": self.metric,
            "index_type": self.index_type,
            "capacity": self.capacity,
            "metadata": self.metadata,
        }

    def save(self, index_dir: Path) -> None:
        """Save the FAISS index and its metadata to ``index_dir``.

        Raises:
            RuntimeError: If writing fails
        """
        index_dir = Path(index_dir)
        index_dir.mkdir(parents=True, exist_ok=True)

        metadata = {
            **self.metadata,
            "dimension": self.dimension,
            "metric": self.metric,
            "capacity": self.capacity,
            "index_type": self.index_type,
            "hnsw_m": self.hnsw_m,
            "ef_construction": self.ef_construction,
            "ef_search": self.ef_search,
            "vector_count": self.index.ntotal,
        }

        with self._lock:
            try:
                faiss.write_index(self.index, str(index_dir / INDEX_FILENAME))
            except Exception as e:
                raise RuntimeError(f"Failed to save FAISS index: {e}") from e

        try:
            with open(index_dir / METADATA_FILENAME, "w") as f:
                json.dump(metadata, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save metadata: {e}") from e

        logger.info(
            "faiss_index_saved",
            index_dir=str(index_dir),
            vector_count=metadata["vector_count"],
        )

    @classmethod
    def load(cls, index_dir: Path, expected_dimension: Optional[int] = None) -> "VectorIndex":
        """Load an index saved with ``save``.

        Args:
            index_dir: Directory holding the index and metadata files
            expected_dimension: Dimension of the current embedding model, if known

        Raises:
            FileNotFoundError: If index files don't exist
            DimensionMismatch: If the stored dimension differs from expected_dimension
            RuntimeError: If the files are unreadable or disagree with each other
        """
        index_dir = Path(index_dir)
        index_path = index_dir / INDEX_FILENAME
        metadata_path = index_dir / METADATA_FILENAME

        if not index_path.exists():
            raise FileNotFoundError(f"Index not found: {index_path}")
        if not metadata_path.exists():
            raise FileNotFoundError(f"Metadata not found: {metadata_path}")

        try:
            with open(metadata_path, "r") as f:
                metadata = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RuntimeError(f"Failed to load metadata: {e}") from e

        stored_dim = metadata["dimension"]
        if expected_dimension is not None and expected_dimension != stored_dim:
            raise DimensionMismatch(
                expected_dimension,
                stored_dim,
                f"Dimension mismatch: index was built with dim={stored_dim}, "
                f"but the current model has dim={expected_dimension}. Please rebuild the index.",
            )

        store = cls(
            dimension=stored_dim,
            metric=metadata["metric"],
            capacity=metadata["capacity"],
            index_type=metadata["index_type"],
            hnsw_m=metadata.get("hnsw_m"),
            ef_construction=metadata.get("ef_construction"),
            ef_search=metadata.get("ef_search"),
        )

        try:
            index = faiss.read_index(str(index_path))
        except Exception as e:
            raise RuntimeError(f"Failed to load FAISS index: {e}") from e

        if index.d != stored_dim or index.ntotal != metadata["vector_count"]:
            raise RuntimeError(
                f"Index file disagrees with metadata: d={index.d}, ntotal={index.ntotal}, "
                f"metadata={metadata}"
            )

        if store.index_type == "hnsw":
            index.hnsw.efSearch = store.ef_search

        store.index = index
        known = {"dimension", "metric", "capacity", "index_type", "hnsw_m",
                 "ef_construction", "ef_search", "vector_count"}
        store.metadata = {k: v for k, v in metadata.items() if k not in known}

        logger.info(
            "faiss_index_loaded",
            index_dir=str(index_dir),
            dimension=stored_dim,
            vector_count=index.ntotal,
        )

        return store
