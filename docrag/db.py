"""SQLite storage for the chunk table and indexing runs.

The ``chunks`` table maps each vector label to the chunk it was built from;
``index_metadata`` records one row per indexing run.
"""
import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog

from docrag.rag.chunker import Chunk

logger = structlog.get_logger()

DB_FILENAME = "chunks.sqlite"


class ChunkStore:
    """Chunk table and indexing-run log stored next to a vector index."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection with row_factory set to sqlite3.Row."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_database(self) -> None:
        """Create the tables if they don't exist."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self.get_connection()

        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS index_metadata (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    indexed_at TEXT NOT NULL,
                    embedding_model TEXT,
                    embedding_dimension INTEGER NOT NULL,
                    chunk_size INTEGER NOT NULL,
                    chunk_overlap INTEGER NOT NULL,
                    total_chunks INTEGER NOT NULL,
                    metadata_json TEXT
                )
            """)

            # id doubles as the vector label
            conn.execute("""
                CREATE TABLE IF NOT EXISTS chunks (
                    id INTEGER PRIMARY KEY,
                    content TEXT NOT NULL,
                    char_start INTEGER NOT NULL,
                    char_end INTEGER NOT NULL
                )
            """)

            conn.commit()
            logger.debug("database_initialized", db_path=str(self.db_path))

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("database_init_failed", error=str(e))
            raise
        finally:
            conn.close()

    def replace_chunks(self, chunks: List[Chunk]) -> None:
        """Replace the whole chunk table in one transaction."""
        conn = self.get_connection()

        try:
            conn.execute("DELETE FROM chunks")
            conn.executemany(
                "INSERT INTO chunks (id, content, char_start, char_end) VALUES (?, ?, ?, ?)",
                [(c.id, c.text, c.start_offset, c.end_offset) for c in chunks],
            )
            conn.commit()
            logger.info("chunks_stored", count=len(chunks))

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("chunk_store_failed", error=str(e))
            raise
        finally:
            conn.close()

    def load_chunks(self) -> List[Chunk]:
        """Load all chunks ordered by id."""
        conn = self.get_connection()

        try:
            rows = conn.execute(
                "SELECT id, content, char_start, char_end FROM chunks ORDER BY id"
            ).fetchall()
        finally:
            conn.close()

        return [
            Chunk(
                id=row["id"],
                text=row["content"],
                start_offset=row["char_start"],
                end_offset=row["char_end"],
            )
            for row in rows
        ]

    def insert_index_metadata(
        self,
        embedding_model: Optional[str],
        embedding_dimension: int,
        chunk_size: int,
        chunk_overlap: int,
        total_chunks: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Record a new indexing run.

        Returns:
            ID of the inserted metadata row
        """
        conn = self.get_connection()

        try:
            cursor = conn.execute("""
                INSERT INTO index_metadata (
                    indexed_at, embedding_model, embedding_dimension,
                    chunk_size, chunk_overlap, total_chunks, metadata_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                datetime.now(timezone.utc).isoformat(),
                embedding_model,
                embedding_dimension,
                chunk_size,
                chunk_overlap,
                total_chunks,
                json.dumps(metadata) if metadata else None,
            ))
            conn.commit()
            return cursor.lastrowid

        except sqlite3.Error as e:
            conn.rollback()
            logger.error("index_metadata_insert_failed", error=str(e))
            raise
        finally:
            conn.close()

    def get_latest_index_metadata(self) -> Optional[Dict[str, Any]]:
        """Get the most recent indexing run, or None if nothing was indexed."""
        conn = self.get_connection()

        try:
            row = conn.execute(
                "SELECT * FROM index_metadata ORDER BY id DESC LIMIT 1"
            ).fetchone()
        finally:
            conn.close()

        if row is None:
            return None

        result = dict(row)
        result["metadata"] = json.loads(result.pop("metadata_json") or "{}")
        return result
