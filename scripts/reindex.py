#!/usr/bin/env python
"""Index a text document for question answering.

Usage:
    python scripts/reindex.py book.txt              # Index into the default directory
    python scripts/reindex.py book.txt --flat       # Exact search instead of HNSW
    python scripts/reindex.py book.txt --index-dir data/book
    python scripts/reindex.py book.txt --rebuild    # Replace an existing index
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from docrag import config
from docrag.errors import DocragError
from docrag.log import configure_logging
from docrag.rag.embedder import OllamaEmbedder
from docrag.rag.pipeline import RAGPipeline
from docrag.rag.store_faiss import INDEX_FILENAME

logger = structlog.get_logger()

REBUILD_GRACE_SECONDS = 3


def print_summary(stats: dict, index_stats: dict, index_dir: Path, elapsed_seconds: float) -> None:
    print(f"\n{'=' * 60}")
    print("  Indexing Complete!")
    print(f"{'=' * 60}\n")
    print(f"  Chunks created:       {stats['chunks_created']}")
    print(f"  Embeddings generated: {stats['embeddings_generated']}")
    print(f"  Vectors indexed:      {stats['vectors_indexed']}")
    print(f"  Dimension:            {index_stats['dimension']}")
    print(f"  Index:                {index_stats['index_type']} / {index_stats['metric']}")
    print(f"  Capacity used:        {index_stats['vector_count']}/{index_stats['capacity']}")
    print(f"  Time elapsed:         {elapsed_seconds:.1f}s")

    if stats["chunks_created"] > 0 and elapsed_seconds > 0:
        rate = stats["chunks_created"] / elapsed_seconds
        print(f"  Indexing rate:        {rate:.1f} chunks/sec")

    print(f"\n  Index ready at: {index_dir}\n")


async def main():
    """Main entry point for the reindex script."""
    parser = argparse.ArgumentParser(
        description="Index a UTF-8 text document for retrieval",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("source", type=Path, help="UTF-8 text file to index")
    parser.add_argument(
        "--index-dir",
        type=Path,
        default=config.INDEX_DIR,
        help=f"Where to write the index (default: {config.INDEX_DIR})",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=config.CHUNK_SIZE,
        help=f"Chunk size in characters (default: {config.CHUNK_SIZE})",
    )
    parser.add_argument(
        "--flat",
        action="store_true",
        help="Use exact brute-force search instead of HNSW",
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Replace an existing index in --index-dir",
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL)

    args = parser.parse_args()
    configure_logging(args.log_level)

    if (args.index_dir / INDEX_FILENAME).exists() and not args.rebuild:
        print(f"\nError: an index already exists in {args.index_dir}. Use --rebuild to replace it.\n")
        sys.exit(1)

    try:
        text = args.source.read_text(encoding="utf-8")

        print("\nConfiguration:")
        print(f"   Source:           {args.source}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:       {args.chunk_size} chars")
        print(f"   Index type:       {'flat' if args.flat else config.INDEX_TYPE}")
        print(f"   Metric:           {config.INDEX_METRIC}")

        if args.rebuild:
            print(f"\nRebuild mode: the index in {args.index_dir} will be replaced!")
            print(f"   Press Ctrl+C within {REBUILD_GRACE_SECONDS} seconds to cancel...")
            await asyncio.sleep(REBUILD_GRACE_SECONDS)

        start_time = datetime.now()

        pipeline = RAGPipeline(
            embedder=OllamaEmbedder(),
            chunk_size=args.chunk_size,
            index_type="flat" if args.flat else None,
        )
        stats = await pipeline.build(text)
        pipeline.save(args.index_dir)

        elapsed = (datetime.now() - start_time).total_seconds()
        print_summary(stats, pipeline.index.get_stats(), args.index_dir, elapsed)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except (FileNotFoundError, DocragError) as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
