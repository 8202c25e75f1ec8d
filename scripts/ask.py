#!/usr/bin/env python
"""Answer a question against an index built with reindex.py.

Usage:
    python scripts/ask.py "Who is the narrator?"
    python scripts/ask.py "Who is the narrator?" --top-k 2 --show-context
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from docrag import config
from docrag.errors import DocragError
from docrag.llm_client import OllamaClient
from docrag.log import configure_logging
from docrag.rag.embedder import OllamaEmbedder
from docrag.rag.generator import OllamaGenerator
from docrag.rag.pipeline import RAGPipeline

logger = structlog.get_logger()


async def main():
    parser = argparse.ArgumentParser(description="Answer a question from an indexed document")
    parser.add_argument("question")
    parser.add_argument("--index-dir", type=Path, default=config.INDEX_DIR)
    parser.add_argument("--top-k", type=int, default=config.RETRIEVAL_TOP_K)
    parser.add_argument("--max-new-tokens", type=int, default=config.MAX_NEW_TOKENS)
    parser.add_argument(
        "--show-context",
        action="store_true",
        help="Print the retrieved chunks before the answer",
    )
    parser.add_argument("--log-level", default="WARNING")

    args = parser.parse_args()
    configure_logging(args.log_level)

    try:
        client = OllamaClient()
        await client.ensure_models(config.EMBEDDING_MODEL, config.CHAT_MODEL)

        pipeline = await RAGPipeline.load(
            args.index_dir,
            embedder=OllamaEmbedder(client=client),
            generator=OllamaGenerator(client=client),
        )
        answer = await pipeline.answer(
            args.question,
            top_k=args.top_k,
            max_new_tokens=args.max_new_tokens,
        )

        if args.show_context:
            for chunk in answer.chunks:
                print(f"--- chunk {chunk.id} [{chunk.start_offset}:{chunk.end_offset}]")
                print(chunk.text)
            print()

        print(answer.text.strip())

    except (FileNotFoundError, DocragError) as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("ask_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
