#!/usr/bin/env python
"""Embed stored chunks that have no vector yet.

Chunks stay unembedded when the provider failed during upload. This script
retries all of them once.

Usage:
    python scripts/reembed.py              # Embed every chunk missing a vector
    python scripts/reembed.py --dry-run    # Only count them
    python scripts/reembed.py --verbose    # Print every outcome
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

import structlog

from docchat import config
from docchat.db import SQLiteStorage
from docchat.llm_client import LLMClient
from docchat.main import configure_logging
from docchat.rag.embedder import Embedder
from docchat.rag.embedding_queue import EmbeddingOutcome, EmbeddingQueue
from docchat.rag.ingest import IngestPipeline

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, total: int, verbose: bool = False):
        self.total = total
        self.verbose = verbose
        self.done = 0
        self.start_time = datetime.now()

    def update(self, outcome: EmbeddingOutcome):
        self.done += 1
        percentage = (self.done / self.total) * 100 if self.total > 0 else 0
        bar_length = 40
        filled = int(bar_length * self.done / self.total) if self.total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        status = "ok" if outcome.success else f"failed: {outcome.error}"
        print(
            f"\r  [{bar}] {percentage:5.1f}% ({self.done}/{self.total}) chunk {outcome.chunk_id}",
            end="",
            flush=True,
        )

        if self.verbose:
            print(f"  {status}")

    def finish(self, outcomes):
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()
        failed = sum(1 for o in outcomes if not o.success)

        print(f"{'=' * 60}")
        print("  Re-embedding Complete!")
        print(f"{'=' * 60}\n")
        print(f"  🧮 Chunks embedded:  {len(outcomes) - failed}")
        print(f"  ❌ Chunks failed:    {failed}")
        print(f"  ⏱️  Time elapsed:     {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if failed:
            print(f"⚠️  Warning: {failed} chunk(s) are still unembedded and will not be retrieved.")
            print("   Check logs for details.\n")


async def main():
    """Main entry point for the re-embed script."""
    parser = argparse.ArgumentParser(
        description="Embed stored chunks that have no vector yet",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"SQLite database (default: {config.DB_PATH})",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report how many chunks are missing a vector",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Print every outcome",
    )

    args = parser.parse_args()
    configure_logging("WARNING" if not args.verbose else None)

    try:
        storage = SQLiteStorage(args.db)
        missing = storage.get_unembedded_chunks()

        print("\n📋 Configuration:")
        print(f"   Database:         {storage.db_path}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Missing vectors:  {len(missing)}")

        if args.dry_run or not missing:
            print()
            return

        client = LLMClient()
        client.validate()

        progress = ProgressReporter(total=len(missing), verbose=args.verbose)
        queue = EmbeddingQueue(storage, Embedder(client), on_outcome=progress.update)
        pipeline = IngestPipeline(storage, queue)

        print()
        outcomes = await pipeline.reembed_missing()
        progress.finish(outcomes)

        if any(not o.success for o in outcomes):
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Re-embedding cancelled by user.\n")
        sys.exit(1)

    except EnvironmentError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reembed_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
