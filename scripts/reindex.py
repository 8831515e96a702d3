#!/usr/bin/env python
"""Index a directory of Markdown documentation.

Usage:
    python scripts/reindex.py                     # Re-ingest every file
    python scripts/reindex.py --rebuild           # Purge the corpus first
    python scripts/reindex.py --docs-dir ./docs   # Index another directory
    python scripts/reindex.py --verbose           # One line per file, debug logs
"""
import argparse
import asyncio
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import structlog

from docsbot import config
from docsbot.logging_config import configure_logging
from docsbot.service import DocsService

logger = structlog.get_logger()

BAR_WIDTH = 40
RULE = "=" * 60


class ProgressBar:
    """Progress callback for IngestPipeline.ingest_batch."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def __call__(self, current: int, total: int, path: str):
        filled = BAR_WIDTH * current // total if total else 0
        bar = "█" * filled + "░" * (BAR_WIDTH - filled)
        line = f"  [{bar}] {current}/{total} {Path(path).name[:30]:<30}"
        if self.verbose:
            print(line)
        else:
            print(f"\r{line}", end="", flush=True)


def print_summary(stats: dict, corpus_stats: dict, elapsed: float):
    rows = [
        ("Files processed", stats["files_processed"]),
        ("Files failed", stats["files_failed"]),
        ("Chunks created", stats["chunks_created"]),
        ("Embeddings generated", stats["embeddings_generated"]),
        ("Embeddings failed", stats["embeddings_failed"]),
        ("Time elapsed", f"{elapsed:.1f}s"),
        ("Corpus files", corpus_stats["file_count"]),
        ("Corpus chunks", corpus_stats["chunk_count"]),
    ]
    print(f"\n\n{RULE}\n  Indexing complete\n{RULE}")
    for label, value in rows:
        print(f"  {label + ':':<22}{value}")
    print(RULE)

    if stats["files_failed"]:
        print(f"\nWarning: {stats['files_failed']} file(s) failed to index; see the logs.")
    if stats["embeddings_failed"]:
        print(f"Warning: {stats['embeddings_failed']} chunk(s) stored without an embedding.")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Index Markdown documentation for retrieval")
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Purge every file and chunk before indexing",
    )
    parser.add_argument(
        "--docs-dir",
        type=Path,
        default=config.DOCS_DIR,
        help=f"Documentation directory (default: {config.DOCS_DIR})",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging("DEBUG" if args.verbose else "WARNING")

    print(f"\nDocs directory:  {args.docs_dir}")
    print(f"Database:        {config.DB_PATH}")
    print(f"Embedding model: {config.EMBEDDING_MODEL}")
    print(f"Sections:        {config.MIN_SECTION_SIZE}-{config.MAX_SECTION_SIZE} chars, "
          f"{config.MERGE_POLICY} merging\n")

    if args.rebuild:
        print("Rebuild mode purges the existing corpus. Ctrl+C within 3 seconds to cancel...")
        await asyncio.sleep(3)

    service = DocsService.from_config()
    started = time.monotonic()
    try:
        stats = await service.pipeline.ingest_directory(
            args.docs_dir,
            rebuild=args.rebuild,
            progress_callback=ProgressBar(args.verbose),
        )
    except FileNotFoundError as e:
        print(f"Error: {e}")
        return 1

    print_summary(stats, service.corpus.get_stats(), time.monotonic() - started)
    logger.info("reindex_finished", **stats)
    return 1 if stats["files_failed"] else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nIndexing cancelled.")
        sys.exit(1)
