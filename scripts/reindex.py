#!/usr/bin/env python
"""Rebuild the per-framework documentation indexes.

Usage:
    python scripts/reindex.py                          # Index the default corpus
    python scripts/reindex.py --corpus-dir docs/       # Index another corpus
    python scripts/reindex.py --chunk-size 800 --chunk-overlap 150
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa import config
from docqa.errors import DocQAError
from docqa.llm_client import OllamaClient
from docqa.log import configure_logging
from docqa.rag.embedder import Embedder
from docqa.rag.ingest import IngestPipeline, IngestReport
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, framework: str, current: int, total: int):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {framework[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, report: IngestReport):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Indexing Complete!")
        print(f"{'=' * 60}\n")
        for framework, count in sorted(report.frameworks.items()):
            print(f"  {framework:<24} {count} chunks")
        print()
        print(f"  Documents indexed:  {report.documents_indexed}")
        print(f"  Chunks created:     {report.chunks_created}")
        print(f"  Files skipped:      {len(report.skipped)}")
        print(f"  Documents dropped:  {len(report.dropped)}")
        print(f"  Dimension:          {report.dimension}")
        if report.chunk_stats.get("chunk_count"):
            stats = report.chunk_stats
            print(
                f"  Chunk sizes:        avg {stats['avg_chunk_size']}, "
                f"min {stats['min_chunk_size']}, max {stats['max_chunk_size']} chars"
            )
        print(f"  Time elapsed:       {elapsed_seconds:.1f}s")
        print(f"\n{'=' * 60}\n")

        if report.skipped:
            print("  Skipped files:")
            for skipped in report.skipped:
                print(f"    {skipped.framework}/{skipped.source_id}: {skipped.reason}")
            print()

        if report.dropped:
            print("  Dropped (no usable text):")
            for dropped in report.dropped:
                print(f"    {dropped}")
            print()

        if report.pruned:
            print("  Removed indexes (framework no longer in corpus):")
            for key in report.pruned:
                print(f"    {key}")
            print()

        print(f"Indexes ready under: {report.index_dir}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Rebuild per-framework documentation indexes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--corpus-dir",
        type=Path,
        default=None,
        help=f"Corpus root, one directory per framework (default: {config.CORPUS_DIR})",
    )
    parser.add_argument(
        "--index-dir",
        type=Path,
        default=None,
        help=f"Index root (default: {config.INDEX_DIR})",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=config.CHUNK_SIZE,
        help=f"Chunk size in characters (default: {config.CHUNK_SIZE})",
    )
    parser.add_argument(
        "--chunk-overlap",
        type=int,
        default=config.CHUNK_OVERLAP,
        help=f"Chunk overlap in characters (default: {config.CHUNK_OVERLAP})",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )
    return parser


async def main():
    """Main entry point for reindex script."""
    args = build_parser().parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Corpus directory: {args.corpus_dir or config.CORPUS_DIR}")
        print(f"   Index directory:  {args.index_dir or config.INDEX_DIR}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:       {args.chunk_size} chars")
        print(f"   Chunk overlap:    {args.chunk_overlap} chars")

        pipeline = IngestPipeline(
            embedder=Embedder(OllamaClient()),
            index_dir=args.index_dir,
            chunk_size=args.chunk_size,
            chunk_overlap=args.chunk_overlap,
        )

        progress.start("Building Indexes")
        report = await pipeline.run(args.corpus_dir, progress_callback=progress.update)
        progress.finish(report)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user. Existing indexes are unchanged.\n")
        sys.exit(1)

    except (DocQAError, ValueError, OSError) as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
