"""Ingest pipeline for building per-framework vector indexes.

Orchestrates:
- Corpus scanning
- Normalization and chunking
- Embedding generation
- Atomic index persistence
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional
import structlog

from docqa import config
from docqa.rag.chunker import Chunk, TextChunker, chunk_stats
from docqa.rag.embedder import Embedder
from docqa.rag.loader import CorpusLoader, Skipped, framework_key
from docqa.rag.store_faiss import (
    FAISSVectorStore,
    index_dir_for,
    list_indexed_frameworks,
    remove_index,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class IngestReport:
    """What an ingestion run indexed and what it left out."""

    corpus_dir: str
    index_dir: str
    embedding_model: str
    dimension: Optional[int] = None
    frameworks: Dict[str, int] = field(default_factory=dict)   # key -> chunk count
    documents_indexed: int = 0
    skipped: List[Skipped] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)           # "framework/source_id"
    index_paths: Dict[str, str] = field(default_factory=dict)
    pruned: List[str] = field(default_factory=list)            # keys no longer in the corpus
    chunk_stats: Dict[str, int] = field(default_factory=dict)

    @property
    def chunks_created(self) -> int:
        return sum(self.frameworks.values())

    def as_dict(self) -> dict:
        return {
            "corpus_dir": self.corpus_dir,
            "index_dir": self.index_dir,
            "embedding_model": self.embedding_model,
            "dimension": self.dimension,
            "frameworks": dict(self.frameworks),
            "documents_indexed": self.documents_indexed,
            "chunks_created": self.chunks_created,
            "skipped": [
                {"framework": s.framework, "source_id": s.source_id, "reason": s.reason}
                for s in self.skipped
            ],
            "dropped": list(self.dropped),
            "index_paths": dict(self.index_paths),
            "pruned": list(self.pruned),
            "chunk_stats": dict(self.chunk_stats),
        }


class IngestPipeline:
    """Pipeline for ingesting a documentation corpus into vector indexes."""

    def __init__(
        self,
        embedder: Embedder,
        index_dir: Path = None,
        chunk_size: int = None,
        chunk_overlap: int = None,
        loader: Optional[CorpusLoader] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Embedder shared with query time
            index_dir: Root directory for per-framework indexes (default from config)
            chunk_size: Chunk size in characters (default from config)
            chunk_overlap: Chunk overlap in characters (default from config)
            loader: Corpus loader (a default one is created if not provided)
        """
        self.embedder = embedder
        self.index_dir = Path(index_dir or config.INDEX_DIR)
        self.chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)
        self.loader = loader or CorpusLoader()

        logger.info(
            "ingest_pipeline_initialized",
            index_dir=str(self.index_dir),
            embedding_model=self.embedder.model,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    async def run(
        self,
        corpus_dir: Path = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IngestReport:
        """Rebuild the index of every framework in the corpus.

        Nothing is written until every chunk of every framework has been
        embedded, so a failed run leaves the previous indexes in place.
        After a successful run, indexes of frameworks no longer in the
        corpus are removed.

        Args:
            corpus_dir: Corpus root (default from config)
            progress_callback: Optional callback(framework, current, total)

        Returns:
            IngestReport describing the run

        Raises:
            CorpusError: If the corpus cannot be read
            EmbeddingError: If embedding fails after retries
        """
        corpus_dir = Path(corpus_dir or config.CORPUS_DIR)
        logger.info("ingest_started", corpus_dir=str(corpus_dir))

        scan = self.loader.scan(corpus_dir)
        report = IngestReport(
            corpus_dir=str(corpus_dir),
            index_dir=str(self.index_dir),
            embedding_model=self.embedder.model,
            skipped=scan.skipped,
        )

        chunks_by_framework: Dict[str, List[Chunk]] = {key: [] for key in scan.frameworks}
        for document in scan.documents:
            chunks = self.chunker.chunk_document(document)
            if not chunks:
                report.dropped.append(f"{document.framework}/{document.source_id}")
                continue
            chunks_by_framework[framework_key(document.framework)].extend(chunks)
            report.documents_indexed += 1

        embeddings_by_framework: Dict[str, List[List[float]]] = {}
        total = len(chunks_by_framework)
        for position, (key, chunks) in enumerate(sorted(chunks_by_framework.items()), 1):
            if progress_callback:
                progress_callback(scan.frameworks[key], position, total)
            embeddings_by_framework[key] = await self.embedder.embed_texts(
                [chunk.text for chunk in chunks]
            )

        dimension = await self.embedder.get_dimension() if total else self.embedder.dimension
        report.dimension = dimension

        stores = []
        for key, chunks in chunks_by_framework.items():
            store = FAISSVectorStore(index_dir_for(self.index_dir, key))
            store.build(
                chunks,
                embeddings_by_framework[key],
                framework=scan.frameworks[key],
                dimension=dimension,
                embedding_model=self.embedder.model,
                chunk_size=self.chunker.chunk_size,
                chunk_overlap=self.chunker.chunk_overlap,
            )
            stores.append((key, store))

        report.chunk_stats = chunk_stats(
            [chunk for chunks in chunks_by_framework.values() for chunk in chunks],
            overlap=self.chunker.chunk_overlap,
        )

        # Each framework swaps atomically, but the set of frameworks does not
        for key, store in stores:
            try:
                store.save()
            except OSError as e:
                logger.error(
                    "ingest_partially_swapped",
                    saved=sorted(report.frameworks),
                    failed=key,
                    pending=[k for k, _ in stores if k != key and k not in report.frameworks],
                    error=str(e),
                )
                raise
            report.frameworks[key] = store.vector_count
            report.index_paths[key] = str(store.index_dir)

        for key in list_indexed_frameworks(self.index_dir):
            if key not in chunks_by_framework:
                remove_index(self.index_dir, key)
                report.pruned.append(key)

        logger.info(
            "ingest_completed",
            frameworks=report.frameworks,
            documents_indexed=report.documents_indexed,
            chunks_created=report.chunks_created,
            skipped=len(report.skipped),
            dropped=len(report.dropped),
            pruned=report.pruned,
        )

        return report
