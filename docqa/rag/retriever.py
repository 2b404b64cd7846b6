"""Retriever for framework-scoped semantic search.

Handles:
- Query embedding with the index's embedding model
- Per-framework index handles, loaded once and shared read-only
- Top-k cosine search
"""
import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional
import structlog

from docqa import config
from docqa.errors import NotFoundError
from docqa.rag.chunker import Chunk
from docqa.rag.embedder import Embedder
from docqa.rag.loader import framework_key, is_valid_framework_key
from docqa.rag.store_faiss import FAISSVectorStore, index_dir_for

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetrievedChunk:
    """A single retrieved chunk with its similarity score."""

    chunk: Chunk
    score: float

    @property
    def text(self) -> str:
        return self.chunk.text

    @property
    def source(self) -> str:
        """Get a formatted source string for display."""
        if self.chunk.title:
            return f"{self.chunk.framework}/{self.chunk.source_id} > {self.chunk.title}"
        return f"{self.chunk.framework}/{self.chunk.source_id}"


class Retriever:
    """Semantic retriever over per-framework FAISS indexes."""

    def __init__(
        self,
        embedder: Embedder,
        index_dir: Path = None,
        top_k: int = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedder using the same model the indexes were built with
            index_dir: Root directory of per-framework indexes (default from config)
            top_k: Default number of results (default from config)
        """
        self.embedder = embedder
        self.index_dir = Path(index_dir or config.INDEX_DIR)
        self.top_k = top_k or config.RETRIEVAL_TOP_K

        self._stores: Dict[str, FAISSVectorStore] = {}
        self._lock = asyncio.Lock()

    async def get_store(self, framework: str) -> FAISSVectorStore:
        """Return the cached index handle for a framework, loading it once.

        Raises:
            NotFoundError: If no index exists for the framework
            IndexMismatchError: If the index was built with another model
        """
        key = framework_key(framework)
        if not is_valid_framework_key(key):
            logger.warning("invalid_framework_key", framework=framework)
            raise NotFoundError(framework)

        store = self._stores.get(key)
        if store is not None:
            return store

        async with self._lock:
            store = self._stores.get(key)
            if store is None:
                store = FAISSVectorStore(index_dir_for(self.index_dir, key))
                await asyncio.to_thread(store.load, self.embedder.model)
                self._stores[key] = store
        return store

    def invalidate(self, framework: Optional[str] = None) -> None:
        """Forget cached handles so the next query reloads from disk."""
        if framework is None:
            self._stores.clear()
        else:
            self._stores.pop(framework_key(framework), None)

    async def retrieve(
        self,
        query: str,
        framework: str,
        k: Optional[int] = None,
    ) -> List[RetrievedChunk]:
        """Retrieve the chunks of ``framework`` most similar to ``query``.

        Args:
            query: User query text
            framework: Framework whose index is searched
            k: Number of results (overrides default)

        Returns:
            Up to k RetrievedChunk objects, best first; empty for an empty index

        Raises:
            NotFoundError: If no index exists for the framework
            EmbeddingError: If the query cannot be embedded
        """
        k = self.top_k if k is None else k
        store = await self.get_store(framework)

        if store.vector_count == 0:
            logger.warning("empty_index_no_results", framework=framework)
            return []

        query_embedding = await self.embedder.embed(query)
        hits = store.search(query_embedding, top_k=k)
        results = [RetrievedChunk(chunk=chunk, score=score) for chunk, score in hits]

        logger.info(
            "retrieval_completed",
            framework=framework,
            query_length=len(query),
            top_k=k,
            results_returned=len(results),
            top_score=results[0].score if results else None,
            sources=[result.source for result in results],
        )

        return results
