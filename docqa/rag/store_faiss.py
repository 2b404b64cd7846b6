"""FAISS vector store, one artifact per framework.

Handles:
- Index construction from embedded chunks
- Atomic persistence (a reader never sees a half-written index)
- Loading with embedding-model compatibility checks
- Exact cosine top-k search
"""
import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Tuple, Optional, Dict, Any
import numpy as np
import faiss
import structlog

from docqa.errors import IndexMismatchError, NotFoundError
from docqa.rag.chunker import Chunk
from docqa.rag.loader import framework_key, is_valid_framework_key

logger = structlog.get_logger()

INDEX_FILENAME = "vectors.index"
METADATA_FILENAME = "metadata.json"
INDEX_TYPE = "IndexFlatIP"


def index_dir_for(index_root: Path, framework: str) -> Path:
    """Deterministic artifact location for a framework.

    Raises:
        ValueError: If the framework name would resolve outside ``index_root``
    """
    key = framework_key(framework)
    if not is_valid_framework_key(key):
        raise ValueError(f"Invalid framework name: {framework!r}")
    return Path(index_root) / key


def list_indexed_frameworks(index_root: Path) -> List[str]:
    """Framework keys with a complete artifact under ``index_root``."""
    index_root = Path(index_root)
    if not index_root.is_dir():
        return []
    return sorted(
        path.name
        for path in index_root.iterdir()
        if path.is_dir()
        and not path.name.startswith(".")
        and (path / INDEX_FILENAME).exists()
        and (path / METADATA_FILENAME).exists()
    )


def remove_index(index_root: Path, framework: str) -> None:
    """Delete a framework's artifact.

    The directory is renamed out of the way first, so a concurrent reader
    sees either the whole artifact or none of it.
    """
    index_dir = index_dir_for(index_root, framework)
    if not index_dir.exists():
        return
    retired = index_dir.parent / f".{index_dir.name}.removed-{os.getpid()}"
    if retired.exists():
        shutil.rmtree(retired)
    os.replace(index_dir, retired)
    shutil.rmtree(retired, ignore_errors=True)
    logger.info("faiss_index_removed", index_dir=str(index_dir))


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return vectors / norms


class FAISSVectorStore:
    """Exact inner-product index over L2-normalized vectors with chunk metadata."""

    def __init__(self, index_dir: Path):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Directory holding this framework's index and metadata
        """
        self.index_dir = Path(index_dir)
        self.index_path = self.index_dir / INDEX_FILENAME
        self.metadata_path = self.index_dir / METADATA_FILENAME

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        self.chunks: List[Chunk] = []
        self.metadata: Dict[str, Any] = {}

    @property
    def vector_count(self) -> int:
        return 0 if self.index is None else self.index.ntotal

    def build(
        self,
        chunks: List[Chunk],
        embeddings: List[List[float]],
        *,
        framework: str,
        dimension: int,
        embedding_model: str,
        chunk_size: int,
        chunk_overlap: int,
    ) -> None:
        """Create a fresh in-memory index from embedded chunks.

        Raises:
            ValueError: If chunks and embeddings disagree or a vector has
                the wrong dimension
        """
        if len(chunks) != len(embeddings):
            raise ValueError(
                f"chunks ({len(chunks)}) and embeddings ({len(embeddings)}) "
                "must have the same length"
            )

        self.dimension = dimension
        self.index = faiss.IndexFlatIP(dimension)

        if embeddings:
            vectors = np.array(embeddings, dtype=np.float32)
            if vectors.ndim != 2 or vectors.shape[1] != dimension:
                raise ValueError(
                    f"Embedding dimension mismatch: expected {dimension}, "
                    f"got shape {vectors.shape}"
                )
            self.index.add(_normalize_rows(vectors))

        self.chunks = list(chunks)
        self.metadata = {
            "framework": framework,
            "embedding_model": embedding_model,
            "embedding_dimension": dimension,
            "index_type": INDEX_TYPE,
            "chunk_size": chunk_size,
            "chunk_overlap": chunk_overlap,
            "vector_count": self.index.ntotal,
            "built_at": datetime.now(timezone.utc).isoformat(),
        }

        logger.info(
            "faiss_index_built",
            framework=framework,
            dimension=dimension,
            vector_count=self.index.ntotal,
        )

    def save(self) -> None:
        """Persist index and metadata, replacing any previous artifact.

        Both files are written to a temporary sibling directory which is
        then swapped in, so readers see either the old or the new index.

        Raises:
            RuntimeError: If there is no index to save
        """
        if self.index is None:
            raise RuntimeError("No index to save. Build or load an index first.")

        parent = self.index_dir.parent
        parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{self.index_dir.name}.", dir=parent))

        try:
            faiss.write_index(self.index, str(staging / INDEX_FILENAME))
            payload = dict(self.metadata)
            payload["records"] = [_chunk_to_record(chunk) for chunk in self.chunks]
            (staging / METADATA_FILENAME).write_text(
                json.dumps(payload, ensure_ascii=False, indent=2),
                encoding="utf-8",
            )

            retired = None
            if self.index_dir.exists():
                retired = parent / f".{self.index_dir.name}.old-{os.getpid()}"
                if retired.exists():
                    shutil.rmtree(retired)
                os.replace(self.index_dir, retired)
            os.replace(staging, self.index_dir)
            if retired is not None:
                shutil.rmtree(retired, ignore_errors=True)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "faiss_index_saved",
            index_dir=str(self.index_dir),
            vector_count=self.index.ntotal,
        )

    def load(self, expected_model: Optional[str] = None) -> None:
        """Load an existing index from disk.

        Args:
            expected_model: Embedding model queries will be embedded with

        Raises:
            NotFoundError: If no artifact exists at index_dir
            IndexMismatchError: If the artifact was built with another model,
                or its files disagree with each other
        """
        if not self.index_path.exists() or not self.metadata_path.exists():
            raise NotFoundError(self.index_dir.name)

        metadata = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        records = metadata.pop("records", [])

        stored_model = metadata.get("embedding_model")
        if expected_model is not None and stored_model != expected_model:
            raise IndexMismatchError(
                f"Index {self.index_dir.name!r} was built with {stored_model}, "
                f"but queries use {expected_model}. Please rebuild the index."
            )

        index = faiss.read_index(str(self.index_path))
        if index.ntotal != len(records) or index.d != metadata.get("embedding_dimension"):
            raise IndexMismatchError(
                f"Index {self.index_dir.name!r} is inconsistent: "
                f"{index.ntotal} vectors of dim {index.d}, {len(records)} records"
            )

        self.index = index
        self.dimension = index.d
        self.metadata = metadata
        self.chunks = [_chunk_from_record(record) for record in records]

        logger.info(
            "faiss_index_loaded",
            index_dir=str(self.index_dir),
            dimension=self.dimension,
            vector_count=self.index.ntotal,
            model=stored_model,
        )

    def search(self, query_embedding: List[float], top_k: int) -> List[Tuple[Chunk, float]]:
        """Return up to ``top_k`` chunks by descending cosine similarity.

        Every vector is scored; equal scores keep insertion order.

        Raises:
            RuntimeError: If no index is loaded
            IndexMismatchError: If the query has the wrong dimension
        """
        if self.index is None:
            raise RuntimeError("No index initialized. Call load() first.")

        query_vector = np.array([query_embedding], dtype=np.float32)
        if query_vector.shape[1] != self.dimension:
            raise IndexMismatchError(
                f"Query dimension mismatch: expected {self.dimension}, "
                f"got {query_vector.shape[1]}"
            )

        top_k = min(top_k, self.index.ntotal)
        if top_k <= 0:
            return []

        scores, indices = self.index.search(_normalize_rows(query_vector), self.index.ntotal)
        ranked = sorted(
            (
                (float(score), int(idx))
                for score, idx in zip(scores[0], indices[0])
                if idx >= 0
            ),
            key=lambda item: (-item[0], item[1]),
        )

        return [(self.chunks[idx], score) for score, idx in ranked[:top_k]]

def _chunk_to_record(chunk: Chunk) -> Dict[str, Any]:
    return {
        "text": chunk.text,
        "framework": chunk.framework,
        "source_id": chunk.source_id,
        "sequence_index": chunk.sequence_index,
        "char_start": chunk.char_start,
        "char_end": chunk.char_end,
        "title": chunk.title,
    }


def _chunk_from_record(record: Dict[str, Any]) -> Chunk:
    return Chunk(
        text=record["text"],
        framework=record["framework"],
        source_id=record["source_id"],
        sequence_index=int(record["sequence_index"]),
        char_start=int(record["char_start"]),
        char_end=int(record["char_end"]),
        title=record.get("title"),
    )
