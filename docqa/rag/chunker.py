"""Text normalization and chunking with overlap for the RAG pipeline.

Implements character-based chunking to avoid tokenizer dependencies.
"""
import re
from dataclasses import dataclass, replace
from typing import List, Optional
import structlog

from docqa import config
from docqa.rag.loader import DocumentUnit

logger = structlog.get_logger()

# C0 controls except whitespace, DEL and C1 controls
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]")
WHITESPACE_RUN = re.compile(r"\s+")

# Chunks made only of these tokens come from broken exports, not documentation
PLACEHOLDER_CHUNK = re.compile(
    r"(?:(?:undefined|null|none|nan|\[object object\])[\s,;.:|]*)+",
    re.IGNORECASE,
)

SENTENCE_BREAKS = (". ", "! ", "? ")
CLAUSE_BREAKS = ("; ", ": ")


def normalize_text(text: str) -> str:
    """Strip control characters, collapse whitespace runs and trim."""
    if not text:
        return ""
    text = CONTROL_CHARS.sub("", text)
    return WHITESPACE_RUN.sub(" ", text).strip()


def is_degenerate(text: str) -> bool:
    """True for chunks with no retrievable content."""
    stripped = text.strip()
    return not stripped or PLACEHOLDER_CHUNK.fullmatch(stripped) is not None


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


@dataclass(frozen=True)
class Chunk:
    """A bounded piece of a document, the unit of embedding and retrieval."""

    text: str
    framework: str
    source_id: str
    sequence_index: int
    char_start: int
    char_end: int
    title: Optional[str] = None


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: int = None,
        chunk_overlap: int = None,
        min_document_chars: int = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            min_document_chars: Normalized documents shorter than this are dropped

        Raises:
            ValueError: If the size/overlap combination is invalid
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.min_document_chars = (
            config.MIN_DOCUMENT_CHARS if min_document_chars is None else min_document_chars
        )

        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Every chunk after the first starts exactly ``chunk_overlap``
        characters before the end of the previous one, so dropping that
        prefix from each later chunk reconstructs ``text``.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects
        """
        if not text:
            return []

        text_length = len(text)
        chunks = []
        start = 0

        while True:
            end = min(start + self.chunk_size, text_length)

            # Try to break at a natural boundary unless we're at the end
            if end < text_length:
                end = start + self._boundary_offset(text[start:end])

            chunks.append(
                TextChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=len(chunks),
                )
            )

            if end >= text_length:
                break
            start = end - self.chunk_overlap

        return chunks

    def _boundary_offset(self, window: str) -> int:
        """Find where to cut a full window, preferring natural boundaries.

        Cuts are only considered past the overlap and in the last 30% of
        the window; the window length is the hard-cut fallback.
        """
        min_cut = max(self.chunk_overlap + 1, int(len(window) * 0.7))

        for breaks in (SENTENCE_BREAKS, CLAUSE_BREAKS):
            best = max((window.rfind(b) + len(b) for b in breaks if b in window), default=-1)
            if best >= min_cut:
                return best

        # Word boundary (space)
        last_space = window.rfind(" ")
        if last_space + 1 >= max(min_cut, int(len(window) * 0.8)):
            return last_space + 1

        return len(window)

    def chunk_document(self, document: DocumentUnit) -> List[Chunk]:
        """Normalize and chunk one document.

        Args:
            document: Document read by the corpus loader

        Returns:
            Chunks in document order, or an empty list if the document
            carries no usable text
        """
        text = normalize_text(document.text)

        if len(text) < self.min_document_chars:
            logger.info(
                "document_dropped",
                framework=document.framework,
                source_id=document.source_id,
                normalized_length=len(text),
            )
            return []

        chunks = [
            Chunk(
                text=span.content,
                framework=document.framework,
                source_id=document.source_id,
                sequence_index=span.chunk_index,
                char_start=span.char_start,
                char_end=span.char_end,
                title=document.title,
            )
            for span in self.chunk_text(text)
        ]

        kept = [c for c in chunks if not is_degenerate(c.text)]
        if len(kept) != len(chunks):
            logger.warning(
                "degenerate_chunks_filtered",
                framework=document.framework,
                source_id=document.source_id,
                filtered=len(chunks) - len(kept),
            )
            kept = [replace(c, sequence_index=i) for i, c in enumerate(kept)]

        logger.debug(
            "document_chunked",
            framework=document.framework,
            source_id=document.source_id,
            text_length=len(text),
            chunk_count=len(kept),
        )

        return kept

def chunk_stats(chunks: List[Chunk], overlap: int = 0) -> dict:
    """Get statistics about a set of chunks.

    Args:
        chunks: List of Chunk objects
        overlap: Overlap the chunks were produced with

    Returns:
        Dictionary with chunk statistics
    """
    if not chunks:
        return {
            "chunk_count": 0,
            "total_chars": 0,
            "avg_chunk_size": 0,
            "min_chunk_size": 0,
            "max_chunk_size": 0,
            "overlap": overlap,
        }

    chunk_sizes = [len(c.text) for c in chunks]

    return {
        "chunk_count": len(chunks),
        "total_chars": sum(chunk_sizes),
        "avg_chunk_size": sum(chunk_sizes) // len(chunks),
        "min_chunk_size": min(chunk_sizes),
        "max_chunk_size": max(chunk_sizes),
        "overlap": overlap,
    }
