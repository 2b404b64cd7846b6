"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Corpus loading and markdown frontmatter handling
- Text normalization and chunking with overlap
- Embedding generation with retries
- Per-framework FAISS vector storage
- Framework-scoped retrieval
- Grounding prompt assembly and answer generation
"""
