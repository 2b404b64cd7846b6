"""Documentation Q&A over framework-scoped retrieval-augmented generation."""

__version__ = "0.1.0"
