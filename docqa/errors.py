"""Error taxonomy for ingestion and query pipelines."""


class DocQAError(Exception):
    """Base class for all pipeline errors."""


class CorpusError(DocQAError, IOError):
    """The corpus root or a framework directory cannot be read."""


class EmbeddingError(DocQAError):
    """Embedding failed after the retry policy was exhausted."""


class NotFoundError(DocQAError):
    """No index exists for the requested framework."""

    def __init__(self, framework: str):
        self.framework = framework
        super().__init__(f"Unknown framework: {framework!r}")


class IndexMismatchError(DocQAError):
    """A persisted index was built with a different embedding model or dimension."""


class GenerationError(DocQAError):
    """The language model call failed after the retry policy was exhausted."""


class QueryTimeoutError(DocQAError):
    """A query did not complete within the request timeout."""
