"""Embedding generation shared by index building and query time.

Query vectors must come from the same model the index was built with;
the model name travels with every index so the retriever can check it.
"""
import asyncio
from typing import List, Optional
import httpx
import structlog

from docqa import config
from docqa.errors import EmbeddingError
from docqa.llm_client import OllamaClient
from docqa.rag.retry import RetryPolicy

logger = structlog.get_logger()

DIMENSION_PROBE_TEXT = "dimension probe"


class Embedder:
    """Embeds texts through Ollama with bounded concurrency and retries."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = None,
    ):
        """Initialize the embedder.

        Args:
            client: Ollama client (or a substitute with the same interface)
            model: Embedding model name (default from config)
            retry_policy: Retry policy for transient failures
            concurrency: Maximum embedding calls in flight
        """
        self.client = client
        self.model = model or config.EMBEDDING_MODEL
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = concurrency or config.EMBEDDING_CONCURRENCY
        self.dimension: Optional[int] = None

    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            EmbeddingError: If the call fails after retries or the model
                returns an unusable vector
        """
        try:
            async for attempt in self.retry_policy.retrying("embedding"):
                with attempt:
                    response = await self.client.embeddings(prompt=text, model=self.model)
        except httpx.HTTPError as e:
            logger.error(
                "embedding_generation_failed",
                model=self.model,
                text_preview=text[:100],
                error=str(e),
            )
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        embedding = response.get("embedding") if isinstance(response, dict) else None
        if not embedding:
            raise EmbeddingError(f"Empty embedding returned by {self.model}")

        vector = [float(value) for value in embedding]
        self._check_dimension(vector)
        return vector

    def _check_dimension(self, vector: List[float]) -> None:
        if self.dimension is None:
            self.dimension = len(vector)
            logger.info("embedding_dimension_detected", model=self.model, dimension=self.dimension)
        elif len(vector) != self.dimension:
            raise EmbeddingError(
                f"Embedding dimension changed: expected {self.dimension}, got {len(vector)}"
            )

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts concurrently, keeping input order.

        The first failure cancels the calls still in flight and is
        re-raised; no partial result is returned.
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.concurrency)

        async def _embed_bounded(text: str) -> List[float]:
            async with semaphore:
                return await self.embed(text)

        tasks = [asyncio.ensure_future(_embed_bounded(text)) for text in texts]
        try:
            embeddings = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info(
            "embeddings_generated",
            model=self.model,
            count=len(embeddings),
            dimension=self.dimension,
        )
        return list(embeddings)

    async def get_dimension(self) -> int:
        """Return the model's dimension, embedding a probe text if unknown."""
        if self.dimension is None:
            await self.embed(DIMENSION_PROBE_TEXT)
        return self.dimension
