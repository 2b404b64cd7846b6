"""Answer generation with bounded retries."""
from typing import Optional
import httpx
import structlog

from docqa import config
from docqa.errors import GenerationError
from docqa.llm_client import OllamaClient
from docqa.rag.retry import RetryPolicy

logger = structlog.get_logger()


class AnswerGenerator:
    """Sends an assembled prompt to the chat model and returns its raw text."""

    def __init__(
        self,
        client: OllamaClient,
        model: str = None,
        retry_policy: Optional[RetryPolicy] = None,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model = model or config.CHAT_MODEL
        self.retry_policy = retry_policy or RetryPolicy()
        self.temperature = temperature

    async def generate(self, prompt: str) -> str:
        """Generate an answer for ``prompt``.

        The answer is returned as-is; the refusal contract lives in the
        prompt, not here.

        Raises:
            GenerationError: On non-transient failure, exhausted retries or
                a malformed response
        """
        messages = [{"role": "user", "content": prompt}]

        try:
            async for attempt in self.retry_policy.retrying("generation"):
                with attempt:
                    response = await self.client.chat(
                        messages, model=self.model, temperature=self.temperature
                    )
        except httpx.HTTPError as e:
            logger.error(
                "generation_failed",
                model=self.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise GenerationError(f"Language model call failed: {e}") from e

        message = response.get("message") if isinstance(response, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            logger.error("generation_malformed_response", model=self.model)
            raise GenerationError(f"Malformed response from {self.model}: missing message content")

        logger.info("answer_generated", model=self.model, answer_length=len(content))
        return content
