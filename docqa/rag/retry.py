"""Bounded retry policy for embedding and generation calls."""
from dataclasses import dataclass

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from docqa import config

logger = structlog.get_logger()

# Rate limiting, timeouts and server-side failures are worth another attempt
TRANSIENT_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


def is_transient_error(exc: BaseException) -> bool:
    """Network and rate-limit class failures; anything else is permanent."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUS_CODES
    return isinstance(exc, httpx.TransportError)


@dataclass(frozen=True)
class RetryPolicy:
    """How many times a model call is attempted and how long to back off.

    ``max_attempts`` counts the first call, so ``RetryPolicy(max_attempts=1)``
    never retries.
    """

    max_attempts: int = config.LLM_MAX_ATTEMPTS
    backoff_seconds: float = config.RETRY_BACKOFF_SECONDS
    max_backoff_seconds: float = config.RETRY_BACKOFF_MAX_SECONDS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def retrying(self, operation: str) -> AsyncRetrying:
        """Build a tenacity controller for one logical operation.

        The last exception is re-raised unchanged once attempts are
        exhausted or when it is not transient.
        """

        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "model_call_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                error=str(exc),
                error_type=type(exc).__name__,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(
                multiplier=self.backoff_seconds, max=self.max_backoff_seconds
            ),
            retry=retry_if_exception(is_transient_error),
            before_sleep=_log_retry,
            reraise=True,
        )


NO_RETRY = RetryPolicy(max_attempts=1, backoff_seconds=0.0)
