"""Async Ollama API client used for both chat and embeddings."""
import httpx
from typing import Any, List, Dict, Optional
import structlog

from docqa import config

logger = structlog.get_logger()

HEALTH_CHECK_TIMEOUT = 5.0


class OllamaClient:
    """Thin wrapper over the Ollama HTTP API.

    Errors are logged and re-raised as httpx exceptions; callers decide
    whether they are worth retrying.
    """

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.OLLAMA_TIMEOUT)
            transport: Optional httpx transport (used to stub the API in tests)
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.OLLAMA_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout if timeout is not None else self.timeout,
            transport=self.transport,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return _json_object(response)
        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", path=path, base_url=self.base_url, error=str(e))
            raise
        except httpx.HTTPStatusError as e:
            logger.error(
                "ollama_http_error",
                path=path,
                status_code=e.response.status_code,
                error=str(e),
            )
            raise
        except httpx.HTTPError as e:
            logger.error("ollama_request_failed", path=path, error=str(e), error_type=type(e).__name__)
            raise

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API or connection errors
        """
        model = model or config.CHAT_MODEL
        payload = {"model": model, "messages": messages, "stream": False}
        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info("ollama_chat_request", model=model, message_count=len(messages))
        data = await self._post("/api/chat", payload)
        message = data.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        logger.info(
            "ollama_chat_response",
            model=model,
            response_length=len(content) if isinstance(content, str) else 0,
        )
        return data

    async def embeddings(self, prompt: str, model: str = None) -> Dict:
        """Embed one text.

        Returns:
            Response dict with an 'embedding' list

        Raises:
            httpx.HTTPError: On API or connection errors
        """
        model = model or config.EMBEDDING_MODEL
        logger.debug("ollama_embedding_request", model=model, prompt_length=len(prompt))
        return await self._post("/api/embeddings", {"model": model, "prompt": prompt})

    async def list_models(self) -> List[str]:
        """Names of the models installed on the Ollama server."""
        try:
            async with self._client(timeout=HEALTH_CHECK_TIMEOUT) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
                return [m["name"] for m in _json_object(response).get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise


def _json_object(response: httpx.Response) -> Dict:
    """Decode a response body that must be a JSON object.

    Raises:
        httpx.DecodingError: If the body is not JSON or not an object
    """
    try:
        data = response.json()
    except ValueError as e:
        raise httpx.DecodingError(
            f"Invalid JSON from {response.request.url}: {e}", request=response.request
        ) from e
    if not isinstance(data, dict):
        raise httpx.DecodingError(
            f"Expected a JSON object from {response.request.url}, got {type(data).__name__}",
            request=response.request,
        )
    return data
