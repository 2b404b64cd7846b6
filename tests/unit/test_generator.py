"""Tests for answer generation."""
import httpx
import pytest

from docqa.errors import GenerationError
from docqa.llm_client import OllamaClient
from docqa.rag.generator import AnswerGenerator
from docqa.rag.retry import NO_RETRY, RetryPolicy, is_transient_error
from tests.conftest import CHAT_MODEL, http_status_error, ollama_returning


async def test_returns_raw_model_text(generator, fake_client):
    fake_client.chat_response = {"message": {"role": "assistant", "content": "  as-is \n"}}

    assert await generator.generate("prompt") == "  as-is \n"
    assert fake_client.chat_calls == [[{"role": "user", "content": "prompt"}]]


async def test_transient_failures_then_success(generator, fake_client):
    fake_client.chat_errors = [httpx.ConnectError("down"), http_status_error(503)]
    fake_client.chat_response = {"message": {"content": "ok"}}

    assert await generator.generate("prompt") == "ok"
    assert len(fake_client.chat_calls) == 3


async def test_rate_limit_is_retried(generator, fake_client):
    fake_client.chat_errors = [http_status_error(429)]
    fake_client.chat_response = {"message": {"content": "ok"}}

    assert await generator.generate("prompt") == "ok"
    assert len(fake_client.chat_calls) == 2


async def test_exhausted_retries_raise(generator, fake_client):
    fake_client.chat_errors = [httpx.ReadTimeout("slow")] * 3

    with pytest.raises(GenerationError):
        await generator.generate("prompt")

    assert len(fake_client.chat_calls) == 3


async def test_permanent_failure_is_not_retried(generator, fake_client):
    fake_client.chat_errors = [http_status_error(400)]

    with pytest.raises(GenerationError):
        await generator.generate("prompt")

    assert len(fake_client.chat_calls) == 1


async def test_no_retry_policy(fake_client):
    generator = AnswerGenerator(fake_client, model=CHAT_MODEL, retry_policy=NO_RETRY)
    fake_client.chat_errors = [httpx.ConnectError("down")]

    with pytest.raises(GenerationError):
        await generator.generate("prompt")

    assert len(fake_client.chat_calls) == 1


@pytest.mark.parametrize(
    "response",
    [{}, {"message": None}, {"message": {"role": "assistant"}}, {"message": {"content": 42}}],
)
async def test_malformed_response_raises(generator, fake_client, response):
    fake_client.chat_response = response

    with pytest.raises(GenerationError):
        await generator.generate("prompt")


@pytest.mark.parametrize(
    "error,transient",
    [
        (httpx.ConnectError("down"), True),
        (httpx.ReadTimeout("slow"), True),
        (http_status_error(429), True),
        (http_status_error(500), True),
        (http_status_error(400), False),
        (http_status_error(404), False),
        (ValueError("bug"), False),
    ],
)
def test_transient_classification(error, transient):
    assert is_transient_error(error) is transient


def test_retry_policy_requires_an_attempt():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


async def test_non_json_reply_is_a_generation_error(retry_policy):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, text="<html>proxy error</html>")

    client = OllamaClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))
    generator = AnswerGenerator(client, model=CHAT_MODEL, retry_policy=retry_policy)

    with pytest.raises(GenerationError):
        await generator.generate("prompt")

    assert len(calls) == 1


async def test_json_list_reply_is_a_generation_error(retry_policy):
    generator = AnswerGenerator(
        ollama_returning(200, "[]"), model=CHAT_MODEL, retry_policy=retry_policy
    )

    with pytest.raises(GenerationError):
        await generator.generate("prompt")
