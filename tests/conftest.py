"""Shared fixtures: a deterministic stand-in for the Ollama API and a small corpus."""
import asyncio
import hashlib
import re
from pathlib import Path
from typing import Dict, List, Optional

import httpx
import pytest

from docqa.llm_client import OllamaClient
from docqa.rag.embedder import Embedder
from docqa.rag.generator import AnswerGenerator
from docqa.rag.ingest import IngestPipeline
from docqa.rag.prompt import NOT_IN_DOCS
from docqa.rag.retriever import Retriever
from docqa.rag.retry import RetryPolicy
from docqa.rag.service import QAService

EMBEDDING_MODEL = "fake-embed"
CHAT_MODEL = "fake-chat"
DIMENSIONS = 1024

STOPWORDS = {
    "a", "an", "and", "are", "at", "do", "does", "for", "how", "i", "in", "is",
    "it", "of", "on", "or", "the", "to", "what", "which", "with", "you", "your",
}


def tokenize(text: str) -> List[str]:
    return [t for t in re.findall(r"[a-z0-9]+", text.lower()) if t not in STOPWORDS]


def bag_of_words(text: str, dimensions: int = DIMENSIONS) -> List[float]:
    """Hashed bag-of-words vector: texts sharing words score higher."""
    vector = [0.0] * dimensions
    for token in tokenize(text):
        bucket = int(hashlib.sha256(token.encode("utf-8")).hexdigest(), 16) % dimensions
        vector[bucket] += 1.0
    return vector


def literal_answer(prompt: str) -> str:
    """Answer like a model that follows the grounding instructions to the letter.

    Returns the first documentation sentence sharing a keyword with the
    question, or the refusal string.
    """
    documentation = prompt.split("Documentation:\n", 1)[1].split("\n\nUser Question:\n", 1)[0]
    question = prompt.rsplit("User Question:\n", 1)[1]
    keywords = set(tokenize(question))

    for sentence in re.split(r"(?<=[.!?])\s+", documentation):
        if keywords & set(tokenize(sentence)):
            return sentence.strip()
    return NOT_IN_DOCS


def http_status_error(status_code: int) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "http://ollama.test/api/chat")
    response = httpx.Response(status_code, request=request)
    return httpx.HTTPStatusError(f"status {status_code}", request=request, response=response)


def ollama_returning(status_code: int, body: str) -> OllamaClient:
    """A real OllamaClient whose server always answers with ``body``."""

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, text=body)

    return OllamaClient(base_url="http://ollama.test", transport=httpx.MockTransport(handler))


class FakeOllamaClient:
    """In-process substitute for OllamaClient.

    ``embedding_errors`` / ``chat_errors`` are raised, in order, by the
    next calls; texts containing a ``fail_on`` marker always fail to embed.
    """

    def __init__(self, dimensions: int = DIMENSIONS):
        self.dimensions = dimensions
        self.embedding_calls: List[str] = []
        self.chat_calls: List[List[Dict[str, str]]] = []
        self.embedding_errors: List[Exception] = []
        self.chat_errors: List[Exception] = []
        self.fail_on: Optional[str] = None
        self.chat_delay: float = 0.0
        self.chat_response: Optional[dict] = None
        self.models = [CHAT_MODEL, EMBEDDING_MODEL]

    async def embeddings(self, prompt: str, model: str = None) -> Dict:
        self.embedding_calls.append(prompt)
        if self.embedding_errors:
            raise self.embedding_errors.pop(0)
        if self.fail_on and self.fail_on in prompt:
            raise httpx.ConnectError("embedding backend unreachable")
        return {"embedding": bag_of_words(prompt, self.dimensions)}

    async def chat(self, messages, model: str = None, temperature=None) -> Dict:
        self.chat_calls.append(messages)
        if self.chat_delay:
            await asyncio.sleep(self.chat_delay)
        if self.chat_errors:
            raise self.chat_errors.pop(0)
        if self.chat_response is not None:
            return self.chat_response
        return {"message": {"role": "assistant", "content": literal_answer(messages[-1]["content"])}}

    async def list_models(self) -> List[str]:
        return list(self.models)


@pytest.fixture
def fake_client() -> FakeOllamaClient:
    return FakeOllamaClient()


@pytest.fixture
def retry_policy() -> RetryPolicy:
    """Three attempts without sleeping between them."""
    return RetryPolicy(max_attempts=3, backoff_seconds=0.0, max_backoff_seconds=0.0)


@pytest.fixture
def embedder(fake_client, retry_policy) -> Embedder:
    return Embedder(fake_client, model=EMBEDDING_MODEL, retry_policy=retry_policy, concurrency=2)


def write_docs(root: Path, files: Dict[str, object]) -> Path:
    """Write ``{"framework/file": text_or_bytes}`` under root."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return root


REACT_DOCS = {
    "react/intro.md": "React is a UI library for building user interfaces out of components.",
    "react/hooks.md": (
        "useState manages local state in function components. "
        "Call it at the top level of your component to declare a state variable."
    ),
    "vue/reactivity.md": "Vue tracks reactive dependencies with proxies and refs.",
}


@pytest.fixture
def corpus_dir(tmp_path) -> Path:
    return write_docs(tmp_path / "docs_dataset", REACT_DOCS)


@pytest.fixture
def index_dir(tmp_path) -> Path:
    return tmp_path / "faiss_store"


@pytest.fixture
def pipeline(embedder, index_dir) -> IngestPipeline:
    return IngestPipeline(embedder, index_dir=index_dir, chunk_size=200, chunk_overlap=40)


@pytest.fixture
async def built_index(pipeline, corpus_dir, index_dir) -> Path:
    await pipeline.run(corpus_dir)
    return index_dir


@pytest.fixture
def retriever(embedder, built_index) -> Retriever:
    return Retriever(embedder, index_dir=built_index, top_k=5)


@pytest.fixture
def generator(fake_client, retry_policy) -> AnswerGenerator:
    return AnswerGenerator(fake_client, model=CHAT_MODEL, retry_policy=retry_policy)


@pytest.fixture
def qa_service(retriever, generator) -> QAService:
    return QAService(retriever, generator, top_k=5, timeout=5.0)
