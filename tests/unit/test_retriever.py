"""Tests for framework-scoped retrieval."""
import pytest

from docqa.errors import IndexMismatchError, NotFoundError
from docqa.rag.embedder import Embedder
from docqa.rag.ingest import IngestPipeline
from docqa.rag.retriever import Retriever
from tests.conftest import write_docs


async def test_most_similar_chunk_ranks_first(retriever):
    results = await retriever.retrieve("How does useState manage state?", "react")

    assert results[0].chunk.source_id == "hooks.md"
    assert results[0].source == "react/hooks.md"
    assert [r.score for r in results] == sorted((r.score for r in results), reverse=True)


async def test_results_stay_inside_the_framework(retriever):
    results = await retriever.retrieve("reactive proxies and refs", "react")

    assert {r.chunk.framework for r in results} == {"react"}


@pytest.mark.parametrize("k,expected", [(1, 1), (2, 2), (10, 2)])
async def test_result_count_is_bounded(retriever, k, expected):
    assert len(await retriever.retrieve("components", "react", k=k)) == expected


async def test_repeated_queries_are_deterministic(retriever):
    first = await retriever.retrieve("state variable", "react")
    second = await retriever.retrieve("state variable", "react")

    assert first == second


async def test_framework_lookup_ignores_case(retriever):
    lower = await retriever.retrieve("state", "react")
    mixed = await retriever.retrieve("state", " React ")

    assert lower == mixed


async def test_unknown_framework_raises(retriever):
    with pytest.raises(NotFoundError) as exc_info:
        await retriever.retrieve("stores", "redux")

    assert exc_info.value.framework == "redux"


async def test_store_handles_are_cached_until_invalidated(retriever):
    store = await retriever.get_store("react")

    assert await retriever.get_store("REACT") is store

    retriever.invalidate("react")
    assert await retriever.get_store("react") is not store


async def test_empty_index_returns_nothing_without_embedding(embedder, fake_client, tmp_path, index_dir):
    root = write_docs(
        tmp_path / "corpus",
        {"react/intro.md": "React is a UI library for building interfaces.", "svelte/blank.md": b""},
    )
    await IngestPipeline(embedder, index_dir=index_dir).run(root)
    calls = len(fake_client.embedding_calls)

    results = await Retriever(embedder, index_dir=index_dir).retrieve("anything", "svelte")

    assert results == []
    assert len(fake_client.embedding_calls) == calls


async def test_index_from_another_model_is_rejected(fake_client, retry_policy, built_index):
    other = Embedder(fake_client, model="other-embed", retry_policy=retry_policy)

    with pytest.raises(IndexMismatchError):
        await Retriever(other, index_dir=built_index).retrieve("state", "react")


@pytest.mark.parametrize("framework", ["../vue", "react/../vue", "/abs/dir", "..", ".hidden", "a\\b"])
async def test_framework_names_cannot_leave_the_index_root(retriever, framework):
    with pytest.raises(NotFoundError):
        await retriever.retrieve("state", framework)


async def test_index_outside_the_root_is_unreachable(embedder, tmp_path, retriever):
    outside = tmp_path / "elsewhere"
    root = write_docs(tmp_path / "other_corpus", {"secret/page.md": "useState secret internal passage text."})
    await IngestPipeline(embedder, index_dir=outside).run(root)

    with pytest.raises(NotFoundError):
        await retriever.retrieve("useState?", str(outside / "secret"))
