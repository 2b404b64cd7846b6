"""Tests for the per-framework FAISS store."""
import pytest

from docqa.errors import IndexMismatchError, NotFoundError
from docqa.rag.chunker import Chunk
from docqa.rag.store_faiss import (
    FAISSVectorStore,
    index_dir_for,
    list_indexed_frameworks,
    remove_index,
)


def make_chunks(n: int, framework: str = "React"):
    return [
        Chunk(
            text=f"chunk {i}",
            framework=framework,
            source_id=f"doc{i}.md",
            sequence_index=0,
            char_start=0,
            char_end=7,
        )
        for i in range(n)
    ]


def build_store(tmp_path, chunks, embeddings, dimension=3, model="fake-embed"):
    store = FAISSVectorStore(index_dir_for(tmp_path, chunks[0].framework if chunks else "react"))
    store.build(
        chunks,
        embeddings,
        framework="React",
        dimension=dimension,
        embedding_model=model,
        chunk_size=100,
        chunk_overlap=10,
    )
    return store


def test_index_location_uses_lowercased_framework(tmp_path):
    assert index_dir_for(tmp_path, "React") == tmp_path / "react"


def test_saved_index_loads_with_same_contents(tmp_path):
    chunks = make_chunks(3)
    store = build_store(tmp_path, chunks, [[1, 0, 0], [0, 1, 0], [0, 0, 1]])
    store.save()

    loaded = FAISSVectorStore(tmp_path / "react")
    loaded.load(expected_model="fake-embed")

    assert loaded.chunks == chunks
    assert loaded.dimension == 3
    assert loaded.vector_count == 3
    assert loaded.metadata["framework"] == "React"
    assert loaded.metadata["chunk_size"] == 100
    assert list_indexed_frameworks(tmp_path) == ["react"]


def test_search_orders_by_cosine_similarity(tmp_path):
    store = build_store(tmp_path, make_chunks(3), [[1, 0, 0], [0.7, 0.7, 0], [0, 0, 5]])

    hits = store.search([1, 0, 0], top_k=3)

    assert [chunk.text for chunk, _ in hits] == ["chunk 0", "chunk 1", "chunk 2"]
    assert hits[0][1] == pytest.approx(1.0)
    assert hits[2][1] == pytest.approx(0.0)


def test_search_ties_keep_insertion_order(tmp_path):
    store = build_store(tmp_path, make_chunks(4), [[1, 1, 0]] * 4)

    hits = store.search([1, 1, 0], top_k=3)

    assert [chunk.text for chunk, _ in hits] == ["chunk 0", "chunk 1", "chunk 2"]


@pytest.mark.parametrize("k,expected", [(1, 1), (3, 3), (10, 3), (0, 0)])
def test_search_returns_min_of_k_and_size(tmp_path, k, expected):
    store = build_store(tmp_path, make_chunks(3), [[1, 0, 0], [0, 1, 0], [0, 0, 1]])

    assert len(store.search([1, 1, 1], top_k=k)) == expected


def test_empty_index_searches_to_nothing(tmp_path):
    store = build_store(tmp_path, [], [])
    store.save()

    loaded = FAISSVectorStore(tmp_path / "react")
    loaded.load()

    assert loaded.vector_count == 0
    assert loaded.search([1, 0, 0], top_k=5) == []


def test_build_rejects_wrong_dimension(tmp_path):
    with pytest.raises(ValueError):
        build_store(tmp_path, make_chunks(2), [[1, 0, 0], [1, 0]])


def test_build_rejects_length_mismatch(tmp_path):
    with pytest.raises(ValueError):
        build_store(tmp_path, make_chunks(2), [[1, 0, 0]])


def test_query_dimension_checked(tmp_path):
    store = build_store(tmp_path, make_chunks(1), [[1, 0, 0]])

    with pytest.raises(IndexMismatchError):
        store.search([1, 0], top_k=1)


def test_load_missing_index_raises_not_found(tmp_path):
    with pytest.raises(NotFoundError):
        FAISSVectorStore(tmp_path / "svelte").load()


def test_load_rejects_other_embedding_model(tmp_path):
    build_store(tmp_path, make_chunks(1), [[1, 0, 0]], model="model-a").save()

    with pytest.raises(IndexMismatchError):
        FAISSVectorStore(tmp_path / "react").load(expected_model="model-b")


def test_save_replaces_previous_artifact_without_leftovers(tmp_path):
    build_store(tmp_path, make_chunks(3), [[1, 0, 0]] * 3).save()
    build_store(tmp_path, make_chunks(1), [[0, 1, 0]]).save()

    loaded = FAISSVectorStore(tmp_path / "react")
    loaded.load()

    assert loaded.vector_count == 1
    assert sorted(p.name for p in tmp_path.iterdir()) == ["react"]


@pytest.mark.parametrize("framework", ["../react", "/tmp/react", "..", ".react", ""])
def test_index_location_rejects_path_like_names(tmp_path, framework):
    with pytest.raises(ValueError):
        index_dir_for(tmp_path, framework)


def test_remove_index(tmp_path):
    build_store(tmp_path, make_chunks(1), [[1, 0, 0]]).save()

    remove_index(tmp_path, "React")
    remove_index(tmp_path, "react")

    assert list(tmp_path.iterdir()) == []
