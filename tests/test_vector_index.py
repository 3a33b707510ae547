"""Tests for cosine similarity and the in-memory vector index."""

from __future__ import annotations

import pytest

from noodle.rag.vector_index import VectorIndex, cosine_similarity


def test_cosine_similarity_properties() -> None:
    """Self-similarity is 1, zero vectors score 0, and the measure is symmetric."""

    a = [0.3, -1.2, 4.0]
    b = [2.0, 0.5, -0.7]

    assert cosine_similarity(a, a) == pytest.approx(1.0)
    assert cosine_similarity(a, [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity([0.0, 0.0, 0.0], [0.0, 0.0, 0.0]) == 0.0
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_search_ranks_and_limits() -> None:
    """Search returns at most top_k hits sorted by descending score."""

    index = VectorIndex()
    index.add("doc-a", [("east", [1.0, 0.0]), ("north-east", [1.0, 1.0])])
    index.add("doc-b", [("north", [0.0, 1.0]), ("west", [-1.0, 0.0])])

    hits = index.search([1.0, 0.1], top_k=3)

    assert [hit.chunk.text for hit in hits] == ["east", "north-east", "north"]
    assert [hit.score for hit in hits] == sorted((hit.score for hit in hits), reverse=True)


def test_ties_keep_insertion_order() -> None:
    """Equal scores come back in the order the chunks were added."""

    index = VectorIndex()
    index.add("doc-a", [("first", [1.0, 0.0]), ("second", [2.0, 0.0])])
    index.add("doc-b", [("third", [3.0, 0.0])])

    hits = index.search([1.0, 0.0], top_k=3)

    assert [hit.chunk.text for hit in hits] == ["first", "second", "third"]
    assert [hit.position for hit in hits] == [0, 1, 2]


def test_remove_excludes_document() -> None:
    """Removed documents never show up in results; removal is idempotent."""

    index = VectorIndex()
    index.add("doc-a", [("alpha", [1.0, 0.0])])
    index.add("doc-b", [("beta", [1.0, 0.1])])

    assert index.remove("doc-a") == 1
    assert index.remove("doc-a") == 0
    assert index.remove("missing") == 0

    hits = index.search([1.0, 0.0], top_k=5)
    assert [hit.chunk.doc_id for hit in hits] == ["doc-b"]
    assert index.count("doc-a") == 0


def test_empty_index_returns_nothing() -> None:
    """Searching an empty index is not an error."""

    assert VectorIndex().search([1.0, 2.0], top_k=3) == []
