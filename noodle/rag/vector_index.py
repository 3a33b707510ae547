"""In-memory vector index with exhaustive cosine-similarity search.

The index is a flat list of chunks in insertion order. Search scores every
stored chunk, which is fine for a personal knowledge base of a few thousand
chunks and keeps ranking exact and deterministic.
"""

from __future__ import annotations

import math
from collections.abc import Sequence

from noodle.rag.schemas import RAGChunk, ScoredChunk
from noodle.utils.logging import get_logger

logger = get_logger(__name__)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero magnitude."""

    dot = math.fsum(a * b for a, b in zip(vec_a, vec_b))
    mag_a = math.sqrt(math.fsum(a * a for a in vec_a))
    mag_b = math.sqrt(math.fsum(b * b for b in vec_b))

    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0
    return dot / (mag_a * mag_b)


class VectorIndex:
    """Flat store of embedded chunks keyed back to their document."""

    def __init__(self) -> None:
        self._chunks: list[RAGChunk] = []

    def __len__(self) -> int:
        return len(self._chunks)

    def add(self, doc_id: str, chunks: Sequence[tuple[str, Sequence[float]]]) -> None:
        """Append `(text, embedding)` pairs for `doc_id`; no de-duplication."""

        new_chunks = [
            RAGChunk(doc_id=doc_id, text=text, embedding=list(embedding))
            for text, embedding in chunks
        ]
        # Replace the list in one step so readers never see half a document.
        self._chunks = self._chunks + new_chunks

    def remove(self, doc_id: str) -> int:
        """Drop every chunk of `doc_id`. Returns how many were removed."""

        kept = [chunk for chunk in self._chunks if chunk.doc_id != doc_id]
        removed = len(self._chunks) - len(kept)
        self._chunks = kept
        return removed

    def chunks_for(self, doc_id: str) -> list[RAGChunk]:
        """Chunks of one document in insertion order."""

        return [chunk for chunk in self._chunks if chunk.doc_id == doc_id]

    def count(self, doc_id: str) -> int:
        return sum(1 for chunk in self._chunks if chunk.doc_id == doc_id)

    def search(self, query_embedding: Sequence[float], top_k: int) -> list[ScoredChunk]:
        """Return the `top_k` most similar chunks, best first.

        `sorted` is stable, so equal scores keep insertion order.
        """

        if top_k <= 0 or not self._chunks:
            return []

        scored = [
            ScoredChunk(chunk=chunk, score=cosine_similarity(query_embedding, chunk.embedding), position=idx)
            for idx, chunk in enumerate(self._chunks)
        ]
        ranked = sorted(scored, key=lambda item: item.score, reverse=True)

        logger.debug(
            "Vector search scored chunks",
            extra={"context": {"candidates": len(scored), "top_k": top_k}},
        )
        return ranked[:top_k]
