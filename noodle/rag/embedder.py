"""Embedding backends for the knowledge base.

Two implementations:
- HuggingFace sentence-transformer embeddings through `langchain-huggingface`.
- Deterministic hash embeddings for offline development and tests.

Both expose one coroutine, `embed(text)`, returning a fixed-length vector.
The knowledge base calls it once per chunk, sequentially.
"""

from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from typing import Any, Protocol

from noodle.config import Settings
from noodle.errors import EmbeddingError, ValidationError
from noodle.utils.logging import get_logger

logger = get_logger(__name__)


class EmbeddingBackend(Protocol):
    """Minimal embedding protocol used by the retrieval service."""

    async def embed(self, text: str) -> list[float]:
        """Embed one string into a vector."""


@dataclass
class DeterministicHashEmbeddings:
    """Local deterministic embeddings for offline/small-mode development.

    Important:
    This is not semantically strong like sentence-transformer embeddings.
    Identical strings map to identical vectors, which is enough for tests.
    """

    dimension: int = 384

    def _embed_one(self, text: str) -> list[float]:
        seed = hashlib.sha256(text.encode("utf-8")).digest()
        values: list[float] = []

        current = seed
        while len(values) < self.dimension:
            current = hashlib.sha256(current).digest()
            values.extend(((byte / 255.0) * 2.0 - 1.0) for byte in current)

        return values[: self.dimension]

    async def embed(self, text: str) -> list[float]:
        return self._embed_one(text)


class LangChainEmbeddings:
    """Adapter from a LangChain `Embeddings` object to `EmbeddingBackend`.

    LangChain sentence-transformer models embed synchronously, so each call
    runs in a worker thread to keep the event loop free for other node runs.
    """

    def __init__(self, model: Any, model_name: str) -> None:
        self.model = model
        self.model_name = model_name

    async def embed(self, text: str) -> list[float]:
        try:
            vector = await asyncio.to_thread(self.model.embed_query, text)
        except Exception as exc:
            raise EmbeddingError(f"Embedding failed with {self.model_name}: {exc}") from exc

        if not vector:
            raise EmbeddingError(f"Embedding model {self.model_name} returned an empty vector")
        return [float(value) for value in vector]


def get_embedder(config: Settings) -> tuple[EmbeddingBackend, str]:
    """Return an embedding backend and a human-readable model label."""

    provider = config.embedding_provider.strip().lower()

    if provider == "hash":
        logger.warning(
            "Using deterministic hash embeddings",
            extra={"context": {"dimension": config.fallback_embedding_dim}},
        )
        return DeterministicHashEmbeddings(dimension=config.fallback_embedding_dim), "deterministic-hash"

    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        logger.info(
            "Using HuggingFace embeddings",
            extra={"context": {"model": config.hf_embedding_model}},
        )
        model = HuggingFaceEmbeddings(model_name=config.hf_embedding_model)
        return LangChainEmbeddings(model, config.hf_embedding_model), config.hf_embedding_model

    raise ValidationError(f"Unknown EMBEDDING_PROVIDER: {config.embedding_provider!r}")
