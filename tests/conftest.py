"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from noodle.config import Settings
from noodle.graph.store import GraphStore
from noodle.rag.embedder import DeterministicHashEmbeddings
from noodle.rag.retrieval import RetrievalService


@pytest.fixture
def config() -> Settings:
    """Settings isolated from the developer's environment and .env file."""

    return Settings(
        _env_file=None,
        embedding_provider="hash",
        fallback_embedding_dim=32,
        loop_retry_delay_seconds=0.0,
        webhook_timeout_seconds=0.2,
        custom_webhook_url=None,
        tavily_api_key=None,
        exa_api_key=None,
        brave_api_key=None,
    )


@pytest.fixture
def store() -> GraphStore:
    return GraphStore()


@pytest.fixture
def retrieval(config: Settings) -> RetrievalService:
    return RetrievalService(config, DeterministicHashEmbeddings(dimension=config.fallback_embedding_dim))
