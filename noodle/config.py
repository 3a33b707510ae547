"""Configuration and environment validation.

This module centralizes runtime settings so every part of the workspace reads
configuration in one consistent way: API keys, integration URLs, chunking
defaults and timeouts all live on one typed object.

How this module is designed:
1. `Settings` loads values from environment variables and optional `.env` file.
2. Core components receive a `Settings` instance through their constructors.
   The module-level `settings` object is only for entrypoints (CLIs, tests).
3. `validate_env()` explicitly checks required keys for a given feature, so a
   missing key fails the feature that needs it and nothing else.
"""

from __future__ import annotations

import os
from typing import Iterable

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from noodle.errors import ValidationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Note:
    Keys are optional at load time. Required-key checks are deferred to
    `validate_env()` so that, for example, the knowledge base still works
    when no completion key is configured.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    debug: bool = Field(default=False, alias="DEBUG")

    groq_api_key: str | None = Field(default=None, alias="GROQ_API_KEY")
    groq_model: str = Field(default="llama-3.3-70b-versatile", alias="GROQ_MODEL")
    groq_temperature: float = Field(default=0.2, alias="GROQ_TEMPERATURE")

    embedding_provider: str = Field(default="huggingface", alias="EMBEDDING_PROVIDER")
    hf_embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2", alias="HF_EMBEDDING_MODEL"
    )
    fallback_embedding_dim: int = Field(default=384, alias="FALLBACK_EMBEDDING_DIM")

    rag_max_file_bytes: int = Field(default=10 * 1024 * 1024, alias="RAG_MAX_FILE_BYTES")
    rag_chunk_size: int = Field(default=1000, alias="RAG_CHUNK_SIZE")
    rag_chunk_overlap: int = Field(default=100, alias="RAG_CHUNK_OVERLAP")
    rag_top_k: int = Field(default=3, alias="RAG_TOP_K")

    webhook_timeout_seconds: float = Field(default=30.0, alias="WEBHOOK_TIMEOUT_SECONDS")
    custom_webhook_url: str | None = Field(default=None, alias="CUSTOM_WEBHOOK_URL")
    flowise_url: str | None = Field(default=None, alias="FLOWISE_URL")
    activepieces_url: str | None = Field(default=None, alias="ACTIVEPIECES_URL")
    langchain_url: str | None = Field(default=None, alias="LANGCHAIN_URL")

    tavily_api_key: str | None = Field(default=None, alias="TAVILY_API_KEY")
    exa_api_key: str | None = Field(default=None, alias="EXA_API_KEY")
    brave_api_key: str | None = Field(default=None, alias="BRAVE_API_KEY")
    search_timeout_seconds: float = Field(default=20.0, alias="SEARCH_TIMEOUT_SECONDS")

    loop_retry_delay_seconds: float = Field(default=1.0, alias="LOOP_RETRY_DELAY_SECONDS")

    langsmith_api_key: str | None = Field(default=None, alias="LANGSMITH_API_KEY")
    langsmith_project: str = Field(default="noodle-graph", alias="LANGSMITH_PROJECT")
    langchain_tracing_v2: bool = Field(default=False, alias="LANGCHAIN_TRACING_V2")


settings = Settings()


def validate_env(required_vars: Iterable[str], config: Settings | None = None) -> None:
    """Fail fast if required configuration keys are missing.

    Parameters
    ----------
    required_vars:
        Iterable of variable names (for example, `GROQ_API_KEY`) that must be
        present and non-empty before a feature can proceed.
    config:
        Settings to check. Defaults to the module-level `settings`.

    Raises
    ------
    ValidationError
        If one or more required variables are missing.
    """

    config = config or settings
    missing: list[str] = []
    for var_name in required_vars:
        # Convert ENV-like names to Settings attribute names.
        attr_name = var_name.lower()
        if hasattr(config, attr_name):
            value = getattr(config, attr_name)
        else:
            value = os.getenv(var_name)

        if value is None or (isinstance(value, str) and value.strip() == ""):
            missing.append(var_name)

    if missing:
        raise ValidationError(
            "Missing required configuration: "
            + ", ".join(sorted(missing))
            + ". Set them in the environment or in .env."
        )
