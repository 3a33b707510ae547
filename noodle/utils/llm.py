"""LLM factory helpers.

Generation, critique and document analysis all go through a Groq chat model
built here, so every caller gets the same provider, model settings and
fail-fast key validation.
"""

from __future__ import annotations

from typing import Any

from langchain_groq import ChatGroq

from noodle.config import Settings, validate_env


def get_groq_chat_model(config: Settings) -> Any:
    """Return a Groq chat model configured from settings.

    Raises
    ------
    ValidationError
        If the Groq API key is missing.
    """

    validate_env(["GROQ_API_KEY", "GROQ_MODEL"], config)

    return ChatGroq(
        model=config.groq_model,
        temperature=config.groq_temperature,
        api_key=config.groq_api_key,
    )
