"""LangSmith tracing utilities.

Tracing stays off unless both the flag and an API key are configured; the
`traceable` decorator is then a cheap pass-through.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import Any, TypeVar

from langsmith import traceable as langsmith_traceable

from noodle.config import Settings

F = TypeVar("F", bound=Callable[..., Any])


def configure_langsmith_tracing(config: Settings) -> bool:
    """Configure tracing env flags and return whether tracing is enabled."""

    enabled = bool(config.langchain_tracing_v2) and bool(config.langsmith_api_key)
    os.environ["LANGCHAIN_TRACING_V2"] = "true" if enabled else "false"

    if config.langsmith_project:
        os.environ["LANGSMITH_PROJECT"] = config.langsmith_project

    if config.langsmith_api_key:
        os.environ["LANGSMITH_API_KEY"] = config.langsmith_api_key

    return enabled


def traceable(*, name: str, run_type: str = "chain") -> Callable[[F], F]:
    """Return the LangSmith trace decorator for a named run."""

    return langsmith_traceable(name=name, run_type=run_type)
