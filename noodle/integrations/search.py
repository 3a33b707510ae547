"""External web-search tools used to augment text and code nodes.

Each tool returns a plain-text context block and a list of web sources.
Search failures never abort a node run; they come back as a `[System]` line
in the context so the model (and the user) can see what went wrong.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import BaseModel, Field

from noodle.config import Settings
from noodle.rag.schemas import SourceRef
from noodle.utils.logging import get_logger

logger = get_logger(__name__)

TAVILY_URL = "https://api.tavily.com/search"
EXA_URL = "https://api.exa.ai/search"
BRAVE_URL = "https://api.search.brave.com/res/v1/web/search"
MAX_RESULTS = 3

SEARCH_TOOLS = ("tavily", "exa", "brave")


class SearchResult(BaseModel):
    context: str = ""
    sources: list[SourceRef] = Field(default_factory=list)


def _entries(results: list[Any]) -> list[dict[str, Any]]:
    return [result for result in results if isinstance(result, dict)]


def _format_tavily(data: dict[str, Any]) -> SearchResult:
    context = ""
    sources: list[SourceRef] = []
    if data.get("answer"):
        context += f"\n[Tavily Answer]: {data['answer']}\n"
    results = data.get("results")
    if isinstance(results, list):
        context += "\n[Tavily Search Results]:\n"
        for result in _entries(results):
            context += (
                f"- Title: {result.get('title')}\n  Content: {result.get('content')}\n"
                f"  URL: {result.get('url')}\n"
            )
            sources.append(SourceRef(uri=str(result.get("url", "")), title=str(result.get("title", ""))))
    return SearchResult(context=context, sources=sources)


def _format_exa(data: dict[str, Any]) -> SearchResult:
    context = ""
    sources: list[SourceRef] = []
    results = data.get("results")
    if isinstance(results, list):
        context += "\n[Exa Search Results]:\n"
        for result in _entries(results):
            title = result.get("title") or "No Title"
            snippet = str(result.get("text") or "")[:300]
            context += f"- Title: {title}\n  Content Snippet: {snippet}...\n  URL: {result.get('url')}\n"
            sources.append(
                SourceRef(uri=str(result.get("url", "")), title=str(result.get("title") or "Exa Result"))
            )
    return SearchResult(context=context, sources=sources)


def _format_brave(data: dict[str, Any]) -> SearchResult:
    context = ""
    sources: list[SourceRef] = []
    web = data.get("web")
    results = web.get("results") if isinstance(web, dict) else None
    if isinstance(results, list):
        context += "\n[Brave Search Results]:\n"
        for result in _entries(results):
            context += (
                f"- Title: {result.get('title')}\n  Description: {result.get('description')}\n"
                f"  URL: {result.get('url')}\n"
            )
            sources.append(SourceRef(uri=str(result.get("url", "")), title=str(result.get("title", ""))))
    return SearchResult(context=context, sources=sources)


class ExternalSearch:
    """Tavily, Exa and Brave search clients keyed from settings."""

    def __init__(self, config: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.config = config
        self._transport = transport

    def api_key(self, tool: str) -> str | None:
        key = getattr(self.config, f"{tool}_api_key", None)
        return key if key and key.strip() else None

    def available(self, tool: str) -> bool:
        return tool in SEARCH_TOOLS and self.api_key(tool) is not None

    async def search(self, query: str, tool: str) -> SearchResult:
        """Run one tool; failures are reported inside the returned context."""

        api_key = self.api_key(tool) or ""
        try:
            async with httpx.AsyncClient(
                timeout=self.config.search_timeout_seconds, transport=self._transport
            ) as client:
                if tool == "tavily":
                    resp = await client.post(
                        TAVILY_URL,
                        json={
                            "api_key": api_key,
                            "query": query,
                            "search_depth": "basic",
                            "include_answer": True,
                            "max_results": MAX_RESULTS,
                        },
                    )
                    formatter = _format_tavily
                elif tool == "exa":
                    resp = await client.post(
                        EXA_URL,
                        headers={"x-api-key": api_key},
                        json={
                            "query": query,
                            "numResults": MAX_RESULTS,
                            "useAutoprompt": True,
                            "contents": {"text": True},
                        },
                    )
                    formatter = _format_exa
                elif tool == "brave":
                    resp = await client.get(
                        BRAVE_URL,
                        params={"q": query, "count": MAX_RESULTS},
                        headers={"Accept": "application/json", "X-Subscription-Token": api_key},
                    )
                    formatter = _format_brave
                else:
                    raise ValueError(f"Unknown search tool: {tool}")

                resp.raise_for_status()
                data = resp.json()
                if not isinstance(data, dict):
                    raise ValueError(f"Unexpected {tool} response: expected a JSON object")
                result = formatter(data)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("External search failed", extra={"context": {"tool": tool, "error": str(exc)}})
            return SearchResult(
                context=f"\n[System]: Failed to perform external search with {tool}. Error: {exc}\n"
            )

        logger.info(
            "External search completed",
            extra={"context": {"tool": tool, "sources": len(result.sources)}},
        )
        return result
