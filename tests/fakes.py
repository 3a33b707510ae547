"""Test doubles for remote collaborators."""

from __future__ import annotations

import asyncio
from typing import Any

from noodle.backends.completion import Completion
from noodle.graph.critique import CritiqueVerdict
from noodle.integrations.search import SearchResult
from noodle.rag.schemas import SourceRef


class FakeBackend:
    """Completion backend that replays canned replies and records every call."""

    def __init__(
        self,
        replies: list[str] | None = None,
        *,
        sources: list[SourceRef] | None = None,
        error: Exception | None = None,
        gate: asyncio.Event | None = None,
    ) -> None:
        self.replies = replies or ["ok"]
        self.sources = sources or []
        self.error = error
        self.gate = gate
        self.calls: list[dict[str, Any]] = []

    async def complete(self, history, new_message, system_instruction, tools=None, on_partial_text=None):
        self.calls.append(
            {
                "history": list(history),
                "message": new_message,
                "system": system_instruction,
                "tools": tools,
            }
        )
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error

        text = self.replies[min(len(self.calls), len(self.replies)) - 1]
        if on_partial_text:
            on_partial_text(text[: len(text) // 2])
            on_partial_text(text)
        return Completion(text=text, sources=list(self.sources))


class FakeCritic:
    """Critique engine returning a fixed verdict."""

    def __init__(self, passed: bool, reason: str = "not good enough", refined: str = "try harder") -> None:
        self.verdict = CritiqueVerdict(passed=passed, reason=reason, refined_prompt=refined)
        self.calls: list[tuple[str, str, str]] = []

    async def critique(self, original_prompt: str, output: str, criteria: str) -> CritiqueVerdict:
        self.calls.append((original_prompt, output, criteria))
        return self.verdict


class FakeDispatcher:
    """Webhook dispatcher recording payloads instead of posting them."""

    def __init__(self, reply: str = '{\n  "ok": true\n}') -> None:
        self.reply = reply
        self.sent: list[tuple[str, dict[str, Any]]] = []

    async def send(self, url: str, payload: dict[str, Any]) -> str:
        self.sent.append((url, payload))
        return self.reply


class FakeSearch:
    """External search stub with one configured tool."""

    def __init__(self, tool: str, result: SearchResult) -> None:
        self.tool = tool
        self.result = result
        self.queries: list[tuple[str, str]] = []

    def available(self, tool: str) -> bool:
        return tool == self.tool

    async def search(self, query: str, tool: str) -> SearchResult:
        self.queries.append((query, tool))
        return self.result
