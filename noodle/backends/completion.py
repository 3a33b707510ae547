"""Completion backend used by graph nodes, critique and document analysis.

`CompletionBackend` is the capability the graph consumes: given history, a
new user message, a system instruction and tool flags it returns the final
text plus grounding sources, optionally streaming cumulative text first.
`ChatModelBackend` implements it on top of any LangChain chat model.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, Literal, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from pydantic import BaseModel, Field

from noodle.config import Settings
from noodle.errors import BackendError
from noodle.rag.schemas import SourceKind, SourceRef
from noodle.utils.llm import get_groq_chat_model
from noodle.utils.logging import get_logger
from noodle.utils.tracing import traceable

logger = get_logger(__name__)

PartialTextCallback = Callable[[str], None]


class ChatMessage(BaseModel):
    role: Literal["user", "model"]
    text: str


class ToolFlags(BaseModel):
    """Provider-native grounding tools. Providers without them ignore the flags."""

    google_search: bool = False
    google_maps: bool = False

    def any_enabled(self) -> bool:
        return self.google_search or self.google_maps


class Completion(BaseModel):
    text: str
    sources: list[SourceRef] = Field(default_factory=list)


class CompletionBackend(Protocol):
    async def complete(
        self,
        history: Sequence[ChatMessage],
        new_message: str,
        system_instruction: str,
        tools: ToolFlags | None = None,
        on_partial_text: PartialTextCallback | None = None,
    ) -> Completion:
        """Generate a reply. Raises `BackendError` on transport/auth failure."""


def _content_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of parts) to text."""

    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return ""


def extract_grounding_sources(metadata: dict[str, Any]) -> list[SourceRef]:
    """Read web/map grounding chunks from provider response metadata."""

    grounding = metadata.get("grounding_metadata") or {}
    chunks = grounding.get("grounding_chunks") or []

    sources: list[SourceRef] = []
    for chunk in chunks:
        if not isinstance(chunk, dict):
            continue
        web = chunk.get("web")
        maps = chunk.get("maps")
        if isinstance(web, dict):
            uri = str(web.get("uri") or "")
            sources.append(SourceRef(uri=uri, title=str(web.get("title") or uri or "Web Source")))
        elif isinstance(maps, dict):
            places = maps.get("place_answer_sources") or [{}]
            place = places[0] if isinstance(places[0], dict) else {}
            uri = str(place.get("uri") or "")
            title = str(place.get("name") or "Google Maps Result")
            if uri or title != "Google Maps Result":
                sources.append(SourceRef(uri=uri, title=title, kind=SourceKind.MAP))
    return sources


class ChatModelBackend:
    """`CompletionBackend` over a LangChain chat model with streaming."""

    def __init__(self, chat_model: Any, *, model_name: str, supports_tools: bool = False) -> None:
        self.chat_model = chat_model
        self.model_name = model_name
        self.supports_tools = supports_tools

    def _build_messages(
        self,
        history: Sequence[ChatMessage],
        new_message: str,
        system_instruction: str,
    ) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        if system_instruction.strip():
            messages.append(SystemMessage(content=system_instruction))
        for message in history:
            if message.role == "model":
                messages.append(AIMessage(content=message.text))
            else:
                messages.append(HumanMessage(content=message.text))
        messages.append(HumanMessage(content=new_message))
        return messages

    @traceable(name="completion_backend", run_type="llm")
    async def complete(
        self,
        history: Sequence[ChatMessage],
        new_message: str,
        system_instruction: str,
        tools: ToolFlags | None = None,
        on_partial_text: PartialTextCallback | None = None,
    ) -> Completion:
        if tools is not None and tools.any_enabled() and not self.supports_tools:
            logger.info(
                "Provider ignores native tool flags",
                extra={"context": {"model": self.model_name, "tools": tools.model_dump()}},
            )

        messages = self._build_messages(history, new_message, system_instruction)
        full_text = ""
        metadata: dict[str, Any] = {}

        try:
            async for chunk in self.chat_model.astream(messages):
                piece = _content_text(getattr(chunk, "content", ""))
                chunk_metadata = getattr(chunk, "response_metadata", None)
                if isinstance(chunk_metadata, dict):
                    metadata.update(chunk_metadata)
                if piece:
                    full_text += piece
                    if on_partial_text:
                        on_partial_text(full_text)
        except Exception as exc:
            raise BackendError(f"{self.model_name} request failed: {exc}") from exc

        return Completion(text=full_text, sources=extract_grounding_sources(metadata))


def build_completion_backend(config: Settings) -> ChatModelBackend:
    """Default backend: Groq chat model from settings."""

    return ChatModelBackend(get_groq_chat_model(config), model_name=config.groq_model)
