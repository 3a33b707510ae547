"""Execution strategies per node type.

Each node type maps to one `NodeKind` that validates a node before a run and
executes a single attempt. The executor looks the kind up once per run and
never switches on the type string again.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol

from noodle.backends.completion import CompletionBackend
from noodle.config import Settings
from noodle.errors import ValidationError
from noodle.graph import prompts
from noodle.graph.models import ExecutionTools, GraphNode, NodeType
from noodle.integrations.search import ExternalSearch
from noodle.integrations.webhook import WebhookDispatcher
from noodle.rag.retrieval import RetrievalService
from noodle.rag.schemas import SourceRef


@dataclass
class RunServices:
    """Collaborators available to a node attempt."""

    config: Settings
    backend: CompletionBackend
    dispatcher: WebhookDispatcher
    retrieval: RetrievalService | None = None
    search: ExternalSearch | None = None


@dataclass
class Attempt:
    """Inputs for one execution attempt of a node."""

    node: GraphNode
    prompt: str
    context: str
    tools: ExecutionTools = field(default_factory=ExecutionTools)
    on_partial_text: Callable[[str], None] | None = None


@dataclass
class AttemptResult:
    text: str
    sources: list[SourceRef] = field(default_factory=list)


def merge_sources(*groups: Iterable[SourceRef]) -> list[SourceRef]:
    """Concatenate source lists, keeping the first occurrence of each uri."""

    seen: set[str] = set()
    merged: list[SourceRef] = []
    for group in groups:
        for source in group:
            if source.uri in seen:
                continue
            seen.add(source.uri)
            merged.append(source)
    return merged


def attached_file_content(services: RunServices, node: GraphNode) -> tuple[str, str] | None:
    """Return `(name, content)` for the node's attached document, if it still exists."""

    if not node.attached_file_id or services.retrieval is None:
        return None
    content = services.retrieval.get_document_content(node.attached_file_id)
    if content is None:
        return None
    doc = services.retrieval.get_document(node.attached_file_id)
    return (doc.name if doc else node.attached_file_id), content


class NodeKind(Protocol):
    supports_loop: bool

    def validate(self, node: GraphNode, services: RunServices) -> None:
        """Raise `ValidationError` if the node cannot run."""

    async def execute(self, attempt: Attempt, services: RunServices) -> AttemptResult:
        """Produce one candidate response."""


class CompletionKind:
    """Text and code nodes: upstream context plus augmentations sent to the model."""

    supports_loop = True

    def __init__(self, system_instruction: str) -> None:
        self.system_instruction = system_instruction

    def validate(self, node: GraphNode, services: RunServices) -> None:
        if not node.prompt.strip():
            raise ValidationError(f"Node {node.id} has no prompt to run")

    async def execute(self, attempt: Attempt, services: RunServices) -> AttemptResult:
        system = self.system_instruction
        user_message = attempt.context

        attached = attached_file_content(services, attempt.node)
        if attached is not None:
            name, content = attached
            user_message += prompts.ATTACHED_FILE_TEMPLATE.format(name=name, content=content)
            system += prompts.ATTACHED_FILE_NOTE.format(name=name)

        # Lookups use the node's own prompt; retries refine only the task text.
        kb_sources: list[SourceRef] = []
        if attempt.tools.knowledge_base and services.retrieval is not None:
            kb = await services.retrieval.search(attempt.node.prompt)
            if kb.context:
                user_message += prompts.KNOWLEDGE_BASE_TEMPLATE.format(context=kb.context)
                system += prompts.KNOWLEDGE_BASE_NOTE
                kb_sources = kb.sources

        search_context = ""
        search_sources: list[SourceRef] = []
        if services.search is not None:
            for tool in attempt.tools.search_tools():
                if not services.search.available(tool):
                    continue
                found = await services.search.search(attempt.node.prompt, tool)
                search_context += found.context
                search_sources.extend(found.sources)
        if search_context:
            user_message += prompts.SEARCH_TEMPLATE.format(context=search_context)
            system += prompts.SEARCH_NOTE

        user_message += prompts.CURRENT_TASK_TEMPLATE.format(prompt=attempt.prompt)

        # Upstream context stands in for chat history.
        completion = await services.backend.complete(
            [],
            user_message,
            system,
            attempt.tools.native_flags(),
            attempt.on_partial_text,
        )
        return AttemptResult(
            text=completion.text,
            sources=merge_sources(search_sources, kb_sources, completion.sources),
        )


class WebhookKind:
    """Webhook nodes: post prompt and context to an endpoint, use the reply as-is."""

    supports_loop = False

    @staticmethod
    def target_url(node: GraphNode, config: Settings) -> str | None:
        return node.webhook_url or config.custom_webhook_url or None

    def validate(self, node: GraphNode, services: RunServices) -> None:
        if not self.target_url(node, services.config):
            raise ValidationError("No Webhook URL configured.")

    async def execute(self, attempt: Attempt, services: RunServices) -> AttemptResult:
        url = self.target_url(attempt.node, services.config)
        if url is None:
            raise ValidationError("No Webhook URL configured.")

        attached = attached_file_content(services, attempt.node)
        payload = {
            "nodeId": attempt.node.id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "prompt": attempt.prompt,
            "context": attempt.context,
            "attachedFileContent": attached[1] if attached else None,
        }
        return AttemptResult(text=await services.dispatcher.send(url, payload))


NODE_KINDS: dict[NodeType, NodeKind] = {
    NodeType.TEXT: CompletionKind(prompts.CHAIN_SYSTEM_PROMPT),
    NodeType.CODE: CompletionKind(prompts.CODE_SYSTEM_PROMPT),
    NodeType.WEBHOOK: WebhookKind(),
}


def kind_for(node_type: NodeType) -> NodeKind:
    return NODE_KINDS[NodeType(node_type)]
