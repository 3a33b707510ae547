"""Turn a document into a starter graph: one summary node plus sub-tasks.

Unlike critique, there is no safe default here, so malformed model output
raises `ParseError` instead of producing an empty summary.
"""

from __future__ import annotations

import json

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from noodle.backends.completion import CompletionBackend
from noodle.errors import ParseError
from noodle.graph.critique import strip_code_fences
from noodle.graph.models import GraphNode
from noodle.graph.prompts import DOCUMENT_ANALYSIS_PROMPT_TEMPLATE, DOCUMENT_ANALYSIS_SYSTEM_PROMPT
from noodle.graph.store import GraphStore
from noodle.utils.logging import get_logger

logger = get_logger(__name__)

CHILD_OFFSET_X = 420.0
CHILD_SPACING_Y = 450.0


class ChildTask(BaseModel):
    title: str
    prompt: str


class DocumentOutline(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    summary: str
    child_nodes: list[ChildTask] = Field(alias="childNodes")


async def analyze_document(backend: CompletionBackend, text: str, *, count: int = 4) -> DocumentOutline:
    """Ask the model for a summary and `count` exploration tasks."""

    message = DOCUMENT_ANALYSIS_PROMPT_TEMPLATE.format(count=count, document=text)
    completion = await backend.complete([], message, DOCUMENT_ANALYSIS_SYSTEM_PROMPT)
    if not completion.text.strip():
        raise ParseError("No response generated from document.")

    try:
        return DocumentOutline.model_validate(json.loads(strip_code_fences(completion.text)))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise ParseError(
            f"Failed to parse structured document analysis. Raw response: {completion.text[:100]}..."
        ) from exc


def build_graph_from_outline(
    store: GraphStore,
    outline: DocumentOutline,
    *,
    x: float = 0.0,
    y: float = 0.0,
) -> list[GraphNode]:
    """Add the summary node and one connected child per task. Returns all new nodes."""

    root = store.add_node(
        prompt="Summary generated from document analysis",
        title="Document Summary",
        response=outline.summary,
        x=x,
        y=y,
    )
    created = [root]
    middle = (len(outline.child_nodes) - 1) / 2
    for index, child in enumerate(outline.child_nodes):
        created.append(
            store.add_node(
                prompt=child.prompt,
                title=child.title,
                parent_id=root.id,
                x=x + CHILD_OFFSET_X,
                y=y + (index - middle) * CHILD_SPACING_Y,
            )
        )

    logger.info(
        "Graph built from document",
        extra={"context": {"root": root.id, "children": len(outline.child_nodes)}},
    )
    return created


async def build_graph_from_document(
    store: GraphStore,
    backend: CompletionBackend,
    text: str,
) -> list[GraphNode]:
    outline = await analyze_document(backend, text)
    return build_graph_from_outline(store, outline)
