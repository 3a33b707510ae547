"""Data model for the node graph: nodes, edges, loop settings and run tools."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from noodle.backends.completion import ToolFlags
from noodle.rag.schemas import SourceRef


class NodeType(str, Enum):
    TEXT = "text"
    CODE = "code"
    WEBHOOK = "webhook"


class NodeStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOOPING = "looping"
    SUCCESS = "success"
    ERROR = "error"


class LoopConfig(BaseModel):
    """Self-improvement loop: critique each answer, retry with a refined prompt."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    critique_prompt: str = ""
    current_retry: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _retry_within_bounds(self) -> "LoopConfig":
        if self.current_retry > self.max_retries:
            raise ValueError("current_retry cannot exceed max_retries")
        return self


class GraphNode(BaseModel):
    """One unit of work on the canvas.

    Nodes are immutable values; the store swaps in a new instance for every
    change so concurrent runs never observe a half-updated node.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    x: float = 0.0
    y: float = 0.0
    title: str = "New Node"
    node_type: NodeType = NodeType.TEXT
    prompt: str = ""
    response: str = ""
    status: NodeStatus = NodeStatus.IDLE
    sources: list[SourceRef] = Field(default_factory=list)
    attached_file_id: str | None = None
    webhook_url: str | None = None
    loop_config: LoopConfig | None = None

    def evolve(self, **changes: Any) -> "GraphNode":
        """Return a validated copy with `changes` applied."""

        return type(self).model_validate({**self.model_dump(), **changes})

    @property
    def loop_enabled(self) -> bool:
        return self.loop_config is not None and self.loop_config.enabled


class GraphEdge(BaseModel):
    """Directed dependency: `to_node_id` sees `from_node_id`'s output as context."""

    model_config = ConfigDict(frozen=True)

    id: str
    from_node_id: str
    to_node_id: str


class ExecutionTools(BaseModel):
    """Context sources enabled for a run of a text or code node."""

    google_search: bool = False
    google_maps: bool = False
    tavily: bool = False
    exa: bool = False
    brave: bool = False
    knowledge_base: bool = False

    def native_flags(self) -> ToolFlags:
        return ToolFlags(google_search=self.google_search, google_maps=self.google_maps)

    def search_tools(self) -> list[str]:
        return [name for name in ("tavily", "exa", "brave") if getattr(self, name)]
