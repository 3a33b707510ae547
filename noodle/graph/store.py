"""In-memory graph store: the single source of truth for nodes and edges.

Every mutation replaces whole values (a node, the edge list) in one step, so
interleaved node runs never observe a torn intermediate state.

Run tokens:
Starting a run issues a token for the node. Results are written back only
while that token is still current; a newer run or removing the node
invalidates it, and the late result is dropped instead of resurrecting the
node or clobbering the newer run.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from noodle.errors import StaleRunError, ValidationError
from noodle.graph.context import ancestor_context
from noodle.graph.models import GraphEdge, GraphNode, LoopConfig, NodeStatus, NodeType
from noodle.utils.ids import new_id
from noodle.utils.logging import get_logger

logger = get_logger(__name__)

ChangeListener = Callable[[str], None]


class GraphStore:
    """Owns the node set and directed edges, and enforces their invariants."""

    def __init__(self) -> None:
        self._nodes: dict[str, GraphNode] = {}
        self._edges: list[GraphEdge] = []
        self._run_tokens: dict[str, str] = {}
        self._listeners: list[ChangeListener] = []

    # --- Observation -----------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call `listener(node_id)` after each committed change. Returns an unsubscribe."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, node_id: str) -> None:
        for listener in list(self._listeners):
            listener(node_id)

    # --- Queries ---------------------------------------------------------

    def nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    def edges(self) -> list[GraphEdge]:
        return list(self._edges)

    def get_node(self, node_id: str) -> GraphNode | None:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> GraphNode:
        node = self._nodes.get(node_id)
        if node is None:
            raise ValidationError(f"Unknown node: {node_id}")
        return node

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def parents(self, node_id: str) -> list[GraphNode]:
        """Direct upstream nodes in edge insertion order."""

        return [
            self._nodes[edge.from_node_id]
            for edge in self._edges
            if edge.to_node_id == node_id and edge.from_node_id in self._nodes
        ]

    def ancestor_context(self, node_id: str) -> str:
        return ancestor_context(node_id, dict(self._nodes), list(self._edges))

    # --- Node mutations --------------------------------------------------

    def add_node(
        self,
        *,
        prompt: str = "",
        title: str = "New Node",
        node_type: NodeType = NodeType.TEXT,
        x: float = 0.0,
        y: float = 0.0,
        response: str = "",
        parent_id: str | None = None,
        webhook_url: str | None = None,
        attached_file_id: str | None = None,
        loop_config: LoopConfig | None = None,
    ) -> GraphNode:
        """Create a node, optionally wired from `parent_id`.

        A node created with a prefilled response starts out as `success`.
        """

        if parent_id is not None:
            self.require_node(parent_id)

        node = GraphNode(
            id=new_id("node"),
            x=x,
            y=y,
            title=title,
            node_type=node_type,
            prompt=prompt,
            response=response,
            status=NodeStatus.SUCCESS if response else NodeStatus.IDLE,
            webhook_url=webhook_url,
            attached_file_id=attached_file_id,
            loop_config=loop_config,
        )
        self._nodes = {**self._nodes, node.id: node}
        self._notify(node.id)

        if parent_id is not None:
            self.connect(parent_id, node.id)
        return node

    def update_node(self, node_id: str, **changes: Any) -> GraphNode:
        """Apply user edits (title, prompt, position, type, loop settings...)."""

        node = self.require_node(node_id)
        if "id" in changes and changes["id"] != node_id:
            raise ValidationError("Node ids are immutable")

        new_type = changes.get("node_type")
        if new_type is not None and NodeType(new_type) != node.node_type:
            if NodeType.WEBHOOK in (node.node_type, NodeType(new_type)):
                raise ValidationError("Only text and code nodes can switch type")

        return self._replace(node.evolve(**changes))

    def move_node(self, node_id: str, x: float, y: float) -> GraphNode:
        return self.update_node(node_id, x=x, y=y)

    def remove_node(self, node_id: str) -> None:
        """Remove a node and every edge touching it. Unknown ids are ignored."""

        if node_id not in self._nodes:
            return

        self._nodes = {key: value for key, value in self._nodes.items() if key != node_id}
        self._edges = [
            edge for edge in self._edges if edge.from_node_id != node_id and edge.to_node_id != node_id
        ]
        if self._run_tokens.pop(node_id, None) is not None:
            logger.info("Removed node had a run in flight", extra={"context": {"node_id": node_id}})
        self._notify(node_id)

    def _replace(self, node: GraphNode) -> GraphNode:
        self._nodes = {**self._nodes, node.id: node}
        self._notify(node.id)
        return node

    # --- Edge mutations --------------------------------------------------

    def connect(self, from_node_id: str, to_node_id: str) -> GraphEdge:
        """Create a `from -> to` edge, or return the existing one for that pair."""

        self.require_node(from_node_id)
        self.require_node(to_node_id)
        if from_node_id == to_node_id:
            raise ValidationError("A node cannot be connected to itself")

        for edge in self._edges:
            if edge.from_node_id == from_node_id and edge.to_node_id == to_node_id:
                return edge

        edge = GraphEdge(id=new_id("conn"), from_node_id=from_node_id, to_node_id=to_node_id)
        self._edges = [*self._edges, edge]
        self._notify(to_node_id)
        return edge

    def disconnect(self, edge_id: str) -> None:
        removed = [edge for edge in self._edges if edge.id == edge_id]
        self._edges = [edge for edge in self._edges if edge.id != edge_id]
        for edge in removed:
            self._notify(edge.to_node_id)

    # --- Run tokens ------------------------------------------------------

    def begin_run(self, node_id: str) -> str:
        """Issue a fresh run token, superseding any run already in flight."""

        self.require_node(node_id)
        token = new_id("run")
        self._run_tokens[node_id] = token
        return token

    def is_current(self, node_id: str, token: str) -> bool:
        return node_id in self._nodes and self._run_tokens.get(node_id) == token

    def commit_run(self, node_id: str, token: str, **changes: Any) -> GraphNode:
        """Write run results to the node if `token` is still current.

        Raises
        ------
        StaleRunError
            If the node was removed or a newer run took over.
        """

        if not self.is_current(node_id, token):
            raise StaleRunError(f"Run {token} for node {node_id} is no longer current")
        return self._replace(self._nodes[node_id].evolve(**changes))
