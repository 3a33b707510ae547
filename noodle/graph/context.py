"""Upstream context resolution for a node run.

A node sees the (prompt, response) pairs of every ancestor that has produced
output, upstream-first, as a linear transcript. Ancestors that never ran are
skipped together with everything behind them.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from noodle.graph.models import GraphEdge, GraphNode

CONTEXT_HEADER = "\n--- Context from Node (Previous Step) ---\n"


def format_context_block(node: GraphNode) -> str:
    return f"{CONTEXT_HEADER}Input: {node.prompt}\nResult: {node.response}\n"


def parents_by_node(edges: Sequence[GraphEdge]) -> dict[str, list[str]]:
    """Map each node id to its parent ids in edge insertion order."""

    parents: dict[str, list[str]] = {}
    for edge in edges:
        parents.setdefault(edge.to_node_id, []).append(edge.from_node_id)
    return parents


def _walk(
    node_id: str,
    nodes: Mapping[str, GraphNode],
    parents: Mapping[str, list[str]],
    visited: frozenset[str],
) -> tuple[tuple[str, ...], frozenset[str]]:
    blocks: tuple[str, ...] = ()
    for parent_id in parents.get(node_id, ()):
        if parent_id in visited:
            continue
        parent = nodes.get(parent_id)
        if parent is None or not parent.response:
            continue

        visited = visited | {parent_id}
        upstream, visited = _walk(parent_id, nodes, parents, visited)
        blocks = blocks + upstream + (format_context_block(parent),)
    return blocks, visited


def ancestor_context(
    node_id: str,
    nodes: Mapping[str, GraphNode],
    edges: Sequence[GraphEdge],
) -> str:
    """Render the upstream transcript for `node_id`.

    The visited set is threaded through the walk and returned, never shared:
    each ancestor contributes at most once, and cycles (including self-loops)
    terminate because a node already on the visited set contributes nothing.
    """

    blocks, _visited = _walk(node_id, nodes, parents_by_node(edges), frozenset({node_id}))
    return "".join(blocks)
