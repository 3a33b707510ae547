"""Versioned JSON export of the graph for AI gateways and workers.

Export is one-way; there is no importer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from noodle.graph.store import GraphStore

EXPORT_VERSION = "1.0"
AGENT_PROTOCOL = "noodle-graph-v1"


def export_graph(store: GraphStore, *, now: datetime | None = None) -> dict[str, Any]:
    """Serialize nodes and edges into the `noodle-graph-v1` payload."""

    timestamp = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "version": EXPORT_VERSION,
        "timestamp": timestamp,
        "graph": {
            "nodes": [
                {
                    "id": node.id,
                    "type": node.node_type.value,
                    "inputs": {"prompt": node.prompt, "file": node.attached_file_id},
                    "outputs": {"response": node.response, "status": node.status.value},
                    "meta": {"x": node.x, "y": node.y, "title": node.title},
                }
                for node in store.nodes()
            ],
            "edges": [{"source": edge.from_node_id, "target": edge.to_node_id} for edge in store.edges()],
        },
        "agentProtocol": AGENT_PROTOCOL,
    }
