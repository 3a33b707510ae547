"""Tests for the versioned graph export."""

from __future__ import annotations

from datetime import datetime, timezone

from noodle.graph.export import export_graph
from noodle.graph.models import NodeType
from noodle.graph.store import GraphStore


def test_export_shape(store: GraphStore) -> None:
    first = store.add_node(prompt="Collect", title="Collector", x=10, y=20, response="rows")
    second = store.add_node(
        prompt="Ship", node_type=NodeType.WEBHOOK, parent_id=first.id, attached_file_id="doc-1"
    )

    payload = export_graph(store, now=datetime(2026, 1, 2, tzinfo=timezone.utc))

    assert payload["version"] == "1.0"
    assert payload["agentProtocol"] == "noodle-graph-v1"
    assert payload["timestamp"] == "2026-01-02T00:00:00+00:00"
    nodes = payload["graph"]["nodes"]
    assert nodes[0] == {
        "id": first.id,
        "type": "text",
        "inputs": {"prompt": "Collect", "file": None},
        "outputs": {"response": "rows", "status": "success"},
        "meta": {"x": 10.0, "y": 20.0, "title": "Collector"},
    }
    assert nodes[1]["type"] == "webhook"
    assert nodes[1]["inputs"]["file"] == "doc-1"
    assert payload["graph"]["edges"] == [{"source": first.id, "target": second.id}]


def test_export_empty_graph(store: GraphStore) -> None:
    payload = export_graph(store)

    assert payload["graph"] == {"nodes": [], "edges": []}
