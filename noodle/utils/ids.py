"""ID helpers for graph objects, runs and knowledge-base documents.

Graph nodes, edges and documents get opaque random ids (`node-3f9a...`); they
are assigned once at creation and never derived from content, because two
nodes with identical prompts are still distinct nodes.
"""

from __future__ import annotations

import uuid


def new_id(prefix: str) -> str:
    """Return a fresh opaque identifier such as `node-1b2c3d4e5f60718293a4b5c6`.

    Example:
    `new_id("doc")` -> `doc-9f1c...`
    """

    return f"{prefix}-{uuid.uuid4().hex[:24]}"
