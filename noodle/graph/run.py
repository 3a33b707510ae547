"""CLI to build a linear node chain, run it and print the exported graph.

Usage:
`python -m noodle.graph.run --prompt "List three risks of X" --prompt "Rank them"`
"""

from __future__ import annotations

import argparse
import asyncio
import json
from typing import Any

from noodle.backends.completion import build_completion_backend
from noodle.config import Settings, settings
from noodle.graph.executor import GraphExecutor
from noodle.graph.export import export_graph
from noodle.graph.models import ExecutionTools, LoopConfig, NodeType
from noodle.graph.store import GraphStore
from noodle.rag.embedder import get_embedder
from noodle.rag.retrieval import RetrievalService
from noodle.utils.logging import configure_logging, get_logger
from noodle.utils.tracing import configure_langsmith_tracing

logger = get_logger(__name__)


async def run_linear_chain(
    prompts: list[str],
    *,
    config: Settings,
    node_type: NodeType = NodeType.TEXT,
    critique: str = "",
    max_retries: int = 0,
    files: list[str] | None = None,
    tools: ExecutionTools | None = None,
) -> dict[str, Any]:
    """Build `prompt[0] -> prompt[1] -> ...`, run it in order and export it."""

    store = GraphStore()
    retrieval = None
    if files:
        embedder, _model_name = get_embedder(config)
        retrieval = RetrievalService(config, embedder)
        for path in files:
            await retrieval.add_file(path)

    loop_config = LoopConfig(max_retries=max_retries, critique_prompt=critique) if critique else None

    node_ids: list[str] = []
    parent_id: str | None = None
    for index, prompt in enumerate(prompts, start=1):
        node = store.add_node(
            prompt=prompt,
            title=f"Step {index}",
            node_type=node_type,
            parent_id=parent_id,
            loop_config=loop_config,
        )
        node_ids.append(node.id)
        parent_id = node.id

    executor = GraphExecutor(
        store,
        config,
        build_completion_backend(config),
        retrieval=retrieval,
        tools=tools,
    )
    await executor.run_chain(node_ids)

    logger.info("Chain run completed", extra={"context": {"nodes": len(node_ids)}})
    return export_graph(store)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a linear chain of prompts through the node graph")
    parser.add_argument("--prompt", action="append", required=True)
    parser.add_argument("--type", choices=["text", "code"], default="text")
    parser.add_argument("--critique", type=str, default="")
    parser.add_argument("--max-retries", type=int, default=2)
    parser.add_argument("--file", action="append", default=[])
    parser.add_argument("--knowledge-base", type=int, default=0)
    parser.add_argument("--tavily", type=int, default=0)
    parser.add_argument("--exa", type=int, default=0)
    parser.add_argument("--brave", type=int, default=0)
    parser.add_argument("--debug", type=int, default=0)
    return parser


def main() -> None:
    args = _build_arg_parser().parse_args()
    configure_logging(debug=bool(args.debug))
    configure_langsmith_tracing(settings)

    tools = ExecutionTools(
        knowledge_base=bool(args.knowledge_base),
        tavily=bool(args.tavily),
        exa=bool(args.exa),
        brave=bool(args.brave),
    )
    result = asyncio.run(
        run_linear_chain(
            args.prompt,
            config=settings,
            node_type=NodeType(args.type),
            critique=args.critique,
            max_retries=args.max_retries,
            files=args.file,
            tools=tools,
        )
    )

    print(json.dumps(result, indent=2, ensure_ascii=True, default=str))


if __name__ == "__main__":
    main()
