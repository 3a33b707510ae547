"""Node execution engine.

One node run is a small LangGraph state machine:

    START -> execute -> (critique -> (retry -> execute | settle) | settle) -> END

- `execute` renders upstream context and runs one attempt for the node kind.
- `critique` (looping nodes only) judges the attempt against the node's
  success criterion.
- `retry` bumps `current_retry`, waits the configured delay and swaps in the
  refined prompt; it is reachable only while `current_retry < max_retries`,
  so a run makes at most `max_retries + 1` attempts.
- `settle` writes the final response and sources with status `success`.

Every write goes through the store's run token. When a node is removed or
re-run while an attempt is in flight, the next write raises `StaleRunError`
and the old run ends quietly. In-flight backend calls are not cancelled;
their results are simply discarded when they arrive. Only webhooks carry a
timeout; completion and critique calls wait as long as the provider does.
"""

from __future__ import annotations

import asyncio
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from noodle.backends.completion import CompletionBackend
from noodle.config import Settings
from noodle.errors import StaleRunError
from noodle.graph.critique import CritiqueEngine
from noodle.graph.models import ExecutionTools, GraphNode, LoopConfig, NodeStatus
from noodle.graph.node_kinds import Attempt, NodeKind, RunServices, kind_for
from noodle.graph.prompts import LOOP_PROGRESS_TEMPLATE
from noodle.graph.store import GraphStore
from noodle.integrations.search import ExternalSearch
from noodle.integrations.webhook import WebhookDispatcher
from noodle.rag.retrieval import RetrievalService
from noodle.rag.schemas import SourceRef
from noodle.utils.logging import get_logger
from noodle.utils.tracing import traceable

logger = get_logger(__name__)


class RunState(TypedDict, total=False):
    """State carried between the steps of one node run."""

    node_id: str
    token: str
    kind: NodeKind
    tools: ExecutionTools
    loop: LoopConfig | None
    prompt: str
    current_retry: int
    response: str
    sources: list[SourceRef]
    passed: bool
    reason: str
    refined_prompt: str


class GraphExecutor:
    """Runs nodes of a `GraphStore` against the configured backends."""

    def __init__(
        self,
        store: GraphStore,
        config: Settings,
        backend: CompletionBackend,
        *,
        dispatcher: WebhookDispatcher | None = None,
        retrieval: RetrievalService | None = None,
        search: ExternalSearch | None = None,
        critic: CritiqueEngine | None = None,
        tools: ExecutionTools | None = None,
    ) -> None:
        self.store = store
        self.config = config
        self.services = RunServices(
            config=config,
            backend=backend,
            dispatcher=dispatcher or WebhookDispatcher(config),
            retrieval=retrieval,
            search=search if search is not None else ExternalSearch(config),
        )
        self.critic = critic or CritiqueEngine(backend)
        self.tools = tools or ExecutionTools()
        self._app = self._build_graph()

    # --- Graph wiring ----------------------------------------------------

    def _build_graph(self) -> Any:
        graph = StateGraph(RunState)

        graph.add_node("execute", self._execute_step)
        graph.add_node("critique", self._critique_step)
        graph.add_node("retry", self._retry_step)
        graph.add_node("settle", self._settle_step)

        graph.add_edge(START, "execute")
        graph.add_conditional_edges(
            "execute",
            self._after_execute,
            {"critique": "critique", "settle": "settle"},
        )
        graph.add_conditional_edges(
            "critique",
            self._after_critique,
            {"retry": "retry", "settle": "settle"},
        )
        graph.add_edge("retry", "execute")
        graph.add_edge("settle", END)

        return graph.compile()

    def _commit(self, state: RunState, **changes: Any) -> GraphNode:
        return self.store.commit_run(state["node_id"], state["token"], **changes)

    async def _execute_step(self, state: RunState) -> RunState:
        node_id = state["node_id"]
        node = self.store.get_node(node_id)
        if node is None or not self.store.is_current(node_id, state["token"]):
            raise StaleRunError(f"Node {node_id} is gone or re-run")

        def on_partial_text(text: str) -> None:
            if self.store.is_current(node_id, state["token"]):
                self.store.commit_run(node_id, state["token"], response=text)

        attempt = Attempt(
            node=node,
            prompt=state["prompt"],
            context=self.store.ancestor_context(node_id),
            tools=state["tools"],
            on_partial_text=on_partial_text,
        )
        result = await state["kind"].execute(attempt, self.services)
        return {"response": result.text, "sources": result.sources}

    def _after_execute(self, state: RunState) -> str:
        loop = state.get("loop")
        if state["kind"].supports_loop and loop is not None and loop.enabled:
            return "critique"
        return "settle"

    async def _critique_step(self, state: RunState) -> RunState:
        loop = state["loop"]
        self._commit(state, status=NodeStatus.LOOPING)

        verdict = await self.critic.critique(state["prompt"], state["response"], loop.critique_prompt)
        return {
            "passed": verdict.passed,
            "reason": verdict.reason,
            "refined_prompt": verdict.refined_prompt,
        }

    def _after_critique(self, state: RunState) -> str:
        if state["passed"]:
            return "settle"
        if state["current_retry"] < state["loop"].max_retries:
            return "retry"
        logger.info(
            "Critique loop exhausted; accepting last response",
            extra={"context": {"node_id": state["node_id"], "attempts": state["current_retry"] + 1}},
        )
        return "settle"

    async def _retry_step(self, state: RunState) -> RunState:
        loop = state["loop"]
        attempt = state["current_retry"] + 1
        self._commit(
            state,
            response=LOOP_PROGRESS_TEMPLATE.format(
                attempt=attempt, max_retries=loop.max_retries, reason=state["reason"]
            ),
            loop_config=loop.model_copy(update={"current_retry": attempt}),
        )
        logger.info(
            "Retrying node with refined prompt",
            extra={"context": {"node_id": state["node_id"], "retry": attempt}},
        )

        await asyncio.sleep(self.config.loop_retry_delay_seconds)

        self._commit(state, status=NodeStatus.LOADING, sources=[])
        return {"current_retry": attempt, "prompt": state["refined_prompt"]}

    async def _settle_step(self, state: RunState) -> RunState:
        self._commit(
            state,
            status=NodeStatus.SUCCESS,
            response=state["response"],
            sources=state.get("sources", []),
        )
        return {}

    # --- Public API ------------------------------------------------------

    def prepare(self, node_id: str) -> tuple[GraphNode, NodeKind]:
        """Validate a node for running. Raises `ValidationError` without touching it."""

        node = self.store.require_node(node_id)
        kind = kind_for(node.node_type)
        kind.validate(node, self.services)
        return node, kind

    @traceable(name="run_node", run_type="chain")
    async def run_node(self, node_id: str, tools: ExecutionTools | None = None) -> GraphNode | None:
        """Run one node to completion and return its settled state.

        Returns `None` when the run was superseded or the node was removed
        before it finished.
        """

        node, kind = self.prepare(node_id)
        return await self._run(node, kind, tools or self.tools)

    def schedule_run(self, node_id: str, tools: ExecutionTools | None = None) -> asyncio.Task:
        """Validate now, then run in the background alongside other nodes."""

        node, kind = self.prepare(node_id)
        return asyncio.create_task(self._run(node, kind, tools or self.tools), name=f"run-{node_id}")

    async def _run(self, node: GraphNode, kind: NodeKind, tools: ExecutionTools) -> GraphNode | None:
        token = self.store.begin_run(node.id)
        loop = node.loop_config.model_copy(update={"current_retry": 0}) if node.loop_config else None

        logger.info(
            "Node run started",
            extra={"context": {"node_id": node.id, "type": node.node_type.value, "loop": bool(loop and loop.enabled)}},
        )
        state: RunState = {
            "node_id": node.id,
            "token": token,
            "kind": kind,
            "tools": tools,
            "loop": loop,
            "prompt": node.prompt,
            "current_retry": 0,
        }

        try:
            self._commit(state, status=NodeStatus.LOADING, response="", sources=[], loop_config=loop)
            max_retries = loop.max_retries if loop else 0
            await self._app.ainvoke(state, config={"recursion_limit": 3 * (max_retries + 1) + 5})
        except StaleRunError:
            logger.info("Discarding result of superseded run", extra={"context": {"node_id": node.id}})
            return None
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.error("Node run failed", extra={"context": {"node_id": node.id, "error": message}})
            if not self.store.is_current(node.id, token):
                return None
            return self._commit(state, status=NodeStatus.ERROR, response=message)

        settled = self.store.get_node(node.id)
        logger.info(
            "Node run settled",
            extra={"context": {"node_id": node.id, "status": settled.status.value if settled else None}},
        )
        return settled

    async def run_chain(self, node_ids: list[str], tools: ExecutionTools | None = None) -> list[GraphNode | None]:
        """Run nodes one after another so each sees its predecessors' output."""

        results = []
        for node_id in node_ids:
            results.append(await self.run_node(node_id, tools))
        return results
