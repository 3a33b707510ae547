"""Tests for node execution, the critique loop and run isolation."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from noodle.config import Settings
from noodle.errors import BackendError, ValidationError
from noodle.graph.executor import GraphExecutor
from noodle.graph.models import ExecutionTools, LoopConfig, NodeStatus, NodeType
from noodle.graph.prompts import CODE_SYSTEM_PROMPT, SEARCH_NOTE
from noodle.graph.store import GraphStore
from noodle.integrations.search import SearchResult
from noodle.integrations.webhook import WebhookDispatcher
from noodle.rag.retrieval import RetrievalService
from noodle.rag.schemas import SourceKind, SourceRef
from tests.fakes import FakeBackend, FakeCritic, FakeDispatcher, FakeSearch


def _executor(store: GraphStore, config: Settings, backend: FakeBackend, **kwargs) -> GraphExecutor:
    kwargs.setdefault("dispatcher", FakeDispatcher())
    kwargs.setdefault("search", FakeSearch("none", SearchResult()))
    return GraphExecutor(store, config, backend, **kwargs)


@pytest.mark.asyncio
async def test_text_node_runs_with_upstream_context(store: GraphStore, config: Settings) -> None:
    """The backend gets ancestor context before the current task and no history."""

    parent = store.add_node(prompt="List facts", response="Otters hold hands")
    child = store.add_node(prompt="Write a haiku", parent_id=parent.id)
    backend = FakeBackend(["Paws linked in the stream"])

    settled = await _executor(store, config, backend).run_node(child.id)

    assert settled.status == NodeStatus.SUCCESS
    assert settled.response == "Paws linked in the stream"
    call = backend.calls[0]
    assert call["history"] == []
    assert "\n--- Current Task ---\nWrite a haiku" in call["message"]
    assert call["message"].index("Otters hold hands") < call["message"].index("--- Current Task ---")


@pytest.mark.asyncio
async def test_code_node_uses_code_instruction(store: GraphStore, config: Settings) -> None:
    """Code nodes switch to the code-and-simulated-trace instruction."""

    node = store.add_node(prompt="Sum 1..10", node_type=NodeType.CODE)
    backend = FakeBackend(["print(55)\n# 55"])

    await _executor(store, config, backend).run_node(node.id)

    assert backend.calls[0]["system"].startswith(CODE_SYSTEM_PROMPT)


@pytest.mark.asyncio
async def test_streaming_updates_replace_response(store: GraphStore, config: Settings) -> None:
    """Partial text overwrites the response field before the final write."""

    node = store.add_node(prompt="Stream please")
    seen: list[str] = []
    store.subscribe(lambda node_id: seen.append(store.get_node(node_id).response))

    await _executor(store, config, FakeBackend(["abcdef"])).run_node(node.id)

    assert "abc" in seen
    assert seen[-1] == "abcdef"


@pytest.mark.asyncio
async def test_failing_critique_exhausts_retries_then_succeeds(store: GraphStore, config: Settings) -> None:
    """A loop with max_retries=2 makes exactly 3 attempts and settles at success."""

    node = store.add_node(
        prompt="Summarize X",
        loop_config=LoopConfig(enabled=True, max_retries=2, critique_prompt="Be brief"),
    )
    backend = FakeBackend(["draft 1", "draft 2", "draft 3"])
    critic = FakeCritic(passed=False, refined="Summarize X briefly")

    settled = await _executor(store, config, backend, critic=critic).run_node(node.id)

    assert len(backend.calls) == 3
    assert settled.status == NodeStatus.SUCCESS
    assert settled.response == "draft 3"
    assert settled.loop_config.current_retry == 2
    assert critic.calls[0] == ("Summarize X", "draft 1", "Be brief")
    assert backend.calls[1]["message"].endswith("Summarize X briefly")


@pytest.mark.asyncio
async def test_passing_critique_stops_after_first_attempt(store: GraphStore, config: Settings) -> None:
    """A passing verdict settles immediately."""

    node = store.add_node(prompt="Write", loop_config=LoopConfig(max_retries=3, current_retry=3))
    backend = FakeBackend(["good"])

    settled = await _executor(store, config, backend, critic=FakeCritic(passed=True)).run_node(node.id)

    assert len(backend.calls) == 1
    assert settled.status == NodeStatus.SUCCESS
    assert settled.loop_config.current_retry == 0


@pytest.mark.asyncio
async def test_backend_error_settles_node_to_error(store: GraphStore, config: Settings) -> None:
    """Provider failures become the node's error response."""

    node = store.add_node(prompt="Hello")
    backend = FakeBackend(error=BackendError("invalid api key"))

    settled = await _executor(store, config, backend).run_node(node.id)

    assert settled.status == NodeStatus.ERROR
    assert settled.response == "invalid api key"


@pytest.mark.asyncio
async def test_missing_prompt_is_rejected_before_run(store: GraphStore, config: Settings) -> None:
    """Validation errors surface immediately and leave the node untouched."""

    node = store.add_node(prompt="   ")
    backend = FakeBackend()

    with pytest.raises(ValidationError):
        await _executor(store, config, backend).run_node(node.id)

    assert store.get_node(node.id).status == NodeStatus.IDLE
    assert backend.calls == []


@pytest.mark.asyncio
async def test_webhook_node_posts_payload(store: GraphStore, config: Settings) -> None:
    """Webhook nodes send prompt and context and use the reply as response."""

    parent = store.add_node(prompt="Collect", response="data")
    hook = store.add_node(
        node_type=NodeType.WEBHOOK,
        prompt="extra",
        webhook_url="https://hooks.example.test/run",
        parent_id=parent.id,
        attached_file_id="doc-gone",
    )
    backend = FakeBackend()
    dispatcher = FakeDispatcher(reply="accepted")

    settled = await _executor(store, config, backend, dispatcher=dispatcher).run_node(hook.id)

    assert settled.status == NodeStatus.SUCCESS
    assert settled.response == "accepted"
    assert backend.calls == []
    url, payload = dispatcher.sent[0]
    assert url == "https://hooks.example.test/run"
    assert payload["nodeId"] == hook.id
    assert payload["prompt"] == "extra"
    assert "Result: data" in payload["context"]
    assert payload["attachedFileContent"] is None
    assert "timestamp" in payload


@pytest.mark.asyncio
async def test_webhook_without_url_is_rejected(store: GraphStore, config: Settings) -> None:
    """No node URL and no default URL is a validation error."""

    hook = store.add_node(node_type=NodeType.WEBHOOK)

    with pytest.raises(ValidationError, match="No Webhook URL"):
        await _executor(store, config, FakeBackend()).run_node(hook.id)


@pytest.mark.asyncio
async def test_webhook_falls_back_to_default_url(store: GraphStore, config: Settings) -> None:
    """The configured custom webhook URL is used when the node has none."""

    hook = store.add_node(node_type=NodeType.WEBHOOK)
    dispatcher = FakeDispatcher()
    cfg = config.model_copy(update={"custom_webhook_url": "https://default.example.test"})

    await _executor(store, cfg, FakeBackend(), dispatcher=dispatcher).run_node(hook.id)

    assert dispatcher.sent[0][0] == "https://default.example.test"


@pytest.mark.asyncio
async def test_removed_node_ignores_late_result(store: GraphStore, config: Settings) -> None:
    """Deleting a node mid-run drops the result instead of resurrecting it."""

    node = store.add_node(prompt="slow")
    gate = asyncio.Event()
    executor = _executor(store, config, FakeBackend(["late"], gate=gate))

    task = executor.schedule_run(node.id)
    await asyncio.sleep(0.01)
    assert store.get_node(node.id).status == NodeStatus.LOADING

    store.remove_node(node.id)
    gate.set()

    assert await task is None
    assert store.get_node(node.id) is None
    assert store.nodes() == []


@pytest.mark.asyncio
async def test_rerun_supersedes_in_flight_run(store: GraphStore, config: Settings) -> None:
    """Only the newest run of a node writes its result."""

    node = store.add_node(prompt="again")
    gate = asyncio.Event()
    backend = FakeBackend(["first", "second"], gate=gate)
    executor = _executor(store, config, backend)

    first = executor.schedule_run(node.id)
    await asyncio.sleep(0.01)
    second = executor.schedule_run(node.id)
    await asyncio.sleep(0.01)
    gate.set()

    assert await first is None
    settled = await second
    assert settled.status == NodeStatus.SUCCESS
    assert store.get_node(node.id).response == settled.response


@pytest.mark.asyncio
async def test_sibling_failure_does_not_affect_other_runs(store: GraphStore, config: Settings) -> None:
    """Concurrent runs settle independently."""

    good = store.add_node(prompt="fine")
    bad = store.add_node(prompt="broken")

    ok_exec = _executor(store, config, FakeBackend(["all good"]))
    bad_exec = _executor(store, config, FakeBackend(error=BackendError("boom")))

    await asyncio.gather(ok_exec.run_node(good.id), bad_exec.run_node(bad.id))

    assert store.get_node(good.id).status == NodeStatus.SUCCESS
    assert store.get_node(bad.id).status == NodeStatus.ERROR


@pytest.mark.asyncio
async def test_external_search_and_sources_deduplicated(store: GraphStore, config: Settings) -> None:
    """Search context is injected and duplicate source uris are collapsed."""

    shared = SourceRef(uri="https://a.example", title="A from search")
    search = FakeSearch("tavily", SearchResult(context="\n[Tavily Answer]: 42\n", sources=[shared]))
    backend = FakeBackend(
        ["answer"],
        sources=[
            SourceRef(uri="https://a.example", title="A from model"),
            SourceRef(uri="https://b.example", title="B"),
        ],
    )
    node = store.add_node(prompt="Meaning of life")

    settled = await _executor(store, config, backend, search=search).run_node(
        node.id, ExecutionTools(tavily=True, exa=True)
    )

    assert search.queries == [("Meaning of life", "tavily")]
    assert "--- External Search Data ---" in backend.calls[0]["message"]
    assert backend.calls[0]["system"].endswith(SEARCH_NOTE)
    assert [s.title for s in settled.sources] == ["A from search", "B"]


@pytest.mark.asyncio
async def test_attached_file_and_knowledge_base(
    store: GraphStore, config: Settings, retrieval: RetrievalService
) -> None:
    """Attached documents and knowledge-base hits are added to the message."""

    doc = await retrieval.add_document("plan.txt", b"Launch on Monday", chunk_size=100, chunk_overlap=0)
    node = store.add_node(prompt="When do we launch?", attached_file_id=doc.id)
    dangling = store.add_node(prompt="Still fine", attached_file_id="doc-deleted")
    backend = FakeBackend(["Monday"])
    executor = _executor(store, config, backend, retrieval=retrieval)

    settled = await executor.run_node(node.id, ExecutionTools(knowledge_base=True))
    other = await executor.run_node(dangling.id)

    message = backend.calls[0]["message"]
    assert "--- ATTACHED FILE CONTENT (plan.txt) ---\nLaunch on Monday" in message
    assert "--- Knowledge Base Context ---" in message
    assert 'file named "plan.txt"' in backend.calls[0]["system"]
    assert [s.kind for s in settled.sources] == [SourceKind.FILE]
    assert other.status == NodeStatus.SUCCESS
    assert "ATTACHED FILE" not in backend.calls[1]["message"]


@pytest.mark.asyncio
async def test_unresponsive_webhook_settles_with_timeout_message(store: GraphStore, config: Settings) -> None:
    """A webhook that never answers in time still settles the node as success."""

    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(2)
        return httpx.Response(200, text="too late")

    hook = store.add_node(node_type=NodeType.WEBHOOK, webhook_url="https://hooks.example.test/slow")
    dispatcher = WebhookDispatcher(config, transport=httpx.MockTransport(handler))

    settled = await _executor(store, config, FakeBackend(), dispatcher=dispatcher).run_node(hook.id)

    assert settled.status == NodeStatus.SUCCESS
    assert "timed out" in settled.response


@pytest.mark.asyncio
async def test_retries_search_with_the_original_prompt(store: GraphStore, config: Settings) -> None:
    """Refined prompts change the task, not the search query."""

    search = FakeSearch("tavily", SearchResult(context="\n[Tavily Answer]: 42\n"))
    node = store.add_node(prompt="Summarize X", loop_config=LoopConfig(max_retries=1, critique_prompt="Short"))
    backend = FakeBackend(["long draft", "short draft"])
    critic = FakeCritic(passed=False, refined="Summarize X in one line")

    await _executor(store, config, backend, critic=critic, search=search).run_node(
        node.id, ExecutionTools(tavily=True)
    )

    assert search.queries == [("Summarize X", "tavily"), ("Summarize X", "tavily")]
    assert backend.calls[1]["message"].endswith("Summarize X in one line")
