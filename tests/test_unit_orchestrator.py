# FILE: test_unit_orchestrator.py

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from ragagent.core.exceptions import UpstreamLLMError
from ragagent.models.agent_model import (
    AgentConfig,
    AgentMessage,
    AgentOutcome,
    AgentStreamChunkType,
)
from ragagent.models.chat_model import ChatCompletion, TokenUsage
from ragagent.models.tool_model import (
    DocumentHit,
    ToolCall,
    ToolCategory,
    ToolMetadata,
    ToolParameter,
    ToolResult,
)
from ragagent.services.orchestrator import BUDGET_EXHAUSTED_MESSAGE, AgentOrchestrator, _RequestState
from ragagent.tools.base import Tool
from ragagent.tools.builtin import MemoryTool, RagSearchTool
from ragagent.tools.executor import ToolExecutor
from ragagent.tools.registry import ToolRegistry


# ----------------------------
# Doubles
# ----------------------------


class ScriptedChatModel:
    """Replays canned answers in order; the last answer repeats once the script runs out."""

    def __init__(self, *answers: str, usage: int = 10):
        self.answers = list(answers)
        self.usage = usage
        self.prompts: List[Dict[str, str]] = []

    async def answer(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        self.prompts.append({"system": system_prompt, "user": user_prompt})
        idx = min(len(self.prompts) - 1, len(self.answers) - 1)
        return ChatCompletion(answer=self.answers[idx], usage=TokenUsage(total_tokens=self.usage))


class FailingChatModel:
    async def answer(self, system_prompt: str, user_prompt: str) -> ChatCompletion:
        raise UpstreamLLMError("upstream down")


class RecordingTool(Tool):
    def __init__(self, name: str, *, delay: float = 0.0, fail_with: str = "", log: Optional[List[str]] = None):
        self.name = name
        self.description = f"{name} tool"
        self.parameters = [ToolParameter(name="q", type="string", required=True)]
        self.delay = delay
        self.fail_with = fail_with
        self.calls: List[Dict[str, Any]] = []
        self.completed = log if log is not None else []

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        self.calls.append(dict(arguments))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with:
            raise RuntimeError(self.fail_with)
        self.completed.append(f"{self.name}:{arguments['q']}")
        return ToolResult.ok(f"{self.name} says {arguments['q']}")


def tool_calls(*calls: Dict[str, Any], reasoning: Optional[str] = None) -> str:
    payload: Dict[str, Any] = {"tool_calls": list(calls)}
    if reasoning is not None:
        payload["reasoning"] = reasoning
    return json.dumps(payload)


def call(name: str, **arguments: Any) -> Dict[str, Any]:
    return {"tool_name": name, "arguments": arguments}


def make_orchestrator(chat_model, *tools: Tool, **kwargs) -> AgentOrchestrator:
    registry = ToolRegistry()
    for t in tools:
        registry.register(t)
    return AgentOrchestrator(chat_model, registry, ToolExecutor(registry), **kwargs)


def tool_pairs(messages: List[AgentMessage]):
    """(tool_name, result content/error) for every tool_call/tool_result pair in the transcript."""
    pairs = []
    for i, m in enumerate(messages):
        if m.tool_call is not None:
            nxt = messages[i + 1]
            assert nxt.role == "tool" and nxt.tool_result is not None
            pairs.append((m.tool_call.tool_name, nxt.tool_result.content or nxt.tool_result.error))
    return pairs


class FakeRetriever:
    def __init__(self, hits: List[DocumentHit]):
        self.hits = hits
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, query, top_k, tenant_id, min_score):
        self.calls.append({"query": query, "top_k": top_k, "tenant_id": tenant_id, "min_score": min_score})
        return list(self.hits)


def retrieval_registry(retriever) -> ToolRegistry:
    registry = ToolRegistry()
    tool = RagSearchTool(retriever)
    registry.register(
        tool,
        ToolMetadata(name=tool.name, description=tool.description, category=ToolCategory.RETRIEVAL),
    )
    return registry


# ----------------------------
# Terminal states
# ----------------------------


@pytest.mark.asyncio
async def test_plain_answer_finalizes_immediately():
    model = ScriptedChatModel("Paris is the capital of France.")
    orch = make_orchestrator(model)

    resp = await orch.process("Capital of France?", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert resp.final_answer == "Paris is the capital of France."
    assert resp.tool_calls_executed == []
    assert resp.metrics.tool_calls_count == 0
    assert len(model.prompts) == 1
    assert [m.role for m in resp.messages] == ["user", "assistant"]
    assert resp.messages[-1].content == "Paris is the capital of France."


@pytest.mark.asyncio
async def test_malformed_tool_call_syntax_is_treated_as_final_answer():
    raw = '{"tool_calls": [{"tool_name": "search", "arguments": {"q": "x"}'
    tool = RecordingTool("search")
    orch = make_orchestrator(ScriptedChatModel(raw), tool)

    resp = await orch.process("hi", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert resp.final_answer == raw
    assert tool.calls == []


@pytest.mark.asyncio
async def test_budget_of_one_with_tool_hungry_model_exhausts_after_one_iteration():
    model = ScriptedChatModel(tool_calls(call("search", q="again")))
    tool = RecordingTool("search")
    orch = make_orchestrator(model, tool)

    resp = await orch.process("loop forever", [], AgentConfig(max_tool_calls=1))

    assert resp.outcome == AgentOutcome.BUDGET_EXHAUSTED
    assert resp.final_answer == BUDGET_EXHAUSTED_MESSAGE
    assert len(model.prompts) == 1
    assert resp.metrics.tool_calls_count == 1
    assert len(tool.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("budget", [1, 2, 5])
async def test_loop_never_exceeds_max_tool_calls(budget):
    # Every iteration asks for a fresh call, so nothing is served from cache.
    answers = [tool_calls(call("search", q=f"q{i}")) for i in range(20)]
    model = ScriptedChatModel(*answers)
    tool = RecordingTool("search")
    orch = make_orchestrator(model, tool)

    resp = await orch.process("go", [], AgentConfig(max_tool_calls=budget))

    assert resp.outcome == AgentOutcome.BUDGET_EXHAUSTED
    assert len(model.prompts) == budget
    assert len(tool.calls) == budget


@pytest.mark.asyncio
async def test_chat_model_failure_propagates():
    orch = make_orchestrator(FailingChatModel())

    with pytest.raises(UpstreamLLMError):
        await orch.process("hi", [])


# ----------------------------
# Retrieval scenario
# ----------------------------


@pytest.mark.asyncio
async def test_retrieval_call_yields_citations_and_finalizes():
    hits = [
        DocumentHit(document_id="handbook.pdf", page=4, score=0.91, text="Refunds within 30 days."),
        DocumentHit(document_id="faq.md", score=0.82, text="Contact support."),
    ]
    retriever = FakeRetriever(hits)
    registry = retrieval_registry(retriever)
    model = ScriptedChatModel(
        tool_calls(call("rag_search", query="refund policy"), reasoning="Check the handbook"),
        "Refunds are accepted within 30 days.",
    )
    orch = AgentOrchestrator(model, registry, ToolExecutor(registry))

    resp = await orch.process(
        "What is the refund policy?",
        [],
        AgentConfig(top_k_documents=4, min_relevance_score=0.5),
        tenant_id="acme",
    )

    assert resp.outcome == AgentOutcome.FINALIZED
    assert resp.final_answer == "Refunds are accepted within 30 days."
    assert len(resp.tool_calls_executed) == 1

    executed = resp.tool_calls_executed[0]
    assert executed.arguments == {"query": "refund policy", "tenant_id": "acme", "top_k": 4, "min_score": 0.5}
    assert retriever.calls == [{"query": "refund policy", "top_k": 4, "tenant_id": "acme", "min_score": 0.5}]

    assert [c.document_id for c in resp.citations] == ["handbook.pdf", "faq.md"]
    assert resp.citations[0].page_number == 4
    assert resp.citations[0].score == pytest.approx(0.91)
    assert resp.citations[1].page_number is None
    assert len(resp.retrieved_documents) == 1
    assert "handbook.pdf" in resp.retrieved_documents[0]
    assert resp.metrics.documents_retrieved == 1
    assert resp.metrics.tool_usage_counts == {"rag_search": 1}

    # The second prompt carries the tool result back to the model.
    assert "Tool Result: Found 2 relevant document(s):" in model.prompts[1]["user"]
    assert "Current tenant: acme" in model.prompts[0]["system"]


@pytest.mark.asyncio
async def test_explicit_retrieval_arguments_are_not_overridden():
    retriever = FakeRetriever([DocumentHit(document_id="d", score=0.9, text="t")])
    registry = retrieval_registry(retriever)
    model = ScriptedChatModel(
        tool_calls(call("rag_search", query="q", tenant_id="other", top_k=1)),
        "done",
    )
    orch = AgentOrchestrator(model, registry, ToolExecutor(registry))

    resp = await orch.process("q", [], tenant_id="acme")

    assert resp.tool_calls_executed[0].arguments["tenant_id"] == "other"
    assert resp.tool_calls_executed[0].arguments["top_k"] == 1


@pytest.mark.asyncio
async def test_empty_retrieval_produces_no_citations():
    registry = retrieval_registry(FakeRetriever([]))
    model = ScriptedChatModel(tool_calls(call("rag_search", query="nothing")), "Nothing found.")
    orch = AgentOrchestrator(model, registry, ToolExecutor(registry))

    resp = await orch.process("q", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert resp.citations == []
    assert resp.retrieved_documents == []
    assert resp.metrics.tool_calls_count == 1


@pytest.mark.asyncio
async def test_non_retrieval_tools_get_no_injected_context():
    tool = RecordingTool("search")
    model = ScriptedChatModel(tool_calls(call("search", q="x")), "done")
    orch = make_orchestrator(model, tool)

    resp = await orch.process("q", [], tenant_id="acme")

    assert tool.calls == [{"q": "x"}]
    assert resp.citations == []


class StoringMemory:
    def __init__(self):
        self.stored: List[Dict[str, Any]] = []

    async def store(self, content, user_id, tenant_id, *, type="fact", category="", importance=5):
        self.stored.append({"content": content, "user_id": user_id, "tenant_id": tenant_id})
        return f"mem-{len(self.stored)}"


@pytest.mark.asyncio
async def test_memory_calls_are_scoped_to_the_request_tenant():
    memory = StoringMemory()
    tool = MemoryTool(memory)
    registry = ToolRegistry()
    registry.register(
        tool,
        ToolMetadata(name=tool.name, description=tool.description, category=ToolCategory.MEMORY),
    )
    model = ScriptedChatModel(
        tool_calls(
            call("memory", action="store", content="Prefers tea"),
            call("memory", action="store", content="Ships Fridays", tenant_id="other"),
        ),
        "noted",
    )
    orch = AgentOrchestrator(model, registry, ToolExecutor(registry))

    resp = await orch.process("remember", [], tenant_id="acme")

    assert memory.stored == [
        {"content": "Prefers tea", "user_id": "tenant-user-acme", "tenant_id": "acme"},
        {"content": "Ships Fridays", "user_id": "tenant-user-other", "tenant_id": "other"},
    ]
    assert "top_k" not in resp.tool_calls_executed[0].arguments


# ----------------------------
# Deduplication & ordering
# ----------------------------


@pytest.mark.asyncio
async def test_duplicate_calls_execute_once_per_distinct_pair():
    tool = RecordingTool("search")
    model = ScriptedChatModel(
        tool_calls(call("search", q="a"), call("search", q="a"), call("search", q="b")),
        tool_calls(call("search", q="b"), call("search", q="c")),
        "final",
    )
    orch = make_orchestrator(model, tool)

    resp = await orch.process("go", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert sorted(c["q"] for c in tool.calls) == ["a", "b", "c"]
    assert resp.metrics.tool_calls_count == 3
    assert [c.arguments["q"] for c in resp.tool_calls_executed] == ["a", "b", "c"]
    assert resp.metrics.tool_usage_counts == {"search": 3}

    # Every requested call still gets its own transcript pair, cached or not.
    assert tool_pairs(resp.messages) == [
        ("search", "search says a"),
        ("search", "search says a"),
        ("search", "search says b"),
        ("search", "search says b"),
        ("search", "search says c"),
    ]


@pytest.mark.asyncio
async def test_cache_key_ignores_argument_order_across_iterations():
    tool = RecordingTool("search")
    tool.parameters = [
        ToolParameter(name="q", required=True),
        ToolParameter(name="lang"),
    ]
    model = ScriptedChatModel(
        '{"tool_calls": [{"tool_name": "search", "arguments": {"q": "a", "lang": "en"}}]}',
        '{"tool_calls": [{"tool_name": "search", "arguments": {"lang": "en", "q": "a"}}]}',
        "final",
    )
    orch = make_orchestrator(model, tool)

    resp = await orch.process("go", [])

    assert len(tool.calls) == 1
    assert resp.metrics.tool_calls_count == 1
    assert len(tool_pairs(resp.messages)) == 2


@pytest.mark.asyncio
async def test_transcript_follows_request_order_not_completion_order():
    completed: List[str] = []
    slow = RecordingTool("slow", delay=0.05, log=completed)
    fast = RecordingTool("fast", log=completed)
    model = ScriptedChatModel(tool_calls(call("slow", q="1"), call("fast", q="2")), "final")
    orch = make_orchestrator(model, slow, fast)

    resp = await orch.process("go", [], AgentConfig(allow_parallel_tool_calls=True))

    assert completed == ["fast:2", "slow:1"]
    assert tool_pairs(resp.messages) == [("slow", "slow says 1"), ("fast", "fast says 2")]
    assert [c.tool_name for c in resp.tool_calls_executed] == ["slow", "fast"]


@pytest.mark.asyncio
async def test_sequential_mode_runs_calls_in_request_order():
    completed: List[str] = []
    slow = RecordingTool("slow", delay=0.02, log=completed)
    fast = RecordingTool("fast", log=completed)
    model = ScriptedChatModel(tool_calls(call("slow", q="1"), call("fast", q="2")), "final")
    orch = make_orchestrator(model, slow, fast)

    await orch.process("go", [], AgentConfig(allow_parallel_tool_calls=False))

    assert completed == ["slow:1", "fast:2"]


# ----------------------------
# Failures inside a batch
# ----------------------------


@pytest.mark.asyncio
async def test_tool_fault_does_not_abort_the_batch():
    broken = RecordingTool("broken", fail_with="disk on fire")
    healthy = RecordingTool("healthy")
    model = ScriptedChatModel(tool_calls(call("broken", q="1"), call("healthy", q="2")), "final")
    orch = make_orchestrator(model, broken, healthy)

    resp = await orch.process("go", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert tool_pairs(resp.messages) == [
        ("broken", "Tool execution failed: disk on fire"),
        ("healthy", "healthy says 2"),
    ]
    assert resp.metrics.tool_calls_count == 2
    assert "Tool Result: Error: Tool execution failed: disk on fire" in model.prompts[1]["user"]


@pytest.mark.asyncio
async def test_unknown_tool_becomes_failed_result_for_the_model():
    model = ScriptedChatModel(tool_calls(call("does_not_exist", q="1")), "I could not find that tool.")
    orch = make_orchestrator(model)

    resp = await orch.process("go", [])

    assert resp.outcome == AgentOutcome.FINALIZED
    assert tool_pairs(resp.messages) == [("does_not_exist", "Tool 'does_not_exist' does not exist")]


# ----------------------------
# History, cost, cancellation
# ----------------------------


@pytest.mark.asyncio
async def test_history_is_included_in_context():
    model = ScriptedChatModel("Sure.")
    orch = make_orchestrator(model)
    history = [
        AgentMessage(role="user", content="My name is Ada."),
        AgentMessage(role="assistant", content="Hi Ada."),
    ]

    resp = await orch.process("What's my name?", history)

    assert model.prompts[0]["user"].splitlines() == [
        "User: My name is Ada.",
        "Assistant: Hi Ada.",
        "User: What's my name?",
    ]
    assert [m.content for m in resp.messages] == ["My name is Ada.", "Hi Ada.", "What's my name?", "Sure."]


@pytest.mark.asyncio
async def test_cost_estimate_uses_transcript_length_and_executed_calls():
    tool = RecordingTool("search")
    model = ScriptedChatModel(tool_calls(call("search", q="x"), call("search", q="x")), "done")
    orch = make_orchestrator(
        model, tool, chars_per_token=1, cost_per_1k_tokens=1000.0, cost_per_tool_call=0.5
    )

    resp = await orch.process("hello", [])

    chars = sum(m.text_length() for m in resp.messages)
    assert chars == len("hello") + 2 * len("search says x") + len("done")
    assert resp.metrics.estimated_cost == pytest.approx(chars + 0.5)
    assert resp.metrics.total_duration_ms >= 0


class Hanging(Tool):
    """Signals once it starts, then never returns."""

    name = "hang"
    description = "never returns"
    parameters = []

    def __init__(self):
        self.started = asyncio.Event()

    async def execute(self, arguments):
        self.started.set()
        await asyncio.Event().wait()
        return ToolResult.ok("unreachable")


async def _cancel_once_hanging(task: asyncio.Task, hang: Hanging, quick: RecordingTool) -> None:
    await hang.started.wait()
    while not quick.completed:
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_cancellation_mid_batch_propagates():
    quick, hang = RecordingTool("quick"), Hanging()
    model = ScriptedChatModel(tool_calls(call("quick", q="1"), call("hang")), "final")
    orch = make_orchestrator(model, quick, hang)

    task = asyncio.create_task(orch.process("go", []))
    await _cancel_once_hanging(task, hang, quick)

    assert len(model.prompts) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("parallel", [True, False])
async def test_cancelled_iteration_records_nothing(parallel):
    quick, hang = RecordingTool("quick"), Hanging()
    orch = make_orchestrator(ScriptedChatModel("unused"), quick, hang)
    user = AgentMessage(role="user", content="go")
    state = _RequestState(messages=[user])
    calls = [ToolCall(tool_name="quick", arguments={"q": "1"}), ToolCall(tool_name="hang")]

    task = asyncio.create_task(
        orch._run_tool_calls(state, calls, AgentConfig(allow_parallel_tool_calls=parallel))
    )
    await _cancel_once_hanging(task, hang, quick)

    assert quick.completed == ["quick:1"]
    assert state.tool_cache == {}
    assert state.executed == []
    assert state.usage_counts == {}
    assert state.messages == [user]


@pytest.mark.asyncio
async def test_cancelled_stream_yields_no_tool_results():
    quick, hang = RecordingTool("quick"), Hanging()
    model = ScriptedChatModel(tool_calls(call("quick", q="1"), call("hang")), "final")
    orch = make_orchestrator(model, quick, hang)
    seen: List[AgentStreamChunkType] = []

    async def consume():
        async for chunk in orch.stream("go", []):
            seen.append(chunk.type)

    task = asyncio.create_task(consume())
    await _cancel_once_hanging(task, hang, quick)

    assert seen.count(AgentStreamChunkType.TOOL_CALL_START) == 2
    assert AgentStreamChunkType.TOOL_CALL_RESULT not in seen
    assert AgentStreamChunkType.CONTENT_COMPLETE not in seen


@pytest.mark.asyncio
async def test_requests_do_not_share_cache():
    tool = RecordingTool("search")
    model = ScriptedChatModel(tool_calls(call("search", q="x")), "done")
    orch = make_orchestrator(model, tool)

    first = await orch.process("a", [])
    model.prompts.clear()
    second = await orch.process("b", [])

    assert first.metrics.tool_calls_count == 1
    assert second.metrics.tool_calls_count == 1
    assert len(tool.calls) == 2


# ----------------------------
# Streaming
# ----------------------------


@pytest.mark.asyncio
async def test_stream_event_order():
    tool = RecordingTool("search")
    model = ScriptedChatModel(
        tool_calls(call("search", q="a"), call("search", q="b"), reasoning="Look both up"),
        "final answer",
    )
    orch = make_orchestrator(model, tool)

    chunks = [c async for c in orch.stream("go", [], AgentConfig(enable_chain_of_thought=True))]

    assert [c.type for c in chunks] == [
        AgentStreamChunkType.REASONING,
        AgentStreamChunkType.REASONING,
        AgentStreamChunkType.TOOL_CALL_START,
        AgentStreamChunkType.TOOL_CALL_START,
        AgentStreamChunkType.TOOL_CALL_RESULT,
        AgentStreamChunkType.TOOL_CALL_RESULT,
        AgentStreamChunkType.CONTENT_COMPLETE,
    ]
    assert chunks[1].reasoning_trace == "Look both up"
    assert [c.tool_call.arguments["q"] for c in chunks[2:4]] == ["a", "b"]
    assert [c.tool_result.content for c in chunks[4:6]] == ["search says a", "search says b"]

    final = chunks[-1]
    assert final.content == "final answer"
    assert final.response is not None
    assert final.response.outcome == AgentOutcome.FINALIZED
    assert final.response.metrics.tool_calls_count == 2


@pytest.mark.asyncio
async def test_stream_omits_model_reasoning_without_chain_of_thought():
    tool = RecordingTool("search")
    model = ScriptedChatModel(tool_calls(call("search", q="a"), reasoning="hidden"), "final")
    orch = make_orchestrator(model, tool)

    chunks = [c async for c in orch.stream("go", [], AgentConfig(enable_chain_of_thought=False))]

    reasoning = [c for c in chunks if c.type == AgentStreamChunkType.REASONING]
    assert len(reasoning) == 1
    assert all(c.reasoning_trace != "hidden" for c in reasoning)


@pytest.mark.asyncio
async def test_stream_ends_with_budget_exhausted_response():
    model = ScriptedChatModel(tool_calls(call("search", q="a")))
    orch = make_orchestrator(model, RecordingTool("search"))

    chunks = [c async for c in orch.stream("go", [], AgentConfig(max_tool_calls=2))]

    assert chunks[-1].type == AgentStreamChunkType.CONTENT_COMPLETE
    assert chunks[-1].response.outcome == AgentOutcome.BUDGET_EXHAUSTED
    assert chunks[-1].content == BUDGET_EXHAUSTED_MESSAGE
    # Second iteration is served from cache, so only one real execution.
    assert chunks[-1].response.metrics.tool_calls_count == 1
    assert sum(1 for c in chunks if c.type == AgentStreamChunkType.TOOL_CALL_RESULT) == 2
