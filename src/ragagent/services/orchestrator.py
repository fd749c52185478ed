from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings
from ragagent.models.agent_model import (
    AgentCitation,
    AgentConfig,
    AgentMessage,
    AgentMetrics,
    AgentOutcome,
    AgentResponse,
    AgentStreamChunk,
    AgentStreamChunkType,
)
from ragagent.models.tool_model import DocumentsOutput, ToolCall, ToolCategory, ToolResult
from ragagent.services.prompts import build_conversation_context, build_system_prompt
from ragagent.services.tool_calls import parse_tool_calls, tool_call_cache_key
from ragagent.services.upstream_llm import ChatModel
from ragagent.tools.executor import ToolExecutor
from ragagent.tools.registry import ToolRegistry

logger = setup_logger(__name__)


BUDGET_EXHAUSTED_MESSAGE = (
    "I apologize, but I reached the maximum number of tool calls without completing "
    "your request. Please try rephrasing your question."
)


@dataclass
class _RequestState:
    """Everything one orchestration request accumulates. Never shared across requests."""

    messages: List[AgentMessage]
    tool_cache: Dict[str, ToolResult] = field(default_factory=dict)
    executed: List[ToolCall] = field(default_factory=list)
    retrieved_documents: List[str] = field(default_factory=list)
    citations: List[AgentCitation] = field(default_factory=list)
    usage_counts: Dict[str, int] = field(default_factory=dict)
    total_tokens: int = 0


class AgentOrchestrator:
    """
    Bounded reasoning loop: prompt the model, run the tools it asks for, feed the
    results back, and stop on a plain answer or after `max_tool_calls` iterations.

    `stream` is the state machine; `process` drains it and returns the final
    AgentResponse carried on the CONTENT_COMPLETE chunk.
    """

    def __init__(
        self,
        chat_model: ChatModel,
        registry: ToolRegistry,
        executor: Optional[ToolExecutor] = None,
        *,
        chars_per_token: Optional[int] = None,
        cost_per_1k_tokens: Optional[float] = None,
        cost_per_tool_call: Optional[float] = None,
    ) -> None:
        self.chat_model = chat_model
        self.registry = registry
        self.executor = executor or ToolExecutor(registry)
        self.chars_per_token = chars_per_token or settings.COST_CHARS_PER_TOKEN
        self.cost_per_1k_tokens = (
            settings.COST_PER_1K_TOKENS if cost_per_1k_tokens is None else cost_per_1k_tokens
        )
        self.cost_per_tool_call = (
            settings.COST_PER_TOOL_CALL if cost_per_tool_call is None else cost_per_tool_call
        )

    async def process(
        self,
        user_message: str,
        history: Optional[Sequence[AgentMessage]] = None,
        config: Optional[AgentConfig] = None,
        tenant_id: Optional[str] = None,
    ) -> AgentResponse:
        response: Optional[AgentResponse] = None
        async for chunk in self.stream(user_message, history, config, tenant_id):
            if chunk.type == AgentStreamChunkType.CONTENT_COMPLETE:
                response = chunk.response
        if response is None:
            raise RuntimeError("Agent stream ended without a final response")
        return response

    async def stream(
        self,
        user_message: str,
        history: Optional[Sequence[AgentMessage]] = None,
        config: Optional[AgentConfig] = None,
        tenant_id: Optional[str] = None,
    ) -> AsyncIterator[AgentStreamChunk]:
        config = config or AgentConfig()
        started = time.perf_counter()
        state = _RequestState(
            messages=[*(history or []), AgentMessage(role="user", content=user_message)]
        )

        logger.info(
            f"Agent start tenant={tenant_id or 'none'} history={len(history or [])} "
            f"max_tool_calls={config.max_tool_calls}"
        )
        yield AgentStreamChunk(
            type=AgentStreamChunkType.REASONING,
            reasoning_trace="Starting agent processing...",
        )

        for iteration in range(1, config.max_tool_calls + 1):
            system_prompt = build_system_prompt(self.registry, config, tenant_id)
            context = build_conversation_context(state.messages)

            completion = await self.chat_model.answer(system_prompt, context)
            state.total_tokens += completion.usage.total_tokens
            answer = completion.answer

            calls = parse_tool_calls(answer)
            if not calls:
                logger.info(f"Agent finalized at iteration={iteration}")
                response = self._finish(state, answer, AgentOutcome.FINALIZED, started)
                yield AgentStreamChunk(
                    type=AgentStreamChunkType.CONTENT_COMPLETE,
                    content=response.final_answer,
                    response=response,
                )
                return

            calls = [self._inject_context(c, config, tenant_id) for c in calls]
            logger.info(
                f"Iteration {iteration}: model requested {len(calls)} tool call(s): "
                f"{[c.tool_name for c in calls]}"
            )

            if config.enable_chain_of_thought and calls[0].reasoning_trace:
                yield AgentStreamChunk(
                    type=AgentStreamChunkType.REASONING,
                    reasoning_trace=calls[0].reasoning_trace,
                )
            for call in calls:
                yield AgentStreamChunk(type=AgentStreamChunkType.TOOL_CALL_START, tool_call=call)

            results = await self._run_tool_calls(state, calls, config)

            for call, result in zip(calls, results):
                yield AgentStreamChunk(
                    type=AgentStreamChunkType.TOOL_CALL_RESULT,
                    tool_call=call,
                    tool_result=result,
                )

        logger.warning(f"Agent exhausted tool budget after {config.max_tool_calls} iteration(s)")
        response = self._finish(state, BUDGET_EXHAUSTED_MESSAGE, AgentOutcome.BUDGET_EXHAUSTED, started)
        yield AgentStreamChunk(
            type=AgentStreamChunkType.CONTENT_COMPLETE,
            content=response.final_answer,
            response=response,
        )

    def _inject_context(
        self, call: ToolCall, config: AgentConfig, tenant_id: Optional[str]
    ) -> ToolCall:
        """Scope retrieval and memory calls to the tenant; fill retrieval knobs from config."""
        is_retrieval = self.registry.is_category(call.tool_name, ToolCategory.RETRIEVAL)
        if not is_retrieval and not self.registry.is_category(call.tool_name, ToolCategory.MEMORY):
            return call
        tool = self.registry.get(call.tool_name)
        if tool is None:
            return call

        if tenant_id and tool.parameter("tenant_id") and "tenant_id" not in call.arguments:
            call = call.with_argument("tenant_id", tenant_id)
        if not is_retrieval:
            return call
        if tool.parameter("top_k") and "top_k" not in call.arguments:
            call = call.with_argument("top_k", config.top_k_documents)
        if tool.parameter("min_score") and "min_score" not in call.arguments:
            call = call.with_argument("min_score", config.min_relevance_score)
        return call

    async def _run_tool_calls(
        self,
        state: _RequestState,
        calls: List[ToolCall],
        config: AgentConfig,
    ) -> List[ToolResult]:
        """
        Deduplicate, execute and record one iteration's tool calls.

        Results are staged locally and committed to `state` only after every
        execution finished, so a cancelled iteration leaves no trace.
        """
        keys = [tool_call_cache_key(c) for c in calls]

        pending: Dict[str, ToolCall] = {}
        for key, call in zip(keys, calls):
            if key in state.tool_cache:
                logger.info(f"Reusing cached result for tool={call.tool_name}")
            elif key not in pending:
                pending[key] = call

        to_run = list(pending.values())
        if config.allow_parallel_tool_calls and len(to_run) > 1:
            fresh = await self.executor.execute_many(to_run)
        else:
            fresh = [await self.executor.execute(c) for c in to_run]
        staged = dict(zip(pending.keys(), fresh))

        # Commit: no awaits past this point.
        for key, call in pending.items():
            result = staged[key]
            state.tool_cache[key] = result
            state.executed.append(call)
            state.usage_counts[call.tool_name] = state.usage_counts.get(call.tool_name, 0) + 1
            self._collect_retrieval(state, call, result)

        results = [state.tool_cache[key] for key in keys]
        for call, result in zip(calls, results):
            state.messages.append(AgentMessage(role="assistant", tool_call=call))
            state.messages.append(AgentMessage(role="tool", tool_result=result))
        return results

    def _collect_retrieval(self, state: _RequestState, call: ToolCall, result: ToolResult) -> None:
        if not result.success or not isinstance(result.output, DocumentsOutput):
            return
        if not self.registry.is_category(call.tool_name, ToolCategory.RETRIEVAL):
            return
        if not result.output.documents:
            return

        state.retrieved_documents.append(result.content or "")
        state.citations.extend(
            AgentCitation(
                document_id=doc.document_id,
                page_number=doc.page,
                score=doc.score,
                text=doc.text,
            )
            for doc in result.output.documents
        )

    def estimate_cost(self, messages: Sequence[AgentMessage], executed_calls: int) -> float:
        """Rough heuristic (chars → tokens, plus a flat fee per tool call); not billing-grade."""
        chars = sum(m.text_length() for m in messages)
        tokens = chars / self.chars_per_token
        return (tokens / 1000.0) * self.cost_per_1k_tokens + executed_calls * self.cost_per_tool_call

    def _finish(
        self,
        state: _RequestState,
        final_answer: str,
        outcome: AgentOutcome,
        started: float,
    ) -> AgentResponse:
        state.messages.append(AgentMessage(role="assistant", content=final_answer))
        duration_ms = (time.perf_counter() - started) * 1000.0

        metrics = AgentMetrics(
            tool_calls_count=len(state.executed),
            documents_retrieved=len(state.retrieved_documents),
            total_duration_ms=duration_ms,
            estimated_cost=self.estimate_cost(state.messages, len(state.executed)),
            tool_usage_counts=dict(state.usage_counts),
        )
        logger.info(
            f"Agent done outcome={outcome.value} tool_calls={metrics.tool_calls_count} "
            f"docs={metrics.documents_retrieved} upstream_tokens={state.total_tokens} "
            f"duration_ms={duration_ms:.1f}"
        )
        return AgentResponse(
            final_answer=final_answer,
            outcome=outcome,
            messages=list(state.messages),
            tool_calls_executed=list(state.executed),
            retrieved_documents=list(state.retrieved_documents),
            citations=list(state.citations),
            metrics=metrics,
        )
