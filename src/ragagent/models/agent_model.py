from __future__ import annotations

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ragagent.models.tool_model import ToolCall, ToolResult


AgentRole = Literal["user", "assistant", "tool"]


class AgentMessage(BaseModel):
    """
    One turn of the agent transcript.

    Exactly one of `content`, `tool_call` or `tool_result` is set:
    - user / plain assistant turns carry `content`
    - an assistant turn requesting a tool carries `tool_call`
    - a tool turn reporting an outcome carries `tool_result`
    """

    role: AgentRole
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None

    @model_validator(mode="after")
    def _exactly_one_payload(self) -> "AgentMessage":
        populated = [
            v for v in (self.content, self.tool_call, self.tool_result) if v is not None
        ]
        if len(populated) != 1:
            raise ValueError("AgentMessage needs exactly one of content, tool_call, tool_result")
        if self.tool_call is not None and self.role != "assistant":
            raise ValueError("only assistant messages may carry a tool_call")
        if self.tool_result is not None and self.role != "tool":
            raise ValueError("only tool messages may carry a tool_result")
        return self

    def text_length(self) -> int:
        """Characters this turn contributes to the transcript (used for cost estimates)."""
        if self.content is not None:
            return len(self.content)
        if self.tool_result is not None:
            return len(self.tool_result.content or self.tool_result.error or "")
        return 0


class AgentConfig(BaseModel):
    """Per-request agent configuration."""

    model_config = ConfigDict(frozen=True)

    max_tool_calls: int = Field(default=5, ge=1)
    allow_parallel_tool_calls: bool = True
    use_rag_for_context: bool = True
    top_k_documents: int = Field(default=3, ge=1)
    min_relevance_score: float = Field(default=0.7, ge=0.0, le=1.0)
    enable_chain_of_thought: bool = True
    system_prompt: Optional[str] = None


class AgentOutcome(str, Enum):
    FINALIZED = "finalized"
    BUDGET_EXHAUSTED = "budget_exhausted"


class AgentCitation(BaseModel):
    document_id: str
    page_number: Optional[int] = None
    score: float
    text: Optional[str] = None


class AgentMetrics(BaseModel):
    tool_calls_count: int
    documents_retrieved: int
    total_duration_ms: float
    estimated_cost: float
    tool_usage_counts: Dict[str, int] = Field(default_factory=dict)


class AgentResponse(BaseModel):
    final_answer: str
    outcome: AgentOutcome
    messages: List[AgentMessage]
    tool_calls_executed: List[ToolCall]
    retrieved_documents: List[str]
    citations: List[AgentCitation]
    metrics: AgentMetrics


class AgentStreamChunkType(str, Enum):
    REASONING = "reasoning"
    TOOL_CALL_START = "tool_call_start"
    TOOL_CALL_RESULT = "tool_call_result"
    CONTENT_COMPLETE = "content_complete"
    ERROR = "error"


class AgentStreamChunk(BaseModel):
    type: AgentStreamChunkType
    content: Optional[str] = None
    tool_call: Optional[ToolCall] = None
    tool_result: Optional[ToolResult] = None
    reasoning_trace: Optional[str] = None

    # Only set on the terminal CONTENT_COMPLETE chunk.
    response: Optional[AgentResponse] = None
