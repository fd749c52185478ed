from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ragagent.models.agent_model import (
    AgentCitation,
    AgentConfig,
    AgentMessage,
    AgentMetrics,
    AgentOutcome,
)
from ragagent.models.tool_model import ToolCall


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletion(BaseModel):
    """What the chat collaborator hands back: plain text plus usage counters."""

    answer: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: Optional[str] = None


class AgentConfigRequest(BaseModel):
    """
    Agent configuration as accepted over HTTP.

    Bounds are tighter than `AgentConfig` itself so callers cannot ask for
    an unbounded number of tool iterations.
    """

    max_tool_calls: int = Field(default=5, ge=1, le=10)
    allow_parallel_tool_calls: bool = True
    use_rag_for_context: bool = True
    top_k_documents: int = Field(default=3, ge=1, le=20)
    min_relevance_score: float = Field(default=0.7, ge=0.0, le=1.0)
    enable_chain_of_thought: bool = True
    system_prompt: Optional[str] = Field(default=None, max_length=1000)

    def to_agent_config(self) -> AgentConfig:
        return AgentConfig(**self.model_dump())


class AgentChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=2000)
    conversation_history: List[AgentMessage] = Field(default_factory=list, max_length=50)
    config: Optional[AgentConfigRequest] = None


class AgentChatResponse(BaseModel):
    answer: str
    outcome: AgentOutcome
    tool_calls: List[ToolCall]
    retrieved_documents: List[str]
    citations: List[AgentCitation]
    metrics: AgentMetrics


class ToolParameterInfo(BaseModel):
    name: str
    description: str
    type: str
    required: bool
    default: Any = None
    enum_values: Optional[List[str]] = None


class ToolInfo(BaseModel):
    name: str
    description: str
    category: str
    tags: List[str] = Field(default_factory=list)
    version: Optional[str] = None
    parameters: List[ToolParameterInfo]


class ErrorMessage(BaseModel):
    type: str
    message: str
    retryable: bool
    details: Optional[Dict[str, Any]] = None


class ChatErrorMessage(BaseModel):
    error: ErrorMessage
