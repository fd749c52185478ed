from __future__ import annotations

from typing import Iterable, List, Optional

from ragagent.models.agent_model import AgentConfig, AgentMessage
from ragagent.models.tool_model import ToolCategory
from ragagent.tools.registry import ToolRegistry


AGENT_SYSTEM_PROMPT = """You are an intelligent AI agent with access to tools.
You can call tools to help answer user questions.

When you need to use a tool, respond in this JSON format:
{
  "reasoning": "Why you need this tool",
  "tool_calls": [
    {
      "tool_name": "tool_name_here",
      "arguments": {
        "param1": "value1"
      }
    }
  ]
}

IMPORTANT GUIDELINES:
- DO NOT call the same tool with the same arguments multiple times in one conversation turn
- After receiving tool results, USE THEM to formulate your answer instead of calling tools again
- If you already have information from a previous tool call, synthesize an answer from that
- Only call tools when you genuinely need NEW information that you don't already have
- Avoid redundant searches - use the context and tool results you already received

After tool results are provided, synthesize a final answer for the user.
If you can answer directly without tools, just provide the answer normally."""


CHAIN_OF_THOUGHT_NOTE = (
    "Think step by step. When calling tools, explain your plan briefly in the "
    '"reasoning" field before listing the calls.'
)


def render_tool_catalog(registry: ToolRegistry) -> str:
    lines: List[str] = ["Available tools:"]
    for tool in registry.list_all():
        lines.append("")
        lines.append(f"**{tool.name}**: {tool.description}")
        lines.append("Parameters:")
        for p in tool.parameters:
            required = "(required)" if p.required else "(optional)"
            line = f"  - {p.name} ({p.type}) {required}: {p.description}"
            if p.enum_values:
                line += f" [one of: {', '.join(p.enum_values)}]"
            lines.append(line)
    return "\n".join(lines)


def build_system_prompt(
    registry: ToolRegistry,
    config: AgentConfig,
    tenant_id: Optional[str] = None,
) -> str:
    parts = [config.system_prompt or AGENT_SYSTEM_PROMPT]
    if config.enable_chain_of_thought:
        parts.append(CHAIN_OF_THOUGHT_NOTE)
    parts.append(render_tool_catalog(registry))

    if config.use_rag_for_context and tenant_id:
        retrieval = [t.name for t in registry.list_by_category(ToolCategory.RETRIEVAL)]
        if retrieval:
            names = ", ".join(f"'{n}'" for n in retrieval)
            parts.append(
                f"Current tenant: {tenant_id}\n"
                f"IMPORTANT: When calling {names}, ALWAYS include the tenant_id parameter "
                "with the current tenant value to ensure proper data isolation.\n"
                f'Always use: {{"tenant_id": "{tenant_id}"}} in these calls.'
            )

    return "\n\n".join(parts)


def build_conversation_context(messages: Iterable[AgentMessage]) -> str:
    """Flatten the transcript into dialogue lines; tool-call turns are not rendered."""
    lines: List[str] = []
    for msg in messages:
        if msg.role == "user" and msg.content is not None:
            lines.append(f"User: {msg.content}")
        elif msg.role == "assistant" and msg.content is not None:
            lines.append(f"Assistant: {msg.content}")
        elif msg.role == "tool" and msg.tool_result is not None:
            result = msg.tool_result
            if result.success:
                lines.append(f"Tool Result: {result.content}")
            else:
                lines.append(f"Tool Result: Error: {result.error}")
    return "\n".join(lines).strip()
