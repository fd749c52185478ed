from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ragagent.models.memory_model import MEMORY_TYPES, MemoryItem, MemorySearchResult, MemoryStats
from ragagent.models.tool_model import DataOutput, ToolParameter, ToolResult
from ragagent.tools.base import Tool

MEMORY_TOOL_NAME = "memory"
MEMORY_ACTIONS = ["store", "search", "get_all", "stats", "clear"]


@runtime_checkable
class ConversationMemory(Protocol):
    """Storage backend for the memory tool (see services.memory_service for the Qdrant one)."""

    async def store(
        self,
        content: str,
        user_id: str,
        tenant_id: str,
        *,
        type: str = "fact",
        category: str = "",
        importance: int = 5,
    ) -> str:
        ...

    async def search(
        self,
        query: str,
        user_id: str,
        tenant_id: str,
        *,
        top_k: int = 10,
        type_filter: Optional[str] = None,
    ) -> List[MemorySearchResult]:
        ...

    async def get_all(self, user_id: str, tenant_id: str, *, limit: int = 50) -> List[MemoryItem]:
        ...

    async def stats(self, user_id: str, tenant_id: str) -> MemoryStats:
        ...

    async def clear(self, user_id: str, tenant_id: str) -> int:
        ...


def _fmt_dt(value: Any) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value is not None else "unknown"


class MemoryTool(Tool):
    name = MEMORY_TOOL_NAME
    description = (
        "Store and retrieve information from conversation history across all sessions. "
        "Memory is shared tenant-wide - information stored here persists across conversations "
        "and can be retrieved later. Use this to remember important user preferences, facts "
        "about the user, ongoing tasks, and context."
    )
    parameters = [
        ToolParameter(
            name="action",
            description="Action to perform: 'store', 'search', 'get_all', 'stats', 'clear'",
            type="string",
            required=True,
            enum_values=MEMORY_ACTIONS,
        ),
        ToolParameter(
            name="content",
            description="Content to store or search query (required for 'store' and 'search')",
            type="string",
        ),
        ToolParameter(name="tenant_id", description="Tenant identifier (defaults to current tenant)", type="string"),
        ToolParameter(
            name="type",
            description="Memory type: 'fact', 'preference', 'task', 'context', 'goal', 'conversation'",
            type="string",
            enum_values=MEMORY_TYPES,
        ),
        ToolParameter(
            name="category",
            description="Memory category for organization (e.g., 'coding', 'preferences', 'personal')",
            type="string",
        ),
        ToolParameter(name="importance", description="Importance level (1-10, default: 5)", type="number", default=5),
        ToolParameter(name="top_k", description="Number of memories to return for search (default: 10)", type="number", default=10),
    ]

    def __init__(self, memory: ConversationMemory) -> None:
        self._memory = memory

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        action = str(arguments["action"]).lower()
        tenant_id = str(arguments.get("tenant_id") or "default")
        # Memory is tenant-wide: every conversation in a tenant shares one user id.
        user_id = f"tenant-user-{tenant_id}"

        if action == "store":
            return await self._store(arguments, user_id, tenant_id)
        if action == "search":
            return await self._search(arguments, user_id, tenant_id)
        if action == "get_all":
            return await self._get_all(user_id, tenant_id)
        if action == "stats":
            return await self._stats(user_id, tenant_id)
        if action == "clear":
            return await self._clear(user_id, tenant_id)
        return ToolResult.fail(
            f"Unknown action: {action}. Valid actions: {', '.join(MEMORY_ACTIONS)}"
        )

    async def _store(self, arguments: Dict[str, Any], user_id: str, tenant_id: str) -> ToolResult:
        content = str(arguments.get("content") or "").strip()
        if not content:
            return ToolResult.fail("Content is required for 'store' action")

        mem_type = arguments.get("type") or "fact"
        importance = max(1, min(10, int(arguments.get("importance") or 5)))
        memory_id = await self._memory.store(
            content,
            user_id,
            tenant_id,
            type=mem_type,
            category=str(arguments.get("category") or ""),
            importance=importance,
        )
        return ToolResult.ok(
            f"Memory stored successfully. ID: {memory_id}",
            DataOutput(values={
                "memory_id": memory_id,
                "content": content,
                "type": mem_type,
                "importance": importance,
            }),
        )

    async def _search(self, arguments: Dict[str, Any], user_id: str, tenant_id: str) -> ToolResult:
        query = str(arguments.get("content") or "").strip()
        if not query:
            return ToolResult.fail("Content (query) is required for 'search' action")

        results = await self._memory.search(
            query,
            user_id,
            tenant_id,
            top_k=int(arguments.get("top_k") or 10),
            type_filter=arguments.get("type"),
        )
        if not results:
            return ToolResult.ok(
                "No relevant memories found.",
                DataOutput(values={"query": query, "results_count": 0}),
            )

        lines = [f"Found {len(results)} relevant memory/memories:", ""]
        for rank, r in enumerate(results, start=1):
            m = r.memory
            header = f"[{rank}] {m.type}"
            if m.category:
                header += f" ({m.category})"
            lines.append(header)
            lines.append(f"Relevance: {r.relevance:.3f} | Importance: {m.importance}/10")
            lines.append(f"Content: {m.content}")
            lines.append(f"Created: {_fmt_dt(m.created_at)} | Accessed {m.access_count} times")
            lines.append("")

        return ToolResult.ok(
            "\n".join(lines).strip(),
            DataOutput(values={
                "query": query,
                "results_count": len(results),
                "memories": [
                    {**r.memory.model_dump(mode="json"), "relevance": r.relevance} for r in results
                ],
            }),
        )

    async def _get_all(self, user_id: str, tenant_id: str) -> ToolResult:
        memories = await self._memory.get_all(user_id, tenant_id, limit=50)
        if not memories:
            return ToolResult.ok("No memories found for this user.", DataOutput(values={"count": 0}))

        lines = [f"Total memories: {len(memories)}", ""]
        for m in memories[:10]:
            text = m.content if len(m.content) <= 100 else m.content[:100] + "..."
            header = f"- {m.type}"
            if m.category:
                header += f" ({m.category})"
            lines.append(f"{header} | Importance: {m.importance}/10")
            lines.append(f"  {text}")
            lines.append(f"  Created: {_fmt_dt(m.created_at)} | Accessed {m.access_count} times")
            lines.append("")
        if len(memories) > 10:
            lines.append(f"... and {len(memories) - 10} more memories (showing first 10)")

        return ToolResult.ok(
            "\n".join(lines).strip(),
            DataOutput(values={
                "total_count": len(memories),
                "showing": min(10, len(memories)),
                "memories": [m.model_dump(mode="json") for m in memories],
            }),
        )

    async def _stats(self, user_id: str, tenant_id: str) -> ToolResult:
        stats = await self._memory.stats(user_id, tenant_id)
        if stats.total_count == 0:
            return ToolResult.ok(
                "No memory statistics available (no memories stored).",
                DataOutput(values={"total_count": 0}),
            )

        lines = [
            f"Memory Statistics for {user_id}:",
            "",
            f"Total Memories: {stats.total_count}",
            f"Average Importance: {stats.average_importance:.1f}/10",
            f"Total Accesses: {stats.total_access_count}",
            f"Oldest Memory: {_fmt_dt(stats.oldest)}",
            f"Newest Memory: {_fmt_dt(stats.newest)}",
            "",
            "By Type:",
        ]
        for mem_type, count in sorted(stats.count_by_type.items(), key=lambda kv: kv[1], reverse=True):
            lines.append(f"  - {mem_type}: {count}")

        return ToolResult.ok(
            "\n".join(lines).strip(),
            DataOutput(values={
                "total_count": stats.total_count,
                "by_type": stats.count_by_type,
                "average_importance": stats.average_importance,
                "total_accesses": stats.total_access_count,
            }),
        )

    async def _clear(self, user_id: str, tenant_id: str) -> ToolResult:
        count = await self._memory.clear(user_id, tenant_id)
        return ToolResult.ok(
            f"Cleared {count} memories for user {user_id}.",
            DataOutput(values={"cleared_count": count, "user_id": user_id}),
        )
