from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from ragagent.models.tool_model import DocumentHit, DocumentsOutput, ToolParameter, ToolResult
from ragagent.tools.base import Tool

RAG_SEARCH_TOOL_NAME = "rag_search"

# (query, top_k, tenant_id, min_score) -> ranked hits
Retriever = Callable[[str, int, Optional[str], Optional[float]], Awaitable[List[DocumentHit]]]


def format_documents(hits: List[DocumentHit]) -> str:
    lines = [f"Found {len(hits)} relevant document(s):", ""]
    for rank, hit in enumerate(hits, start=1):
        header = f"[{rank}] Document: {hit.document_id}"
        if hit.page is not None:
            header += f" (Page {hit.page})"
        lines.append(header)
        lines.append(f"Relevance: {hit.score:.3f}")
        lines.append(f"Content: {hit.text or ''}")
        lines.append("")
    return "\n".join(lines).strip()


class RagSearchTool(Tool):
    name = RAG_SEARCH_TOOL_NAME
    description = (
        "Search through ingested documents using semantic similarity. "
        "Returns relevant document chunks for a given query."
    )
    parameters = [
        ToolParameter(name="query", description="The search query or question", type="string", required=True),
        ToolParameter(name="top_k", description="Number of results to return (default: 3)", type="number", default=3),
        ToolParameter(name="tenant_id", description="Tenant ID for multi-tenancy isolation", type="string"),
        ToolParameter(name="min_score", description="Minimum relevance score (0-1) for a result", type="number"),
    ]

    def __init__(self, retriever: Retriever) -> None:
        self._retriever = retriever

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        query = str(arguments["query"]).strip()
        if not query:
            return ToolResult.fail("Query must not be empty")

        top_k = int(arguments.get("top_k") or 3)
        tenant_id = arguments.get("tenant_id")
        min_score = arguments.get("min_score")

        hits = await self._retriever(query, top_k, tenant_id, min_score)
        if not hits:
            return ToolResult.ok(
                "No relevant documents found.",
                DocumentsOutput(query=query, documents=[]),
            )

        return ToolResult.ok(format_documents(hits), DocumentsOutput(query=query, documents=hits))
