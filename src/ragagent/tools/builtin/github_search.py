from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings
from ragagent.models.tool_model import DataOutput, ToolParameter, ToolResult
from ragagent.tools.base import Tool

logger = setup_logger(__name__)


class _GitHubTool(Tool):
    """Shared HTTP plumbing for the GitHub search tools."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout_s: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = (base_url or settings.GITHUB_API_BASE).rstrip("/")
        self._timeout_s = timeout_s
        # Only used by tests to plug in httpx.MockTransport.
        self._transport = transport

        headers = {
            "User-Agent": "ragagent",
            "Accept": "application/vnd.github+json",
        }
        token = token if token is not None else settings.GITHUB_TOKEN
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._headers = headers

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=self._timeout_s,
            transport=self._transport,
        ) as client:
            resp = await client.get(path, params=params)
            resp.raise_for_status()
            return resp.json()


class GitHubSearchRepositoriesTool(_GitHubTool):
    name = "github_search_repositories"
    description = (
        "Search for GitHub repositories by query. "
        "Returns repository names, descriptions, and metadata."
    )
    parameters = [
        ToolParameter(
            name="query",
            description="Search query (e.g., 'vector database', 'machine learning python')",
            type="string",
            required=True,
        ),
        ToolParameter(
            name="sort",
            description="Sort by: stars, forks, updated (default: stars)",
            type="string",
            default="stars",
            enum_values=["stars", "forks", "updated"],
        ),
        ToolParameter(name="max_results", description="Maximum number of results (default: 5)", type="number", default=5),
    ]

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        query = str(arguments["query"])
        sort = arguments.get("sort") or "stars"
        max_results = int(arguments.get("max_results") or 5)

        try:
            data = await self._get(
                "/search/repositories",
                {"q": query, "sort": sort, "per_page": max_results},
            )
        except httpx.HTTPError as e:
            logger.warning(f"GitHub repository search failed: {e}")
            return ToolResult.fail(f"GitHub API error: {e}")

        items = data.get("items")
        if not isinstance(items, list):
            return ToolResult.fail("Invalid response from GitHub API")

        repos: List[Dict[str, Any]] = [
            {
                "name": it.get("full_name"),
                "description": it.get("description") or "",
                "stars": it.get("stargazers_count", 0),
                "forks": it.get("forks_count", 0),
                "language": it.get("language") or "Unknown",
                "url": it.get("html_url"),
                "updated_at": it.get("updated_at"),
            }
            for it in items
        ]

        lines = [f"Found {len(repos)} repositories:", ""]
        for i, r in enumerate(repos, start=1):
            lines.append(f"{i}. **{r['name']}** (stars: {r['stars']})")
            lines.append(f"   {r['description']}")
            lines.append(f"   Language: {r['language']} | Forks: {r['forks']}")
            lines.append(f"   URL: {r['url']}")
            lines.append("")

        return ToolResult.ok(
            "\n".join(lines).strip(),
            DataOutput(values={"query": query, "count": len(repos), "repositories": repos}),
        )


class GitHubSearchCodeTool(_GitHubTool):
    name = "github_search_code"
    description = "Search for code snippets across GitHub. Useful for finding examples and implementations."
    parameters = [
        ToolParameter(
            name="query",
            description="Code search query (e.g., 'vector database embedding', 'async await pattern')",
            type="string",
            required=True,
        ),
        ToolParameter(name="language", description="Programming language filter (optional)", type="string"),
        ToolParameter(name="max_results", description="Maximum number of results (default: 5)", type="number", default=5),
    ]

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        query = str(arguments["query"])
        language = arguments.get("language")
        max_results = int(arguments.get("max_results") or 5)

        q = f"{query} language:{language}" if language else query
        try:
            data = await self._get("/search/code", {"q": q, "per_page": max_results})
        except httpx.HTTPError as e:
            logger.warning(f"GitHub code search failed: {e}")
            return ToolResult.fail(f"GitHub API error: {e}")

        items = data.get("items")
        if not isinstance(items, list):
            return ToolResult.fail("Invalid response from GitHub API")

        results = [
            {
                "name": it.get("name"),
                "path": it.get("path"),
                "repository": (it.get("repository") or {}).get("full_name"),
                "url": it.get("html_url"),
            }
            for it in items
        ]

        lines = [f"Found {len(results)} code snippet(s):", ""]
        for i, r in enumerate(results, start=1):
            lines.append(f"{i}. **{r['name']}**")
            lines.append(f"   Repository: {r['repository']}")
            lines.append(f"   Path: {r['path']}")
            lines.append(f"   URL: {r['url']}")
            lines.append("")

        return ToolResult.ok(
            "\n".join(lines).strip(),
            DataOutput(values={"query": query, "count": len(results), "results": results}),
        )
