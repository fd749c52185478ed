from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence

from ragagent.models.tool_model import ToolParameter, ToolResult


class Tool(ABC):
    """
    Any capability the agent can call: retrieval, search APIs, memory stores, etc.

    Subclasses declare `name`, `description` and `parameters`; the executor
    validates arguments against `parameters` before `execute` runs.
    """

    name: str
    description: str
    parameters: Sequence[ToolParameter] = ()

    @abstractmethod
    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        ...

    def parameter(self, name: str) -> Optional[ToolParameter]:
        for p in self.parameters:
            if p.name == name:
                return p
        return None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} name={self.name!r}>"


class FunctionTool(Tool):
    """
    Wrap a plain callable (sync or async) as a Tool.

    The callable receives the validated arguments as keyword arguments. Sync
    callables run in a worker thread so they never block the event loop.
    """

    def __init__(
        self,
        name: str,
        description: str,
        fn: Callable[..., Any],
        parameters: Optional[List[ToolParameter]] = None,
    ) -> None:
        self.name = name
        self.description = description
        self.parameters = list(parameters or [])
        self._fn = fn

    async def execute(self, arguments: Dict[str, Any]) -> ToolResult:
        if inspect.iscoroutinefunction(self._fn):
            value = await self._fn(**arguments)
        else:
            value = await asyncio.to_thread(self._fn, **arguments)

        if isinstance(value, ToolResult):
            return value
        return ToolResult.ok(value if isinstance(value, str) else str(value))
