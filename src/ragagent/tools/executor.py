# tools/executor.py

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from ragagent.core.logger import setup_logger
from ragagent.models.tool_model import ToolCall, ToolParameter, ToolResult
from ragagent.tools.registry import ToolRegistry

logger = setup_logger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


_VALID = ValidationResult(is_valid=True)


def _matches_type(value: Any, expected: str) -> bool:
    if expected == "string":
        return isinstance(value, str)
    if expected == "number":
        # bool is an int subclass; a JSON `true` is not a number.
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    if expected == "array":
        return isinstance(value, (list, tuple))
    if expected == "object":
        return isinstance(value, dict)
    return True


def _with_defaults(params: Sequence[ToolParameter], arguments: Dict[str, Any]) -> Dict[str, Any]:
    merged = {p.name: p.default for p in params if p.default is not None and p.name not in arguments}
    merged.update(arguments)
    return merged


def _coerce_result(value: Any) -> ToolResult:
    if isinstance(value, ToolResult):
        return value
    if isinstance(value, str):
        return ToolResult.ok(value)
    return ToolResult.ok(json.dumps(value, ensure_ascii=False, default=str))


class ToolExecutor:
    """
    Turns ToolCalls into ToolResults.

    Nothing but cancellation escapes `execute`: unknown tools, bad arguments
    and tool faults all come back as failed ToolResults the model can react to.
    """

    def __init__(self, registry: ToolRegistry) -> None:
        self.registry = registry

    def validate(self, call: ToolCall) -> ValidationResult:
        tool = self.registry.get(call.tool_name)
        if tool is None:
            return ValidationResult(False, f"Tool '{call.tool_name}' does not exist")

        for p in tool.parameters:
            if p.required and p.name not in call.arguments:
                return ValidationResult(False, f"Required parameter '{p.name}' is missing")

        declared = {p.name: p for p in tool.parameters}
        for arg_name, value in call.arguments.items():
            param = declared.get(arg_name)
            if param is None:
                return ValidationResult(False, f"Unknown parameter '{arg_name}'")
            if not _matches_type(value, param.type):
                return ValidationResult(
                    False, f"Parameter '{arg_name}' has invalid type. Expected {param.type}"
                )
            if param.enum_values and value not in param.enum_values:
                allowed = ", ".join(param.enum_values)
                return ValidationResult(
                    False, f"Parameter '{arg_name}' must be one of: {allowed}"
                )

        return _VALID

    async def execute(self, call: ToolCall) -> ToolResult:
        check = self.validate(call)
        if not check.is_valid:
            logger.warning(f"Rejected tool call name={call.tool_name}: {check.error}")
            return ToolResult.fail(check.error or "Invalid tool call")

        tool = self.registry.get(call.tool_name)
        if tool is None:
            # Unregistered between validation and lookup.
            return ToolResult.fail(f"Tool '{call.tool_name}' not found")

        arguments = _with_defaults(tool.parameters, call.arguments)
        logger.info(f"Executing tool name={call.tool_name} args={sorted(arguments.keys())}")

        try:
            result = _coerce_result(await tool.execute(arguments))
        except Exception as e:
            logger.exception(f"Tool '{call.tool_name}' raised")
            return ToolResult.fail(f"Tool execution failed: {e}")

        logger.info(f"Tool complete name={call.tool_name} success={result.success}")
        return result

    async def execute_many(self, calls: Sequence[ToolCall]) -> List[ToolResult]:
        """Run calls concurrently; results come back in the order the calls were given."""
        if not calls:
            return []
        return list(await asyncio.gather(*(self.execute(c) for c in calls)))

    async def execute_batch(self, calls: Sequence[ToolCall]) -> Dict[str, ToolResult]:
        """
        Run calls concurrently and key the results by tool name.

        Two calls to the same tool collapse to one entry (the later call wins);
        use `execute_many` when every call's own result matters.
        """
        results = await self.execute_many(calls)
        return {call.tool_name: result for call, result in zip(calls, results)}
