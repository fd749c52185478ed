"""
Parsing of model output into ToolCalls, and the request-scoped cache key.

The model is asked to answer either in plain prose or with a JSON object:

    {"reasoning": "...", "tool_calls": [{"tool_name": "...", "arguments": {...}}]}

possibly surrounded by prose or code fences. Anything that does not parse into a
non-empty `tool_calls` list is a final answer; a malformed object is never an error.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from ragagent.models.tool_model import ToolCall


def _extract_json_span(text: str) -> Optional[Dict[str, Any]]:
    """Parse the span from the first '{' to the last '}' as a JSON object."""
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        obj = json.loads(text[start : end + 1])
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def parse_tool_calls(text: str) -> List[ToolCall]:
    obj = _extract_json_span(text)
    if obj is None:
        return []

    raw_calls = obj.get("tool_calls")
    if not isinstance(raw_calls, list) or not raw_calls:
        return []

    reasoning = obj.get("reasoning")
    if not isinstance(reasoning, str):
        reasoning = None

    calls: List[ToolCall] = []
    for entry in raw_calls:
        if not isinstance(entry, dict):
            return []
        name = entry.get("tool_name")
        args = entry.get("arguments", {})
        if args is None:
            args = {}
        if not isinstance(name, str) or not name.strip() or not isinstance(args, dict):
            # One bad entry makes the whole object unusable, same as a parse failure.
            return []
        calls.append(ToolCall(tool_name=name.strip(), arguments=args, reasoning_trace=reasoning))
    return calls


def canonical_arguments(arguments: Dict[str, Any]) -> str:
    return json.dumps(arguments, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def tool_call_cache_key(call: ToolCall) -> str:
    """Identical (tool, arguments) pairs map to one key regardless of key order."""
    return f"{call.tool_name}:{canonical_arguments(call.arguments)}"
