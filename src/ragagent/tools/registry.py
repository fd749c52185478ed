from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from ragagent.core.logger import setup_logger
from ragagent.models.tool_model import ToolCategory, ToolMetadata
from ragagent.tools.base import Tool

logger = setup_logger(__name__)


@dataclass(frozen=True)
class RegisteredTool:
    tool: Tool
    metadata: ToolMetadata


class ToolRegistry:
    """
    Process-wide tool catalog, shared by every orchestration request.

    Registration and lookup are guarded by a lock; every listing returns a fresh
    list so callers can iterate while other requests keep registering tools.
    Re-registering a name silently replaces the previous entry.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RegisteredTool] = {}
        self._lock = threading.RLock()

    def register(self, tool: Tool, metadata: Optional[ToolMetadata] = None) -> None:
        if metadata is None:
            metadata = ToolMetadata(
                name=tool.name,
                description=tool.description,
                category=ToolCategory.CUSTOM,
                tags=[],
            )

        with self._lock:
            if tool.name in self._entries:
                logger.warning(f"Tool '{tool.name}' already registered; replacing it")
            self._entries[tool.name] = RegisteredTool(tool=tool, metadata=metadata)

        logger.info(f"Registered tool '{tool.name}' category={metadata.category.value}")

    def get(self, name: str) -> Optional[Tool]:
        with self._lock:
            entry = self._entries.get(name)
        return entry.tool if entry else None

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self._entries

    def get_metadata(self, name: str) -> Optional[ToolMetadata]:
        with self._lock:
            entry = self._entries.get(name)
        return entry.metadata if entry else None

    def list_all(self) -> List[Tool]:
        with self._lock:
            return [e.tool for e in self._entries.values()]

    def list_by_category(self, category: ToolCategory) -> List[Tool]:
        with self._lock:
            return [e.tool for e in self._entries.values() if e.metadata.category == category]

    def search(self, query: str) -> List[Tool]:
        """Case-insensitive substring match against name, description and tags."""
        q = (query or "").lower()
        with self._lock:
            entries = list(self._entries.values())

        matches: List[Tool] = []
        for e in entries:
            if q in e.tool.name.lower() or q in e.tool.description.lower():
                matches.append(e.tool)
            elif any(q in tag.lower() for tag in e.metadata.tags):
                matches.append(e.tool)
        return matches

    def is_category(self, name: str, category: ToolCategory) -> bool:
        metadata = self.get_metadata(name)
        return metadata is not None and metadata.category == category

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
