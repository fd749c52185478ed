from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


MemoryType = Literal["fact", "preference", "task", "context", "goal", "conversation"]

MEMORY_TYPES: List[str] = ["fact", "preference", "task", "context", "goal", "conversation"]


class MemoryItem(BaseModel):
    id: str
    user_id: str
    tenant_id: str
    content: str
    type: MemoryType = "fact"
    category: str = ""
    importance: int = Field(default=5, ge=1, le=10)
    created_at: Optional[datetime] = None
    access_count: int = 0


class MemorySearchResult(BaseModel):
    memory: MemoryItem
    relevance: float


class MemoryStats(BaseModel):
    total_count: int = 0
    count_by_type: Dict[str, int] = Field(default_factory=dict)
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None
    total_access_count: int = 0
    average_importance: float = 0.0
