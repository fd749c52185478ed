import asyncio
import uuid
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ragagent.core.logger import setup_logger
from ragagent.models.memory_model import MemoryItem, MemorySearchResult, MemoryStats
from ragagent.repositories.qdrant_repository import (
    delete_memories,
    scroll_memories,
    search_memory,
    upsert_memory,
)
from ragagent.services.embedding_service import embed_query

logger = setup_logger(__name__)


def _to_item(payload: Dict[str, Any]) -> MemoryItem:
    return MemoryItem(
        id=str(payload.get("id")),
        user_id=payload.get("user_id", ""),
        tenant_id=payload.get("tenant_id", ""),
        content=payload.get("content", ""),
        type=payload.get("type") or "fact",
        category=payload.get("category") or "",
        importance=int(payload.get("importance") or 5),
        created_at=payload.get("created_at"),
        access_count=int(payload.get("access_count") or 0),
    )


class QdrantConversationMemory:
    """Conversation memory backed by the Qdrant memory collection."""

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
        memory_id = str(uuid.uuid4())
        vector = await embed_query(content)
        payload = {
            "user_id": user_id,
            "tenant_id": tenant_id,
            "content": content,
            "type": type,
            "category": category,
            "importance": importance,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "access_count": 0,
        }
        await asyncio.to_thread(upsert_memory, memory_id, vector, payload)
        logger.info(f"memory.store id={memory_id} tenant={tenant_id} type={type}")
        return memory_id

    async def search(
        self,
        query: str,
        user_id: str,
        tenant_id: str,
        *,
        top_k: int = 10,
        type_filter: Optional[str] = None,
    ) -> List[MemorySearchResult]:
        vector = await embed_query(query)
        raw = await asyncio.to_thread(
            search_memory,
            vector,
            top_k,
            user_id=user_id,
            tenant_id=tenant_id,
            memory_type=type_filter,
        )
        return [MemorySearchResult(memory=_to_item(r), relevance=float(r.get("score") or 0.0)) for r in raw]

    async def get_all(self, user_id: str, tenant_id: str, *, limit: int = 50) -> List[MemoryItem]:
        raw = await asyncio.to_thread(scroll_memories, user_id=user_id, tenant_id=tenant_id, limit=limit)
        return [_to_item(r) for r in raw]

    async def stats(self, user_id: str, tenant_id: str) -> MemoryStats:
        # Bounded scan; stats are informational.
        items = await self.get_all(user_id, tenant_id, limit=1000)
        if not items:
            return MemoryStats()

        created = [m.created_at for m in items if m.created_at is not None]
        return MemoryStats(
            total_count=len(items),
            count_by_type=dict(Counter(m.type for m in items)),
            oldest=min(created) if created else None,
            newest=max(created) if created else None,
            total_access_count=sum(m.access_count for m in items),
            average_importance=sum(m.importance for m in items) / len(items),
        )

    async def clear(self, user_id: str, tenant_id: str) -> int:
        count = await asyncio.to_thread(delete_memories, user_id=user_id, tenant_id=tenant_id)
        logger.info(f"memory.clear tenant={tenant_id} count={count}")
        return count
