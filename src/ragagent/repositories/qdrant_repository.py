from typing import Any, Dict, List, Optional

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    MatchValue,
    PointStruct,
    VectorParams,
)

from ragagent.core.exceptions import VectorStoreError
from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings

logger = setup_logger(__name__)

client: Optional[QdrantClient] = None


def init_qdrant(vector_dim: Optional[int]) -> None:
    global client
    client = QdrantClient(url=settings.QDRANT_URL, prefer_grpc=False)

    if vector_dim is None:
        logger.warning("Vector dimension unknown; skipping collection bootstrap")
        return

    existing = {c.name for c in client.get_collections().collections}
    for name in (settings.DOCUMENTS_COLLECTION, settings.MEMORY_COLLECTION):
        if name not in existing:
            logger.info(f"Creating Qdrant collection '{name}' dim={vector_dim}")
            client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=vector_dim, distance=Distance.COSINE),
            )


def _client() -> QdrantClient:
    if client is None:
        raise VectorStoreError("Qdrant client is not initialized; call init_qdrant() first")
    return client


def _must(**conditions: Any) -> Filter:
    return Filter(
        must=[
            FieldCondition(key=key, match=MatchValue(value=value))
            for key, value in conditions.items()
            if value is not None
        ]
    )


def search_documents(
    query_vec: List[float],
    top_k: int,
    *,
    tenant_id: Optional[str] = None,
    min_score: Optional[float] = None,
) -> List[Dict[str, Any]]:
    try:
        results = _client().query_points(
            collection_name=settings.DOCUMENTS_COLLECTION,
            query=query_vec,
            limit=top_k,
            with_payload=True,
            query_filter=_must(tenantId=tenant_id),
            score_threshold=min_score,
        )
    except VectorStoreError:
        raise
    except Exception as e:
        raise VectorStoreError(f"Document search failed: {e}") from e

    return [
        {
            "document_id": str(p.payload.get("documentId") or "unknown"),
            "page": p.payload.get("pageNumber"),
            "score": p.score,
            "text": p.payload.get("text", ""),
        }
        for p in results.points
    ]


def upsert_memory(point_id: str, vector: List[float], payload: Dict[str, Any]) -> None:
    try:
        _client().upsert(
            collection_name=settings.MEMORY_COLLECTION,
            points=[PointStruct(id=point_id, vector=vector, payload=payload)],
            wait=True,
        )
    except Exception as e:
        raise VectorStoreError(f"Memory upsert failed: {e}") from e


def search_memory(
    query_vec: List[float],
    top_k: int,
    *,
    user_id: str,
    tenant_id: str,
    memory_type: Optional[str] = None,
) -> List[Dict[str, Any]]:
    try:
        results = _client().query_points(
            collection_name=settings.MEMORY_COLLECTION,
            query=query_vec,
            limit=top_k,
            with_payload=True,
            query_filter=_must(user_id=user_id, tenant_id=tenant_id, type=memory_type),
        )
    except Exception as e:
        raise VectorStoreError(f"Memory search failed: {e}") from e

    return [{"id": str(p.id), "score": p.score, **(p.payload or {})} for p in results.points]


def scroll_memories(*, user_id: str, tenant_id: str, limit: int) -> List[Dict[str, Any]]:
    try:
        points, _next = _client().scroll(
            collection_name=settings.MEMORY_COLLECTION,
            scroll_filter=_must(user_id=user_id, tenant_id=tenant_id),
            limit=limit,
            with_payload=True,
        )
    except Exception as e:
        raise VectorStoreError(f"Memory scroll failed: {e}") from e

    return [{"id": str(p.id), **(p.payload or {})} for p in points]


def delete_memories(*, user_id: str, tenant_id: str) -> int:
    scope = _must(user_id=user_id, tenant_id=tenant_id)
    try:
        count = _client().count(
            collection_name=settings.MEMORY_COLLECTION, count_filter=scope, exact=True
        ).count
        _client().delete(collection_name=settings.MEMORY_COLLECTION, points_selector=scope, wait=True)
    except Exception as e:
        raise VectorStoreError(f"Memory delete failed: {e}") from e
    return count
