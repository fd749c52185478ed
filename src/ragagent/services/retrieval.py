import asyncio
from typing import List, Optional

from ragagent.core.logger import setup_logger
from ragagent.models.tool_model import DocumentHit
from ragagent.repositories.qdrant_repository import search_documents
from ragagent.services.embedding_service import embed_query

logger = setup_logger(__name__)


def _page(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def qdrant_retriever(
    query: str,
    top_k: int,
    tenant_id: Optional[str],
    min_score: Optional[float],
) -> List[DocumentHit]:
    """Retriever used by the rag_search tool: embed the query, search Qdrant scoped to the tenant if one is set."""
    if not tenant_id:
        logger.warning("Document search without tenant scope; searching every tenant's documents")
    vector = await embed_query(query)
    raw = await asyncio.to_thread(
        search_documents, vector, top_k, tenant_id=tenant_id, min_score=min_score
    )
    logger.info(f"Retrieved {len(raw)} document chunk(s) tenant={tenant_id or 'none'} top_k={top_k}")
    return [
        DocumentHit(
            document_id=r["document_id"],
            page=_page(r.get("page")),
            score=float(r.get("score") or 0.0),
            text=r.get("text") or "",
        )
        for r in raw
    ]
