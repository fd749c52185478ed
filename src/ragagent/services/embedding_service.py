import asyncio
import threading
from typing import List, Optional

from sentence_transformers import SentenceTransformer

from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings

logger = setup_logger(__name__)

embedder: Optional[SentenceTransformer] = None
vector_dim: Optional[int] = None
_init_lock = threading.Lock()


def init_embedder(*, force: bool = False) -> None:
    """Load the sentence-transformers model once; later calls no-op unless `force=True`."""
    global embedder, vector_dim

    if embedder is not None and not force:
        return

    with _init_lock:
        if embedder is not None and not force:
            return

        model_name = settings.EMBEDDING_MODEL_NAME
        logger.info(f"Initializing embedder model={model_name}")
        emb = SentenceTransformer(model_name)
        embedder = emb
        vector_dim = emb.get_sentence_embedding_dimension()
        logger.info(f"Embedder initialized model={model_name} dim={vector_dim}")


def embed_texts(texts: List[str]) -> List[List[float]]:
    if not texts:
        return []

    if embedder is None:
        try:
            init_embedder()
        except Exception as e:
            logger.exception("Failed to initialize embedder")
            raise RuntimeError(
                "Embedding model is not initialized (failed to init). "
                "Set EMBEDDING_MODEL_NAME and ensure the model can be loaded."
            ) from e

    assert embedder is not None
    return embedder.encode(texts, convert_to_numpy=True).tolist()


async def embed_query(text: str) -> List[float]:
    """Embed one query off the event loop (encode() is CPU-bound)."""
    vectors = await asyncio.to_thread(embed_texts, [text])
    return vectors[0]
