from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ragagent.core.exceptions import ToolingConfigError
from ragagent.core.logger import setup_logger
from ragagent.core.settings import settings
from ragagent.core.tooling_config import (
    ToolingConfig,
    builtin_metadata,
    default_tooling_config,
    load_tooling_config,
    tooling_snapshot,
)
from ragagent.repositories.qdrant_repository import init_qdrant
from ragagent.routers import agent_router, health_router
from ragagent.services import embedding_service
from ragagent.services.memory_service import QdrantConversationMemory
from ragagent.services.orchestrator import AgentOrchestrator
from ragagent.services.retrieval import qdrant_retriever
from ragagent.services.upstream_llm import UpstreamChatModel
from ragagent.tools.builtin import (
    ConversationMemory,
    GitHubSearchCodeTool,
    GitHubSearchRepositoriesTool,
    MemoryTool,
    RagSearchTool,
    Retriever,
)
from ragagent.tools.executor import ToolExecutor
from ragagent.tools.registry import ToolRegistry

logger = setup_logger(__name__)


def build_registry(
    cfg: ToolingConfig,
    *,
    retriever: Retriever,
    memory: Optional[ConversationMemory] = None,
) -> ToolRegistry:
    """Register every built-in tool the tooling config leaves enabled."""
    registry = ToolRegistry()
    candidates = [
        RagSearchTool(retriever),
        GitHubSearchRepositoriesTool(),
        GitHubSearchCodeTool(),
    ]
    if memory is not None:
        candidates.append(MemoryTool(memory))

    for tool in candidates:
        if not cfg.is_enabled(tool.name):
            logger.info(f"Built-in tool '{tool.name}' disabled by tooling config")
            continue
        registry.register(tool, builtin_metadata(tool, cfg))
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting up ragagent")
    app.state.tooling_init_error = None

    try:
        tooling_cfg = load_tooling_config(settings.TOOLING_CONFIG_FILE)
    except ToolingConfigError as e:
        logger.error(f"Tooling config rejected, falling back to defaults: {e}")
        app.state.tooling_init_error = str(e)
        tooling_cfg = default_tooling_config()
    logger.info(f"Tooling config: {tooling_snapshot(tooling_cfg)}")

    try:
        embedding_service.init_embedder()
        init_qdrant(embedding_service.vector_dim)
    except Exception:
        # Retrieval and memory calls will surface as failed tool results.
        logger.exception("Vector store initialization failed; continuing in degraded mode")

    registry = build_registry(
        tooling_cfg, retriever=qdrant_retriever, memory=QdrantConversationMemory()
    )
    executor = ToolExecutor(registry)
    chat_model = UpstreamChatModel()

    app.state.tooling_config = tooling_cfg
    app.state.registry = registry
    app.state.executor = executor
    app.state.chat_model = chat_model
    app.state.orchestrator = AgentOrchestrator(chat_model, registry, executor)
    logger.info(f"Agent ready with {len(registry)} tool(s) model={chat_model.model}")

    try:
        yield
    finally:
        logger.info("Shutting down ragagent")


app = FastAPI(title="RAG Agent API", lifespan=lifespan)

app.include_router(agent_router.router, prefix="/v1/agent")
app.include_router(health_router.router, prefix="/health")


@app.get("/")
def root():
    return {"status": "ok", "service": "ragagent-api"}
