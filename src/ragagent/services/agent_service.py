from fastapi import Request
from fastapi.responses import JSONResponse, StreamingResponse
from typing import Any, Dict, List, Optional
import json
import uuid

from ragagent.core.exceptions import UpstreamLLMError
from ragagent.core.logger import setup_logger
from ragagent.models.agent_model import AgentResponse, AgentStreamChunk, AgentStreamChunkType
from ragagent.models.chat_model import (
    AgentChatRequest,
    AgentChatResponse,
    ChatErrorMessage,
    ErrorMessage,
    ToolInfo,
    ToolParameterInfo,
)
from ragagent.tools.registry import ToolRegistry
from ragagent.utils.get_tenant import get_tenant_from_request

logger = setup_logger(__name__)


def to_chat_response(resp: AgentResponse) -> AgentChatResponse:
    return AgentChatResponse(
        answer=resp.final_answer,
        outcome=resp.outcome,
        tool_calls=resp.tool_calls_executed,
        retrieved_documents=resp.retrieved_documents,
        citations=resp.citations,
        metrics=resp.metrics,
    )


def tool_info(registry: ToolRegistry, name: str) -> Optional[ToolInfo]:
    tool = registry.get(name)
    metadata = registry.get_metadata(name)
    if tool is None or metadata is None:
        return None
    return ToolInfo(
        name=tool.name,
        description=tool.description,
        category=metadata.category.value,
        tags=list(metadata.tags),
        version=metadata.version,
        parameters=[
            ToolParameterInfo(
                name=p.name,
                description=p.description,
                type=p.type,
                required=p.required,
                default=p.default,
                enum_values=p.enum_values,
            )
            for p in tool.parameters
        ],
    )


def list_tool_infos(registry: ToolRegistry) -> List[ToolInfo]:
    infos = [tool_info(registry, t.name) for t in registry.list_all()]
    return [i for i in infos if i is not None]


def _error_payload(type_: str, message: str, retryable: bool) -> Dict[str, Any]:
    return ChatErrorMessage(
        error=ErrorMessage(type=type_, message=message, retryable=retryable)
    ).model_dump()


def _sse(payload: Any) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _chunk_payload(chunk: AgentStreamChunk) -> Dict[str, Any]:
    """Client-facing shape of a stream chunk; the terminal one carries the public response DTO."""
    payload = chunk.model_dump(mode="json", exclude_none=True, exclude={"response"})
    if chunk.type == AgentStreamChunkType.CONTENT_COMPLETE and chunk.response is not None:
        payload["response"] = to_chat_response(chunk.response).model_dump(mode="json")
    return payload


def _prepare(raw_req: Request):
    req_id = raw_req.headers.get("x-request-id") or uuid.uuid4().hex[:8]
    raw_req.state.req_id = req_id
    orchestrator = getattr(raw_req.app.state, "orchestrator", None)
    return req_id, orchestrator


def _unavailable(req_id: str) -> JSONResponse:
    logger.error(f"Agent orchestrator not initialized on app.state. req_id={req_id}")
    return JSONResponse(
        content=_error_payload(
            "server_error", "Service unavailable: agent not initialized.", True
        ),
        status_code=503,
        headers={"X-Request-Id": req_id},
    )


async def dispatch_agent_chat(req: AgentChatRequest, raw_req: Request):
    """Run one agent request to completion and return the public response DTO."""
    req_id, orchestrator = _prepare(raw_req)
    if orchestrator is None:
        return _unavailable(req_id)

    tenant_id = get_tenant_from_request(raw_req)
    config = req.config.to_agent_config() if req.config else None
    logger.info(f"Dispatching agent chat req_id={req_id} tenant_id={tenant_id}")

    try:
        result = await orchestrator.process(
            req.message, req.conversation_history, config, tenant_id=tenant_id
        )
    except UpstreamLLMError as e:
        logger.error(f"Upstream chat model failed req_id={req_id}: {e}")
        return JSONResponse(
            content=_error_payload("upstream_error", str(e), True),
            status_code=502,
            headers={"X-Request-Id": req_id},
        )

    return JSONResponse(
        content=to_chat_response(result).model_dump(mode="json"),
        headers={"X-Request-Id": req_id},
    )


async def dispatch_agent_stream(req: AgentChatRequest, raw_req: Request):
    """Run one agent request as server-sent events, one `data:` frame per stream chunk."""
    req_id, orchestrator = _prepare(raw_req)
    if orchestrator is None:
        return _unavailable(req_id)

    tenant_id = get_tenant_from_request(raw_req)
    config = req.config.to_agent_config() if req.config else None
    logger.info(f"Dispatching streaming agent chat req_id={req_id} tenant_id={tenant_id}")

    async def sse_generator():
        try:
            async for chunk in orchestrator.stream(
                req.message, req.conversation_history, config, tenant_id=tenant_id
            ):
                yield _sse(_chunk_payload(chunk))
        except UpstreamLLMError as e:
            logger.error(f"Upstream chat model failed mid-stream req_id={req_id}: {e}")
            yield _sse({"type": AgentStreamChunkType.ERROR.value, **_error_payload("upstream_error", str(e), True)})
        except Exception as e:
            logger.exception(f"Agent stream failed req_id={req_id}")
            yield _sse({"type": AgentStreamChunkType.ERROR.value, **_error_payload("runtime_error", str(e), False)})
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        sse_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
            "X-Request-Id": req_id,
        },
    )
