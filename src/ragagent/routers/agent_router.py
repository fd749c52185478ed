from typing import List

from fastapi import APIRouter, HTTPException, Request

from ragagent.models.chat_model import AgentChatRequest, ToolInfo
from ragagent.services.agent_service import (
    dispatch_agent_chat,
    dispatch_agent_stream,
    list_tool_infos,
    tool_info,
)

router = APIRouter()


@router.post("/chat")
async def agent_chat(req: AgentChatRequest, raw_req: Request):
    return await dispatch_agent_chat(req, raw_req)


@router.post("/chat/stream")
async def agent_chat_stream(req: AgentChatRequest, raw_req: Request):
    return await dispatch_agent_stream(req, raw_req)


@router.get("/tools", response_model=List[ToolInfo])
async def list_tools(raw_req: Request):
    registry = getattr(raw_req.app.state, "registry", None)
    if registry is None:
        return []
    return list_tool_infos(registry)


@router.get("/tools/{name}", response_model=ToolInfo)
async def get_tool(name: str, raw_req: Request):
    registry = getattr(raw_req.app.state, "registry", None)
    info = tool_info(registry, name) if registry is not None else None
    if info is None:
        raise HTTPException(status_code=404, detail=f"Tool '{name}' not found")
    return info
