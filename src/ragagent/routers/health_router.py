from __future__ import annotations
from typing import Any, Dict, Optional
from fastapi import APIRouter, Request

from ragagent.core.tooling_config import tooling_snapshot

router = APIRouter()


@router.get("/")
async def health() -> Dict[str, Any]:
    """Basic health check endpoint."""
    return {"status": "ok", "service": "ragagent-api"}


@router.get("/tools")
async def health_tools(raw_req: Request) -> Dict[str, Any]:
    """Tooling diagnostics read from app.state, so it answers in degraded mode too."""
    state = raw_req.app.state

    registry = getattr(state, "registry", None)
    executor = getattr(state, "executor", None)
    orchestrator = getattr(state, "orchestrator", None)
    tooling_cfg = getattr(state, "tooling_config", None)
    tooling_init_error: Optional[str] = getattr(state, "tooling_init_error", None)

    payload: Dict[str, Any] = {
        "tool_count": len(registry) if registry is not None else 0,
        "tools": [t.name for t in registry.list_all()] if registry is not None else [],
        "registry_present": registry is not None,
        "executor_present": executor is not None,
        "orchestrator_present": orchestrator is not None,
    }
    if tooling_cfg is not None:
        payload["tooling"] = tooling_snapshot(tooling_cfg)

    # Only include init error if present (keeps the happy-path response clean).
    if tooling_init_error:
        payload["tooling_init_error"] = tooling_init_error

    return payload


@router.get("/upstream")
async def health_upstream(raw_req: Request) -> Dict[str, Any]:
    """Check the chat model endpoint (GET /models)."""
    chat_model = getattr(raw_req.app.state, "chat_model", None)
    check = getattr(chat_model, "check_health", None)
    if check is None:
        return {"upstream_ok": False, "reason": "chat model not initialized"}
    return {"upstream_ok": await check()}
