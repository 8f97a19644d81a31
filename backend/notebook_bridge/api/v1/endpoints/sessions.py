from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from notebook_bridge.core.bridge_provider import get_bridge
from notebook_bridge.core.service_auth import ServiceContext, require_service
from notebook_bridge.schemas.tools import SESSION_ID_PATTERN
from notebook_bridge.services.bridge import Bridge

router = APIRouter()


@router.get("/sessions")
async def list_sessions(
    bridge: Bridge = Depends(get_bridge),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    """List open sessions, most recently active first."""
    now = bridge.registry.now()
    sessions = sorted(bridge.registry.list(), key=lambda s: s.last_activity_at, reverse=True)
    return {
        "success": True,
        "data": {
            "sessions": [session.to_dict(now) for session in sessions],
            "count": len(sessions),
            "capacity": bridge.registry.capacity,
        },
    }


@router.delete("/sessions/{session_id}")
async def close_session(
    session_id: str = Path(..., pattern=SESSION_ID_PATTERN),
    bridge: Bridge = Depends(get_bridge),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    closed = await bridge.registry.close(session_id)
    return {"success": True, "data": {"session_id": session_id, "closed": closed}}


@router.post("/sessions/{session_id}/reset")
async def reset_session(
    session_id: str = Path(..., pattern=SESSION_ID_PATTERN),
    bridge: Bridge = Depends(get_bridge),
    service: ServiceContext = Depends(require_service),
) -> Dict[str, Any]:
    session = await bridge.registry.reset(session_id)
    return {"success": True, "data": {"session": session.to_dict(bridge.registry.now())}}
