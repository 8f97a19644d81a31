from typing import Any, Dict

from fastapi import APIRouter, Depends

from notebook_bridge.core.bridge_provider import get_bridge
from notebook_bridge.services.bridge import Bridge

router = APIRouter()


@router.get("/health")
async def readiness_health(bridge: Bridge = Depends(get_bridge)) -> Dict[str, Any]:
    """Readiness of the browser identity plus session usage. Never opens a browser."""
    check = await bridge.readiness.check()
    return {
        "status": "ready" if check.is_ready else "needs_auth",
        "readiness": check.to_dict(),
        "sessions": len(bridge.registry),
        "capacity": bridge.registry.capacity,
        "headless": bridge.settings.HEADLESS,
    }
