import asyncio
from typing import Optional

from notebook_bridge.core.config import settings
from notebook_bridge.services.bridge import Bridge, build_bridge

bridge: Optional[Bridge] = None
_initialization_lock = asyncio.Lock()


async def initialize_bridge() -> None:
    """Build the bridge singleton and start its background sweep."""
    async with _initialization_lock:
        await _ensure_bridge()


async def shutdown_bridge() -> None:
    """Close every session and the shared browser, if started."""
    global bridge
    async with _initialization_lock:
        if bridge is not None:
            await bridge.shutdown()
            bridge = None


async def get_bridge() -> Bridge:
    async with _initialization_lock:
        await _ensure_bridge()
        assert bridge is not None
        return bridge


async def _ensure_bridge() -> None:
    global bridge
    if bridge is None:
        bridge = build_bridge(settings)
        await bridge.start()
