from fastapi import APIRouter

from notebook_bridge.api.v1.endpoints import health, notebooks, sessions
from notebook_bridge.core.config import settings

api_router = APIRouter(prefix=settings.API_V1_PREFIX)
api_router.include_router(sessions.router, tags=["sessions"])
api_router.include_router(notebooks.router, tags=["notebooks"])
api_router.include_router(health.router, tags=["health"])
