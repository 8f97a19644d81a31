"""
Service authentication for tool callers.

Agents call the tool surface with a static bearer token
(Authorization: Bearer <SERVICE_TOKEN>). When no token is configured the
check is skipped, which the settings only allow outside production.
"""
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from fastapi import HTTPException, Request, status

from notebook_bridge.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServiceContext:
    """Identity of an authenticated tool caller."""

    service_name: str
    authenticated: bool


def _extract_service_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header.lower().startswith("bearer "):
        return None

    token = auth_header[7:].strip()
    return token if token else None


async def require_service(request: Request) -> ServiceContext:
    """
    Dependency that requires a valid service token when one is configured.

    Raises:
        HTTPException: 401 if the token is missing or wrong
    """
    expected = settings.SERVICE_TOKEN
    if not expected:
        return ServiceContext(service_name="anonymous", authenticated=False)

    token = _extract_service_token(request)
    if not token:
        logger.warning(
            "Service auth failed - no token",
            extra={"path": request.url.path, "method": request.method},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Service authentication required. Provide Bearer token.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not secrets.compare_digest(token, expected):
        logger.warning(
            "Service auth failed - invalid token",
            extra={"path": request.url.path, "method": request.method},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid service token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return ServiceContext(service_name="agent", authenticated=True)
