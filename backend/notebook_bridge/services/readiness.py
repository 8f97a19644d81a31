"""
Connection readiness gate.

Decides, before any session work, whether the bridge can proceed
unattended, needs the user to close their browser first, or may run an
automated login on its own.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

import structlog

from notebook_bridge.auth.credentials import CredentialGate

HOST_PROCESS_MESSAGE = (
    "NotebookLM authentication is required.\n\n"
    "Close Chrome completely (all windows) before continuing. Signing in needs "
    "exclusive access to the browser profile.\n\n"
    "What to do:\n"
    "1. Close every Chrome window\n"
    "2. Confirm here when you are done\n"
    "3. A window will open for the Google sign-in"
)


@dataclass(frozen=True)
class ConnectionCheckResult:
    is_ready: bool
    auth_valid: bool
    host_process_running: bool
    requires_user_action: bool
    can_auto_remediate: bool
    message: str
    user_action_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConnectionReadinessGate:
    def __init__(self, credentials: CredentialGate, logger=None):
        self.credentials = credentials
        self.logger = logger or structlog.get_logger(__name__)

    async def check(self) -> ConnectionCheckResult:
        if await self.credentials.has_valid_credential():
            return ConnectionCheckResult(
                is_ready=True,
                auth_valid=True,
                host_process_running=False,
                requires_user_action=False,
                can_auto_remediate=False,
                message="Connection ready - authentication is valid",
            )

        self.logger.warning("Authentication state is invalid or expired")
        if await self._host_process_running():
            self.logger.warning("Host browser is running, login would conflict with its profile")
            return ConnectionCheckResult(
                is_ready=False,
                auth_valid=False,
                host_process_running=True,
                requires_user_action=True,
                can_auto_remediate=False,
                message="Authentication required but the host browser is running",
                user_action_message=HOST_PROCESS_MESSAGE,
            )

        return ConnectionCheckResult(
            is_ready=False,
            auth_valid=False,
            host_process_running=False,
            requires_user_action=False,
            can_auto_remediate=True,
            message="Authentication required - host browser is closed, ready for login",
        )

    async def await_host_process_exit(self, timeout: float, poll_interval: float) -> bool:
        """Poll until the host browser exits. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        self.logger.info("Waiting for host browser to close", timeout=timeout)
        while True:
            if not await self._host_process_running():
                self.logger.info("Host browser is closed")
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(poll_interval, remaining))
        self.logger.warning("Timed out waiting for host browser to close", timeout=timeout)
        return False

    async def _host_process_running(self) -> bool:
        try:
            return await self.credentials.is_host_process_running()
        except Exception as exc:
            self.logger.warning("Host process probe failed", error=str(exc))
            return True
