"""
Credential gate for the shared browser identity.

- has_valid_credential: the saved Playwright auth state exists and is fresh
- is_host_process_running: a user-controlled Chrome may be holding the profile
- start_interactive_login: open a visible browser and wait for the user to sign in
"""
from __future__ import annotations

import asyncio
import json
import time
from pathlib import Path
from typing import Iterable, Optional, Set

import psutil
import structlog

from notebook_bridge.browser.identity import BrowserIdentity
from notebook_bridge.browser.selectors import LOGIN_HOSTS
from notebook_bridge.core.errors import AuthenticationError


class CredentialGate:
    """Contract consumed by the readiness gate and the dispatcher."""

    async def has_valid_credential(self) -> bool:
        raise NotImplementedError

    async def is_host_process_running(self) -> bool:
        raise NotImplementedError

    async def start_interactive_login(self, timeout: float) -> None:
        raise NotImplementedError


def auth_state_is_fresh(state_path: Path, max_age_hours: float, now: Optional[float] = None) -> bool:
    """Return True when the state file exists, parses, and is younger than max_age_hours."""
    try:
        stat = state_path.stat()
    except FileNotFoundError:
        return False
    age_seconds = (now if now is not None else time.time()) - stat.st_mtime
    if age_seconds > max_age_hours * 3600:
        return False
    try:
        state = json.loads(state_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return False
    return bool(state.get("cookies"))


def find_host_processes(names: Iterable[str], exclude_pids: Set[int] = frozenset()) -> list:
    """Return pids of running processes whose name matches one of names."""
    wanted = {name.lower() for name in names}
    matches = []
    for proc in psutil.process_iter(["pid", "name"]):
        name = (proc.info.get("name") or "").lower()
        if name in wanted and proc.info["pid"] not in exclude_pids:
            matches.append(proc.info["pid"])
    return matches


class BrowserCredentialGate(CredentialGate):
    def __init__(
        self,
        identity: BrowserIdentity,
        *,
        notebook_url: str,
        max_age_hours: float = 24.0,
        host_process_names: Iterable[str] = ("chrome", "chromium"),
        login_poll_interval: float = 1.0,
        logger=None,
    ):
        self.identity = identity
        self.notebook_url = notebook_url
        self.max_age_hours = max_age_hours
        self.host_process_names = tuple(host_process_names)
        self.login_poll_interval = login_poll_interval
        self.logger = logger or structlog.get_logger(__name__)

    async def has_valid_credential(self) -> bool:
        return auth_state_is_fresh(self.identity.state_path, self.max_age_hours)

    async def is_host_process_running(self) -> bool:
        try:
            pids = await asyncio.to_thread(self._probe_host_processes)
        except (psutil.Error, OSError) as exc:
            # Unknown state: block rather than race a user-held profile.
            self.logger.warning("Could not inspect host processes", error=str(exc))
            return True
        running = bool(pids)
        self.logger.info("Host process check", running=running, matches=len(pids))
        return running

    async def start_interactive_login(self, timeout: float) -> None:
        self.logger.info("Starting interactive login", timeout=timeout)
        async with self.identity.interactive_context() as context:
            page = context.pages[0] if context.pages else await context.new_page()
            await page.goto(self.notebook_url, wait_until="domcontentloaded")

            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            while loop.time() < deadline:
                if page.is_closed():
                    raise AuthenticationError("Login window was closed before sign-in completed")
                if self._is_signed_in(page.url):
                    await self.identity.save_state(context)
                    self.logger.info("Interactive login completed")
                    return
                await asyncio.sleep(self.login_poll_interval)

        raise AuthenticationError(
            f"Login not completed within {int(timeout)} seconds",
            suggest_cleanup=True,
        )

    def _is_signed_in(self, url: str) -> bool:
        if not url or any(host in url for host in LOGIN_HOSTS):
            return False
        return url.startswith(self.notebook_url.rstrip("/"))

    def _probe_host_processes(self) -> list:
        own = psutil.Process()
        exclude = {own.pid}
        # Chromium launched by this process is ours, not the user's.
        exclude.update(child.pid for child in own.children(recursive=True))
        return find_host_processes(self.host_process_names, exclude)
