"""
Shared browser identity.

Every session tab is a page of one persistent Chromium context bound to a
single profile directory. The profile is an exclusive resource: only one
context (automated or interactive login) may hold it at a time.
"""
from __future__ import annotations

import asyncio
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import structlog
from playwright.async_api import BrowserContext, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from notebook_bridge.browser.adapter import PlaywrightPageAdapter
from notebook_bridge.core.errors import PageInteractionError, SessionDisconnectedError, is_page_closed_error


class BrowserIdentity:
    def __init__(
        self,
        *,
        profile_dir: Path,
        state_path: Path,
        headless: bool = True,
        channel: str = "chromium",
        page_load_timeout: float = 30.0,
        logger=None,
    ):
        self.profile_dir = Path(profile_dir)
        self.state_path = Path(state_path)
        self.headless = headless
        self.channel = channel
        self.page_load_timeout = page_load_timeout
        self.logger = logger or structlog.get_logger(__name__)
        self._playwright: Optional[Playwright] = None
        self._context: Optional[BrowserContext] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._context is not None

    async def open_adapter(self, url: str) -> PlaywrightPageAdapter:
        """Open a new tab on the shared context and navigate it to a notebook."""
        for attempt in (1, 2):
            context = await self._ensure_context()
            page = None
            try:
                page = await context.new_page()
                await page.goto(url, wait_until="domcontentloaded", timeout=self.page_load_timeout * 1000)
                self.logger.info("Opened notebook tab", url=url)
                return PlaywrightPageAdapter(page, input_timeout=self.page_load_timeout, logger=self.logger)
            except PlaywrightError as exc:
                if not is_page_closed_error(exc):
                    await self._discard_page(page)
                    raise PageInteractionError(f"Could not load {url}: {exc}") from exc
                if attempt == 2:
                    raise SessionDisconnectedError(f"Could not open a notebook tab: {exc}") from exc
                self.logger.warning("Browser context closed, relaunching", error=str(exc))
                await self.release_profile()

    async def _discard_page(self, page) -> None:
        if page is None:
            return
        try:
            await page.close()
        except PlaywrightError as exc:
            self.logger.warning("Error closing failed tab", error=str(exc))

    async def release_profile(self) -> None:
        """Close the shared context so another process may use the profile."""
        async with self._lock:
            context, self._context = self._context, None
            if context is None:
                return
            try:
                await context.close()
            except PlaywrightError as exc:
                self.logger.warning("Error closing browser context", error=str(exc))

    async def shutdown(self) -> None:
        await self.release_profile()
        async with self._lock:
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    @asynccontextmanager
    async def interactive_context(self) -> AsyncIterator[BrowserContext]:
        """Yield a visible context on the profile for a human to sign in."""
        await self.release_profile()
        playwright = await self._ensure_playwright()
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        context = await playwright.chromium.launch_persistent_context(
            str(self.profile_dir),
            headless=False,
            **self._channel_kwargs(),
        )
        try:
            yield context
        finally:
            try:
                await context.close()
            except PlaywrightError as exc:
                self.logger.warning("Error closing login context", error=str(exc))

    async def save_state(self, context: BrowserContext) -> None:
        self.state_path.parent.mkdir(parents=True, exist_ok=True)
        await context.storage_state(path=str(self.state_path))
        self.logger.info("Saved browser auth state", path=str(self.state_path))

    async def _ensure_playwright(self) -> Playwright:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        return self._playwright

    async def _ensure_context(self) -> BrowserContext:
        async with self._lock:
            if self._context is not None:
                return self._context
            playwright = await self._ensure_playwright()
            self.profile_dir.mkdir(parents=True, exist_ok=True)
            context = await playwright.chromium.launch_persistent_context(
                str(self.profile_dir),
                headless=self.headless,
                **self._channel_kwargs(),
            )
            await self._restore_cookies(context)
            context.on("close", lambda _: self._forget_context(context))
            self._context = context
            self.logger.info("Launched shared browser context", profile=str(self.profile_dir), headless=self.headless)
            return context

    def _forget_context(self, context: BrowserContext) -> None:
        if self._context is context:
            self._context = None

    async def _restore_cookies(self, context: BrowserContext) -> None:
        if not self.state_path.exists():
            return
        try:
            state = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self.logger.warning("Unreadable auth state file", path=str(self.state_path), error=str(exc))
            return
        cookies = state.get("cookies") or []
        if cookies:
            await context.add_cookies(cookies)

    def _channel_kwargs(self) -> dict:
        if not self.channel or self.channel == "chromium":
            return {}
        return {"channel": self.channel}
