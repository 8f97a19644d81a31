"""
Page adapters.

The session core never touches the DOM. It talks to a PageSignalAdapter,
which turns "is it busy", "what answers are visible" and "ask this" into
page operations. PlaywrightPageAdapter drives one NotebookLM tab.
"""
from __future__ import annotations

from typing import List, Optional

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from notebook_bridge.browser.selectors import (
    CHAT_INPUT_SELECTORS,
    ERROR_SELECTORS,
    LOGIN_HOSTS,
    RESPONSE_CONTAINER,
    RESPONSE_TEXT,
    THINKING_INDICATOR,
)
from notebook_bridge.core.errors import PageInteractionError, SessionDisconnectedError, is_page_closed_error


class PageSignalAdapter:
    """Boundary between the session core and one chat tab."""

    async def is_busy(self) -> bool:
        """Return True while the page shows that an answer is being composed."""
        raise NotImplementedError

    async def list_visible_answers(self) -> List[str]:
        """Return the trimmed, non-empty answer texts in document order."""
        raise NotImplementedError

    async def submit_question(self, text: str) -> None:
        raise NotImplementedError

    async def is_session_alive(self) -> bool:
        raise NotImplementedError

    async def read_error_messages(self) -> List[str]:
        """Return error/notification texts currently shown on the page."""
        return []

    async def close(self) -> None:
        return None


class PlaywrightPageAdapter(PageSignalAdapter):
    def __init__(self, page: Page, *, input_timeout: float = 30.0, logger=None):
        self.page = page
        self.input_timeout = input_timeout
        self.logger = logger or structlog.get_logger(__name__)

    async def is_busy(self) -> bool:
        element = await self.page.query_selector(THINKING_INDICATOR)
        if element is None:
            return False
        return await element.is_visible()

    async def list_visible_answers(self) -> List[str]:
        texts: List[str] = []
        containers = await self.page.query_selector_all(RESPONSE_CONTAINER)
        for container in containers:
            try:
                text_element = await container.query_selector(RESPONSE_TEXT)
                if text_element is None:
                    continue
                text = (await text_element.inner_text()).strip()
            except PlaywrightError as exc:
                # A container detached while streaming; closed pages must still surface.
                if is_page_closed_error(exc):
                    raise
                continue
            if text:
                texts.append(text)
        return texts

    async def submit_question(self, text: str) -> None:
        chat_input = await self._find_chat_input()
        await chat_input.click()
        await chat_input.fill(text)
        await chat_input.press("Enter")
        self.logger.info("Question submitted", chars=len(text))

    async def is_session_alive(self) -> bool:
        if self.page.is_closed():
            return False
        url = self.page.url or ""
        return not any(host in url for host in LOGIN_HOSTS)

    async def read_error_messages(self) -> List[str]:
        messages: List[str] = []
        for selector in ERROR_SELECTORS:
            for element in await self.page.query_selector_all(selector):
                try:
                    if not await element.is_visible():
                        continue
                    text = (await element.inner_text()).strip()
                except PlaywrightError:
                    continue
                if text:
                    messages.append(text)
        return messages

    async def close(self) -> None:
        if not self.page.is_closed():
            await self.page.close()

    async def _find_chat_input(self):
        last_error: Optional[Exception] = None
        for selector in CHAT_INPUT_SELECTORS:
            try:
                return await self.page.wait_for_selector(
                    selector,
                    state="visible",
                    timeout=self.input_timeout * 1000,
                )
            except PlaywrightError as exc:
                if is_page_closed_error(exc):
                    raise SessionDisconnectedError(str(exc)) from exc
                last_error = exc
        raise PageInteractionError(f"Chat input not found on {self.page.url}: {last_error}")
