import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from notebook_bridge.browser.adapter import PlaywrightPageAdapter
from notebook_bridge.browser.identity import BrowserIdentity
from notebook_bridge.core.errors import PageInteractionError, SessionDisconnectedError

NOTEBOOK = "https://notebooklm.google.com/notebook/abc"


class StubPage:
    def __init__(self, *, selector_error=None, goto_error=None):
        self.url = NOTEBOOK
        self.selector_error = selector_error
        self.goto_error = goto_error
        self.selectors = []
        self.closed = False

    async def wait_for_selector(self, selector, state=None, timeout=None):
        self.selectors.append(selector)
        raise self.selector_error

    async def goto(self, url, wait_until=None, timeout=None):
        if self.goto_error is not None:
            raise self.goto_error

    def is_closed(self):
        return self.closed

    async def close(self):
        self.closed = True


class StubContext:
    def __init__(self, page):
        self.page = page

    async def new_page(self):
        return self.page


@pytest.mark.asyncio
async def test_missing_chat_input_is_a_page_error():
    page = StubPage(selector_error=PlaywrightTimeoutError("Timeout 10ms exceeded."))
    adapter = PlaywrightPageAdapter(page, input_timeout=0.01)

    with pytest.raises(PageInteractionError) as exc_info:
        await adapter.submit_question("q?")

    assert "Chat input not found" in str(exc_info.value)
    assert len(page.selectors) > 1


@pytest.mark.asyncio
async def test_closed_page_while_finding_input_is_a_disconnect():
    page = StubPage(selector_error=PlaywrightError("Target page, context or browser has been closed"))
    adapter = PlaywrightPageAdapter(page, input_timeout=0.01)

    with pytest.raises(SessionDisconnectedError):
        await adapter.submit_question("q?")


@pytest.mark.asyncio
async def test_navigation_timeout_is_a_page_error_and_closes_the_tab(tmp_path):
    page = StubPage(goto_error=PlaywrightTimeoutError("Timeout 30000ms exceeded."))
    identity = BrowserIdentity(profile_dir=tmp_path / "profile", state_path=tmp_path / "state.json")
    identity._context = StubContext(page)

    with pytest.raises(PageInteractionError) as exc_info:
        await identity.open_adapter(NOTEBOOK)

    assert exc_info.value.code == "page_error"
    assert page.closed
