"""
Response acquisition.

After a question is submitted, the page keeps mutating while NotebookLM
streams its answer. The acquirer polls the page adapter, picks out the first
answer text it has not seen before, ignores an echo of the question, and
returns the text only once it has stayed identical for a number of
consecutive polls.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, List, Optional, Set, Union

import structlog

from notebook_bridge.browser.adapter import PageSignalAdapter
from notebook_bridge.browser.selectors import contains_rate_limit_phrase
from notebook_bridge.core.errors import (
    RateLimitError,
    SessionDisconnectedError,
    is_page_closed_error,
)

DEFAULT_REQUIRED_STABLE_POLLS = 3


def text_hash(text: str) -> int:
    """
    32-bit djb2-style hash of a string.

    Used to remember which answers were already on the page without keeping
    their full text. Collisions are possible and accepted: this answers
    "seen before?", it is not a security boundary.
    """
    value = 0
    for char in text:
        value = ((value << 5) - value + ord(char)) & 0xFFFFFFFF
    # Signed, to match the usual 32-bit integer rendering.
    return value - 0x100000000 if value & 0x80000000 else value


class AcquisitionTimeout:
    """Sentinel returned when no stable answer appeared before the deadline."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ACQUISITION_TIMEOUT"


ACQUISITION_TIMEOUT = AcquisitionTimeout()


@dataclass
class PendingAnswer:
    text: str
    first_seen_at: float
    stable_repeat_count: int = 1


class ResponseAcquirer:
    def __init__(
        self,
        *,
        timeout: float = 120.0,
        poll_interval: float = 1.0,
        required_stable_polls: int = DEFAULT_REQUIRED_STABLE_POLLS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger=None,
    ):
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.required_stable_polls = required_stable_polls
        self._clock = clock
        self._sleep = sleep
        self.logger = logger or structlog.get_logger(__name__)

    async def await_answer(
        self,
        adapter: PageSignalAdapter,
        question: str,
        known_answers: Iterable[str] = (),
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        required_stable_polls: Optional[int] = None,
    ) -> Union[str, AcquisitionTimeout]:
        """Wait for a new, stable answer. Returns ACQUISITION_TIMEOUT on deadline."""
        timeout = self.timeout if timeout is None else timeout
        poll_interval = self.poll_interval if poll_interval is None else poll_interval
        required = required_stable_polls or self.required_stable_polls

        known_hashes: Set[int] = {text_hash(t.strip()) for t in known_answers if t and t.strip()}
        sanitized_question = (question or "").strip().lower()
        pending: Optional[PendingAnswer] = None
        polls = 0

        deadline = self._clock() + timeout
        self.logger.debug("Waiting for new answer", known=len(known_hashes), timeout=timeout)

        while self._clock() < deadline:
            polls += 1

            if await self._is_busy(adapter):
                await self._sleep(poll_interval)
                continue

            candidate = await self._find_unseen(adapter, known_hashes)
            if candidate is None:
                await self._raise_if_rate_limited(adapter)
                await self._sleep(poll_interval)
                continue

            if candidate.lower() == sanitized_question:
                known_hashes.add(text_hash(candidate))
                await self._sleep(poll_interval)
                continue

            if pending is not None and candidate == pending.text:
                pending.stable_repeat_count += 1
            else:
                if pending is not None:
                    self.logger.debug("Answer still streaming", chars=len(candidate), previous=len(pending.text))
                pending = PendingAnswer(text=candidate, first_seen_at=self._clock())

            if pending.stable_repeat_count >= required:
                self.logger.info(
                    "Stable answer acquired",
                    chars=len(pending.text),
                    polls=polls,
                    stable_polls=pending.stable_repeat_count,
                )
                return pending.text

            await self._sleep(poll_interval)

        self.logger.warning("Timed out waiting for answer", polls=polls, timeout=timeout)
        return ACQUISITION_TIMEOUT

    async def _is_busy(self, adapter: PageSignalAdapter) -> bool:
        try:
            return await adapter.is_busy()
        except Exception as exc:
            await self._absorb(adapter, exc, "busy check")
            return False

    async def _find_unseen(self, adapter: PageSignalAdapter, known_hashes: Set[int]) -> Optional[str]:
        try:
            answers: List[str] = await adapter.list_visible_answers()
        except Exception as exc:
            await self._absorb(adapter, exc, "answer extraction")
            return None

        # No more containers than known texts: nothing new can be on the page.
        if len(answers) <= len(known_hashes):
            return None

        for text in answers:
            normalized = (text or "").strip()
            if normalized and text_hash(normalized) not in known_hashes:
                return normalized
        return None

    async def _raise_if_rate_limited(self, adapter: PageSignalAdapter) -> None:
        try:
            messages = await adapter.read_error_messages()
        except Exception as exc:
            await self._absorb(adapter, exc, "error scan")
            return
        for message in messages:
            if contains_rate_limit_phrase(message):
                self.logger.warning("Rate limit message detected", message=message[:200])
                raise RateLimitError()

    async def _absorb(self, adapter: PageSignalAdapter, exc: Exception, stage: str) -> None:
        """Swallow a failed poll unless the tab itself is gone."""
        if isinstance(exc, SessionDisconnectedError):
            raise exc
        if is_page_closed_error(exc):
            raise SessionDisconnectedError(str(exc)) from exc
        try:
            alive = await adapter.is_session_alive()
        except Exception:
            alive = False
        if not alive:
            raise SessionDisconnectedError(f"Session tab unusable during {stage}: {exc}") from exc
        self.logger.debug("Poll failed, retrying", stage=stage, error=str(exc))
