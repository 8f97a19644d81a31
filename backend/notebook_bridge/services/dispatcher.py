"""
Question dispatcher.

Glue for one inbound question: readiness gate, session checkout, snapshot of
the answers already on the page, submission, and acquisition of the new
answer. A tab that dies mid-question is recreated and the question retried
once.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import structlog

from notebook_bridge.auth.credentials import CredentialGate
from notebook_bridge.core.errors import (
    AuthenticationError,
    BridgeError,
    PageInteractionError,
    SessionDisconnectedError,
    is_page_closed_error,
)
from notebook_bridge.services.prompt_enhancer import PromptEnhancer
from notebook_bridge.services.readiness import ConnectionReadinessGate
from notebook_bridge.services.response_acquirer import AcquisitionTimeout, ResponseAcquirer
from notebook_bridge.services.response_wrapper import ResponseWrapper
from notebook_bridge.services.session_registry import Session, SessionRegistry, SessionState

ANSWERED = "answered"
BLOCKED = "blocked"
TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class AnswerResult:
    status: str
    session_id: Optional[str] = None
    target_resource_id: Optional[str] = None
    answer: Optional[str] = None
    blocked: Optional[str] = None

    @classmethod
    def answered(cls, answer: str, session: Session) -> "AnswerResult":
        return cls(ANSWERED, session.id, session.target_resource_id, answer=answer)

    @classmethod
    def timed_out(cls, session: Session) -> "AnswerResult":
        return cls(TIMED_OUT, session.id, session.target_resource_id)

    @classmethod
    def blocked_by(cls, message: str, session_id: Optional[str] = None) -> "AnswerResult":
        return cls(BLOCKED, session_id, blocked=message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status, "session_id": self.session_id}
        if self.status == ANSWERED:
            payload["answer"] = self.answer
            payload["target_resource_id"] = self.target_resource_id
        elif self.status == BLOCKED:
            payload["blocked"] = self.blocked
        else:
            payload["timed_out"] = True
            payload["target_resource_id"] = self.target_resource_id
        return payload


class QuestionDispatcher:
    def __init__(
        self,
        *,
        readiness: ConnectionReadinessGate,
        credentials: CredentialGate,
        registry: SessionRegistry,
        acquirer: ResponseAcquirer,
        login_timeout: float = 600.0,
        prompt_enhancer: Optional[PromptEnhancer] = None,
        response_wrapper: Optional[ResponseWrapper] = None,
        logger=None,
    ):
        self.readiness = readiness
        self.credentials = credentials
        self.registry = registry
        self.acquirer = acquirer
        self.login_timeout = login_timeout
        self.prompt_enhancer = prompt_enhancer
        self.response_wrapper = response_wrapper
        self.logger = logger or structlog.get_logger(__name__)

    async def ask(
        self,
        question: str,
        session_id: Optional[str] = None,
        target_resource_id: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        required_stable_polls: Optional[int] = None,
    ) -> AnswerResult:
        if not question or not question.strip():
            raise ValueError("question must not be empty")

        check = await self.readiness.check()
        if not check.is_ready:
            if check.requires_user_action:
                self.logger.info("Question blocked on user action", session_id=session_id)
                self.registry.mark_blocked(session_id)
                return AnswerResult.blocked_by(check.user_action_message or check.message, session_id)
            if not check.can_auto_remediate:
                raise AuthenticationError(check.message)
            await self._login()

        existing = self.registry.get(session_id) if session_id else None
        target = target_resource_id or (existing.target_resource_id if existing else None)
        if not target:
            raise ValueError("target_resource_id is required for a new session")

        async with self.registry.checkout(session_id, target) as session:
            session.state = SessionState.DISPATCHING
            log = self.logger.bind(session_id=session.id)
            prompt = self.prompt_enhancer.enhance(question) if self.prompt_enhancer else question
            try:
                answer = await self._ask_with_retry(
                    session,
                    prompt,
                    log,
                    timeout=timeout,
                    poll_interval=poll_interval,
                    required_stable_polls=required_stable_polls,
                )
            except Exception:
                session.state = SessionState.FAILED
                raise

            session.state = SessionState.IDLE
            if isinstance(answer, AcquisitionTimeout):
                log.warning("No stable answer before deadline")
                return AnswerResult.timed_out(session)

            session.touch(self.registry.now())
            session.message_count += 1
            if self.response_wrapper:
                answer = self.response_wrapper.wrap(answer)
            return AnswerResult.answered(answer, session)

    async def _login(self) -> None:
        async with self.registry.login_guard():
            # Another question may have finished the login while we waited.
            check = await self.readiness.check()
            if not check.is_ready:
                self.logger.info("Credential expired, starting interactive login")
                await self.credentials.start_interactive_login(self.login_timeout)
                check = await self.readiness.check()
        if not check.is_ready:
            raise AuthenticationError(
                "Login finished but the credential is still not valid",
                suggest_cleanup=True,
            )

    async def _ask_with_retry(self, session: Session, prompt: str, log, **acquire_options):
        if not await self._alive(session):
            log.info("Session tab is gone, reopening before dispatch")
            await self.registry.recreate_adapter(session)

        for attempt in (1, 2):
            try:
                return await self._ask_once(session, prompt, **acquire_options)
            except SessionDisconnectedError as exc:
                if attempt == 2:
                    raise
                log.warning("Session disconnected mid-question, retrying once", error=str(exc))
                session.state = SessionState.DISPATCHING
                await self.registry.recreate_adapter(session)

    async def _ask_once(self, session: Session, prompt: str, **acquire_options):
        adapter = session.adapter
        try:
            known: List[str] = await adapter.list_visible_answers()
            await adapter.submit_question(prompt)
        except BridgeError:
            raise
        except Exception as exc:
            if is_page_closed_error(exc):
                raise SessionDisconnectedError(str(exc)) from exc
            raise PageInteractionError(str(exc)) from exc

        session.state = SessionState.AWAITING
        return await self.acquirer.await_answer(adapter, prompt, known, **acquire_options)

    async def _alive(self, session: Session) -> bool:
        try:
            return await session.adapter.is_session_alive()
        except Exception:
            return False
