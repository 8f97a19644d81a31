import asyncio

import pytest

from conftest import AdapterFactory, FakeAdapter, FakeClock, FakeCredentialGate
from notebook_bridge.core.errors import AuthenticationError, PageInteractionError, SessionDisconnectedError
from notebook_bridge.services.dispatcher import ANSWERED, BLOCKED, TIMED_OUT, QuestionDispatcher
from notebook_bridge.services.prompt_enhancer import PromptEnhancer
from notebook_bridge.services.readiness import ConnectionReadinessGate
from notebook_bridge.services.response_acquirer import ResponseAcquirer
from notebook_bridge.services.response_wrapper import ResponseWrapper
from notebook_bridge.services.session_registry import SessionRegistry, SessionState

NOTEBOOK = "https://notebooklm.google.com/notebook/abc"


def _dispatcher(credentials, factory, **options):
    clock = FakeClock()
    registry = SessionRegistry(factory, capacity=3)
    acquirer = ResponseAcquirer(timeout=5.0, poll_interval=1.0, clock=clock, sleep=clock.sleep)
    return QuestionDispatcher(
        readiness=ConnectionReadinessGate(credentials),
        credentials=credentials,
        registry=registry,
        acquirer=acquirer,
        login_timeout=30.0,
        **options,
    )


@pytest.mark.asyncio
async def test_answers_a_question_on_a_new_session():
    adapter = FakeAdapter([[], ["Forty-two."]])
    factory = AdapterFactory([adapter])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)

    result = await dispatcher.ask("What is the answer?", "s1", NOTEBOOK)

    assert result.status == ANSWERED
    assert result.answer == "Forty-two."
    assert result.session_id == "s1"
    assert adapter.submitted == ["What is the answer?"]
    session = dispatcher.registry.get("s1")
    assert session.message_count == 1
    assert session.state == SessionState.IDLE
    assert result.to_dict() == {
        "status": "answered",
        "session_id": "s1",
        "answer": "Forty-two.",
        "target_resource_id": NOTEBOOK,
    }


@pytest.mark.asyncio
async def test_follow_up_ignores_the_previous_answer():
    adapter = FakeAdapter([
        [],
        ["First."],
        ["First."],
        ["First."],
        ["First."],
        ["First.", "Second."],
    ])
    dispatcher = _dispatcher(FakeCredentialGate(), AdapterFactory([adapter]))

    first = await dispatcher.ask("one?", "s1", NOTEBOOK)
    second = await dispatcher.ask("two?", "s1")

    assert first.answer == "First."
    assert second.answer == "Second."
    assert dispatcher.registry.get("s1").message_count == 2


@pytest.mark.asyncio
async def test_blocked_when_host_browser_holds_the_profile():
    credentials = FakeCredentialGate(valid=False, host_running=True)
    factory = AdapterFactory()
    dispatcher = _dispatcher(credentials, factory)

    result = await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert result.status == BLOCKED
    assert "Close Chrome" in result.blocked
    assert factory.created == []
    assert credentials.logins == []
    assert result.to_dict()["blocked"] == result.blocked


@pytest.mark.asyncio
async def test_runs_login_then_proceeds_when_host_is_closed():
    credentials = FakeCredentialGate(valid=False, host_running=False)
    dispatcher = _dispatcher(credentials, AdapterFactory([FakeAdapter([[], ["Yes."]])]))

    result = await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert credentials.logins == [30.0]
    assert result.status == ANSWERED


@pytest.mark.asyncio
async def test_failed_login_raises_authentication_error():
    credentials = FakeCredentialGate(valid=False, host_running=False, login_succeeds=False)
    factory = AdapterFactory()
    dispatcher = _dispatcher(credentials, factory)

    with pytest.raises(AuthenticationError) as exc_info:
        await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert exc_info.value.suggest_cleanup
    assert factory.created == []


@pytest.mark.asyncio
async def test_timeout_is_a_normal_outcome():
    dispatcher = _dispatcher(FakeCredentialGate(), AdapterFactory([FakeAdapter([[]])]))

    result = await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert result.status == TIMED_OUT
    assert result.to_dict()["timed_out"] is True
    assert dispatcher.registry.get("s1").message_count == 0


@pytest.mark.asyncio
async def test_disconnect_mid_question_retries_once_on_a_new_tab():
    broken = FakeAdapter([[], RuntimeError("Target page, context or browser has been closed")])
    healthy = FakeAdapter([[], ["Recovered."]])
    factory = AdapterFactory([broken, healthy])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)

    result = await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert result.answer == "Recovered."
    assert broken.closed
    assert healthy.submitted == ["q?"]


@pytest.mark.asyncio
async def test_second_disconnect_is_raised():
    factory = AdapterFactory([
        FakeAdapter([[]], submit_error=SessionDisconnectedError("gone")),
        FakeAdapter([[]], submit_error=SessionDisconnectedError("gone again")),
    ])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)

    with pytest.raises(SessionDisconnectedError):
        await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert dispatcher.registry.get("s1").state == SessionState.FAILED


@pytest.mark.asyncio
async def test_dead_tab_is_reopened_before_dispatch():
    dead = FakeAdapter(alive=False)
    factory = AdapterFactory([dead, FakeAdapter([[], ["Fine."]])])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)

    result = await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert result.answer == "Fine."
    assert dead.submitted == []


@pytest.mark.asyncio
async def test_new_session_needs_a_target():
    dispatcher = _dispatcher(FakeCredentialGate(), AdapterFactory())

    with pytest.raises(ValueError):
        await dispatcher.ask("q?", "unknown")


@pytest.mark.asyncio
async def test_empty_question_is_rejected():
    dispatcher = _dispatcher(FakeCredentialGate(), AdapterFactory())

    with pytest.raises(ValueError):
        await dispatcher.ask("   ", "s1", NOTEBOOK)


@pytest.mark.asyncio
async def test_prompt_enhancer_and_wrapper_are_applied():
    adapter = FakeAdapter([[], ["Source says so."]])
    dispatcher = _dispatcher(
        FakeCredentialGate(),
        AdapterFactory([adapter]),
        prompt_enhancer=PromptEnhancer(mode="strict"),
        response_wrapper=ResponseWrapper(mode="balanced"),
    )

    result = await dispatcher.ask("Compare A and B", "s1", NOTEBOOK)

    assert adapter.submitted[0].startswith("RESPONSE INSTRUCTIONS")
    assert "TASK: Compare A and B" in adapter.submitted[0]
    assert result.answer.startswith("Source says so.")
    assert "grounded on the uploaded documents" in result.answer


class SlowLoginGate(FakeCredentialGate):
    """Login that yields to the loop a few times before the credential turns valid."""

    async def start_interactive_login(self, timeout: float) -> None:
        self.logins.append(timeout)
        for _ in range(3):
            await asyncio.sleep(0)
        self.valid = True


@pytest.mark.asyncio
async def test_concurrent_questions_share_one_login():
    credentials = SlowLoginGate(valid=False, host_running=False)
    factory = AdapterFactory([FakeAdapter([[], ["One."]]), FakeAdapter([[], ["Two."]])])
    dispatcher = _dispatcher(credentials, factory)

    first, second = await asyncio.gather(
        dispatcher.ask("q1?", "s1", NOTEBOOK),
        dispatcher.ask("q2?", "s2", NOTEBOOK),
    )

    assert credentials.logins == [30.0]
    assert {first.answer, second.answer} == {"One.", "Two."}


class ClosedMidQuestion(FakeAdapter):
    """Page whose session is closed by another caller while an answer is awaited."""

    def __init__(self, session_id):
        super().__init__([[]])
        self.session_id = session_id
        self.registry = None

    async def list_visible_answers(self):
        self.list_calls += 1
        if self.list_calls == 1:
            return []
        await self.registry.close(self.session_id)
        raise RuntimeError("Target page, context or browser has been closed")


@pytest.mark.asyncio
async def test_close_during_question_does_not_reopen_a_tab():
    adapter = ClosedMidQuestion("s1")
    factory = AdapterFactory([adapter])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)
    adapter.registry = dispatcher.registry

    with pytest.raises(SessionDisconnectedError):
        await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert len(factory.created) == 1
    assert all(created.closed for created in factory.created)
    assert len(dispatcher.registry) == 0


@pytest.mark.asyncio
async def test_page_failure_surfaces_as_page_error():
    factory = AdapterFactory([FakeAdapter([[]], submit_error=RuntimeError("Chat input not found"))])
    dispatcher = _dispatcher(FakeCredentialGate(), factory)

    with pytest.raises(PageInteractionError) as exc_info:
        await dispatcher.ask("q?", "s1", NOTEBOOK)

    assert exc_info.value.code == "page_error"
    assert dispatcher.registry.get("s1").state == SessionState.FAILED
