from dataclasses import dataclass
from typing import Optional

import structlog

from notebook_bridge.auth.credentials import BrowserCredentialGate, CredentialGate
from notebook_bridge.browser.identity import BrowserIdentity
from notebook_bridge.core.config import Settings
from notebook_bridge.services.dispatcher import QuestionDispatcher
from notebook_bridge.services.prompt_enhancer import PromptEnhancer
from notebook_bridge.services.readiness import ConnectionReadinessGate
from notebook_bridge.services.response_acquirer import ResponseAcquirer
from notebook_bridge.services.response_wrapper import ResponseWrapper
from notebook_bridge.services.session_registry import AdapterFactory, SessionRegistry


@dataclass
class Bridge:
    """The wired components behind the tool surface."""

    credentials: CredentialGate
    readiness: ConnectionReadinessGate
    registry: SessionRegistry
    acquirer: ResponseAcquirer
    dispatcher: QuestionDispatcher
    settings: Settings
    identity: Optional[BrowserIdentity] = None

    async def start(self) -> None:
        await self.registry.start()

    async def shutdown(self) -> None:
        await self.registry.shutdown()
        if self.identity is not None:
            await self.identity.shutdown()


def assemble_bridge(
    settings: Settings,
    *,
    credentials: CredentialGate,
    adapter_factory: AdapterFactory,
    identity: Optional[BrowserIdentity] = None,
    acquirer: Optional[ResponseAcquirer] = None,
) -> Bridge:
    """Wire the core components around the given collaborators."""
    readiness = ConnectionReadinessGate(credentials, logger=structlog.get_logger("notebook_bridge.readiness"))
    registry = SessionRegistry(
        adapter_factory,
        capacity=settings.MAX_SESSIONS,
        idle_timeout=settings.SESSION_IDLE_TIMEOUT,
        sweep_interval=settings.SESSION_SWEEP_INTERVAL,
        logger=structlog.get_logger("notebook_bridge.sessions"),
    )
    acquirer = acquirer or ResponseAcquirer(
        timeout=settings.ANSWER_TIMEOUT,
        poll_interval=settings.ANSWER_POLL_INTERVAL,
        required_stable_polls=settings.REQUIRED_STABLE_POLLS,
        logger=structlog.get_logger("notebook_bridge.acquirer"),
    )
    dispatcher = QuestionDispatcher(
        readiness=readiness,
        credentials=credentials,
        registry=registry,
        acquirer=acquirer,
        login_timeout=settings.LOGIN_TIMEOUT,
        prompt_enhancer=(
            PromptEnhancer(mode=settings.PROMPT_ENHANCE_MODE, language=settings.PROMPT_ENHANCE_LANGUAGE)
            if settings.PROMPT_ENHANCE_ENABLED
            else None
        ),
        response_wrapper=(
            ResponseWrapper(mode=settings.WRAPPER_MODE, language=settings.WRAPPER_LANGUAGE)
            if settings.WRAP_RESPONSES
            else None
        ),
        logger=structlog.get_logger("notebook_bridge.dispatcher"),
    )
    return Bridge(
        credentials=credentials,
        readiness=readiness,
        registry=registry,
        acquirer=acquirer,
        dispatcher=dispatcher,
        settings=settings,
        identity=identity,
    )


def build_bridge(settings: Settings) -> Bridge:
    """Build the production bridge backed by a Playwright browser identity."""
    identity = BrowserIdentity(
        profile_dir=settings.profile_path,
        state_path=settings.auth_state_path,
        headless=settings.HEADLESS,
        channel=settings.BROWSER_CHANNEL,
        page_load_timeout=settings.PAGE_LOAD_TIMEOUT,
        logger=structlog.get_logger("notebook_bridge.browser"),
    )
    credentials = BrowserCredentialGate(
        identity,
        notebook_url=settings.NOTEBOOK_URL,
        max_age_hours=settings.AUTH_STATE_MAX_AGE_HOURS,
        host_process_names=settings.HOST_PROCESS_NAMES,
        logger=structlog.get_logger("notebook_bridge.credentials"),
    )
    return assemble_bridge(
        settings,
        credentials=credentials,
        adapter_factory=identity.open_adapter,
        identity=identity,
    )
