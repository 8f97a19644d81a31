import os
import sys
import tempfile
from typing import AsyncGenerator, Generator, Iterable, List, Optional, Sequence

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

# Add the backend directory to the Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

_TEST_DIR = tempfile.mkdtemp(prefix="notebook-bridge-tests-")

# Override settings for testing
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ["DATA_DIR"] = _TEST_DIR
os.environ["SERVICE_TOKEN"] = ""
os.environ["NOTEBOOK_URL"] = "https://notebooklm.google.com/notebook/default"

from notebook_bridge.browser.adapter import PageSignalAdapter
from notebook_bridge.auth.credentials import CredentialGate
from notebook_bridge.core import bridge_provider
from notebook_bridge.core.config import settings
from notebook_bridge.core.database import Base, get_db
from notebook_bridge.models import Notebook  # noqa: F401  (registers the table)
from notebook_bridge.services.bridge import Bridge, assemble_bridge
from notebook_bridge.services.response_acquirer import ResponseAcquirer
from notebook_bridge.main import app

# Create test engine
engine = create_async_engine(str(settings.DATABASE_URL), poolclass=NullPool)
TestingSessionLocal = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Override the database dependency
async def override_get_db():
    async with TestingSessionLocal() as session:
        yield session


app.dependency_overrides[get_db] = override_get_db


class FakeClock:
    """Monotonic clock whose time only moves when the acquirer sleeps."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeAdapter(PageSignalAdapter):
    """
    Scripted page.

    Each list_visible_answers call returns the next frame; the last frame
    repeats once the script runs out. A frame that is an exception is raised.
    """

    def __init__(
        self,
        frames: Sequence = ((),),
        *,
        busy: Iterable[bool] = (),
        errors: Iterable[str] = (),
        alive: bool = True,
        submit_error: Optional[Exception] = None,
        target: Optional[str] = None,
    ):
        self.frames = list(frames)
        self.busy = list(busy)
        self.errors = list(errors)
        self.alive = alive
        self.submit_error = submit_error
        self.target = target
        self.submitted: List[str] = []
        self.list_calls = 0
        self.closed = False

    async def is_busy(self) -> bool:
        return self.busy.pop(0) if self.busy else False

    async def list_visible_answers(self) -> List[str]:
        self.list_calls += 1
        frame = self.frames.pop(0) if len(self.frames) > 1 else self.frames[0]
        if isinstance(frame, Exception):
            raise frame
        return list(frame)

    async def submit_question(self, text: str) -> None:
        if self.submit_error is not None:
            raise self.submit_error
        self.submitted.append(text)

    async def is_session_alive(self) -> bool:
        return self.alive and not self.closed

    async def read_error_messages(self) -> List[str]:
        return list(self.errors)

    async def close(self) -> None:
        self.closed = True


class FakeCredentialGate(CredentialGate):
    def __init__(
        self,
        *,
        valid: bool = True,
        host_running: bool = False,
        login_succeeds: bool = True,
        probe_error: Optional[Exception] = None,
    ):
        self.valid = valid
        self.host_running = host_running
        self.login_succeeds = login_succeeds
        self.probe_error = probe_error
        self.logins: List[float] = []
        self.probes = 0

    async def has_valid_credential(self) -> bool:
        return self.valid

    async def is_host_process_running(self) -> bool:
        self.probes += 1
        if self.probe_error is not None:
            raise self.probe_error
        return self.host_running

    async def start_interactive_login(self, timeout: float) -> None:
        self.logins.append(timeout)
        if self.login_succeeds:
            self.valid = True


class AdapterFactory:
    """Hands out queued FakeAdapters, or blank ones once the queue is empty. Raises error when set."""

    def __init__(self, adapters: Iterable[FakeAdapter] = ()):
        self.queue = list(adapters)
        self.created: List[FakeAdapter] = []
        self.error: Optional[Exception] = None

    async def __call__(self, target: str) -> FakeAdapter:
        if self.error is not None:
            raise self.error
        adapter = self.queue.pop(0) if self.queue else FakeAdapter()
        adapter.target = target
        self.created.append(adapter)
        return adapter


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def credentials() -> FakeCredentialGate:
    return FakeCredentialGate()


@pytest.fixture
def adapter_factory() -> AdapterFactory:
    return AdapterFactory()


@pytest.fixture
def fake_bridge(credentials, adapter_factory, fake_clock) -> Bridge:
    acquirer = ResponseAcquirer(
        timeout=10.0,
        poll_interval=1.0,
        required_stable_polls=3,
        clock=fake_clock,
        sleep=fake_clock.sleep,
    )
    return assemble_bridge(
        settings,
        credentials=credentials,
        adapter_factory=adapter_factory,
        acquirer=acquirer,
    )


@pytest_asyncio.fixture(autouse=True)
async def setup_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
def client(fake_bridge) -> Generator:
    async def _fake_get_bridge():
        return fake_bridge

    # The lifespan keeps an already-installed bridge instead of launching a browser.
    bridge_provider.bridge = fake_bridge
    app.dependency_overrides[bridge_provider.get_bridge] = _fake_get_bridge
    try:
        with TestClient(app, base_url="http://test") as c:
            c.headers["host"] = "test"
            yield c
    finally:
        app.dependency_overrides.pop(bridge_provider.get_bridge, None)
        bridge_provider.bridge = None
