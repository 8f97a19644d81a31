"""
Session registry.

Owns every live conversation and the browser tab behind it. Creation is
serialised per session id, capacity is enforced by evicting the
least-recently-active idle session, and a background sweep closes sessions
that have been idle for too long.
"""
from __future__ import annotations

import asyncio
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

import structlog

from notebook_bridge.browser.adapter import PageSignalAdapter
from notebook_bridge.core.errors import (
    CapacityExceededError,
    SessionDisconnectedError,
    SessionNotFoundError,
    SessionTargetMismatchError,
)

AdapterFactory = Callable[[str], Awaitable[PageSignalAdapter]]
Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _consume_exception(future: asyncio.Future) -> None:
    # Creation errors are re-raised to the caller; mark them retrieved.
    if not future.cancelled():
        future.exception()


class SessionState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    BLOCKED = "blocked"
    FAILED = "failed"


@dataclass(eq=False)
class Session:
    id: str
    target_resource_id: str
    adapter: PageSignalAdapter = field(repr=False)
    created_at: datetime
    last_activity_at: datetime
    state: SessionState = SessionState.IDLE
    message_count: int = 0
    # Questions holding or waiting for this session.
    pending: int = 0
    # Set once released; a closed session never opens another tab.
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @property
    def busy(self) -> bool:
        return self.pending > 0 or self.lock.locked()

    def touch(self, now: datetime) -> None:
        self.last_activity_at = now

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or _utcnow()
        return {
            "id": self.id,
            "target_resource_id": self.target_resource_id,
            "state": self.state.value,
            "message_count": self.message_count,
            "busy": self.busy,
            "created_at": self.created_at.isoformat(),
            "last_activity_at": self.last_activity_at.isoformat(),
            "age_seconds": round((now - self.created_at).total_seconds(), 1),
            "idle_seconds": round((now - self.last_activity_at).total_seconds(), 1),
        }


class SessionRegistry:
    """Get-or-create registry of sessions bound to tabs of one browser identity."""

    def __init__(
        self,
        adapter_factory: AdapterFactory,
        *,
        capacity: int = 10,
        idle_timeout: float = 900.0,
        sweep_interval: float = 60.0,
        clock: Optional[Clock] = None,
        logger=None,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._adapter_factory = adapter_factory
        self._capacity = capacity
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._clock = clock or _utcnow
        self.logger = logger or structlog.get_logger(__name__)

        self._sessions: Dict[str, Session] = {}
        self._creating: Dict[str, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        # Held while a tab is opened or an interactive login owns the profile.
        self._identity_lock = asyncio.Lock()
        self._sweep_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()

    @property
    def capacity(self) -> int:
        return self._capacity

    def now(self) -> datetime:
        return self._clock()

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def list(self) -> List[Session]:
        return sorted(self._sessions.values(), key=lambda s: s.created_at)

    def __len__(self) -> int:
        return len(self._sessions)

    async def resolve(self, session_id: Optional[str], target_resource_id: str) -> Session:
        """Return the open session for session_id, creating it if needed."""
        return await self._resolve(session_id, target_resource_id, reserve=False)

    @asynccontextmanager
    async def checkout(self, session_id: Optional[str], target_resource_id: str) -> AsyncIterator[Session]:
        """Resolve a session and hold it exclusively for one question."""
        session = await self._resolve(session_id, target_resource_id, reserve=True)
        try:
            async with session.lock:
                yield session
        finally:
            session.pending -= 1

    async def close(self, session_id: str) -> bool:
        """Close a session and release its tab. Unknown ids are a no-op."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await self._release(session, reason="closed")
        return True

    async def reset(self, session_id: str) -> Session:
        """Replace a session with a fresh tab on the same notebook."""
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_id}' not found")
        target = session.target_resource_id
        async with session.lock:
            async with self._lock:
                if self._sessions.get(session_id) is session:
                    del self._sessions[session_id]
            await self._release(session, reason="reset")
        return await self.resolve(session_id, target)

    async def close_all(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            await self._release(session, reason="shutdown")

    async def evict_idle(self, threshold: Optional[float] = None) -> List[str]:
        """Close sessions idle for longer than threshold seconds, sparing busy ones."""
        threshold = self.idle_timeout if threshold is None else threshold
        cutoff = self.now() - timedelta(seconds=threshold)
        async with self._lock:
            stale = [
                session
                for session in self._sessions.values()
                if not session.busy and session.last_activity_at < cutoff
            ]
            for session in stale:
                del self._sessions[session.id]
        for session in stale:
            await self._release(session, reason="idle")
        return [session.id for session in stale]

    async def recreate_adapter(self, session: Session) -> None:
        """Swap a session's dead tab for a new one on the same notebook."""
        if session.closed:
            raise SessionDisconnectedError(f"Session '{session.id}' was closed")
        await self._close_adapter(session)
        async with self._identity_lock:
            adapter = await self._adapter_factory(session.target_resource_id)
        if session.closed:
            # Closed while the tab was opening.
            try:
                await adapter.close()
            except Exception as exc:
                self.logger.warning("Error closing session tab", session_id=session.id, error=str(exc))
            raise SessionDisconnectedError(f"Session '{session.id}' was closed")
        session.adapter = adapter
        self.logger.info("Recreated session tab", session_id=session.id)

    @asynccontextmanager
    async def login_guard(self) -> AsyncIterator[None]:
        """Hold the browser identity so no tab opens while a login runs."""
        async with self._identity_lock:
            yield

    def mark_blocked(self, session_id: Optional[str]) -> None:
        session = self._sessions.get(session_id) if session_id else None
        if session is not None and not session.busy:
            session.state = SessionState.BLOCKED

    async def start(self) -> None:
        """Start the background idle sweep."""
        if self._sweep_task and not self._sweep_task.done():
            return
        self.logger.info("Starting session idle sweep", interval=self.sweep_interval, idle_timeout=self.idle_timeout)
        self._stop_event.clear()
        self._sweep_task = asyncio.create_task(self._sweep_loop(), name="session-idle-sweep")

    async def shutdown(self) -> None:
        """Stop the sweep and close every session."""
        if self._sweep_task:
            self.logger.info("Stopping session idle sweep")
            self._stop_event.set()
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            finally:
                self._sweep_task = None
        await self.close_all()

    async def _sweep_loop(self) -> None:
        try:
            while not self._stop_event.is_set():
                await asyncio.sleep(self.sweep_interval)
                try:
                    evicted = await self.evict_idle()
                except Exception as exc:
                    self.logger.error("Idle sweep failed", error=str(exc), exc_info=True)
                    continue
                if evicted:
                    self.logger.info("Evicted idle sessions", session_ids=evicted)
        except asyncio.CancelledError:
            self.logger.info("Session idle sweep cancelled")
            raise

    async def _resolve(self, session_id: Optional[str], target_resource_id: str, *, reserve: bool) -> Session:
        session_id = session_id or uuid.uuid4().hex
        while True:
            evicted: Optional[Session] = None
            async with self._lock:
                session = self._sessions.get(session_id)
                if session is not None:
                    self._check_target(session, target_resource_id)
                    if reserve:
                        session.pending += 1
                    return session

                pending = self._creating.get(session_id)
                creator = pending is None
                if creator:
                    if len(self._sessions) + len(self._creating) >= self._capacity:
                        evicted = self._pop_eviction_candidate()
                        if evicted is None:
                            raise CapacityExceededError(
                                f"All {self._capacity} sessions are busy; retry later"
                            )
                    pending = asyncio.get_running_loop().create_future()
                    pending.add_done_callback(_consume_exception)
                    self._creating[session_id] = pending

            if creator:
                return await self._create(session_id, target_resource_id, pending, evicted, reserve)

            # Another caller is creating this id; wait for it, then look again.
            await asyncio.wait({pending})
            if not pending.cancelled() and pending.exception() is not None:
                raise pending.exception()

    async def _create(
        self,
        session_id: str,
        target_resource_id: str,
        pending: asyncio.Future,
        evicted: Optional[Session],
        reserve: bool,
    ) -> Session:
        try:
            if evicted is not None:
                await self._release(evicted, reason="capacity")
            async with self._identity_lock:
                adapter = await self._adapter_factory(target_resource_id)
        except asyncio.CancelledError:
            async with self._lock:
                self._creating.pop(session_id, None)
            pending.cancel()
            raise
        except Exception as exc:
            async with self._lock:
                self._creating.pop(session_id, None)
            pending.set_exception(exc)
            raise

        now = self.now()
        session = Session(
            id=session_id,
            target_resource_id=target_resource_id,
            adapter=adapter,
            created_at=now,
            last_activity_at=now,
        )
        async with self._lock:
            self._creating.pop(session_id, None)
            self._sessions[session_id] = session
            if reserve:
                session.pending += 1
        pending.set_result(session)
        self.logger.info(
            "Session created",
            session_id=session_id,
            target=target_resource_id,
            active=len(self._sessions),
            capacity=self._capacity,
        )
        return session

    def _check_target(self, session: Session, target_resource_id: Optional[str]) -> None:
        if target_resource_id and target_resource_id != session.target_resource_id:
            raise SessionTargetMismatchError(
                f"Session '{session.id}' is bound to {session.target_resource_id}; "
                "close or reset it to query another notebook"
            )

    def _pop_eviction_candidate(self) -> Optional[Session]:
        idle = [session for session in self._sessions.values() if not session.busy]
        if not idle:
            return None
        oldest = min(idle, key=lambda s: s.last_activity_at)
        del self._sessions[oldest.id]
        return oldest

    async def _release(self, session: Session, *, reason: str) -> None:
        session.closed = True
        await self._close_adapter(session)
        self.logger.info("Session closed", session_id=session.id, reason=reason, active=len(self._sessions))

    async def _close_adapter(self, session: Session) -> None:
        try:
            await session.adapter.close()
        except Exception as exc:
            self.logger.warning("Error closing session tab", session_id=session.id, error=str(exc))
