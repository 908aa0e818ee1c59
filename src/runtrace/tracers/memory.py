"""Process-local tracer for development and tests."""

from __future__ import annotations

import itertools

from ..config import DEFAULT_SESSION_NAME
from ..runtime import get_runtime_environment
from .base import BaseTracer, Clock, RuntimeProvider
from .errors import SessionNotFoundError
from .hooks import TracerHooks
from .schemas import RunCreate, TracerSession
from .types import Run, now_ms


class InMemoryTracer(BaseTracer):
    """Keeps every closed root tree in memory, with sessions held locally by name."""

    name = "in_memory_tracer"

    def __init__(
        self,
        *,
        session_name: str = DEFAULT_SESSION_NAME,
        example_id: str | None = None,
        hooks: TracerHooks | None = None,
        clock: Clock = now_ms,
        runtime_provider: RuntimeProvider = get_runtime_environment,
    ) -> None:
        super().__init__(
            session_name=session_name,
            hooks=hooks,
            clock=clock,
            runtime_provider=runtime_provider,
        )
        self.example_id = example_id
        self._sessions: dict[str, TracerSession] = {}
        self._session_ids = itertools.count(1)
        self._roots: list[Run] = []
        self._persisted: list[RunCreate] = []

    async def persist_session(self, session_name: str) -> TracerSession:
        session = self._sessions.get(session_name)
        if session is None:
            session = TracerSession(id=next(self._session_ids), name=session_name, start_time=self._clock())
            self._sessions[session_name] = session
        return session

    async def fetch_session(self, session_name: str) -> TracerSession:
        session = self._sessions.get(session_name)
        if session is None:
            raise SessionNotFoundError(session_name)
        return session

    async def persist_run(self, run: Run) -> None:
        self._roots.append(run)
        self._persisted.append(await self.build_run_create(run, self.example_id))

    def sessions(self) -> list[TracerSession]:
        return list(self._sessions.values())

    def roots(self) -> list[Run]:
        return list(self._roots)

    def persisted(self) -> list[RunCreate]:
        return list(self._persisted)

    def clear(self) -> None:
        self._roots.clear()
        self._persisted.clear()
