"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the run lifecycle state machine shared by all tracers.
Runs are opened by `handle_*_start`, closed by `handle_*_end` or
`handle_*_error`, and root runs are handed to `persist_run` together with
their whole subtree once they close.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping, cast

import structlog

from ..config import DEFAULT_SESSION_NAME
from ..runtime import get_runtime_environment
from .errors import (
    InvalidParentKindError,
    NoSuchOpenRunError,
    ParentNotFoundError,
    RunAlreadyOpenError,
)
from .hooks import HookName, TracerHooks
from .ordering import resolve_execution_order
from .registry import RunRegistry
from .schemas import RunCreate, TracerSession
from .types import AgentAction, JsonObject, Run, RunType, json_dumps, now_ms

logger = structlog.get_logger(__name__)

Clock = Callable[[], int]
RuntimeProvider = Callable[[], dict[str, str]]


class BaseTracer(ABC):
    """
    Tracks open runs and assembles them into trees.

    Subclasses decide where sessions are stored (`persist_session`,
    `fetch_session`) and where finished root trees go (`persist_run`).
    Runs are stamped with the session active when they start; switching
    sessions with `new_session` or `load_session` affects later runs only.
    """

    name: str = "base_tracer"

    def __init__(
        self,
        *,
        session_name: str = DEFAULT_SESSION_NAME,
        hooks: TracerHooks | None = None,
        clock: Clock = now_ms,
        runtime_provider: RuntimeProvider = get_runtime_environment,
    ) -> None:
        self.session_name = session_name
        self.hooks = hooks or TracerHooks()
        self.registry = RunRegistry()
        self.session: TracerSession | None = None
        self._clock = clock
        self._runtime_provider = runtime_provider
        self._session_lock = asyncio.Lock()

    @abstractmethod
    async def persist_session(self, session_name: str) -> TracerSession:
        """Create the named session in the backing store, or return the existing one."""

    @abstractmethod
    async def fetch_session(self, session_name: str) -> TracerSession:
        """Look up an existing session by name; raise `SessionNotFoundError` if absent."""

    @abstractmethod
    async def persist_run(self, run: Run) -> None:
        """Store a closed root run together with its nested children."""

    # ---------- sessions ----------

    async def ensure_session(self) -> TracerSession:
        """Return the active session, creating `session_name` on first use."""
        if self.session is not None:
            return self.session
        async with self._session_lock:
            if self.session is None:
                await self.new_session(self.session_name)
            return cast(TracerSession, self.session)

    async def new_session(self, session_name: str | None = None) -> TracerSession:
        session = await self.persist_session(session_name or self.session_name)
        self.session = session
        logger.info("session ready", session_id=session.id, session_name=session.name)
        return session

    async def load_session(self, session_name: str) -> TracerSession:
        session = await self.fetch_session(session_name)
        self.session = session
        logger.info("session loaded", session_id=session.id, session_name=session_name)
        return session

    async def load_default_session(self) -> TracerSession:
        return await self.load_session(DEFAULT_SESSION_NAME)

    async def build_run_create(self, run: Run, example_id: str | None = None) -> RunCreate:
        """Convert a closed run tree to its wire model, stamped with runtime metadata."""
        session_id = run.session_id
        if session_id is None:
            session_id = (await self.ensure_session()).id
        return RunCreate.from_run(
            run,
            session_id=session_id,
            example_id=example_id,
            runtime=self._runtime_provider(),
        )

    # ---------- inspection ----------

    def get_run(self, run_id: str) -> Run | None:
        return self.registry.get(run_id)

    def open_run_ids(self) -> list[str]:
        return self.registry.ids()

    # ---------- llm ----------

    async def handle_llm_start(
        self,
        serialized: Mapping[str, Any],
        prompts: list[str],
        run_id: str,
        parent_run_id: str | None = None,
        *,
        extra: JsonObject | None = None,
    ) -> Run:
        return await self._start_run(
            "llm",
            serialized,
            run_id,
            parent_run_id,
            extra=extra,
            prompts=list(prompts),
        )

    async def handle_llm_end(self, response: JsonObject, run_id: str) -> None:
        await self._end_run("llm", run_id, response=response)

    async def handle_llm_error(self, error: BaseException | str, run_id: str) -> None:
        await self._fail_run("llm", run_id, error)

    # ---------- chain ----------

    async def handle_chain_start(
        self,
        serialized: Mapping[str, Any],
        inputs: JsonObject,
        run_id: str,
        parent_run_id: str | None = None,
        *,
        extra: JsonObject | None = None,
    ) -> Run:
        return await self._start_run(
            "chain",
            serialized,
            run_id,
            parent_run_id,
            extra=extra,
            inputs=dict(inputs),
        )

    async def handle_chain_end(self, outputs: JsonObject, run_id: str) -> None:
        await self._end_run("chain", run_id, outputs=outputs)

    async def handle_chain_error(self, error: BaseException | str, run_id: str) -> None:
        await self._fail_run("chain", run_id, error)

    # ---------- tool ----------

    async def handle_tool_start(
        self,
        serialized: Mapping[str, Any],
        tool_input: str,
        run_id: str,
        parent_run_id: str | None = None,
        *,
        extra: JsonObject | None = None,
    ) -> Run:
        return await self._start_run(
            "tool",
            serialized,
            run_id,
            parent_run_id,
            extra=extra,
            tool_input=tool_input,
            action=json_dumps(dict(serialized)),
        )

    async def handle_tool_end(self, output: str, run_id: str) -> None:
        await self._end_run("tool", run_id, output=output)

    async def handle_tool_error(self, error: BaseException | str, run_id: str) -> None:
        await self._fail_run("tool", run_id, error)

    # ---------- agent ----------

    async def handle_agent_action(self, action: AgentAction, run_id: str) -> None:
        """
        Record an intermediate agent action on an open chain run.

        Unknown run ids and non-chain runs are ignored: an action is an
        annotation and must not break the traced pipeline.
        """
        run = self.registry.get(run_id)
        if run is None or run.run_type != "chain":
            logger.debug("agent action ignored", run_id=run_id, tool=action.tool)
            return
        if run.actions is None:
            run.actions = []
        run.actions.append(action)
        await self.hooks.fire("on_agent_action", run)

    # ---------- internals ----------

    async def _start_run(
        self,
        run_type: RunType,
        serialized: Mapping[str, Any],
        run_id: str,
        parent_run_id: str | None,
        *,
        extra: JsonObject | None,
        **payload: Any,
    ) -> Run:
        session = await self.ensure_session()

        # Parent lookup, child append and registry insert form one unit.
        with self.registry.locked() as registry:
            if run_id in registry:
                raise RunAlreadyOpenError(f"Run {run_id} is already open")
            execution_order = resolve_execution_order(registry, parent_run_id)
            run = Run(
                id=run_id,
                run_type=run_type,
                serialized=dict(serialized),
                start_time=self._clock(),
                execution_order=execution_order,
                child_execution_order=execution_order,
                session_id=session.id,
                parent_id=parent_run_id,
                extra=dict(extra or {}),
                **payload,
            )
            if parent_run_id is not None:
                parent = cast(Run, registry.get(parent_run_id))
                if not parent.can_have_children:
                    raise InvalidParentKindError(parent_run_id, parent.run_type)
                parent.add_child(run)
                # Claim the slot on every open ancestor now, so runs started
                # before this one closes get later orders.
                ancestor: Run | None = parent
                while ancestor is not None:
                    ancestor.child_execution_order = max(ancestor.child_execution_order, execution_order)
                    ancestor = registry.get(ancestor.parent_id) if ancestor.parent_id else None
            registry.put(run_id, run)

        logger.debug(
            "run started",
            run_id=run_id,
            run_type=run_type,
            parent_run_id=parent_run_id,
            execution_order=execution_order,
        )
        await self.hooks.fire(cast(HookName, f"on_{run_type}_start"), run)
        return run

    def _get_open_run(self, run_type: RunType, run_id: str) -> Run:
        run = self.registry.get(run_id)
        if run is None or run.run_type != run_type:
            raise NoSuchOpenRunError(run_id, run_type)
        return run

    async def _end_run(self, run_type: RunType, run_id: str, **payload: Any) -> None:
        run = self._get_open_run(run_type, run_id)
        run.end_time = self._clock()
        for key, value in payload.items():
            setattr(run, key, value)
        logger.debug("run ended", run_id=run_id, run_type=run_type)
        try:
            await self.hooks.fire(cast(HookName, f"on_{run_type}_end"), run)
        finally:
            await self._close_run(run)

    async def _fail_run(self, run_type: RunType, run_id: str, error: BaseException | str) -> None:
        run = self._get_open_run(run_type, run_id)
        run.end_time = self._clock()
        run.error = _error_message(error)
        logger.debug("run failed", run_id=run_id, run_type=run_type, error=run.error)
        try:
            await self.hooks.fire(cast(HookName, f"on_{run_type}_error"), run)
        finally:
            await self._close_run(run)

    async def _close_run(self, run: Run) -> None:
        open_descendants = run.iter_open_descendants()
        if open_descendants:
            # Still-open descendants stay registered and can be closed later;
            # they are already part of this run's tree.
            logger.warning(
                "run closed with open descendants",
                run_id=run.id,
                open_run_ids=[child.id for child in open_descendants],
            )

        try:
            if run.is_root:
                await self.persist_run(run)
                return
            with self.registry.locked() as registry:
                parent = registry.get(run.parent_id)
                if parent is None:
                    raise ParentNotFoundError(run.parent_id)
                parent.child_execution_order = max(
                    parent.child_execution_order,
                    run.child_execution_order,
                )
        finally:
            self.registry.remove(run.id)


def _error_message(error: BaseException | str) -> str:
    if isinstance(error, str):
        return error
    return str(error) or type(error).__name__
