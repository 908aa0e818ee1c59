"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Optional observer callbacks fired on run lifecycle transitions.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, fields
from typing import Any, Awaitable, Callable, Literal, cast

from .types import Run

RunHook = Callable[[Run], None | Awaitable[None]]

HookName = Literal[
    "on_llm_start",
    "on_llm_end",
    "on_llm_error",
    "on_chain_start",
    "on_chain_end",
    "on_chain_error",
    "on_tool_start",
    "on_tool_end",
    "on_tool_error",
    "on_agent_action",
]


@dataclass(slots=True)
class TracerHooks:
    """
    Table of optional lifecycle callbacks.

    Each slot may hold a sync or async callable receiving the run record.
    Hooks run after the tracer has updated its state and are awaited before
    the triggering call returns. A failing hook fails that call.
    """

    on_llm_start: RunHook | None = None
    on_llm_end: RunHook | None = None
    on_llm_error: RunHook | None = None
    on_chain_start: RunHook | None = None
    on_chain_end: RunHook | None = None
    on_chain_error: RunHook | None = None
    on_tool_start: RunHook | None = None
    on_tool_end: RunHook | None = None
    on_tool_error: RunHook | None = None
    on_agent_action: RunHook | None = None

    async def fire(self, name: HookName, run: Run) -> None:
        hook = cast(RunHook | None, getattr(self, name))
        if hook is None:
            return
        result = hook(run)
        if inspect.isawaitable(result):
            await cast(Awaitable[Any], result)

    def merge(self, other: "TracerHooks") -> "TracerHooks":
        """Return hooks calling this table's slot first, then `other`'s."""
        merged = TracerHooks()
        for slot in fields(TracerHooks):
            first = getattr(self, slot.name)
            second = getattr(other, slot.name)
            if first is None or second is None:
                setattr(merged, slot.name, first or second)
                continue
            setattr(merged, slot.name, _chain(first, second))
        return merged


def _chain(first: RunHook, second: RunHook) -> RunHook:
    async def _both(run: Run) -> None:
        for hook in (first, second):
            result = hook(run)
            if inspect.isawaitable(result):
                await cast(Awaitable[Any], result)

    return _both
