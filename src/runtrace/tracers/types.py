"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines the run record and helpers shared by every tracer.
"""

from __future__ import annotations

import json
import time
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, TypeAlias, cast

RunType = Literal["llm", "chain", "tool"]
JsonPrimitive: TypeAlias = str | int | float | bool | None
JsonValue: TypeAlias = JsonPrimitive | list["JsonValue"] | dict[str, "JsonValue"]
JsonObject: TypeAlias = dict[str, JsonValue]

PARENT_RUN_TYPES: tuple[RunType, ...] = ("chain", "tool")


@dataclass(frozen=True, slots=True)
class AgentAction:
    """One intermediate decision recorded by an agent-style chain."""

    tool: str
    tool_input: JsonValue
    log: str = ""


@dataclass(slots=True)
class Run:
    """
    One traced operation.

    `run_type` is the discriminant: `llm` runs carry `prompts`/`response`,
    `chain` runs carry `inputs`/`outputs` (and `actions` for agents), `tool`
    runs carry `tool_input`/`output`. Only chain and tool runs own children.
    """

    id: str
    run_type: RunType
    serialized: JsonObject
    start_time: int
    execution_order: int
    child_execution_order: int
    session_id: str | int | None = None
    parent_id: str | None = None
    end_time: int | None = None
    error: str | None = None
    extra: JsonObject = field(default_factory=dict)

    # llm
    prompts: list[str] = field(default_factory=list)
    response: JsonObject | None = None

    # chain
    inputs: JsonObject = field(default_factory=dict)
    outputs: JsonObject | None = None
    actions: list[AgentAction] | None = None

    # tool
    tool_input: str = ""
    output: str | None = None
    action: str = ""

    child_llm_runs: list["Run"] = field(default_factory=list)
    child_chain_runs: list["Run"] = field(default_factory=list)
    child_tool_runs: list["Run"] = field(default_factory=list)

    @property
    def name(self) -> str:
        return str(self.serialized.get("name", ""))

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    @property
    def can_have_children(self) -> bool:
        return self.run_type in PARENT_RUN_TYPES

    @property
    def child_runs(self) -> list["Run"]:
        """All direct children, ordered by execution order."""
        children = [*self.child_llm_runs, *self.child_chain_runs, *self.child_tool_runs]
        return sorted(children, key=lambda child: child.execution_order)

    def add_child(self, child: "Run") -> None:
        if child.run_type == "llm":
            self.child_llm_runs.append(child)
        elif child.run_type == "chain":
            self.child_chain_runs.append(child)
        elif child.run_type == "tool":
            self.child_tool_runs.append(child)
        else:
            raise ValueError(f"Invalid run type: {child.run_type}")

    def iter_open_descendants(self) -> list["Run"]:
        found: list[Run] = []
        for child in self.child_runs:
            if child.is_open:
                found.append(child)
            found.extend(child.iter_open_descendants())
        return found

    def inputs_payload(self) -> JsonObject:
        if self.run_type == "llm":
            return {"prompts": list(self.prompts)}
        if self.run_type == "tool":
            return {"input": self.tool_input}
        return dict(self.inputs)

    def outputs_payload(self) -> JsonObject | None:
        if self.run_type == "llm":
            return self.response
        if self.run_type == "tool":
            return None if self.output is None else {"output": self.output}
        outputs = None if self.outputs is None else dict(self.outputs)
        if self.actions:
            outputs = dict(outputs or {})
            outputs["actions"] = [cast(JsonValue, asdict(a)) for a in self.actions]
        return outputs


def now_ms() -> int:
    return int(time.time() * 1000)


def new_run_id() -> str:
    return str(uuid.uuid4())


def json_dumps(obj: JsonValue | dict[str, Any] | list[Any] | Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"))
