"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

Wire models exchanged with the remote run store.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .types import Run, RunType


class TracerSession(BaseModel):
    """Remote grouping of runs. `id` is assigned by the store."""

    model_config = ConfigDict(extra="allow")

    id: str | int
    name: str | None = None
    tenant_id: str | None = None
    start_time: int | None = None


class TracerSessionCreate(BaseModel):
    name: str
    tenant_id: str
    extra: dict[str, Any] | None = None


class Tenant(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | int


class RunCreate(BaseModel):
    """One persisted run node; `child_runs` nests the whole subtree."""

    id: str
    name: str
    start_time: int
    end_time: int | None
    run_type: RunType
    reference_example_id: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)
    execution_order: int
    serialized: dict[str, Any]
    error: str | None = None
    inputs: dict[str, Any]
    outputs: dict[str, Any] = Field(default_factory=dict)
    session_id: str | int
    child_runs: list["RunCreate"] = Field(default_factory=list)

    @classmethod
    def from_run(
        cls,
        run: Run,
        *,
        session_id: str | int,
        example_id: str | None = None,
        runtime: dict[str, str] | None = None,
    ) -> "RunCreate":
        """
        Build the nested record for `run` and its subtree.

        `session_id`, `example_id` and `runtime` apply to every node.
        """
        extra = dict(run.extra)
        if runtime is not None:
            extra["runtime"] = runtime
        return cls(
            id=run.id,
            name=run.name,
            start_time=run.start_time,
            end_time=run.end_time,
            run_type=run.run_type,
            reference_example_id=example_id,
            extra=extra,
            execution_order=run.execution_order,
            serialized=run.serialized,
            error=run.error,
            inputs=run.inputs_payload(),
            outputs=run.outputs_payload() or {},
            session_id=session_id,
            child_runs=[
                cls.from_run(child, session_id=session_id, example_id=example_id, runtime=runtime)
                for child in run.child_runs
            ],
        )


RunCreate.model_rebuild()
