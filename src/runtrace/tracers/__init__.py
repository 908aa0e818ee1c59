"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module provides the public API for run tracers: run records, the
lifecycle state machine and its persistence backends.
"""

from .base import BaseTracer
from .errors import (
    InvalidParentKindError,
    NoSuchOpenRunError,
    NoTenantAvailableError,
    ParentNotFoundError,
    RunAlreadyOpenError,
    SessionNotFoundError,
    TracerError,
    TransportFailureError,
)
from .hooks import RunHook, TracerHooks
from .memory import InMemoryTracer
from .ordering import resolve_execution_order
from .registry import RunRegistry
from .remote import RemoteTracer
from .schemas import RunCreate, Tenant, TracerSession, TracerSessionCreate
from .types import AgentAction, Run, RunType, new_run_id, now_ms

__all__ = [
    "BaseTracer",
    "RemoteTracer",
    "InMemoryTracer",
    "RunRegistry",
    "resolve_execution_order",
    "TracerHooks",
    "RunHook",
    "Run",
    "RunType",
    "AgentAction",
    "RunCreate",
    "Tenant",
    "TracerSession",
    "TracerSessionCreate",
    "new_run_id",
    "now_ms",
    "TracerError",
    "ParentNotFoundError",
    "InvalidParentKindError",
    "NoSuchOpenRunError",
    "RunAlreadyOpenError",
    "SessionNotFoundError",
    "NoTenantAvailableError",
    "TransportFailureError",
]
