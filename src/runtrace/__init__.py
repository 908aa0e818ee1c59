"""
Run tracing for LLM, chain and tool pipelines.
"""

from .config import TracerConfig
from .logging import configure_logging
from .runtime import get_runtime_environment
from .telemetry import (
    InMemoryTelemetrySink,
    NullTelemetrySink,
    OpenTelemetrySink,
    TelemetrySink,
    TelemetrySpan,
    telemetry_hooks,
)
from .tracers import (
    AgentAction,
    BaseTracer,
    InMemoryTracer,
    InvalidParentKindError,
    NoSuchOpenRunError,
    NoTenantAvailableError,
    ParentNotFoundError,
    RemoteTracer,
    Run,
    RunAlreadyOpenError,
    SessionNotFoundError,
    TracerError,
    TracerHooks,
    TransportFailureError,
    new_run_id,
)
from .transport import HttpxTransport, Transport

__all__ = [
    "TracerConfig",
    "configure_logging",
    "get_runtime_environment",
    "Transport",
    "HttpxTransport",
    "BaseTracer",
    "RemoteTracer",
    "InMemoryTracer",
    "TracerHooks",
    "Run",
    "AgentAction",
    "new_run_id",
    "TelemetrySink",
    "TelemetrySpan",
    "NullTelemetrySink",
    "InMemoryTelemetrySink",
    "OpenTelemetrySink",
    "telemetry_hooks",
    "TracerError",
    "ParentNotFoundError",
    "InvalidParentKindError",
    "NoSuchOpenRunError",
    "RunAlreadyOpenError",
    "SessionNotFoundError",
    "NoTenantAvailableError",
    "TransportFailureError",
]
