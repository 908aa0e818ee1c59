"""
Telemetry sinks fed by tracer lifecycle hooks.

`telemetry_hooks(sink)` returns a `TracerHooks` table that opens one span per
run, closes it with the run's status and records run counts and durations.
The default sinks are no-op/in-memory. `OpenTelemetrySink` can be used when
`opentelemetry-api` and `opentelemetry-sdk` are installed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from .tracers.hooks import TracerHooks
from .tracers.types import JsonValue, Run, now_ms


@dataclass(frozen=True, slots=True)
class TelemetrySpan:
    """
    Started telemetry span.

    Attributes:
        name: Span name.
        started_at_ms: Span start timestamp.
        attributes: JSON-safe span attributes.
        native_span: Optional provider-native span object.
    """

    name: str
    started_at_ms: int
    attributes: dict[str, JsonValue] = field(default_factory=dict)
    native_span: Any = None


class TelemetrySink(Protocol):
    """Protocol implemented by telemetry backends."""

    def start_span(self, name: str, *, attributes: dict[str, JsonValue] | None = None) -> TelemetrySpan | None:
        ...

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        ...

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        ...

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        ...


@dataclass(slots=True)
class NullTelemetrySink:
    """No-op telemetry sink used as safe default."""

    def start_span(self, name: str, *, attributes: dict[str, JsonValue] | None = None) -> TelemetrySpan | None:
        return None

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        return None

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        return None

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        return None


@dataclass(slots=True)
class InMemoryTelemetrySink:
    """Test/debug telemetry sink that stores emitted measurements."""

    _spans_open: list[TelemetrySpan] = field(default_factory=list)
    _spans_closed: list[dict[str, Any]] = field(default_factory=list)
    _counters: list[dict[str, Any]] = field(default_factory=list)
    _histograms: list[dict[str, Any]] = field(default_factory=list)

    def start_span(self, name: str, *, attributes: dict[str, JsonValue] | None = None) -> TelemetrySpan:
        span = TelemetrySpan(name=name, started_at_ms=now_ms(), attributes=dict(attributes or {}))
        self._spans_open.append(span)
        return span

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        if span is None:
            return None
        if span in self._spans_open:
            self._spans_open.remove(span)
        self._spans_closed.append(
            {
                "name": span.name,
                "started_at_ms": span.started_at_ms,
                "ended_at_ms": now_ms(),
                "status": status,
                "error": error,
                "attributes": {**span.attributes, **dict(attributes or {})},
            }
        )
        return None

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        self._counters.append({"name": name, "value": int(value), "attributes": dict(attributes or {})})

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        self._histograms.append({"name": name, "value": float(value), "attributes": dict(attributes or {})})

    def open_spans(self) -> list[TelemetrySpan]:
        return list(self._spans_open)

    def spans(self) -> list[dict[str, Any]]:
        return list(self._spans_closed)

    def counters(self) -> list[dict[str, Any]]:
        return list(self._counters)

    def histograms(self) -> list[dict[str, Any]]:
        return list(self._histograms)


@dataclass(slots=True)
class OpenTelemetrySink:
    """
    Sink exporting runs as OpenTelemetry spans and metrics.

    `tracer_provider`/`meter_provider` default to the globally registered
    providers. `opentelemetry` is imported on first use and is only needed
    when this sink is selected (`pip install runtrace[otel]`).
    """

    instrumentation_name: str = "runtrace"
    tracer_provider: Any = None
    meter_provider: Any = None

    _tracer: Any = field(default=None, init=False, repr=False)
    _meter: Any = field(default=None, init=False, repr=False)
    _instruments: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def _load(self) -> None:
        if self._tracer is not None:
            return
        try:
            from opentelemetry import metrics, trace
        except ImportError as e:
            raise RuntimeError(
                "OpenTelemetrySink needs 'opentelemetry-api' and 'opentelemetry-sdk' (runtrace[otel])"
            ) from e

        self._tracer = trace.get_tracer(self.instrumentation_name, tracer_provider=self.tracer_provider)
        self._meter = metrics.get_meter(self.instrumentation_name, meter_provider=self.meter_provider)

    def start_span(self, name: str, *, attributes: dict[str, JsonValue] | None = None) -> TelemetrySpan | None:
        self._load()
        native = self._tracer.start_span(name, attributes=_attrs(attributes))
        return TelemetrySpan(
            name=name,
            started_at_ms=now_ms(),
            attributes=dict(attributes or {}),
            native_span=native,
        )

    def end_span(
        self,
        span: TelemetrySpan | None,
        *,
        status: str,
        error: str | None = None,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        if span is None or span.native_span is None:
            return None
        from opentelemetry.trace import Status, StatusCode

        native = span.native_span
        native.set_attributes(_attrs(attributes))
        if status == "ok":
            native.set_status(Status(StatusCode.OK))
        else:
            native.set_status(Status(StatusCode.ERROR, error or status))
        native.end()
        return None

    def increment_counter(
        self,
        name: str,
        value: int = 1,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        self._instrument("counter", name).add(int(value), attributes=_attrs(attributes))

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        attributes: dict[str, JsonValue] | None = None,
    ) -> None:
        self._instrument("histogram", name).record(float(value), attributes=_attrs(attributes))

    def _instrument(self, kind: str, name: str) -> Any:
        instrument = self._instruments.get(name)
        if instrument is None:
            self._load()
            if kind == "counter":
                instrument = self._meter.create_counter(name)
            else:
                instrument = self._meter.create_histogram(name, unit="ms")
            self._instruments[name] = instrument
        return instrument


def telemetry_hooks(sink: TelemetrySink) -> TracerHooks:
    """
    Build lifecycle hooks reporting runs to `sink`.

    Emits:
      - one span per run, named `runtrace.<run_type>`
      - counter `runtrace.runs` tagged with run type and status
      - histogram `runtrace.run.duration_ms` on completion
    """
    spans: dict[str, TelemetrySpan | None] = {}

    def _start(run: Run) -> None:
        spans[run.id] = sink.start_span(f"runtrace.{run.run_type}", attributes=_run_attributes(run))

    def _finish(run: Run) -> None:
        status = "ok" if run.error is None else "error"
        sink.end_span(
            spans.pop(run.id, None),
            status=status,
            error=run.error,
            attributes={"runtrace.child_execution_order": run.child_execution_order},
        )
        attributes: dict[str, JsonValue] = {"run_type": run.run_type, "status": status}
        sink.increment_counter("runtrace.runs", attributes=attributes)
        if run.end_time is not None:
            sink.record_histogram(
                "runtrace.run.duration_ms",
                float(run.end_time - run.start_time),
                attributes=attributes,
            )

    def _action(run: Run) -> None:
        sink.increment_counter("runtrace.agent_actions", attributes={"run_type": run.run_type})

    return TracerHooks(
        on_llm_start=_start,
        on_llm_end=_finish,
        on_llm_error=_finish,
        on_chain_start=_start,
        on_chain_end=_finish,
        on_chain_error=_finish,
        on_tool_start=_start,
        on_tool_end=_finish,
        on_tool_error=_finish,
        on_agent_action=_action,
    )


def _run_attributes(run: Run) -> dict[str, JsonValue]:
    return {
        "runtrace.run_id": run.id,
        "runtrace.run_name": run.name,
        "runtrace.run_type": run.run_type,
        "runtrace.parent_run_id": run.parent_id,
        "runtrace.execution_order": run.execution_order,
    }


def _attrs(value: dict[str, JsonValue] | None) -> dict[str, Any]:
    """Convert JSON attribute map into OpenTelemetry-compatible attributes."""
    attrs: dict[str, Any] = {}
    for key, item in (value or {}).items():
        if item is None:
            continue
        attrs[str(key)] = _to_attr(item)
    return attrs


def _to_attr(value: JsonValue) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, list):
        return tuple(str(item) for item in value)
    return str(value)
