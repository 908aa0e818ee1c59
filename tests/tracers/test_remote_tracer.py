from __future__ import annotations

import asyncio
import itertools
import json

import httpx
import pytest
import respx

from runtrace.config import TracerConfig
from runtrace.tracers import (
    NoTenantAvailableError,
    RemoteTracer,
    Run,
    SessionNotFoundError,
    TransportFailureError,
)

STORE = "http://store.test"


def run_async(coro):
    return asyncio.run(coro)


def make_tracer(**kwargs) -> RemoteTracer:
    ticks = itertools.count(1_700_000_000_000, 5)
    config = TracerConfig(
        endpoint=STORE,
        api_key=kwargs.pop("api_key", None),
        max_retries=0,
        backoff_base_s=0.0,
        backoff_jitter_s=0.0,
    )
    return RemoteTracer(
        config,
        runtime_provider=lambda: {"runtime": "python", "library": "runtrace"},
        clock=lambda: next(ticks),
        **kwargs,
    )


@pytest.fixture
def store():
    with respx.mock(base_url=STORE, assert_all_called=False) as router:
        yield router


def body_of(route: respx.Route, index: int = -1) -> dict:
    return json.loads(route.calls[index].request.content)


def test_root_chain_with_child_is_posted_as_nested_record(store):
    tenants = store.get("/tenants").mock(return_value=httpx.Response(200, json=[{"id": "tenant-1"}, {"id": "tenant-2"}]))
    sessions = store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": "session-1", "name": "default"}))
    runs = store.post("/runs").mock(return_value=httpx.Response(201, json={}))
    tracer = make_tracer(session_extra={"purpose": "test"}, api_key="secret")

    async def scenario():
        await tracer.handle_chain_start({"name": "qa_chain"}, {"question": "hi"}, "A")
        await tracer.handle_llm_start({"name": "fake_llm"}, ["prompt"], "B", parent_run_id="A")
        await tracer.handle_llm_end({"text": "hello"}, "B")
        await tracer.handle_chain_end({"answer": "hello"}, "A")
        await tracer.transport.aclose()

    run_async(scenario())

    assert tenants.call_count == 1
    assert sessions.call_count == 1
    session_request = sessions.calls.last.request
    assert session_request.url.params["upsert"] == "true"
    assert session_request.headers["x-api-key"] == "secret"
    assert body_of(sessions) == {"name": "default", "tenant_id": "tenant-1", "extra": {"purpose": "test"}}

    assert runs.call_count == 1
    record = body_of(runs)
    assert record["id"] == "A"
    assert record["name"] == "qa_chain"
    assert record["run_type"] == "chain"
    assert record["execution_order"] == 1
    assert record["session_id"] == "session-1"
    assert record["inputs"] == {"question": "hi"}
    assert record["outputs"] == {"answer": "hello"}
    assert record["error"] is None
    assert record["extra"]["runtime"] == {"runtime": "python", "library": "runtrace"}
    assert record["start_time"] < record["end_time"]

    [child] = record["child_runs"]
    assert child["id"] == "B"
    assert child["run_type"] == "llm"
    assert child["execution_order"] == 2
    assert child["inputs"] == {"prompts": ["prompt"]}
    assert child["outputs"] == {"text": "hello"}
    assert child["child_runs"] == []
    assert tracer.open_run_ids() == []


def test_explicit_tenant_skips_lookup_and_example_id_covers_subtree(store):
    tenants = store.get("/tenants").mock(return_value=httpx.Response(200, json=[{"id": "other"}]))
    sessions = store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": 42}))
    runs = store.post("/runs").mock(return_value=httpx.Response(200, json={}))
    tracer = make_tracer(tenant_id="tenant-x", session_name="evals", example_id="example-9")

    async def scenario():
        await tracer.handle_tool_start({"name": "search"}, "query", "T")
        await tracer.handle_chain_start({"name": "inner"}, {}, "C", parent_run_id="T")
        await tracer.handle_chain_error(RuntimeError("inner failed"), "C")
        await tracer.handle_tool_end("result", "T")

    run_async(scenario())

    assert tenants.call_count == 0
    assert body_of(sessions)["tenant_id"] == "tenant-x"
    assert body_of(sessions)["name"] == "evals"

    record = body_of(runs)
    assert record["session_id"] == 42
    assert record["reference_example_id"] == "example-9"
    assert record["inputs"] == {"input": "query"}
    assert record["outputs"] == {"output": "result"}
    [child] = record["child_runs"]
    assert child["reference_example_id"] == "example-9"
    assert child["error"] == "inner failed"
    assert child["outputs"] == {}


def test_empty_tenant_list_fails_without_creating_session(store):
    store.get("/tenants").mock(return_value=httpx.Response(200, json=[]))
    sessions = store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": "s"}))
    runs = store.post("/runs").mock(return_value=httpx.Response(200, json={}))
    tracer = make_tracer()
    orphan = Run(
        id="R",
        run_type="chain",
        serialized={"name": "chain"},
        start_time=1,
        end_time=2,
        execution_order=1,
        child_execution_order=1,
    )

    with pytest.raises(NoTenantAvailableError, match="No tenants found"):
        run_async(tracer.persist_run(orphan))

    with pytest.raises(NoTenantAvailableError):
        run_async(tracer.handle_chain_start({"name": "c"}, {}, "c"))

    assert sessions.call_count == 0
    assert runs.call_count == 0
    assert tracer.session is None
    assert tracer.open_run_ids() == []


def test_tenant_lookup_failure_reports_status_and_body(store):
    store.get("/tenants").mock(return_value=httpx.Response(401, text="bad key"))
    tracer = make_tracer()

    with pytest.raises(TransportFailureError) as exc_info:
        run_async(tracer.ensure_tenant_id())

    assert exc_info.value.status_code == 401
    assert exc_info.value.body == "bad key"
    assert "401" in str(exc_info.value)
    assert "bad key" in str(exc_info.value)


def test_session_creation_failure_is_not_masked(store):
    store.post("/sessions").mock(return_value=httpx.Response(500, text="db down"))
    tracer = make_tracer(tenant_id="t")

    with pytest.raises(TransportFailureError, match="create session: 500"):
        run_async(tracer.handle_llm_start({"name": "l"}, ["p"], "l"))

    assert tracer.session is None
    assert tracer.open_run_ids() == []


def test_run_submission_failure_propagates_and_evicts_root(store):
    store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": "s"}))
    runs = store.post("/runs").mock(return_value=httpx.Response(422, text="invalid run"))
    tracer = make_tracer(tenant_id="t")

    async def scenario():
        await tracer.handle_llm_start({"name": "l"}, ["p"], "l")
        with pytest.raises(TransportFailureError) as exc_info:
            await tracer.handle_llm_end({"text": "x"}, "l")
        assert exc_info.value.status_code == 422
        assert exc_info.value.body == "invalid run"

    run_async(scenario())

    assert runs.call_count == 1
    assert tracer.open_run_ids() == []


def test_config_from_env_and_explicit_overrides(monkeypatch):
    monkeypatch.setenv("RUNTRACE_ENDPOINT", "http://env.test/")
    monkeypatch.setenv("RUNTRACE_TENANT_ID", "env-tenant")
    monkeypatch.setenv("RUNTRACE_SESSION", "env-session")
    monkeypatch.setenv("RUNTRACE_API_KEY", "env-key")

    tracer = RemoteTracer(session_name="explicit")

    assert tracer.endpoint == "http://env.test"
    assert tracer.tenant_id == "env-tenant"
    assert tracer.session_name == "explicit"
    assert tracer.headers["x-api-key"] == "env-key"


def test_concurrent_starts_resolve_tenant_and_session_once(store):
    tenants = store.get("/tenants").mock(return_value=httpx.Response(200, json=[{"id": "t"}]))
    sessions = store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": "s"}))
    tracer = make_tracer()

    async def scenario():
        await asyncio.gather(
            *(tracer.handle_llm_start({"name": "l"}, ["p"], run_id) for run_id in ("a", "b", "c"))
        )

    run_async(scenario())

    assert tenants.call_count == 1
    assert sessions.call_count == 1
    assert sorted(tracer.open_run_ids()) == ["a", "b", "c"]


def test_new_session_switches_the_session_of_later_runs(store):
    sessions = store.post("/sessions").mock(
        side_effect=[
            httpx.Response(200, json={"id": "s-default", "name": "default"}),
            httpx.Response(200, json={"id": "s-evals", "name": "evals"}),
        ]
    )
    runs = store.post("/runs").mock(return_value=httpx.Response(200, json={}))
    tracer = make_tracer(tenant_id="t")

    async def scenario():
        await tracer.handle_chain_start({"name": "c"}, {}, "r1")
        await tracer.handle_chain_end({}, "r1")
        session = await tracer.new_session("evals")
        await tracer.handle_chain_start({"name": "c"}, {}, "r2")
        await tracer.handle_chain_end({}, "r2")
        return session

    session = run_async(scenario())

    assert session.id == "s-evals"
    assert [body_of(sessions, i)["name"] for i in range(2)] == ["default", "evals"]
    assert [body_of(runs, i)["session_id"] for i in range(2)] == ["s-default", "s-evals"]


def test_load_session_looks_up_by_name_under_the_tenant(store):
    lookup = store.get("/sessions").mock(
        return_value=httpx.Response(200, json=[{"id": 7, "name": "nightly", "tenant_id": "t"}])
    )
    created = store.post("/sessions").mock(return_value=httpx.Response(200, json={"id": 1}))
    tracer = make_tracer(tenant_id="t")

    async def scenario():
        session = await tracer.load_session("nightly")
        run = await tracer.handle_llm_start({"name": "l"}, ["p"], "l")
        return session, run

    session, run = run_async(scenario())

    params = lookup.calls.last.request.url.params
    assert (params["name"], params["tenant_id"]) == ("nightly", "t")
    assert session.id == 7
    assert run.session_id == 7
    assert created.call_count == 0


def test_load_session_failures_raise(store):
    store.get("/sessions").mock(
        side_effect=[httpx.Response(200, json=[]), httpx.Response(503, text="maintenance")]
    )
    tracer = make_tracer(tenant_id="t")

    with pytest.raises(SessionNotFoundError, match="missing"):
        run_async(tracer.load_session("missing"))
    with pytest.raises(TransportFailureError, match="load session: 503"):
        run_async(tracer.load_default_session())

    assert tracer.session is None
