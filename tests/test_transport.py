from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import respx

from runtrace.config import TracerConfig
from runtrace.transport import HttpxTransport, backoff_delay

URL = "http://store.test/runs"


def run_async(coro):
    return asyncio.run(coro)


def make_transport(max_retries: int = 2) -> HttpxTransport:
    return HttpxTransport(max_retries=max_retries, backoff_base_s=0.0, backoff_jitter_s=0.0)


def test_backoff_grows_exponentially_within_jitter():
    assert backoff_delay(0, 0.5, 0.0) == 0.5
    assert backoff_delay(2, 0.5, 0.0) == 2.0
    delay = backoff_delay(1, 0.5, 0.1)
    assert 1.0 <= delay <= 1.1


def test_retryable_status_is_retried_until_success():
    transport = make_transport()

    with respx.mock() as router:
        route = router.post(URL).mock(
            side_effect=[httpx.Response(503), httpx.Response(429), httpx.Response(200, json={"ok": True})]
        )
        response = run_async(transport.request("POST", URL, json={"id": "a"}))

    assert response.status_code == 200
    assert route.call_count == 3


def test_network_error_is_retried():
    transport = make_transport()

    with respx.mock() as router:
        route = router.get(URL).mock(side_effect=[httpx.ConnectError("refused"), httpx.Response(200, json=[])])
        response = run_async(transport.request("GET", URL))

    assert response.status_code == 200
    assert route.call_count == 2


def test_retries_exhausted_returns_last_response():
    transport = make_transport(max_retries=1)

    with respx.mock() as router:
        route = router.post(URL).mock(return_value=httpx.Response(502, text="bad gateway"))
        response = run_async(transport.request("POST", URL, json={}))

    assert response.status_code == 502
    assert route.call_count == 2


def test_retries_exhausted_reraises_network_error():
    transport = make_transport(max_retries=1)

    with respx.mock() as router:
        route = router.post(URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(httpx.ConnectError):
            run_async(transport.request("POST", URL, json={}))

    assert route.call_count == 2


def test_client_errors_are_returned_without_retry():
    transport = make_transport()

    with respx.mock() as router:
        route = router.post(URL).mock(return_value=httpx.Response(400, text="bad"))
        response = run_async(transport.request("POST", URL, json={}))

    assert response.status_code == 400
    assert route.call_count == 1


def test_headers_and_json_body_are_sent():
    transport = make_transport(max_retries=0)

    with respx.mock() as router:
        route = router.post(URL).mock(return_value=httpx.Response(200))
        run_async(transport.request("POST", URL, headers={"x-api-key": "k"}, json={"id": "a"}))

    request = route.calls.last.request
    assert request.headers["x-api-key"] == "k"
    assert json.loads(request.content) == {"id": "a"}


def test_from_config_copies_retry_settings():
    config = TracerConfig(max_retries=3, backoff_base_s=0.25, backoff_jitter_s=0.0, max_concurrency=2)
    transport = HttpxTransport.from_config(config)

    assert transport.max_retries == 3
    assert transport.backoff_base_s == 0.25
    assert transport.backoff_jitter_s == 0.0


def test_injected_client_is_not_closed():
    client = httpx.AsyncClient()
    transport = HttpxTransport(client=client)

    run_async(transport.aclose())
    assert not client.is_closed
    run_async(client.aclose())
