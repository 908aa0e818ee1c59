"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module implements the tracer that persists finished run trees to a
remote run store over HTTP.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

import httpx
import structlog

from ..config import TracerConfig
from ..runtime import get_runtime_environment
from ..transport import HttpxTransport, Transport
from .base import BaseTracer, Clock, RuntimeProvider
from .errors import NoTenantAvailableError, SessionNotFoundError, TransportFailureError
from .hooks import TracerHooks
from .schemas import Tenant, TracerSession, TracerSessionCreate
from .types import Run, now_ms

logger = structlog.get_logger(__name__)


class RemoteTracer(BaseTracer):
    """
    Tracer that ships each closed root run, with its nested children, to
    `{endpoint}/runs`.

    Tenant and session are resolved lazily on first use and cached:
      - tenant: explicit value, else config/env, else the first tenant
        returned by `{endpoint}/tenants`
      - session: upserted by name under that tenant; `new_session` and
        `load_session` switch it for runs started afterwards
    """

    name = "remote_tracer"

    def __init__(
        self,
        config: TracerConfig | None = None,
        *,
        tenant_id: str | None = None,
        session_name: str | None = None,
        session_extra: dict[str, Any] | None = None,
        example_id: str | None = None,
        transport: Transport | None = None,
        runtime_provider: RuntimeProvider = get_runtime_environment,
        hooks: TracerHooks | None = None,
        clock: Clock = now_ms,
    ) -> None:
        overrides = {"tenant_id": tenant_id, "session_name": session_name, "example_id": example_id}
        if config is None:
            self.config = TracerConfig.from_env(**overrides)
        else:
            self.config = replace(config, **{k: v for k, v in overrides.items() if v is not None})

        super().__init__(
            session_name=self.config.session_name,
            hooks=hooks,
            clock=clock,
            runtime_provider=runtime_provider,
        )
        self.tenant_id: str | None = self.config.tenant_id
        self.session_extra = session_extra
        self.example_id = self.config.example_id
        self.endpoint = self.config.endpoint.rstrip("/")
        self.headers = self.config.headers()
        self.transport: Transport = transport or HttpxTransport.from_config(self.config)

    async def ensure_tenant_id(self) -> str:
        if self.tenant_id:
            return self.tenant_id

        url = f"{self.endpoint}/tenants"
        response = await self.transport.request("GET", url, headers=self.headers)
        _raise_for_status(response, "fetch tenant ID")

        tenants = [Tenant.model_validate(item) for item in (response.json() or [])]
        if not tenants:
            raise NoTenantAvailableError(f"No tenants found for endpoint {url}")

        self.tenant_id = str(tenants[0].id)
        logger.debug("tenant resolved", tenant_id=self.tenant_id)
        return self.tenant_id

    async def persist_session(self, session_name: str) -> TracerSession:
        tenant_id = await self.ensure_tenant_id()
        body = TracerSessionCreate(
            name=session_name,
            tenant_id=tenant_id,
            extra=self.session_extra,
        )
        response = await self.transport.request(
            "POST",
            f"{self.endpoint}/sessions?upsert=true",
            headers=self.headers,
            json=body.model_dump(mode="json"),
        )
        _raise_for_status(response, "create session")
        return TracerSession.model_validate(response.json())

    async def fetch_session(self, session_name: str) -> TracerSession:
        tenant_id = await self.ensure_tenant_id()
        url = httpx.URL(f"{self.endpoint}/sessions", params={"name": session_name, "tenant_id": tenant_id})
        response = await self.transport.request("GET", str(url), headers=self.headers)
        _raise_for_status(response, "load session")

        sessions = response.json() or []
        if not sessions:
            raise SessionNotFoundError(session_name)
        return TracerSession.model_validate(sessions[0])

    async def persist_run(self, run: Run) -> None:
        persisted = await self.build_run_create(run, self.example_id)
        response = await self.transport.request(
            "POST",
            f"{self.endpoint}/runs",
            headers=self.headers,
            json=persisted.model_dump(mode="json"),
        )
        _raise_for_status(response, "persist run")
        logger.info("run persisted", run_id=run.id, run_type=run.run_type, error=run.error)


def _raise_for_status(response: httpx.Response, action: str) -> None:
    if response.is_success:
        return
    raise TransportFailureError(
        action,
        response.status_code,
        response.reason_phrase,
        response.text,
    )
