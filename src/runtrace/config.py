"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any

DEFAULT_ENDPOINT = "http://localhost:8000"
DEFAULT_SESSION_NAME = "default"


@dataclass(frozen=True, slots=True)
class TracerConfig:
    # Remote store
    endpoint: str = DEFAULT_ENDPOINT
    api_key: str | None = None
    tenant_id: str | None = None
    session_name: str = DEFAULT_SESSION_NAME
    example_id: str | None = None

    # Transport reliability
    timeout_s: float = 30.0
    max_retries: int = 6
    max_concurrency: int = 16
    backoff_base_s: float = 0.5
    backoff_jitter_s: float = 0.15

    @staticmethod
    def from_env(**overrides: Any) -> "TracerConfig":
        """
        Build config from `RUNTRACE_*` environment variables.

        Keyword overrides win over the environment; `None` overrides are
        ignored so callers can pass optional arguments straight through.
        """
        config = TracerConfig(
            endpoint=os.getenv("RUNTRACE_ENDPOINT") or DEFAULT_ENDPOINT,
            api_key=os.getenv("RUNTRACE_API_KEY") or None,
            tenant_id=os.getenv("RUNTRACE_TENANT_ID") or None,
            session_name=os.getenv("RUNTRACE_SESSION") or DEFAULT_SESSION_NAME,
            example_id=os.getenv("RUNTRACE_EXAMPLE_ID") or None,
            timeout_s=float(os.getenv("RUNTRACE_TIMEOUT_S", "30")),
            max_retries=int(os.getenv("RUNTRACE_MAX_RETRIES", "6")),
            max_concurrency=int(os.getenv("RUNTRACE_MAX_CONCURRENCY", "16")),
            backoff_base_s=float(os.getenv("RUNTRACE_BACKOFF_BASE_S", "0.5")),
            backoff_jitter_s=float(os.getenv("RUNTRACE_BACKOFF_JITTER_S", "0.15")),
        )
        explicit = {key: value for key, value in overrides.items() if value is not None}
        return replace(config, **explicit) if explicit else config

    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers
