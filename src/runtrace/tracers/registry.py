"""In-process index of open runs."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from .types import Run


class RunRegistry:
    """
    Mapping from run id to open run record.

    The registry only stores and looks up; parent/child consistency is the
    tracer's job. `locked()` lets callers group several operations into one
    atomic unit.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._runs_by_id: dict[str, Run] = {}

    @contextmanager
    def locked(self) -> Iterator["RunRegistry"]:
        with self._lock:
            yield self

    def put(self, run_id: str, run: Run) -> None:
        with self._lock:
            self._runs_by_id[run_id] = run

    def get(self, run_id: str) -> Run | None:
        with self._lock:
            return self._runs_by_id.get(run_id)

    def remove(self, run_id: str) -> Run | None:
        with self._lock:
            return self._runs_by_id.pop(run_id, None)

    def ids(self) -> list[str]:
        with self._lock:
            return list(self._runs_by_id)

    def __contains__(self, run_id: object) -> bool:
        with self._lock:
            return run_id in self._runs_by_id

    def __len__(self) -> int:
        with self._lock:
            return len(self._runs_by_id)
