"""Execution environment metadata attached to persisted runs."""

from __future__ import annotations

import platform
from functools import lru_cache
from importlib import metadata as importlib_metadata

LIBRARY_NAME = "runtrace"


@lru_cache(maxsize=1)
def get_runtime_environment() -> dict[str, str]:
    try:
        library_version = importlib_metadata.version(LIBRARY_NAME)
    except importlib_metadata.PackageNotFoundError:
        library_version = "unknown"

    return {
        "library": LIBRARY_NAME,
        "library_version": library_version,
        "platform": platform.platform(),
        "runtime": "python",
        "runtime_version": platform.python_version(),
        "runtime_implementation": platform.python_implementation(),
    }
