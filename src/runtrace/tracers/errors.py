"""
MIT License
Copyright (c) 2026 socioy
See LICENSE file for full license text.

This module defines custom exceptions for error handling in the tracers.
"""

from __future__ import annotations


class TracerError(Exception):
    """Base exception for all run-tracing errors."""

    pass


class ParentNotFoundError(TracerError):
    """Raised when a referenced parent run is not open in the registry."""

    def __init__(self, parent_id: str) -> None:
        super().__init__(f"Parent run {parent_id} not found")
        self.parent_id = parent_id


class InvalidParentKindError(TracerError):
    """Raised when a child run is attached to an `llm` run."""

    def __init__(self, parent_id: str, parent_type: str) -> None:
        super().__init__(
            f"Parent run {parent_id} is a {parent_type} run; only chain or tool runs can have children"
        )
        self.parent_id = parent_id
        self.parent_type = parent_type


class NoSuchOpenRunError(TracerError):
    """Raised when end/error references an unknown or kind-mismatched run."""

    def __init__(self, run_id: str, run_type: str) -> None:
        super().__init__(f"No {run_type} run {run_id} to end")
        self.run_id = run_id
        self.run_type = run_type


class RunAlreadyOpenError(TracerError):
    pass


class NoTenantAvailableError(TracerError):
    pass


class TransportFailureError(TracerError):
    """
    The remote store answered with a non-success status.
    Status code and response body are kept for diagnostics.
    """

    def __init__(self, action: str, status_code: int, reason: str, body: str) -> None:
        super().__init__(f"Failed to {action}: {status_code} {reason} {body}".rstrip())
        self.action = action
        self.status_code = status_code
        self.reason = reason
        self.body = body


class SessionNotFoundError(TracerError):
    """Raised when loading a session by name finds nothing."""

    def __init__(self, session_name: str) -> None:
        super().__init__(f"Session {session_name} not found")
        self.session_name = session_name
