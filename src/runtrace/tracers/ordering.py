from __future__ import annotations

from .errors import ParentNotFoundError
from .registry import RunRegistry


def resolve_execution_order(registry: RunRegistry, parent_id: str | None) -> int:
    """
    Return the execution order for a run about to start under `parent_id`.

    Root runs always start a new sequence at 1. A child takes the next slot
    after the highest order reached so far below its parent, which yields a
    depth-first numbering driven purely by start time.
    """
    if parent_id is None:
        return 1

    parent = registry.get(parent_id)
    if parent is None:
        raise ParentNotFoundError(parent_id)
    return parent.child_execution_order + 1
