"""error kinds raised around the conversation tree."""

from __future__ import annotations


class ChatPathError(Exception):
    """base class for chatpath errors."""


class NotFound(ChatPathError):
    """a node or edge id does not resolve in the current tree."""


class InvalidOperation(ChatPathError):
    """structurally disallowed operation (deleting the root, etc)."""


class CycleDetected(ChatPathError):
    """parent links loop back on themselves."""

    def __init__(self, node_id: str) -> None:
        self.node_id = node_id
        super().__init__(f"parent cycle detected at node {node_id}")


class LayoutFailure(ChatPathError):
    """the layered layout could not place the graph."""


class PersistenceFailure(ChatPathError):
    """a stored snapshot is malformed or incomplete."""
