"""
Error taxonomy for the context-node subsystem.

Reads report a missing target as ``None`` / an empty list; only updates
raise :class:`NodeNotFound`.  Store errors are always wrapped with the name
of the failing operation and never retried here.
"""

from __future__ import annotations


class ContextNodeError(Exception):
    """Base class for every error raised by this package."""


class ValidationFailure(ContextNodeError, ValueError):
    """A context, strategy or update payload is malformed."""


class NodeNotFound(ContextNodeError, LookupError):
    """The node targeted by an update does not exist."""

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Context node {node_id!r} not found")
        self.node_id = node_id


class StoreFailure(ContextNodeError):
    """An operation against the document store failed."""

    def __init__(self, operation: str, message: str, retryable: bool = False) -> None:
        super().__init__(f"Failed to {operation}: {message}")
        self.operation = operation
        self.retryable = retryable


class StoreTimeout(StoreFailure):
    """A store call did not finish within its timeout."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(operation, f"timed out after {timeout:g}s", retryable=True)
        self.timeout = timeout


class PartialConversion(StoreFailure):
    """
    Persisting the nodes of one conversion failed.

    Some nodes may already be written.  Node ids are deterministic, so the
    caller has to delete the context's nodes before retrying the conversion.
    """

    def __init__(self, context_id: str, cause: StoreFailure) -> None:
        super().__init__(
            "store context nodes",
            f"conversion of context {context_id!r} failed ({cause})",
            retryable=cause.retryable,
        )
        self.context_id = context_id
