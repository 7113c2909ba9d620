"""Exceptions raised by the workflow engine.

Pre-execution errors (validation, cycles, unknown node types) are raised
before any node runs. Per-node errors (timeouts, capability failures) are
raised once retries are exhausted and ``continue_on_error`` is off.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from flowforge.runtime.run import Run


class FlowForgeError(Exception):
    """Base class for all engine errors.

    When a run aborts, the executor attaches the partial ``Run`` to the
    exception so callers keep the log sequence and metrics.
    """

    run: Run | None = None


class GraphValidationError(FlowForgeError):
    """Raised when a workflow is structurally invalid."""

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"Invalid workflow: {'; '.join(self.errors)}")


class GraphCycleError(FlowForgeError):
    """Raised when the workflow graph contains a cycle."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = list(node_ids)
        super().__init__(f"Workflow graph contains a cycle involving nodes: {self.node_ids}")


class UnknownNodeTypeError(FlowForgeError):
    """Raised when no capability is registered for a node's type tag."""

    def __init__(self, node_id: str, node_type: str):
        self.node_id = node_id
        self.node_type = node_type
        super().__init__(f"No executor found for node type: {node_type} (node '{node_id}')")


class NodeTimeoutError(FlowForgeError):
    """Raised when a node does not settle within its timeout."""

    def __init__(self, node_id: str, timeout_ms: int | float):
        self.node_id = node_id
        self.timeout_ms = timeout_ms
        super().__init__(f"Node '{node_id}' timed out after {timeout_ms}ms")


class NodeExecutionError(FlowForgeError):
    """Wraps an exception raised by a node's capability."""

    def __init__(self, node_id: str, cause: BaseException | Any):
        self.node_id = node_id
        self.cause = cause
        super().__init__(f"Node '{node_id}' failed: {cause}")


class DeadlockError(FlowForgeError):
    """Raised when scheduling stops with nodes neither executed nor skipped.

    Cycle validation runs first, so seeing this means the scheduler's
    bookkeeping is inconsistent.
    """

    def __init__(self, pending_ids: list[str]):
        self.pending_ids = list(pending_ids)
        super().__init__(f"Scheduler stalled with unsettled nodes: {self.pending_ids}")
