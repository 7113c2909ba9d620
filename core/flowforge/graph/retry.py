"""
Retry/timeout wrapper around a single capability invocation.

Each attempt is raced against ``timeout_ms`` with ``asyncio.timeout``. A
failed attempt (exception or timeout) is retried after
``backoff_ms * (attempt + 1)`` until ``max_retries`` is used up. Only an
expired deadline counts as a timeout; a TimeoutError raised by the
capability itself is an ordinary failure. Then either:

- continue_on_error: the node gets the sentinel result
  ``{"error": <message>, "skipped": True}`` and the run goes on, or
- otherwise: NodeTimeoutError / NodeExecutionError propagates and aborts the run.

A NodeMetrics entry is recorded on the run in every case.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from flowforge.config import DEFAULT_BACKOFF_MS, DEFAULT_TIMEOUT_MS, get_execution_defaults
from flowforge.graph.errors import FlowForgeError, NodeExecutionError, NodeTimeoutError
from flowforge.runtime.run_schemas import NodeMetrics, NodeStatus

if TYPE_CHECKING:
    from flowforge.graph.capability import Capability
    from flowforge.graph.workflow import WorkflowNode
    from flowforge.runtime.run import Run

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How often and how patiently to retry a failing node."""

    max_retries: int = 0
    backoff_ms: int = DEFAULT_BACKOFF_MS

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.backoff_ms < 0:
            raise ValueError("backoff_ms must be >= 0")

    def delay_seconds(self, attempt: int) -> float:
        """Backoff before the retry that follows 0-based ``attempt``."""
        return self.backoff_ms * (attempt + 1) / 1000


@dataclass
class ExecutionOptions:
    """Per-run execution policy."""

    continue_on_error: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    timeout_ms: int | None = DEFAULT_TIMEOUT_MS  # None disables the timeout race

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive (or None to disable)")

    @classmethod
    def from_config(cls, **overrides: Any) -> ExecutionOptions:
        """Defaults from ~/.flowforge/configuration.json, with keyword overrides."""
        values = {**get_execution_defaults(), **{k: v for k, v in overrides.items() if v is not None}}
        return cls(
            continue_on_error=values["continue_on_error"],
            retry_policy=RetryPolicy(
                max_retries=values["max_retries"],
                backoff_ms=values["backoff_ms"],
            ),
            timeout_ms=values["timeout_ms"],
        )


@dataclass
class NodeOutcome:
    """What the wrapper hands back to the scheduler for one node."""

    node_id: str
    result: Any
    status: NodeStatus
    retries: int = 0
    error: FlowForgeError | None = None


def error_sentinel(message: str) -> dict[str, Any]:
    """Result stored for a node whose failure was tolerated."""
    return {"error": message, "skipped": True}


def _error_message(error: FlowForgeError) -> str:
    if isinstance(error, NodeExecutionError):
        return str(error.cause)
    return str(error)


async def execute_with_policy(
    node: WorkflowNode,
    capability: Capability,
    run: Run,
    options: ExecutionOptions,
) -> NodeOutcome:
    """Run ``capability`` for ``node`` under the run's retry/timeout policy."""
    policy = options.retry_policy
    timeout_s = options.timeout_ms / 1000 if options.timeout_ms is not None else None

    started_at = datetime.now(UTC).isoformat()
    started = time.perf_counter()
    attempt_errors: list[str] = []
    attempt = 0

    while True:
        # timeout(None) never expires
        deadline = asyncio.timeout(timeout_s)
        try:
            async with deadline:
                result = await capability.execute(run, node.config)
        except TimeoutError as e:
            if deadline.expired():
                error: FlowForgeError = NodeTimeoutError(node.id, options.timeout_ms)
            else:
                error = NodeExecutionError(node.id, e)
                error.__cause__ = e
        except Exception as e:
            error = NodeExecutionError(node.id, e)
            error.__cause__ = e
        else:
            run.record_metrics(
                _metrics(node.id, started_at, started, attempt, NodeStatus.SUCCESS, attempts=attempt_errors)
            )
            return NodeOutcome(node_id=node.id, result=result, status=NodeStatus.SUCCESS, retries=attempt)

        message = _error_message(error)
        attempt_errors.append(message)
        if attempt >= policy.max_retries:
            break

        delay = policy.delay_seconds(attempt)
        run.logger.warn(
            f"Attempt {attempt + 1}/{policy.max_retries + 1} failed: {message}; "
            f"retrying in {int(delay * 1000)}ms",
            node_id=node.id,
        )
        await asyncio.sleep(delay)
        attempt += 1

    run.record_metrics(
        _metrics(
            node.id,
            started_at,
            started,
            policy.max_retries,
            NodeStatus.FAILED,
            error=message,
            attempts=attempt_errors,
        )
    )
    run.logger.error(f"Node execution failed: {message}", node_id=node.id)

    if not options.continue_on_error:
        raise error

    logger.warning(
        "Continuing after failure of node %s",
        node.id,
        extra={"node_id": node.id, "event": "continue_on_error"},
    )
    return NodeOutcome(
        node_id=node.id,
        result=error_sentinel(message),
        status=NodeStatus.FAILED,
        retries=policy.max_retries,
        error=error,
    )


def _metrics(
    node_id: str,
    started_at: str,
    started: float,
    retries: int,
    status: NodeStatus,
    error: str | None = None,
    attempts: list[str] | None = None,
) -> NodeMetrics:
    return NodeMetrics(
        node_id=node_id,
        start_time=started_at,
        end_time=datetime.now(UTC).isoformat(),
        duration_ms=(time.perf_counter() - started) * 1000,
        retries=retries,
        status=status,
        error=error,
        attempts=list(attempts or []),
    )


def skipped_metrics(node_id: str) -> NodeMetrics:
    """Zero-duration record for a pruned node."""
    now = datetime.now(UTC).isoformat()
    return NodeMetrics(
        node_id=node_id,
        start_time=now,
        end_time=now,
        duration_ms=0.0,
        retries=0,
        status=NodeStatus.SKIPPED,
    )
