"""
Run - One execution of a workflow.

A Run owns three pieces of state:
- data:    node id -> that node's result (plus the initial input keys)
- logs:    append-only log sequence (see RunLogger)
- metrics: node id -> NodeMetrics

Nodes in the same level complete concurrently, so every write goes through
a lock-guarded method. The executor is the only writer of ``data``; the
retry wrapper is the only writer of ``metrics``.
"""

from __future__ import annotations

import random
import string
import threading
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from flowforge.runtime.run_logger import RunLogger
from flowforge.runtime.run_schemas import ExecutionLog, NodeMetrics, NodeStatus, RunStatus
from flowforge.runtime.serialization import safe_serialize

_BASE36 = string.digits + string.ascii_lowercase


def generate_execution_id() -> str:
    """Execution ids look like ``exec_1718000000000_k3j9x0a1b``."""
    suffix = "".join(random.choices(_BASE36, k=9))
    return f"exec_{int(time.time() * 1000)}_{suffix}"


@dataclass
class Run:
    """Mutable record of a single workflow execution."""

    workflow_id: str
    execution_id: str = field(default_factory=generate_execution_id)
    data: dict[str, Any] = field(default_factory=dict)
    metrics: dict[str, NodeMetrics] = field(default_factory=dict)
    logger: RunLogger = field(default_factory=RunLogger)
    status: RunStatus = RunStatus.RUNNING
    started_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    finished_at: str | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def logs(self) -> tuple[ExecutionLog, ...]:
        return self.logger.entries

    def set_result(self, node_id: str, result: Any) -> None:
        with self._lock:
            self.data[node_id] = result

    def snapshot_data(self) -> dict[str, Any]:
        """Shallow copy of the data map."""
        with self._lock:
            return dict(self.data)

    def record_metrics(self, metrics: NodeMetrics) -> None:
        with self._lock:
            self.metrics[metrics.node_id] = metrics

    def nodes_with_status(self, status: NodeStatus) -> list[str]:
        with self._lock:
            return [node_id for node_id, m in self.metrics.items() if m.status == status]

    def executed_nodes(self) -> list[str]:
        """Nodes that ran, whether they succeeded or failed under continue_on_error."""
        with self._lock:
            return [
                node_id
                for node_id, m in self.metrics.items()
                if m.status in (NodeStatus.SUCCESS, NodeStatus.FAILED)
            ]

    def skipped_nodes(self) -> list[str]:
        return self.nodes_with_status(NodeStatus.SKIPPED)

    def finalize(self, status: RunStatus, error: str | None = None) -> None:
        self.status = status
        self.error = error
        self.finished_at = datetime.now(UTC).isoformat()

    @property
    def duration_ms(self) -> float:
        if not self.finished_at:
            return 0.0
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.finished_at)
        return (end - start).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe snapshot of the run."""
        return {
            "workflow_id": self.workflow_id,
            "execution_id": self.execution_id,
            "status": str(self.status),
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": self.duration_ms,
            "error": self.error,
            "data": safe_serialize(self.snapshot_data()),
            "logs": [entry.model_dump(mode="json") for entry in self.logs],
            "metrics": {
                node_id: m.model_dump(mode="json") for node_id, m in dict(self.metrics).items()
            },
        }
