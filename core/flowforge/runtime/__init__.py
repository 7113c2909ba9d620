"""Run records: data map, log sequence and per-node metrics."""

from flowforge.runtime.run import Run, generate_execution_id
from flowforge.runtime.run_logger import RunLogger
from flowforge.runtime.run_schemas import (
    ExecutionLog,
    LogLevel,
    NodeMetrics,
    NodeStatus,
    RunStatus,
)
from flowforge.runtime.serialization import CIRCULAR_MARKER, safe_serialize

__all__ = [
    "Run",
    "RunLogger",
    "ExecutionLog",
    "LogLevel",
    "NodeMetrics",
    "NodeStatus",
    "RunStatus",
    "generate_execution_id",
    "safe_serialize",
    "CIRCULAR_MARKER",
]
