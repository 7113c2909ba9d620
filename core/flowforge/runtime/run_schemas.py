"""Pydantic models for the records a run produces.

- ExecutionLog: one append-only log entry (node id, level, message, data)
- NodeMetrics:  per-node timing, retry count and final status
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class LogLevel(StrEnum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class NodeStatus(StrEnum):
    """Final state of a node within a run."""

    SUCCESS = "success"
    FAILED = "failed"  # Failure tolerated via continue_on_error
    SKIPPED = "skipped"  # Pruned by a condition


class RunStatus(StrEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ExecutionLog(BaseModel):
    """A single entry in a run's log sequence."""

    node_id: str
    timestamp: str  # ISO timestamp
    level: LogLevel = LogLevel.INFO
    message: str
    data: Any = None  # Already passed through safe_serialize

    model_config = {"frozen": True}


class NodeMetrics(BaseModel):
    """Timing and retry record for one node."""

    node_id: str
    start_time: str = ""  # ISO timestamp
    end_time: str = ""  # ISO timestamp
    duration_ms: float = 0.0
    retries: int = 0
    status: NodeStatus = NodeStatus.SUCCESS
    error: str | None = None
    attempts: list[str] = Field(default_factory=list)  # Error message per failed attempt
