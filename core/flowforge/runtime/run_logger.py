"""RunLogger: append-only record of what happened during a run.

Each entry is mirrored to the Python logger so the same events show up in
the process logs (JSON or human-readable, see ``flowforge.observability``).
Attached data goes through ``safe_serialize`` first, so self-referential
results never break logging.

Entries default their ``node_id`` to the one in the current trace context.
The executor sets it per node task, so capabilities can log without knowing
which node they are bound to::

    run.logger.info("Action executed: hello")   # node_id comes from context
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime
from typing import Any

from flowforge.observability import get_trace_context
from flowforge.runtime.run_schemas import ExecutionLog, LogLevel
from flowforge.runtime.serialization import safe_serialize

logger = logging.getLogger(__name__)

SYSTEM_NODE_ID = "system"

_PY_LEVELS = {
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class RunLogger:
    """Append-only log sequence for one run.

    Thread-safe: appends are serialized with a lock, and entries are
    immutable once appended.
    """

    def __init__(self) -> None:
        self._entries: list[ExecutionLog] = []
        self._lock = threading.Lock()

    def log(
        self,
        level: LogLevel | str,
        message: str,
        data: Any = None,
        node_id: str | None = None,
    ) -> ExecutionLog:
        """Append an entry. Returns the stored entry."""
        level = LogLevel(level)
        if node_id is None:
            node_id = get_trace_context().get("node_id", SYSTEM_NODE_ID)

        entry = ExecutionLog(
            node_id=node_id,
            timestamp=datetime.now(UTC).isoformat(),
            level=level,
            message=message,
            data=safe_serialize(data) if data is not None else None,
        )

        with self._lock:
            self._entries.append(entry)

        logger.log(
            _PY_LEVELS[level],
            "[%s] %s",
            node_id,
            message,
            extra={"node_id": node_id, "event": "run_log"},
        )
        return entry

    def info(self, message: str, data: Any = None, node_id: str | None = None) -> ExecutionLog:
        return self.log(LogLevel.INFO, message, data, node_id)

    def warn(self, message: str, data: Any = None, node_id: str | None = None) -> ExecutionLog:
        return self.log(LogLevel.WARN, message, data, node_id)

    def error(self, message: str, data: Any = None, node_id: str | None = None) -> ExecutionLog:
        return self.log(LogLevel.ERROR, message, data, node_id)

    @property
    def entries(self) -> tuple[ExecutionLog, ...]:
        """Snapshot of the log sequence in append order."""
        with self._lock:
            return tuple(self._entries)

    def for_node(self, node_id: str) -> list[ExecutionLog]:
        return [e for e in self.entries if e.node_id == node_id]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
