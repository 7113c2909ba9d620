"""Shared fixtures and workflow builders for engine tests."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock

import pytest

from flowforge.graph.workflow import Workflow
from flowforge.observability import clear_trace_context


def make_workflow(
    nodes: list[tuple[str, str] | tuple[str, str, dict[str, Any]]],
    edges: list[tuple[str, str]],
    workflow_id: str = "wf-test",
) -> Workflow:
    """Build a workflow from ``(id, type[, config])`` tuples and ``(source, target)`` pairs."""
    node_dicts = []
    for entry in nodes:
        node_id, node_type = entry[0], entry[1]
        config = entry[2] if len(entry) > 2 else {}
        node_dicts.append({"id": node_id, "type": node_type, "label": node_id, "config": config})

    edge_dicts = [
        {"id": f"{source}->{target}", "source": source, "target": target}
        for source, target in edges
    ]
    return Workflow.model_validate({"id": workflow_id, "nodes": node_dicts, "edges": edge_dicts})


@pytest.fixture(autouse=True)
def _reset_trace_context():
    clear_trace_context()
    yield
    clear_trace_context()


@pytest.fixture
def fast_sleep(monkeypatch):
    """Mock asyncio.sleep to avoid real backoff delays. Records requested delays."""
    sleep = AsyncMock()
    monkeypatch.setattr("asyncio.sleep", sleep)
    return sleep
