"""
FlowForge - run workflow graphs of triggers, conditions and pluggable capabilities.

Quick start:
    >>> import asyncio
    >>> from flowforge import Workflow, execute_workflow
    >>> workflow = Workflow.model_validate({
    ...     "id": "wf-1",
    ...     "nodes": [
    ...         {"id": "start", "type": "trigger", "label": "Start"},
    ...         {"id": "say", "type": "action",
    ...          "config": {"actionType": "log", "message": "Hi ${user}"}},
    ...     ],
    ...     "edges": [{"id": "e1", "source": "start", "target": "say"}],
    ... })
    >>> run = asyncio.run(execute_workflow(workflow, {"user": "ada"}))
"""

from flowforge.graph import (
    Capability,
    CapabilityRegistry,
    DeadlockError,
    ExecutionOptions,
    FlowForgeError,
    GraphCycleError,
    GraphValidationError,
    NodeExecutionError,
    NodeTimeoutError,
    NodeType,
    RetryPolicy,
    UnknownNodeTypeError,
    Workflow,
    WorkflowEdge,
    WorkflowExecutor,
    WorkflowNode,
    execute_workflow,
    load_workflow,
    resolve_variables,
)
from flowforge.runtime import ExecutionLog, NodeMetrics, NodeStatus, Run, RunStatus

__version__ = "0.1.0"

__all__ = [
    "Workflow",
    "WorkflowNode",
    "WorkflowEdge",
    "NodeType",
    "load_workflow",
    "Capability",
    "CapabilityRegistry",
    "WorkflowExecutor",
    "execute_workflow",
    "ExecutionOptions",
    "RetryPolicy",
    "resolve_variables",
    "Run",
    "RunStatus",
    "NodeStatus",
    "NodeMetrics",
    "ExecutionLog",
    "FlowForgeError",
    "GraphValidationError",
    "GraphCycleError",
    "UnknownNodeTypeError",
    "NodeTimeoutError",
    "NodeExecutionError",
    "DeadlockError",
]
