"""Workflow graphs: model, validation, capabilities and execution."""

from flowforge.graph.capability import (
    ActionCapability,
    Capability,
    CapabilityRegistry,
    ConditionCapability,
    FunctionCapability,
    TriggerCapability,
    should_continue,
)
from flowforge.graph.dependency import DependencyGraph, find_cycle_nodes, validate_acyclic
from flowforge.graph.errors import (
    DeadlockError,
    FlowForgeError,
    GraphCycleError,
    GraphValidationError,
    NodeExecutionError,
    NodeTimeoutError,
    UnknownNodeTypeError,
)
from flowforge.graph.executor import WorkflowExecutor, execute_workflow
from flowforge.graph.retry import ExecutionOptions, NodeOutcome, RetryPolicy, execute_with_policy
from flowforge.graph.variables import get_nested_value, resolve_variables
from flowforge.graph.workflow import NodeType, Workflow, WorkflowEdge, WorkflowNode, load_workflow

__all__ = [
    # Model
    "Workflow",
    "WorkflowNode",
    "WorkflowEdge",
    "NodeType",
    "load_workflow",
    # Dependency graph
    "DependencyGraph",
    "find_cycle_nodes",
    "validate_acyclic",
    # Capabilities
    "Capability",
    "CapabilityRegistry",
    "FunctionCapability",
    "TriggerCapability",
    "ActionCapability",
    "ConditionCapability",
    "should_continue",
    # Execution
    "WorkflowExecutor",
    "execute_workflow",
    "ExecutionOptions",
    "RetryPolicy",
    "NodeOutcome",
    "execute_with_policy",
    # Variables
    "resolve_variables",
    "get_nested_value",
    # Errors
    "FlowForgeError",
    "GraphValidationError",
    "GraphCycleError",
    "UnknownNodeTypeError",
    "NodeTimeoutError",
    "NodeExecutionError",
    "DeadlockError",
]
