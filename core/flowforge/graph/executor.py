"""
Workflow Executor - Runs workflow graphs level by level.

The executor:
1. Validates the workflow (structure, cycles, node types)
2. Builds in-degree counts and successor lists
3. Runs every ready node (in-degree 0) concurrently, as one level
4. Stores results, prunes branches behind false conditions, and releases
   the successors whose dependencies have all settled
5. Returns the Run (data, logs, metrics)

All nodes of one level settle before the next level starts. Bookkeeping
between levels happens in the coordinating task only, so it needs no locks.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from flowforge.graph.capability import CapabilityRegistry, should_continue
from flowforge.graph.dependency import DependencyGraph, validate_acyclic
from flowforge.graph.errors import DeadlockError, FlowForgeError, GraphValidationError
from flowforge.graph.retry import ExecutionOptions, NodeOutcome, execute_with_policy, skipped_metrics
from flowforge.graph.workflow import NodeType, Workflow, WorkflowNode
from flowforge.observability import set_trace_context
from flowforge.runtime.run import Run
from flowforge.runtime.run_logger import SYSTEM_NODE_ID
from flowforge.runtime.run_schemas import RunStatus


class WorkflowExecutor:
    """
    Executes workflow graphs.

    Example:
        registry = CapabilityRegistry()
        registry.register("http", HttpCapability())

        executor = WorkflowExecutor(registry)
        run = await executor.execute(
            workflow,
            input_data={"user": "ada"},
            options=ExecutionOptions(retry_policy=RetryPolicy(max_retries=2)),
        )
    """

    def __init__(self, registry: CapabilityRegistry | None = None):
        self.registry = registry if registry is not None else CapabilityRegistry()
        self.logger = logging.getLogger(__name__)

    def prepare(self, workflow: Workflow) -> DependencyGraph:
        """
        Pre-execution checks. Nothing runs if any of these fail.

        Raises:
            GraphValidationError: structural problems (duplicate ids, dangling edges)
            GraphCycleError: the graph is not acyclic
            UnknownNodeTypeError: a node type has no registered capability
        """
        errors = workflow.validate()
        if errors:
            raise GraphValidationError(errors)

        graph = DependencyGraph.build(workflow)
        validate_acyclic(graph)

        for node in workflow.nodes:
            self.registry.resolve(node)

        return graph

    async def execute(
        self,
        workflow: Workflow,
        input_data: dict[str, Any] | None = None,
        options: ExecutionOptions | None = None,
    ) -> Run:
        """
        Execute a workflow to completion.

        Args:
            workflow: The workflow to run (not mutated)
            input_data: Initial entries of the run's data map
            options: Retry/timeout/continue-on-error policy

        Returns:
            The completed Run

        Raises:
            FlowForgeError: on validation failure or an untolerated node
                failure. ``exc.run`` holds the partial run.
        """
        options = options or ExecutionOptions()
        run = Run(workflow_id=workflow.id, data=dict(input_data or {}))
        set_trace_context(workflow_id=workflow.id, execution_id=run.execution_id)

        run.logger.info(
            f"Workflow execution started: {workflow.name or workflow.id}",
            node_id=SYSTEM_NODE_ID,
        )

        try:
            graph = self.prepare(workflow)
            await self._run_levels(workflow, graph, run, options)
        except FlowForgeError as e:
            self._fail(run, str(e))
            e.run = run
            raise
        except Exception as e:
            self._fail(run, str(e))
            raise
        except asyncio.CancelledError as e:
            self._fail(run, str(e) or "cancelled")
            raise

        run.finalize(RunStatus.COMPLETED)
        run.logger.info("Workflow execution completed", node_id=SYSTEM_NODE_ID)
        self.logger.info(
            "Workflow %s finished: %d executed, %d skipped",
            workflow.id,
            len(run.executed_nodes()),
            len(run.skipped_nodes()),
        )
        return run

    def _fail(self, run: Run, message: str) -> None:
        run.finalize(RunStatus.FAILED, error=message)
        run.logger.error(f"Workflow execution failed: {message}", node_id=SYSTEM_NODE_ID)

    async def _run_levels(
        self,
        workflow: Workflow,
        graph: DependencyGraph,
        run: Run,
        options: ExecutionOptions,
    ) -> None:
        nodes_by_id = {node.id: node for node in workflow.nodes}
        in_degree = dict(graph.in_degree)
        executed: set[str] = set()
        skipped: set[str] = set()

        ready = [node_id for node_id in graph.node_ids if in_degree[node_id] == 0]
        level = 0

        while ready:
            level += 1
            self.logger.debug("Level %d: %s", level, ready)
            nodes = [nodes_by_id[node_id] for node_id in ready]

            outcomes = await asyncio.gather(
                *(self._execute_node(node, run, options) for node in nodes),
                return_exceptions=True,
            )

            # Record every settled node before surfacing a fatal failure
            fatal: BaseException | None = None
            for node, outcome in zip(nodes, outcomes, strict=True):
                if isinstance(outcome, BaseException):
                    fatal = fatal or outcome
                    continue
                run.set_result(node.id, outcome.result)
                executed.add(node.id)
            if fatal is not None:
                raise fatal

            # Branch pruning: everything downstream of a false condition
            newly_skipped: list[str] = []
            for node, outcome in zip(nodes, outcomes, strict=True):
                if node.type != NodeType.CONDITION or should_continue(outcome.result):
                    continue
                run.logger.info("Condition not met, skipping downstream nodes", node_id=node.id)
                # Whole closure, even nodes that also have a live incoming path
                closure = graph.reachable_from(node.id)
                for target in graph.node_ids:
                    if target not in closure or target in executed or target in skipped:
                        continue
                    skipped.add(target)
                    newly_skipped.append(target)
                    run.record_metrics(skipped_metrics(target))
                    run.logger.info("Node skipped", node_id=target)

            # Release successors of everything that settled this round
            next_ready: list[str] = []
            for node_id in [node.id for node in nodes] + newly_skipped:
                for successor in graph.successors(node_id):
                    in_degree[successor] -= 1
                    if (
                        in_degree[successor] == 0
                        and successor not in executed
                        and successor not in skipped
                        and successor not in next_ready
                    ):
                        next_ready.append(successor)

            ready = [node_id for node_id in graph.node_ids if node_id in next_ready]

        settled = len(executed) + len(skipped)
        if settled < len(graph.node_ids):
            pending = [n for n in graph.node_ids if n not in executed and n not in skipped]
            raise DeadlockError(pending)

    async def _execute_node(
        self,
        node: WorkflowNode,
        run: Run,
        options: ExecutionOptions,
    ) -> NodeOutcome:
        # Runs inside its own task (via gather), so this node_id stays local
        set_trace_context(node_id=node.id)
        run.logger.info(f"Executing node: {node.display_name}", node_id=node.id)

        capability = self.registry.resolve(node)
        outcome = await execute_with_policy(node, capability, run, options)

        if outcome.error is None:
            run.logger.info("Node executed successfully", data=outcome.result, node_id=node.id)
        return outcome


async def execute_workflow(
    workflow: Workflow,
    input_data: dict[str, Any] | None = None,
    options: ExecutionOptions | None = None,
    registry: CapabilityRegistry | None = None,
) -> Run:
    """Convenience entry point: run ``workflow`` with a fresh executor."""
    return await WorkflowExecutor(registry).execute(workflow, input_data, options)
