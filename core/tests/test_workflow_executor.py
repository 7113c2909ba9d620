"""
Tests for WorkflowExecutor: level scheduling, pruning, failure handling.
"""

import asyncio

import pytest

from flowforge.graph.capability import CapabilityRegistry
from flowforge.graph.errors import (
    DeadlockError,
    GraphCycleError,
    GraphValidationError,
    NodeExecutionError,
    UnknownNodeTypeError,
)
from flowforge.graph.executor import WorkflowExecutor, execute_workflow
from flowforge.graph.retry import ExecutionOptions, RetryPolicy
from flowforge.runtime.run_schemas import LogLevel, NodeStatus, RunStatus

from .conftest import make_workflow


@pytest.fixture
def calls():
    return []


@pytest.fixture
def registry(calls):
    """Built-ins plus a ``record`` type that appends config['name'] to ``calls``."""
    registry = CapabilityRegistry()

    async def record(run, config):
        calls.append(config["name"])
        return {"name": config["name"], "seen": sorted(run.data)}

    async def boom(run, config):
        raise RuntimeError(config.get("message", "kaput"))

    registry.register_function("record", record)
    registry.register_function("boom", boom)
    return registry


def rec(node_id):
    return (node_id, "record", {"name": node_id})


class TestScheduling:
    @pytest.mark.asyncio
    async def test_linear_chain(self, registry, calls):
        workflow = make_workflow([("t", "trigger"), rec("a"), rec("b")], [("t", "a"), ("a", "b")])

        run = await WorkflowExecutor(registry).execute(workflow)

        assert calls == ["a", "b"]
        assert run.status == RunStatus.COMPLETED
        assert run.data["b"] == {"name": "b", "seen": ["a", "t"]}

    @pytest.mark.asyncio
    async def test_diamond_merge_runs_once_after_both_parents(self, registry, calls):
        workflow = make_workflow(
            [("a", "trigger"), rec("b"), rec("c"), rec("d")],
            [("a", "b"), ("a", "c"), ("b", "d"), ("c", "d")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert calls.count("d") == 1
        assert calls.index("d") > calls.index("b")
        assert calls.index("d") > calls.index("c")
        assert set(run.data["d"]["seen"]) == {"a", "b", "c"}

    @pytest.mark.asyncio
    async def test_every_node_executes_exactly_once(self, registry, calls):
        ids = ["a", "b", "c", "d", "e", "f"]
        workflow = make_workflow(
            [rec(i) for i in ids],
            [("a", "c"), ("b", "c"), ("a", "d"), ("c", "e"), ("d", "e"), ("e", "f"), ("b", "f")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert sorted(calls) == ids
        assert sorted(run.executed_nodes()) == ids
        assert run.skipped_nodes() == []

    @pytest.mark.asyncio
    async def test_nodes_in_a_level_run_concurrently(self):
        barrier = asyncio.Barrier(2)
        registry = CapabilityRegistry()

        async def meet(run, config):
            await barrier.wait()
            return "met"

        registry.register_function("meet", meet)
        workflow = make_workflow(
            [("t", "trigger"), ("x", "meet"), ("y", "meet")], [("t", "x"), ("t", "y")]
        )

        # Sequential execution would leave the barrier waiting until the timeout
        run = await WorkflowExecutor(registry).execute(
            workflow, options=ExecutionOptions(timeout_ms=2000)
        )

        assert run.data["x"] == run.data["y"] == "met"

    @pytest.mark.asyncio
    async def test_input_data_seeds_the_run_without_being_mutated(self, registry):
        input_data = {"user": {"name": "Ada"}}
        workflow = make_workflow(
            [("t", "trigger"), ("log", "action", {"message": "Hello ${user.name}"})],
            [("t", "log")],
        )

        run = await WorkflowExecutor(registry).execute(workflow, input_data=input_data)

        assert run.data["log"] == {"action": "logged", "message": "Hello Ada"}
        assert run.data["t"]["data"] == {"user": {"name": "Ada"}}
        assert input_data == {"user": {"name": "Ada"}}

    @pytest.mark.asyncio
    async def test_workflow_is_not_mutated(self, registry):
        workflow = make_workflow([("t", "trigger"), rec("a")], [("t", "a")])
        before = workflow.model_dump()

        await WorkflowExecutor(registry).execute(workflow)

        assert workflow.model_dump() == before

    @pytest.mark.asyncio
    async def test_empty_workflow_completes(self):
        run = await execute_workflow(make_workflow([], []))
        assert run.status == RunStatus.COMPLETED
        assert run.data == {}

    @pytest.mark.asyncio
    async def test_run_logs_bracket_the_execution(self, registry):
        workflow = make_workflow([("t", "trigger"), rec("a")], [("t", "a")])

        run = await WorkflowExecutor(registry).execute(workflow)

        assert run.logs[0].message.startswith("Workflow execution started")
        assert run.logs[0].node_id == "system"
        assert run.logs[-1].message == "Workflow execution completed"
        assert [e.message for e in run.logger.for_node("a")] == [
            "Executing node: a",
            "Node executed successfully",
        ]


class TestBranchPruning:
    @pytest.mark.asyncio
    async def test_false_condition_skips_downstream_but_not_siblings(self, registry, calls):
        workflow = make_workflow(
            [
                ("t", "trigger"),
                ("cond", "condition", {"condition": "false"}),
                rec("x"),
                rec("y"),
                rec("sibling"),
            ],
            [("t", "cond"), ("cond", "x"), ("x", "y"), ("t", "sibling")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert calls == ["sibling"]
        assert sorted(run.skipped_nodes()) == ["x", "y"]
        assert run.metrics["x"].status == NodeStatus.SKIPPED
        assert run.metrics["x"].duration_ms == 0
        assert "x" not in run.data
        assert run.data["cond"]["continue"] is False
        assert run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_true_condition_lets_downstream_run(self, registry, calls):
        workflow = make_workflow(
            [("t", "trigger"), ("cond", "condition", {"condition": "${t.triggered}"}), rec("x")],
            [("t", "cond"), ("cond", "x")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert calls == ["x"]
        assert run.skipped_nodes() == []

    @pytest.mark.asyncio
    async def test_merge_node_with_a_live_path_is_still_skipped(self, registry, calls):
        workflow = make_workflow(
            [("t", "trigger"), ("cond", "condition", {"condition": "false"}), rec("live"), rec("m")],
            [("t", "cond"), ("t", "live"), ("cond", "m"), ("live", "m")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert calls == ["live"]
        assert run.skipped_nodes() == ["m"]
        assert run.status == RunStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_pruned_nodes_are_logged(self, registry):
        workflow = make_workflow(
            [("t", "trigger"), ("cond", "condition", {"condition": "false"}), rec("x")],
            [("t", "cond"), ("cond", "x")],
        )

        run = await WorkflowExecutor(registry).execute(workflow)

        assert [e.message for e in run.logger.for_node("x")] == ["Node skipped"]


class TestValidationFailures:
    @pytest.mark.asyncio
    async def test_cycle_is_rejected_before_anything_runs(self, registry, calls):
        workflow = make_workflow(
            [rec("start"), rec("x"), rec("y")], [("start", "x"), ("x", "y"), ("y", "x")]
        )

        with pytest.raises(GraphCycleError) as exc_info:
            await WorkflowExecutor(registry).execute(workflow)

        assert set(exc_info.value.node_ids) == {"x", "y"}
        assert calls == []
        assert exc_info.value.run.status == RunStatus.FAILED
        assert exc_info.value.run.metrics == {}

    @pytest.mark.asyncio
    async def test_unknown_type_is_rejected_before_anything_runs(self, registry, calls):
        workflow = make_workflow([rec("a"), ("b", "sheets")], [("a", "b")])

        with pytest.raises(UnknownNodeTypeError) as exc_info:
            await WorkflowExecutor(registry).execute(workflow)

        assert "No executor found for node type: sheets" in str(exc_info.value)
        assert calls == []

    @pytest.mark.asyncio
    async def test_structural_errors_are_rejected(self, registry):
        workflow = make_workflow([rec("a")], [("a", "ghost")])

        with pytest.raises(GraphValidationError) as exc_info:
            await WorkflowExecutor(registry).execute(workflow)

        assert exc_info.value.errors == ["Edge 'a->ghost' references missing target 'ghost'"]

    def test_prepare_returns_the_dependency_graph(self, registry):
        workflow = make_workflow([("t", "trigger"), rec("a")], [("t", "a")])
        graph = WorkflowExecutor(registry).prepare(workflow)
        assert graph.in_degree == {"t": 0, "a": 1}


class TestNodeFailures:
    @pytest.mark.asyncio
    async def test_fatal_failure_aborts_and_keeps_partial_run(self, registry, calls):
        workflow = make_workflow(
            [("t", "trigger"), ("bad", "boom"), rec("sibling"), rec("after")],
            [("t", "bad"), ("t", "sibling"), ("bad", "after")],
        )

        with pytest.raises(NodeExecutionError) as exc_info:
            await WorkflowExecutor(registry).execute(workflow)

        run = exc_info.value.run
        assert run.status == RunStatus.FAILED
        assert run.error
        assert "sibling" in run.data
        assert "bad" not in run.data
        assert "after" not in calls
        assert run.metrics["bad"].status == NodeStatus.FAILED
        assert run.logs[-1].level == LogLevel.ERROR
        assert run.logs[-1].message.startswith("Workflow execution failed")

    @pytest.mark.asyncio
    async def test_continue_on_error_feeds_sentinel_downstream(self, registry):
        workflow = make_workflow(
            [
                ("t", "trigger"),
                ("bad", "boom", {"message": "upstream down"}),
                ("report", "action", {"message": "failed with: ${bad.error}"}),
            ],
            [("t", "bad"), ("bad", "report")],
        )

        run = await WorkflowExecutor(registry).execute(
            workflow, options=ExecutionOptions(continue_on_error=True)
        )

        assert run.status == RunStatus.COMPLETED
        assert run.data["bad"] == {"error": "upstream down", "skipped": True}
        assert run.data["report"]["message"] == "failed with: upstream down"
        assert run.metrics["bad"].status == NodeStatus.FAILED
        assert "bad" in run.executed_nodes()

    @pytest.mark.asyncio
    async def test_retries_are_recorded_per_node(self, fast_sleep):
        attempts = {"n": 0}
        registry = CapabilityRegistry()

        async def flaky(run, config):
            attempts["n"] += 1
            if attempts["n"] < 3:
                raise ConnectionError("reset")
            return "ok"

        registry.register_function("flaky", flaky)
        workflow = make_workflow([("t", "trigger"), ("f", "flaky")], [("t", "f")])
        options = ExecutionOptions(retry_policy=RetryPolicy(max_retries=2, backoff_ms=100))

        run = await WorkflowExecutor(registry).execute(workflow, options=options)

        assert run.data["f"] == "ok"
        assert run.metrics["f"].retries == 2
        assert run.metrics["t"].retries == 0

    @pytest.mark.asyncio
    async def test_unsettled_nodes_raise_deadlock(self, registry, monkeypatch):
        monkeypatch.setattr("flowforge.graph.executor.validate_acyclic", lambda graph: None)
        workflow = make_workflow(
            [("t", "trigger"), rec("x"), rec("y")], [("t", "x"), ("x", "y"), ("y", "x")]
        )

        with pytest.raises(DeadlockError) as exc_info:
            await WorkflowExecutor(registry).execute(workflow)

        assert exc_info.value.pending_ids == ["x", "y"]
        assert exc_info.value.run.data.keys() == {"t"}

    @pytest.mark.asyncio
    async def test_timeout_with_tolerance_feeds_sentinel_downstream(self):
        registry = CapabilityRegistry()

        async def hang(run, config):
            await asyncio.Event().wait()

        registry.register_function("hang", hang)
        workflow = make_workflow(
            [
                ("t", "trigger"),
                ("slow", "hang"),
                ("report", "action", {"message": "slow node: ${slow.error}"}),
            ],
            [("t", "slow"), ("slow", "report")],
        )

        run = await WorkflowExecutor(registry).execute(
            workflow, options=ExecutionOptions(continue_on_error=True, timeout_ms=20)
        )

        assert run.status == RunStatus.COMPLETED
        assert run.data["slow"] == {"error": "Node 'slow' timed out after 20ms", "skipped": True}
        assert run.data["report"]["message"] == "slow node: Node 'slow' timed out after 20ms"
        assert run.metrics["slow"].status == NodeStatus.FAILED

    @pytest.mark.asyncio
    async def test_abandoned_node_does_not_write_after_the_run_returns(self):
        registry = CapabilityRegistry()

        async def slow_writer(run, config):
            await asyncio.sleep(0.2)
            run.logger.info("late write after abandonment")
            return "done"

        registry.register_function("slow_writer", slow_writer)
        workflow = make_workflow([("t", "trigger"), ("w", "slow_writer")], [("t", "w")])

        run = await WorkflowExecutor(registry).execute(
            workflow, options=ExecutionOptions(continue_on_error=True, timeout_ms=20)
        )
        entries_at_return = len(run.logs)
        await asyncio.sleep(0.3)

        assert run.status == RunStatus.COMPLETED
        assert len(run.logs) == entries_at_return
        assert all(e.message != "late write after abandonment" for e in run.logs)

    @pytest.mark.asyncio
    async def test_cancellation_raised_by_a_node_finalizes_the_run(self):
        registry = CapabilityRegistry()
        runs = []

        async def cancel_itself(run, config):
            runs.append(run)
            raise asyncio.CancelledError()

        registry.register_function("cancel_itself", cancel_itself)
        workflow = make_workflow([("t", "trigger"), ("c", "cancel_itself")], [("t", "c")])

        with pytest.raises(asyncio.CancelledError):
            await WorkflowExecutor(registry).execute(workflow)

        run = runs[0]
        assert run.status == RunStatus.FAILED
        assert run.error == "cancelled"
        assert run.finished_at is not None
        assert run.logs[-1].message == "Workflow execution failed: cancelled"
