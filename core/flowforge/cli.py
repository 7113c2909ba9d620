"""
Command-line interface for FlowForge.

Usage:
    flowforge run workflow.json --input '{"key": "value"}'
    flowforge run workflow.json --continue-on-error --max-retries 2 --timeout-ms 5000
    flowforge validate workflow.json
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from flowforge.config import get_log_format, get_log_level
from flowforge.graph.capability import CapabilityRegistry
from flowforge.graph.errors import FlowForgeError
from flowforge.graph.executor import WorkflowExecutor
from flowforge.graph.retry import ExecutionOptions
from flowforge.graph.workflow import Workflow, load_workflow
from flowforge.observability import configure_logging

logger = logging.getLogger(__name__)


def _load(path: str) -> Workflow | None:
    try:
        return load_workflow(Path(path))
    except OSError as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
    except (json.JSONDecodeError, ValidationError) as e:
        print(f"Error: invalid workflow document {path}: {e}", file=sys.stderr)
    return None


def cmd_run(args: argparse.Namespace) -> int:
    """Execute a workflow file and print the run as JSON."""
    workflow = _load(args.workflow)
    if workflow is None:
        return 1

    try:
        input_data = json.loads(args.input) if args.input else {}
    except json.JSONDecodeError as e:
        print(f"Error: --input is not valid JSON: {e}", file=sys.stderr)
        return 1
    if not isinstance(input_data, dict):
        print("Error: --input must be a JSON object", file=sys.stderr)
        return 1

    options = ExecutionOptions.from_config(
        continue_on_error=True if args.continue_on_error else None,
        max_retries=args.max_retries,
        backoff_ms=args.backoff_ms,
        timeout_ms=args.timeout_ms,
    )

    executor = WorkflowExecutor(CapabilityRegistry())
    try:
        run = asyncio.run(executor.execute(workflow, input_data, options))
    except FlowForgeError as e:
        logger.error("Workflow %s failed: %s", workflow.id, e)
        if e.run is not None:
            print(json.dumps(e.run.to_dict(), indent=2, ensure_ascii=False))
        return 1

    print(json.dumps(run.to_dict(), indent=2, ensure_ascii=False))
    return 0


def cmd_validate(args: argparse.Namespace) -> int:
    """Check structure, acyclicity and node types without running anything."""
    workflow = _load(args.workflow)
    if workflow is None:
        return 1

    try:
        WorkflowExecutor(CapabilityRegistry()).prepare(workflow)
    except FlowForgeError as e:
        print(f"Invalid: {e}", file=sys.stderr)
        return 1

    print(f"Valid: {workflow.id} ({len(workflow.nodes)} nodes, {len(workflow.edges)} edges)")
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    """Register the run and validate commands."""
    run_parser = subparsers.add_parser("run", help="Execute a workflow")
    run_parser.add_argument("workflow", help="Path to a workflow JSON file")
    run_parser.add_argument("--input", "-i", default=None, help="Initial data as a JSON object")
    run_parser.add_argument(
        "--continue-on-error",
        action="store_true",
        help="Store an error sentinel for failing nodes instead of aborting",
    )
    run_parser.add_argument("--max-retries", type=int, default=None)
    run_parser.add_argument("--backoff-ms", type=int, default=None)
    run_parser.add_argument("--timeout-ms", type=int, default=None)
    run_parser.set_defaults(func=cmd_run)

    validate_parser = subparsers.add_parser("validate", help="Validate a workflow")
    validate_parser.add_argument("workflow", help="Path to a workflow JSON file")
    validate_parser.set_defaults(func=cmd_validate)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="flowforge",
        description="FlowForge - run workflow graphs",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ERROR")
    parser.add_argument("--log-format", default=None, choices=["auto", "json", "human"])

    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(
        level=args.log_level or get_log_level(),
        format=args.log_format or get_log_format(),
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
