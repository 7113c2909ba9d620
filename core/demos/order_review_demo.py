#!/usr/bin/env python3
"""
Order Review Demo

Runs examples/workflows/order_review.json with one custom capability:

  start ─┬─> score ──> is_large ──> notify
         └─> audit ──> summary

"score" is registered from a plain function. Orders above the threshold
reach "notify"; smaller ones prune it and leave the audit branch untouched.

Usage:
    cd core
    python demos/order_review_demo.py 250
"""

import asyncio
import json
import logging
import sys
from pathlib import Path

from flowforge import CapabilityRegistry, ExecutionOptions, RetryPolicy, WorkflowExecutor
from flowforge.graph.workflow import load_workflow
from flowforge.observability import configure_logging

logger = logging.getLogger("order_review_demo")

WORKFLOW_PATH = Path(__file__).resolve().parents[2] / "examples" / "workflows" / "order_review.json"
LARGE_ORDER_THRESHOLD = 100


async def score_order(run, config):
    order = run.snapshot_data().get("order", {})
    total = float(order.get(config.get("field", "total"), 0))
    return {"total": total, "large": total >= LARGE_ORDER_THRESHOLD}


async def main(total: float) -> None:
    configure_logging(level="INFO", format="human")

    registry = CapabilityRegistry()
    registry.register_function("score", score_order)

    workflow = load_workflow(WORKFLOW_PATH)
    options = ExecutionOptions(retry_policy=RetryPolicy(max_retries=1, backoff_ms=200))

    run = await WorkflowExecutor(registry).execute(
        workflow,
        input_data={"order": {"id": "ord-42", "customer": "Ada", "total": total}},
        options=options,
    )

    logger.info("Executed: %s", run.executed_nodes())
    logger.info("Skipped:  %s", run.skipped_nodes())
    print(json.dumps(run.to_dict()["data"], indent=2))


if __name__ == "__main__":
    asyncio.run(main(float(sys.argv[1]) if len(sys.argv) > 1 else 250))
