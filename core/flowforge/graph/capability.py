"""
Capabilities - The executable behaviour bound to a node's type tag.

Every capability exposes one coroutine::

    async def execute(self, run: Run, config: dict[str, Any]) -> Any

It may raise; the retry wrapper decides what happens next. Capabilities are
raced against the node timeout and cancelled when they lose, so they must
not leave background work that keeps mutating the run afterwards.

Built-in types (see ``NodeType``): ``trigger``, ``action``, ``condition``.
Integrations (HTTP calls, chat messages, mail, spreadsheets, text
generation) are registered on a ``CapabilityRegistry`` by the embedding
application::

    registry = CapabilityRegistry()
    registry.register("http", MyHttpCapability())

    async def uppercase(run, config):
        return config["text"].upper()

    registry.register_function("action.uppercase", uppercase)
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from flowforge.graph.errors import UnknownNodeTypeError
from flowforge.graph.variables import resolve_variables
from flowforge.graph.workflow import NodeType, WorkflowNode

if TYPE_CHECKING:
    from flowforge.runtime.run import Run

logger = logging.getLogger(__name__)

ACTION_PREFIX = "action."


class Capability(ABC):
    """Executable behaviour for one node type."""

    @abstractmethod
    async def execute(self, run: Run, config: dict[str, Any]) -> Any:
        """Run the node and return its result."""


class FunctionCapability(Capability):
    """Adapts an ``async def func(run, config)`` to a Capability.

    Only coroutine functions are accepted. A node that loses its timeout race
    is cancelled; a worker thread could not be, and would keep writing to the
    run after it was abandoned.
    """

    def __init__(self, func: Callable[..., Any]):
        if not _is_coroutine_callable(func):
            raise TypeError(
                f"Capability function {func!r} must be a coroutine function (async def)"
            )
        self.func = func

    async def execute(self, run: Run, config: dict[str, Any]) -> Any:
        return await self.func(run, config)


def _is_coroutine_callable(func: Any) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )


class TriggerCapability(Capability):
    """Entry step: marks the run as triggered and exposes the current data."""

    async def execute(self, run: Run, config: dict[str, Any]) -> Any:
        return {
            "triggered": True,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": run.snapshot_data(),
        }


class ActionCapability(Capability):
    """
    Generic action, dispatched on ``config["actionType"]``.

    - log:       resolve ``${...}`` in ``message`` and append it to the run log
    - transform: echo ``inputs`` (or the current run data)
    - anything registered as ``action.<type>`` is delegated to that capability
    """

    def __init__(self, registry: CapabilityRegistry):
        self._registry = registry

    async def execute(self, run: Run, config: dict[str, Any]) -> Any:
        action_type = config.get("actionType") or "log"

        if action_type == "log":
            message = resolve_variables(config.get("message") or "No message", run.snapshot_data())
            run.logger.info(f"Action executed: {message}")
            return {"action": "logged", "message": message}

        if action_type == "transform":
            inputs = config.get("inputs")
            return {"transformed": True, "result": inputs if inputs else run.snapshot_data()}

        delegate_type = f"{ACTION_PREFIX}{action_type}"
        if delegate_type in self._registry:
            return await self._registry.get(delegate_type).execute(run, config)

        logger.debug("No handler for action type '%s'; returning marker", action_type)
        return {"action": action_type, "executed": True}


class ConditionCapability(Capability):
    """
    Boolean gate. ``config["condition"]`` is resolved against the run data,
    then ``"true"`` / ``"false"`` decide; any other expression falls back to
    the truthiness of ``inputs`` (or the run data).
    """

    async def execute(self, run: Run, config: dict[str, Any]) -> Any:
        condition = config.get("condition")
        if condition is None or condition == "":
            condition = "true"
        data = run.snapshot_data()
        expression = resolve_variables(str(condition), data).strip().lower()

        if expression == "true":
            result = True
        elif expression == "false":
            result = False
        else:
            inputs = config.get("inputs")
            result = bool(inputs if inputs is not None else data)

        return {"condition": condition, "result": result, "continue": result}


def should_continue(result: Any) -> bool:
    """Whether downstream nodes of a condition should run, given its result."""
    if isinstance(result, bool):
        return result
    if isinstance(result, dict):
        return result.get("continue") is True
    return bool(result)


class CapabilityRegistry:
    """
    Maps node type tags to capabilities.

    Populate it at startup, then share it read-only across runs. Each
    executor owns its registry; there is no process-wide instance.
    """

    def __init__(self, include_builtins: bool = True):
        self._capabilities: dict[str, Capability] = {}
        if include_builtins:
            self.register(NodeType.TRIGGER, TriggerCapability())
            self.register(NodeType.ACTION, ActionCapability(self))
            self.register(NodeType.CONDITION, ConditionCapability())

    def register(self, node_type: str, capability: Capability) -> None:
        """Register (or replace) the capability for a type tag."""
        if not hasattr(capability, "execute"):
            raise TypeError(f"Capability for '{node_type}' must define execute(run, config)")
        self._capabilities[str(node_type)] = capability

    def register_function(self, node_type: str, func: Callable[..., Any]) -> None:
        """Register ``async def func(run, config)`` as a capability.

        Raises TypeError for sync callables.
        """
        self.register(node_type, FunctionCapability(func))

    def unregister(self, node_type: str) -> None:
        self._capabilities.pop(str(node_type), None)

    def get(self, node_type: str) -> Capability:
        """Look up by tag. Raises KeyError if missing."""
        return self._capabilities[str(node_type)]

    def resolve(self, node: WorkflowNode) -> Capability:
        """Capability bound to ``node``'s type."""
        capability = self._capabilities.get(node.type)
        if capability is None:
            raise UnknownNodeTypeError(node.id, node.type)
        return capability

    def types(self) -> list[str]:
        return sorted(self._capabilities)

    def __contains__(self, node_type: object) -> bool:
        return str(node_type) in self._capabilities
