"""
Workflow Model - The graph a run executes.

A workflow is a set of typed nodes joined by directed edges. Each node
carries a free-form ``config`` consumed only by the capability bound to its
type tag. Edges carry optional handles (e.g. the true/false outputs of a
condition node in the editor); the scheduler never interprets them.

Two ingestion shapes are accepted for nodes:

    # Flat
    {"id": "n1", "type": "action", "label": "Log", "config": {...}}

    # Editor (position + data envelope)
    {"id": "n1", "type": "action", "position": {"x": 0, "y": 0},
     "data": {"label": "Log", "config": {...}, "inputs": {...}}}
"""

from __future__ import annotations

import json
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, model_validator


class NodeType(StrEnum):
    """Built-in node type tags. Any other tag must be registered externally."""

    TRIGGER = "trigger"
    ACTION = "action"
    CONDITION = "condition"


class WorkflowNode(BaseModel):
    """
    A single step in a workflow.

    Examples:
        WorkflowNode(id="start", type="trigger", label="Manual trigger")

        WorkflowNode(
            id="notify",
            type="action",
            label="Log title",
            config={"actionType": "log", "message": "Title: ${fetch.data.title}"},
        )
    """

    id: str
    type: str = Field(description="Type tag bound to a capability")
    label: str = ""
    config: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    @model_validator(mode="before")
    @classmethod
    def _lift_editor_data(cls, value: Any) -> Any:
        if not isinstance(value, dict) or not isinstance(value.get("data"), dict):
            return value
        value = dict(value)
        data = value.pop("data")
        value.setdefault("label", data.get("label", ""))
        config = dict(data.get("config") or {})
        if data.get("inputs") is not None:
            config.setdefault("inputs", data["inputs"])
        value.setdefault("config", config)
        return value

    @property
    def builtin_type(self) -> NodeType | None:
        """The built-in tag, or None for externally registered types."""
        try:
            return NodeType(self.type)
        except ValueError:
            return None

    @property
    def display_name(self) -> str:
        return self.label or self.id


class WorkflowEdge(BaseModel):
    """A directed dependency: ``target`` runs after ``source`` settles."""

    id: str
    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    source_handle: str | None = Field(default=None, alias="sourceHandle")
    target_handle: str | None = Field(default=None, alias="targetHandle")

    model_config = {"extra": "allow", "populate_by_name": True}


class Workflow(BaseModel):
    """
    Complete workflow definition for one run.

    Built once per run and never mutated by the engine.
    """

    id: str
    name: str = ""
    description: str = ""
    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)
    is_active: bool = Field(default=True, alias="isActive")

    model_config = {"extra": "allow", "populate_by_name": True}

    def get_node(self, node_id: str) -> WorkflowNode | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_outgoing_edges(self, node_id: str) -> list[WorkflowEdge]:
        """Get all edges leaving a node, in definition order."""
        return [e for e in self.edges if e.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[WorkflowEdge]:
        """Get all edges entering a node."""
        return [e for e in self.edges if e.target == node_id]

    def validate(self) -> list[str]:
        """Validate the workflow structure. Returns a list of error messages."""
        errors = []

        if not self.id:
            errors.append("Workflow id must not be empty")

        seen_nodes: set[str] = set()
        for node in self.nodes:
            if not node.id:
                errors.append("Node with empty id")
            elif node.id in seen_nodes:
                errors.append(f"Duplicate node ID: '{node.id}'")
            seen_nodes.add(node.id)

        seen_edges: set[str] = set()
        for edge in self.edges:
            if edge.id in seen_edges:
                errors.append(f"Duplicate edge ID: '{edge.id}'")
            seen_edges.add(edge.id)
            if edge.source not in seen_nodes:
                errors.append(f"Edge '{edge.id}' references missing source '{edge.source}'")
            if edge.target not in seen_nodes:
                errors.append(f"Edge '{edge.id}' references missing target '{edge.target}'")

        return errors


def load_workflow(path: str | Path) -> Workflow:
    """Load a workflow definition from a JSON file."""
    with open(path, encoding="utf-8-sig") as f:
        return Workflow.model_validate(json.load(f))
