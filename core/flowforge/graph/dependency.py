"""Dependency graph construction and cycle validation."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

from flowforge.graph.errors import GraphCycleError
from flowforge.graph.workflow import Workflow


@dataclass
class DependencyGraph:
    """In-degree counts and successor lists derived from a workflow's edges."""

    node_ids: list[str] = field(default_factory=list)
    in_degree: dict[str, int] = field(default_factory=dict)
    adjacency: dict[str, list[str]] = field(default_factory=dict)

    @classmethod
    def build(cls, workflow: Workflow) -> DependencyGraph:
        """Build the graph in O(V+E). Edges must reference known nodes."""
        node_ids = [node.id for node in workflow.nodes]
        in_degree = dict.fromkeys(node_ids, 0)
        adjacency: dict[str, list[str]] = {node_id: [] for node_id in node_ids}

        for edge in workflow.edges:
            adjacency[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        return cls(node_ids=node_ids, in_degree=in_degree, adjacency=adjacency)

    def successors(self, node_id: str) -> list[str]:
        return self.adjacency.get(node_id, [])

    def reachable_from(self, node_id: str) -> set[str]:
        """All nodes transitively reachable from ``node_id`` (excluding itself)."""
        reachable: set[str] = set()
        to_visit = list(self.successors(node_id))
        while to_visit:
            current = to_visit.pop()
            if current in reachable:
                continue
            reachable.add(current)
            to_visit.extend(self.successors(current))
        reachable.discard(node_id)
        return reachable


def find_cycle_nodes(graph: DependencyGraph) -> list[str]:
    """
    Kahn reduction over a copy of the in-degrees.

    Returns the ids that could not be removed, i.e. nodes on a cycle or
    downstream of one. Empty for an acyclic graph.
    """
    in_degree = dict(graph.in_degree)
    queue = deque(node_id for node_id in graph.node_ids if in_degree[node_id] == 0)
    removed: set[str] = set()

    while queue:
        node_id = queue.popleft()
        removed.add(node_id)
        for successor in graph.successors(node_id):
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                queue.append(successor)

    return [node_id for node_id in graph.node_ids if node_id not in removed]


def validate_acyclic(graph: DependencyGraph) -> None:
    """Raise GraphCycleError if the graph is not a DAG."""
    unremoved = find_cycle_nodes(graph)
    if unremoved:
        raise GraphCycleError(unremoved)
