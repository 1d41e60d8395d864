"""Adjacency queries over a pipeline's edge list, plus the structural error types."""

from typing import Dict, Iterable, List, Sequence, Set

from pipemagic.codes import ValidationCode
from .pipeline import EdgeDef


class PipelineError(ValueError):
    """Base exception for pipeline structure errors."""
    code: ValidationCode = ValidationCode.INVALID_STRUCTURE

    def __init__(self, message: str, node_id: str | None = None):
        self.message = message
        self.node_id = node_id
        super().__init__(message)


class DuplicateNodeError(PipelineError):
    """Raised when two nodes share an id."""
    code = ValidationCode.DUPLICATE_ID

    def __init__(self, node_id: str):
        super().__init__(f"Duplicate node ID: '{node_id}'", node_id=node_id)


class DanglingEdgeError(PipelineError):
    """Raised when an edge references a node that does not exist."""
    code = ValidationCode.DANGLING_EDGE

    def __init__(self, edge_id: str, missing_id: str, end: str):
        self.edge_id = edge_id
        self.missing_id = missing_id
        self.end = end  # "source" | "target"
        super().__init__(
            f"Edge '{edge_id}' references non-existent {end} node: '{missing_id}'"
        )


class CycleDetectedError(PipelineError):
    """Raised when the graph contains a directed cycle."""
    code = ValidationCode.CYCLE_DETECTED

    def __init__(self, unplaced: Sequence[str]):
        self.unplaced = list(unplaced)
        super().__init__(
            "Cycle detected in pipeline graph:\n  Nodes: " + ", ".join(self.unplaced)
        )


class ArityError(PipelineError):
    """Raised when a node has more connections than its ports allow."""
    code = ValidationCode.ARITY_VIOLATION


def upstream_of(node_id: str, edges: Iterable[EdgeDef]) -> List[str]:
    """Direct upstream node ids, deduplicated, in edge-list order."""
    seen: Set[str] = set()
    upstream: List[str] = []
    for edge in edges:
        if edge.target == node_id and edge.source not in seen:
            seen.add(edge.source)
            upstream.append(edge.source)
    return upstream


def downstream_of(node_id: str, edges: Iterable[EdgeDef]) -> Set[str]:
    """All node ids transitively reachable from node_id (excluding node_id).

    Terminates on cyclic input; cycles are rejected by validation, not here.
    """
    forward: Dict[str, List[str]] = {}
    for edge in edges:
        forward.setdefault(edge.source, []).append(edge.target)

    visited: Set[str] = set()
    stack = [node_id]
    while stack:
        current = stack.pop()
        for target in forward.get(current, []):
            if target not in visited:
                visited.add(target)
                stack.append(target)

    visited.discard(node_id)
    return visited
