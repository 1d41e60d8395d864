"""Structural validation of a pipeline graph.

Every check runs independently and all errors are collected; nothing
short-circuits on the first problem. Checks:
- Duplicate node ids
- Dangling edges (source or target not in the node list)
- Cycles (nodes the topological pass could not place)
- Arity: pure sources take no incoming edges, pure sinks emit no outgoing
  edges, a single-input handle receives at most one edge, and every edge
  uses a port its node type declares

A node with zero incoming edges is NOT an error here; the runner treats it as
a missing input local to that node.
"""

from typing import Dict, List, Sequence, Set, Tuple

from .graph import (
    ArityError,
    CycleDetectedError,
    DanglingEdgeError,
    DuplicateNodeError,
    PipelineError,
)
from .pipeline import EdgeDef, NodeDef
from .schedule import kahn_order


def validate_pipeline(nodes: Sequence[NodeDef], edges: Sequence[EdgeDef]) -> List[PipelineError]:
    """Validate a pipeline and return all structural errors (empty list means valid)."""
    errors: List[PipelineError] = []

    node_by_id: Dict[str, NodeDef] = {}
    for node in nodes:
        if node.id in node_by_id:
            errors.append(DuplicateNodeError(node.id))
            continue
        node_by_id[node.id] = node

    for edge in edges:
        if edge.source not in node_by_id:
            errors.append(DanglingEdgeError(edge.id, edge.source, "source"))
        if edge.target not in node_by_id:
            errors.append(DanglingEdgeError(edge.id, edge.target, "target"))

    _, unplaced = kahn_order(nodes, edges)
    if unplaced:
        errors.append(CycleDetectedError(unplaced))

    errors.extend(_check_arity(node_by_id, edges))
    return errors


def _check_arity(node_by_id: Dict[str, NodeDef], edges: Sequence[EdgeDef]) -> List[PipelineError]:
    errors: List[PipelineError] = []
    incoming: Dict[str, int] = {}
    outgoing: Dict[str, int] = {}
    # Effective edges per (target, handle): duplicate source->target edges
    # into the same handle count once
    handle_sources: Dict[Tuple[str, str], Set[str]] = {}

    for edge in edges:
        source = node_by_id.get(edge.source)
        if source is not None:
            outgoing[edge.source] = outgoing.get(edge.source, 0) + 1
            ports = source.ports
            if not ports.is_sink and edge.source_handle not in ports.outputs:
                errors.append(ArityError(
                    f"Edge '{edge.id}' leaves '{edge.source}' ({source.type}) on unknown "
                    f"output '{edge.source_handle}'; expected one of: {', '.join(ports.outputs)}",
                    node_id=edge.source,
                ))
        target = node_by_id.get(edge.target)
        if target is not None:
            incoming[edge.target] = incoming.get(edge.target, 0) + 1
            ports = target.ports
            if ports.is_source:
                continue
            if edge.target_handle not in ports.inputs:
                errors.append(ArityError(
                    f"Edge '{edge.id}' enters '{edge.target}' ({target.type}) on unknown "
                    f"input '{edge.target_handle}'; expected one of: {', '.join(ports.inputs)}",
                    node_id=edge.target,
                ))
                continue
            handle_sources.setdefault((edge.target, edge.target_handle), set()).add(edge.source)

    for node_id, node in node_by_id.items():
        ports = node.ports
        if ports.is_source and incoming.get(node_id, 0) > 0:
            errors.append(ArityError(
                f"Node '{node_id}' ({node.type}) has no input port but receives "
                f"{incoming[node_id]} incoming edge(s)",
                node_id=node_id,
            ))
        if ports.is_sink and outgoing.get(node_id, 0) > 0:
            errors.append(ArityError(
                f"Node '{node_id}' ({node.type}) has no output port but has "
                f"{outgoing[node_id]} outgoing edge(s)",
                node_id=node_id,
            ))

    for (node_id, handle), sources in handle_sources.items():
        node = node_by_id[node_id]
        if node.ports.is_source or len(sources) <= 1:
            continue
        errors.append(ArityError(
            f"Node '{node_id}' ({node.type}) accepts one input on '{handle}' but "
            f"receives {len(sources)}: {', '.join(sorted(sources))}",
            node_id=node_id,
        ))

    return errors
