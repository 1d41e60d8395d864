"""Deterministic topological ordering (Kahn's algorithm)."""

import heapq
from typing import Dict, List, Sequence, Tuple

from .graph import CycleDetectedError
from .pipeline import EdgeDef, NodeDef


def kahn_order(nodes: Sequence[NodeDef], edges: Sequence[EdgeDef]) -> Tuple[List[str], List[str]]:
    """Run Kahn's algorithm and return (placed order, unplaced ids).

    Ties are broken by original node-list order, so an unchanged graph always
    produces the same order. Edges with an endpoint outside the node list are
    ignored; the validator reports them separately.

    Returns:
        Tuple of the placed node ids and the ids that could not be placed
        (non-empty only when the graph contains a cycle), both in node-list order.
    """
    index: Dict[str, int] = {}
    for position, node in enumerate(nodes):
        index.setdefault(node.id, position)
    node_ids = list(index)

    in_degree: Dict[str, int] = {node_id: 0 for node_id in node_ids}
    successors: Dict[str, List[str]] = {node_id: [] for node_id in node_ids}
    for edge in edges:
        if edge.source not in index or edge.target not in index:
            continue
        successors[edge.source].append(edge.target)
        in_degree[edge.target] += 1

    # Heap of node-list positions: smallest position is always placed first
    ready: List[int] = [index[n] for n in node_ids if in_degree[n] == 0]
    heapq.heapify(ready)
    order: List[str] = []

    while ready:
        current = node_ids[heapq.heappop(ready)]
        order.append(current)
        for target in successors[current]:
            in_degree[target] -= 1
            if in_degree[target] == 0:
                heapq.heappush(ready, index[target])

    placed = set(order)
    unplaced = [n for n in node_ids if n not in placed]
    return order, unplaced


def topo_sort(nodes: Sequence[NodeDef], edges: Sequence[EdgeDef]) -> List[str]:
    """Compute the execution order for a pipeline.

    Raises:
        CycleDetectedError: If any node could not be placed.
    """
    order, unplaced = kahn_order(nodes, edges)
    if unplaced:
        raise CycleDetectedError(unplaced)
    return order
