"""Per-node run records and the invalidation cascade."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from .frame import Frame
from .graph import downstream_of
from .pipeline import EdgeDef


class NodeStatus(str, Enum):
    """Lifecycle status of a single node."""
    IDLE = "idle"
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    CACHED = "cached"
    ERROR = "error"


@dataclass(frozen=True)
class NodeState:
    """Run record for one node. Immutable; updates produce a new record."""
    status: NodeStatus = NodeStatus.IDLE
    progress: float = 0.0
    error: Optional[str] = None
    output: Optional[Frame] = None
    cache_key: Optional[str] = None
    device_used: Optional[str] = None
    status_message: Optional[str] = None
    download_progress: Optional[float] = None

    @property
    def is_settled(self) -> bool:
        """True if the node holds a result from a successful run."""
        return self.status in (NodeStatus.DONE, NodeStatus.CACHED)

    def invalidated(self) -> "NodeState":
        """Copy with output and cache key cleared and status reset to idle."""
        return replace(self, status=NodeStatus.IDLE, output=None, cache_key=None)


StateMap = Mapping[str, NodeState]


def invalidate(edges: Iterable[EdgeDef], states: StateMap, node_id: str) -> Dict[str, NodeState]:
    """Return a new state map with node_id and everything downstream invalidated.

    Nodes outside that set keep their records unchanged. Missing records are
    created as idle. Does not run anything.
    """
    next_states = dict(states)
    for target in [node_id, *sorted(downstream_of(node_id, edges))]:
        next_states[target] = next_states.get(target, NodeState()).invalidated()
    return next_states


class StateStore:
    """Keyed in-memory store of node states.

    Records are created lazily on first read. Single writer: the runner and
    the session mutate it from the same event loop; hosts running multiple
    threads must serialize access themselves.
    """

    def __init__(self, states: Optional[Mapping[str, NodeState]] = None):
        self._states: Dict[str, NodeState] = dict(states or {})

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def get_node_state(self, node_id: str) -> NodeState:
        """Get the record for a node, creating an idle one on first reference."""
        state = self._states.get(node_id)
        if state is None:
            state = NodeState()
            self._states[node_id] = state
        return state

    def update_node_state(self, node_id: str, **changes: Any) -> NodeState:
        """Merge a partial update into a node's record and return the new record."""
        if "status" in changes and not isinstance(changes["status"], NodeStatus):
            changes["status"] = NodeStatus(changes["status"])
        state = replace(self.get_node_state(node_id), **changes)
        self._states[node_id] = state
        return state

    def set_node_state(self, node_id: str, state: NodeState) -> None:
        """Replace a node's record wholesale."""
        self._states[node_id] = state

    def invalidate_node(self, node_id: str) -> None:
        """Invalidate a single node without touching its dependents."""
        self._states[node_id] = self.get_node_state(node_id).invalidated()

    def invalidate_downstream(self, node_id: str, edges: Iterable[EdgeDef]) -> None:
        """Invalidate every node downstream of node_id (node_id itself untouched)."""
        for target in downstream_of(node_id, edges):
            self.invalidate_node(target)

    def invalidate_cascade(self, node_id: str, edges: Iterable[EdgeDef]) -> None:
        """Invalidate node_id and everything downstream of it."""
        self._states = invalidate(edges, self._states, node_id)

    def remove(self, node_id: str) -> None:
        """Drop a node's record (only when the node leaves the graph)."""
        self._states.pop(node_id, None)

    def reset(self) -> None:
        """Reset every known record to a fresh idle state."""
        self._states = {node_id: NodeState() for node_id in self._states}

    def clear(self) -> None:
        self._states = {}

    def snapshot(self) -> Dict[str, NodeState]:
        """Shallow copy of all records (records themselves are immutable)."""
        return dict(self._states)
