"""Editing session: an explicitly owned pipeline, its node states and input images.

Every edit that can change a node's result invalidates that node and its
dependents so the next run recomputes them instead of reporting stale
cache hits. Nothing here runs a node by itself.
"""

import logging
import secrets
from typing import Any, Callable, Dict, Mapping, Optional

from pipemagic.kernel.executor import ExecutorRegistry
from pipemagic.kernel.frame import Frame
from pipemagic.kernel.pipeline import (
    DEFAULT_PARAMS,
    DEFAULT_SOURCE_HANDLE,
    DEFAULT_TARGET_HANDLE,
    NODE_LABELS,
    EdgeDef,
    NodeDef,
    PipelineDefinition,
    Position,
)
from pipemagic.kernel.runner import PipelineRunner, RunResult
from pipemagic.kernel.state import NodeState, NodeStatus, StateStore

logger = logging.getLogger(__name__)

PROTECTED_NODE_TYPES = ("input", "output")


def short_id() -> str:
    """Random 8-character URL-safe id."""
    return secrets.token_urlsafe(6)


def _node(node_id: str, node_type: str, x: float, y: float, params: Optional[Dict[str, Any]] = None) -> NodeDef:
    return NodeDef(
        id=node_id,
        type=node_type,
        position=Position(x=x, y=y),
        params=dict(params if params is not None else DEFAULT_PARAMS.get(node_type, {})),
        label=NODE_LABELS.get(node_type),
    )


def _chain(node_ids, new_id: Callable[[], str]) -> list[EdgeDef]:
    return [
        EdgeDef(id=new_id(), source=src, target=dst)
        for src, dst in zip(node_ids, node_ids[1:])
    ]


def default_pipeline(new_id: Callable[[], str] = short_id) -> PipelineDefinition:
    """input -> remove-bg -> normalize -> outline -> upscale -> output."""
    nodes = [
        _node(new_id(), "input", 60, 180, {"maxSize": 2048, "fit": "contain"}),
        _node(new_id(), "remove-bg", 380, 180, {"threshold": 0.5, "device": "auto", "dtype": "fp16"}),
        _node(new_id(), "normalize", 680, 180, {"size": 2048, "padding": 160}),
        _node(new_id(), "outline", 940, 200, {
            "thickness": 50,
            "color": "#ffffff",
            "opacity": 1,
            "quality": "high",
            "position": "outside",
            "threshold": 5,
        }),
        _node(new_id(), "upscale", 1220, 200, {"model": "cnn-2x-l", "contentType": "rl"}),
        _node(new_id(), "output", 1500, 180, {"format": "png", "quality": 0.92}),
    ]
    return PipelineDefinition(nodes=nodes, edges=_chain([n.id for n in nodes], new_id))


def empty_pipeline(new_id: Callable[[], str] = short_id) -> PipelineDefinition:
    """A single input wired straight to an output."""
    nodes = [
        _node(new_id(), "input", 100, 200),
        _node(new_id(), "output", 500, 200),
    ]
    return PipelineDefinition(nodes=nodes, edges=_chain([n.id for n in nodes], new_id))


class PipelineSession:
    """Owns one pipeline definition plus everything needed to run it."""

    def __init__(
        self,
        definition: Optional[PipelineDefinition] = None,
        executors: Optional[ExecutorRegistry] = None,
        id_factory: Callable[[], str] = short_id,
    ):
        self.definition = definition if definition is not None else PipelineDefinition()
        self.store = StateStore()
        self.input_images: Dict[str, Frame] = {}
        self.runner = PipelineRunner(self.store, executors)
        self.is_dirty = False
        self.has_run = False
        self._new_id = id_factory

    # -- queries -----------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self.runner.is_running

    def get_node_state(self, node_id: str) -> NodeState:
        return self.store.get_node_state(node_id)

    def _require_node(self, node_id: str) -> NodeDef:
        node = self.definition.node_by_id(node_id)
        if node is None:
            raise KeyError(f"Unknown node: '{node_id}'")
        return node

    # -- edits -------------------------------------------------------------

    def update_node_params(self, node_id: str, params: Mapping[str, Any]) -> NodeDef:
        """Merge params into a node and invalidate it and its dependents."""
        node = self._require_node(node_id)
        updated = node.model_copy(update={"params": {**node.params, **params}})
        self.definition = self.definition.model_copy(update={
            "nodes": [updated if n.id == node_id else n for n in self.definition.nodes],
        })
        self.store.invalidate_cascade(node_id, self.definition.edges)
        self.is_dirty = True
        return updated

    def set_input_image(self, node_id: str, frame: Frame) -> None:
        """Provide a new external image to a source node.

        Dependents are invalidated; the source node itself holds the frame as
        a finished result without a cache key, so the next run re-derives it.
        """
        self._require_node(node_id)
        self.input_images[node_id] = frame
        self.store.invalidate_downstream(node_id, self.definition.edges)
        self.store.update_node_state(node_id, output=frame, status=NodeStatus.DONE, cache_key=None)
        self.is_dirty = True

    def add_node(self, node_type: str, position: Optional[Position] = None) -> str:
        """Add a node with default params and label; returns its id."""
        node_id = self._new_id()
        pos = position if position is not None else Position()
        node = _node(node_id, node_type, pos.x, pos.y)
        self.definition = self.definition.model_copy(update={"nodes": [*self.definition.nodes, node]})
        self.is_dirty = True
        return node_id

    def remove_node(self, node_id: str) -> bool:
        """Remove a node, its edges and its state. Input/output nodes are kept."""
        node = self.definition.node_by_id(node_id)
        if node is None or node.type in PROTECTED_NODE_TYPES:
            return False
        affected = [e.target for e in self.definition.edges if e.source == node_id]
        for target in affected:
            self.store.invalidate_cascade(target, self.definition.edges)
        self.definition = self.definition.model_copy(update={
            "nodes": [n for n in self.definition.nodes if n.id != node_id],
            "edges": [e for e in self.definition.edges if e.source != node_id and e.target != node_id],
        })
        self.store.remove(node_id)
        self.input_images.pop(node_id, None)
        self.is_dirty = True
        return True

    def connect(
        self,
        source: str,
        target: str,
        source_handle: str = DEFAULT_SOURCE_HANDLE,
        target_handle: str = DEFAULT_TARGET_HANDLE,
    ) -> str:
        """Add an edge and invalidate the target and its dependents; returns the edge id."""
        edge = EdgeDef(
            id=self._new_id(),
            source=source,
            source_handle=source_handle,
            target=target,
            target_handle=target_handle,
        )
        self.definition = self.definition.model_copy(update={"edges": [*self.definition.edges, edge]})
        self.store.invalidate_cascade(target, self.definition.edges)
        self.is_dirty = True
        return edge.id

    def disconnect(self, edge_id: str) -> bool:
        """Remove an edge and invalidate its former target and dependents."""
        edge = next((e for e in self.definition.edges if e.id == edge_id), None)
        if edge is None:
            return False
        # Cascade over the old edges so everything that depended on the link is reached
        self.store.invalidate_cascade(edge.target, self.definition.edges)
        self.definition = self.definition.model_copy(update={
            "edges": [e for e in self.definition.edges if e.id != edge_id],
        })
        self.is_dirty = True
        return True

    def clear_execution(self) -> None:
        """Forget every run result; provided input images stay as finished results."""
        self.store.reset()
        for node_id, frame in self.input_images.items():
            self.store.update_node_state(node_id, output=frame, status=NodeStatus.DONE)

    # -- documents ---------------------------------------------------------

    def serialize(self) -> PipelineDefinition:
        return self.definition.model_copy(deep=True)

    def load(self, definition: PipelineDefinition) -> None:
        """Replace the pipeline. A previous input image carries over to the new input nodes."""
        previous = next(iter(self.input_images.values()), None)
        self.definition = definition
        self.store.clear()
        self.input_images = {}
        if previous is not None:
            for node in definition.nodes:
                if node.ports.is_source:
                    self.input_images[node.id] = previous
                    self.store.update_node_state(node.id, output=previous, status=NodeStatus.DONE)
        self.is_dirty = False
        logger.info(
            "Loaded pipeline with %d nodes and %d edges", len(definition.nodes), len(definition.edges)
        )

    def load_default_pipeline(self) -> None:
        self.load(default_pipeline(self._new_id))
        self.input_images = {}
        self.store.clear()

    def new_pipeline(self) -> None:
        self.load(empty_pipeline(self._new_id))

    # -- execution ---------------------------------------------------------

    async def run(self) -> RunResult:
        """Run the pipeline with the current input images (see PipelineRunner.run)."""
        result = await self.runner.run(self.definition, self.input_images)
        self.has_run = True
        return result

    def stop(self) -> None:
        self.runner.stop()
