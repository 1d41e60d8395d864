"""Pydantic models for pipeline definitions (nodes, edges, document)."""

from typing import Any, Dict, List, Literal, Optional, Union, get_args

from pydantic import BaseModel, ConfigDict, Field


NodeType = Literal[
    "input",
    "output",
    "remove-bg",
    "normalize",
    "upscale",
    "outline",
    "depth",
    "face-parse",
]

NODE_TYPES: tuple[str, ...] = get_args(NodeType)

PIPELINE_VERSION = 1

DEFAULT_SOURCE_HANDLE = "output"
DEFAULT_TARGET_HANDLE = "input"


class NodePorts(BaseModel):
    """Input/output ports a node type exposes."""
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]

    model_config = ConfigDict(frozen=True)

    @property
    def is_source(self) -> bool:
        return not self.inputs

    @property
    def is_sink(self) -> bool:
        return not self.outputs


_PROCESSING_PORTS = NodePorts(inputs=(DEFAULT_TARGET_HANDLE,), outputs=(DEFAULT_SOURCE_HANDLE,))

NODE_PORTS: Dict[str, NodePorts] = {
    "input": NodePorts(inputs=(), outputs=(DEFAULT_SOURCE_HANDLE,)),
    "output": NodePorts(inputs=(DEFAULT_TARGET_HANDLE,), outputs=()),
    "remove-bg": _PROCESSING_PORTS,
    "normalize": _PROCESSING_PORTS,
    "upscale": _PROCESSING_PORTS,
    "outline": _PROCESSING_PORTS,
    "depth": _PROCESSING_PORTS,
    "face-parse": _PROCESSING_PORTS,
}

DEFAULT_PARAMS: Dict[str, Dict[str, Any]] = {
    "input": {"maxSize": 2048, "fit": "contain"},
    "output": {"format": "png", "quality": 0.92},
    "remove-bg": {"threshold": 0.5, "device": "auto"},
    "normalize": {"size": 1024, "padding": 16},
    "upscale": {"scale": 2, "tileSize": 512, "device": "auto"},
    "outline": {
        "thickness": 4,
        "color": "#ffffff",
        "opacity": 1,
        "quality": "medium",
        "position": "outside",
        "threshold": 0,
    },
    "depth": {"device": "auto"},
    "face-parse": {"device": "auto"},
}

NODE_LABELS: Dict[str, str] = {
    "input": "Image Input",
    "output": "Output",
    "remove-bg": "Remove BG",
    "normalize": "Normalize",
    "upscale": "Upscale 2x",
    "outline": "Outline",
    "depth": "Estimate Depth",
    "face-parse": "Face Parse",
}


def ports_for(node_type: str) -> NodePorts:
    """Get the port layout for a node type (unknown types behave like processing nodes)."""
    return NODE_PORTS.get(node_type, _PROCESSING_PORTS)


class Position(BaseModel):
    """Canvas coordinate. Carried through, never interpreted by the engine."""
    x: Union[int, float] = 0
    y: Union[int, float] = 0


class NodeDef(BaseModel):
    """A single pipeline step."""
    id: str
    type: NodeType
    position: Position = Field(default_factory=Position)
    params: Dict[str, Any] = Field(default_factory=dict)
    label: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def ports(self) -> NodePorts:
        return ports_for(self.type)


class EdgeDef(BaseModel):
    """A connection from one node's output port to another node's input port."""
    id: str
    source: str
    source_handle: str = Field(default=DEFAULT_SOURCE_HANDLE, alias="sourceHandle")
    target: str
    target_handle: str = Field(default=DEFAULT_TARGET_HANDLE, alias="targetHandle")

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class PipelineDefinition(BaseModel):
    """The persisted/exchanged pipeline document."""
    version: Literal[1] = PIPELINE_VERSION
    nodes: List[NodeDef] = Field(default_factory=list)
    edges: List[EdgeDef] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def node_by_id(self, node_id: str) -> NodeDef | None:
        """Get node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_node_ids(self) -> list[str]:
        """Node ids in definition order."""
        return [n.id for n in self.nodes]

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump using the camelCase wire names; omits a missing label."""
        data = self.model_dump(by_alias=True, mode="json")
        for node in data["nodes"]:
            if node.get("label") is None:
                node.pop("label", None)
        return data
