"""Load and save pipeline documents (``*.imgpipe.json``)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

from pydantic import ValidationError

from pipemagic.kernel.pipeline import PIPELINE_VERSION, PipelineDefinition
from pipemagic._internal.canonical_json import pretty_dumps

PIPELINE_FILE_SUFFIX = ".imgpipe.json"
DEFAULT_PIPELINE_FILENAME = "pipeline" + PIPELINE_FILE_SUFFIX


class PipelineFormatError(ValueError):
    """Raised when a document is not a valid pipeline file."""


def parse_pipeline(data: Any) -> PipelineDefinition:
    """Validate a decoded JSON document into a PipelineDefinition.

    Raises:
        PipelineFormatError: If version is not 1, nodes/edges are not arrays,
            or any node/edge is malformed.
    """
    if not isinstance(data, dict):
        raise PipelineFormatError("Invalid pipeline file format: expected a JSON object")
    version = data.get("version")
    if isinstance(version, bool) or version != PIPELINE_VERSION:
        raise PipelineFormatError(
            f"Invalid pipeline file format: unsupported version {version!r}"
        )
    if not isinstance(data.get("nodes"), list) or not isinstance(data.get("edges"), list):
        raise PipelineFormatError("Invalid pipeline file format: 'nodes' and 'edges' must be arrays")

    try:
        return PipelineDefinition.model_validate(data)
    except ValidationError as e:
        raise PipelineFormatError(f"Invalid pipeline file format: {e}") from e


def loads_pipeline(text: Union[str, bytes]) -> PipelineDefinition:
    """Parse a pipeline document from JSON text."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PipelineFormatError(f"Invalid JSON: {e}") from e
    return parse_pipeline(data)


def load_pipeline_from_path(path: Union[str, Path]) -> PipelineDefinition:
    """Load a pipeline document from a JSON file path."""
    return loads_pipeline(Path(path).read_text(encoding="utf-8"))


def dumps_pipeline(definition: PipelineDefinition) -> str:
    """Serialize a pipeline in its saved layout."""
    return pretty_dumps(definition.to_json_dict())


def save_pipeline_to_path(definition: PipelineDefinition, path: Union[str, Path]) -> Path:
    """Write a pipeline document, creating parent directories as needed."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(dumps_pipeline(definition) + "\n", encoding="utf-8")
    return out
