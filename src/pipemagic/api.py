"""Public API for the pipemagic package.

High-level functions that return complete, structured results.
Hosts should use these functions instead of importing from _internal.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel

from pipemagic.codes import ValidationCode
from pipemagic.kernel.graph import CycleDetectedError, DanglingEdgeError, PipelineError
from pipemagic.kernel.pipeline import PipelineDefinition
from pipemagic.kernel.schedule import topo_sort
from pipemagic.kernel.validate import validate_pipeline
from pipemagic._internal.io.pipeline_file import (
    PipelineFormatError,
    load_pipeline_from_path,
    parse_pipeline,
)

PipelineSource = Union[str, os.PathLike, Path, Dict, PipelineDefinition]


class ValidationIssue(BaseModel):
    """A single validation issue."""
    code: str  # ValidationCode value, e.g. "DANGLING_EDGE", "CYCLE_DETECTED"
    message: str
    element_id: Optional[str] = None  # Node or edge the issue is attached to
    missing_id: Optional[str] = None  # For DANGLING_EDGE errors
    cycle_nodes: Optional[List[str]] = None  # For CYCLE_DETECTED errors


class ValidationResult(BaseModel):
    """Result of validation/preflight check."""
    ok: bool  # True if no errors
    errors: List[ValidationIssue]

    @property
    def message(self) -> str:
        """All error messages, newline-joined (how hosts surface them)."""
        return "\n".join(issue.message for issue in self.errors)


def load_pipeline(pipeline: PipelineSource) -> PipelineDefinition:
    """Normalize a path, dict, or definition into a PipelineDefinition."""
    if isinstance(pipeline, PipelineDefinition):
        return pipeline
    if isinstance(pipeline, dict):
        return parse_pipeline(pipeline)
    return load_pipeline_from_path(Path(pipeline))


def _issue_from_error(error: PipelineError) -> ValidationIssue:
    issue = ValidationIssue(
        code=error.code.value,
        message=error.message,
        element_id=error.node_id,
    )
    if isinstance(error, DanglingEdgeError):
        issue.element_id = error.edge_id
        issue.missing_id = error.missing_id
    elif isinstance(error, CycleDetectedError):
        issue.cycle_nodes = list(error.unplaced)
    return issue


def validate(pipeline: PipelineSource) -> ValidationResult:
    """
    Validate a pipeline's structure without running it.

    Malformed documents are reported as a single INVALID_STRUCTURE error
    instead of raising.
    """
    try:
        definition = load_pipeline(pipeline)
    except PipelineFormatError as e:
        return ValidationResult(
            ok=False,
            errors=[ValidationIssue(code=ValidationCode.INVALID_STRUCTURE.value, message=str(e))],
        )

    errors = [_issue_from_error(e) for e in validate_pipeline(definition.nodes, definition.edges)]
    return ValidationResult(ok=not errors, errors=errors)


def plan(pipeline: PipelineSource) -> List[str]:
    """
    Compute the execution order for a pipeline.

    Raises:
        PipelineFormatError: If the document is malformed.
        CycleDetectedError: If the graph contains a cycle.
    """
    definition = load_pipeline(pipeline)
    return topo_sort(definition.nodes, definition.edges)
