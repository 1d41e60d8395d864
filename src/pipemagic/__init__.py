"""pipemagic: incremental execution engine for image-transform pipelines."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("pipemagic")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
from pipemagic.api import validate, plan, ValidationIssue, ValidationResult
from pipemagic.codes import ValidationCode
from pipemagic.kernel.executor import ExecutionCancelled, ExecutionContext, ExecutorRegistry, NodeExecutionError
from pipemagic.kernel.frame import Frame
from pipemagic.kernel.pipeline import EdgeDef, NodeDef, PipelineDefinition
from pipemagic.kernel.runner import MissingInputError, PipelineRunner, PipelineValidationError, RunResult, RunStatus
from pipemagic.kernel.state import NodeState, NodeStatus, StateStore
from pipemagic.session import PipelineSession

__all__ = [
    "__version__",
    "validate",
    "plan",
    "ValidationIssue",
    "ValidationResult",
    "ValidationCode",
    "ExecutionCancelled",
    "ExecutionContext",
    "ExecutorRegistry",
    "NodeExecutionError",
    "Frame",
    "EdgeDef",
    "NodeDef",
    "PipelineDefinition",
    "MissingInputError",
    "PipelineRunner",
    "PipelineValidationError",
    "RunResult",
    "RunStatus",
    "NodeState",
    "NodeStatus",
    "StateStore",
    "PipelineSession",
]
