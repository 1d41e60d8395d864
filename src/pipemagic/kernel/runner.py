"""Execution coordinator: drives one pipeline run over the state store.

A run walks the topological order one node at a time:
1. Validate (all structural errors reported jointly, state untouched)
2. Readiness: every pure-source node needs a provided frame
3. Order the nodes
4. Mark unsettled nodes pending (done/cached records are kept)
5. For each node: stop if cancelled, gather upstream outputs, compare the
   cache key, and only invoke the executor on a miss
6. A failing node is recorded as errored and the walk continues; its
   descendants fail in turn for lack of input
7. The running marker is always cleared, whatever happened
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from pipemagic.codes import ValidationCode
from .executor import (
    ExecutionCancelled,
    ExecutionContext,
    ExecutorRegistry,
    NodeExecutionError,
    invoke_executor,
)
from .frame import Frame
from .graph import PipelineError, upstream_of
from .hash_utils import compute_cache_key
from .pipeline import EdgeDef, NodeDef, PipelineDefinition
from .schedule import topo_sort
from .state import NodeStatus, StateStore
from .validate import validate_pipeline

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "Please add an image to the Input node before running."


class PipelineValidationError(PipelineError):
    """Raised when a run is refused because the graph is structurally invalid."""

    def __init__(self, errors: Sequence[PipelineError]):
        self.errors = list(errors)
        super().__init__("\n".join(e.message for e in self.errors))


class MissingInputError(PipelineError):
    """Raised when a pure-source node has no provided input frame."""
    code = ValidationCode.MISSING_INPUT

    def __init__(self, node_ids: Sequence[str]):
        self.node_ids = list(node_ids)
        super().__init__(MISSING_INPUT_MESSAGE, node_id=self.node_ids[0] if self.node_ids else None)


class RunStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class RunResult:
    """Outcome of one run. Per-node details live in the state store."""
    status: RunStatus
    order: List[str] = field(default_factory=list)
    executed: List[str] = field(default_factory=list)
    cached: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def cancelled(self) -> bool:
        return self.status == RunStatus.CANCELLED


class _RunCancelled(Exception):
    pass


class PipelineRunner:
    """Runs pipelines against a state store, one run at a time.

    Starting a run while another is active cancels the active one and waits
    for it to stop before the new run begins. When several runs are requested
    back to back, only the most recent one executes.
    """

    def __init__(self, store: StateStore, executors: Optional[ExecutorRegistry] = None):
        self.store = store
        self.executors = executors if executors is not None else ExecutorRegistry()
        self._lock = asyncio.Lock()
        self._cancel_event: Optional[asyncio.Event] = None
        self._generation = 0
        self.current_node_id: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._cancel_event is not None

    def stop(self) -> None:
        """Request cancellation of the active run (no-op when idle)."""
        if self._cancel_event is not None:
            logger.info("[pipeline] cancellation requested")
            self._cancel_event.set()

    async def run(
        self,
        pipeline: PipelineDefinition,
        inputs: Optional[Mapping[str, Frame]] = None,
    ) -> RunResult:
        """Execute a pipeline.

        Args:
            pipeline: Nodes and edges to run.
            inputs: Externally provided frames keyed by pure-source node id.

        Raises:
            PipelineValidationError: Structural errors; no node state touched.
            MissingInputError: A source node has no input; no node state touched.
        """
        self._generation += 1
        generation = self._generation
        if self._cancel_event is not None:
            logger.info("[pipeline] new run requested, cancelling active run")
            self._cancel_event.set()

        async with self._lock:
            if generation != self._generation:
                logger.info("[pipeline] run superseded before it started")
                return RunResult(status=RunStatus.CANCELLED)

            cancel_event = asyncio.Event()
            self._cancel_event = cancel_event
            try:
                return await self._run(pipeline, dict(inputs or {}), cancel_event)
            finally:
                self._cancel_event = None
                self.current_node_id = None

    async def _run(
        self,
        pipeline: PipelineDefinition,
        inputs: Dict[str, Frame],
        cancel_event: asyncio.Event,
    ) -> RunResult:
        nodes, edges = pipeline.nodes, pipeline.edges

        errors = validate_pipeline(nodes, edges)
        if errors:
            error = PipelineValidationError(errors)
            logger.warning("Pipeline validation errors:\n%s", error.message)
            raise error

        missing = [n.id for n in nodes if n.ports.is_source and n.id not in inputs]
        if missing:
            logger.warning("Pipeline not ready, missing inputs: %s", ", ".join(missing))
            raise MissingInputError(missing)

        order = topo_sort(nodes, edges)
        logger.info("[pipeline] execution order: %s", order)

        for node in nodes:
            if not self.store.get_node_state(node.id).is_settled:
                self.store.update_node_state(node.id, status=NodeStatus.PENDING, progress=0.0, error=None)

        result = RunResult(status=RunStatus.COMPLETED, order=order)
        node_by_id = {n.id: n for n in nodes}
        ctx = ExecutionContext(
            "",
            cancel_event,
            on_progress=lambda nid, p: self.store.update_node_state(nid, progress=p),
            on_status=lambda nid, msg: self.store.update_node_state(nid, status_message=msg),
            on_download_progress=lambda nid, p: self.store.update_node_state(nid, download_progress=p),
            on_device=lambda nid, label: self.store.update_node_state(nid, device_used=label),
        )

        try:
            for node_id in order:
                if cancel_event.is_set():
                    raise _RunCancelled()
                self.current_node_id = node_id
                node_ctx = ctx.for_node(node_id)
                try:
                    await self._run_node(node_by_id[node_id], edges, inputs, node_ctx, result)
                finally:
                    node_ctx.close()
        except _RunCancelled:
            logger.info("[pipeline] run cancelled")
            result.status = RunStatus.CANCELLED

        return result

    async def _run_node(
        self,
        node: NodeDef,
        edges: Sequence[EdgeDef],
        inputs: Dict[str, Frame],
        ctx: ExecutionContext,
        result: RunResult,
    ) -> None:
        node_id = node.id
        params: Dict[str, Any] = dict(node.params)
        logger.debug("[pipeline] executing node %s (%s)", node_id, node.type)

        frames: List[Frame] = []
        revisions: List[int] = []
        if node.ports.is_source:
            provided = inputs.get(node_id)
            if provided is not None:
                # The external frame stands in for an upstream output
                frames.append(provided)
                revisions.append(provided.revision)
        else:
            for up_id in upstream_of(node_id, edges):
                up_state = self.store.get_node_state(up_id)
                if up_state.output is not None:
                    frames.append(up_state.output)
                    revisions.append(up_state.output.revision)

        try:
            cache_key = compute_cache_key(node_id, params, revisions)
        except ValueError as e:
            self._fail(node, str(e), result)
            return

        existing = self.store.get_node_state(node_id)
        if existing.cache_key == cache_key and existing.output is not None:
            self.store.update_node_state(node_id, status=NodeStatus.CACHED)
            result.cached.append(node_id)
            return

        self.store.update_node_state(node_id, status=NodeStatus.RUNNING, progress=0.0)
        try:
            output = await self._execute(node, ctx, frames, params)
        except ExecutionCancelled:
            self.store.set_node_state(node_id, existing)
            raise _RunCancelled()
        except asyncio.CancelledError:
            self.store.set_node_state(node_id, existing)
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                # The runner's own task was cancelled: let it propagate
                raise
            raise _RunCancelled()
        except Exception as e:
            if ctx.is_cancelled():
                self.store.set_node_state(node_id, existing)
                raise _RunCancelled()
            logger.error("[pipeline] node %s (%s) error: %s", node_id, node.type, e, exc_info=True)
            self._fail(node, str(e) or "Unknown error", result)
            return

        logger.info("[pipeline] node %s (%s) done", node_id, node.type)
        self.store.update_node_state(
            node_id,
            status=NodeStatus.DONE,
            progress=1.0,
            status_message=None,
            download_progress=None,
            output=output,
            cache_key=cache_key,
            error=None,
        )
        result.executed.append(node_id)

    async def _execute(
        self,
        node: NodeDef,
        ctx: ExecutionContext,
        frames: List[Frame],
        params: Dict[str, Any],
    ) -> Frame:
        executor = self.executors.get(node.type)

        if node.ports.is_source:
            if not frames:
                raise NodeExecutionError("No input image")
            if executor is None:
                return frames[0]
            return await invoke_executor(executor, ctx, frames, params)

        if node.ports.is_sink:
            if not frames:
                raise NodeExecutionError("No input to output node")
            if executor is None:
                return frames[0]
            return await invoke_executor(executor, ctx, frames, params)

        if executor is None:
            raise NodeExecutionError(f"No executor for node type: {node.type}")
        if not frames:
            raise NodeExecutionError("No input image")
        return await invoke_executor(executor, ctx, frames, params)

    def _fail(self, node: NodeDef, message: str, result: RunResult) -> None:
        # Drop any earlier output so descendants see no usable input
        self.store.update_node_state(
            node.id, status=NodeStatus.ERROR, error=message, output=None, cache_key=None
        )
        result.failed.append(node.id)
