"""Executor contract: the narrow interface to external pixel transforms.

An executor is ``execute(ctx, inputs, params) -> Frame`` (sync or async).
It reports through ``ctx`` and observes ``ctx.is_cancelled()`` during long
operations, raising ``ExecutionCancelled`` when it stops early. Any other
exception is a failure local to the node being executed.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Union

from .frame import Frame


class ExecutionCancelled(Exception):
    """Raised by an executor that stopped because its run was cancelled.

    Not an error: the runner halts the walk and marks nothing as failed.
    """

    def __init__(self, message: str = "Aborted"):
        super().__init__(message)


class NodeExecutionError(Exception):
    """Generic executor failure carrying a human-readable message."""


ProgressSink = Callable[[str, float], None]
MessageSink = Callable[[str, str], None]

NodeExecutor = Callable[
    ["ExecutionContext", List[Frame], Mapping[str, Any]],
    Union[Frame, Awaitable[Frame]],
]


def _clamp(fraction: float) -> float:
    return min(1.0, max(0.0, float(fraction)))


class ExecutionContext:
    """Per-node view of a run: cancellation token plus ordered callback sinks.

    Every report is routed to ``node_id`` no matter which id the executor
    believes it is working on. Once the node has finished the runner closes
    the context and further reports are ignored.
    """

    def __init__(
        self,
        node_id: str,
        cancel_event: asyncio.Event,
        on_progress: Optional[ProgressSink] = None,
        on_status: Optional[MessageSink] = None,
        on_download_progress: Optional[ProgressSink] = None,
        on_device: Optional[MessageSink] = None,
    ):
        self.node_id = node_id
        self._cancel_event = cancel_event
        self._on_progress = on_progress
        self._on_status = on_status
        self._on_download_progress = on_download_progress
        self._on_device = on_device
        self._closed = False

    def for_node(self, node_id: str) -> "ExecutionContext":
        """Same run and sinks, bound to another node id."""
        return ExecutionContext(
            node_id,
            self._cancel_event,
            on_progress=self._on_progress,
            on_status=self._on_status,
            on_download_progress=self._on_download_progress,
            on_device=self._on_device,
        )

    def close(self) -> None:
        """Stop routing reports; later calls are dropped."""
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ExecutionCancelled()

    def report_progress(self, fraction: float) -> None:
        if self._on_progress is not None and not self._closed:
            self._on_progress(self.node_id, _clamp(fraction))

    def report_status(self, message: str) -> None:
        if self._on_status is not None and not self._closed:
            self._on_status(self.node_id, message)

    def report_download_progress(self, fraction: float) -> None:
        if self._on_download_progress is not None and not self._closed:
            self._on_download_progress(self.node_id, _clamp(fraction))

    def set_device(self, label: str) -> None:
        """Record which device class (e.g. 'webgpu', 'wasm') the executor used."""
        if self._on_device is not None and not self._closed:
            self._on_device(self.node_id, label)


async def invoke_executor(
    executor: NodeExecutor,
    ctx: ExecutionContext,
    inputs: List[Frame],
    params: Mapping[str, Any],
) -> Frame:
    """Call a sync or async executor and return its frame."""
    result = executor(ctx, inputs, params)
    if inspect.isawaitable(result):
        result = await result
    if not isinstance(result, Frame):
        raise NodeExecutionError(
            f"Executor returned {type(result).__name__}, expected Frame"
        )
    return result


class ExecutorRegistry:
    """Maps node types to executor callables."""

    def __init__(self, executors: Optional[Mapping[str, NodeExecutor]] = None):
        self._executors: Dict[str, NodeExecutor] = dict(executors or {})

    def register(self, node_type: str, executor: Optional[NodeExecutor] = None):
        """Register an executor; usable directly or as a decorator."""
        if executor is not None:
            self._executors[node_type] = executor
            return executor

        def decorator(fn: NodeExecutor) -> NodeExecutor:
            self._executors[node_type] = fn
            return fn
        return decorator

    def unregister(self, node_type: str) -> None:
        self._executors.pop(node_type, None)

    def get(self, node_type: str) -> Optional[NodeExecutor]:
        return self._executors.get(node_type)

    def __contains__(self, node_type: str) -> bool:
        return node_type in self._executors

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._executors))
