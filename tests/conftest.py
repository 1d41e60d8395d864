"""Pytest configuration and shared fixtures.

No sys.path hacks - tests import from the installed pipemagic package.
"""

import asyncio

import pytest

from pipemagic.kernel.executor import ExecutorRegistry
from pipemagic.kernel.frame import Frame
from pipemagic.kernel.pipeline import EdgeDef, NodeDef, PipelineDefinition


def make_node(node_id, node_type="remove-bg", **params):
    return NodeDef(id=node_id, type=node_type, params=params)


def make_edge(source, target, edge_id=None, target_handle="input"):
    return EdgeDef(
        id=edge_id or f"{source}->{target}",
        source=source,
        target=target,
        target_handle=target_handle,
    )


def make_pipeline(nodes, links):
    """Build a definition from nodes and (source, target) pairs."""
    return PipelineDefinition(nodes=nodes, edges=[make_edge(s, t) for s, t in links])


class RecordingExecutor:
    """Fake transform: records calls and returns a fresh frame per invocation."""

    def __init__(self, fail_with=None):
        self.calls = []
        self.fail_with = fail_with

    def __call__(self, ctx, inputs, params):
        self.calls.append((ctx.node_id, [f.revision for f in inputs], dict(params)))
        if self.fail_with is not None:
            raise self.fail_with
        ctx.report_progress(0.5)
        src = inputs[0]
        return Frame.create(("processed", ctx.node_id), src.width, src.height)

    @property
    def call_count(self):
        return len(self.calls)

    def node_ids(self):
        return [node_id for node_id, _, _ in self.calls]


class GateExecutor:
    """Async fake transform that blocks until released; honours cancellation."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.calls = 0

    async def __call__(self, ctx, inputs, params):
        self.calls += 1
        self.started.set()
        while not self.release.is_set():
            ctx.raise_if_cancelled()
            await asyncio.sleep(0)
        return Frame.create("gated", inputs[0].width, inputs[0].height)


@pytest.fixture
def frame():
    """A fresh input frame."""
    return Frame.create("pixels", 64, 48)


@pytest.fixture
def recorder():
    return RecordingExecutor()


@pytest.fixture
def registry(recorder):
    """Registry with the recording executor on every processing type."""
    reg = ExecutorRegistry()
    for node_type in ("remove-bg", "normalize", "upscale", "outline", "depth", "face-parse"):
        reg.register(node_type, recorder)
    return reg


@pytest.fixture
def linear_pipeline():
    """I -> R -> O."""
    return make_pipeline(
        [
            make_node("I", "input"),
            make_node("R", "remove-bg", threshold=0.5),
            make_node("O", "output"),
        ],
        [("I", "R"), ("R", "O")],
    )
