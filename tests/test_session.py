"""Tests for the editing session."""

import itertools

import pytest

from pipemagic.kernel.executor import ExecutorRegistry
from pipemagic.kernel.frame import Frame
from pipemagic.kernel.pipeline import DEFAULT_PARAMS, Position
from pipemagic.kernel.runner import MissingInputError, RunStatus
from pipemagic.kernel.state import NodeStatus
from pipemagic.session import PipelineSession, default_pipeline, empty_pipeline, short_id

from conftest import RecordingExecutor


@pytest.fixture
def session(registry):
    counter = itertools.count(1)
    s = PipelineSession(executors=registry, id_factory=lambda: f"n{next(counter)}")
    s.new_pipeline()
    return s


def _ids_by_type(session, node_type):
    return [n.id for n in session.definition.nodes if n.type == node_type]


def test_short_id_is_eight_characters():
    ids = {short_id() for _ in range(20)}
    assert all(len(i) == 8 for i in ids)
    assert len(ids) == 20


def test_empty_pipeline_wires_input_to_output():
    definition = empty_pipeline()
    assert [n.type for n in definition.nodes] == ["input", "output"]
    assert len(definition.edges) == 1
    assert definition.edges[0].source == definition.nodes[0].id
    assert definition.edges[0].target == definition.nodes[1].id
    assert definition.nodes[0].params == DEFAULT_PARAMS["input"]


def test_default_pipeline_chain():
    definition = default_pipeline()
    assert [n.type for n in definition.nodes] == [
        "input", "remove-bg", "normalize", "outline", "upscale", "output",
    ]
    ids = [n.id for n in definition.nodes]
    assert [(e.source, e.target) for e in definition.edges] == list(zip(ids, ids[1:]))
    assert definition.nodes[3].params["thickness"] == 50


class TestEdits:
    """Edits change the definition and invalidate affected nodes."""

    def test_new_pipeline_is_clean(self, session):
        assert not session.is_dirty
        assert not session.has_run
        assert [n.id for n in session.definition.nodes] == ["n1", "n2"]

    def test_add_node_uses_defaults(self, session):
        node_id = session.add_node("upscale", Position(x=10, y=20))
        node = session.definition.node_by_id(node_id)
        assert node.type == "upscale"
        assert node.params == DEFAULT_PARAMS["upscale"]
        assert node.label == "Upscale 2x"
        assert (node.position.x, node.position.y) == (10, 20)
        assert session.is_dirty

    def test_add_node_does_not_share_default_params(self, session):
        node_id = session.add_node("upscale")
        session.update_node_params(node_id, {"scale": 4})
        assert DEFAULT_PARAMS["upscale"]["scale"] == 2

    def test_add_unknown_type_rejected(self, session):
        with pytest.raises(ValueError):
            session.add_node("sharpen")

    def test_remove_node_drops_edges_and_state(self, session):
        node_id = session.add_node("depth")
        edge_id = session.connect("n1", node_id)
        session.store.update_node_state(node_id, status=NodeStatus.DONE)

        assert session.remove_node(node_id)
        assert session.definition.node_by_id(node_id) is None
        assert all(e.id != edge_id for e in session.definition.edges)
        assert node_id not in session.store

    def test_input_and_output_cannot_be_removed(self, session):
        assert not session.remove_node("n1")
        assert not session.remove_node("n2")
        assert not session.remove_node("missing")
        assert len(session.definition.nodes) == 2

    def test_connect_and_disconnect_invalidate_target(self, session):
        session.store.update_node_state("n2", status=NodeStatus.DONE, cache_key="k")
        edge_id = session.connect("n1", "n2", target_handle="input")
        assert session.get_node_state("n2").status == NodeStatus.IDLE

        session.store.update_node_state("n2", status=NodeStatus.DONE, cache_key="k")
        assert session.disconnect(edge_id)
        assert session.get_node_state("n2").cache_key is None
        assert not session.disconnect(edge_id)

    def test_update_unknown_node(self, session):
        with pytest.raises(KeyError):
            session.update_node_params("missing", {})


class TestRunning:
    """Runs through the session keep cache state between edits."""

    @pytest.mark.asyncio
    async def test_run_requires_input_image(self, session):
        with pytest.raises(MissingInputError):
            await session.run()
        assert not session.has_run

    @pytest.mark.asyncio
    async def test_edit_output_params_reruns_only_output(self, session, frame):
        session.set_input_image("n1", frame)
        assert session.get_node_state("n1").status == NodeStatus.DONE

        result = await session.run()
        assert result.status == RunStatus.COMPLETED
        assert session.has_run
        assert session.get_node_state("n2").output is frame

        session.update_node_params("n2", {"format": "webp"})
        assert session.definition.node_by_id("n2").params == {"format": "webp", "quality": 0.92}
        assert session.get_node_state("n1").status == NodeStatus.DONE
        assert session.get_node_state("n2").status == NodeStatus.IDLE

        result = await session.run()
        assert result.cached == ["n1"]
        assert result.executed == ["n2"]

    @pytest.mark.asyncio
    async def test_new_input_image_invalidates_downstream(self, session, frame):
        session.set_input_image("n1", frame)
        await session.run()

        replacement = Frame.create("new", 8, 8)
        session.set_input_image("n1", replacement)
        assert session.get_node_state("n2").status == NodeStatus.IDLE

        result = await session.run()
        assert result.executed == ["n1", "n2"]
        assert session.get_node_state("n2").output is replacement

    @pytest.mark.asyncio
    async def test_clear_execution_keeps_input_images(self, session, frame):
        session.set_input_image("n1", frame)
        await session.run()

        session.clear_execution()

        assert session.get_node_state("n1").status == NodeStatus.DONE
        assert session.get_node_state("n1").output is frame
        assert session.get_node_state("n2").status == NodeStatus.IDLE
        assert session.get_node_state("n2").output is None

    @pytest.mark.asyncio
    async def test_processing_node_uses_registered_executor(self, frame):
        recorder = RecordingExecutor()
        session = PipelineSession(executors=ExecutorRegistry({"remove-bg": recorder}))
        session.load_default_pipeline()
        session.runner.executors.register("normalize", recorder)
        session.runner.executors.register("outline", recorder)
        session.runner.executors.register("upscale", recorder)
        input_id = _ids_by_type(session, "input")[0]
        session.set_input_image(input_id, frame)

        result = await session.run()

        assert result.failed == []
        assert recorder.call_count == 4


class TestDocuments:
    """Serialize and load."""

    def test_serialize_is_a_copy(self, session):
        copy = session.serialize()
        copy.nodes.clear()
        assert len(session.definition.nodes) == 2

    def test_load_carries_input_image(self, session, frame):
        session.set_input_image("n1", frame)
        other = default_pipeline(lambda: short_id())
        session.load(other)

        input_id = _ids_by_type(session, "input")[0]
        assert session.input_images == {input_id: frame}
        assert session.get_node_state(input_id).output is frame
        assert "n1" not in session.store
        assert not session.is_dirty

    def test_load_default_pipeline_drops_images(self, session, frame):
        session.set_input_image("n1", frame)
        session.load_default_pipeline()
        assert session.input_images == {}
        assert len(session.store) == 0
        assert len(session.definition.nodes) == 6
